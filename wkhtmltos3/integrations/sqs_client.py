# integrations/sqs_client.py
import asyncio
from typing import List

from botocore.exceptions import BotoCoreError, ClientError

from wkhtmltos3.core.exceptions import QueueTransportError
from wkhtmltos3.core.logger import logger
from wkhtmltos3.schemas.sqs_models import QueueMessage, ReceiveSettings

RECEIVE_ATTRIBUTES = [
    "SentTimestamp",
    "ApproximateFirstReceiveTimestamp",
    "ApproximateReceiveCount",
]


class SqsQueue:
    """
    Async adapter over a boto3 SQS client bound to one queue url.
    The boto3 calls block, so they run on the default executor.
    """

    def __init__(self, client, queue_url: str):
        self._sqs = client
        self.queue_url = queue_url

    async def receive(self, receive_settings: ReceiveSettings) -> List[QueueMessage]:
        """Long-poll for up to `max_number_of_messages` messages."""
        params = {
            "QueueUrl": self.queue_url,
            "AttributeNames": RECEIVE_ATTRIBUTES,
            "MaxNumberOfMessages": receive_settings.max_number_of_messages,
            "VisibilityTimeout": receive_settings.visibility_timeout,
            "WaitTimeSeconds": receive_settings.wait_time_seconds,
        }
        try:
            resp = await asyncio.to_thread(self._sqs.receive_message, **params)
        except (ClientError, BotoCoreError) as e:
            raise QueueTransportError(f"receive_message failed: {e}") from e

        messages = [QueueMessage.from_sqs(raw) for raw in resp.get("Messages", [])]
        logger.debug("SQS receive ok count=%d", len(messages))
        return messages

    async def delete(self, message: QueueMessage) -> None:
        """Delete one delivery by its own receipt handle."""
        try:
            await asyncio.to_thread(
                self._sqs.delete_message,
                QueueUrl=self.queue_url,
                ReceiptHandle=message.receipt_handle,
            )
        except (ClientError, BotoCoreError) as e:
            raise QueueTransportError(f"delete_message failed for {message.message_id}: {e}") from e
        logger.debug("SQS delete ok msg_id=%s", message.message_id)
