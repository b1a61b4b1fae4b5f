# schemas/sqs_models.py
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional

from wkhtmltos3.core.exceptions import MessageParseError
from wkhtmltos3.schemas.job_models import JobOverrides


class ReceiveSettings(BaseModel):
    max_number_of_messages: int = Field(5, ge=1, le=10)
    wait_time_seconds: int = Field(10, ge=0, le=20)
    visibility_timeout: int = Field(15, ge=0)


class QueueMessage(BaseModel):
    """One SQS delivery: opaque body plus the receipt handle used to delete it."""
    message_id: str = ""
    receipt_handle: str
    body: str
    attributes: Dict[str, Any] = {}

    @classmethod
    def from_sqs(cls, raw: Dict[str, Any]) -> "QueueMessage":
        return cls(
            message_id=raw.get("MessageId", ""),
            receipt_handle=raw["ReceiptHandle"],
            body=raw.get("Body", ""),
            attributes=raw.get("Attributes", {}),
        )

    @property
    def receive_count(self) -> Optional[int]:
        count = self.attributes.get("ApproximateReceiveCount")
        return int(count) if count is not None else None

    def parse_overrides(self) -> JobOverrides:
        """Parse the body as a JSON object of job overrides."""
        try:
            return JobOverrides.model_validate_json(self.body)
        except ValueError as e:
            raise MessageParseError(
                f"invalid message body {self.body[:200]!r}: {e}",
                message_id=self.message_id,
            ) from e
