# services/queue_worker.py
"""
SQS Queue Worker

Long-polls the queue forever and runs every message through the
JobPipeline.

Loop:
- Poll. A transport error waits a fixed backoff, then polls again. An
  empty poll polls again immediately.
- Not overloaded: the next poll starts while the batch is still being
  processed.
- Overloaded: the next poll waits until the batch finishes or the drain
  timeout passes, whichever comes first.

Per message:
- Duplicate of a recently accepted job: deleted without processing.
- Success: deleted.
- Failure: the dedupe entry is released and the message is left alone, so
  the queue redelivers it after the visibility timeout (and eventually
  moves it to a dead-letter queue).

A body that fails to parse abandons its whole batch without deleting
anything.
"""

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Set, Tuple

from wkhtmltos3.core.exceptions import JobError, MessageParseError, QueueTransportError
from wkhtmltos3.core.logger import logger
from wkhtmltos3.integrations.sqs_client import SqsQueue
from wkhtmltos3.schemas.job_models import RenderJob
from wkhtmltos3.schemas.sqs_models import QueueMessage, ReceiveSettings
from wkhtmltos3.services.dedupe_cache import DedupeCache
from wkhtmltos3.services.job_pipeline import JobPipeline
from wkhtmltos3.services.load_monitor import LoadMonitor


@dataclass
class WorkerContext:
    """All worker state, built once at startup and passed to the loop."""
    base_job: RenderJob
    queue: SqsQueue
    pipeline: JobPipeline
    dedupe: DedupeCache
    load_monitor: LoadMonitor
    receive_settings: ReceiveSettings
    error_backoff_secs: float = 20.0
    drain_timeout_secs: float = 20.0


class QueueWorker:

    def __init__(self, context: WorkerContext):
        self.context = context
        self._batches: Set[asyncio.Task] = set()

    @property
    def active_batches(self) -> int:
        return len(self._batches)

    async def run(self) -> None:
        """Poll forever; only process shutdown ends the loop."""
        ctx = self.context
        logger.info("queue worker: started")
        logger.info(f"  queueUrl:            {ctx.queue.queue_url}")
        logger.info(f"  maxNumberOfMessages: {ctx.receive_settings.max_number_of_messages}")
        logger.info(f"  waitTimeSeconds:     {ctx.receive_settings.wait_time_seconds}")
        logger.info(f"  visibilityTimeout:   {ctx.receive_settings.visibility_timeout}")
        if ctx.dedupe.enabled:
            logger.info(f"  dedupe:              {ctx.dedupe.max_entries} entries, {ctx.dedupe.max_age_secs}s")
        else:
            logger.info("  dedupe:              disabled")
        while True:
            await self.poll_once()

    async def poll_once(self) -> Optional[asyncio.Task]:
        """
        One Polling step. Returns the task processing the received batch,
        or None when nothing was received.
        """
        ctx = self.context
        try:
            messages = await ctx.queue.receive(ctx.receive_settings)
        except QueueTransportError as e:
            logger.error(f"receiveMessage: fail: {e} (retrying in {ctx.error_backoff_secs}s)")
            await asyncio.sleep(ctx.error_backoff_secs)
            return None

        if not messages:
            return None

        batch = asyncio.create_task(self.process_batch(messages))
        self._batches.add(batch)
        batch.add_done_callback(self._batches.discard)

        if ctx.load_monitor.is_overloaded():
            logger.info(
                f"queue worker: overloaded, draining batch of {len(messages)} "
                f"(up to {ctx.drain_timeout_secs}s)"
            )
            await asyncio.wait({batch}, timeout=ctx.drain_timeout_secs)
        return batch

    async def process_batch(self, messages: List[QueueMessage]) -> None:
        ctx = self.context
        try:
            jobs = self.parse_batch(messages)
        except MessageParseError as e:
            logger.error(
                f"receiveMessage: abandoning batch of {len(messages)} message(s): {e}",
                extra={"message_id": e.message_id}
            )
            return

        logger.debug(
            "receiveMessage: success: %d message(s): %s",
            len(jobs), [job.describe() for _, job in jobs]
        )

        handlers = []
        for message, job in jobs:
            key = job.dedupe_key()
            if ctx.dedupe.should_skip(key):
                logger.info(
                    f"receiveMessage: duplicate, deleting without processing: {job.describe()}",
                    extra={"message_id": message.message_id}
                )
                handlers.append(self.delete_message(message))
                continue
            ctx.dedupe.mark_in_flight(key)
            handlers.append(self.handle_message(message, job, key))

        await asyncio.gather(*handlers)

    def parse_batch(self, messages: List[QueueMessage]) -> List[Tuple[QueueMessage, RenderJob]]:
        """Merge every message onto the base job; any bad body fails the whole batch."""
        base = self.context.base_job
        return [(message, base.merge(message.parse_overrides())) for message in messages]

    async def handle_message(self, message: QueueMessage, job: RenderJob, key: str) -> bool:
        """Run the job; delete the message on success, release the dedupe entry on failure."""
        logger.info(
            f"receiveMessage: processing {job.describe()}",
            extra={"message_id": message.message_id, "receive_count": message.receive_count}
        )
        try:
            await self.context.pipeline.run(job)
        except JobError as e:
            self.context.dedupe.release(key)
            logger.warning(
                f"job failed, message left for redelivery: {job.describe()} ({type(e).__name__}: {e})",
                extra={"message_id": message.message_id, "receive_count": message.receive_count}
            )
            return False
        except Exception:
            self.context.dedupe.release(key)
            logger.exception(f"unexpected error processing {job.describe()}")
            return False

        await self.delete_message(message)
        return True

    async def delete_message(self, message: QueueMessage) -> None:
        logger.debug("receiveMessage: delete... msg_id=%s", message.message_id)
        try:
            await self.context.queue.delete(message)
        except QueueTransportError as e:
            logger.error(f"receiveMessage: delete: fail: {e}")
