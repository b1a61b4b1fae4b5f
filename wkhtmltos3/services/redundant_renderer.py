# services/redundant_renderer.py
"""
Redundant rendering

wkhtmltoimage occasionally renders a page before every resource has loaded.
To guard against that, a redundant render only accepts an image once two
independent renders produced identical bytes (compared by sha256).

Protocol:
1. Launch two renders in parallel into separate scratch paths.
2. Hash each render as it completes. The first render whose hash matches
   any earlier hash is accepted (first match wins, no majority vote).
3. Without a match, launch one more render at a time and compare it
   against every hash seen so far.
4. Give up after `max_attempts` renders in total.

Any single render failure aborts the whole protocol at once.
"""

import asyncio
import hashlib
import os
import shutil
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

from wkhtmltos3.core.config import settings
from wkhtmltos3.core.exceptions import RedundancyExhaustedError, RenderError
from wkhtmltos3.core.logger import logger
from wkhtmltos3.schemas.job_models import RenderJob
from wkhtmltos3.services.renderer import Renderer, ensure_parent_dir, scratch_path
from wkhtmltos3.utils.log_job import log_job, short_outcome
from wkhtmltos3.utils.profile_log import ProfileTimer

INITIAL_RENDERS = 2


class RenderAttempt(BaseModel):
    index: int
    path: str
    digest: str


def file_digest(path: str, chunk_size: int = 65536) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"    warning: failed to delete redundant render {path}: {e}")


class RedundantRenderer:
    """Requires two matching renders before accepting an image."""

    def __init__(
        self,
        renderer: Renderer,
        max_attempts: Optional[int] = None,
        scratch_dir: Optional[str] = None,
    ):
        self.renderer = renderer
        self.max_attempts = max_attempts or settings.REDUNDANT_MAX_ATTEMPTS
        self.scratch_dir = scratch_dir or settings.SCRATCH_DIR
        if self.max_attempts < INITIAL_RENDERS:
            raise ValueError(f"max_attempts must be at least {INITIAL_RENDERS}")

    def attempt_path(self, job: RenderJob, index: int) -> str:
        # Index as a directory keeps the key's extension, which wkhtmltoimage reads
        return scratch_path(self.scratch_dir, job.key, "redundant", str(index))

    async def render(
        self,
        job: RenderJob,
        output_path: str,
        timer: Optional[ProfileTimer] = None,
    ) -> str:
        """Render until two attempts agree; the agreed image ends up at `output_path`."""
        timer = timer or ProfileTimer(enabled=False)
        start = timer.now()
        attempts: List[RenderAttempt] = []
        seen: Dict[str, RenderAttempt] = {}
        accepted: Optional[RenderAttempt] = None

        try:
            initial = [
                asyncio.create_task(self._run_attempt(job, index, timer))
                for index in range(1, INITIAL_RENDERS + 1)
            ]
            try:
                for completed in asyncio.as_completed(initial):
                    attempt = await completed
                    attempts.append(attempt)
                    accepted = self._match(attempt, seen)
            except Exception:
                self._discard_when_done(initial)
                raise

            launched = INITIAL_RENDERS
            while accepted is None and launched < self.max_attempts:
                launched += 1
                attempt = await self._run_attempt(job, launched, timer)
                attempts.append(attempt)
                accepted = self._match(attempt, seen)

            if accepted is None:
                timer.add_entry(start, "fail redundant render")
                log_job(
                    job,
                    f"  failed: no two of {launched} renders matched\n",
                    short_outcome("fail render", job, f"no matching renders after {launched} attempts"),
                    error=True,
                )
                raise RedundancyExhaustedError(launched)

            try:
                ensure_parent_dir(output_path)
                shutil.move(accepted.path, output_path)
            except OSError as e:
                raise RenderError(f"could not move accepted render to {output_path}: {e}") from e

            timer.add_entry(start, f"complete redundant render ({len(attempts)} attempts)")
            log_job(
                job,
                f"  redundant render: attempt {accepted.index} matched after {len(attempts)} attempts"
            )
            return output_path
        finally:
            for attempt in attempts:
                if attempt is not accepted:
                    _remove_quietly(attempt.path)

    async def _run_attempt(self, job: RenderJob, index: int, timer: ProfileTimer) -> RenderAttempt:
        path = self.attempt_path(job, index)
        await self.renderer.render(job, path, timer)
        try:
            digest = await asyncio.to_thread(file_digest, path)
        except OSError as e:
            _remove_quietly(path)
            raise RenderError(f"could not hash render attempt {index}: {e}") from e
        logger.debug("redundant render attempt=%d digest=%s key=%s", index, digest, job.key)
        return RenderAttempt(index=index, path=path, digest=digest)

    @staticmethod
    def _match(attempt: RenderAttempt, seen: Dict[str, RenderAttempt]) -> Optional[RenderAttempt]:
        if attempt.digest in seen:
            return attempt
        seen[attempt.digest] = attempt
        return None

    @staticmethod
    def _discard_when_done(tasks: Iterable["asyncio.Task[RenderAttempt]"]) -> None:
        """Renders still running after a failure clean up their own output when they finish."""

        def _cleanup(task: "asyncio.Task[RenderAttempt]") -> None:
            if task.cancelled() or task.exception() is not None:
                return
            _remove_quietly(task.result().path)

        for task in tasks:
            if task.done():
                _cleanup(task)
            else:
                task.add_done_callback(_cleanup)
