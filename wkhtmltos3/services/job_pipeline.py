# services/job_pipeline.py
"""
Job Pipeline

Sequences one job: validate -> render (redundant or single) ->
imagemagick convert (only with trim or imagemagick options) -> S3 upload.
Used identically by the one-shot CLI and the queue worker.
"""

import os
from typing import List, Optional, Protocol

from wkhtmltos3.core.config import settings
from wkhtmltos3.core.exceptions import JobError, JobValidationError
from wkhtmltos3.core.logger import logger
from wkhtmltos3.schemas.job_models import RenderJob
from wkhtmltos3.services.post_processor import PostProcessor
from wkhtmltos3.services.redundant_renderer import RedundantRenderer
from wkhtmltos3.services.renderer import Renderer, scratch_path
from wkhtmltos3.utils.log_job import log_job, short_outcome
from wkhtmltos3.utils.profile_log import ProfileTimer


# ============================================================================
# INTERFACES (PROTOCOLS)
# ============================================================================

class ImageRenderer(Protocol):
    async def render(self, job: RenderJob, output_path: str, timer: Optional[ProfileTimer] = None) -> str:
        ...


class ImageConverter(Protocol):
    async def convert(
        self,
        image_path: str,
        job: RenderJob,
        options: Optional[List[str]] = None,
        timer: Optional[ProfileTimer] = None,
    ) -> str:
        ...


class ImageUploader(Protocol):
    async def upload(self, path: str, job: RenderJob, timer: Optional[ProfileTimer] = None) -> str:
        ...


# ============================================================================
# MAIN SERVICE
# ============================================================================

class JobPipeline:
    """
    Render-and-upload for a single job.

    `run()` either returns the s3 uri or raises exactly one JobError; any
    failing stage skips the stages after it.
    """

    def __init__(
        self,
        uploader: ImageUploader,
        renderer: Optional[ImageRenderer] = None,
        redundant_renderer: Optional[ImageRenderer] = None,
        post_processor: Optional[ImageConverter] = None,
        scratch_dir: Optional[str] = None,
    ):
        self.uploader = uploader
        self.renderer = renderer or Renderer()
        self.redundant_renderer = redundant_renderer or RedundantRenderer(self.renderer)
        self.post_processor = post_processor or PostProcessor()
        self.scratch_dir = scratch_dir or settings.SCRATCH_DIR

    def image_path(self, job: RenderJob) -> str:
        return scratch_path(self.scratch_dir, job.key)

    async def run(self, job: RenderJob) -> str:
        timer = ProfileTimer(enabled=job.profile)
        start = timer.now()
        try:
            try:
                job.validate_complete()
                output_path = self.image_path(job)
            except JobValidationError as e:
                logger.error("ERROR:\n  " + "\n  ".join(e.errors))
                raise

            log_job(job, (
                "\nwkhtmltos3:\n"
                f"  bucket:      {job.bucket}\n"
                f"  key:         {job.key}\n"
                f"  format:      {job.format or settings.DEFAULT_FORMAT}\n"
                f"  url:         {job.url}\n"
            ))

            renderer = self.redundant_renderer if job.redundant else self.renderer
            image_path = await renderer.render(job, output_path, timer)

            options = job.convert_options()
            if options:
                image_path = await self.post_processor.convert(image_path, job, options, timer)

            s3_uri = await self.uploader.upload(image_path, job, timer)

            elapsed_ms = int((timer.now() - start) * 1000)
            log_job(
                job,
                f"  complete ({elapsed_ms} ms)\n",
                short_outcome(f"success ({elapsed_ms} ms)", job),
            )
            return s3_uri
        except JobError as e:
            logger.debug("job failed key=%s error=%s: %s", job.key, type(e).__name__, e)
            raise
        finally:
            timer.add_entry(start, "total")
            if timer.enabled:
                logger.info(timer.report())
