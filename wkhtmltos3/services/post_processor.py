# services/post_processor.py
import asyncio
import os
from typing import List, Optional

from wkhtmltos3.core.config import settings
from wkhtmltos3.core.exceptions import ConvertError
from wkhtmltos3.core.logger import logger
from wkhtmltos3.schemas.job_models import RenderJob
from wkhtmltos3.services.renderer import scratch_path
from wkhtmltos3.utils.log_job import log_job, short_outcome
from wkhtmltos3.utils.profile_log import ProfileTimer


class PostProcessor:
    """
    Runs imagemagick `convert <input> <options...> <dest>` on a rendered image.

    see: http://www.imagemagick.org/Usage/crop/#trim
    """

    def __init__(self, binary: Optional[str] = None, scratch_dir: Optional[str] = None):
        self.binary = binary or settings.IMAGEMAGICK_CONVERT_BIN
        self.scratch_dir = scratch_dir or settings.SCRATCH_DIR

    def output_path(self, job: RenderJob) -> str:
        return scratch_path(self.scratch_dir, job.key, "imagemagick")

    async def convert(
        self,
        image_path: str,
        job: RenderJob,
        options: Optional[List[str]] = None,
        timer: Optional[ProfileTimer] = None,
    ) -> str:
        """
        Convert `image_path` and return the new file's path.

        On success the input file is deleted. On failure it is kept for
        diagnosis and ConvertError is raised.
        """
        timer = timer or ProfileTimer(enabled=False)
        options = job.convert_options() if options is None else options
        start = timer.now()
        log_job(job, f"  imagemagick convert ({options})...")

        dest_path = self.output_path(job)
        try:
            os.makedirs(os.path.dirname(dest_path), exist_ok=True)
            proc = await asyncio.create_subprocess_exec(
                self.binary,
                image_path,
                *options,
                dest_path,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            self._fail(job, timer, start, str(e))
            raise ConvertError(f"could not run {self.binary}: {e}") from e

        stdout_b, stderr_b = await proc.communicate()
        if proc.returncode != 0:
            stdout = stdout_b.decode("utf-8", errors="replace").strip()
            stderr = stderr_b.decode("utf-8", errors="replace").strip()
            detail = f"exit code {proc.returncode}: {stderr}"
            self._fail(job, timer, start, detail, stdout)
            raise ConvertError(f"imagemagick convert failed: {detail}")

        timer.add_entry(start, "complete imagemagick convert")
        try:
            os.remove(image_path)
        except OSError as e:
            logger.warning(f"    warning: failed to delete original image: {e}")
        return dest_path

    def _fail(self, job: RenderJob, timer: ProfileTimer, start: float, detail: str, stdout: str = "") -> None:
        timer.add_entry(start, "fail imagemagick convert")
        log_job(
            job,
            f"  failed: error = {detail}\n",
            short_outcome("fail imagemagick convert", job, f"error = {detail}, stdout = {stdout}"),
            error=True,
        )
