# services/renderer.py
"""
Single wkhtmltoimage invocation.

The rendered file is written to a caller-supplied path. wkhtmltoimage's
own progress output is filtered so only warnings and errors reach the log;
those are logged regardless of the job's verbose flag.
"""

import asyncio
import os
import re
from typing import List, Optional

from wkhtmltos3.core.config import settings
from wkhtmltos3.core.exceptions import JobValidationError, RenderError
from wkhtmltos3.core.logger import logger
from wkhtmltos3.schemas.job_models import RenderJob
from wkhtmltos3.utils.log_job import log_job, short_outcome
from wkhtmltos3.utils.profile_log import ProfileTimer

_STDOUT_NOISE = re.compile(r"\s\s|\r|\[[=> ]+\] \d+%")
_STDERR_NOISE = re.compile(
    r"\s\s|\r|\[[=> ]+\] \d+%|Loading page \(\d/\d\)|Rendering \(\d/\d\)|Done"
)


def filter_tool_output(text: str, noise: re.Pattern) -> str:
    """Strip progress noise and blank lines; remaining lines become `- ` bullets."""
    lines = [line for line in noise.sub("", text).split("\n") if line.strip()]
    if not lines:
        return ""
    return "    - " + "\n    - ".join(lines)


def ensure_parent_dir(path: str) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)


def scratch_path(scratch_dir: str, key: str, *subdirs: str) -> str:
    """
    Local path for `key` under `scratch_dir`/`subdirs`. A leading "/" in
    the key stays inside the scratch tree; a key that climbs out of it with
    ".." is rejected.
    """
    root = os.path.normpath(os.path.join(scratch_dir, *subdirs))
    path = os.path.normpath(os.path.join(root, key.lstrip("/")))
    if os.path.commonpath([root, path]) != root or path == root:
        raise JobValidationError([f"--key={key} must name a file inside the scratch directory"])
    return path


class Renderer:
    """Runs wkhtmltoimage once for a job."""

    def __init__(
        self,
        binary: Optional[str] = None,
        cache_dir: Optional[str] = None,
    ):
        self.binary = binary or settings.WKHTMLTOIMAGE_BIN
        self.cache_dir = cache_dir or settings.RENDER_CACHE_DIR

    def build_args(self, job: RenderJob, output_path: str) -> List[str]:
        return job.render_options() + ["--cache-dir", self.cache_dir, job.url, output_path]

    async def render(
        self,
        job: RenderJob,
        output_path: str,
        timer: Optional[ProfileTimer] = None,
    ) -> str:
        """Render `job.url` into `output_path` and return the path."""
        timer = timer or ProfileTimer(enabled=False)
        start = timer.now()

        try:
            os.makedirs(self.cache_dir, exist_ok=True)
            ensure_parent_dir(output_path)
            if os.path.exists(output_path):
                os.remove(output_path)
        except OSError as e:
            timer.add_entry(start, "fail wkhtmltoimage")
            raise RenderError(f"could not prepare render directories: {e}") from e

        log_job(job, f"  wkhtmltoimage ({job.render_options()})...")
        args = self.build_args(job, output_path)

        try:
            proc = await asyncio.create_subprocess_exec(
                self.binary,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            timer.add_entry(start, "fail wkhtmltoimage")
            self._log_failure(job, f"could not start {self.binary}: {e}")
            raise RenderError(f"could not start {self.binary}: {e}") from e

        stdout_b, stderr_b = await proc.communicate()
        stdout = stdout_b.decode("utf-8", errors="replace")
        stderr = stderr_b.decode("utf-8", errors="replace")

        if proc.returncode != 0:
            timer.add_entry(start, "fail wkhtmltoimage")
            if proc.returncode < 0:
                reason = f"killed by signal {-proc.returncode}"
            else:
                reason = f"exit code {proc.returncode}"
            self._log_failure(job, reason, stderr=stderr)
            raise RenderError(f"wkhtmltoimage failed: {reason}", returncode=proc.returncode)

        timer.add_entry(start, "complete wkhtmltoimage")

        if not os.path.exists(output_path):
            log_job(
                job,
                "  failed: wkhtmltoimage was successful - but no image file exists!\n"
                f"    stdout:\n{stdout}\n    stderr:\n{stderr}",
                short_outcome("fail render", job, "wkhtmltoimage was successful - but no image file exists!"),
                error=True,
            )
            raise RenderError("wkhtmltoimage reported success but produced no image file", returncode=0)

        for text, noise in ((stdout, _STDOUT_NOISE), (stderr, _STDERR_NOISE)):
            filtered = filter_tool_output(text, noise)
            if filtered:
                logger.info(filtered)

        return output_path

    def _log_failure(self, job: RenderJob, reason: str, stderr: str = "") -> None:
        verbose = f"  failed: {reason}\n"
        if stderr.strip():
            verbose += f"    stderr:\n{stderr}"
        log_job(job, verbose, short_outcome("fail render", job, reason), error=True)
