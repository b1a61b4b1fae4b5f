import logging
from typing import Optional

from wkhtmltos3.core.logger import logger
from wkhtmltos3.schemas.job_models import RenderJob


def log_job(
    job: RenderJob,
    verbose_msg: Optional[str],
    short_msg: Optional[str] = None,
    *,
    error: bool = False,
) -> None:
    """
    Log `verbose_msg` when the job is verbose, otherwise `short_msg`.
    If the message for the active mode is missing nothing is logged.
    """
    msg = verbose_msg if job.verbose else short_msg
    if msg:
        logger.log(logging.ERROR if error else logging.INFO, msg)


def short_outcome(outcome: str, job: RenderJob, detail: Optional[str] = None) -> str:
    """Single-line summary suitable for log aggregation."""
    line = f"wkhtmltos3: {outcome}: {job.describe()}"
    if detail:
        line += f" ({detail})"
    return line
