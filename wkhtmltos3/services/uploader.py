# services/uploader.py
import asyncio
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from wkhtmltos3.core.config import settings
from wkhtmltos3.core.exceptions import UploadError
from wkhtmltos3.core.logger import logger
from wkhtmltos3.schemas.job_models import RenderJob
from wkhtmltos3.utils.log_job import log_job, short_outcome
from wkhtmltos3.utils.profile_log import ProfileTimer


def content_type_for(image_format: Optional[str]) -> str:
    if not image_format or image_format in ("jpg", "jpeg"):
        return "image/jpeg"
    if image_format == "png":
        return "image/png"
    if image_format == "gif":
        return "image/gif"
    return "image/*"


class S3Uploader:
    """Uploads a finished image to S3 and removes the local copy."""

    def __init__(self, client, acl: Optional[str] = None):
        self._s3 = client
        self.acl = settings.S3_ACL if acl is None else acl

    def put_params(self, job: RenderJob, body) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "Bucket": job.bucket,
            "Key": job.key,
            "Body": body,
            "ContentType": content_type_for(job.format),
        }
        acl = self.acl if job.acl is None else job.acl
        if acl:
            params["ACL"] = acl
        if job.cache_control:
            params["CacheControl"] = job.cache_control
        if job.expires_days:
            params["Expires"] = datetime.now(timezone.utc) + timedelta(days=job.expires_days)
        return params

    async def upload(self, path: str, job: RenderJob, timer: Optional[ProfileTimer] = None) -> str:
        """
        Stream `path` to s3://bucket/key and return the s3 uri.
        The local file is left in place when the upload fails.
        """
        timer = timer or ProfileTimer(enabled=False)
        start = timer.now()
        try:
            size_kb = os.path.getsize(path) / 1000.0
        except OSError as e:
            raise UploadError(f"image to upload is missing: {e}") from e
        log_job(job, f"  uploading {size_kb}k to s3...")

        try:
            await asyncio.to_thread(self._put_file, path, job)
        except (ClientError, BotoCoreError, OSError) as e:
            timer.add_entry(start, "fail s3 upload")
            log_job(
                job,
                f"  failed: error = {e}\n",
                short_outcome("fail upload", job, f"error = {e}"),
                error=True,
            )
            raise UploadError(f"upload to s3:{job.bucket}:{job.key} failed: {e}") from e

        timer.add_entry(start, "complete s3 upload")
        try:
            os.remove(path)
        except OSError as e:
            logger.warning(f"    warning: failed to delete image: {e}")
        return f"s3://{job.bucket}/{job.key}"

    def _put_file(self, path: str, job: RenderJob) -> None:
        with open(path, "rb") as body:
            self._s3.put_object(**self.put_params(job, body))
