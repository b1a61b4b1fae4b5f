# core/exceptions.py
from typing import Optional


class Wkhtmltos3Error(Exception):
    """Base exception for all wkhtmltos3 errors."""

    def __init__(self, message: str):
        super().__init__(message)


class JobError(Wkhtmltos3Error):
    """Failure of a single render-and-upload job. Never fatal to the worker."""


class JobValidationError(JobError):
    """Raised when a job lacks url, bucket or key - before any process is spawned."""

    def __init__(self, errors: list):
        super().__init__("; ".join(errors))
        self.errors = errors


class RenderError(JobError):
    """wkhtmltoimage failed or left no output file."""

    def __init__(self, message: str, *, returncode: Optional[int] = None):
        super().__init__(message)
        self.returncode = returncode


class RedundancyExhaustedError(RenderError):
    """No two renders agreed within the attempt limit."""

    def __init__(self, attempts: int):
        super().__init__(f"no two renders matched after {attempts} attempts")
        self.attempts = attempts


class ConvertError(JobError):
    """imagemagick convert failed; the input image is left in place."""


class UploadError(JobError):
    """S3 rejected the object or could not be reached."""


class QueueTransportError(Wkhtmltos3Error):
    """SQS receive or delete call failed."""


class MessageParseError(Wkhtmltos3Error):
    """A queue message body is not a valid job override object."""

    def __init__(self, message: str, *, message_id: Optional[str] = None):
        super().__init__(message)
        self.message_id = message_id
