# core/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional


class Settings(BaseSettings):
    """
    Centralized worker configuration.
    Command-line flags override these values; these override the defaults.
    """

    # ------------------------------------------------------------
    # Project / Runtime
    # ------------------------------------------------------------
    PROJECT_NAME: str = "wkhtmltos3"
    DEBUG: bool = False

    # ------------------------------------------------------------
    # AWS Core
    # ------------------------------------------------------------
    AWS_REGION: Optional[str] = None
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_SESSION_TOKEN: Optional[str] = None

    # ------------------------------------------------------------
    # Messaging (SQS)
    # ------------------------------------------------------------
    SQS_QUEUE_URL: Optional[str] = None
    SQS_MAX_NUMBER_OF_MESSAGES: int = Field(
        default=5,
        description="Max number of messages to retrieve and process at a time (1-10)"
    )
    SQS_WAIT_TIME_SECONDS: int = Field(
        default=10,
        description="Long polling wait; values > 0 wait for messages before giving up"
    )
    SQS_VISIBILITY_TIMEOUT: int = Field(
        default=15,
        description="Seconds before SQS makes an unprocessed message available again"
    )

    # ------------------------------------------------------------
    # Queue Worker Timing
    # ------------------------------------------------------------
    QUEUE_ERROR_BACKOFF_SECS: float = 20.0
    DRAIN_TIMEOUT_SECS: float = 20.0

    # ------------------------------------------------------------
    # External Tools
    # ------------------------------------------------------------
    WKHTMLTOIMAGE_BIN: str = "wkhtmltoimage"
    IMAGEMAGICK_CONVERT_BIN: str = "convert"

    """
    Scratch tree for rendered images; files are namespaced by S3 key
    """
    SCRATCH_DIR: str = "/tmp"
    RENDER_CACHE_DIR: str = "/tmp/wkhtmltoimage_cache"

    # ------------------------------------------------------------
    # Redundant Rendering
    # ------------------------------------------------------------
    REDUNDANT_MAX_ATTEMPTS: int = Field(
        default=5,
        description="Total renders (2 initial + extras) before giving up on agreement"
    )

    # ------------------------------------------------------------
    # Duplicate Message Suppression
    # ------------------------------------------------------------
    DEDUPE_MAX_ENTRIES: int = Field(
        default=500,
        description="LRU capacity of the dedupe cache (0 disables dedupe)"
    )
    DEDUPE_MAX_AGE_SECS: float = Field(
        default=300.0,
        description="Seconds a job fingerprint is remembered (0 disables dedupe)"
    )

    # ------------------------------------------------------------
    # Load Thresholds
    # ------------------------------------------------------------
    LOAD_MAX_MEMORY_FRACTION: float = 0.5
    LOAD_MAX_LOAD_AVERAGE: float = 0.5

    # ------------------------------------------------------------
    # S3 Storage
    # ------------------------------------------------------------
    S3_ACL: str = "public-read"
    DEFAULT_FORMAT: str = "jpg"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
