# schemas/job_models.py
import json
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from wkhtmltos3.core.exceptions import JobValidationError


def flatten_tool_options(options: Union[List[Any], Dict[str, Any], None]) -> List[str]:
    """
    Convert pass-through tool options into argv strings.

    A list is kept in order. A dict is flattened to `--name value` pairs:
    `true` yields a bare flag, `false`/`null` drop the option.
    """
    if not options:
        return []
    if isinstance(options, dict):
        argv: List[str] = []
        for name, value in options.items():
            flag = name if name.startswith("-") else f"--{name}"
            if value is None or value is False:
                continue
            argv.append(flag)
            if value is not True:
                argv.append(str(value))
        return argv
    return [str(option) for option in options]


class RenderJob(BaseModel):
    """
    Fully-resolved parameters for one render-and-upload operation.
    Immutable once built; queue messages produce new jobs via `merge()`.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: Optional[str] = None
    bucket: Optional[str] = None
    key: Optional[str] = None
    format: Optional[str] = Field(None, description="Image format for wkhtmltoimage (default jpg)")
    width: Optional[int] = None
    height: Optional[int] = None
    cache_control: Optional[str] = Field(None, alias="cacheControl")
    expires_days: Optional[float] = Field(None, alias="expiresDays")
    acl: Optional[str] = None
    trim: bool = False
    redundant: bool = False
    wkhtmltoimage: Union[List[Any], Dict[str, Any]] = Field(default_factory=list)
    imagemagick: List[Any] = Field(default_factory=list)
    verbose: bool = False
    profile: bool = False

    def validation_errors(self) -> List[str]:
        errors = []
        if not self.url:
            errors.append("--url=URL is required")
        if not self.bucket:
            errors.append("--bucket=BUCKET is required")
        if not self.key:
            errors.append("--key=KEY is required")
        return errors

    def validate_complete(self) -> "RenderJob":
        """Raise JobValidationError unless url, bucket and key are all present."""
        errors = self.validation_errors()
        if errors:
            raise JobValidationError(errors)
        return self

    def render_options(self) -> List[str]:
        """
        wkhtmltoimage options: explicit width/height/format first, then the
        raw pass-through options. Later options win inside wkhtmltoimage.
        """
        options: List[str] = []
        if self.width:
            options += ["--width", str(self.width)]
        if self.height:
            options += ["--height", str(self.height)]
        if self.format:
            options += ["--format", self.format]
        return options + flatten_tool_options(self.wkhtmltoimage)

    def convert_options(self) -> List[str]:
        """imagemagick options with -trim always in front when requested."""
        options = flatten_tool_options(self.imagemagick)
        if self.trim:
            options = ["-trim"] + options
        return options

    @property
    def needs_post_processing(self) -> bool:
        return bool(self.convert_options())

    def dedupe_key(self) -> str:
        """Canonical serialization used to recognise identical jobs."""
        return json.dumps(self.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))

    def describe(self) -> str:
        return f"{self.url} => s3:{self.bucket}:{self.key}"

    def merge(self, overrides: "JobOverrides") -> "RenderJob":
        """Return a new job with every field present in `overrides` replaced."""
        return self.model_copy(update=overrides.model_dump(exclude_unset=True))


class JobOverrides(BaseModel):
    """
    Partial job carried by a queue message body.
    Unknown keys are ignored; present keys replace the base value outright.
    """
    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "url": "http://example.com",
                "key": "screenshots/example.jpg",
                "trim": True,
                "imagemagick": ["-colorspace", "Gray"],
                "cacheControl": "max-age=3600"
            }
        },
    )

    url: Optional[str] = None
    bucket: Optional[str] = None
    key: Optional[str] = None
    format: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    cache_control: Optional[str] = Field(None, alias="cacheControl")
    expires_days: Optional[float] = Field(None, alias="expiresDays")
    trim: Optional[bool] = None
    redundant: Optional[bool] = None
    wkhtmltoimage: Optional[Union[List[Any], Dict[str, Any]]] = None
    imagemagick: Optional[List[Any]] = None
