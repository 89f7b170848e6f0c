"""Shared data models for the image derivatives pipeline."""

import os
import tempfile
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import unquote_plus

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator

from .exceptions import ConfigurationError, InvalidNotification


class VersionSpec(BaseModel):
    """A named target size. ``height=None`` keeps the source aspect ratio."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    width: PositiveInt
    height: Optional[PositiveInt] = None

    @field_validator("name")
    @classmethod
    def _name_is_key_safe(cls, value: str) -> str:
        if "/" in value or value.strip() != value:
            raise ValueError(f"version name {value!r} cannot be used in an object key")
        return value


class ObjectKeyParts(BaseModel):
    """An object key split into base path, file name and extension."""

    model_config = ConfigDict(frozen=True)

    base_path: str
    file_name: str
    extension: str

    @property
    def suffix(self) -> str:
        """Portion of the file name after the last underscore."""
        return self.file_name.rsplit("_", 1)[-1]


class SourceImage(BaseModel):
    """The fetched upload, spooled to a local file and inspected."""

    model_config = ConfigDict(frozen=True)

    bucket: str
    key: str
    parts: ObjectKeyParts
    content_type: str
    local_path: str
    work_dir: str
    quality: Optional[float] = None
    width: int = 0
    height: int = 0
    format: str = "unknown"


class DerivedAsset(BaseModel):
    """One resized rendition waiting to be published."""

    model_config = ConfigDict(frozen=True)

    version: str
    local_path: str
    dest_key: str
    quality: float


class ResizeRequest(BaseModel):
    """Arguments of one resize-and-reencode call on the image engine."""

    model_config = ConfigDict(frozen=True)

    src_path: str
    dst_path: str
    width: PositiveInt
    height: Optional[PositiveInt] = None
    quality: float = Field(gt=0.0, le=1.0)
    format: str = "JPEG"
    progressive: bool = True
    strip_profiles: Tuple[str, ...] = ("icc", "xmp")


class InvocationResult(BaseModel):
    """Outcome of one successful invocation."""

    bucket: str
    source_key: str
    quality: Optional[float] = None
    dest_keys: List[str] = Field(default_factory=list)
    duration: float = 0.0
    skipped: bool = False
    reason: str = ""


class ObjectCreatedNotification(BaseModel):
    """Bucket and decoded key of one S3 "object created" record."""

    bucket: str = Field(min_length=1)
    key: str = Field(min_length=1)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "ObjectCreatedNotification":
        try:
            s3 = record["s3"]
            bucket = s3["bucket"]["name"]
            raw_key = s3["object"]["key"]
        except (KeyError, TypeError) as exc:
            raise InvalidNotification(f"Malformed S3 record: missing {exc}") from exc
        # S3 event keys are form-encoded: '+' stands for a space
        return cls(bucket=bucket, key=unquote_plus(raw_key))

    @classmethod
    def from_event(cls, event: Dict[str, Any]) -> List["ObjectCreatedNotification"]:
        records = event.get("Records") if isinstance(event, dict) else None
        if not records:
            raise InvalidNotification("Event carries no S3 records")
        return [cls.from_record(record) for record in records]


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class PipelineConfig(BaseModel):
    """Process-wide settings, read once at start-up."""

    tmp_dir: str = Field(default_factory=tempfile.gettempdir)
    dest_bucket: Optional[str] = None
    acl: str = "public-read"
    cache_control: str = "max-age=31536000"
    expires_after_days: PositiveInt = 7
    max_workers: Optional[PositiveInt] = None
    upload_attempts: PositiveInt = 3
    ignore_derived_keys: bool = False
    catalog_path: Optional[str] = None
    debug: bool = False

    @classmethod
    def from_env(cls, **overrides: Any) -> "PipelineConfig":
        values: Dict[str, Any] = {
            "tmp_dir": os.getenv("DERIVATIVES_TMP_DIR") or tempfile.gettempdir(),
            "dest_bucket": os.getenv("DERIVATIVES_DEST_BUCKET") or None,
            "acl": os.getenv("DERIVATIVES_ACL", "public-read"),
            "cache_control": os.getenv("DERIVATIVES_CACHE_CONTROL", "max-age=31536000"),
            "expires_after_days": os.getenv("DERIVATIVES_EXPIRES_DAYS", "7"),
            "max_workers": os.getenv("DERIVATIVES_MAX_WORKERS") or None,
            "upload_attempts": os.getenv("DERIVATIVES_UPLOAD_ATTEMPTS", "3"),
            "ignore_derived_keys": _env_bool("DERIVATIVES_IGNORE_DERIVED", False),
            "catalog_path": os.getenv("DERIVATIVES_CATALOG_PATH") or None,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return cls(**values)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid pipeline configuration: {exc}") from exc

