"""Core utilities and shared components for the image derivatives pipeline."""

from .catalog import VersionCatalog, build_catalog, load_catalog
from .exceptions import (
    ConfigurationError,
    DerivativesPipelineError,
    IdentifyError,
    InvalidMetadata,
    InvalidNotification,
    InvalidObjectKey,
    S3Error,
    SourceFetchError,
    StageError,
    TranscodeError,
    UnsupportedMediaType,
    UploadError,
)
from .error_handling import retry_s3_operation, with_error_handling
from .image_utils import calculate_dest_key, check_content_type, split_object_key
from .logging_config import get_logger, setup_logger
from .models import (
    DerivedAsset,
    InvocationResult,
    ObjectCreatedNotification,
    ObjectKeyParts,
    PipelineConfig,
    SourceImage,
    VersionSpec,
)
from .quality import estimate_quality

__all__ = [
    "VersionCatalog",
    "VersionSpec",
    "ObjectKeyParts",
    "SourceImage",
    "DerivedAsset",
    "InvocationResult",
    "ObjectCreatedNotification",
    "PipelineConfig",
    "build_catalog",
    "load_catalog",
    "calculate_dest_key",
    "check_content_type",
    "split_object_key",
    "estimate_quality",
    "setup_logger",
    "get_logger",
    "with_error_handling",
    "retry_s3_operation",
    "DerivativesPipelineError",
    "ConfigurationError",
    "InvalidNotification",
    "InvalidObjectKey",
    "S3Error",
    "SourceFetchError",
    "UnsupportedMediaType",
    "IdentifyError",
    "InvalidMetadata",
    "TranscodeError",
    "UploadError",
    "StageError",
]
