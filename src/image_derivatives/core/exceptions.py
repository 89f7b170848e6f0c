"""Custom exceptions for the image derivatives pipeline."""

from __future__ import annotations

from typing import List, Optional, Sequence


class DerivativesPipelineError(Exception):
    """Base exception for all image derivatives pipeline errors."""


class ConfigurationError(DerivativesPipelineError):
    """Error raised for invalid configuration options or version catalogs."""


class InvalidNotification(DerivativesPipelineError):
    """Error raised when a trigger event is not a usable S3 notification."""


class InvalidObjectKey(DerivativesPipelineError):
    """Error raised when an object key cannot be split into path, name and extension."""


class S3Error(DerivativesPipelineError):
    """Error raised for S3 transport failures."""


class SourceFetchError(DerivativesPipelineError):
    """Error raised when the source object is absent or inaccessible."""


class UnsupportedMediaType(DerivativesPipelineError):
    """Error raised when the source content type is not an accepted image type."""

    def __init__(self, content_type: Optional[str]):
        self.content_type = content_type
        super().__init__(f"Unsupported content type: {content_type!r}")


class IdentifyError(DerivativesPipelineError):
    """Error raised when the source image metadata cannot be read."""


class InvalidMetadata(DerivativesPipelineError):
    """Error raised when inspected metadata holds an unusable value."""


class ResizeError(DerivativesPipelineError):
    """Error raised by the image engine when a resize fails."""


class TranscodeError(DerivativesPipelineError):
    """Error raised when one version could not be produced."""

    def __init__(self, version: str, cause: BaseException):
        self.version = version
        self.cause = cause
        super().__init__(f"Transcode of version '{version}' failed: {cause}")


class PersistError(DerivativesPipelineError):
    """Error raised when a derived asset could not be persisted."""


class UploadError(PersistError):
    """Error raised when uploading one version to S3 fails."""

    def __init__(self, version: str, cause: BaseException):
        self.version = version
        self.cause = cause
        super().__init__(f"Upload of version '{version}' failed: {cause}")


class StageError(DerivativesPipelineError):
    """Aggregate failure of one fan-out stage.

    Raised only after every task of the stage has resolved, so ``errors``
    holds every per-version failure of the stage in catalog order.
    """

    def __init__(self, stage: str, errors: Sequence[DerivativesPipelineError]):
        self.stage = stage
        self.errors: List[DerivativesPipelineError] = list(errors)
        versions = ", ".join(getattr(e, "version", "?") for e in self.errors)
        super().__init__(
            f"{stage} stage failed for {len(self.errors)} version(s): {versions}"
        )

    @property
    def versions(self) -> List[str]:
        return [getattr(e, "version", "?") for e in self.errors]


class CleanupWarning(UserWarning):
    """Non-fatal failure to remove a local temporary artifact."""
