"""Protocol definitions for dependency injection and testability."""

from typing import Any, Dict, Protocol

from .models import ResizeRequest


class S3ClientProtocol(Protocol):
    """Protocol for S3 client operations."""

    def get_object(self, Bucket: str, Key: str) -> Dict[str, Any]:
        """Get object from S3."""
        ...

    def put_object(
        self, Bucket: str, Key: str, Body: bytes, ContentType: str, **kwargs: Any
    ) -> Dict[str, Any]:
        """Put object to S3."""
        ...


class ImageEngineProtocol(Protocol):
    """Protocol for the decode / inspect / resize-and-reencode capability."""

    def identify(self, path: str) -> Dict[str, Any]:
        """Inspect an image file; the result carries at least "quality"."""
        ...

    def resize(self, request: ResizeRequest) -> str:
        """Write the resized rendition and return its path."""
        ...


class LoggerProtocol(Protocol):
    """Protocol for logging operations."""

    def debug(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log debug message."""
        ...

    def info(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log info message."""
        ...

    def warning(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log warning message."""
        ...

    def error(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log error message."""
        ...
