"""AWS Lambda entry point for S3 "object created" notifications."""

from typing import Any, Dict, Optional

from .core.factories import PipelineFactory
from .core.ingest import IngestHandler
from .core.logging_config import get_logger

logger = get_logger(__name__)

# Built on the first invocation and reused while the container stays warm.
_handler: Optional[IngestHandler] = None


def init_handler(handler: Optional[IngestHandler] = None) -> IngestHandler:
    """Install ``handler`` (or a default one built from the environment)."""
    global _handler
    _handler = handler or PipelineFactory.create_handler()
    return _handler


def lambda_handler(event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
    """
    Handle one S3 notification event.

    Any failure is re-raised so the platform records the invocation as
    failed; nothing is retried from here.
    """
    handler = _handler or init_handler()
    request_id = getattr(context, "aws_request_id", None)

    try:
        results = handler.handle_event(event)
    except Exception as e:
        logger.error(f"Invocation {request_id} failed: {e}", exc_info=True)
        raise

    return {
        "status": "ok",
        "results": [result.model_dump() for result in results],
    }
