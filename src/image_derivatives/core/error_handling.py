# src/image_derivatives/core/error_handling.py

import functools
import logging
import time

from botocore.exceptions import BotoCoreError, ClientError
from PIL import UnidentifiedImageError

from .exceptions import IdentifyError, S3Error

RETRYABLE_S3_ERROR_CODES = (
    "SlowDown",
    "Throttling",
    "ThrottlingException",
    "RequestTimeout",
    "InternalError",
    "ServiceUnavailable",
)


def with_error_handling(func):
    """
    A decorator to wrap functions with standardized error handling.

    botocore failures become ``S3Error`` and unreadable images become
    ``IdentifyError``; the original exception is kept as ``__cause__``.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = logging.getLogger(func.__module__ + '.' + func.__name__)
        try:
            return func(*args, **kwargs)
        except Exception as e:
            logger.error(
                f"Error in '{func.__name__}': {e}",
                exc_info=True
            )
            if isinstance(e, (ClientError, BotoCoreError)):
                raise S3Error(f"S3 operation failed in {func.__name__}: {e}") from e
            if isinstance(e, UnidentifiedImageError):
                raise IdentifyError(f"Failed to identify image in {func.__name__}: {e}") from e
            raise
    return wrapper


def s3_error_code(error):
    """Return the AWS error code behind an ``S3Error``, if there is one."""
    cause = error.__cause__
    if isinstance(cause, ClientError):
        return cause.response.get('Error', {}).get('Code')
    return None


def is_retryable(error):
    if isinstance(error.__cause__, BotoCoreError):
        # connection resets, read timeouts
        return True
    return s3_error_code(error) in RETRYABLE_S3_ERROR_CODES


def retry_s3_operation(max_attempts=3, initial_delay=0.2, backoff_factor=2):
    """
    Decorator to retry S3 operations with exponential backoff.

    Only ``S3Error``s caused by throttling, server-side or transport faults
    are retried; any other error is raised on the first attempt.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger = logging.getLogger(func.__module__ + '.' + func.__name__)
            attempts = 0
            delay = initial_delay
            while True:
                try:
                    return func(*args, **kwargs)
                except S3Error as e:
                    attempts += 1
                    if not is_retryable(e):
                        logger.error(f"S3 operation '{func.__name__}' failed with non-retryable S3Error: {e}")
                        raise
                    if attempts >= max_attempts:
                        logger.error(
                            f"S3 operation '{func.__name__}' failed after {max_attempts} attempts. Error: {e}"
                        )
                        raise
                    logger.info(
                        f"S3 operation '{func.__name__}' failed. Attempt {attempts}/{max_attempts}. "
                        f"Retrying in {delay:.2f}s. Error: {e}"
                    )
                    time.sleep(delay)
                    delay *= backoff_factor
        return wrapper
    return decorator


class StageErrorCollector:
    """
    Context manager for a fan-out stage to collect and summarize per-version errors.
    """
    def __init__(self, operation_name="Stage"):
        self.operation_name = operation_name
        self.errors = []
        self.logger = logging.getLogger(self.__class__.__module__ + '.' + self.__class__.__name__)

    def __enter__(self):
        self.logger.info(f"Starting {self.operation_name}.")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.errors:
            self.logger.warning(
                f"{self.operation_name} completed with {len(self.errors)} error(s)."
            )
            for i, (item_identifier, error) in enumerate(self.errors):
                self.logger.error(
                    f"  Error {i+1}/{len(self.errors)} for item '{item_identifier}': {error}"
                )
        elif exc_type:
            self.logger.error(
                f"{self.operation_name} failed due to an unhandled exception: {exc_val}",
                exc_info=(exc_type, exc_val, exc_tb)
            )
        else:
            self.logger.info(f"{self.operation_name} completed successfully.")
        return False

    def add_error(self, error, item_identifier="Unknown item"):
        """
        Record the failure of one item of the stage.

        Args:
            error: The exception raised for the item.
            item_identifier: A string identifying the item (the version name).
        """
        self.errors.append((item_identifier, error))
        self.logger.debug(f"Error added for item '{item_identifier}' in {self.operation_name}: {error}")

    @property
    def exceptions(self):
        return [error for _, error in self.errors]
