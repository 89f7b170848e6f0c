"""Resized JPEG versions of every image uploaded to S3."""

__version__ = "0.1.0"
