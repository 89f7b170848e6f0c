"""Factory classes for creating configured service instances."""

import logging
from typing import Any, Optional

import boto3
from botocore.config import Config

from .catalog import VersionCatalog, load_catalog
from .engine import PillowImageEngine
from .ingest import IngestHandler
from .models import PipelineConfig
from .observability import MetricsCollector, StructuredLogger
from .protocols import ImageEngineProtocol, LoggerProtocol, S3ClientProtocol


class LoggerFactory:
    """Factory for creating logger instances."""

    @staticmethod
    def create_logger(name: str, level: int = logging.INFO) -> LoggerProtocol:
        """Create a configured structured logger."""
        return StructuredLogger(name, level)


class S3ClientFactory:
    """Factory for creating S3 client instances."""

    @staticmethod
    def create_s3_client(**kwargs: Any) -> S3ClientProtocol:
        """Create S3 client with optional configuration."""
        kwargs.setdefault(
            "config",
            Config(retries={"max_attempts": 3, "mode": "standard"}, max_pool_connections=16),
        )
        session = boto3.Session()
        return session.client("s3", **kwargs)  # type: ignore


class PipelineFactory:
    """Factory for creating the complete ingest pipeline."""

    @staticmethod
    def create_handler(
        s3_client: Optional[S3ClientProtocol] = None,
        engine: Optional[ImageEngineProtocol] = None,
        catalog: Optional[VersionCatalog] = None,
        config: Optional[PipelineConfig] = None,
        logger: Optional[LoggerProtocol] = None,
        metrics_collector: Optional[MetricsCollector] = None,
    ) -> IngestHandler:
        """Create a fully configured ingest handler."""

        if config is None:
            config = PipelineConfig.from_env()

        if logger is None:
            level = logging.DEBUG if config.debug else logging.INFO
            logger = LoggerFactory.create_logger("image_derivatives.pipeline", level)

        if catalog is None:
            catalog = load_catalog(config.catalog_path)

        if s3_client is None:
            s3_client = S3ClientFactory.create_s3_client()

        if engine is None:
            engine = PillowImageEngine()

        if metrics_collector is None:
            metrics_collector = MetricsCollector()

        return IngestHandler(
            s3_client=s3_client,
            engine=engine,
            catalog=catalog,
            logger=logger,
            config=config,
            metrics_collector=metrics_collector,
        )
