"""Ingest handler: one S3 notification in, one published version set out."""

import shutil
import tempfile
import time
from typing import Any, Dict, List, Optional

from .catalog import VersionCatalog
from .exceptions import DerivativesPipelineError
from .image_utils import split_object_key
from .models import InvocationResult, ObjectCreatedNotification, PipelineConfig
from .observability import LogContext, MetricsCollector
from .protocols import ImageEngineProtocol, LoggerProtocol, S3ClientProtocol
from .quality import estimate_quality
from .services import (
    DerivativesOrchestrator,
    PersistenceGateway,
    SourceFetcher,
    Transcoder,
)


class IngestHandler:
    """Validates a trigger and wires fetch, quality, transcode and persist together."""

    def __init__(
        self,
        s3_client: S3ClientProtocol,
        engine: ImageEngineProtocol,
        catalog: VersionCatalog,
        logger: LoggerProtocol,
        config: Optional[PipelineConfig] = None,
        metrics_collector: Optional[MetricsCollector] = None,
    ):
        self._catalog = catalog
        self._logger = logger
        self._config = config or PipelineConfig()
        self._metrics_collector = metrics_collector
        self._fetcher = SourceFetcher(s3_client, engine, logger)
        self._orchestrator = DerivativesOrchestrator(
            catalog=catalog,
            transcoder=Transcoder(engine, logger),
            gateway=PersistenceGateway(s3_client, logger, self._config),
            logger=logger,
            max_workers=self._config.max_workers,
            metrics_collector=metrics_collector,
        )

    @property
    def catalog(self) -> VersionCatalog:
        return self._catalog

    def handle_event(self, event: Dict[str, Any]) -> List[InvocationResult]:
        """
        Process every record of an S3 notification event, in order.

        Raises:
            InvalidNotification: If the event is not an S3 notification
            DerivativesPipelineError: The first failing record's error
        """
        notifications = ObjectCreatedNotification.from_event(event)
        return [self.handle_notification(n) for n in notifications]

    def handle_notification(self, notification: ObjectCreatedNotification) -> InvocationResult:
        """
        Run one invocation for one uploaded object.

        The per-invocation working directory is removed on every path out.
        """
        start_time = time.time()
        context = LogContext(component="ingest_handler").with_metadata(
            bucket=notification.bucket, key=notification.key
        )
        self._logger.info("Received upload notification", context.with_operation("ingest"))

        parts = split_object_key(notification.key)
        dest_bucket = self._config.dest_bucket or notification.bucket
        if self._is_own_output(parts.file_name, notification.bucket, dest_bucket):
            self._logger.info("Skipping derived object", context.with_operation("ingest"))
            return InvocationResult(
                bucket=notification.bucket,
                source_key=notification.key,
                skipped=True,
                reason="object is a derived version",
            )

        work_dir = tempfile.mkdtemp(
            prefix=f"derivatives-{context.correlation_id}-", dir=self._config.tmp_dir
        )
        try:
            source = self._fetcher.fetch(
                notification.bucket, notification.key, parts, work_dir, context
            )
            quality = estimate_quality(source.quality)
            self._logger.info(
                "Quality setting",
                context.with_operation("estimate_quality"),
                source_quality=source.quality,
                quality=quality,
            )
            assets = self._orchestrator.run(source, quality, dest_bucket, context)
        except DerivativesPipelineError as e:
            self._logger.error(
                f"Invocation failed: {type(e).__name__}: {e}", context.with_operation("ingest")
            )
            raise
        finally:
            self._remove_work_dir(work_dir, context)
            self._report_metrics(context)

        result = InvocationResult(
            bucket=dest_bucket,
            source_key=notification.key,
            quality=quality,
            dest_keys=[asset.dest_key for asset in assets],
            duration=time.time() - start_time,
        )
        self._logger.info(
            "Invocation completed",
            context.with_operation("ingest"),
            versions=len(result.dest_keys),
            duration_ms=round(result.duration * 1000, 1),
        )
        return result

    def _is_own_output(self, file_name: str, source_bucket: str, dest_bucket: str) -> bool:
        # Only writes back into the watched bucket can retrigger us.
        return (
            self._config.ignore_derived_keys
            and dest_bucket == source_bucket
            and self._catalog.is_derived_name(file_name)
        )

    def _report_metrics(self, context: LogContext) -> None:
        if self._metrics_collector is None:
            return
        for stage in ("transcode", "persist"):
            summary = self._metrics_collector.get_summary(stage)
            if summary:
                self._logger.info(
                    "Stage timings",
                    context.with_operation(stage),
                    operations=summary["total_operations"],
                    failed=summary["failed_operations"],
                    avg_ms=round(summary["avg_duration"] * 1000, 1),
                    max_ms=round(summary["max_duration"] * 1000, 1),
                )
        self._metrics_collector.clear_metrics()

    def _remove_work_dir(self, work_dir: str, context: LogContext) -> None:
        try:
            shutil.rmtree(work_dir)
        except FileNotFoundError:
            return
        except OSError as e:
            self._logger.warning(
                f"Could not remove working directory {work_dir}: {e}",
                context.with_operation("cleanup"),
            )
