"""Service implementations for the derivative-generation pipeline."""

import os
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple, Type

from .catalog import VersionCatalog
from .error_handling import StageErrorCollector, retry_s3_operation, with_error_handling
from .exceptions import (
    DerivativesPipelineError,
    CleanupWarning,
    S3Error,
    SourceFetchError,
    StageError,
    TranscodeError,
    UploadError,
)
from .image_utils import OUTPUT_CONTENT_TYPE, calculate_dest_key, check_content_type
from .models import (
    DerivedAsset,
    ObjectKeyParts,
    PipelineConfig,
    ResizeRequest,
    SourceImage,
    VersionSpec,
)
from .observability import LogContext, MetricsCollector, track_operation
from .protocols import ImageEngineProtocol, LoggerProtocol, S3ClientProtocol
from ..processors import TaskOutcome, fan_out


@retry_s3_operation()
@with_error_handling
def _download_s3_object(s3_client: S3ClientProtocol, bucket: str, key: str) -> Tuple[bytes, str]:
    response = s3_client.get_object(Bucket=bucket, Key=key)
    return response["Body"].read(), response.get("ContentType", "")


class SourceFetcher:
    """Downloads the upload, checks its media type and inspects it."""

    def __init__(
        self,
        s3_client: S3ClientProtocol,
        engine: ImageEngineProtocol,
        logger: LoggerProtocol,
    ):
        self._s3_client = s3_client
        self._engine = engine
        self._logger = logger

    def fetch(
        self,
        bucket: str,
        key: str,
        parts: ObjectKeyParts,
        work_dir: str,
        context: Optional[LogContext] = None,
    ) -> SourceImage:
        """
        Fetch ``s3://bucket/key`` into ``work_dir`` and identify it.

        Raises:
            SourceFetchError: If the object is absent or inaccessible
            UnsupportedMediaType: If the content type is not JPEG, PNG or GIF
            IdentifyError: If the bytes are not a readable image
        """
        context = (context or LogContext()).with_operation("fetch_source")
        self._logger.debug("Downloading source", context)

        try:
            body, content_type = _download_s3_object(self._s3_client, bucket, key)
        except S3Error as e:
            raise SourceFetchError(f"Cannot fetch s3://{bucket}/{key}: {e}") from e

        self._logger.info("Fetched source", context, content_type=content_type, size=len(body))
        content_type = check_content_type(content_type)

        local_path = os.path.join(work_dir, f"source.{parts.extension}")
        try:
            with open(local_path, "wb") as handle:
                handle.write(body)
        except OSError as e:
            raise SourceFetchError(f"Cannot spool s3://{bucket}/{key} to {local_path}: {e}") from e

        metadata = self._engine.identify(local_path)
        self._logger.debug("Identified source", context.with_operation("identify"), **metadata)

        return SourceImage(
            bucket=bucket,
            key=key,
            parts=parts,
            content_type=content_type,
            local_path=local_path,
            work_dir=work_dir,
            quality=metadata.get("quality"),
            width=metadata.get("width", 0),
            height=metadata.get("height", 0),
            format=metadata.get("format", "unknown"),
        )


class Transcoder:
    """Produces one local JPEG rendition per (source, version)."""

    def __init__(self, engine: ImageEngineProtocol, logger: LoggerProtocol):
        self._engine = engine
        self._logger = logger

    def transcode(
        self,
        source: SourceImage,
        spec: VersionSpec,
        quality: float,
        context: Optional[LogContext] = None,
    ) -> DerivedAsset:
        """
        Resize the source to ``spec`` and re-encode it as progressive JPEG.

        Raises:
            TranscodeError: If the engine fails for this version
        """
        dst_path = os.path.join(source.work_dir, f"{spec.name}_{source.parts.suffix}.jpg")
        request = ResizeRequest(
            src_path=source.local_path,
            dst_path=dst_path,
            width=spec.width,
            height=spec.height,
            quality=quality,
            format="JPEG",
            progressive=True,
            strip_profiles=("icc", "xmp"),
        )

        try:
            self._engine.resize(request)
        except Exception as e:
            raise TranscodeError(spec.name, e) from e

        asset = DerivedAsset(
            version=spec.name,
            local_path=dst_path,
            dest_key=calculate_dest_key(source.parts, spec.name),
            quality=quality,
        )
        if context is not None:
            self._logger.debug(
                "Transcoded version",
                context.with_operation("transcode"),
                version=spec.name,
                dest_key=asset.dest_key,
            )
        return asset


class PersistenceGateway:
    """Publishes derived assets to S3 and always removes the local file."""

    def __init__(
        self,
        s3_client: S3ClientProtocol,
        logger: LoggerProtocol,
        config: Optional[PipelineConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._s3_client = s3_client
        self._logger = logger
        self._config = config or PipelineConfig()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._put = retry_s3_operation(max_attempts=self._config.upload_attempts)(
            self._put_object
        )

    @with_error_handling
    def _put_object(self, bucket: str, key: str, body: bytes) -> None:
        self._s3_client.put_object(
            Bucket=bucket,
            Key=key,
            Body=body,
            ACL=self._config.acl,
            CacheControl=self._config.cache_control,
            Expires=self._clock() + timedelta(days=self._config.expires_after_days),
            ContentType=OUTPUT_CONTENT_TYPE,
        )

    def persist(
        self, asset: DerivedAsset, bucket: str, context: Optional[LogContext] = None
    ) -> str:
        """
        Upload one asset, then delete its local artifact whatever happened.

        Returns:
            The destination key

        Raises:
            UploadError: If the artifact cannot be read or the upload fails
        """
        context = (context or LogContext()).with_operation("persist").with_metadata(
            version=asset.version, dest_key=asset.dest_key
        )
        try:
            with open(asset.local_path, "rb") as handle:
                body = handle.read()
            self._put(bucket, asset.dest_key, body)
            self._logger.info("Uploaded version", context)
        except (S3Error, OSError) as e:
            raise UploadError(asset.version, e) from e
        finally:
            self._remove_artifact(asset, context)
        return asset.dest_key

    def _remove_artifact(self, asset: DerivedAsset, context: LogContext) -> None:
        try:
            os.remove(asset.local_path)
        except FileNotFoundError:
            self._logger.debug("Artifact already removed", context)
        except OSError as e:
            warning = CleanupWarning(f"Could not delete {asset.local_path}: {e}")
            self._logger.warning(str(warning), context)


def _tag_error(
    error: BaseException,
    version: str,
    error_cls: Type[DerivativesPipelineError],
) -> DerivativesPipelineError:
    if isinstance(error, error_cls):
        return error
    return error_cls(version, error)  # type: ignore[call-arg]


class DerivativesOrchestrator:
    """Runs the transcode stage, then the persist stage, each as a join-all fan-out."""

    def __init__(
        self,
        catalog: VersionCatalog,
        transcoder: Transcoder,
        gateway: PersistenceGateway,
        logger: LoggerProtocol,
        max_workers: Optional[int] = None,
        metrics_collector: Optional[MetricsCollector] = None,
    ):
        self._catalog = catalog
        self._transcoder = transcoder
        self._gateway = gateway
        self._logger = logger
        self._max_workers = max_workers or len(catalog)
        self._metrics_collector = metrics_collector

    def run(
        self,
        source: SourceImage,
        quality: float,
        bucket: str,
        context: Optional[LogContext] = None,
    ) -> List[DerivedAsset]:
        """
        Produce and publish every catalog version of ``source``.

        Raises:
            StageError: "transcode" when any version failed to render (nothing
                is uploaded), "persist" when any upload failed
        """
        context = context or LogContext()
        assets = self.transcode_all(source, quality, context)
        self.persist_all(assets, bucket, context)
        return assets

    def transcode_all(
        self, source: SourceImage, quality: float, context: LogContext
    ) -> List[DerivedAsset]:
        def task(spec: VersionSpec) -> DerivedAsset:
            with track_operation("transcode", self._metrics_collector, version=spec.name):
                return self._transcoder.transcode(source, spec, quality, context)

        outcomes = fan_out(task, list(self._catalog.versions), self._max_workers)
        errors = self._collect_errors(
            outcomes, "transcode", TranscodeError, lambda spec: spec.name
        )
        if errors:
            self._discard([o.result for o in outcomes if o.success], context)
            raise StageError("transcode", errors)

        return [o.result for o in outcomes]  # type: ignore[misc]

    def persist_all(
        self, assets: List[DerivedAsset], bucket: str, context: LogContext
    ) -> List[str]:
        def task(asset: DerivedAsset) -> str:
            with track_operation("persist", self._metrics_collector, version=asset.version):
                return self._gateway.persist(asset, bucket, context)

        outcomes = fan_out(task, assets, self._max_workers)
        errors = self._collect_errors(
            outcomes, "persist", UploadError, lambda asset: asset.version
        )
        if errors:
            raise StageError("persist", errors)

        return [o.result for o in outcomes]  # type: ignore[misc]

    def _collect_errors(
        self,
        outcomes: List[TaskOutcome],
        stage: str,
        error_cls: Type[DerivativesPipelineError],
        version_of: Callable,
    ) -> List[DerivativesPipelineError]:
        with StageErrorCollector(operation_name=f"{stage} stage") as collector:
            for outcome in outcomes:
                if outcome.success:
                    continue
                version = version_of(outcome.item)
                collector.add_error(
                    _tag_error(outcome.error, version, error_cls), item_identifier=version
                )
        return collector.exceptions

    def _discard(self, assets: List[Optional[DerivedAsset]], context: LogContext) -> None:
        for asset in assets:
            if asset is None:
                continue
            try:
                os.remove(asset.local_path)
                self._logger.debug(
                    "Discarded unpublished artifact",
                    context.with_operation("discard"),
                    version=asset.version,
                )
            except FileNotFoundError:
                continue
            except OSError as e:
                self._logger.warning(
                    str(CleanupWarning(f"Could not delete {asset.local_path}: {e}")),
                    context.with_operation("discard"),
                )
