"""Tests for core data models."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from image_derivatives.core.exceptions import ConfigurationError, InvalidNotification
from image_derivatives.core.models import (
    DerivedAsset,
    InvocationResult,
    ObjectCreatedNotification,
    PipelineConfig,
    ResizeRequest,
    VersionSpec,
)


def s3_record(bucket="test-uploads", key="uploads/photo_001.jpg"):
    return {
        "eventName": "ObjectCreated:Put",
        "s3": {"bucket": {"name": bucket}, "object": {"key": key, "size": 1024}},
    }


class TestVersionSpec:
    """Tests for VersionSpec."""

    def test_height_is_optional(self):
        spec = VersionSpec(name="web", width=225)
        assert spec.height is None

    def test_is_frozen(self):
        spec = VersionSpec(name="thumb", width=100, height=100)
        with pytest.raises(ValidationError):
            spec.width = 50

    def test_name_with_surrounding_whitespace_rejected(self):
        with pytest.raises(ValidationError):
            VersionSpec(name=" web", width=10)


class TestObjectCreatedNotification:
    """Tests for S3 notification parsing."""

    def test_from_record(self):
        notification = ObjectCreatedNotification.from_record(s3_record())

        assert notification.bucket == "test-uploads"
        assert notification.key == "uploads/photo_001.jpg"

    def test_key_is_url_decoded(self):
        notification = ObjectCreatedNotification.from_record(
            s3_record(key="uploads/my+holiday/caf%C3%A9_001.jpg")
        )

        assert notification.key == "uploads/my holiday/café_001.jpg"

    def test_from_event_keeps_record_order(self):
        event = {"Records": [s3_record(key="a_1.jpg"), s3_record(key="b_2.jpg")]}

        notifications = ObjectCreatedNotification.from_event(event)

        assert [n.key for n in notifications] == ["a_1.jpg", "b_2.jpg"]

    @pytest.mark.parametrize("event", [{}, {"Records": []}, None, []])
    def test_event_without_records(self, event):
        with pytest.raises(InvalidNotification):
            ObjectCreatedNotification.from_event(event)

    @pytest.mark.parametrize(
        "record",
        [
            {},
            {"s3": {"bucket": {"name": "b"}}},
            {"s3": {"object": {"key": "k.jpg"}}},
            {"s3": None},
        ],
    )
    def test_malformed_record(self, record):
        with pytest.raises(InvalidNotification):
            ObjectCreatedNotification.from_record(record)


class TestResizeRequest:
    """Tests for ResizeRequest."""

    def test_defaults(self):
        request = ResizeRequest(src_path="/tmp/a.jpg", dst_path="/tmp/b.jpg", width=100, quality=0.9)

        assert request.format == "JPEG"
        assert request.progressive is True
        assert request.strip_profiles == ("icc", "xmp")
        assert request.height is None

    @pytest.mark.parametrize("quality", [0.0, -0.5, 1.01])
    def test_quality_range(self, quality):
        with pytest.raises(ValidationError):
            ResizeRequest(src_path="a", dst_path="b", width=10, quality=quality)


class TestResults:
    """Tests for DerivedAsset and InvocationResult."""

    def test_derived_asset(self):
        asset = DerivedAsset(version="web", local_path="/tmp/web_001.jpg", dest_key="a/web_001.jpg", quality=1.0)
        assert asset.dest_key == "a/web_001.jpg"

    def test_invocation_result_defaults(self):
        result = InvocationResult(bucket="b", source_key="k.jpg")

        assert result.dest_keys == []
        assert result.skipped is False
        assert result.model_dump()["source_key"] == "k.jpg"


class TestPipelineConfig:
    """Tests for PipelineConfig."""

    def test_defaults(self):
        config = PipelineConfig()

        assert config.acl == "public-read"
        assert config.cache_control == "max-age=31536000"
        assert config.expires_after_days == 7
        assert config.upload_attempts == 3
        assert config.dest_bucket is None
        assert config.ignore_derived_keys is False

    def test_from_env(self, tmp_path):
        env = {
            "DERIVATIVES_TMP_DIR": str(tmp_path),
            "DERIVATIVES_DEST_BUCKET": "cdn-bucket",
            "DERIVATIVES_EXPIRES_DAYS": "14",
            "DERIVATIVES_MAX_WORKERS": "4",
            "DERIVATIVES_IGNORE_DERIVED": "true",
        }
        with patch.dict(os.environ, env):
            config = PipelineConfig.from_env()

        assert config.tmp_dir == str(tmp_path)
        assert config.dest_bucket == "cdn-bucket"
        assert config.expires_after_days == 14
        assert config.max_workers == 4
        assert config.ignore_derived_keys is True

    def test_overrides_win_over_env(self):
        with patch.dict(os.environ, {"DERIVATIVES_DEST_BUCKET": "from-env"}):
            config = PipelineConfig.from_env(dest_bucket="from-cli", catalog_path=None)

        assert config.dest_bucket == "from-cli"
        assert config.catalog_path is None

    def test_invalid_env_value(self):
        with patch.dict(os.environ, {"DERIVATIVES_EXPIRES_DAYS": "soon"}):
            with pytest.raises(ConfigurationError):
                PipelineConfig.from_env()
