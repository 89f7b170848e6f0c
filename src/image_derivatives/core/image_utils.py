"""Key and content-type helpers for the image derivatives pipeline."""

from typing import Optional

from .exceptions import InvalidObjectKey, UnsupportedMediaType
from .models import ObjectKeyParts

ACCEPTED_CONTENT_TYPES = {
    "image/jpeg": "jpeg",
    "image/png": "png",
    "image/gif": "gif",
}

OUTPUT_CONTENT_TYPE = "image/jpeg"


def split_object_key(key: str) -> ObjectKeyParts:
    """
    Split an S3 object key into base path, file name and extension.

    Args:
        key: Decoded object key, e.g. "uploads/2024/photo_001.jpg"

    Returns:
        ObjectKeyParts(base_path="uploads/2024", file_name="photo_001", extension="jpg")

    Raises:
        InvalidObjectKey: If the key has no file name or no extension
    """
    base_path, _, basename = key.rpartition("/")
    file_name, dot, extension = basename.rpartition(".")

    if not basename:
        raise InvalidObjectKey(f"Object key {key!r} does not name a file")
    if not dot or not file_name or not extension:
        raise InvalidObjectKey(f"Object key {key!r} has no file extension")

    return ObjectKeyParts(base_path=base_path, file_name=file_name, extension=extension)


def derivative_file_name(parts: ObjectKeyParts, version_name: str) -> str:
    """File name of one version: ``{version}_{suffix}.{extension}``."""
    return f"{version_name}_{parts.suffix}.{parts.extension}"


def calculate_dest_key(parts: ObjectKeyParts, version_name: str) -> str:
    """
    Calculate the destination S3 key of one version.

    Args:
        parts: Decomposed source key
        version_name: Catalog entry name

    Returns:
        "{base_path}/{version}_{suffix}.{extension}", without a leading slash
        when the source sits at the bucket root
    """
    file_name = derivative_file_name(parts, version_name)
    if parts.base_path:
        return f"{parts.base_path}/{file_name}"
    return file_name


def normalize_content_type(content_type: Optional[str]) -> str:
    """Lower-case media type with parameters such as ``; charset=`` removed."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def check_content_type(content_type: Optional[str]) -> str:
    """
    Return the normalized content type if it is an accepted image type.

    Raises:
        UnsupportedMediaType: For anything outside JPEG, PNG and GIF
    """
    normalized = normalize_content_type(content_type)
    if normalized not in ACCEPTED_CONTENT_TYPES:
        raise UnsupportedMediaType(content_type)
    return normalized
