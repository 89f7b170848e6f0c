"""Re-encode quality policy and source quality detection."""

import math
from numbers import Real
from typing import Any, List, Sequence

from .exceptions import InvalidMetadata

# Sources at or below this quality already lost enough detail that the
# derivatives are re-encoded at full quality.
QUALITY_THRESHOLD = 0.75
MAX_QUALITY = 1.0

# IJG reference luminance table (Annex K of the JPEG standard), natural order.
STD_LUMINANCE_TABLE = (
    16, 11, 10, 16, 24, 40, 51, 61,
    12, 12, 14, 19, 26, 58, 60, 55,
    14, 13, 16, 24, 40, 57, 69, 56,
    14, 17, 22, 29, 51, 87, 80, 62,
    18, 22, 37, 56, 68, 109, 103, 77,
    24, 35, 55, 64, 81, 104, 113, 92,
    49, 64, 78, 87, 103, 121, 120, 101,
    72, 92, 95, 98, 112, 100, 103, 99,
)


def _coerce_quality(source_quality: Any) -> float:
    if source_quality is None or isinstance(source_quality, bool):
        raise InvalidMetadata(f"Source quality is missing or not numeric: {source_quality!r}")
    if isinstance(source_quality, Real):
        value = float(source_quality)
    elif isinstance(source_quality, str):
        try:
            value = float(source_quality.strip())
        except ValueError as exc:
            raise InvalidMetadata(
                f"Source quality is not numeric: {source_quality!r}"
            ) from exc
    else:
        raise InvalidMetadata(f"Source quality is not numeric: {source_quality!r}")

    if math.isnan(value) or math.isinf(value):
        raise InvalidMetadata(f"Source quality is not a finite number: {source_quality!r}")
    if not 0.0 <= value <= 1.0:
        raise InvalidMetadata(f"Source quality {value} is outside [0, 1]")
    return value


def estimate_quality(source_quality: Any) -> float:
    """
    Derive the re-encode quality for all versions from the source quality.

    Args:
        source_quality: Compression quality of the source, normalized to 0..1

    Returns:
        1.0 for sources at or below 0.75, otherwise 0.75 + (1.0 - source_quality)

    Raises:
        InvalidMetadata: If the value is missing, not numeric or out of range
    """
    value = _coerce_quality(source_quality)
    if value <= QUALITY_THRESHOLD:
        return MAX_QUALITY
    return QUALITY_THRESHOLD + (MAX_QUALITY - value)


def scaled_table(quality: int) -> List[int]:
    """Luminance table libjpeg writes for ``quality`` (baseline, 1..100)."""
    if quality < 50:
        scale = 5000 // quality
    else:
        scale = 200 - quality * 2
    return [min(max((q * scale + 50) // 100, 1), 255) for q in STD_LUMINANCE_TABLE]


def quality_from_table(table: Sequence[int]) -> float:
    """
    Estimate the libjpeg quality setting that produced a luminance table.

    The table is matched against every table libjpeg can write; the result
    is exact for encoders using the IJG tables and the nearest fit otherwise.
    Entry order does not matter beyond both tables using the same one.

    Returns:
        Estimated quality normalized to 0..1
    """
    if len(table) != 64:
        raise InvalidMetadata(f"Quantization table has {len(table)} entries, expected 64")

    best_quality = 1
    best_distance = None
    for candidate in range(1, 101):
        reference = scaled_table(candidate)
        distance = sum(abs(a - b) for a, b in zip(sorted(table), sorted(reference)))
        if best_distance is None or distance < best_distance:
            best_quality, best_distance = candidate, distance
    return best_quality / 100.0


def detect_jpeg_quality(image: Any) -> float:
    """
    Quality (0..1) of an opened Pillow JPEG, from its luminance table.

    Raises:
        InvalidMetadata: If the image carries no luminance quantization table
    """
    tables = getattr(image, "quantization", None) or {}
    if 0 not in tables:
        raise InvalidMetadata("JPEG has no luminance quantization table")
    return quality_from_table(list(tables[0]))
