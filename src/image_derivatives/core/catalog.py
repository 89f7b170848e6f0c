"""The fixed table of versions every upload is rendered into."""

import json
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .exceptions import ConfigurationError
from .logging_config import get_logger
from .models import VersionSpec

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parent.parent / "versions.json"


class VersionCatalog(BaseModel):
    """Validated, read-only, ordered set of versions."""

    model_config = ConfigDict(frozen=True)

    versions: Tuple[VersionSpec, ...]

    @field_validator("versions")
    @classmethod
    def _non_empty_and_unique(
        cls, versions: Tuple[VersionSpec, ...]
    ) -> Tuple[VersionSpec, ...]:
        if not versions:
            raise ValueError("catalog must define at least one version")
        seen = set()
        for spec in versions:
            if spec.name in seen:
                raise ValueError(f"duplicate version name: {spec.name}")
            seen.add(spec.name)
        return versions

    def __len__(self) -> int:
        return len(self.versions)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(spec.name for spec in self.versions)

    def is_derived_name(self, file_name: str) -> bool:
        """
        True when ``file_name`` is exactly a derivative name, ``{version}_{suffix}``.

        ``web_001`` matches; ``web_banner_7`` does not, because its part
        before the last ``_`` is not a version name.
        """
        head, separator, _ = file_name.rpartition("_")
        return bool(separator) and head in self.names


def build_catalog(entries: Sequence[Union[Dict[str, Any], VersionSpec]]) -> VersionCatalog:
    """Validate raw entries into a catalog, raising ``ConfigurationError``."""
    try:
        return VersionCatalog(versions=tuple(entries))
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid version catalog: {exc}") from exc


def load_catalog(path: Optional[Union[str, Path]] = None) -> VersionCatalog:
    """
    Load and validate the version catalog from a JSON file.

    Args:
        path: JSON file with a top-level "versions" list. Defaults to the
            catalog packaged with the pipeline.

    Returns:
        The validated catalog

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid
    """
    catalog_path = Path(path) if path else DEFAULT_CATALOG_PATH
    logger = get_logger(__name__)

    try:
        with catalog_path.open("r", encoding="utf-8") as handle:
            raw = json.load(handle)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(
            f"Cannot read version catalog {catalog_path}: {exc}"
        ) from exc

    if not isinstance(raw, dict) or not isinstance(raw.get("versions"), list):
        raise ConfigurationError(
            f"Version catalog {catalog_path} must hold a 'versions' list"
        )

    catalog = build_catalog(raw["versions"])
    logger.debug(f"Loaded {len(catalog)} versions from {catalog_path}")
    return catalog
