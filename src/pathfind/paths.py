"""Storage path construction for catalog lanes."""
from __future__ import annotations

from pathlib import Path

from .catalog import Catalog, LaneRecord


def build_lane_path(catalog: Catalog, record: LaneRecord, root: str | Path, template: str) -> Path:
    """Return ``root/<hierarchy fragment>`` for ``record``.

    No file system access happens here; ``CatalogError`` from the catalog
    propagates unchanged.
    """

    fragment = catalog.hierarchy_fragment(record, template)
    return Path(root) / fragment.strip("/")


__all__ = ["build_lane_path"]
