"""Filter catalog lanes down to the directories and files present on disk."""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Sequence

from .catalog import Catalog, LaneRecord
from .exceptions import InvalidInput
from .filetypes import FILE_EXTENSIONS
from .logging_setup import get_logger
from .paths import build_lane_path

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class MatchedPath:
    """A file or lane directory found beneath a lane's storage directory."""

    record: LaneRecord
    path: Path
    lane_directory: Path

    @property
    def lane_name(self) -> str:
        return self.lane_directory.name

    @property
    def is_lane_directory(self) -> bool:
        return self.path == self.lane_directory


class LaneFilter:
    """Resolve lanes to paths, keeping those that pass the QC and file type checks.

    ``found`` becomes true the first time any lane produces a match and stays
    true for the lifetime of the filter.
    """

    def __init__(
        self,
        catalog: Catalog,
        *,
        root: str | Path,
        hierarchy_template: str,
        file_type: str | None = None,
        file_types: Mapping[str, str] = FILE_EXTENSIONS,
        qc: str | None = None,
        subdirectories: Sequence[str] = (),
    ) -> None:
        self.catalog = catalog
        self.root = Path(root)
        self.hierarchy_template = hierarchy_template
        self.file_type = file_type
        self.qc = qc
        self.subdirectories = tuple(sub.strip("/") for sub in subdirectories if sub.strip("/"))
        self.found = False

        self._pattern: re.Pattern[str] | None = None
        if file_type:
            try:
                self._pattern = re.compile(file_types[file_type])
            except KeyError:
                raise InvalidInput(f"Unknown file type '{file_type}'") from None

    def _passes_qc(self, record: LaneRecord) -> bool:
        if not self.qc:
            return True
        return self.catalog.qc_status(record) == self.qc

    def _search_directories(self, lane_directory: Path) -> list[Path]:
        if self.subdirectories:
            return [lane_directory / sub for sub in self.subdirectories]
        return [lane_directory]

    def _matching_entries(self, directory: Path) -> list[Path]:
        assert self._pattern is not None
        try:
            with os.scandir(directory) as entries:
                names = sorted(entry.name for entry in entries)
        except FileNotFoundError:
            return []
        except OSError as exc:
            logger.warning("filter.listing_failed", directory=str(directory), error=str(exc))
            return []

        matches: list[Path] = []
        for name in names:
            if not self._pattern.search(name):
                continue
            candidate = directory / name
            # the listing may be stale or hold dangling links
            if candidate.exists():
                matches.append(candidate)
        return matches

    def filter(self, records: Iterable[LaneRecord]) -> list[MatchedPath]:
        matching: list[MatchedPath] = []
        for record in records:
            if not self._passes_qc(record):
                continue

            lane_directory = build_lane_path(
                self.catalog, record, self.root, self.hierarchy_template
            )

            if self._pattern is None:
                if lane_directory.exists():
                    matching.append(MatchedPath(record, lane_directory, lane_directory))
                continue

            if not lane_directory.is_dir():
                logger.warning(
                    "filter.lane_directory_missing",
                    lane=record.name,
                    directory=str(lane_directory),
                )
                continue

            for directory in self._search_directories(lane_directory):
                for path in self._matching_entries(directory):
                    matching.append(MatchedPath(record, path, lane_directory))

        if matching:
            self.found = True
        logger.info(
            "filter.complete",
            file_type=self.file_type,
            qc=self.qc,
            matches=len(matching),
        )
        return matching


__all__ = ["LaneFilter", "MatchedPath"]
