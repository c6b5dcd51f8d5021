"""CSV statistics written for a set of matched lanes."""
from __future__ import annotations

import csv
import re
from pathlib import Path
from typing import Sequence

from .exceptions import StatsError
from .filtering import MatchedPath
from .logging_setup import get_logger

logger = get_logger(__name__)

PATHFIND_COLUMNS = ("Study", "Sample", "Species", "Lane Name", "QC Status", "Path")
ASSEMBLY_COLUMNS = (
    "Lane Name",
    "Assembler",
    "Total Length",
    "No Contigs",
    "Average Contig Length",
    "Largest Contig",
    "N50",
    "Path",
)
VOCABULARIES = ("pathfind", "assemblyfind")

_STAT_PAIR = re.compile(r"(\w+)\s*=\s*([\d.]+)")


def default_stats_name(search_id: str, suffix: str) -> str:
    return re.sub(r"\s+", "_", f"{search_id}{suffix}")


def read_assembly_stats(path: Path) -> dict[str, str]:
    """Parse an assembly ``.stats`` file (``sum = 1, n = 2, ...``).

    The first occurrence of each key wins, so the contig ``n`` is not
    overwritten by the ``n`` reported next to N50.
    """

    values: dict[str, str] = {}
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return values
    for key, value in _STAT_PAIR.findall(text):
        values.setdefault(key, value)
    return values


class StatsGenerator:
    def __init__(self, output: str | Path, matches: Sequence[MatchedPath]) -> None:
        self.output = Path(output)
        self.matches = list(matches)

    def _pathfind_rows(self) -> list[list[str]]:
        return [
            [
                match.record.study or "",
                match.record.sample or "",
                match.record.species or "",
                match.record.name,
                match.record.qc_status or "",
                str(match.path),
            ]
            for match in self.matches
        ]

    def _assembly_rows(self) -> list[list[str]]:
        rows: list[list[str]] = []
        for match in self.matches:
            assembler = "" if match.path.parent == match.lane_directory else match.path.parent.name
            stats = read_assembly_stats(match.path.with_name(match.path.name + ".stats"))
            rows.append(
                [
                    match.record.name,
                    assembler,
                    stats.get("sum", ""),
                    stats.get("n", ""),
                    stats.get("ave", ""),
                    stats.get("largest", ""),
                    stats.get("N50", ""),
                    str(match.path),
                ]
            )
        return rows

    def write(self, vocabulary: str) -> Path:
        if vocabulary == "pathfind":
            header, rows = PATHFIND_COLUMNS, self._pathfind_rows()
        elif vocabulary == "assemblyfind":
            header, rows = ASSEMBLY_COLUMNS, self._assembly_rows()
        else:
            raise StatsError(f"Unknown statistics vocabulary '{vocabulary}'")

        try:
            self.output.parent.mkdir(parents=True, exist_ok=True)
            with self.output.open("w", encoding="utf-8", newline="") as handle:
                writer = csv.writer(handle)
                writer.writerow(header)
                writer.writerows(rows)
        except OSError as exc:
            raise StatsError(f"Cannot write statistics to {self.output}: {exc}") from exc

        logger.info("stats.written", output=str(self.output), rows=len(rows), vocabulary=vocabulary)
        return self.output


__all__ = [
    "ASSEMBLY_COLUMNS",
    "PATHFIND_COLUMNS",
    "StatsError",
    "StatsGenerator",
    "VOCABULARIES",
    "default_stats_name",
    "read_assembly_stats",
]
