"""File type patterns and the per-script finder modes."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

# Every file type a finder mode can filter on; each mode exposes a subset.
FILE_EXTENSIONS: Mapping[str, str] = {
    "fastq": r"\.fastq\.gz$",
    "bam": r"\.bam$",
    "contigs": r"unscaffolded_contigs\.fa$",
    "scaffold": r"^contigs\.fa$",
}


def _file_types(*names: str) -> dict[str, str]:
    return {name: FILE_EXTENSIONS[name] for name in names}


ASSEMBLY_SUBDIRECTORIES = (
    "velvet_assembly",
    "velvet_assembly_with_reference",
    "spades_assembly",
)

ASSEMBLY_ROLE_SUFFIXES: Mapping[str, str] = {
    "velvet_assembly": "_velvet.fa",
    "velvet_assembly_with_reference": "_columbus.fa",
    "spades_assembly": "_spades.fa",
    "scaffolding_results": "_scaffolded.fa",
}


@dataclass(frozen=True, slots=True)
class FinderMode:
    """Everything that differs between the ``pathfind`` style scripts."""

    script_name: str
    file_types: Mapping[str, str]
    default_file_type: str
    processed_flag: int
    stats_suffix: str
    subdirectories: tuple[str, ...] = ()
    role_suffixes: Mapping[str, str] = field(default_factory=dict)
    # When set the default file type is used for filtering, not just for linking.
    filter_with_default: bool = False
    supports_qc: bool = True


PATHFIND = FinderMode(
    script_name="pathfind",
    file_types=_file_types("fastq", "bam"),
    default_file_type="fastq",
    processed_flag=1,
    stats_suffix=".csv",
)

ASSEMBLYFIND = FinderMode(
    script_name="assemblyfind",
    file_types=_file_types("contigs", "scaffold"),
    default_file_type="scaffold",
    processed_flag=1024,
    stats_suffix=".assembly_stats.csv",
    subdirectories=ASSEMBLY_SUBDIRECTORIES,
    role_suffixes=ASSEMBLY_ROLE_SUFFIXES,
    filter_with_default=True,
    supports_qc=False,
)

MODES: Mapping[str, FinderMode] = {mode.script_name: mode for mode in (PATHFIND, ASSEMBLYFIND)}


__all__ = [
    "ASSEMBLY_ROLE_SUFFIXES",
    "ASSEMBLY_SUBDIRECTORIES",
    "ASSEMBLYFIND",
    "FILE_EXTENSIONS",
    "FinderMode",
    "MODES",
    "PATHFIND",
]
