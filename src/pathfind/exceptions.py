"""Error types raised by the path resolution pipeline."""
from __future__ import annotations


class PathFindError(RuntimeError):
    """Base class for all errors surfaced to the command line."""


class InvalidInput(PathFindError):
    """Raised when a search request is malformed or contradictory."""


class FileDoesNotExist(PathFindError):
    """Raised when a ``file`` search names a lane list that is not on disk."""


class CatalogError(PathFindError):
    """Raised when the tracking database cannot be reached or rendered."""


class NoMatches(PathFindError):
    """Raised when no source produced any lanes or files."""


class LinkError(PathFindError):
    """Raised when symlinks cannot be planned or created."""


class UnknownRoleError(LinkError):
    """Raised when a producer subdirectory has no configured link suffix."""


class ArchiveError(PathFindError):
    """Raised when the output archive cannot be written."""


class StatsError(PathFindError):
    """Raised when the statistics file cannot be produced."""


__all__ = [
    "PathFindError",
    "InvalidInput",
    "FileDoesNotExist",
    "CatalogError",
    "NoMatches",
    "LinkError",
    "UnknownRoleError",
    "ArchiveError",
    "StatsError",
]
