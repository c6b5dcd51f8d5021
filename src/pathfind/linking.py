"""Symlink and archive materialisation of matched paths."""
from __future__ import annotations

import os
import re
import tarfile
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping, Sequence

from .exceptions import ArchiveError, LinkError, UnknownRoleError
from .filtering import MatchedPath
from .logging_setup import get_logger

logger = get_logger(__name__)

ARCHIVE_SUFFIXES = (".tar.gz", ".tgz")
_ID_TOKEN = re.compile(r"[^/\s]+")


@dataclass(frozen=True, slots=True)
class LinkPlanEntry:
    source: Path
    link_name: str


@dataclass(slots=True)
class LinkReport:
    """Outcome of a best-effort symlink run."""

    target: Path
    created: int = 0
    replaced: int = 0
    failed: int = 0
    failures: list[str] = field(default_factory=list)


def last_id_component(search_id: str) -> str:
    """Return the final token of ``search_id`` that holds no slash or whitespace."""

    tokens = _ID_TOKEN.findall(search_id)
    if not tokens:
        raise LinkError(f"Cannot derive an output name from id '{search_id}'")
    return tokens[-1]


def resolve_target_name(
    name: str | None,
    *,
    script_name: str,
    search_id: str,
    cwd: str | Path | None = None,
) -> Path:
    """Return the absolute symlink directory or archive name for a search.

    An empty or missing ``name`` becomes ``<script>_<last id token>``. Relative
    names are resolved against ``cwd`` (the process working directory by default).
    """

    if not name:
        script = Path(script_name).name
        name = f"{script}_{last_id_component(search_id)}"
    target = Path(name).expanduser()
    if target.is_absolute():
        return target
    return Path(cwd if cwd is not None else os.getcwd()) / target


def archive_path_for(target: Path) -> Path:
    if target.name.endswith(ARCHIVE_SUFFIXES):
        return target
    return target.with_name(f"{target.name}.tar.gz")


def _archive_member_root(archive_path: Path) -> str:
    for suffix in ARCHIVE_SUFFIXES:
        if archive_path.name.endswith(suffix):
            return archive_path.name[: -len(suffix)]
    return archive_path.name


class LinkPlanner:
    """Compute collision free link names for matched paths.

    Files inside a producer subdirectory (``velvet_assembly`` and friends) are
    renamed with the suffix registered for that role. Unknown roles are an
    error unless ``default_suffix`` is given.
    """

    def __init__(
        self,
        role_suffixes: Mapping[str, str] | None = None,
        *,
        default_suffix: str | None = None,
        default_pattern: str | None = None,
    ) -> None:
        self.role_suffixes = dict(role_suffixes or {})
        self.default_suffix = default_suffix
        self.default_pattern = re.compile(default_pattern) if default_pattern else None

    def link_name(self, match: MatchedPath, path: Path | None = None) -> str:
        path = path or match.path
        lane_name = match.lane_name
        if path == match.lane_directory:
            return lane_name
        if path.parent == match.lane_directory:
            return f"{lane_name}.{path.name}"

        role = path.parent.name
        suffix = self.role_suffixes.get(role, self.default_suffix)
        if suffix is None:
            raise UnknownRoleError(f"No link suffix configured for '{role}' ({path})")
        stem = path.name.split(".", 1)[0]
        return f"{lane_name}.{stem}{suffix}"

    def _default_type_files(self, match: MatchedPath) -> list[Path]:
        assert self.default_pattern is not None
        try:
            with os.scandir(match.lane_directory) as entries:
                names = sorted(entry.name for entry in entries)
        except OSError as exc:
            logger.warning("link.listing_failed", directory=str(match.lane_directory), error=str(exc))
            return []
        return [
            match.lane_directory / name
            for name in names
            if self.default_pattern.search(name) and (match.lane_directory / name).exists()
        ]

    def plan(self, matches: Iterable[MatchedPath]) -> list[LinkPlanEntry]:
        entries: list[LinkPlanEntry] = []
        seen: dict[str, Path] = {}
        for match in matches:
            if match.is_lane_directory and self.default_pattern is not None:
                sources = self._default_type_files(match)
                if not sources:
                    logger.info("link.no_default_files", lane=match.lane_name)
            else:
                sources = [match.path]

            for source in sources:
                link_name = self.link_name(match, source)
                if link_name in seen:
                    raise LinkError(
                        f"Link name {link_name} would be used for both {seen[link_name]} and {source}"
                    )
                seen[link_name] = source
                entries.append(LinkPlanEntry(source=source, link_name=link_name))
        return entries


class Linker:
    """Create symlinks or a gzipped tarball for a link plan."""

    def __init__(self, plan: Sequence[LinkPlanEntry], target: Path) -> None:
        self.plan = list(plan)
        self.target = target

    def create_symlinks(self) -> LinkReport:
        try:
            self.target.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise LinkError(f"Cannot create symlink directory {self.target}: {exc}") from exc

        report = LinkReport(target=self.target)
        for entry in self.plan:
            destination = self.target / entry.link_name
            try:
                if destination.is_symlink():
                    destination.unlink()
                    report.replaced += 1
                elif destination.exists():
                    raise LinkError(f"{destination} already exists and is not a symlink")
                destination.symlink_to(entry.source)
                report.created += 1
            except (OSError, LinkError) as exc:
                report.failed += 1
                report.failures.append(str(exc))
                logger.warning("link.failed", link=str(destination), source=str(entry.source), error=str(exc))

        logger.info(
            "link.complete",
            target=str(self.target),
            created=report.created,
            replaced=report.replaced,
            failed=report.failed,
        )
        return report

    def create_archive(self) -> Path:
        archive_path = archive_path_for(self.target)
        member_root = _archive_member_root(archive_path)
        temp_path: Path | None = None
        try:
            archive_path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=archive_path.parent,
                prefix=f".{archive_path.name}.",
                suffix=".partial",
                delete=False,
            ) as handle:
                temp_path = Path(handle.name)
            with tarfile.open(temp_path, "w:gz", dereference=True) as tar:
                for entry in self.plan:
                    tar.add(entry.source, arcname=f"{member_root}/{entry.link_name}")
            os.replace(temp_path, archive_path)
        except (OSError, tarfile.TarError) as exc:
            raise ArchiveError(f"Failed to write archive {archive_path}: {exc}") from exc
        finally:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)

        logger.info("archive.complete", archive=str(archive_path), members=len(self.plan))
        return archive_path


__all__ = [
    "LinkPlanEntry",
    "LinkPlanner",
    "LinkReport",
    "Linker",
    "archive_path_for",
    "last_id_component",
    "resolve_target_name",
]
