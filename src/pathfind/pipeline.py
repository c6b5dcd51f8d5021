"""Main orchestration logic for lane path searches."""
from __future__ import annotations

import enum
import functools
import os
import re
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, ContextManager, Iterator, Sequence

from .catalog import QC_STATUSES, SEARCH_TYPES, Catalog, LaneRecord, SearchRequest, open_sql_catalog
from .config import AppConfig, DEFAULT_HIERARCHY_TEMPLATE
from .exceptions import CatalogError, FileDoesNotExist, InvalidInput, NoMatches
from .filetypes import FinderMode
from .filtering import LaneFilter, MatchedPath
from .linking import LinkPlanner, LinkReport, Linker, resolve_target_name
from .logging_setup import get_logger
from .sorting import sort_matches
from .stats import StatsGenerator, default_stats_name

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class PathFindRequest:
    """A validated search as entered on the command line.

    ``symlink``, ``archive`` and ``stats`` are ``None`` when not requested and
    an empty string when requested without an explicit name.
    """

    search_type: str
    search_id: str
    file_type: str | None = None
    qc: str | None = None
    symlink: str | None = None
    archive: str | None = None
    stats: str | None = None

    @property
    def wants_link(self) -> bool:
        return self.symlink is not None or self.archive is not None


@dataclass(frozen=True, slots=True)
class CatalogSource:
    name: str
    root: str
    opener: Callable[[], ContextManager[Catalog]]


@dataclass(slots=True)
class SearchResult:
    source: str
    matches: list[MatchedPath]
    link_report: LinkReport | None = None
    archive_path: Path | None = None
    stats_path: Path | None = None

    @property
    def paths(self) -> list[Path]:
        return [match.path for match in self.matches]


class Stage(enum.Enum):
    NEXT_SOURCE = "next_source"
    QUERY = "query"
    FILTER = "filter"
    SORT = "sort"
    LINK = "link"
    STATS = "stats"
    DONE = "done"
    EXHAUSTED = "exhausted"


TERMINAL_STAGES = frozenset({Stage.DONE, Stage.EXHAUSTED})


def validate_request(request: PathFindRequest, mode: FinderMode) -> None:
    """Reject malformed or contradictory requests before anything touches disk."""

    if request.search_type not in SEARCH_TYPES:
        raise InvalidInput(
            f"Search type must be one of {', '.join(SEARCH_TYPES)}, not '{request.search_type}'"
        )
    if not request.search_id or not request.search_id.strip():
        raise InvalidInput("A search id is required")
    if request.qc is not None:
        if not mode.supports_qc:
            raise InvalidInput(f"{mode.script_name} does not filter on QC status")
        if request.qc not in QC_STATUSES:
            raise InvalidInput(f"QC status must be one of {', '.join(QC_STATUSES)}")
    if request.file_type is not None and request.file_type not in mode.file_types:
        raise InvalidInput(
            f"File type must be one of {', '.join(mode.file_types)}, not '{request.file_type}'"
        )
    if request.symlink is not None and request.archive is not None:
        raise InvalidInput("The archive and symlink options cannot be used together")
    if request.search_type == "file" and not Path(request.search_id).is_file():
        raise FileDoesNotExist(f"File {request.search_id} does not exist.")


def sources_from_config(config: AppConfig) -> list[CatalogSource]:
    return [
        CatalogSource(
            name=database.name,
            root=database.root,
            opener=functools.partial(open_sql_catalog, database, config.retry),
        )
        for database in config.databases
    ]


class PipelineDriver:
    """Walk the configured sources until one of them yields matching paths.

    Each source is opened, queried and filtered in turn; the first source with
    any match wins and later sources are never opened. ``stages`` records every
    state visited so the early exit can be inspected after a run.
    """

    def __init__(
        self,
        request: PathFindRequest,
        mode: FinderMode,
        sources: Sequence[CatalogSource],
        *,
        hierarchy_template: str = DEFAULT_HIERARCHY_TEMPLATE,
        cwd: str | Path | None = None,
    ) -> None:
        self.request = request
        self.mode = mode
        self.sources = list(sources)
        self.hierarchy_template = hierarchy_template
        self.cwd = Path(cwd) if cwd is not None else Path(os.getcwd())
        self.stages: list[Stage] = []

        self._source_iter: Iterator[CatalogSource] = iter(())
        self._scope: ExitStack | None = None
        self._source: CatalogSource | None = None
        self._catalog: Catalog | None = None
        self._records: list[LaneRecord] = []
        self._matches: list[MatchedPath] = []
        self._result: SearchResult | None = None
        self._sources_tried = 0
        self._catalog_errors: list[CatalogError] = []

    @property
    def file_type(self) -> str | None:
        if self.request.file_type:
            return self.request.file_type
        if self.mode.filter_with_default:
            return self.mode.default_file_type
        return None

    @property
    def use_default_type(self) -> bool:
        return self.file_type is None

    def search_request(self) -> SearchRequest:
        return SearchRequest(
            search_type=self.request.search_type,
            search_id=self.request.search_id,
            processed_flag=self.mode.processed_flag,
        )

    def run(self) -> SearchResult:
        validate_request(self.request, self.mode)

        handlers: dict[Stage, Callable[[], Stage]] = {
            Stage.NEXT_SOURCE: self._next_source,
            Stage.QUERY: self._query,
            Stage.FILTER: self._filter,
            Stage.SORT: self._sort,
            Stage.LINK: self._link,
            Stage.STATS: self._stats,
        }

        self.stages = []
        self._source_iter = iter(self.sources)
        stage = Stage.NEXT_SOURCE
        try:
            while stage not in TERMINAL_STAGES:
                self.stages.append(stage)
                stage = handlers[stage]()
        finally:
            self._release_source()
        self.stages.append(stage)

        if stage is Stage.EXHAUSTED:
            if self._catalog_errors and len(self._catalog_errors) == self._sources_tried:
                raise self._catalog_errors[-1]
            raise NoMatches("Could not find lanes or files for input data")

        assert self._result is not None
        logger.info(
            "pipeline.complete",
            source=self._result.source,
            matches=len(self._result.matches),
        )
        return self._result

    def _release_source(self) -> None:
        if self._scope is not None:
            scope, self._scope = self._scope, None
            scope.close()
        self._catalog = None

    def _catalog_failed(self, exc: CatalogError) -> Stage:
        assert self._source is not None
        logger.error("pipeline.catalog_error", source=self._source.name, error=str(exc))
        self._catalog_errors.append(exc)
        return Stage.NEXT_SOURCE

    def _next_source(self) -> Stage:
        self._release_source()
        try:
            self._source = next(self._source_iter)
        except StopIteration:
            return Stage.EXHAUSTED

        self._sources_tried += 1
        self._records = []
        self._matches = []
        scope = ExitStack()
        try:
            self._catalog = scope.enter_context(self._source.opener())
        except CatalogError as exc:
            scope.close()
            return self._catalog_failed(exc)
        self._scope = scope
        logger.debug("pipeline.source.open", source=self._source.name)
        return Stage.QUERY

    def _query(self) -> Stage:
        assert self._catalog is not None and self._source is not None
        try:
            self._records = self._catalog.query(self.search_request())
        except CatalogError as exc:
            return self._catalog_failed(exc)
        if not self._records:
            logger.debug("pipeline.source.no_records", source=self._source.name)
            return Stage.NEXT_SOURCE
        return Stage.FILTER

    def _filter(self) -> Stage:
        assert self._catalog is not None and self._source is not None
        lane_filter = LaneFilter(
            self._catalog,
            root=self._source.root,
            hierarchy_template=self.hierarchy_template,
            file_type=self.file_type,
            file_types=self.mode.file_types,
            qc=self.request.qc,
            subdirectories=self.mode.subdirectories if self.file_type else (),
        )
        try:
            self._matches = lane_filter.filter(self._records)
        except CatalogError as exc:
            return self._catalog_failed(exc)
        if not lane_filter.found:
            logger.debug("pipeline.source.no_matches", source=self._source.name)
            return Stage.NEXT_SOURCE
        return Stage.SORT

    def _sort(self) -> Stage:
        assert self._source is not None
        self._result = SearchResult(source=self._source.name, matches=sort_matches(self._matches))
        if self.request.wants_link:
            return Stage.LINK
        return self._after_link()

    def _after_link(self) -> Stage:
        if self.request.stats is not None:
            return Stage.STATS
        return Stage.DONE

    def _link(self) -> Stage:
        assert self._result is not None
        default_pattern = (
            self.mode.file_types[self.mode.default_file_type] if self.use_default_type else None
        )
        planner = LinkPlanner(self.mode.role_suffixes, default_pattern=default_pattern)
        plan = planner.plan(self._result.matches)

        name = self.request.symlink if self.request.symlink is not None else self.request.archive
        target = resolve_target_name(
            name,
            script_name=self.mode.script_name,
            search_id=self.request.search_id,
            cwd=self.cwd,
        )
        linker = Linker(plan, target)
        if self.request.symlink is not None:
            self._result.link_report = linker.create_symlinks()
        else:
            self._result.archive_path = linker.create_archive()
        return self._after_link()

    def _stats(self) -> Stage:
        assert self._result is not None and self.request.stats is not None
        name = self.request.stats or default_stats_name(
            self.request.search_id, self.mode.stats_suffix
        )
        output = Path(re.sub(r"\s+", "_", name))
        if not output.is_absolute():
            output = self.cwd / output
        generator = StatsGenerator(output, self._result.matches)
        self._result.stats_path = generator.write(self.mode.script_name)
        return Stage.DONE


def run_search(
    config: AppConfig,
    mode: FinderMode,
    request: PathFindRequest,
    *,
    cwd: str | Path | None = None,
) -> SearchResult:
    driver = PipelineDriver(
        request,
        mode,
        sources_from_config(config),
        hierarchy_template=config.hierarchy_template,
        cwd=cwd,
    )
    return driver.run()


__all__ = [
    "CatalogSource",
    "PathFindRequest",
    "PipelineDriver",
    "SearchResult",
    "Stage",
    "run_search",
    "sources_from_config",
    "validate_request",
]
