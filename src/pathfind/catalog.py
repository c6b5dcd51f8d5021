"""Lane lookups against a sequencing tracking database."""
from __future__ import annotations

import re
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Mapping, Protocol, Sequence

from sqlalchemy import func, or_, select, true
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .config import DatabaseConfig, RetryConfig
from .database import create_catalog_engine, create_session_factory, read_session, verify_connection
from .exceptions import CatalogError, FileDoesNotExist, InvalidInput
from .logging_setup import get_logger
from .models import Lane, Library, Project, Sample, Species

logger = get_logger(__name__)

SEARCH_TYPES = ("study", "lane", "file", "sample", "species", "database")
QC_STATUSES = ("passed", "failed", "pending")
LANE_ID_BATCH_SIZE = 200

_UNSAFE_PATH_CHARS = re.compile(r"[\s/]+")


@dataclass(frozen=True, slots=True)
class SearchRequest:
    search_type: str
    search_id: str
    processed_flag: int = 0


@dataclass(frozen=True, slots=True)
class LaneRecord:
    """Detached snapshot of one lane and the fields its storage path is built from."""

    name: str
    qc_status: str | None = None
    processed: int = 0
    study: str | None = None
    sample: str | None = None
    species: str | None = None
    hierarchy: Mapping[str, str] = field(default_factory=dict)


class Catalog(Protocol):
    def query(self, request: SearchRequest) -> list[LaneRecord]:
        ...

    def hierarchy_fragment(self, record: LaneRecord, template: str) -> str:
        ...

    def qc_status(self, record: LaneRecord) -> str | None:
        ...


def render_hierarchy(record: LaneRecord, template: str) -> str:
    """Render ``template`` for ``record``.

    Tokens are colon separated. Upper-case tokens such as ``TRACKING`` are
    literal directory names, every other token names a hierarchy field.
    """

    parts: list[str] = []
    for token in template.split(":"):
        if token.isupper():
            parts.append(token)
            continue
        value = record.hierarchy.get(token)
        if not value:
            raise CatalogError(
                f"Cannot render hierarchy field '{token}' for lane {record.name}"
            )
        parts.append(value)
    return "/".join(parts)


def read_lane_ids(path: str | Path) -> list[str]:
    """Return the lane identifiers listed one per line in ``path``."""

    list_path = Path(path)
    if not list_path.is_file():
        raise FileDoesNotExist(f"File {path} does not exist.")
    ids: list[str] = []
    try:
        with list_path.open("r", encoding="utf-8") as handle:
            for line in handle:
                value = line.strip()
                if value and not value.startswith("#"):
                    ids.append(value)
    except UnicodeDecodeError as exc:
        raise InvalidInput(f"Lane list {path} is not a UTF-8 text file") from exc
    return ids


def _path_safe(value: str | int | None) -> str:
    if value is None:
        return ""
    return _UNSAFE_PATH_CHARS.sub("_", str(value).strip())


def _tag_prefix_clause(lane_id: str):
    prefix = f"{lane_id}#"
    # case-sensitive, unlike LIKE on SQLite
    return func.substr(Lane.name, 1, len(prefix)) == prefix


def _lane_clause(lane_ids: Sequence[str]):
    return or_(Lane.name.in_(lane_ids), *(_tag_prefix_clause(lane_id) for lane_id in lane_ids))


class SqlCatalog:
    """Catalog backed by the SQLAlchemy tracking schema.

    Lane lists are looked up ``LANE_ID_BATCH_SIZE`` ids at a time so that the
    generated WHERE clause stays within the backend's expression limits.
    """

    def __init__(self, session_factory: sessionmaker[Session], *, name: str = "catalog") -> None:
        self.session_factory = session_factory
        self.name = name

    def _search_clauses(self, request: SearchRequest) -> list:
        search_id = request.search_id.strip()
        if request.search_type == "study":
            clauses = [Project.name == search_id]
            if search_id.isdigit():
                clauses.append(Project.ssid == int(search_id))
            return [or_(*clauses)]
        if request.search_type == "lane":
            return [_lane_clause([search_id])]
        if request.search_type == "file":
            lane_ids = read_lane_ids(search_id)
            return [
                _lane_clause(lane_ids[start : start + LANE_ID_BATCH_SIZE])
                for start in range(0, len(lane_ids), LANE_ID_BATCH_SIZE)
            ]
        if request.search_type == "sample":
            return [Sample.name == search_id]
        if request.search_type == "species":
            return [Species.name.icontains(search_id, autoescape=True)]
        if request.search_type == "database":
            return [true()]
        raise CatalogError(f"Unsupported search type '{request.search_type}'")

    @staticmethod
    def _lane_statement(clause, processed_flag: int):
        stmt = (
            select(Lane)
            .join(Lane.library)
            .join(Library.sample)
            .join(Sample.project)
            .outerjoin(Sample.species)
            .where(clause)
            .order_by(Lane.name)
        )
        if processed_flag:
            stmt = stmt.where(Lane.processed.op("&")(processed_flag) == processed_flag)
        return stmt

    def query(self, request: SearchRequest) -> list[LaneRecord]:
        by_name: dict[str, LaneRecord] = {}
        clauses = self._search_clauses(request)
        try:
            with read_session(self.session_factory) as session:
                for clause in clauses:
                    stmt = self._lane_statement(clause, request.processed_flag)
                    for lane in session.execute(stmt).scalars():
                        if lane.name not in by_name:
                            by_name[lane.name] = self._to_record(lane)
        except SQLAlchemyError as exc:
            raise CatalogError(f"Lane query failed on {self.name}: {exc}") from exc

        records = [by_name[name] for name in sorted(by_name)]
        logger.debug(
            "catalog.query",
            catalog=self.name,
            search_type=request.search_type,
            search_id=request.search_id,
            batches=len(clauses),
            lanes=len(records),
        )
        return records

    @staticmethod
    def _to_record(lane: Lane) -> LaneRecord:
        library = lane.library
        sample = library.sample
        project = sample.project
        species = sample.species.name if sample.species else None

        hierarchy: dict[str, str] = {
            "projectssid": _path_safe(project.ssid),
            "project": _path_safe(project.name),
            "sample": _path_safe(sample.name),
            "technology": _path_safe(library.seq_tech),
            "library": _path_safe(library.name),
            "lane": _path_safe(lane.name),
        }
        if species:
            genus, _, remainder = species.strip().partition(" ")
            hierarchy["genus"] = _path_safe(genus)
            hierarchy["species-subspecies"] = _path_safe(remainder)

        return LaneRecord(
            name=lane.name,
            qc_status=lane.qc_status,
            processed=lane.processed,
            study=project.name,
            sample=sample.name,
            species=species,
            hierarchy={key: value for key, value in hierarchy.items() if value},
        )

    def hierarchy_fragment(self, record: LaneRecord, template: str) -> str:
        return render_hierarchy(record, template)

    def qc_status(self, record: LaneRecord) -> str | None:
        return record.qc_status


@contextmanager
def open_sql_catalog(
    database: DatabaseConfig, retry_config: RetryConfig | None = None
) -> Iterator[SqlCatalog]:
    """Open ``database`` for the duration of the block and dispose of it afterwards."""

    engine = create_catalog_engine(database.url)
    try:
        verify_connection(engine, retry_config)
        yield SqlCatalog(create_session_factory(engine), name=database.name)
    finally:
        engine.dispose()
        logger.debug("catalog.closed", catalog=database.name)


__all__ = [
    "Catalog",
    "LANE_ID_BATCH_SIZE",
    "LaneRecord",
    "QC_STATUSES",
    "SEARCH_TYPES",
    "SearchRequest",
    "SqlCatalog",
    "open_sql_catalog",
    "read_lane_ids",
    "render_hierarchy",
]
