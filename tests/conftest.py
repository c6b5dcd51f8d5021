import logging
import pathlib
import sys
from contextlib import contextmanager

import pytest
import structlog
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

SRC_ROOT = pathlib.Path(__file__).resolve().parents[1] / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from pathfind.catalog import LaneRecord, SearchRequest, render_hierarchy
from pathfind.exceptions import CatalogError
from pathfind.models import Base, Lane, Library, Project, Sample, Species

SIMPLE_TEMPLATE = "study:lane"

# name, qc_status, processed, project (name, ssid), sample, species, library
TRACKING_LANES = [
    ("lane1", "passed", 1 | 1024, ("My Study", 123), "sample1", "Streptococcus pneumoniae", "lib1"),
    ("lane2", "failed", 1, ("My Study", 123), "sample2", "Streptococcus pneumoniae", "lib2"),
    ("5678_1#1", "pending", 0, ("Other Study", 456), "sample3", "Escherichia coli", "lib3"),
    ("5678_1#2", None, 1, ("Other Study", 456), "sample3", "Escherichia coli", "lib3"),
]


def create_tracking_db(path: pathlib.Path, lanes=TRACKING_LANES) -> str:
    url = f"sqlite:///{path}"
    engine = create_engine(url)
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        species: dict[str, Species] = {}
        projects: dict[str, Project] = {}
        samples: dict[str, Sample] = {}
        libraries: dict[str, Library] = {}
        for name, qc_status, processed, (project_name, ssid), sample_name, species_name, library_name in lanes:
            if species_name not in species:
                species[species_name] = Species(name=species_name)
            if project_name not in projects:
                projects[project_name] = Project(name=project_name, ssid=ssid)
            if sample_name not in samples:
                samples[sample_name] = Sample(
                    name=sample_name,
                    project=projects[project_name],
                    species=species[species_name],
                )
            if library_name not in libraries:
                libraries[library_name] = Library(
                    name=library_name, sample=samples[sample_name], seq_tech="SLX"
                )
            session.add(
                Lane(
                    name=name,
                    library=libraries[library_name],
                    qc_status=qc_status,
                    processed=processed,
                )
            )
        session.commit()
    engine.dispose()
    return url


@pytest.fixture
def tracking_db(tmp_path: pathlib.Path) -> str:
    return create_tracking_db(tmp_path / "tracking.db")


def make_record(name: str, qc_status: str | None = None, study: str = "123") -> LaneRecord:
    return LaneRecord(
        name=name,
        qc_status=qc_status,
        processed=1,
        study=study,
        sample=f"{name}_sample",
        species="Streptococcus pneumoniae",
        hierarchy={"study": study, "lane": name},
    )


class FakeCatalog:
    """In-memory catalog returning fixed records for every query."""

    def __init__(self, records, *, fail_query: bool = False) -> None:
        self.records = list(records)
        self.fail_query = fail_query
        self.requests: list[SearchRequest] = []

    def query(self, request: SearchRequest):
        self.requests.append(request)
        if self.fail_query:
            raise CatalogError("catalog unavailable")
        return list(self.records)

    def hierarchy_fragment(self, record: LaneRecord, template: str) -> str:
        return render_hierarchy(record, template)

    def qc_status(self, record: LaneRecord):
        return record.qc_status


class SourceLog:
    """Records which fake sources were opened and closed."""

    def __init__(self) -> None:
        self.opened: list[str] = []
        self.closed: list[str] = []

    def opener(self, name: str, catalog: FakeCatalog | None = None, *, fail_open: bool = False):
        @contextmanager
        def _open():
            self.opened.append(name)
            try:
                if fail_open:
                    raise CatalogError(f"cannot connect to {name}")
                yield catalog
            finally:
                self.closed.append(name)

        return _open


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    root = logging.getLogger()
    for handler in list(root.handlers):
        if type(handler) not in (logging.StreamHandler, logging.FileHandler):
            continue
        root.removeHandler(handler)
        handler.close()
