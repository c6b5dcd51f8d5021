import pathlib
import tarfile

import pytest

from conftest import SIMPLE_TEMPLATE, FakeCatalog, SourceLog, make_record
from pathfind.config import AppConfig, DatabaseConfig, RetryConfig
from pathfind.exceptions import CatalogError, FileDoesNotExist, InvalidInput, NoMatches
from pathfind.filetypes import ASSEMBLYFIND, PATHFIND
from pathfind.pipeline import (
    CatalogSource,
    PathFindRequest,
    PipelineDriver,
    Stage,
    run_search,
    validate_request,
)


@pytest.fixture
def data_root(tmp_path: pathlib.Path) -> pathlib.Path:
    root = tmp_path / "data"
    root.mkdir()
    return root


@pytest.fixture
def workdir(tmp_path: pathlib.Path) -> pathlib.Path:
    cwd = tmp_path / "cwd"
    cwd.mkdir()
    return cwd


def make_lane(root: pathlib.Path, name: str, *files: str) -> pathlib.Path:
    lane_dir = root / "123" / name
    lane_dir.mkdir(parents=True, exist_ok=True)
    for relative in files:
        target = lane_dir / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(f"{name}/{relative}\n", encoding="utf-8")
    return lane_dir


def build_driver(request, sources, cwd, mode=PATHFIND) -> PipelineDriver:
    return PipelineDriver(request, mode, sources, hierarchy_template=SIMPLE_TEMPLATE, cwd=cwd)


def source(log: SourceLog, name: str, root: pathlib.Path, catalog=None, **kwargs) -> CatalogSource:
    return CatalogSource(name=name, root=str(root), opener=log.opener(name, catalog, **kwargs))


def test_first_source_with_matches_wins(data_root, workdir) -> None:
    lane1 = make_lane(data_root, "lane1")
    log = SourceLog()
    sources = [
        source(log, "empty_track", data_root, FakeCatalog([])),
        source(log, "prok_track", data_root, FakeCatalog([make_record("lane1", "passed")])),
        source(log, "euk_track", data_root, FakeCatalog([make_record("lane1")])),
    ]
    driver = build_driver(PathFindRequest("lane", "lane1"), sources, workdir)

    result = driver.run()

    assert result.source == "prok_track"
    assert result.paths == [lane1]
    assert log.opened == ["empty_track", "prok_track"]
    assert log.closed == ["empty_track", "prok_track"]
    assert driver.stages == [
        Stage.NEXT_SOURCE,
        Stage.QUERY,
        Stage.NEXT_SOURCE,
        Stage.QUERY,
        Stage.FILTER,
        Stage.SORT,
        Stage.DONE,
    ]


def test_records_without_files_fall_through_to_no_matches(data_root, workdir) -> None:
    log = SourceLog()
    sources = [
        source(log, "prok_track", data_root, FakeCatalog([make_record("lane1")])),
        source(log, "euk_track", data_root, FakeCatalog([])),
    ]
    driver = build_driver(PathFindRequest("study", "123"), sources, workdir)

    with pytest.raises(NoMatches):
        driver.run()

    assert log.opened == log.closed == ["prok_track", "euk_track"]
    assert driver.stages[-1] is Stage.EXHAUSTED
    assert list(workdir.iterdir()) == []


def test_contradictory_request_has_no_side_effects(data_root, workdir) -> None:
    make_lane(data_root, "lane1", "a.fastq.gz")
    log = SourceLog()
    sources = [source(log, "prok_track", data_root, FakeCatalog([make_record("lane1")]))]
    request = PathFindRequest("lane", "lane1", symlink="", archive="")

    with pytest.raises(InvalidInput):
        build_driver(request, sources, workdir).run()

    assert log.opened == []
    assert list(workdir.iterdir()) == []


@pytest.mark.parametrize(
    "request_kwargs, mode",
    [
        ({"search_type": "project", "search_id": "1"}, PATHFIND),
        ({"search_type": "lane", "search_id": "  "}, PATHFIND),
        ({"search_type": "lane", "search_id": "1", "qc": "maybe"}, PATHFIND),
        ({"search_type": "lane", "search_id": "1", "qc": "passed"}, ASSEMBLYFIND),
        ({"search_type": "lane", "search_id": "1", "file_type": "bam"}, ASSEMBLYFIND),
    ],
)
def test_validate_request_rejects_bad_input(request_kwargs, mode) -> None:
    with pytest.raises(InvalidInput):
        validate_request(PathFindRequest(**request_kwargs), mode)


def test_file_search_requires_existing_file(tmp_path: pathlib.Path) -> None:
    with pytest.raises(FileDoesNotExist):
        validate_request(PathFindRequest("file", str(tmp_path / "lanes.txt")), PATHFIND)


def test_unreachable_source_is_skipped(data_root, workdir) -> None:
    lane1 = make_lane(data_root, "lane1")
    log = SourceLog()
    sources = [
        source(log, "down_track", data_root, fail_open=True),
        source(log, "prok_track", data_root, FakeCatalog([make_record("lane1")])),
    ]

    result = build_driver(PathFindRequest("lane", "lane1"), sources, workdir).run()

    assert result.paths == [lane1]
    assert log.opened == log.closed == ["down_track", "prok_track"]


def test_all_sources_failing_raises_catalog_error(data_root, workdir) -> None:
    log = SourceLog()
    sources = [
        source(log, "down_track", data_root, fail_open=True),
        source(log, "broken_track", data_root, FakeCatalog([], fail_query=True)),
    ]

    with pytest.raises(CatalogError):
        build_driver(PathFindRequest("lane", "lane1"), sources, workdir).run()

    assert log.closed == ["down_track", "broken_track"]


def test_partial_catalog_failure_reports_no_matches(data_root, workdir) -> None:
    log = SourceLog()
    sources = [
        source(log, "broken_track", data_root, FakeCatalog([], fail_query=True)),
        source(log, "prok_track", data_root, FakeCatalog([])),
    ]

    with pytest.raises(NoMatches):
        build_driver(PathFindRequest("lane", "lane1"), sources, workdir).run()


def test_processed_flag_comes_from_the_mode(data_root, workdir) -> None:
    make_lane(data_root, "lane1", "velvet_assembly/contigs.fa")
    catalog = FakeCatalog([make_record("lane1")])
    sources = [source(SourceLog(), "prok_track", data_root, catalog)]

    build_driver(PathFindRequest("lane", "lane1"), sources, workdir, mode=ASSEMBLYFIND).run()

    assert catalog.requests[0].processed_flag == 1024
    assert catalog.requests[0].search_type == "lane"


def test_symlink_default_name_and_rerun(data_root, workdir) -> None:
    lane1 = make_lane(data_root, "lane1", "a.fastq.gz", "a.bam")
    sources = [source(SourceLog(), "prok_track", data_root, FakeCatalog([make_record("lane1")]))]
    request = PathFindRequest("study", "My Study", file_type="fastq", symlink="")

    first = build_driver(request, sources, workdir).run()
    second = build_driver(request, sources, workdir).run()

    link = workdir / "pathfind_Study" / "lane1.a.fastq.gz"
    assert link.is_symlink()
    assert link.readlink() == lane1 / "a.fastq.gz"
    assert sorted(path.name for path in link.parent.iterdir()) == ["lane1.a.fastq.gz"]
    assert (first.link_report.created, first.link_report.replaced) == (1, 0)
    assert (second.link_report.created, second.link_report.replaced) == (1, 1)
    assert first.paths == second.paths == [lane1 / "a.fastq.gz"]


def test_lane_directory_links_use_default_file_type(data_root, workdir) -> None:
    make_lane(data_root, "lane1", "x_1.fastq.gz", "x_2.fastq.gz", "x.bam")
    sources = [source(SourceLog(), "prok_track", data_root, FakeCatalog([make_record("lane1")]))]

    result = build_driver(PathFindRequest("lane", "lane1", symlink="links"), sources, workdir).run()

    assert result.paths == [data_root / "123" / "lane1"]
    assert sorted(path.name for path in (workdir / "links").iterdir()) == [
        "lane1.x_1.fastq.gz",
        "lane1.x_2.fastq.gz",
    ]


def test_stats_are_written_with_default_name(data_root, workdir) -> None:
    make_lane(data_root, "lane1", "a.fastq.gz")
    make_lane(data_root, "lane2", "b.fastq.gz")
    records = [make_record("lane2", "failed"), make_record("lane1", "passed")]
    sources = [source(SourceLog(), "prok_track", data_root, FakeCatalog(records))]
    driver = build_driver(PathFindRequest("study", "My Study", file_type="fastq", stats=""), sources, workdir)

    result = driver.run()

    assert result.stats_path == workdir / "My_Study.csv"
    lines = result.stats_path.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "Study,Sample,Species,Lane Name,QC Status,Path"
    assert [line.split(",")[3] for line in lines[1:]] == ["lane1", "lane2"]
    assert Stage.STATS in driver.stages


def test_assembly_archive_and_stats(data_root, workdir) -> None:
    make_lane(
        data_root,
        "lane1",
        "velvet_assembly/contigs.fa",
        "velvet_assembly/unscaffolded_contigs.fa",
        "spades_assembly/contigs.fa",
    )
    sources = [source(SourceLog(), "prok_track", data_root, FakeCatalog([make_record("lane1")]))]
    request = PathFindRequest("study", "123", archive="", stats="assemblies.csv")

    result = build_driver(request, sources, workdir, mode=ASSEMBLYFIND).run()

    assert [path.relative_to(data_root).as_posix() for path in result.paths] == [
        "123/lane1/spades_assembly/contigs.fa",
        "123/lane1/velvet_assembly/contigs.fa",
    ]
    assert result.archive_path == workdir / "assemblyfind_123.tar.gz"
    with tarfile.open(result.archive_path, "r:gz") as tar:
        assert sorted(tar.getnames()) == [
            "assemblyfind_123/lane1.contigs_spades.fa",
            "assemblyfind_123/lane1.contigs_velvet.fa",
        ]
    assert result.stats_path == workdir / "assemblies.csv"
    assert result.stats_path.read_text(encoding="utf-8").startswith("Lane Name,Assembler,")


def test_run_search_against_tracking_database(tracking_db: str, tmp_path: pathlib.Path, workdir) -> None:
    root = tmp_path / "lustre"
    lane_dir = root / "123" / "lane2"
    lane_dir.mkdir(parents=True)
    (lane_dir / "lane2_1.fastq.gz").write_text("@r\n", encoding="utf-8")
    config = AppConfig(
        databases=[
            DatabaseConfig(name="empty_track", url=f"sqlite:///{tmp_path / 'empty.db'}", root=str(root)),
            DatabaseConfig(name="prok_track", url=tracking_db, root=str(root)),
        ],
        hierarchy_template="projectssid:lane",
        retry=RetryConfig(attempts=1),
    )

    result = run_search(
        config, PATHFIND, PathFindRequest("study", "My Study", file_type="fastq", qc="failed"), cwd=workdir
    )

    assert result.source == "prok_track"
    assert result.paths == [lane_dir / "lane2_1.fastq.gz"]
