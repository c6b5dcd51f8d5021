"""Command-line entry points for the pathfind and assemblyfind scripts."""
from __future__ import annotations

import argparse
import sys
from typing import Sequence

from rich.console import Console
from rich.markup import escape

from .catalog import QC_STATUSES, SEARCH_TYPES
from .config import ConfigurationError, load_config
from .exceptions import (
    ArchiveError,
    CatalogError,
    FileDoesNotExist,
    InvalidInput,
    LinkError,
    NoMatches,
    StatsError,
)
from .filetypes import ASSEMBLYFIND, PATHFIND, FinderMode
from .logging_setup import configure_logging, get_logger, log_invocation
from .pipeline import PathFindRequest, run_search, validate_request

logger = get_logger(__name__)
err_console = Console(stderr=True, soft_wrap=True)

EXIT_OK = 0
EXIT_NO_MATCHES = 1
EXIT_INVALID_INPUT = 2
EXIT_CATALOG_ERROR = 3
EXIT_OUTPUT_ERROR = 4

_DESCRIPTIONS = {
    "pathfind": (
        "Given a study, lane or a file containing a list of lanes, output the path "
        "on disk to the data associated with it. Use --qc to limit results to a QC "
        "status and --filetype to return files of one type. --symlink creates links "
        "to the data and --archive bundles it into a .tar.gz instead."
    ),
    "assemblyfind": (
        "Given a study, lane or a file containing a list of lanes, output the path "
        "on disk to the assemblies of the matching lanes. Scaffolds are returned by "
        "default; --filetype contigs returns the unscaffolded contigs."
    ),
}


def build_parser(mode: FinderMode) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=mode.script_name,
        description=_DESCRIPTIONS.get(mode.script_name),
    )
    parser.add_argument(
        "-t",
        "--type",
        dest="search_type",
        help=f"Search type <{'|'.join(SEARCH_TYPES)}>",
    )
    parser.add_argument(
        "-i",
        "--id",
        dest="search_id",
        help="Study id, study name, lane name, sample, species or file of lane names",
    )
    parser.add_argument(
        "-f",
        "--filetype",
        dest="file_type",
        help=f"File type <{'|'.join(mode.file_types)}>",
    )
    if mode.supports_qc:
        parser.add_argument(
            "-q",
            "--qc",
            dest="qc",
            help=f"QC status <{'|'.join(QC_STATUSES)}>",
        )
    parser.add_argument(
        "-l",
        "--symlink",
        dest="symlink",
        nargs="?",
        const="",
        default=None,
        help="Create symlinks to the data, optionally in the named directory",
    )
    parser.add_argument(
        "-a",
        "--archive",
        dest="archive",
        nargs="?",
        const="",
        default=None,
        help="Create a .tar.gz archive of the data, optionally with the given name",
    )
    parser.add_argument(
        "-s",
        "--stats",
        dest="stats",
        nargs="?",
        const="",
        default=None,
        help="Write a CSV file of statistics, optionally with the given name",
    )
    parser.add_argument(
        "-c",
        "--config",
        dest="config_path",
        default=None,
        help="Path to the YAML configuration (defaults to $PATHFIND_CONFIG)",
    )
    return parser


def _error(message: str) -> None:
    err_console.print(f"[red]{escape(message)}[/red]")


def main(mode: FinderMode, argv: Sequence[str] | None = None) -> int:
    arguments = list(sys.argv[1:] if argv is None else argv)
    parser = build_parser(mode)
    try:
        args = parser.parse_args(arguments)
    except SystemExit as exc:
        return int(exc.code or 0)

    request = PathFindRequest(
        search_type=args.search_type or "",
        search_id=args.search_id or "",
        file_type=args.file_type,
        qc=getattr(args, "qc", None),
        symlink=args.symlink,
        archive=args.archive,
        stats=args.stats,
    )

    try:
        validate_request(request, mode)
    except InvalidInput as exc:
        _error(str(exc))
        err_console.print(escape(parser.format_help()))
        return EXIT_INVALID_INPUT
    except FileDoesNotExist as exc:
        _error(str(exc))
        return EXIT_INVALID_INPUT

    try:
        config = load_config(args.config_path)
    except ConfigurationError as exc:
        _error(f"Configuration error: {exc}")
        return EXIT_INVALID_INPUT

    configure_logging(config.logging.model_dump(), script_name=mode.script_name)
    if config.invocation_log:
        log_invocation(config.invocation_log, mode.script_name, arguments)

    try:
        result = run_search(config, mode, request)
    except (InvalidInput, FileDoesNotExist) as exc:
        # lane lists are only read once a catalog is open
        _error(str(exc))
        return EXIT_INVALID_INPUT
    except NoMatches as exc:
        _error(str(exc))
        return EXIT_NO_MATCHES
    except CatalogError as exc:
        _error(str(exc))
        return EXIT_CATALOG_ERROR
    except (LinkError, ArchiveError, StatsError) as exc:
        _error(str(exc))
        return EXIT_OUTPUT_ERROR

    for path in result.paths:
        sys.stdout.write(f"{path}\n")

    report = result.link_report
    if report is not None and report.failed:
        err_console.print(
            f"[yellow]{report.failed} of {report.failed + report.created} symlinks "
            f"could not be created in {escape(str(report.target))}[/yellow]"
        )
    if result.archive_path is not None:
        err_console.print(f"[green]Archive written to {escape(str(result.archive_path))}[/green]")
    if result.stats_path is not None:
        err_console.print(f"[green]Statistics written to {escape(str(result.stats_path))}[/green]")
    return EXIT_OK


def pathfind_main(argv: Sequence[str] | None = None) -> int:
    return main(PATHFIND, argv)


def assemblyfind_main(argv: Sequence[str] | None = None) -> int:
    return main(ASSEMBLYFIND, argv)


__all__ = ["assemblyfind_main", "build_parser", "main", "pathfind_main"]
