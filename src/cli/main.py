"""Lapchart CLI entry points.
This module exposes commands for parsing, ingest, and race maintenance.
It maps argparse commands onto SDK calls.
"""

from __future__ import annotations

import argparse
from dataclasses import replace
from pathlib import Path
from typing import Any, Sequence

from cli.run_spec_command import add_run_spec_command, run_run_spec_command
from core.config import LapchartConfig
from core.constants import DEFAULT_RACE_STATUS, RACE_STATUSES
from core.run_spec_execution import (
    format_format_row,
    format_ingest_lines,
    format_parse_lines,
    format_race_row,
    write_parsed_json,
)
from ingest.input_reader import parse_slot_assignments, read_json_file
from parsers.registry import list_formats
from store.race_sdk import LapchartClient

DEFAULT_CLI_ACTOR = "cli"


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(prog="lapchart", description="Lapchart timing ingest CLI")
    parser.add_argument("--data-root", help="Override LAPCHART_DATA_ROOT for this command")
    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_formats_command(subparsers)
    _add_parse_command(subparsers)
    _add_ingest_command(subparsers)
    _add_reprocess_command(subparsers)
    _add_reparse_command(subparsers)
    _add_races_command(subparsers)
    add_run_spec_command(subparsers)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the Lapchart CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    client = _build_client(args.data_root)
    if args.command == "formats":
        return _run_formats_command(client)
    if args.command == "parse":
        return _run_parse_command(client, args)
    if args.command == "ingest":
        return _run_ingest_command(client, args)
    if args.command == "reprocess":
        return _run_reprocess_command(client, args)
    if args.command == "reparse":
        return _run_reparse_command(client, args)
    if args.command == "races":
        return _run_races_command(client)
    if args.command == "run-spec":
        return run_run_spec_command(client, args)
    parser.error(f"Unsupported command: {args.command}")
    return 2


def _build_client(data_root: str | None) -> LapchartClient:
    """Build SDK client with optional data-root override.

    Args:
        data_root: Optional override path.

    Returns:
        Configured SDK client.
    """
    config = LapchartConfig.from_env()
    if data_root:
        config = replace(config, data_root=Path(data_root).expanduser().resolve())
    return LapchartClient(config)


def _run_formats_command(client: LapchartClient) -> int:
    """Handle formats command."""
    for info in client.formats():
        print(format_format_row(info))
    return 0


def _run_parse_command(client: LapchartClient, args: argparse.Namespace) -> int:
    """Handle parse command.

    Args:
        client: SDK client.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    parsed = client.parse_files(args.format, parse_slot_assignments(args.file))
    if args.output:
        write_parsed_json(parsed, Path(args.output).expanduser())
    _print_lines(format_parse_lines(parsed))
    return 0


def _run_ingest_command(client: LapchartClient, args: argparse.Namespace) -> int:
    """Handle ingest command.

    Args:
        client: SDK client.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    metadata = {
        "name": args.name,
        "date": args.date,
        "track": args.track,
        "series": args.series,
        "season": args.season,
        "premium": args.premium,
        "status": args.status,
    }
    if args.format:
        result = client.ingest_files(
            metadata, args.format, parse_slot_assignments(args.file), actor=args.actor
        )
    else:
        raw_annotations = read_json_file(args.annotations) if args.annotations else None
        result = client.ingest(
            metadata, read_json_file(args.data), raw_annotations, actor=args.actor
        )
    _print_lines(format_ingest_lines(result))
    return 0


def _run_reprocess_command(client: LapchartClient, args: argparse.Namespace) -> int:
    """Handle reprocess command."""
    _print_lines(format_ingest_lines(client.reprocess(args.race_id)))
    return 0


def _run_reparse_command(client: LapchartClient, args: argparse.Namespace) -> int:
    """Handle reparse command."""
    result = client.reparse(args.race_id, args.format, parse_slot_assignments(args.file))
    _print_lines(format_ingest_lines(result))
    return 0


def _run_races_command(client: LapchartClient) -> int:
    """Handle races command."""
    for race in client.races():
        print(format_race_row(race))
    return 0


def _print_lines(lines: Sequence[str]) -> None:
    for line in lines:
        print(line)


def _add_formats_command(subparsers: Any) -> None:
    """Register formats subcommand."""
    subparsers.add_parser("formats", help="List registered export formats")


def _add_parse_command(subparsers: Any) -> None:
    """Register parse subcommand."""
    parser = subparsers.add_parser("parse", help="Parse export files without storing them")
    _add_format_arguments(parser, required=True)
    parser.add_argument("--output", help="Optional path for the parsed chart JSON")


def _add_ingest_command(subparsers: Any) -> None:
    """Register ingest subcommand."""
    parser = subparsers.add_parser(
        "ingest",
        help="Ingest export files or canonical race JSON as a new race",
    )
    source_group = parser.add_mutually_exclusive_group(required=True)
    source_group.add_argument("--format", choices=_format_ids(), help="Export format id")
    source_group.add_argument("--data", help="Canonical race data JSON file")
    parser.add_argument(
        "--file",
        action="append",
        default=[],
        metavar="SLOT=PATH",
        help="Export file for a format slot, repeatable",
    )
    parser.add_argument("--annotations", help="Annotation JSON file, used with --data")
    parser.add_argument("--name", required=True, help="Event name")
    parser.add_argument("--date", required=True, help="Race date, YYYY-MM-DD")
    parser.add_argument("--track", required=True, help="Circuit name")
    parser.add_argument("--series", required=True, help="Sanctioning series")
    parser.add_argument("--season", required=True, type=int, help="Season year")
    parser.add_argument("--premium", action="store_true", help="Mark race as premium content")
    parser.add_argument(
        "--status",
        default=DEFAULT_RACE_STATUS,
        choices=RACE_STATUSES,
        help="Publication status",
    )
    parser.add_argument("--actor", default=DEFAULT_CLI_ACTOR, help="Creator recorded on the race")


def _add_reprocess_command(subparsers: Any) -> None:
    """Register reprocess subcommand."""
    parser = subparsers.add_parser(
        "reprocess",
        help="Rebuild entry and lap rows from the stored race blob",
    )
    parser.add_argument("race_id", help="Stored race id")


def _add_reparse_command(subparsers: Any) -> None:
    """Register reparse subcommand."""
    parser = subparsers.add_parser(
        "reparse",
        help="Re-run a parser on export files and replace a stored race",
    )
    parser.add_argument("race_id", help="Stored race id")
    _add_format_arguments(parser, required=True)


def _add_races_command(subparsers: Any) -> None:
    """Register races subcommand."""
    subparsers.add_parser("races", help="List stored races")


def _add_format_arguments(parser: argparse.ArgumentParser, required: bool) -> None:
    parser.add_argument(
        "--format", required=required, choices=_format_ids(), help="Export format id"
    )
    parser.add_argument(
        "--file",
        action="append",
        default=[],
        metavar="SLOT=PATH",
        help="Export file for a format slot, repeatable",
    )


def _format_ids() -> list[str]:
    return [info.format_id for info in list_formats()]
