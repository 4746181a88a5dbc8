"""
CLI (Command Line Interface).

Fetches up to four weeks of a WebUntis timetable and writes them as
subscribable .ics file(s), e.g.:

    untiscal --base-url https://school.webuntis.com/WebUntis --element-id 1234 \\
        --date 2025-01-13 --date 2025-01-20 --out public/timetable.ics

    untiscal ... --split-by-overrides --override GK=Gemeinschaftskunde --all-formats
    untiscal ... --append public/timetable.ics     # keep events of earlier runs

Session material is read from the environment (or a .env file):

    UNTIS_COOKIE     Cookie header of a logged-in browser session
    UNTIS_TENANT_ID  Tenant-Id header
"""

from __future__ import annotations

import argparse
import logging
import os
from datetime import date
from pathlib import Path

from dotenv import load_dotenv
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from untiscal.config import ELEMENT_TYPES, FetchSettings, RunConfig, parse_override
from untiscal.errors import UntisCalError
from untiscal.pipeline import run
from untiscal.summaries import WEEK_RULES

log = logging.getLogger("untiscal")

console = Console()


def _iso_date(text: str) -> date:
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid date {text!r}, expected YYYY-MM-DD") from exc


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argparse CLI parser.
    """
    parser = argparse.ArgumentParser(prog="untiscal", description="WebUntis timetable -> iCalendar")

    src = parser.add_argument_group("source")
    src.add_argument("--base-url", required=True, help="WebUntis base URL, e.g. https://x.webuntis.com/WebUntis")
    src.add_argument("--school", default="", help="School name as used in the WebUntis login")
    src.add_argument("--element-type", choices=sorted(ELEMENT_TYPES), default="student")
    src.add_argument("--element-id", type=int, required=True, help="Id of the class/student/... timetable")
    src.add_argument(
        "--date",
        dest="dates",
        type=_iso_date,
        action="append",
        default=[],
        help="A day inside a week to fetch (repeatable, at most 4)",
    )

    out = parser.add_argument_group("output")
    out.add_argument("--out", type=Path, required=True, help="Output .ics path (base path when splitting)")
    out.add_argument("--name", default="Timetable", help="Calendar name")
    out.add_argument("--append", type=Path, default=None, help="Previous .ics file to merge with")
    out.add_argument("--no-summaries", action="store_true", help="Do not add multi-day summary events")
    out.add_argument("--no-gap-split", action="store_true", help="One summary per week regardless of gaps")
    out.add_argument("--week-rule", choices=WEEK_RULES, default="iso", help="Week numbering of summaries")

    split = parser.add_argument_group("splitting")
    split.add_argument("--split-by-course", action="store_true", help="One calendar per course")
    split.add_argument("--split-by-overrides", action="store_true", help="One calendar per override, rest in Misc")
    split.add_argument("--all-formats", action="store_true", help="Also write the combined calendar")
    split.add_argument(
        "--override",
        dest="overrides",
        action="append",
        default=[],
        metavar="SHORT=LONG",
        help="Replace a course's long name (repeatable)",
    )

    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser


def config_from_args(args: argparse.Namespace) -> RunConfig:
    """
    Turn parsed arguments (plus environment) into a RunConfig.
    """
    settings = FetchSettings(
        base_url=args.base_url,
        element_id=args.element_id,
        element_type=ELEMENT_TYPES[args.element_type],
        school=args.school,
        cookie=os.getenv("UNTIS_COOKIE", ""),
        tenant_id=os.getenv("UNTIS_TENANT_ID", ""),
    )
    return RunConfig(
        fetch=settings,
        dates=list(args.dates),
        output=args.out,
        skip_summaries=args.no_summaries,
        skip_gap_split=args.no_gap_split,
        split_by_course=args.split_by_course,
        split_by_overrides=args.split_by_overrides,
        all_formats=args.all_formats,
        overrides=dict(parse_override(o) for o in args.overrides),
        append_path=args.append,
        week_rule=args.week_rule,
        calendar_name=args.name,
    )


def main(argv: list[str] | None = None) -> None:
    """
    CLI entry point. Parses args, runs the pipeline and exits via
    SystemExit with a return code.
    """
    load_dotenv()
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    logging.captureWarnings(True)

    try:
        config = config_from_args(args)
        result = run(config)
    except UntisCalError as exc:
        log.error("%s", exc)
        raise SystemExit(1)

    if result.empty:
        console.print("Nothing to write.")
        raise SystemExit(0)

    table = Table(title="Written calendars", box=box.SIMPLE)
    table.add_column("File")
    table.add_column("Events", justify="right")
    for path, count in result.written.items():
        table.add_row(str(path), str(count))
    console.print(table)
    raise SystemExit(0)
