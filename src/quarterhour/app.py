"""Application entry point for quarterhour."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from datetime import date
from pathlib import Path

from ._build_info import APP_VERSION
from .app_controller import ApplicationController, DayView, StatisticsView
from .core.exception_logging import install_global_exception_logger, install_loop_exception_logger
from .core.exceptions import QuarterHourError
from .core.exporter import ExportFormat, ExportMode, ExportOptions
from .core.logging_config import configure_logging
from .core.models import DEFAULT_PROJECT_COLOR
from .core.mutations import Notification, NotificationLevel
from .core.paths import set_app_data_directory
from .core.repository import JsonlRemoteStore
from .core.time_slots import format_time_slot, parse_time_slot

LOGGER = logging.getLogger("quarterhour.main")


def _iso_date(text: str) -> date:
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {text!r}") from exc


def _time_slot(text: str) -> float:
    try:
        return parse_time_slot(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="quarterhour", description="Quarter-hour time tracking.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
    parser.add_argument("--data-dir", type=Path, help="Directory holding projects, slots and settings")
    parser.add_argument("--verbose", "-v", action="store_true", help="Echo log records to stderr")
    commands = parser.add_subparsers(dest="command", required=True)

    day = commands.add_parser("day", help="Show the time entries of one date")
    day.add_argument("--date", type=_iso_date, default=None)
    day.add_argument("--earlier", action="store_true", help="Extend the grid to midnight")
    day.add_argument("--later", action="store_true", help="Extend the grid to the end of the day")

    stats = commands.add_parser("stats", help="Show hours per project")
    stats.add_argument("--start", type=_iso_date)
    stats.add_argument("--end", type=_iso_date)
    stats.add_argument("--include-archived", action="store_true")

    export = commands.add_parser("export", help="Export tracked time")
    export.add_argument("--start", type=_iso_date)
    export.add_argument("--end", type=_iso_date)
    export.add_argument("--mode", choices=[mode.value for mode in ExportMode], default=ExportMode.SUMMARY.value)
    export.add_argument("--format", choices=[fmt.value for fmt in ExportFormat], default=ExportFormat.CSV.value)
    export.add_argument("--output", type=Path)

    project = commands.add_parser("project", help="Create a project")
    project.add_argument("name")
    project.add_argument("--color", default=DEFAULT_PROJECT_COLOR)

    paint = commands.add_parser("paint", help="Book a time range for a project")
    paint.add_argument("project")
    paint.add_argument("start", type=_time_slot)
    paint.add_argument("end", type=_time_slot)
    paint.add_argument("--date", type=_iso_date, default=None)
    paint.add_argument("--replace", action="store_true", help="Take over slots booked for other projects")

    clear = commands.add_parser("clear", help="Remove booked slots in a time range")
    clear.add_argument("start", type=_time_slot)
    clear.add_argument("end", type=_time_slot)
    clear.add_argument("--date", type=_iso_date, default=None)
    return parser


def _print_notification(notification: Notification) -> None:
    stream = sys.stderr if notification.level in (NotificationLevel.WARNING, NotificationLevel.ERROR) else sys.stdout
    print(f"[{notification.level.value}] {notification.message}", file=stream)


def _print_day(view: DayView) -> None:
    first, last = view.hour_range
    print(f"{view.day.isoformat()}  (grid {first:02d}:00-{last:02d}:00)")
    if not view.entries:
        print("  no time tracked")
        return
    names = {total.project_id: total.name for total in view.totals}
    for entry in view.entries:
        note = f"  {entry.note}" if entry.note else ""
        print(
            f"  {format_time_slot(entry.start_time)}-{format_time_slot(entry.end_time)}"
            f"  {names.get(entry.project_id, 'Unknown Project'):<24} {entry.hours:>5.2f}h{note}"
        )
    print(f"  total {view.total_hours:.2f}h")


def _print_statistics(view: StatisticsView) -> None:
    start = view.start.isoformat() if view.start else "beginning"
    end = view.end.isoformat() if view.end else "today"
    print(f"Hours from {start} to {end}")
    for total in view.totals:
        flag = " (archived)" if total.archived else ""
        print(f"  {total.name + flag:<32} {total.hours:>8.2f}h  {total.pretty_total}")
    print(f"  {'Total':<32} {view.total_hours:>8.2f}h")


async def _run_command(args: argparse.Namespace) -> int:
    install_loop_exception_logger(asyncio.get_running_loop())
    controller = ApplicationController(JsonlRemoteStore(), on_notification=_print_notification)
    day = getattr(args, "date", None) or date.today()

    if args.command == "day":
        await controller.open_day(day)
        _print_day(controller.day_view(day, show_earlier=args.earlier, show_later=args.later))
        return 0

    if args.command == "stats":
        remember = args.start is not None or args.end is not None
        view = await controller.statistics(
            args.start, args.end, include_archived=args.include_archived, remember_range=remember
        )
        _print_statistics(view)
        return 0

    if args.command == "export":
        options = ExportOptions(
            mode=ExportMode(args.mode), format=ExportFormat(args.format), start=args.start, end=args.end
        )
        target = await controller.export(options, args.output)
        print(f"Exported to {target}")
        return 0

    if args.command == "project":
        await controller.catalog.load()
        result = await controller.catalog.add_project(args.name, args.color)
        return 0 if result.ok else 1

    if args.command == "paint":
        await controller.catalog.load()
        project = controller.find_project(args.project)
        if project is None:
            print(f"Unknown project: {args.project}", file=sys.stderr)
            return 2
        result = await controller.paint(project, day, args.start, args.end, replace=args.replace)
        return 0 if result.ok else 1

    if args.command == "clear":
        result = await controller.clear(day, args.start, args.end)
        return 0 if result.ok else 1

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)
    if args.data_dir is not None:
        set_app_data_directory(args.data_dir)
    configure_logging(console_level=logging.DEBUG if args.verbose else None)
    install_global_exception_logger()

    LOGGER.info("Starting quarterhour", extra={"event": "app_start", "command": args.command})
    try:
        exit_code = asyncio.run(_run_command(args))
    except QuarterHourError as exc:
        LOGGER.error("Command failed", exc_info=exc, extra={"event": "app_command_failed"})
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except Exception:
        LOGGER.exception("Fatal error during application execution", extra={"event": "app_crash"})
        return 1
    LOGGER.info("quarterhour exited", extra={"event": "app_exit", "code": exit_code})
    return exit_code
