"""pywitr - command line entry point."""

import argparse
import logging
import sys
import tomllib
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from rich.console import Console

from pywitr.backends import default_sources
from pywitr.classify import LauncherTables, default_tables, load_tables
from pywitr.config import Settings
from pywitr.errors import TargetNotFound, WitrError
from pywitr.explain import explain, list_connections, socket_states_for_port
from pywitr.models import Target, TargetKind
from pywitr.render import (
    render_error,
    render_json,
    render_short,
    render_standard,
    render_tree,
    render_warnings,
)

logger = logging.getLogger(__name__)

VERBOSITY_LEVELS = {1: logging.INFO, 2: logging.DEBUG}


def package_version() -> str:
    try:
        return version("pywitr")
    except PackageNotFoundError:
        return "unknown"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pywitr",
        description="Explain why a process is running: who started it and how.",
    )
    parser.add_argument("name", nargs="?", help="process or service name to explain")
    parser.add_argument("--pid", help="explain a specific PID")
    parser.add_argument("--port", help="explain the process listening on a port")

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--short", action="store_true", help="one-line summary")
    mode.add_argument("--tree", action="store_true", help="show the full ancestry tree")
    mode.add_argument("--json", action="store_true", help="output the result as JSON")
    mode.add_argument("--warnings", action="store_true", help="show only warnings")
    mode.add_argument("-i", "--interactive", action="store_true", help="interactive browser")

    parser.add_argument("--no-color", action="store_true", help="disable colorized output")
    parser.add_argument("--timeout", type=float, help="seconds allowed per external query")
    parser.add_argument("--launchers", type=Path, help="alternate launcher table (TOML)")
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="log to stderr (-vv for debug)"
    )
    parser.add_argument("--version", action="version", version=f"pywitr {package_version()}")
    return parser


def configure_logging(verbosity: int, default_level: str) -> None:
    level = VERBOSITY_LEVELS.get(min(verbosity, 2))
    if level is None:
        level = logging.getLevelName(default_level)
        if not isinstance(level, int):
            level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def resolve_tables(settings: Settings) -> LauncherTables:
    if settings.launchers_path is None:
        return default_tables()
    return load_tables(settings.launchers_path)


def main(argv: list[str] | None = None) -> int:
    """Entry point for the pywitr command. Returns the process exit code."""
    raw_argv = sys.argv[1:] if argv is None else argv
    parser = build_parser()
    args = parser.parse_args(raw_argv)

    settings = Settings.from_env().with_overrides(
        timeout=args.timeout,
        launchers_path=args.launchers,
        color=False if args.no_color else None,
    )
    configure_logging(args.verbose, settings.log_level)
    console = Console(no_color=not settings.color, highlight=False, soft_wrap=True)

    try:
        tables = resolve_tables(settings)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        console.print(f"[bold red]Error:[/bold red] cannot load launcher table: {exc}")
        return 2

    sources = default_sources(settings)

    if args.interactive:
        # Textual is only imported for the interactive browser
        from pywitr.app import WitrApp

        WitrApp(sources, tables).run()
        return 0

    try:
        target = Target.from_args(pid=args.pid, port=args.port, name=args.name)
    except ValueError:
        parser.print_help()
        return 1

    try:
        report = explain(target, sources, tables)
    except WitrError as exc:
        logger.debug("resolution of %s failed", target, exc_info=True)
        states = None
        if isinstance(exc, TargetNotFound) and target.kind is TargetKind.PORT:
            states = socket_states_for_port(int(target.value), list_connections(sources))
        render_error(exc, console, argv=["pywitr", *raw_argv], states=states)
        return 1

    if args.json:
        render_json(report, console)
    elif args.warnings:
        render_warnings(report, console)
    elif args.tree:
        render_tree(report, console)
    elif args.short:
        render_short(report, console)
    else:
        render_standard(report, console)
    return 0


if __name__ == "__main__":
    sys.exit(main())
