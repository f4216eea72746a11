"""pagewright command line entrypoint.

    pagewright build [--config FILE] [--dev] [--output DIR]
    pagewright watch [--config FILE] [--dev] [--output DIR]

``build`` renders the site once and exits non-zero on failure, leaving no
partial output behind. ``watch`` builds, then rebuilds incrementally on every
change under the source root until interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any

import structlog
from pydantic import ValidationError

from pagewright import __version__
from pagewright.builder import SiteBuilder
from pagewright.config import Settings, load_settings
from pagewright.data import load_data_file
from pagewright.errors import BuildError
from pagewright.state import create_state
from pagewright.watcher import watch

log = structlog.get_logger()


def _setup_logging(settings: Settings) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pagewright",
        description="Build a static site from views and a data file.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", help="YAML settings file (default: ./pagewright.yaml)")
    common.add_argument(
        "--dev",
        action="store_true",
        default=None,
        help="Development mode: no hashed asset names",
    )
    common.add_argument("--output", help="Output directory (overrides site.output)")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("build", parents=[common], help="Build the site once")
    sub.add_parser("watch", parents=[common], help="Build, then rebuild on changes")
    return parser


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if args.dev is not None:
        overrides["build"] = {"dev": args.dev}
    if args.output:
        overrides["site"] = {"output": args.output}
    return overrides


async def run(settings: Settings, *, watch_mode: bool = False) -> None:
    """Run one build, then keep watching when ``watch_mode`` is set."""
    funneled = load_data_file(settings.site.data_path)
    state = create_state(settings, funneled, watch=watch_mode)
    builder = SiteBuilder(state)

    if not watch_mode:
        await builder.build()
        return

    try:
        await builder.build()
    except BuildError as exc:
        # Keep watching: the next change may fix it.
        log.error("build_failed", **exc.to_dict()["error"], snippet=exc.snippet or None)
    await watch(state, builder)


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        settings = load_settings(args.config, **_overrides(args))
    except (ValidationError, OSError) as exc:
        print(f"pagewright: invalid configuration: {exc}", file=sys.stderr)
        return 2

    _setup_logging(settings)
    log.info("pagewright_starting", version=__version__, command=args.command)

    try:
        asyncio.run(run(settings, watch_mode=args.command == "watch"))
    except BuildError as exc:
        log.error("build_failed", **exc.to_dict()["error"])
        if exc.snippet:
            print(exc.snippet, file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        log.info("pagewright_interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
