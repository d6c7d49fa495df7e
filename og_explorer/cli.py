"""Command-line entry point for the metadata explorer."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from pathlib import Path
from typing import Iterable, List, Sequence

from .config import ExplorerConfig
from .errors import ExplorerError
from .hover import hover_for_icon, hover_for_share_image, sort_icons
from .models import PublishedState
from .session import InspectResult, inspect_static, run_inspect, watch_url
from .utils import decode_entities, humanize_language

logger = logging.getLogger("og_explorer.cli")


def _ensure_command_prefix(argv: Sequence[str], commands: Iterable[str]) -> Sequence[str]:
    if not argv:
        return argv
    first = argv[0]
    if first in commands or first.startswith("-"):
        return argv
    return ("inspect", *argv)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Navigation timeout in seconds",
    )
    parser.add_argument(
        "--headed",
        action="store_true",
        help="Show the browser window instead of running headless",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print metadata as JSON instead of a text summary",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def _add_inspect_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("urls", nargs="+", help="One or more URLs to inspect")
    parser.add_argument(
        "--wait",
        type=float,
        default=None,
        help="Seconds to keep the page open after the first publish",
    )
    parser.add_argument(
        "--static",
        action="store_true",
        help="Fetch raw HTML with requests instead of rendering in a browser",
    )
    parser.add_argument(
        "--screenshots",
        type=Path,
        default=None,
        help="Directory where page screenshots should be written",
    )
    _add_common_arguments(parser)


def _add_watch_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("url", help="URL to keep open")
    parser.add_argument(
        "--duration",
        type=float,
        default=30.0,
        help="Seconds to watch the page for metadata changes",
    )
    _add_common_arguments(parser)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Inspect the Open Graph, Twitter Card and icon metadata of web pages.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    inspect_parser = subparsers.add_parser(
        "inspect", help="Render pages and print their share metadata"
    )
    _add_inspect_arguments(inspect_parser)

    watch_parser = subparsers.add_parser(
        "watch", help="Keep a page open and print metadata every time it changes"
    )
    _add_watch_arguments(watch_parser)

    argv = list(sys.argv[1:] if argv is None else argv)
    argv = list(_ensure_command_prefix(argv, subparsers.choices.keys()))
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> ExplorerConfig:
    config = ExplorerConfig.from_env()
    if args.timeout is not None:
        config.navigation_timeout = args.timeout
    if getattr(args, "wait", None) is not None:
        config.wait_after_load = args.wait
    if args.headed:
        config.headless = False
    return config


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


def format_summary(state: PublishedState) -> str:
    """Human-readable summary of a published state."""
    meta = state.metadata
    lines = [
        meta.source_url,
        f"  Title:        {decode_entities(meta.title) or '—'}",
        f"  Description:  {decode_entities(meta.description) or '—'}",
        f"  Host:         {meta.host or '—'}",
    ]
    for twitter in (False, True):
        info = hover_for_share_image(state, twitter=twitter)
        detail = info.warning or info.size or info.raw_tag
        lines.append(f"  {info.type + ':':<13} {detail}")
    lines.extend(
        [
            f"  Twitter:      {decode_entities(meta.twitter_title) or '—'}",
            f"  Theme color:  {meta.theme_color.upper() or '—'}",
            f"  Background:   {state.background_color.hex}",
            f"  Canonical:    {meta.canonical or '—'}",
            f"  Robots:       {meta.robots or '—'}",
            f"  Generator:    {meta.generator or '—'}",
            f"  Language:     {humanize_language(meta.lang) or '—'}",
            f"  PWA:          {'yes' if meta.has_pwa else 'no'}",
            f"  Viewport:     {'yes' if meta.has_viewport else 'no'}",
            "  Icons:",
        ]
    )
    for icon in sort_icons(meta.icons):
        info = hover_for_icon(icon)
        lines.append(f"    - {info.type} {info.warning or info.size}: {icon.url}")
    return "\n".join(lines)


def _emit(state: PublishedState, as_json: bool) -> None:
    if as_json:
        sys.stdout.write(json.dumps(state.to_dict(), indent=2, ensure_ascii=False) + "\n")
    else:
        sys.stdout.write(format_summary(state) + "\n")
    sys.stdout.flush()


async def _inspect_all_static(urls: List[str], config: ExplorerConfig) -> List[InspectResult]:
    results: List[InspectResult] = []
    for url in urls:
        result = await inspect_static(url, config)
        if result:
            results.append(result)
    return results


def _run_inspect(args: argparse.Namespace) -> int:
    config = build_config(args)
    overall_start = time.perf_counter()
    if args.static:
        results = asyncio.run(_inspect_all_static(args.urls, config))
    else:
        results = asyncio.run(run_inspect(args.urls, config, args.screenshots))
    total_elapsed = time.perf_counter() - overall_start

    for result in results:
        _emit(result.state, args.json)

    failures = len(args.urls) - len(results)
    logger.info(
        "Finished in %.2fs (%d/%d succeeded, %d failed)",
        total_elapsed,
        len(results),
        len(args.urls),
        failures,
    )
    for result in results:
        logger.debug("Timing for %s -> total: %.2fs", result.url, result.total_seconds)
    return 1 if failures else 0


def _run_watch(args: argparse.Namespace) -> int:
    config = build_config(args)
    try:
        count = asyncio.run(
            watch_url(args.url, config, args.duration, lambda state: _emit(state, args.json))
        )
    except ExplorerError as exc:
        logger.error("Watching %s failed: %s", args.url, exc)
        return 1
    logger.info("Observed %d metadata publishes for %s", count, args.url)
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    _configure_logging(args.verbose)
    if args.command == "inspect":
        status = _run_inspect(args)
    else:
        status = _run_watch(args)
    sys.exit(status)


if __name__ == "__main__":
    main()
