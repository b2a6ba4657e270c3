"""Command-line entry point for booru sync.

Usage:
    booru-sync [--source derpibooru] [--dest ponybooru,ponerpics] [--fallback]
    booru-sync --watch                # rerun every BOORU_SYNC_AUTORUN_INTERVAL_HOURS

Credentials come from the environment (or ``.env``): ``<BOORU>_API_KEY`` and,
for applying interactions, ``<BOORU>_SESSION_COOKIE``.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from typing import TYPE_CHECKING, Any, TextIO

from booru_sync.adapters.booru.sync.cancellation import CancellationToken
from booru_sync.adapters.booru.sync.service import BooruSyncService
from booru_sync.config import KNOWN_BOORUS, load_config
from booru_sync.core.logging_utils import setup_json_logging
from booru_sync.services.scheduler import SchedulerService

if TYPE_CHECKING:
    from collections.abc import Sequence

    from booru_sync.adapters.booru.sync.progress import ProgressSink
    from booru_sync.adapters.booru.sync.report import SyncRunResult
    from booru_sync.config import AppConfig

logger = logging.getLogger("booru_sync.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="booru-sync", description="Sync faves and upvotes across boorus"
    )
    parser.add_argument(
        "--source",
        choices=sorted(KNOWN_BOORUS),
        default=None,
        help="Booru to copy interactions from (default: BOORU_SYNC_SOURCE or derpibooru)",
    )
    parser.add_argument(
        "--dest",
        action="append",
        default=None,
        metavar="BOORU",
        help="Destination booru; repeat or comma-separate for several",
    )
    parser.add_argument("--no-faves", action="store_true", help="Do not sync faves")
    parser.add_argument("--no-likes", action="store_true", help="Do not sync upvotes")
    parser.add_argument(
        "--fallback",
        action="store_true",
        help="Download and hash files, then try reverse image search, when hash lookup fails",
    )
    parser.add_argument(
        "--tag-filter", default=None, help="Only sync source images matching this search"
    )
    parser.add_argument(
        "--hash-store", default=None, metavar="PATH", help="File holding computed hashes"
    )
    parser.add_argument(
        "--watch",
        action="store_true",
        help="Keep running and sync every autorun interval",
    )
    parser.add_argument(
        "--interval-hours",
        type=int,
        default=None,
        help="Autorun interval for --watch (default: BOORU_SYNC_AUTORUN_INTERVAL_HOURS)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Structured log level (default: LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        metavar="PATH",
        help="Also append progress and report lines to this file",
    )
    return parser


def sync_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Settings given on the command line; ``None`` means "use the environment"."""
    return {
        "source": args.source,
        "destinations": ",".join(args.dest) if args.dest else None,
        "sync_faves": False if args.no_faves else None,
        "sync_likes": False if args.no_likes else None,
        "use_fallback": True if args.fallback else None,
        "tag_filter": args.tag_filter,
        "hash_store_path": args.hash_store,
        "autorun_interval_hours": args.interval_hours,
    }


def make_progress_sink(stream: TextIO, log_file: TextIO | None = None) -> ProgressSink:
    def sink(message: str) -> None:
        print(message, file=stream, flush=True)
        if log_file is not None:
            log_file.write(message + "\n")
            log_file.flush()

    return sink


def _install_signal_handlers(on_signal: Any) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on Windows event loops; Ctrl+C then stops the process.
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, on_signal)


async def run_once(cfg: AppConfig, progress: ProgressSink) -> SyncRunResult:
    token = CancellationToken()

    def _cancel() -> None:
        logger.info("sync_cancel_requested")
        progress("Stopping sync...")
        token.cancel()

    _install_signal_handlers(_cancel)
    service = BooruSyncService(cfg, progress=progress)
    return await service.run(token)


async def run_watch(cfg: AppConfig, progress: ProgressSink) -> int:
    stopped = asyncio.Event()
    token = CancellationToken()

    async def _run(child: CancellationToken) -> SyncRunResult:
        return await BooruSyncService(cfg, progress=progress).run(child)

    scheduler = SchedulerService(cfg, _run, token=token)

    def _stop() -> None:
        logger.info("watch_stop_requested")
        token.cancel()
        stopped.set()

    _install_signal_handlers(_stop)
    await scheduler.start(run_immediately=True)
    progress(f"Watching: syncing every {cfg.sync.autorun_interval_hours} hour(s)")
    try:
        await stopped.wait()
    finally:
        await scheduler.stop()
    last = scheduler.last_result
    return 0 if last is None or last.success else 1


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        cfg = load_config(sync_overrides=sync_overrides(args))
    except RuntimeError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    setup_json_logging(
        args.log_level or cfg.runtime.log_level,
        serialize=cfg.runtime.log_json,
        log_file=cfg.runtime.log_file,
    )

    if args.watch and cfg.sync.autorun_interval_hours <= 0:
        print(
            "ERROR: --watch needs an autorun interval "
            "(--interval-hours or BOORU_SYNC_AUTORUN_INTERVAL_HOURS)",
            file=sys.stderr,
        )
        return 1

    with contextlib.ExitStack() as stack:
        log_file = (
            stack.enter_context(open(args.log_file, "a", encoding="utf-8"))
            if args.log_file
            else None
        )
        progress = make_progress_sink(sys.stdout, log_file)

        if args.watch:
            return asyncio.run(run_watch(cfg, progress))

        result = asyncio.run(run_once(cfg, progress))
        return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
