from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Optional

import requests

from .api import DEFAULT_HOST, DEFAULT_PORT, build_app, serve_api
from .batch import BatchRunner, format_summary
from .config import ConfigError, Settings, load_sources
from .dates import resolve_lookback
from .dispatcher import SourceDispatcher
from .fetchers import FeedSource, GeekNewsFetcher, RSSFetcher
from .models import TRIGGER_MANUAL
from .schedule import describe_times, hourly_times, parse_times, run_schedule
from .scoring import RelevanceScorer
from .senders.router import SenderRouter
from .senders.telegram import TelegramBotSender
from .sources import KIND_GEEKNEWS, SourceConfig
from .store import CACHE_MODE_BYPASS, CACHE_MODE_MEMORY, CACHE_MODES, DedupCache


def _build_router(settings: Settings, session: requests.Session) -> SenderRouter:
    sender = None
    telegram_any = bool(settings.telegram_bot_token or settings.telegram_chat_id)
    if settings.telegram_bot_token and settings.telegram_chat_id:
        sender = TelegramBotSender(
            bot_token=settings.telegram_bot_token,
            chat_id=settings.telegram_chat_id,
            timeout_sec=settings.request_timeout_sec,
            api_base=settings.telegram_api_base,
            session=session,
        )
    elif telegram_any and not settings.dry_run:
        raise SystemExit("Telegram sender requires both TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID.")

    if sender is None and not settings.dry_run:
        raise SystemExit("No sender configured. Set TELEGRAM_BOT_TOKEN + TELEGRAM_CHAT_ID, or use --dry-run.")

    return SenderRouter(
        sender=sender,
        dry_run=settings.dry_run,
        max_attempts=settings.send_max_attempts,
        retry_delay_sec=settings.send_retry_delay_sec,
    )


def _build_fetcher(source: SourceConfig, settings: Settings, session: requests.Session) -> FeedSource:
    if source.kind == KIND_GEEKNEWS:
        return GeekNewsFetcher(
            source_key=source.key,
            base_url=source.feed_url,
            timeout_sec=settings.request_timeout_sec,
            user_agent=settings.request_user_agent,
            session=session,
        )
    return RSSFetcher(
        source_key=source.key,
        feed_url=source.feed_url,
        timeout_sec=settings.request_timeout_sec,
        user_agent=settings.request_user_agent,
        session=session,
    )


def _resolve_cache_mode(flag: Optional[str], configured: Optional[str], scheduled: bool) -> str:
    mode = (flag or configured or "").strip().lower()
    if not mode:
        return CACHE_MODE_MEMORY if scheduled else CACHE_MODE_BYPASS
    if mode not in CACHE_MODES:
        choices = ", ".join(CACHE_MODES)
        raise SystemExit(f"Unsupported cache mode '{mode}'. Available: {choices}.")
    return mode


def _select_sources(sources: list[SourceConfig], requested: Optional[list[str]]) -> list[SourceConfig]:
    if not requested:
        return sources
    by_key = {source.key: source for source in sources}
    unknown = [key for key in requested if key not in by_key]
    if unknown:
        available = ", ".join(sorted(by_key))
        raise SystemExit(f"Unknown or disabled source(s): {', '.join(unknown)}. Available: {available}.")
    return [by_key[key] for key in dict.fromkeys(requested)]


def _lookback_arg(value: str) -> int:
    try:
        return resolve_lookback(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from None


def _positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got '{value}'") from None
    if parsed < 1:
        raise argparse.ArgumentTypeError("value must be at least 1")
    return parsed


def _positive_float(value: str) -> float:
    try:
        parsed = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a number, got '{value}'") from None
    if parsed <= 0:
        raise argparse.ArgumentTypeError("value must be positive")
    return parsed


def _port(value: str) -> int:
    parsed = _positive_int(value)
    if parsed > 65535:
        raise argparse.ArgumentTypeError("port must be in [1, 65535]")
    return parsed


def _schedule_times(args: argparse.Namespace, settings: Settings) -> Optional[list[tuple[int, int]]]:
    interval_form = any(value is not None for value in (args.start_hour, args.end_hour, args.interval_hours))
    if args.times and interval_form:
        raise SystemExit("--times cannot be combined with --start-hour/--end-hour/--interval-hours")
    if args.once and (args.times or interval_form):
        raise SystemExit("--once cannot be combined with schedule options")
    if args.once and args.serve:
        raise SystemExit("--once cannot be combined with --serve")
    try:
        if args.times:
            return parse_times(args.times)
        if interval_form:
            return hourly_times(
                9 if args.start_hour is None else args.start_hour,
                18 if args.end_hour is None else args.end_hour,
                2 if args.interval_hours is None else args.interval_hours,
            )
        if settings.schedule_times and not args.once:
            return parse_times(",".join(settings.schedule_times))
    except ValueError as exc:
        raise SystemExit(f"Invalid schedule: {exc}") from None
    return None


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Tech blog feed filtering and Telegram delivery")
    parser.add_argument("--config-file", default="config.ini", help="Path to config.ini file")
    parser.add_argument("--env-file", default=".env", help="Path to .env file")
    parser.add_argument("--once", action="store_true", help="Run every source once and exit, ignoring SCHEDULE_TIMES")
    parser.add_argument("--times", default=None, metavar="LIST", help="Run daily at these times, e.g. 9,12:30,18")
    parser.add_argument("--start-hour", type=int, default=None, help="First hourly run (0-23)")
    parser.add_argument("--end-hour", type=int, default=None, help="Last hourly run (0-23)")
    parser.add_argument("--interval-hours", type=int, default=None, help="Hours between runs (1-24)")
    parser.add_argument("--dry-run", action="store_true", help="Run without sending messages")
    parser.add_argument(
        "--lookback-days",
        type=_lookback_arg,
        default=None,
        metavar="DAYS",
        help="Days of posts to consider (1-30, or today/yesterday/last3days/last7days)",
    )
    parser.add_argument("--batch-size", type=_positive_int, default=None, help="Sources run concurrently per batch")
    parser.add_argument("--timeout-sec", type=_positive_float, default=None, help="Per-source time limit")
    parser.add_argument("--cache-mode", choices=CACHE_MODES, default=None, help="Duplicate cache mode")
    parser.add_argument(
        "--source",
        dest="sources",
        action="append",
        default=None,
        metavar="KEY",
        help="Restrict the run to this source (repeatable)",
    )
    parser.add_argument("--serve", action="store_true", help="Serve the HTTP control API alongside the schedule")
    parser.add_argument("--host", default=DEFAULT_HOST, help="API bind host")
    parser.add_argument("--port", type=_port, default=DEFAULT_PORT, help="API bind port")
    parser.add_argument("--list-sources", action="store_true", help="Print configured sources and exit")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger = logging.getLogger("feed_courier")

    try:
        settings = Settings.from_files(
            config_file=Path(args.config_file),
            env_file=Path(args.env_file),
        )
    except (ConfigError, ValueError) as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from None

    sources, errors = load_sources(config_file=Path(args.config_file), env_file=Path(args.env_file))
    for error in errors:
        logger.error("source excluded: source=%s error=%s", error.source_key, error)

    if args.list_sources:
        for source in sources:
            print(f"{source.key}\t{source.name}\t{source.kind}\t{source.feed_url}")
        return 0

    sources = _select_sources(sources, args.sources)
    if not sources:
        raise SystemExit("No sources enabled.")

    if args.dry_run:
        settings.dry_run = True
    if args.lookback_days is not None:
        settings.lookback_days = args.lookback_days
    if args.batch_size is not None:
        settings.batch_size = args.batch_size
    if args.timeout_sec is not None:
        settings.source_timeout_sec = args.timeout_sec

    times = _schedule_times(args, settings)
    cache_mode = _resolve_cache_mode(args.cache_mode, settings.cache_mode, scheduled=times is not None or args.serve)
    settings.ensure_dirs()

    session = requests.Session()
    session.headers.update({"User-Agent": settings.request_user_agent})
    router = _build_router(settings, session=session)

    caches: list[DedupCache] = []
    dispatchers: list[SourceDispatcher] = []
    for source in sources:
        cache = DedupCache(
            name=source.key,
            mode=cache_mode,
            cache_path=settings.cache_dir / f"{source.key}.json",
            timezone=settings.timezone,
        )
        caches.append(cache)
        dispatchers.append(
            SourceDispatcher(
                source=source,
                fetcher=_build_fetcher(source, settings, session),
                router=router,
                cache=cache,
                scorer=RelevanceScorer(lenient=source.lenient) if source.scoring else None,
                lookback_days=settings.lookback_days,
                timezone=settings.timezone,
                target=settings.telegram_chat_id or "",
                delivery_delay_sec=settings.delivery_delay_sec,
            )
        )

    runner = BatchRunner(
        batch_size=settings.batch_size,
        timeout_sec=settings.source_timeout_sec,
        cooldown_sec=settings.batch_cooldown_sec,
    )
    logger.info(
        "sources ready: count=%s cache_mode=%s lookback_days=%s dry_run=%s",
        len(dispatchers),
        cache_mode,
        settings.lookback_days,
        settings.dry_run,
    )

    if args.serve:
        schedule = None
        if times is not None:
            logger.info("daily schedule enabled: times=%s", describe_times(times))
            schedule = run_schedule(runner, dispatchers, caches, times, tz=settings.timezone, logger=logger)
        app = build_app(dispatchers)
        asyncio.run(serve_api(app, host=args.host, port=args.port, background=schedule, logger=logger))
        return 0

    if times is not None:
        logger.info("daily schedule enabled: times=%s", describe_times(times))
        asyncio.run(run_schedule(runner, dispatchers, caches, times, tz=settings.timezone, logger=logger))
        return 0

    result = asyncio.run(
        runner.run_all(
            dispatchers,
            trigger=TRIGGER_MANUAL,
            bypass_dedup=cache_mode == CACHE_MODE_BYPASS,
        )
    )
    print(format_summary(result))
    for dispatcher in dispatchers:
        logger.debug("source status: %s", dispatcher.status())
    if result.total and result.succeeded == 0:
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
