from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Optional

from .dispatcher import SourceDispatcher
from .models import TRIGGER_MANUAL, BatchResult, SourceResult

DEFAULT_BATCH_SIZE = 3
DEFAULT_TIMEOUT_SEC = 30.0
DEFAULT_COOLDOWN_SEC = 0.5


def _format_seconds(value: float) -> str:
    return f"{value:g}s"


class BatchRunner:
    def __init__(
        self,
        batch_size: int = DEFAULT_BATCH_SIZE,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        cooldown_sec: float = DEFAULT_COOLDOWN_SEC,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        logger: Optional[logging.Logger] = None,
    ):
        self._validate(batch_size, timeout_sec)
        self.batch_size = batch_size
        self.timeout_sec = timeout_sec
        self.cooldown_sec = cooldown_sec
        self.sleep = sleep
        self.logger = logger or logging.getLogger(__name__)

    @staticmethod
    def _validate(batch_size: int, timeout_sec: float) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if timeout_sec <= 0:
            raise ValueError("timeout_sec must be positive")

    async def run_all(
        self,
        dispatchers: Sequence[SourceDispatcher],
        trigger: str = TRIGGER_MANUAL,
        bypass_dedup: bool = False,
        batch_size: Optional[int] = None,
        timeout_sec: Optional[float] = None,
    ) -> BatchResult:
        size = self.batch_size if batch_size is None else batch_size
        timeout = self.timeout_sec if timeout_sec is None else timeout_sec
        self._validate(size, timeout)

        items = list(dispatchers)
        batches = [items[start:start + size] for start in range(0, len(items), size)]
        self.logger.info(
            "batch run started: sources=%s batches=%s batch_size=%s timeout=%s trigger=%s",
            len(items),
            len(batches),
            size,
            _format_seconds(timeout),
            trigger,
        )

        details: list[SourceResult] = []
        for number, batch in enumerate(batches, start=1):
            self.logger.info(
                "batch started: batch=%s/%s sources=%s",
                number,
                len(batches),
                ",".join(dispatcher.key for dispatcher in batch),
            )
            results = await asyncio.gather(
                *(self._run_one(dispatcher, trigger, bypass_dedup, timeout) for dispatcher in batch)
            )
            details.extend(results)
            self.logger.info(
                "batch complete: batch=%s/%s succeeded=%s",
                number,
                len(batches),
                sum(1 for item in results if item.success),
            )
            if number < len(batches) and self.cooldown_sec > 0:
                await self.sleep(self.cooldown_sec)

        succeeded = sum(1 for item in details if item.success)
        result = BatchResult(
            total=len(details),
            succeeded=succeeded,
            failed=len(details) - succeeded,
            articles_found=sum(item.articles_found for item in details),
            messages_sent=sum(item.messages_sent for item in details),
            details=tuple(details),
        )
        self.logger.info(
            "batch run complete: total=%s succeeded=%s failed=%s found=%s sent=%s",
            result.total,
            result.succeeded,
            result.failed,
            result.articles_found,
            result.messages_sent,
        )
        return result

    async def _run_one(
        self,
        dispatcher: SourceDispatcher,
        trigger: str,
        bypass_dedup: bool,
        timeout: float,
    ) -> SourceResult:
        started = time.monotonic()
        task = asyncio.ensure_future(dispatcher.run_once(trigger=trigger, bypass_dedup=bypass_dedup))
        try:
            run = await asyncio.wait_for(asyncio.shield(task), timeout)
        except asyncio.TimeoutError:
            error = f"timed out after {_format_seconds(timeout)}"
            self.logger.warning(
                "source timed out, run left to finish: source=%s timeout=%s",
                dispatcher.key,
                _format_seconds(timeout),
            )
            return SourceResult(
                source=dispatcher.key,
                success=False,
                articles_found=0,
                messages_sent=0,
                failed=0,
                duration_sec=time.monotonic() - started,
                error=error,
            )
        except Exception as exc:
            self.logger.exception("source raised: source=%s", dispatcher.key)
            return SourceResult(
                source=dispatcher.key,
                success=False,
                articles_found=0,
                messages_sent=0,
                failed=0,
                duration_sec=time.monotonic() - started,
                error=str(exc) or exc.__class__.__name__,
            )

        return SourceResult(
            source=run.source,
            success=run.success,
            articles_found=run.articles_found,
            messages_sent=run.messages_sent,
            failed=run.failed,
            duration_sec=time.monotonic() - started,
            error=run.error,
        )


def format_summary(result: BatchResult) -> str:
    lines = [
        "feed-courier run summary",
        f"sources: {result.succeeded}/{result.total} succeeded",
        f"articles found: {result.articles_found}",
        f"messages sent: {result.messages_sent}",
    ]
    failures = result.failures()
    if failures:
        lines.append("failed sources:")
        for item in failures:
            lines.append(f"- {item.source}: {item.error or 'unknown error'}")
    return "\n".join(lines)
