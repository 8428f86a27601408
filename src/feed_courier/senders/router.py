from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional

from ..models import DeliveryResult
from .base import Sender


@dataclass(frozen=True)
class RoutedDelivery:
    final_result: DeliveryResult
    attempts: list[DeliveryResult]


class SenderRouter:
    def __init__(
        self,
        sender: Optional[Sender],
        dry_run: bool = False,
        max_attempts: int = 3,
        retry_delay_sec: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        logger: Optional[logging.Logger] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.sender = sender
        self.dry_run = dry_run
        self.max_attempts = max_attempts
        self.retry_delay_sec = retry_delay_sec
        self.sleep = sleep
        self.logger = logger or logging.getLogger(__name__)

    def send(self, target: str, message: str) -> RoutedDelivery:
        if self.dry_run:
            self.logger.info("dry run, message not sent: target=%s chars=%s", target, len(message))
            result = DeliveryResult(channel="dry-run", success=True, response_excerpt="dry run mode")
            return RoutedDelivery(final_result=result, attempts=[result])

        if self.sender is None:
            failed = DeliveryResult(
                channel="none",
                success=False,
                error_message="No sender configured",
            )
            return RoutedDelivery(final_result=failed, attempts=[failed])

        attempts: list[DeliveryResult] = []
        for attempt in range(1, self.max_attempts + 1):
            try:
                result = self.sender.send(target, message)
            except Exception as exc:
                result = DeliveryResult(
                    channel=self.sender.name,
                    success=False,
                    error_message=f"send raised: {exc}",
                )
            attempts.append(result)
            if result.success:
                return RoutedDelivery(final_result=result, attempts=attempts)

            if attempt < self.max_attempts:
                delay = self.retry_delay_sec * (2 ** (attempt - 1))
                self.logger.warning(
                    "send failed, retrying: channel=%s attempt=%s/%s delay=%.1fs error=%s",
                    result.channel,
                    attempt,
                    self.max_attempts,
                    delay,
                    result.error_message,
                )
                self.sleep(delay)

        return RoutedDelivery(final_result=attempts[-1], attempts=attempts)
