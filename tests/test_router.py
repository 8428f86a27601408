from feed_courier.models import DeliveryResult
from feed_courier.senders.base import Sender
from feed_courier.senders.router import SenderRouter


class FakeSender(Sender):
    def __init__(self, name: str, outcomes: list[bool]):
        self.name = name
        self._outcomes = list(outcomes)
        self.calls: list[tuple[str, str]] = []

    def send(self, target: str, message: str) -> DeliveryResult:
        self.calls.append((target, message))
        success = self._outcomes.pop(0) if self._outcomes else False
        return DeliveryResult(
            channel=self.name,
            success=success,
            error_message=None if success else f"{self.name} failed",
        )


class RaisingSender(Sender):
    name = "raising"

    def send(self, target: str, message: str) -> DeliveryResult:
        raise ConnectionError("socket closed")


def test_router_short_circuits_when_first_attempt_succeeds() -> None:
    delays: list[float] = []
    router = SenderRouter(FakeSender("telegram", [True]), sleep=delays.append)
    routed = router.send("-100", "hello")

    assert len(routed.attempts) == 1
    assert routed.final_result.success is True
    assert delays == []


def test_router_retries_with_exponential_backoff() -> None:
    delays: list[float] = []
    sender = FakeSender("telegram", [False, False, True])
    router = SenderRouter(sender, max_attempts=3, retry_delay_sec=1.0, sleep=delays.append)

    routed = router.send("-100", "hello")

    assert [attempt.success for attempt in routed.attempts] == [False, False, True]
    assert routed.final_result.success is True
    assert delays == [1.0, 2.0]


def test_router_returns_last_failure_after_exhausting_attempts() -> None:
    delays: list[float] = []
    router = SenderRouter(FakeSender("telegram", []), max_attempts=2, sleep=delays.append)

    routed = router.send("-100", "hello")

    assert len(routed.attempts) == 2
    assert routed.final_result.success is False
    assert routed.final_result.error_message == "telegram failed"
    assert delays == [1.0]


def test_router_converts_sender_exceptions_to_failures() -> None:
    router = SenderRouter(RaisingSender(), max_attempts=1)

    routed = router.send("-100", "hello")

    assert routed.final_result.success is False
    assert "socket closed" in (routed.final_result.error_message or "")


def test_router_dry_run_never_calls_sender() -> None:
    sender = FakeSender("telegram", [True])
    router = SenderRouter(sender, dry_run=True)

    routed = router.send("-100", "hello")

    assert routed.final_result.success is True
    assert routed.final_result.channel == "dry-run"
    assert sender.calls == []


def test_router_without_sender_fails_cleanly() -> None:
    routed = SenderRouter(None).send("-100", "hello")

    assert routed.final_result.success is False
    assert routed.final_result.channel == "none"
