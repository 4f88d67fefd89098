"""Shared test fixtures for SenseShift tests."""

from __future__ import annotations

import asyncio
import os
import sys
import time
from pathlib import Path
from typing import Any, Callable

import pytest

# Allow running tests without `pip install -e .`
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))


# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolated_home(tmp_path, monkeypatch: pytest.MonkeyPatch):
    """Keep config, session and audit files out of the real ~/.senseshift."""
    monkeypatch.setenv("SENSESHIFT_HOME", str(tmp_path / "senseshift-home"))
    monkeypatch.delenv("SENSESHIFT_FIREBASE_API_KEY", raising=False)
    monkeypatch.delenv("SENSESHIFT_FIREBASE_PROJECT_ID", raising=False)
    return tmp_path / "senseshift-home"


def run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


# ---------------------------------------------------------------------------
# Clock / scheduler / randomness
# ---------------------------------------------------------------------------

class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeHandle:
    def __init__(self, when: float, seq: int, callback: Callable, args: tuple) -> None:
        self.when = when
        self.seq = seq
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """call_later on a FakeClock; advance() fires due timers in order."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self._timers: list[FakeHandle] = []
        self._seq = 0

    def call_later(self, delay: float, callback: Callable, *args: Any) -> FakeHandle:
        handle = FakeHandle(self.clock.now + delay, self._seq, callback, args)
        self._seq += 1
        self._timers.append(handle)
        return handle

    @property
    def pending(self) -> list[FakeHandle]:
        return [t for t in self._timers if not t.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.clock.now + seconds
        while True:
            due = [t for t in self.pending if t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.when, t.seq))
            self._timers.remove(timer)
            self.clock.now = timer.when
            timer.callback(*timer.args)
        self.clock.now = target


class FixedRandom:
    """random() always returns the same value."""

    def __init__(self, value: float = 0.0) -> None:
        self.value = value

    def random(self) -> float:
        return self.value


@pytest.fixture
def new_york():
    """America/New_York zone rules; skipped where the tz database is missing."""
    from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

    try:
        return ZoneInfo("America/New_York")
    except ZoneInfoNotFoundError:
        pytest.skip("tz database not installed")


@pytest.fixture
def system_tz_new_york(new_york):
    """Run with the process-local zone set to America/New_York."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset() unavailable on this platform")
    previous = os.environ.get("TZ")
    os.environ["TZ"] = "America/New_York"
    time.tzset()
    yield
    if previous is None:
        del os.environ["TZ"]
    else:
        os.environ["TZ"] = previous
    time.tzset()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scheduler(clock: FakeClock) -> FakeScheduler:
    return FakeScheduler(clock)


# ---------------------------------------------------------------------------
# Notification / log sink doubles
# ---------------------------------------------------------------------------

class RecordingNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail = fail

    def notify(self, title: str, body: str) -> bool:
        if self.fail:
            raise RuntimeError("notification center unavailable")
        self.sent.append((title, body))
        return True


class RecordingSink:
    def __init__(self, fail: bool = False) -> None:
        self.entries: list = []
        self.fail = fail

    def append(self, entry) -> None:
        if self.fail:
            raise ConnectionError("firestore unreachable")
        self.entries.append(entry)

    def fetch_logs(self) -> list:
        return [e.to_dict() for e in self.entries]


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


# ---------------------------------------------------------------------------
# HTTP doubles
# ---------------------------------------------------------------------------

class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None) -> None:
        self.status_code = status_code
        self._payload = payload

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload

    def raise_for_status(self) -> None:
        import requests

        if not self.ok:
            raise requests.HTTPError(f"HTTP {self.status_code}")


class FakeHttp:
    """Stands in for the requests module: scripted responses, recorded calls."""

    def __init__(self, *responses: FakeResponse) -> None:
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        return self.responses.pop(0)
