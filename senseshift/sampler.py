"""
SenseShift - Snapshot Sampler
Every tick: brightness, keyboard taps, uptime and biometrics -> one JSON snapshot.

Biometrics are fetched as six concurrent queries joined before the
snapshot is built. If any of them fails the whole tick is dropped and
one error is logged; the next tick is the retry.
"""

import asyncio
import json
import logging
import sys
import time as _time
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Any, Callable, Dict, Optional, TextIO, Tuple

from .biometrics import AuthorizationError, BiometricsProvider, Metric, Unit
from .collector import KeyTapTracker
from .system import get_brightness, get_system_uptime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    """One tick of metrics. Optional fields are None when the source is unavailable."""
    timestamp: datetime
    brightness: Optional[float] = None
    tap_count: Optional[int] = None
    uptime_seconds: Optional[float] = None
    step_count: Optional[float] = None
    sleep_hours: Optional[float] = None
    heart_rate_samples: Tuple[float, ...] = ()
    spo2_samples: Tuple[float, ...] = ()
    respiratory_rate_samples: Tuple[float, ...] = ()
    calories_samples: Tuple[float, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
            "brightness": self.brightness,
            "tapCount": self.tap_count,
            "uptimeSeconds": self.uptime_seconds,
            "stepCount": self.step_count,
            "sleepHours": self.sleep_hours,
            "heartRateSamples": list(self.heart_rate_samples),
            "spo2Samples": list(self.spo2_samples),
            "respiratoryRateSamples": list(self.respiratory_rate_samples),
            "caloriesSamples": list(self.calories_samples),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, sort_keys=True)


def local_now() -> datetime:
    return datetime.now().astimezone()


def day_bounds(now: datetime, tz: Optional[tzinfo] = None) -> Tuple[datetime, datetime]:
    """
    Calendar day containing now: 00:00 to the next 00:00.

    Both midnights are resolved separately with the zone's own rules, so
    a daylight-saving changeover day is 23 or 25 hours long. Without tz
    the system local zone is used.
    """
    if tz is not None:
        today = now.astimezone(tz).date()
        return (
            datetime.combine(today, time.min, tzinfo=tz),
            datetime.combine(today + timedelta(days=1), time.min, tzinfo=tz),
        )

    today = now.astimezone().date()
    # naive -> aware via the system zone, offset looked up per date
    return (
        datetime.combine(today, time.min).astimezone(),
        datetime.combine(today + timedelta(days=1), time.min).astimezone(),
    )


class SnapshotSampler:
    """
    Builds and emits snapshots on a fixed interval.

    Every collaborator is injectable so a tick can be driven by hand:
    the tracker, the biometrics provider, the system readers and the clock.
    """

    def __init__(
        self,
        tracker: KeyTapTracker,
        provider: BiometricsProvider,
        interval: float = 10.0,
        biometrics_window: timedelta = timedelta(hours=1),
        brightness_reader: Callable[[], Optional[float]] = get_brightness,
        uptime_reader: Callable[[], Optional[float]] = get_system_uptime,
        now: Callable[[], datetime] = local_now,
        output: Optional[TextIO] = None,
        tz: Optional[tzinfo] = None,
        timer: Callable[[], float] = _time.monotonic,
    ):
        self.tracker = tracker
        self.provider = provider
        self.interval = interval
        self.biometrics_window = biometrics_window
        self._brightness = brightness_reader
        self._uptime = uptime_reader
        self._now = now
        self.output = output
        self.tz = tz
        self._timer = timer
        self._authorized = False
        self.emitted = 0

    async def _authorize(self) -> bool:
        if self._authorized:
            return True
        try:
            await self.provider.authorize()
        except AuthorizationError as e:
            logger.error("Health data authorization failed: %s", e)
            return False
        self._authorized = True
        return True

    async def sample(self) -> Optional[Snapshot]:
        """
        Build one snapshot, or None when any biometrics query failed.
        """
        tap_count = self.tracker.check_and_reset()
        # both may shell out
        brightness, uptime = await asyncio.gather(
            asyncio.to_thread(self._brightness),
            asyncio.to_thread(self._uptime),
        )

        now = self._now()
        start = now - self.biometrics_window
        sleep_start, sleep_end = day_bounds(now, self.tz)

        p = self.provider
        results = await asyncio.gather(
            p.samples(Metric.HEART_RATE, Unit.COUNT_PER_MINUTE, start, now),
            p.samples(Metric.OXYGEN_SATURATION, Unit.PERCENT, start, now),
            p.samples(Metric.RESPIRATORY_RATE, Unit.COUNT_PER_MINUTE, start, now),
            p.samples(Metric.ACTIVE_ENERGY_BURNED, Unit.KILOCALORIE, start, now),
            p.sum(Metric.STEP_COUNT, Unit.COUNT, start, now),
            p.sleep_duration(sleep_start, sleep_end),
            return_exceptions=True,
        )

        for result in results:
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                if isinstance(result, AuthorizationError):
                    self._authorized = False
                logger.error("Error fetching health data: %s", result)
                return None

        heart_rates, spo2, resp_rates, calories, steps, sleep_hours = results

        return Snapshot(
            timestamp=now,
            brightness=brightness,
            tap_count=tap_count,
            uptime_seconds=uptime,
            step_count=steps,
            sleep_hours=sleep_hours,
            heart_rate_samples=tuple(heart_rates),
            # stored as a fraction, reported as percent
            spo2_samples=tuple(v * 100 for v in spo2),
            respiratory_rate_samples=tuple(resp_rates),
            calories_samples=tuple(calories),
        )

    def emit(self, snapshot: Snapshot) -> None:
        out = self.output or sys.stdout
        out.write(snapshot.to_json() + "\n")
        out.flush()
        self.emitted += 1

    async def tick(self) -> Optional[Snapshot]:
        """Authorize if needed, sample, emit."""
        if not await self._authorize():
            return None
        snapshot = await self.sample()
        if snapshot is not None:
            self.emit(snapshot)
        return snapshot

    async def run(self, ticks: Optional[int] = None) -> None:
        """
        Tick on a fixed period, first tick one interval after start.

        Deadlines advance by interval from the start, so time spent in a
        tick is not added to the period. A tick that overruns a whole
        period realigns the schedule instead of firing a catch-up burst.
        """
        done = 0
        deadline = self._timer()
        while ticks is None or done < ticks:
            deadline += self.interval
            delay = deadline - self._timer()
            if delay < 0:
                deadline -= delay
                delay = 0
            await asyncio.sleep(delay)
            await self.tick()
            done += 1
