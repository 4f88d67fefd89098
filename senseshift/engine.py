"""
SenseShift - Mindfulness Monitor
Simulated productivity metrics with threshold-based mindfulness reminders.

The engine owns one DemoState and mutates it from three sources:
- a drift timer (every 4.5s, first run 1.5s after reset)
- a one-shot tab burst (5s after reset)
- visibility changes reported by the host window

Every mutation clamps every field, so the state stays inside its bounds
however the timers and visibility events interleave.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Protocol, Tuple

from .audit import LogEntry, LogSink, utc_timestamp
from .config import SenseShiftConfig
from .notifications import NotificationManager

logger = logging.getLogger(__name__)


NOTIFICATION_TITLE = "SenseShift Mindfulness Nudge"
REMINDER_BODY = (
    "Hey! It looks like you are a little overwhelmed. "
    "How about a short break for some breathing exercises?"
)

# (low, high) clamp bounds
DRIFT_CLICK_RATE = (4.8, 9.8)
DRIFT_TAB_SPEED = (4.3, 12.5)
DRIFT_FOCUS = (0.45, 0.92)
BURST_CLICK_RATE = (5.0, 15.0)
BURST_TAB_SPEED = (5.0, 18.0)
BURST_FOCUS = (0.35, 0.95)
BAND_SCORE = (0.3, 0.9)

# Hidden for less than this is a fast app switch...
FAST_SWITCH_MS = 12_000
# ...and below this it counts at full strength
FULL_STRENGTH_SWITCH_MS = 5_000
REDUCED_SWITCH_MULTIPLIER = 0.4

RISK_SCORE_DIVISOR = 18

BASELINE_PRODUCTIVITY: Tuple[Tuple[str, float], ...] = (
    ("12 AM", 0.35),
    ("3 AM", 0.42),
    ("6 AM", 0.48),
    ("9 AM", 0.68),
    ("12 PM", 0.74),
    ("3 PM", 0.61),
    ("6 PM", 0.57),
    ("9 PM", 0.49),
    ("12 AM", 0.38),
)

MONITORING_STATUS = ("Monitoring", "Metrics are updating with live mouse and keyboard pace.")
MULTITASKING_STATUS = ("Sharp multitasking detected", "Rapid tab hopping increased your cognitive load.")
RETURNED_STATUS = ("Back in app", "Welcome back! Metrics returned to monitoring mode.")
REMINDER_STATUS = "Mindfulness reminder"

DRIFT_REASON = "Adaptive monitor spotted a spike in focus load."
TAB_SWITCH_REASON = "Rapid tab switching triggered a mindfulness reminder."


class EnginePhase(Enum):
    MONITORING = "monitoring"
    MULTITASKING_DETECTED = "multitasking_detected"
    MINDFULNESS_REMINDER = "mindfulness_reminder"
    RETURNED_TO_APP = "returned_to_app"


def clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


@dataclass
class ProductivityBand:
    label: str
    score: float


@dataclass
class DemoState:
    click_rate: float = 6.2
    tab_speed: float = 5.6
    focus: float = 0.83
    productivity: List[ProductivityBand] = field(
        default_factory=lambda: [ProductivityBand(label, score) for label, score in BASELINE_PRODUCTIVITY]
    )
    status: str = "Calm focus"
    copy: str = "Baseline metrics loaded from your recent study sessions."

    def set_status(self, status: str, copy: str) -> None:
        self.status = status
        self.copy = copy


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """The slice of asyncio.AbstractEventLoop the engine schedules with."""

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


class Toast:
    """
    Transient on-screen message.

    show() restarts the dismiss timer, so repeated calls keep the
    latest message up for a full lifetime.
    """

    def __init__(self, scheduler: Callable[[], Scheduler], lifetime: float = 6.5):
        self._scheduler = scheduler
        self.lifetime = lifetime
        self.message: Optional[str] = None
        self.visible = False
        self._handle: Optional[TimerHandle] = None

    def show(self, message: str) -> None:
        self.message = message
        self.visible = True
        if self._handle:
            self._handle.cancel()
        self._handle = self._scheduler().call_later(self.lifetime, self._dismiss)

    def _dismiss(self) -> None:
        self._handle = None
        self.visible = False

    def clear(self) -> None:
        if self._handle:
            self._handle.cancel()
            self._handle = None
        self.visible = False


class DemoStateEngine:
    """
    Drives DemoState and raises rate-limited mindfulness reminders.

    Clock, random source, scheduler and dispatcher are injectable:
    - clock: monotonic seconds
    - rng: anything with random()
    - scheduler: call_later provider, defaults to the running asyncio loop
    - dispatch: runs notification/log side effects; inline by default,
      the CLI hands them to a thread pool so the loop never blocks
    """

    def __init__(
        self,
        config: Optional[SenseShiftConfig] = None,
        notifier: Optional[NotificationManager] = None,
        sink: Optional[LogSink] = None,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
        scheduler: Optional[Scheduler] = None,
        renderer: Optional[Callable[["DemoStateEngine"], None]] = None,
        dispatch: Optional[Callable[[Callable[[], None]], Any]] = None,
        timestamp: Callable[[], str] = utc_timestamp,
    ):
        self.config = config or SenseShiftConfig()
        self.notifier = notifier
        self.sink = sink
        self._clock = clock
        self._rng = rng or random.Random()
        self._scheduler = scheduler
        self._renderer = renderer
        self._dispatch = dispatch
        self._timestamp = timestamp

        self.state = DemoState()
        self.phase = EnginePhase.MONITORING
        self.toast = Toast(self._get_scheduler, self.config.toast_seconds)
        self.reminders_fired = 0

        self._hidden_at: Optional[float] = None
        self._last_reminder_at: Optional[float] = None
        self._drift_handle: Optional[TimerHandle] = None
        self._burst_handle: Optional[TimerHandle] = None

    def _get_scheduler(self) -> Scheduler:
        return self._scheduler or asyncio.get_running_loop()

    # =========================================================
    # LIFECYCLE
    # =========================================================

    def _cancel_timers(self) -> None:
        if self._drift_handle:
            self._drift_handle.cancel()
            self._drift_handle = None
        if self._burst_handle:
            self._burst_handle.cancel()
            self._burst_handle = None

    def reset(self) -> None:
        """Back to baseline, timers rescheduled from t=0."""
        self._cancel_timers()
        self.state = DemoState()
        self.phase = EnginePhase.MONITORING
        self._hidden_at = None
        self._last_reminder_at = None
        self.toast.clear()
        self.state.set_status(*MONITORING_STATUS)
        self.render()

        scheduler = self._get_scheduler()
        self._drift_handle = scheduler.call_later(self.config.initial_drift_delay, self._drift_tick)
        self._burst_handle = scheduler.call_later(self.config.burst_delay, self._burst_tick)

    start = reset

    def stop(self) -> None:
        self._cancel_timers()
        self.toast.clear()

    def _drift_tick(self) -> None:
        self._drift_handle = self._get_scheduler().call_later(self.config.drift_interval, self._drift_tick)
        self.drift()

    def _burst_tick(self) -> None:
        self._burst_handle = None
        self.burst()

    # =========================================================
    # PERTURBATIONS
    # =========================================================

    def _uniform(self, low: float, high: float) -> float:
        return low + self._rng.random() * (high - low)

    def drift(self) -> None:
        """Small random walk of every metric."""
        s = self.state
        s.click_rate = clamp(s.click_rate + self._uniform(-0.3, 0.3) * 0.6, *DRIFT_CLICK_RATE)
        s.tab_speed = clamp(s.tab_speed + self._uniform(-0.4, 0.4), *DRIFT_TAB_SPEED)
        s.focus = clamp(s.focus + self._uniform(-0.008, 0.012), *DRIFT_FOCUS)

        for index, band in enumerate(s.productivity):
            # working hours move more
            weight = 0.7 if 3 <= index <= 5 else 0.4
            band.score = clamp(band.score + self._uniform(-0.012, 0.018) * weight, *BAND_SCORE)

        s.set_status(*MONITORING_STATUS)
        self.phase = EnginePhase.MONITORING
        self.maybe_trigger_notification(DRIFT_REASON)
        self.render()

    def burst(self) -> None:
        """Simulated burst of rapid tab switching."""
        s = self.state
        s.tab_speed = clamp(s.tab_speed + 6.5, *BURST_TAB_SPEED)
        s.click_rate = clamp(s.click_rate + 2.2, *BURST_CLICK_RATE)
        s.focus = clamp(s.focus - 0.2, *BURST_FOCUS)
        self._lower_bands({3: 0.09, 4: 0.06, 5: 0.06})

        s.set_status(*MULTITASKING_STATUS)
        self.phase = EnginePhase.MULTITASKING_DETECTED
        self.render()
        if not self.maybe_trigger_notification(TAB_SWITCH_REASON):
            self.toast.show(REMINDER_BODY)
        self.render()

    def fast_tab_switch(self, away_ms: float) -> None:
        """The user came back quickly from another app; scale by how quickly."""
        m = 1.0 if away_ms < FULL_STRENGTH_SWITCH_MS else REDUCED_SWITCH_MULTIPLIER
        s = self.state
        s.tab_speed = clamp(s.tab_speed + (3 + self._uniform(0, 4)) * m, *BURST_TAB_SPEED)
        s.click_rate = clamp(s.click_rate + (0.7 + self._uniform(0, 1.8)) * m, *BURST_CLICK_RATE)
        s.focus = clamp(s.focus - (0.05 + self._uniform(0, 0.08)) * m, *BURST_FOCUS)
        self._lower_bands({1: 0.08 * m, 2: 0.05 * m, 3: 0.05 * m})

        s.set_status(*MULTITASKING_STATUS)
        self.phase = EnginePhase.MULTITASKING_DETECTED
        self.maybe_trigger_notification(TAB_SWITCH_REASON)
        self.render()

    def _lower_bands(self, drops: dict) -> None:
        for index, drop in drops.items():
            if index < len(self.state.productivity):
                band = self.state.productivity[index]
                band.score = clamp(band.score - drop, *BAND_SCORE)

    def on_visibility_change(self, hidden: bool) -> Optional[float]:
        """
        Host window visibility changed.

        Returns how long the window was away (ms) when it comes back,
        None otherwise.
        """
        if hidden:
            self._hidden_at = self._clock()
            return None

        if self._hidden_at is None:
            return None

        away_ms = (self._clock() - self._hidden_at) * 1000
        self._hidden_at = None

        if away_ms < FAST_SWITCH_MS:
            self.fast_tab_switch(away_ms)
        else:
            self.state.set_status(*RETURNED_STATUS)
            self.phase = EnginePhase.RETURNED_TO_APP
            self.render()
        return away_ms

    # =========================================================
    # REMINDERS
    # =========================================================

    def should_alert(self) -> bool:
        return (
            self.state.tab_speed >= self.config.tab_switch_threshold
            or self.state.focus <= self.config.focus_alert_threshold
        )

    def maybe_trigger_notification(self, reason: str) -> bool:
        """Fire a reminder if a threshold is breached and the cooldown has passed."""
        now = self._clock()
        if (
            self._last_reminder_at is not None
            and now - self._last_reminder_at < self.config.notification_cooldown
        ):
            return False

        if not self.should_alert():
            return False

        self._last_reminder_at = now
        self.reminders_fired += 1
        self.state.set_status(REMINDER_STATUS, reason)
        self.phase = EnginePhase.MINDFULNESS_REMINDER
        self.toast.show(REMINDER_BODY)

        entry = LogEntry(
            type="ai_prompt",
            message=REMINDER_BODY,
            risk_score=round(self.state.tab_speed / RISK_SCORE_DIVISOR, 2),
            timestamp=self._timestamp(),
        )
        if self.notifier:
            self._fire_and_forget("Notification", self.notifier.notify, NOTIFICATION_TITLE, REMINDER_BODY)
        if self.sink:
            self._fire_and_forget("Logging", self.sink.append, entry)
        return True

    def _fire_and_forget(self, what: str, fn: Callable, *args: Any) -> None:
        def call() -> None:
            try:
                fn(*args)
            except Exception as e:
                logger.error("%s error: %s", what, e)

        if self._dispatch:
            self._dispatch(call)
        else:
            call()

    # =========================================================
    # OUTPUT
    # =========================================================

    def render(self) -> None:
        if self._renderer:
            self._renderer(self)
