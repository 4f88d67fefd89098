"""
SenseShift - Keyboard Tap Collector
Counts keyboard taps in fixed windows for the metrics sampler.

PRIVACY GUARANTEE:
- We NEVER store what you type (no key codes, no characters)
- We ONLY count how many key events happened in the current window
"""

from typing import Callable, Optional
import logging
import threading
import time

logger = logging.getLogger(__name__)


class HookInstallError(RuntimeError):
    """The system keyboard hook could not be installed."""


class KeyTapTracker:
    """
    Process-wide tap counter.

    register_tap() is called from the listener thread on every key event.
    check_and_reset() is called by the sampler; it returns None while the
    current window is younger than window_seconds, which is different from
    a valid count of 0 (no keys tapped).
    """

    def __init__(
        self,
        window_seconds: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self.tap_count = 0
        self.window_start = clock()

    def register_tap(self) -> None:
        with self._lock:
            self.tap_count += 1

    def check_and_reset(self) -> Optional[int]:
        """Return the taps of a finished window and start a new one."""
        now = self._clock()
        with self._lock:
            if now - self.window_start >= self.window_seconds:
                taps = self.tap_count
                self.tap_count = 0
                self.window_start = now
                return taps
        return None


class KeyboardTapHook:
    """
    Listen-only keyboard hook feeding a KeyTapTracker.

    The callback runs in pynput's listener thread and must stay cheap:
    it only increments the counter. Events are never suppressed.
    """

    def __init__(self, tracker: KeyTapTracker, echo_windows: bool = False):
        self.tracker = tracker
        self.echo_windows = echo_windows
        self._listener = None

    def _make_callback(self) -> Callable:
        tracker = self.tracker
        echo = self.echo_windows

        def on_press(key) -> None:
            # 'key' is NOT inspected or stored
            tracker.register_tap()
            if echo:
                taps = tracker.check_and_reset()
                if taps is not None:
                    print(f"Keys tapped in last {tracker.window_seconds:g} seconds: {taps}")

        return on_press

    @property
    def running(self) -> bool:
        return self._listener is not None and self._listener.running

    def start(self) -> None:
        """
        Install the hook.

        Raises HookInstallError when the listener cannot start, e.g. when
        the process lacks Input Monitoring permission on macOS or there is
        no display on Linux.
        """
        if self._listener is not None:
            return

        try:
            # pynput picks its backend on import; a headless session fails here
            from pynput import keyboard
            listener = keyboard.Listener(on_press=self._make_callback(), suppress=False)
            listener.start()
            listener.wait()
        except Exception as e:
            raise HookInstallError(f"Failed to create keyboard event tap: {e}") from e

        if not listener.running:
            raise HookInstallError("Failed to create keyboard event tap.")

        self._listener = listener
        logger.info("Keyboard tap hook installed")

    def stop(self) -> None:
        if self._listener:
            self._listener.stop()
            self._listener = None
