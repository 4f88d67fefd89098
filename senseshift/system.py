"""
SenseShift - System Signals
Best-effort reads of screen brightness and system uptime.

Missing hardware, missing tools or missing permissions are not errors:
every reader returns None and the snapshot field is left empty.
"""

import platform
import re
import subprocess
import time
from pathlib import Path
from typing import Optional


BACKLIGHT_DIR = Path("/sys/class/backlight")
PROC_UPTIME = Path("/proc/uptime")

_BRIGHTNESS_RE = re.compile(r"brightness\s+([0-9.]+)")
_BOOTTIME_RE = re.compile(r"sec\s*=\s*(\d+)")


def _run(cmd: list) -> Optional[str]:
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=5)
    except (OSError, subprocess.TimeoutExpired):
        return None
    if result.returncode != 0:
        return None
    return result.stdout


# ============================================================
# BRIGHTNESS
# ============================================================

def _macos_brightness() -> Optional[float]:
    # `brightness -l` prints one line per display:
    #   display 0: brightness 0.750000
    output = _run(["brightness", "-l"])
    if not output:
        return None
    match = _BRIGHTNESS_RE.search(output)
    return float(match.group(1)) if match else None


def _linux_brightness(backlight_dir: Path = BACKLIGHT_DIR) -> Optional[float]:
    if not backlight_dir.is_dir():
        return None
    for device in sorted(backlight_dir.iterdir()):
        try:
            current = float((device / "brightness").read_text().strip())
            maximum = float((device / "max_brightness").read_text().strip())
        except (OSError, ValueError):
            continue
        if maximum > 0:
            return current / maximum
    return None


def get_brightness() -> Optional[float]:
    """Screen brightness of the first display that reports one, 0.0-1.0."""
    system = platform.system()
    if system == "Darwin":
        return _macos_brightness()
    if system == "Linux":
        return _linux_brightness()
    return None


# ============================================================
# UPTIME
# ============================================================

def parse_boottime(output: str, now: Optional[float] = None) -> Optional[float]:
    """
    Uptime from `sysctl -n kern.boottime` output:
        { sec = 1700000000, usec = 0 } Tue Nov 14 22:13:20 2023
    """
    match = _BOOTTIME_RE.search(output)
    if not match:
        return None
    now = time.time() if now is None else now
    return now - int(match.group(1))


def _macos_uptime() -> Optional[float]:
    output = _run(["sysctl", "-n", "kern.boottime"])
    return parse_boottime(output) if output else None


def _linux_uptime(proc_uptime: Path = PROC_UPTIME) -> Optional[float]:
    try:
        return float(proc_uptime.read_text().split()[0])
    except (OSError, ValueError, IndexError):
        return None


def get_system_uptime() -> Optional[float]:
    """Seconds since boot."""
    system = platform.system()
    if system == "Darwin":
        return _macos_uptime()
    if system == "Linux":
        return _linux_uptime()
    return None
