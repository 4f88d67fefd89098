"""
SenseShift
Digital wellbeing metrics and mindfulness nudges.

The sampler counts key presses, never which keys were pressed.
"""

__version__ = "1.0.0"
__author__ = "SenseShift"
__license__ = "MIT"

from .collector import KeyTapTracker, KeyboardTapHook, HookInstallError
from .sampler import Snapshot, SnapshotSampler
from .biometrics import (
    AppleHealthExportProvider,
    AuthorizationError,
    InMemoryBiometricsProvider,
    Metric,
    ProviderError,
    SleepStage,
    Unit,
)
from .engine import DemoStateEngine, DemoState, EnginePhase
from .audit import FirestoreLogSink, LocalLogSink, LogEntry
from .config import SenseShiftConfig, load_config, get_config_path

__all__ = [
    # Sampler
    "KeyTapTracker",
    "KeyboardTapHook",
    "HookInstallError",
    "Snapshot",
    "SnapshotSampler",

    # Biometrics
    "AppleHealthExportProvider",
    "InMemoryBiometricsProvider",
    "AuthorizationError",
    "ProviderError",
    "Metric",
    "SleepStage",
    "Unit",

    # Mindfulness monitor
    "DemoStateEngine",
    "DemoState",
    "EnginePhase",

    # Audit log
    "FirestoreLogSink",
    "LocalLogSink",
    "LogEntry",

    # Config
    "SenseShiftConfig",
    "load_config",
    "get_config_path",
]
