"""
SenseShift - Configuration Management
Handles ~/.senseshift/config.yaml with defaults.
"""

import os
import yaml
from pathlib import Path
from dataclasses import dataclass
from typing import Optional


# ============================================================
# PATHS
# ============================================================

def get_senseshift_dir() -> Path:
    """Get the SenseShift data directory."""
    senseshift_dir = Path(os.getenv("SENSESHIFT_HOME", Path.home() / ".senseshift"))
    senseshift_dir.mkdir(parents=True, exist_ok=True)
    return senseshift_dir


def get_config_path() -> Path:
    """Get path to config file."""
    return get_senseshift_dir() / "config.yaml"


# ============================================================
# CONFIG DATACLASS
# ============================================================

@dataclass
class SenseShiftConfig:
    """Configuration settings for SenseShift."""

    # === SAMPLER ===

    # Seconds between snapshots
    sample_interval: float = 10.0

    # Minimum length of a keyboard-tap window (seconds)
    tap_window_seconds: float = 10.0

    # Trailing window for biometrics point samples (hours)
    biometrics_window_hours: float = 1.0

    # Apple Health export.xml to read biometrics from
    health_export_path: Optional[str] = None

    # === DEMO ENGINE ===

    drift_interval: float = 4.5
    initial_drift_delay: float = 1.5
    burst_delay: float = 5.0

    # Reminder fires when tab speed reaches this...
    tab_switch_threshold: float = 9.5
    # ...or focus drops to this
    focus_alert_threshold: float = 0.6

    # Global cooldown between reminders (seconds)
    notification_cooldown: float = 60.0

    # On-screen message lifetime (seconds)
    toast_seconds: float = 6.5

    # === REMOTE LOG ===

    firebase_api_key: Optional[str] = None
    firebase_project_id: Optional[str] = None

    # Webhook that receives every reminder (Slack, etc.)
    webhook_url: Optional[str] = None

    # === LOGGING ===

    log_level: str = "WARNING"


def _apply_env(config: SenseShiftConfig) -> SenseShiftConfig:
    """Environment variables win over the config file."""
    api_key = os.getenv("SENSESHIFT_FIREBASE_API_KEY")
    if api_key:
        config.firebase_api_key = api_key
    project_id = os.getenv("SENSESHIFT_FIREBASE_PROJECT_ID")
    if project_id:
        config.firebase_project_id = project_id
    return config


# ============================================================
# CONFIG LOADING
# ============================================================

def load_config(config_path: Optional[Path] = None) -> SenseShiftConfig:
    """
    Load configuration from ~/.senseshift/config.yaml
    Falls back to defaults if file doesn't exist.
    """
    config_path = config_path or get_config_path()

    if not config_path.exists():
        return _apply_env(SenseShiftConfig())

    defaults = SenseShiftConfig()
    try:
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f) or {}

        config = SenseShiftConfig(
            # Sampler
            sample_interval=float(data.get('sample_interval', defaults.sample_interval)),
            tap_window_seconds=float(data.get('tap_window_seconds', defaults.tap_window_seconds)),
            biometrics_window_hours=float(data.get('biometrics_window_hours', defaults.biometrics_window_hours)),
            health_export_path=data.get('health_export_path'),

            # Demo engine
            drift_interval=float(data.get('drift_interval', defaults.drift_interval)),
            initial_drift_delay=float(data.get('initial_drift_delay', defaults.initial_drift_delay)),
            burst_delay=float(data.get('burst_delay', defaults.burst_delay)),
            tab_switch_threshold=float(data.get('tab_switch_threshold', defaults.tab_switch_threshold)),
            focus_alert_threshold=float(data.get('focus_alert_threshold', defaults.focus_alert_threshold)),
            notification_cooldown=float(data.get('notification_cooldown', defaults.notification_cooldown)),
            toast_seconds=float(data.get('toast_seconds', defaults.toast_seconds)),

            # Remote log
            firebase_api_key=data.get('firebase_api_key'),
            firebase_project_id=data.get('firebase_project_id'),
            webhook_url=data.get('webhook_url'),

            log_level=str(data.get('log_level', defaults.log_level)).upper(),
        )
    except Exception as e:
        print(f"⚠️ Error loading config: {e}")
        print("Using default configuration.")
        config = SenseShiftConfig()

    return _apply_env(config)


def save_config(config: SenseShiftConfig, config_path: Optional[Path] = None) -> None:
    """Save configuration to ~/.senseshift/config.yaml"""
    config_path = config_path or get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        'sample_interval': config.sample_interval,
        'tap_window_seconds': config.tap_window_seconds,
        'biometrics_window_hours': config.biometrics_window_hours,
        'drift_interval': config.drift_interval,
        'initial_drift_delay': config.initial_drift_delay,
        'burst_delay': config.burst_delay,
        'tab_switch_threshold': config.tab_switch_threshold,
        'focus_alert_threshold': config.focus_alert_threshold,
        'notification_cooldown': config.notification_cooldown,
        'toast_seconds': config.toast_seconds,
        'log_level': config.log_level,
    }

    # Only save optional fields if they exist
    if config.health_export_path:
        data['health_export_path'] = config.health_export_path
    if config.firebase_api_key:
        data['firebase_api_key'] = config.firebase_api_key
    if config.firebase_project_id:
        data['firebase_project_id'] = config.firebase_project_id
    if config.webhook_url:
        data['webhook_url'] = config.webhook_url

    with open(config_path, 'w') as f:
        yaml.dump(data, f, default_flow_style=False)


def get_example_config() -> str:
    """Return an example config.yaml content."""
    return """# SenseShift Configuration
# Location: ~/.senseshift/config.yaml

# === SAMPLER ===

# Seconds between JSON snapshots
sample_interval: 10

# Keyboard taps are counted over windows of at least this many seconds
tap_window_seconds: 10

# Biometrics are read for this many trailing hours
biometrics_window_hours: 1

# Apple Health export (iOS Health app -> Export Health Data)
# health_export_path: ~/Downloads/apple_health_export/export.xml

# === MINDFULNESS MONITOR ===

drift_interval: 4.5
initial_drift_delay: 1.5
burst_delay: 5

# A reminder fires when tab speed >= tab_switch_threshold
# or focus <= focus_alert_threshold
tab_switch_threshold: 9.5
focus_alert_threshold: 0.6

# At most one reminder per cooldown (seconds)
notification_cooldown: 60

# How long the on-screen message stays up (seconds)
toast_seconds: 6.5

# === REMOTE LOG (Firebase) ===
# Also read from SENSESHIFT_FIREBASE_API_KEY / SENSESHIFT_FIREBASE_PROJECT_ID
# firebase_api_key: AIza...
# firebase_project_id: my-project

# Webhook for reminders (Slack, etc.)
# webhook_url: https://hooks.slack.com/services/XXX/YYY/ZZZ

log_level: WARNING
"""


def create_default_config() -> None:
    """Create a default config file if it doesn't exist."""
    config_path = get_config_path()
    if not config_path.exists():
        with open(config_path, 'w') as f:
            f.write(get_example_config())
        print(f"✅ Created default config at {config_path}")


def print_config() -> None:
    """Print current configuration."""
    config = load_config()

    print("\n📋 Current SenseShift Configuration:")
    print(f"   Sample interval: {config.sample_interval}s")
    print(f"   Tap window: {config.tap_window_seconds}s")
    print(f"   Biometrics window: {config.biometrics_window_hours}h")
    print(f"   Health export: {config.health_export_path or 'not set'}")
    print(f"   Drift interval: {config.drift_interval}s")
    print(f"   Tab switch threshold: {config.tab_switch_threshold}")
    print(f"   Focus alert threshold: {config.focus_alert_threshold}")
    print(f"   Reminder cooldown: {config.notification_cooldown}s")
    print(f"   Firebase project: {config.firebase_project_id or 'not set'}")
    print(f"   Webhook: {'configured' if config.webhook_url else 'not set'}")
    print()
