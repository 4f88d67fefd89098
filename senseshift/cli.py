"""
SenseShift - Command Line Interface
Main entry point.

Usage:
    senseshift sample     # Print a metrics snapshot every 10 seconds
    senseshift demo       # Run the mindfulness monitor in the terminal
    senseshift login      # Sign in to the remote log
    senseshift logs       # Show your reminder log
    senseshift relax      # A calming quote and a logged prompt
    senseshift config     # Show or create the config file
"""

import argparse
import asyncio
import getpass
import logging
import sys
from datetime import timedelta
from typing import Optional

import requests

from .audit import FirestoreLogSink, LocalLogSink, LogEntry, SinkError, utc_timestamp
from .auth import AuthError, clear_session, load_session, save_session, sign_in, sign_up
from .biometrics import AppleHealthExportProvider, InMemoryBiometricsProvider
from .collector import HookInstallError, KeyboardTapHook, KeyTapTracker
from .config import SenseShiftConfig, create_default_config, get_config_path, load_config, print_config
from .engine import DemoStateEngine
from .notifications import NotificationManager
from .quotes import get_quote
from .sampler import SnapshotSampler, local_now

logger = logging.getLogger("senseshift")

RELAX_PHRASE = "You are doing great — keep breathing 🌸"
RELAX_TITLE = "Sense-Shift"
RELAX_BODY = "You might be getting overwhelmed, breathe..."

STATUS_COLORS = {
    'monitoring': '\033[94m',             # Blue
    'multitasking_detected': '\033[93m',  # Yellow
    'mindfulness_reminder': '\033[91m',   # Red
    'returned_to_app': '\033[92m',        # Green
}
RESET = '\033[0m'

# Anything the remote account or log can raise
REMOTE_ERRORS = (AuthError, SinkError, requests.RequestException)


def setup_logging(level: str) -> None:
    # stderr, so `senseshift sample` keeps stdout pure JSON
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_sink(config: SenseShiftConfig):
    """Remote log when signed in and configured, local file otherwise."""
    session = load_session()
    if session and config.firebase_api_key and config.firebase_project_id:
        return FirestoreLogSink(config.firebase_project_id, config.firebase_api_key, session)
    return LocalLogSink()


def _require_api_key(config: SenseShiftConfig) -> Optional[str]:
    if not config.firebase_api_key:
        print("❌ No Firebase API key configured.")
        print(f"   Set firebase_api_key in {get_config_path()}")
        print("   or export SENSESHIFT_FIREBASE_API_KEY")
        return None
    return config.firebase_api_key


# ============================================================
# SAMPLE
# ============================================================

def cmd_sample(args):
    """Print a snapshot every sample_interval seconds."""
    config = load_config()

    tracker = KeyTapTracker(window_seconds=config.tap_window_seconds)
    hook = KeyboardTapHook(tracker, echo_windows=args.echo_taps)
    try:
        hook.start()
    except HookInstallError as e:
        logger.error("%s", e)
        print("❌ Failed to create keyboard event tap.", file=sys.stderr)
        print("   Grant Input Monitoring permission to your terminal and retry.", file=sys.stderr)
        sys.exit(1)

    if args.demo_biometrics:
        provider = InMemoryBiometricsProvider.with_demo_data(local_now())
    else:
        if not config.health_export_path:
            print("⚠️ No health_export_path configured; biometrics will be unavailable.", file=sys.stderr)
        provider = AppleHealthExportProvider(config.health_export_path or "")

    sampler = SnapshotSampler(
        tracker,
        provider,
        interval=config.sample_interval,
        biometrics_window=timedelta(hours=config.biometrics_window_hours),
    )

    print("Starting run loop...", file=sys.stderr)
    try:
        asyncio.run(sampler.run(ticks=args.ticks))
    except KeyboardInterrupt:
        pass
    finally:
        hook.stop()


# ============================================================
# DEMO
# ============================================================

def print_status(engine: DemoStateEngine) -> None:
    """One-line status, redrawn in place."""
    s = engine.state
    color = STATUS_COLORS.get(engine.phase.value, '')
    toast = f" | 💬 {engine.toast.message}" if engine.toast.visible else ""
    print(f"\r\033[K{color}[{s.status.upper():^28}]{RESET} "
          f"Clicks: {s.click_rate:.1f} | "
          f"Tabs: {s.tab_speed:.1f} | "
          f"Focus: {round(s.focus * 100)}%"
          f"{toast}",
          end='', flush=True)


async def run_demo(engine: DemoStateEngine, duration: Optional[float]) -> None:
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()

    def on_input() -> None:
        line = sys.stdin.readline()
        if not line:
            loop.remove_reader(sys.stdin)
            return
        command = line.strip().lower()
        if command == "h":
            engine.on_visibility_change(hidden=True)
        elif command == "v":
            engine.on_visibility_change(hidden=False)
        elif command == "r":
            engine.reset()
        elif command == "q":
            stop.set()

    try:
        loop.add_reader(sys.stdin, on_input)
    except (NotImplementedError, ValueError, OSError):
        logger.info("Interactive keys unavailable on this terminal")

    engine.start()
    try:
        await asyncio.wait_for(stop.wait(), timeout=duration)
    except asyncio.TimeoutError:
        pass
    finally:
        engine.stop()
        try:
            loop.remove_reader(sys.stdin)
        except (NotImplementedError, ValueError, OSError):
            pass


def cmd_demo(args):
    """Run the mindfulness monitor in the terminal."""
    config = load_config()

    def dispatch(call):
        return asyncio.get_running_loop().run_in_executor(None, call)

    engine = DemoStateEngine(
        config=config,
        notifier=NotificationManager(webhook_url=config.webhook_url),
        sink=build_sink(config),
        renderer=print_status,
        dispatch=dispatch,
    )

    print("🧘 SenseShift mindfulness monitor")
    print("   h + Enter: leave the app | v + Enter: come back | r: reset | q: quit")
    print("-" * 60)
    try:
        asyncio.run(run_demo(engine, args.duration))
    except KeyboardInterrupt:
        pass
    print(f"\n👋 Stopped after {engine.reminders_fired} reminder(s)")


# ============================================================
# ACCOUNT
# ============================================================

def _prompt_credentials():
    email = input("Email: ").strip()
    password = getpass.getpass("Password: ").strip()
    if not email or not password:
        print("❌ Please fill in both fields.")
        return None
    return email, password


def cmd_login(args):
    """Sign in to the remote log."""
    config = load_config()
    api_key = _require_api_key(config)
    credentials = api_key and _prompt_credentials()
    if not credentials:
        sys.exit(1)

    try:
        session = sign_in(api_key, *credentials)
    except REMOTE_ERRORS as e:
        print(f"❌ Login failed: {e}")
        sys.exit(1)

    save_session(session)
    print(f"✅ Signed in as {session.email}")


def cmd_signup(args):
    """Create an account and its log document."""
    config = load_config()
    api_key = _require_api_key(config)
    credentials = api_key and _prompt_credentials()
    if not credentials:
        sys.exit(1)
    if not config.firebase_project_id:
        print("❌ No Firebase project configured.")
        sys.exit(1)

    try:
        session = sign_up(api_key, *credentials)
    except REMOTE_ERRORS as e:
        print(f"❌ Signup failed: {e}")
        sys.exit(1)

    save_session(session)
    try:
        FirestoreLogSink(config.firebase_project_id, api_key, session).create_user_document(session.email)
    except REMOTE_ERRORS as e:
        print(f"❌ Account created, but its log could not be set up: {e}")
        sys.exit(1)
    print("✅ Signup successful!")


def cmd_logout(args):
    if clear_session():
        print("✅ Signed out.")
    else:
        print("ℹ️  Not signed in.")


def cmd_logs(args):
    """Show the reminder log, newest first."""
    config = load_config()
    sink = build_sink(config)
    try:
        logs = sink.fetch_logs()
    except REMOTE_ERRORS as e:
        print(f"❌ Could not load the log: {e}")
        sys.exit(1)

    if not logs:
        print("📭 No log entries yet.")
        return

    count = max(args.count, 0)
    for entry in reversed(logs[max(len(logs) - count, 0):]):
        risk = f" (risk {entry['riskScore']})" if 'riskScore' in entry else ""
        print(f"{entry.get('timestamp', '?')}  {entry.get('type', '?'):<15}{risk}  {entry.get('message', '')}")


def cmd_relax(args):
    """A calming quote, a logged prompt and a notification."""
    config = load_config()
    print(RELAX_PHRASE)
    print(get_quote(args.query))

    entry = LogEntry(type="manual_trigger", message="Mindfulness prompt triggered", timestamp=utc_timestamp())
    try:
        build_sink(config).append(entry)
    except Exception as e:
        logger.error("Logging error: %s", e)

    NotificationManager(webhook_url=config.webhook_url).notify(RELAX_TITLE, RELAX_BODY)


def cmd_config(args):
    """Show or create config file."""
    config_path = get_config_path()

    if not config_path.exists():
        create_default_config()

    print_config()
    print(f"📁 Config file: {config_path}")

    if args.test_webhook:
        config = load_config()
        ok = NotificationManager(webhook_url=config.webhook_url).test_webhook()
        print("✅ Webhook delivered" if ok else "❌ Webhook failed or not configured")


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='SenseShift - digital wellbeing metrics and mindfulness nudges',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  senseshift sample --demo-biometrics   Snapshots with generated watch data
  senseshift demo --duration 120        Two minutes of the mindfulness monitor
  senseshift login                      Sign in to the remote log
  senseshift relax --query breath       A quote about breathing

Privacy:
  🔒 The sampler counts key presses, never which keys
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    sample_parser = subparsers.add_parser('sample', help='Print metrics snapshots as JSON')
    sample_parser.add_argument('--demo-biometrics', action='store_true',
                               help='Use generated biometrics instead of the Apple Health export')
    sample_parser.add_argument('--ticks', type=int, default=None, help='Stop after N snapshots')
    sample_parser.add_argument('--echo-taps', action='store_true',
                               help='Print the tap count whenever a key closes a window')
    sample_parser.set_defaults(func=cmd_sample)

    demo_parser = subparsers.add_parser('demo', help='Run the mindfulness monitor')
    demo_parser.add_argument('--duration', type=float, default=None, help='Seconds to run')
    demo_parser.set_defaults(func=cmd_demo)

    login_parser = subparsers.add_parser('login', help='Sign in')
    login_parser.set_defaults(func=cmd_login)

    signup_parser = subparsers.add_parser('signup', help='Create an account')
    signup_parser.set_defaults(func=cmd_signup)

    logout_parser = subparsers.add_parser('logout', help='Sign out')
    logout_parser.set_defaults(func=cmd_logout)

    logs_parser = subparsers.add_parser('logs', help='Show the reminder log')
    logs_parser.add_argument('-n', '--count', type=int, default=20)
    logs_parser.set_defaults(func=cmd_logs)

    relax_parser = subparsers.add_parser('relax', help='A calming quote')
    relax_parser.add_argument('--query', default='', help='Find a quote matching this text')
    relax_parser.set_defaults(func=cmd_relax)

    config_parser = subparsers.add_parser('config', help='Show config file')
    config_parser.add_argument('--test-webhook', action='store_true')
    config_parser.set_defaults(func=cmd_config)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return

    setup_logging(load_config().log_level)
    args.func(args)


if __name__ == '__main__':
    main()
