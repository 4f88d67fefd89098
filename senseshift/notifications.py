"""
SenseShift Notifications
Desktop notifications for mindfulness reminders, plus an optional webhook.

Delivery is best-effort: there is no confirmation from the OS notification
center, and failures are logged, never raised.
"""

import logging
import platform
import shutil
import subprocess
import time
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)


def _applescript_string(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


class NotificationManager:
    """
    Shows desktop notifications and forwards them to a webhook.

    Platforms:
    - macOS: osascript "display notification"
    - Linux: notify-send (libnotify), when installed
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        system: Optional[str] = None,
    ):
        self.webhook_url = webhook_url
        self.system = system or platform.system()

    def notify(self, title: str, body: str) -> bool:
        """
        Show a notification and send it to the webhook if configured.

        Returns True if the desktop notification was handed to the OS.
        """
        shown = self._show_desktop(title, body)
        if self.webhook_url:
            self._send_webhook({"title": title, "body": body})
        return shown

    def _show_desktop(self, title: str, body: str) -> bool:
        if self.system == "Darwin":
            script = f"display notification {_applescript_string(body)} with title {_applescript_string(title)}"
            cmd = ["osascript", "-e", script]
        elif self.system == "Linux" and shutil.which("notify-send"):
            cmd = ["notify-send", title, body]
        else:
            logger.info("No notification center available: %s - %s", title, body)
            return False

        try:
            subprocess.run(cmd, check=True, capture_output=True, timeout=5)
            return True
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning("Desktop notification failed: %s", e)
            return False

    def _send_webhook(self, details: Dict[str, Any]) -> bool:
        """POST a Slack-compatible payload to the webhook."""
        payload = {
            "text": f"🧘 *{details.get('title', 'SenseShift')}*\n{details.get('body', '')}",
            "event": "mindfulness_reminder",
            "details": details,
            "timestamp": int(time.time()),
        }
        try:
            response = requests.post(
                self.webhook_url,
                json=payload,
                timeout=5,
                headers={"Content-Type": "application/json"},
            )
            return response.ok
        except requests.RequestException as e:
            logger.warning("Webhook failed: %s", e)
            return False

    def test_webhook(self) -> bool:
        """Send a test webhook. Returns True if successful."""
        if not self.webhook_url:
            return False
        return self._send_webhook({"title": "SenseShift", "body": "Webhook test"})
