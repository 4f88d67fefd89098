"""Tests for desktop notifications and the webhook."""

from __future__ import annotations

import subprocess

import requests

import senseshift.notifications as notifications
from conftest import FakeResponse
from senseshift.notifications import NotificationManager


class _Recorder:
    def __init__(self, result=None, exc=None):
        self.calls = []
        self.result = result
        self.exc = exc

    def __call__(self, *args, **kwargs):
        self.calls.append((args, kwargs))
        if self.exc:
            raise self.exc
        return self.result


def test_macos_uses_osascript(monkeypatch):
    run = _Recorder()
    monkeypatch.setattr(notifications.subprocess, "run", run)

    assert NotificationManager(system="Darwin").notify("Title", 'Say "hi"')
    cmd = run.calls[0][0][0]
    assert cmd[:2] == ["osascript", "-e"]
    assert cmd[2] == 'display notification "Say \\"hi\\"" with title "Title"'


def test_linux_uses_notify_send(monkeypatch):
    run = _Recorder()
    monkeypatch.setattr(notifications.subprocess, "run", run)
    monkeypatch.setattr(notifications.shutil, "which", lambda name: "/usr/bin/notify-send")

    assert NotificationManager(system="Linux").notify("Title", "Body")
    assert run.calls[0][0][0] == ["notify-send", "Title", "Body"]


def test_no_notification_center(monkeypatch):
    monkeypatch.setattr(notifications.shutil, "which", lambda name: None)
    assert not NotificationManager(system="Linux").notify("Title", "Body")


def test_failed_notification_is_not_raised(monkeypatch):
    run = _Recorder(exc=subprocess.CalledProcessError(1, "osascript"))
    monkeypatch.setattr(notifications.subprocess, "run", run)
    assert not NotificationManager(system="Darwin").notify("Title", "Body")


def test_webhook_payload(monkeypatch):
    post = _Recorder(result=FakeResponse(200))
    monkeypatch.setattr(notifications.requests, "post", post)
    monkeypatch.setattr(notifications.shutil, "which", lambda name: None)

    NotificationManager(webhook_url="https://hooks.example/x", system="Linux").notify("T", "B")
    args, kwargs = post.calls[0]
    assert args == ("https://hooks.example/x",)
    assert kwargs["json"]["event"] == "mindfulness_reminder"
    assert kwargs["json"]["details"] == {"title": "T", "body": "B"}


def test_webhook_failure(monkeypatch):
    post = _Recorder(exc=requests.ConnectionError("down"))
    monkeypatch.setattr(notifications.requests, "post", post)
    assert not NotificationManager(webhook_url="https://hooks.example/x").test_webhook()


def test_test_webhook_without_url():
    assert not NotificationManager().test_webhook()
