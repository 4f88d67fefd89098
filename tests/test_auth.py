"""Tests for Firebase sign-in and session storage."""

from __future__ import annotations

import time

import pytest

import senseshift.auth as auth
from conftest import FakeResponse
from senseshift.auth import (
    AuthError,
    Session,
    clear_session,
    load_session,
    refresh_session,
    save_session,
    sign_in,
    sign_up,
)


@pytest.fixture
def posts(monkeypatch):
    """Capture requests.post calls; tests set posts.response."""
    calls = []

    def fake_post(url, **kwargs):
        calls.append({"url": url, **kwargs})
        return fake_post.response

    fake_post.response = FakeResponse(200, {})
    fake_post.calls = calls
    monkeypatch.setattr(auth.requests, "post", fake_post)
    return fake_post


class TestSignIn:
    def test_success(self, posts):
        posts.response = FakeResponse(200, {
            "localId": "u1",
            "idToken": "tok",
            "refreshToken": "ref",
            "email": "a@b.c",
            "expiresIn": "3600",
        })
        session = sign_in("key", "a@b.c", "pw")

        assert (session.uid, session.id_token, session.refresh_token) == ("u1", "tok", "ref")
        assert not session.expired
        call = posts.calls[0]
        assert call["url"].endswith("accounts:signInWithPassword")
        assert call["params"] == {"key": "key"}
        assert call["json"]["returnSecureToken"] is True

    def test_sign_up_endpoint(self, posts):
        posts.response = FakeResponse(200, {"localId": "u2", "idToken": "t", "refreshToken": "r"})
        session = sign_up("key", "new@b.c", "pw")
        assert posts.calls[0]["url"].endswith("accounts:signUp")
        assert session.email == "new@b.c"

    def test_rejected_credentials(self, posts):
        posts.response = FakeResponse(400, {"error": {"message": "INVALID_PASSWORD"}})
        with pytest.raises(AuthError, match="INVALID_PASSWORD"):
            sign_in("key", "a@b.c", "wrong")

    def test_error_without_body(self, posts):
        posts.response = FakeResponse(503)
        with pytest.raises(AuthError, match="HTTP 503"):
            sign_in("key", "a@b.c", "pw")

    def test_refresh(self, posts):
        posts.response = FakeResponse(200, {
            "id_token": "new", "refresh_token": "ref-2", "user_id": "u1", "expires_in": "3600",
        })
        old = Session("u1", "old", "ref-1", "a@b.c", expires_at=0)
        session = refresh_session("key", old)
        assert session.id_token == "new"
        assert session.email == "a@b.c"
        assert posts.calls[0]["data"]["refresh_token"] == "ref-1"


class TestSessionStorage:
    def test_save_load_clear(self, tmp_path):
        path = tmp_path / "session.json"
        session = Session("u1", "tok", "ref", "a@b.c", expires_at=time.time() + 100)

        save_session(session, path)
        assert load_session(path) == session
        assert clear_session(path)
        assert load_session(path) is None
        assert not clear_session(path)

    def test_default_path(self, _isolated_home):
        save_session(Session("u1", "tok", "ref"))
        assert (_isolated_home / "session.json").exists()
        assert load_session().uid == "u1"

    def test_unreadable_session(self, tmp_path):
        path = tmp_path / "session.json"
        path.write_text('{"uid": "u1"}')
        assert load_session(path) is None

    def test_expiry_margin(self):
        assert Session("u", "t", "r", expires_at=time.time() + 30).expired
        assert not Session("u", "t", "r", expires_at=time.time() + 600).expired
