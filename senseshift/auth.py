"""
SenseShift Auth - Firebase email/password accounts
Signs in against the Firebase Auth REST API and keeps the session in
~/.senseshift/session.json so the remote log can be written.
"""

import json
import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

import requests

from .config import get_senseshift_dir

logger = logging.getLogger(__name__)

# ============================================================
# CONFIGURATION
# ============================================================

IDENTITY_URL = "https://identitytoolkit.googleapis.com/v1/accounts"
TOKEN_URL = "https://securetoken.googleapis.com/v1/token"
AUTH_TIMEOUT = 10


class AuthError(Exception):
    """Firebase rejected the credentials or the token."""


@dataclass
class Session:
    """A signed-in Firebase user."""
    uid: str
    id_token: str
    refresh_token: str
    email: str = ""
    expires_at: float = 0.0

    @property
    def expired(self) -> bool:
        # refresh a minute early
        return time.time() >= self.expires_at - 60


def get_session_path() -> Path:
    """Get path to the session file."""
    return get_senseshift_dir() / "session.json"


# ============================================================
# SESSION STORAGE
# ============================================================

def save_session(session: Session, path: Optional[Path] = None) -> None:
    path = path or get_session_path()
    path.write_text(json.dumps(asdict(session), indent=2))
    try:
        path.chmod(0o600)
    except OSError:
        pass


def load_session(path: Optional[Path] = None) -> Optional[Session]:
    """The stored session, or None when signed out or the file is unreadable."""
    path = path or get_session_path()
    if not path.exists():
        return None
    try:
        return Session(**json.loads(path.read_text()))
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning("Ignoring unreadable session file %s: %s", path, e)
        return None


def clear_session(path: Optional[Path] = None) -> bool:
    """Sign out. Returns True if a session was removed."""
    path = path or get_session_path()
    if path.exists():
        path.unlink()
        return True
    return False


# ============================================================
# FIREBASE AUTH REST
# ============================================================

def _error_message(response: requests.Response) -> str:
    try:
        return response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return f"HTTP {response.status_code}"


def _account_call(action: str, api_key: str, email: str, password: str) -> Session:
    response = requests.post(
        f"{IDENTITY_URL}:{action}",
        params={"key": api_key},
        json={"email": email, "password": password, "returnSecureToken": True},
        timeout=AUTH_TIMEOUT,
    )
    if not response.ok:
        raise AuthError(_error_message(response))

    data = response.json()
    return Session(
        uid=data["localId"],
        id_token=data["idToken"],
        refresh_token=data["refreshToken"],
        email=data.get("email", email),
        expires_at=time.time() + int(data.get("expiresIn", 3600)),
    )


def sign_in(api_key: str, email: str, password: str) -> Session:
    """Sign in with email and password."""
    return _account_call("signInWithPassword", api_key, email, password)


def sign_up(api_key: str, email: str, password: str) -> Session:
    """Create an account and sign in."""
    return _account_call("signUp", api_key, email, password)


def refresh_session(api_key: str, session: Session) -> Session:
    """Exchange the refresh token for a new id token."""
    response = requests.post(
        TOKEN_URL,
        params={"key": api_key},
        data={"grant_type": "refresh_token", "refresh_token": session.refresh_token},
        timeout=AUTH_TIMEOUT,
    )
    if not response.ok:
        raise AuthError(_error_message(response))

    data = response.json()
    return Session(
        uid=data.get("user_id", session.uid),
        id_token=data["id_token"],
        refresh_token=data.get("refresh_token", session.refresh_token),
        email=session.email,
        expires_at=time.time() + int(data.get("expires_in", 3600)),
    )
