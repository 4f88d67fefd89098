"""
SenseShift - Audit Log
Append-only per-user log of reminders and manual prompts.

Writes to:
1. Firestore document users/{uid} (logs array), when signed in
2. Local JSON file (~/.senseshift/audit.json) otherwise

Remote appends are "create if absent, else array union". Identical
entries are collapsed by Firestore, but entries differ by timestamp so
near-duplicates can still accumulate.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol

import requests

from .auth import Session, refresh_session, save_session
from .config import get_senseshift_dir

logger = logging.getLogger(__name__)

FIRESTORE_URL = "https://firestore.googleapis.com/v1"
REQUEST_TIMEOUT = 10


def get_audit_path() -> Path:
    """Get path to audit log file."""
    return get_senseshift_dir() / "audit.json"


def utc_timestamp() -> str:
    """ISO-8601 UTC with milliseconds, e.g. 2025-10-19T08:30:00.123Z"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class LogEntry:
    """A single audit log entry."""
    type: str  # 'ai_prompt', 'manual_trigger'
    message: str
    timestamp: str
    risk_score: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type, "message": self.message}
        if self.risk_score is not None:
            data["riskScore"] = self.risk_score
        data["timestamp"] = self.timestamp
        return data


class SinkError(Exception):
    """The remote log rejected a request."""


class LogSink(Protocol):
    def append(self, entry: LogEntry) -> None: ...

    def fetch_logs(self) -> List[Dict[str, Any]]: ...


# ============================================================
# FIRESTORE VALUE ENCODING
# ============================================================

def encode_value(value: Any) -> Dict[str, Any]:
    """Python value -> Firestore REST Value."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, datetime):
        ts = value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
        return {"timestampValue": ts}
    if isinstance(value, dict):
        return {"mapValue": {"fields": {k: encode_value(v) for k, v in value.items()}}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    raise TypeError(f"Cannot store {type(value).__name__} in Firestore")


def decode_value(value: Dict[str, Any]) -> Any:
    """Firestore REST Value -> Python value. Timestamps stay ISO strings."""
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return value["booleanValue"]
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "timestampValue" in value:
        return value["timestampValue"]
    if "mapValue" in value:
        fields = value["mapValue"].get("fields", {})
        return {k: decode_value(v) for k, v in fields.items()}
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    raise ValueError(f"Unsupported Firestore value: {sorted(value)}")


# ============================================================
# FIRESTORE SINK
# ============================================================

class FirestoreLogSink:
    """
    Per-user log in Firestore, through the REST API.

    Usage::

        sink = FirestoreLogSink(project_id, api_key, session)
        sink.append(LogEntry("ai_prompt", "Take a break", utc_timestamp(), 0.61))
    """

    def __init__(
        self,
        project_id: str,
        api_key: str,
        session: Optional[Session],
        http: Any = requests,
        on_refresh: Optional[Callable[[Session], None]] = save_session,
    ):
        self.project_id = project_id
        self.api_key = api_key
        self.session = session
        self.http = http
        self.on_refresh = on_refresh

    @property
    def _database(self) -> str:
        return f"projects/{self.project_id}/databases/(default)"

    def _document_name(self) -> str:
        return f"{self._database}/documents/users/{self.session.uid}"

    def _refresh(self) -> None:
        self.session = refresh_session(self.api_key, self.session)
        if self.on_refresh:
            self.on_refresh(self.session)

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        """Authenticated call; refreshes the id token once on 401."""
        if self.session.expired:
            self._refresh()

        for attempt in range(2):
            headers = {"Authorization": f"Bearer {self.session.id_token}"}
            response = self.http.request(
                method, url, headers=headers, timeout=REQUEST_TIMEOUT, **kwargs
            )
            if response.status_code == 401 and attempt == 0:
                self._refresh()
                continue
            return response
        return response

    def _get_document(self) -> Optional[Dict[str, Any]]:
        response = self._request("GET", f"{FIRESTORE_URL}/{self._document_name()}")
        if response.status_code == 404:
            return None
        if not response.ok:
            raise SinkError(f"Reading user document failed: HTTP {response.status_code}")
        return response.json()

    def _set_document(self, data: Dict[str, Any]) -> None:
        body = {"fields": {k: encode_value(v) for k, v in data.items()}}
        response = self._request("PATCH", f"{FIRESTORE_URL}/{self._document_name()}", json=body)
        if not response.ok:
            raise SinkError(f"Writing user document failed: HTTP {response.status_code}")

    def append(self, entry: LogEntry) -> None:
        if self.session is None:
            logger.debug("Not signed in; skipping remote log entry")
            return

        if self._get_document() is None:
            self._set_document({"logs": [entry.to_dict()]})
            return

        body = {
            "writes": [{
                "transform": {
                    "document": self._document_name(),
                    "fieldTransforms": [{
                        "fieldPath": "logs",
                        "appendMissingElements": {
                            "values": [encode_value(entry.to_dict())],
                        },
                    }],
                },
            }],
        }
        response = self._request("POST", f"{FIRESTORE_URL}/{self._database}/documents:commit", json=body)
        if not response.ok:
            raise SinkError(f"Appending log entry failed: HTTP {response.status_code}")

    def create_user_document(self, email: str) -> None:
        """Fresh account document, as written right after sign-up."""
        self._set_document({
            "email": email,
            "createdAt": datetime.now(timezone.utc),
            "logs": [],
        })

    def fetch_logs(self) -> List[Dict[str, Any]]:
        if self.session is None:
            return []
        document = self._get_document()
        if document is None:
            return []
        logs = document.get("fields", {}).get("logs")
        return decode_value(logs) if logs else []


# ============================================================
# LOCAL SINK
# ============================================================

class LocalLogSink:
    """
    Local JSON log, used when no Firebase session is configured.
    """

    # Maximum entries to keep in the log
    MAX_ENTRIES = 1000

    def __init__(self, audit_path: Optional[Path] = None):
        self.audit_path = audit_path or get_audit_path()
        self._load_entries()

    def _load_entries(self) -> None:
        """Load entries from disk."""
        if self.audit_path.exists():
            try:
                with open(self.audit_path, 'r') as f:
                    data = json.load(f)
                    self.entries = data.get('logs', [])
            except (json.JSONDecodeError, AttributeError):
                self.entries = []
        else:
            self.entries = []

    def _save_entries(self) -> None:
        """Save entries to disk."""
        # Trim to MAX_ENTRIES (keep most recent)
        if len(self.entries) > self.MAX_ENTRIES:
            self.entries = self.entries[-self.MAX_ENTRIES:]

        data = {
            'logs': self.entries,
            'last_updated': datetime.now().isoformat(),
            'total_count': len(self.entries),
        }

        with open(self.audit_path, 'w') as f:
            json.dump(data, f, indent=2)

    def append(self, entry: LogEntry) -> None:
        self.entries.append(entry.to_dict())
        self._save_entries()

    def fetch_logs(self) -> List[Dict[str, Any]]:
        return list(self.entries)
