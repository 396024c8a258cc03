"""SQLite table schemas and typed row types for the storage layer."""

import json
from dataclasses import dataclass, field
from typing import Any


# ── DDL ────────────────────────────────────────────────────────────────────────

_CREATE_DEALS = """
CREATE TABLE IF NOT EXISTS deals (
    id             TEXT PRIMARY KEY,
    user_id        TEXT NOT NULL,
    message_id     TEXT NOT NULL,
    message_ids    TEXT NOT NULL DEFAULT '[]',
    subject        TEXT NOT NULL,
    sender         TEXT NOT NULL DEFAULT '',
    brand          TEXT,
    compensation   TEXT,
    deliverables   TEXT NOT NULL DEFAULT '[]',
    deadline       TEXT,
    payment_terms  TEXT,
    type           TEXT NOT NULL,
    confidence     REAL NOT NULL,
    reason         TEXT NOT NULL DEFAULT '',
    source         TEXT NOT NULL,
    content_hash   TEXT NOT NULL,
    status         TEXT NOT NULL DEFAULT 'New',
    created_at     TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    updated_at     TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
)
"""

_CREATE_DEALS_HASH_INDEX = """
CREATE UNIQUE INDEX IF NOT EXISTS idx_deals_user_hash
    ON deals (user_id, content_hash)
"""

_CREATE_DEALS_USER_INDEX = """
CREATE INDEX IF NOT EXISTS idx_deals_user_created
    ON deals (user_id, created_at)
"""

_CREATE_SCANNED_MESSAGES = """
CREATE TABLE IF NOT EXISTS scanned_messages (
    user_id     TEXT NOT NULL,
    message_id  TEXT NOT NULL,
    hash        TEXT NOT NULL,
    scanned_at  TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    PRIMARY KEY (user_id, message_id)
)
"""

_CREATE_USERS = """
CREATE TABLE IF NOT EXISTS users (
    user_id        TEXT PRIMARY KEY,
    access_token   TEXT,
    refresh_token  TEXT,
    last_sync_at   TEXT,
    created_at     TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    updated_at     TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
)
"""

#: All DDL statements in creation order.
ALL_TABLES: list[str] = [
    _CREATE_DEALS,
    _CREATE_DEALS_HASH_INDEX,
    _CREATE_DEALS_USER_INDEX,
    _CREATE_SCANNED_MESSAGES,
    _CREATE_USERS,
]


# ── Row types ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Deal:
    """A row from the deals table."""

    id: str
    user_id: str
    message_id: str
    subject: str
    type: str
    confidence: float
    content_hash: str
    source: str
    status: str
    created_at: str
    updated_at: str
    message_ids: list[str] = field(default_factory=list)
    sender: str = ""
    brand: str | None = None
    compensation: str | None = None
    deliverables: list[str] = field(default_factory=list)
    deadline: str | None = None
    payment_terms: str | None = None
    reason: str = ""

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Deal":
        d = dict(row)
        d["message_ids"] = json.loads(d.get("message_ids") or "[]")
        d["deliverables"] = json.loads(d.get("deliverables") or "[]")
        return cls(**d)

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation used by the HTTP API."""
        return {
            "id": self.id,
            "userId": self.user_id,
            "messageId": self.message_id,
            "messageIds": list(self.message_ids),
            "subject": self.subject,
            "from": self.sender,
            "brand": self.brand,
            "compensation": self.compensation,
            "deliverables": list(self.deliverables),
            "deadline": self.deadline,
            "paymentTerms": self.payment_terms,
            "type": self.type,
            "confidence": self.confidence,
            "reason": self.reason,
            "source": self.source,
            "contentHash": self.content_hash,
            "status": self.status,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class ScanMarker:
    """A row from the scanned_messages table."""

    message_id: str
    user_id: str
    hash: str
    scanned_at: str


@dataclass(frozen=True)
class UserRecord:
    """A row from the users table."""

    user_id: str
    access_token: str | None
    refresh_token: str | None
    last_sync_at: str | None
    created_at: str
    updated_at: str
