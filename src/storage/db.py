"""SQLite structured storage: deals, scan markers, and per-user tokens."""

import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from src.gmail.types import GmailMessage
from src.processing.types import Classification, DealStatus
from src.storage.models import ALL_TABLES, Deal, ScanMarker, UserRecord

logger = logging.getLogger(__name__)

_DEFAULT_DB_PATH = Path("data/deals.db")

_DEAL_COLUMNS = (
    "id, user_id, message_id, message_ids, subject, sender, brand, compensation, "
    "deliverables, deadline, payment_terms, type, confidence, reason, source, "
    "content_hash, status, created_at, updated_at"
)


class StorageError(Exception):
    """Raised when the database cannot be opened or initialised."""


class DealNotFoundError(LookupError):
    """Raised when a deal id does not exist for the requesting user."""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class DealDatabase:
    """Wraps SQLite for deals, scan markers, and user token records.

    Designed for single-threaded use from an async event loop; all calls are
    synchronous/blocking but fast enough for one inbox's worth of messages.
    Every deal query is scoped by ``user_id``.

    Usage::

        db = DealDatabase()
        deal = db.insert_deal(user_id, message, classification, content_hash, "heuristic")
        deals = db.list_deals(user_id, status=DealStatus.NEW)
    """

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._path = Path(db_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()

    def close(self) -> None:
        """Close the underlying database connection."""
        self._conn.close()

    # ── Deals: write ────────────────────────────────────────────────────────────

    def insert_deal(
        self,
        user_id: str,
        message: GmailMessage,
        classification: Classification,
        content_hash: str,
        source: str,
    ) -> Deal | None:
        """Insert a deal unless one with the same content hash exists for the user.

        Returns the new Deal, or None if it was a duplicate. The unique
        (user_id, content_hash) index makes this insert-if-absent even when two
        scans race past the pre-check.
        """
        if self.has_deal_with_hash(user_id, content_hash):
            return None

        fields = classification.fields
        deal_id = uuid.uuid4().hex
        now = _now()
        with self._conn:
            cursor = self._conn.execute(
                f"""
                INSERT INTO deals ({_DEAL_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, content_hash) DO NOTHING
                """,
                (
                    deal_id,
                    user_id,
                    message.id,
                    json.dumps([message.id]),
                    message.subject,
                    message.sender,
                    fields.brand,
                    fields.compensation,
                    json.dumps(list(fields.deliverables)),
                    fields.deadline,
                    fields.payment_terms,
                    classification.type.value,
                    classification.confidence,
                    classification.reason,
                    source,
                    content_hash,
                    DealStatus.NEW.value,
                    now,
                    now,
                ),
            )
        if cursor.rowcount == 0:
            logger.info("Deal for hash %s… already exists (concurrent insert)", content_hash[:12])
            return None
        return self.get_deal(user_id, deal_id)

    def update_status(self, user_id: str, deal_id: str, status: DealStatus) -> Deal:
        """Set a deal's status.

        Raises:
            DealNotFoundError: if the deal does not exist for this user.
        """
        with self._conn:
            cursor = self._conn.execute(
                "UPDATE deals SET status = ?, updated_at = ? WHERE id = ? AND user_id = ?",
                (status.value, _now(), deal_id, user_id),
            )
        if cursor.rowcount == 0:
            raise DealNotFoundError(deal_id)
        deal = self.get_deal(user_id, deal_id)
        assert deal is not None
        return deal

    def delete_deal(self, user_id: str, deal_id: str) -> None:
        """Delete a deal.

        Raises:
            DealNotFoundError: if the deal does not exist for this user.
        """
        with self._conn:
            cursor = self._conn.execute(
                "DELETE FROM deals WHERE id = ? AND user_id = ?", (deal_id, user_id)
            )
        if cursor.rowcount == 0:
            raise DealNotFoundError(deal_id)

    # ── Deals: read ─────────────────────────────────────────────────────────────

    def has_deal_with_hash(self, user_id: str, content_hash: str) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM deals WHERE user_id = ? AND content_hash = ?",
            (user_id, content_hash),
        ).fetchone()
        return row is not None

    def get_deal(self, user_id: str, deal_id: str) -> Deal | None:
        """Return the deal, or None if it does not exist for this user."""
        row = self._conn.execute(
            f"SELECT {_DEAL_COLUMNS} FROM deals WHERE id = ? AND user_id = ?",
            (deal_id, user_id),
        ).fetchone()
        return Deal.from_row(dict(row)) if row else None

    def list_deals(
        self,
        user_id: str,
        status: str | None = None,
        deal_type: str | None = None,
        limit: int = 50,
    ) -> list[Deal]:
        """Return the user's deals, newest first, optionally filtered."""
        sql = f"SELECT {_DEAL_COLUMNS} FROM deals WHERE user_id = ?"
        params: list[object] = [user_id]
        if status:
            sql += " AND status = ?"
            params.append(status)
        if deal_type:
            sql += " AND type = ?"
            params.append(deal_type)
        sql += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params.append(limit)
        rows = self._conn.execute(sql, params).fetchall()
        return [Deal.from_row(dict(r)) for r in rows]

    # ── Scan markers ────────────────────────────────────────────────────────────

    def is_scanned(self, user_id: str, message_id: str) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM scanned_messages WHERE user_id = ? AND message_id = ?",
            (user_id, message_id),
        ).fetchone()
        return row is not None

    def scanned_ids(self, user_id: str, message_ids: list[str]) -> set[str]:
        """Return the subset of ``message_ids`` the user already has a marker for."""
        if not message_ids:
            return set()
        placeholders = ", ".join("?" for _ in message_ids)
        rows = self._conn.execute(
            "SELECT message_id FROM scanned_messages "
            f"WHERE user_id = ? AND message_id IN ({placeholders})",
            [user_id, *message_ids],
        ).fetchall()
        return {r["message_id"] for r in rows}

    def mark_scanned(self, user_id: str, message_id: str, content_hash: str) -> None:
        """Create or refresh the user's scan marker for a message."""
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO scanned_messages (user_id, message_id, hash, scanned_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id, message_id) DO UPDATE SET
                    hash       = excluded.hash,
                    scanned_at = excluded.scanned_at
                """,
                (user_id, message_id, content_hash, _now()),
            )

    def get_marker(self, user_id: str, message_id: str) -> ScanMarker | None:
        row = self._conn.execute(
            "SELECT message_id, user_id, hash, scanned_at FROM scanned_messages "
            "WHERE user_id = ? AND message_id = ?",
            (user_id, message_id),
        ).fetchone()
        return ScanMarker(**dict(row)) if row else None

    def clear_scanned(self, user_id: str) -> int:
        """Delete every scan marker owned by the user. Returns the count."""
        with self._conn:
            cursor = self._conn.execute(
                "DELETE FROM scanned_messages WHERE user_id = ?", (user_id,)
            )
        return cursor.rowcount

    # ── Users ───────────────────────────────────────────────────────────────────

    def save_tokens(self, user_id: str, access_token: str, refresh_token: str | None) -> None:
        """Store the user's Gmail token pair, keeping an existing refresh token
        when none is supplied."""
        now = _now()
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO users (user_id, access_token, refresh_token, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    access_token  = excluded.access_token,
                    refresh_token = COALESCE(excluded.refresh_token, users.refresh_token),
                    updated_at    = excluded.updated_at
                """,
                (user_id, access_token, refresh_token, now, now),
            )

    def get_user(self, user_id: str) -> UserRecord | None:
        row = self._conn.execute(
            "SELECT user_id, access_token, refresh_token, last_sync_at, created_at, updated_at "
            "FROM users WHERE user_id = ?",
            (user_id,),
        ).fetchone()
        return UserRecord(**dict(row)) if row else None

    def touch_last_sync(self, user_id: str) -> str:
        """Record a completed scan for the user. Returns the timestamp written."""
        now = _now()
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO users (user_id, last_sync_at, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    last_sync_at = excluded.last_sync_at,
                    updated_at   = excluded.updated_at
                """,
                (user_id, now, now, now),
            )
        return now

    # ── Private ─────────────────────────────────────────────────────────────────

    def _create_tables(self) -> None:
        with self._conn:
            for ddl in ALL_TABLES:
                self._conn.execute(ddl)


# ── Initialisation ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class StorageInit:
    """Outcome of opening the database. Callers must check ``ok``."""

    db: DealDatabase | None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.db is not None

    def require(self) -> DealDatabase:
        """Return the database or raise StorageError with the recorded cause."""
        if self.db is None:
            raise StorageError(self.error or "storage not initialised")
        return self.db


def init_storage(db_path: str | Path = _DEFAULT_DB_PATH) -> StorageInit:
    """Open the deal database, reporting failure instead of raising."""
    try:
        return StorageInit(db=DealDatabase(db_path))
    except (OSError, sqlite3.Error) as exc:
        logger.error("Failed to open deal database at %s: %s", db_path, exc)
        return StorageInit(db=None, error=str(exc))
