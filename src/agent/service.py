"""DealService: the operations shared by the HTTP API and the CLI."""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import Any

from src.agent.scanner import ScanOrchestrator, ScanSummary
from src.config import Settings
from src.gmail.client import GmailAuthError, GmailClient, gmail_client
from src.processing.classifier import DealClassifier
from src.processing.types import DealStatus
from src.storage.db import DealDatabase
from src.storage.models import Deal

logger = logging.getLogger(__name__)

#: Builds a request-scoped GmailClient from (access_token, refresh_token).
GmailFactory = Callable[[str, str | None], AbstractAsyncContextManager[GmailClient]]


class InvalidStatusError(ValueError):
    """Raised when a status string is not a DealStatus value."""


def parse_status(value: str | None) -> DealStatus:
    """Return the DealStatus named by ``value``.

    Raises:
        InvalidStatusError: if ``value`` is empty or unknown.
    """
    try:
        return DealStatus(value)
    except ValueError as exc:
        valid = ", ".join(s.value for s in DealStatus)
        raise InvalidStatusError(f"Invalid status {value!r}; expected one of: {valid}") from exc


class DealService:
    """Coordinates the database, the classifier and Gmail behind one interface.

    The database and classifier are exposed as public attributes so callers
    can reuse them without creating duplicate instances.

    Usage::

        service = DealService(settings, db, create_classifier(settings))
        summary = await service.scan("user@example.com")
        deals = service.list_deals("user@example.com", status="New")
    """

    def __init__(
        self,
        settings: Settings,
        db: DealDatabase,
        classifier: DealClassifier,
        gmail_factory: GmailFactory | None = None,
    ) -> None:
        self.settings = settings
        self.db = db
        self.classifier = classifier
        self._gmail_factory = gmail_factory or self._default_gmail_factory

    def close(self) -> None:
        self.db.close()

    # ── Scanning ───────────────────────────────────────────────────────────────

    async def scan(self, user_id: str) -> ScanSummary:
        """Scan the user's inbox with their stored token pair.

        Raises:
            GmailAuthError: if no token is stored or Gmail rejects it.
        """
        user = self.db.get_user(user_id)
        if user is None or not user.access_token:
            logger.warning("No Gmail access token stored for %s", user_id)
            raise GmailAuthError("No Gmail access token. Please sign in again.")

        orchestrator = ScanOrchestrator(
            self.db,
            self.classifier,
            query=self.settings.scan_query,
            max_results=self.settings.scan_max_results,
            batch_size=self.settings.scan_batch_size,
            min_confidence=self.settings.min_confidence,
        )
        async with self._gmail_factory(user.access_token, user.refresh_token) as gmail:
            return await orchestrator.scan(gmail, user_id)

    def clear_scan_cache(self, user_id: str) -> int:
        """Forget which messages were scanned so the next scan reprocesses them."""
        count = self.db.clear_scanned(user_id)
        logger.info("Cleared %d scan marker(s) for %s", count, user_id)
        return count

    # ── Tokens ─────────────────────────────────────────────────────────────────

    def store_tokens(self, user_id: str, access_token: str, refresh_token: str | None = None) -> None:
        if not access_token:
            raise ValueError("Access token is required")
        self.db.save_tokens(user_id, access_token, refresh_token)
        logger.info("Stored Gmail tokens for %s (refresh token: %s)", user_id, bool(refresh_token))

    # ── Deals ──────────────────────────────────────────────────────────────────

    def list_deals(
        self,
        user_id: str,
        status: str | None = None,
        deal_type: str | None = None,
        limit: int = 50,
    ) -> list[Deal]:
        return self.db.list_deals(user_id, status=status, deal_type=deal_type, limit=limit)

    def update_status(self, user_id: str, deal_id: str, status: str | None) -> Deal:
        """Raises InvalidStatusError or DealNotFoundError."""
        return self.db.update_status(user_id, deal_id, parse_status(status))

    def delete_deal(self, user_id: str, deal_id: str) -> None:
        """Raises DealNotFoundError."""
        self.db.delete_deal(user_id, deal_id)

    # ── Internal ───────────────────────────────────────────────────────────────

    def _default_gmail_factory(
        self, access_token: str, refresh_token: str | None
    ) -> AbstractAsyncContextManager[GmailClient]:
        return gmail_client(
            access_token,
            refresh_token,
            client_id=self.settings.google_client_id,
            client_secret=self.settings.google_client_secret,
            token_uri=self.settings.google_token_uri,
        )


def summary_payload(summary: ScanSummary) -> dict[str, Any]:
    """Response body for a completed scan."""
    return {"success": True, **summary.to_dict()}


def build_service(settings: Settings | None = None) -> DealService:
    """Build a DealService from configuration, failing closed.

    Raises:
        ConfigError: if required settings are missing.
        StorageError: if the database cannot be opened.
    """
    from src.processing.classifier import create_classifier
    from src.storage.db import init_storage

    settings = settings or Settings.from_env()
    settings.validate()
    storage = init_storage(settings.db_path)
    db = storage.require()
    return DealService(settings, db, create_classifier(settings))
