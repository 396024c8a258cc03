"""Scan orchestration: lists the inbox, classifies new messages, stores deals."""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Protocol

from src.gmail.client import GmailAuthError
from src.gmail.types import GmailMessage
from src.processing.classifier import DealClassifier
from src.processing.hashing import content_hash
from src.storage.db import DealDatabase

logger = logging.getLogger(__name__)


class MessageSource(Protocol):
    """The subset of GmailClient the orchestrator depends on."""

    async def list_message_ids(self, query: str | None = ..., max_results: int = ...) -> list[str]:
        ...

    async def get_message(self, message_id: str) -> GmailMessage:
        ...


@dataclass
class ScanSummary:
    """Counts and collected errors from one scan run."""

    user_id: str
    total_messages: int = 0
    skipped_cached: int = 0
    fetched: int = 0
    deals_created: int = 0
    duplicates: int = 0
    below_threshold: int = 0
    errors: list[str] = field(default_factory=list)
    last_sync_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ScanOrchestrator:
    """Runs one scan of one user's inbox against a DealClassifier.

    Message ids the user already has a scan marker for are skipped before they
    are fetched, so re-running a scan over an unchanged inbox does no work.
    Remaining messages are fetched in fixed-size batches, concurrently within
    a batch and sequentially across batches. A failure on one message is
    logged and recorded in the summary; only an authentication failure stops
    the scan.

    Usage::

        orchestrator = ScanOrchestrator(db, HeuristicClassifier())
        async with gmail_client(...) as gmail:
            summary = await orchestrator.scan(gmail, "user@example.com")
    """

    def __init__(
        self,
        db: DealDatabase,
        classifier: DealClassifier,
        *,
        query: str | None = "in:inbox",
        max_results: int = 50,
        batch_size: int = 20,
        min_confidence: float = 0.7,
    ) -> None:
        self._db = db
        self._classifier = classifier
        self._query = query
        self._max_results = max_results
        self._batch_size = batch_size
        self._min_confidence = min_confidence

    async def scan(self, gmail: MessageSource, user_id: str) -> ScanSummary:
        """Scan the inbox and persist qualifying deals.

        Raises:
            GmailAuthError: if Gmail rejects the user's credentials.
        """
        summary = ScanSummary(user_id=user_id)

        ids = await gmail.list_message_ids(query=self._query, max_results=self._max_results)
        summary.total_messages = len(ids)

        already = self._db.scanned_ids(user_id, ids)
        pending = [mid for mid in ids if mid not in already]
        summary.skipped_cached = len(ids) - len(pending)
        logger.info(
            "Scan for %s: %d listed, %d already scanned, %d to process",
            user_id,
            len(ids),
            summary.skipped_cached,
            len(pending),
        )

        total_batches = (len(pending) + self._batch_size - 1) // self._batch_size
        for batch_num in range(total_batches):
            batch = pending[batch_num * self._batch_size:(batch_num + 1) * self._batch_size]
            logger.debug("Processing batch %d/%d", batch_num + 1, total_batches)
            try:
                messages = await self._fetch_batch(gmail, batch, summary)
            except GmailAuthError:
                raise
            except Exception as exc:  # noqa: BLE001
                logger.error("Batch %d/%d failed: %s", batch_num + 1, total_batches, exc, exc_info=True)
                summary.errors.append(f"batch {batch_num + 1}: {exc}")
                continue

            for message in messages:
                await self._process(message, user_id, summary)

        summary.last_sync_at = self._db.touch_last_sync(user_id)
        logger.info(
            "Scan for %s complete: %d deal(s) created, %d duplicate(s), %d error(s)",
            user_id,
            summary.deals_created,
            summary.duplicates,
            len(summary.errors),
        )
        return summary

    # ── Internal ───────────────────────────────────────────────────────────────

    async def _fetch_batch(
        self, gmail: MessageSource, batch: list[str], summary: ScanSummary
    ) -> list[GmailMessage]:
        """Fetch a batch concurrently; drop (and record) individual failures."""
        results = await asyncio.gather(
            *(gmail.get_message(mid) for mid in batch), return_exceptions=True
        )
        messages: list[GmailMessage] = []
        for mid, result in zip(batch, results):
            if isinstance(result, GmailAuthError):
                raise result
            if isinstance(result, BaseException):
                logger.error("Failed to fetch message %s: %s", mid, result)
                summary.errors.append(f"{mid}: {result}")
                continue
            messages.append(result)
        summary.fetched += len(messages)
        return messages

    async def _process(self, message: GmailMessage, user_id: str, summary: ScanSummary) -> None:
        """Classify, dedup, persist and mark one message. Never raises."""
        try:
            result = await self._classifier.classify(message)
            digest = content_hash(message.subject, message.body, result.fields.compensation)

            if result.is_deal and result.confidence >= self._min_confidence:
                deal = self._db.insert_deal(
                    user_id, message, result, digest, source=self._classifier.name
                )
                if deal is None:
                    summary.duplicates += 1
                    logger.debug("message=%s duplicate of an existing deal", message.id)
                else:
                    summary.deals_created += 1
                    logger.info(
                        "message=%s deal=%s type=%s confidence=%.2f",
                        message.id,
                        deal.id,
                        deal.type,
                        deal.confidence,
                    )
            elif result.is_deal:
                summary.below_threshold += 1
                logger.debug(
                    "message=%s below threshold (%.2f < %.2f)",
                    message.id,
                    result.confidence,
                    self._min_confidence,
                )

            self._db.mark_scanned(user_id, message.id, digest)
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to process message %s: %s", message.id, exc, exc_info=True)
            summary.errors.append(f"{message.id}: {exc}")
