"""Gmail API client: wraps google-api-python-client behind a typed async API."""

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, TypeVar

from google.auth.exceptions import RefreshError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from src.gmail.extract import BODY_CHAR_LIMIT, extract_plain_text, header_value
from src.gmail.types import GmailMessage

logger = logging.getLogger(__name__)

GMAIL_READONLY_SCOPE = "https://www.googleapis.com/auth/gmail.readonly"
DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"

_REAUTH_MESSAGE = "Gmail authentication expired. Please sign in again."

_T = TypeVar("_T")


class GmailError(Exception):
    """Raised when a Gmail API call fails for a non-authentication reason."""


class GmailAuthError(GmailError):
    """Raised when Gmail rejects the user's credentials.

    The caller should ask the user to re-authenticate; retrying with the
    same token pair will not help.
    """

    def __init__(self, message: str = _REAUTH_MESSAGE) -> None:
        super().__init__(message)


# Gmail reports per-user and per-project quota exhaustion as HTTP 403.
_RATE_LIMIT_REASONS = frozenset(
    {"userRateLimitExceeded", "rateLimitExceeded", "dailyLimitExceeded"}
)


def _error_reasons(exc: HttpError) -> set[str]:
    """Collect the ``reason`` codes Google attached to an error response."""
    reasons: set[str] = set()
    try:
        body = json.loads(exc.content)
    except (TypeError, ValueError):
        body = None
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        for key in ("errors", "details"):
            for item in error.get(key) or []:
                if isinstance(item, dict) and item.get("reason"):
                    reasons.add(item["reason"])
    for item in getattr(exc, "error_details", None) or []:
        if isinstance(item, dict) and item.get("reason"):
            reasons.add(item["reason"])
    return reasons


def _is_rate_limited(exc: HttpError) -> bool:
    return exc.resp.status == 403 and bool(_error_reasons(exc) & _RATE_LIMIT_REASONS)


def _is_retryable_http_error(exc: BaseException) -> bool:
    if not isinstance(exc, HttpError):
        return False
    return exc.resp.status in (429, 500, 503) or _is_rate_limited(exc)


@retry(
    retry=retry_if_exception(_is_retryable_http_error),
    wait=wait_exponential(multiplier=1, min=1, max=30),
    stop=stop_after_attempt(4),
    reraise=True,
)
def _execute(request: Any) -> Any:
    return request.execute()


class GmailClient:
    """Thin async wrapper around one user's Gmail API service.

    Every blocking ``execute()`` runs in a worker thread so the event loop
    stays free while a batch of fetches is in flight. Instances are scoped to
    a single user and a single scan; use `gmail_client()` to build one from a
    stored token pair.

    Usage::

        async with gmail_client(access_token, refresh_token, ...) as gmail:
            ids = await gmail.list_message_ids(max_results=50)
            message = await gmail.get_message(ids[0])
    """

    def __init__(self, service: Any, body_char_limit: int = BODY_CHAR_LIMIT) -> None:
        self._service = service
        self._body_char_limit = body_char_limit

    # ── Public API ─────────────────────────────────────────────────────────────

    async def get_profile(self) -> dict[str, Any]:
        """Return the authenticated mailbox profile (connection test)."""
        profile = await self._call(lambda: self._service.users().getProfile(userId="me"))
        logger.info("Gmail profile: %s", profile.get("emailAddress", "?"))
        return profile

    async def list_message_ids(
        self,
        query: str | None = "in:inbox",
        max_results: int = 50,
        include_spam_trash: bool = False,
    ) -> list[str]:
        """Return up to ``max_results`` ids of the most recent matching messages."""
        kwargs: dict[str, Any] = {
            "userId": "me",
            "maxResults": max_results,
            "includeSpamTrash": include_spam_trash,
        }
        if query:
            kwargs["q"] = query

        resp = await self._call(lambda: self._service.users().messages().list(**kwargs))
        ids = [str(m["id"]) for m in resp.get("messages", []) if m.get("id")]
        logger.info("Listed %d message(s) for query %r", len(ids), query)
        return ids[:max_results]

    async def get_message(self, message_id: str) -> GmailMessage:
        """Fetch a single message with ``format=full`` and extract its text."""
        data = await self._call(
            lambda: self._service.users().messages().get(
                userId="me", id=message_id, format="full"
            )
        )
        return self.parse_message(data, body_char_limit=self._body_char_limit)

    # ── Parsing ────────────────────────────────────────────────────────────────

    @staticmethod
    def parse_message(data: dict[str, Any], body_char_limit: int = BODY_CHAR_LIMIT) -> GmailMessage:
        """Map a raw ``users.messages.get`` response to a GmailMessage."""
        payload = data.get("payload") or {}
        headers = payload.get("headers") or []
        to_raw = header_value(headers, "To")

        date: str | None = None
        internal = data.get("internalDate")
        if internal:
            try:
                date = datetime.fromtimestamp(int(internal) / 1000, tz=timezone.utc).isoformat()
            except (TypeError, ValueError):
                date = None

        return GmailMessage(
            id=str(data.get("id", "")),
            thread_id=str(data.get("threadId", "")),
            subject=header_value(headers, "Subject"),
            sender=header_value(headers, "From"),
            snippet=str(data.get("snippet", "")),
            body=extract_plain_text(payload, limit=body_char_limit),
            to=[addr.strip() for addr in to_raw.split(",") if addr.strip()],
            labels=list(data.get("labelIds", [])),
            date=date,
        )

    # ── Internal helpers ───────────────────────────────────────────────────────

    async def _call(self, make_request: Callable[[], Any]) -> Any:
        """Build and execute a request off the event loop, translating errors."""
        try:
            return await asyncio.to_thread(lambda: _execute(make_request()))
        except RefreshError as exc:
            logger.warning("Gmail token refresh failed: %s", exc)
            raise GmailAuthError() from exc
        except HttpError as exc:
            status = exc.resp.status
            if _is_rate_limited(exc):
                logger.warning("Gmail quota still exhausted after retries (HTTP %s)", status)
            elif status in (401, 403):
                logger.warning("Gmail rejected credentials (HTTP %s)", status)
                raise GmailAuthError() from exc
            raise GmailError(f"Gmail API call failed (HTTP {status}): {exc}") from exc


def build_credentials(
    access_token: str,
    refresh_token: str | None,
    client_id: str,
    client_secret: str,
    token_uri: str = DEFAULT_TOKEN_URI,
) -> Credentials:
    """Build OAuth2 user credentials from a stored access/refresh token pair."""
    return Credentials(
        token=access_token,
        refresh_token=refresh_token,
        token_uri=token_uri,
        client_id=client_id,
        client_secret=client_secret,
        scopes=[GMAIL_READONLY_SCOPE],
    )


@asynccontextmanager
async def gmail_client(
    access_token: str,
    refresh_token: str | None,
    *,
    client_id: str,
    client_secret: str,
    token_uri: str = DEFAULT_TOKEN_URI,
    body_char_limit: int = BODY_CHAR_LIMIT,
) -> AsyncIterator[GmailClient]:
    """Async context manager yielding a GmailClient bound to one user's tokens.

    The underlying HTTP transport is closed on exit.
    """
    creds = build_credentials(access_token, refresh_token, client_id, client_secret, token_uri)
    service = build("gmail", "v1", credentials=creds, cache_discovery=False)
    try:
        yield GmailClient(service, body_char_limit=body_char_limit)
    finally:
        service.close()
