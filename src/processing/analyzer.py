"""LLM deal analysis: Claude-powered classification with a strict JSON contract."""

from __future__ import annotations

import json
import logging
import os
import re

from anthropic import AsyncAnthropic
from anthropic.types import TextBlock

from src.processing.prompts import build_prompt
from src.processing.types import Classification, DealFields, DealType

logger = logging.getLogger(__name__)

# Haiku: fast and cheap enough to run on every scanned email.
DEFAULT_MODEL = "claude-haiku-4-5-20251001"
_MAX_TOKENS = 1024

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


class MalformedResponseError(Exception):
    """Raised internally when a completion is missing or is not a JSON object."""


# ── Analyser ───────────────────────────────────────────────────────────────────


class LLMDealAnalyzer:
    """Sends one email to Claude and returns a typed Classification.

    The model is asked for a bare JSON object. If the reply is missing or
    unparseable the request is repeated once with a "previous response was
    malformed" instruction; if that also fails the parse-error default is
    returned. `analyze()` never raises.

    Usage::

        analyzer = LLMDealAnalyzer(api_key="sk-...")
        result = await analyzer.analyze(text, subject, sender)
    """

    def __init__(self, api_key: str | None = None, model: str | None = None) -> None:
        self._client = AsyncAnthropic(
            api_key=api_key or os.environ.get("ANTHROPIC_API_KEY", "")
        )
        self._model = model or DEFAULT_MODEL

    async def analyze(self, email_text: str, subject: str, sender: str) -> Classification:
        """Classify one email. Returns Classification.parse_error() on failure."""
        try:
            return await self._attempt(build_prompt(email_text, subject, sender))
        except Exception as exc:  # noqa: BLE001
            logger.warning("LLM response unusable (%s); retrying once", exc)

        try:
            return await self._attempt(build_prompt(email_text, subject, sender, retry=True))
        except Exception as exc:  # noqa: BLE001
            logger.error("LLM retry failed for %r: %s", subject, exc)
            return Classification.parse_error()

    async def _attempt(self, prompt: str) -> Classification:
        response = await self._client.messages.create(
            model=self._model,
            max_tokens=_MAX_TOKENS,
            messages=[{"role": "user", "content": prompt}],
        )
        text = "".join(
            block.text for block in response.content if isinstance(block, TextBlock)
        )
        return parse_classification(text)


# ── Parsing ────────────────────────────────────────────────────────────────────


def parse_classification(text: str | None) -> Classification:
    """Convert the raw model text into a Classification.

    Raises:
        MalformedResponseError: if the text is empty or not a JSON object.
    """
    if not text or not text.strip():
        raise MalformedResponseError("no content in completion")

    cleaned = _FENCE_RE.sub("", text.strip())
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedResponseError(f"expected a JSON object, got {type(data).__name__}")

    return _from_dict(data)


def _from_dict(data: dict[str, object]) -> Classification:
    raw_fields = data.get("fields")
    fields = raw_fields if isinstance(raw_fields, dict) else {}

    try:
        confidence = float(data.get("confidence", 0) or 0)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        confidence = 0.0
    confidence = max(0.0, min(confidence, 1.0))

    return Classification(
        is_deal=bool(data.get("is_deal", False)),
        type=DealType.coerce(data.get("type")),
        confidence=confidence,
        reason=str(data.get("reason", "") or ""),
        fields=DealFields(
            brand=_text(fields.get("brand")),
            compensation=_text(fields.get("compensation")),
            deliverables=_as_list(fields.get("deliverables")),
            deadline=_text(fields.get("deadline")),
        ),
    )


def _text(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_list(value: object) -> list[str]:
    """Deliverables come back as a string or a list depending on the model."""
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    text = _text(value)
    return [text] if text else []
