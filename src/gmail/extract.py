"""Plain-text extraction from Gmail ``format=full`` message payloads."""

import base64
import binascii
import logging
from html.parser import HTMLParser
from typing import Any

logger = logging.getLogger(__name__)

# Maximum characters of extracted body kept per message. Applied after HTML
# stripping, so it bounds actual text rather than markup.
BODY_CHAR_LIMIT = 1_500


# ── HTML stripper ───────────────────────────────────────────────────────────────


class _HTMLStripper(HTMLParser):
    """Minimal HTMLParser subclass that collects visible text nodes."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self._parts: list[str] = []
        self._skip = 0

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag in ("script", "style"):
            self._skip += 1

    def handle_endtag(self, tag: str) -> None:
        if tag in ("script", "style") and self._skip:
            self._skip -= 1

    def handle_data(self, data: str) -> None:
        if self._skip:
            return
        text = data.strip()
        if text:
            self._parts.append(text)

    def get_text(self) -> str:
        return " ".join(self._parts)


def strip_html(text: str) -> str:
    """Return the visible text of an HTML document.

    ``&nbsp;`` and other character references are converted by the parser.
    Non-HTML input is returned unchanged.
    """
    if "<" not in text:
        return text.strip()
    stripper = _HTMLStripper()
    stripper.feed(text)
    stripper.close()
    return stripper.get_text()


# ── Decoding ───────────────────────────────────────────────────────────────────


def decode_body(data: str) -> str:
    """Decode a Gmail ``body.data`` value (base64url, padding optional).

    Raises:
        ValueError: if ``data`` is not valid base64.
    """
    padded = data + "=" * (-len(data) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise ValueError(f"invalid base64 body data: {exc}") from exc
    return raw.decode("utf-8", errors="replace")


def header_value(headers: list[dict[str, str]], name: str) -> str:
    """Return the first header matching ``name`` (case-insensitive), or ''."""
    wanted = name.lower()
    for header in headers:
        if str(header.get("name", "")).lower() == wanted:
            return str(header.get("value", ""))
    return ""


# ── Part-tree walk ─────────────────────────────────────────────────────────────


def _collect(node: dict[str, Any] | None, mime_type: str, out: list[str]) -> None:
    """Depth-first walk appending decoded bodies of ``mime_type`` leaves."""
    if not node:
        return
    data = (node.get("body") or {}).get("data")
    if node.get("mimeType") == mime_type and data:
        try:
            out.append(decode_body(data))
        except ValueError as exc:
            logger.warning(
                "Skipping undecodable %s part (partId=%s): %s",
                mime_type,
                node.get("partId", "?"),
                exc,
            )
    for part in node.get("parts") or []:
        _collect(part, mime_type, out)


def extract_plain_text(payload: dict[str, Any] | None, limit: int = BODY_CHAR_LIMIT) -> str:
    """Flatten a Gmail payload tree into a single plain-text string.

    ``text/plain`` leaves are concatenated in traversal order, one per line.
    ``text/html`` leaves are only used, tag-stripped, when the tree has no
    plain-text part at all. The result is truncated to ``limit`` characters.
    """
    parts: list[str] = []
    _collect(payload, "text/plain", parts)

    if not parts:
        html_parts: list[str] = []
        _collect(payload, "text/html", html_parts)
        parts = [strip_html(html) for html in html_parts]

    text = "\n".join(p for p in parts if p).strip()
    return text[:limit]
