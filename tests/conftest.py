"""Shared pytest fixtures."""

import base64
from pathlib import Path

import pytest

from src.storage.db import DealDatabase


def _b64(text: str) -> str:
    """Encode text the way Gmail encodes body.data (base64url, no padding)."""
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


@pytest.fixture
def db(tmp_path: Path) -> DealDatabase:
    database = DealDatabase(db_path=tmp_path / "deals.db")
    yield database
    database.close()


@pytest.fixture
def sample_payload() -> dict[str, object]:
    """A multipart/alternative Gmail payload with plain and HTML bodies."""
    return {
        "mimeType": "multipart/alternative",
        "headers": [
            {"name": "Subject", "value": "Paid partnership with Glow Recipe"},
            {"name": "From", "value": "Jamie <jamie@glowrecipe.test>"},
            {"name": "To", "value": "creator@test.dev, manager@test.dev"},
        ],
        "parts": [
            {
                "partId": "0",
                "mimeType": "text/plain",
                "body": {"data": _b64("We offer $1,200 for 2 Reels, net 30.")},
            },
            {
                "partId": "1",
                "mimeType": "text/html",
                "body": {"data": _b64("<p>We offer <b>$1,200</b> for 2 Reels</p>")},
            },
        ],
    }
