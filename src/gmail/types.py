"""Data types shared across the Gmail client modules."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class GmailMessage:
    """A single Gmail message built from a ``format=full`` payload.

    ``body`` is the extracted plain text (see src.gmail.extract), already
    truncated to the extractor's character limit.
    """

    id: str
    thread_id: str
    subject: str
    sender: str
    snippet: str
    body: str = ""
    to: list[str] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)
    date: str | None = None  # ISO-8601, from internalDate
