"""Types for the deal classification pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class DealType(str, Enum):
    """Kind of opportunity an email represents.

    ``PR_GIFT`` is produced by the heuristic parser and ``PR_GIFTING`` by the
    LLM; both denote a product-gifting offer.
    """

    BRAND_DEAL = "Brand Deal"
    UGC = "UGC"
    PR_GIFT = "PR Gift"
    PR_GIFTING = "PR/Gifting"
    SPONSORSHIP = "Sponsorship"
    NONE = "None"
    UNKNOWN = "Unknown"

    @classmethod
    def coerce(cls, value: object) -> DealType:
        """Map a free-form label (e.g. from the LLM) onto a DealType.

        Unrecognised labels become UNKNOWN rather than raising.
        """
        text = str(value or "").strip()
        for member in cls:
            if member.value.lower() == text.lower():
                return member
        return cls.UNKNOWN


class DealStatus(str, Enum):
    """User-driven workflow state of a persisted deal."""

    NEW = "New"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    DECLINED = "Declined"
    ARCHIVED = "Archived"
    REPLIED = "Replied"
    IGNORED = "Ignored"
    BOOKED = "Booked"


# ── Heuristic parser output ────────────────────────────────────────────────────


@dataclass(frozen=True)
class ParsedContent:
    """Fields pulled out of subject+body by the regex parser."""

    type: DealType
    confidence: float
    compensation: int | None = None
    deliverables: list[str] = field(default_factory=list)
    deadline: str | None = None
    payment_terms: str | None = None
    brand: str | None = None


# ── Classifier output ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DealFields:
    """Structured deal details; every field is optional."""

    brand: str | None = None
    compensation: str | None = None  # "1500" from the parser, free text from the LLM
    deliverables: list[str] = field(default_factory=list)
    deadline: str | None = None
    payment_terms: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return only the fields that carry a value."""
        data: dict[str, Any] = {
            "brand": self.brand,
            "compensation": self.compensation,
            "deliverables": list(self.deliverables),
            "deadline": self.deadline,
            "payment_terms": self.payment_terms,
        }
        return {k: v for k, v in data.items() if v not in (None, "", [])}


@dataclass(frozen=True)
class Classification:
    """Common result of every DealClassifier strategy.

    Produced by HeuristicClassifier and LLMClassifier and consumed by the
    ScanOrchestrator, which applies the confidence threshold.
    """

    is_deal: bool
    type: DealType
    confidence: float          # 0.0 → 1.0
    reason: str = ""
    fields: DealFields = field(default_factory=DealFields)

    @classmethod
    def parse_error(cls) -> Classification:
        """Safe negative result used when the LLM output cannot be parsed."""
        return cls(
            is_deal=False,
            type=DealType.NONE,
            confidence=0.0,
            reason="parse_error",
            fields=DealFields(),
        )

    @classmethod
    def not_a_deal(cls, reason: str) -> Classification:
        return cls(is_deal=False, type=DealType.NONE, confidence=0.0, reason=reason)

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_deal": self.is_deal,
            "type": self.type.value,
            "confidence": self.confidence,
            "reason": self.reason,
            "fields": self.fields.to_dict(),
        }
