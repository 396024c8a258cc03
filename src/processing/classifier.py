"""DealClassifier interface and its heuristic / LLM strategies."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from src.gmail.types import GmailMessage
from src.processing.analyzer import LLMDealAnalyzer
from src.processing.heuristics import is_deal_opportunity, parse_content
from src.processing.types import Classification, DealFields, DealType

if TYPE_CHECKING:
    from src.config import Settings

logger = logging.getLogger(__name__)


@runtime_checkable
class DealClassifier(Protocol):
    """Interface the scan orchestrator classifies messages through."""

    #: Stored on each deal as its ``source``.
    name: str

    async def classify(self, message: GmailMessage) -> Classification:
        """Classify a single message.

        Implementations must not raise for content they cannot understand;
        return a negative Classification instead.
        """
        ...


class HeuristicClassifier:
    """Keyword gate followed by the regex parser. No network calls."""

    name = "heuristic"

    async def classify(self, message: GmailMessage) -> Classification:
        if not is_deal_opportunity(message.subject, message.body):
            return Classification.not_a_deal("no_deal_keywords")

        parsed = parse_content(message.subject, message.body)
        return Classification(
            is_deal=parsed.type not in (DealType.UNKNOWN, DealType.NONE),
            type=parsed.type,
            confidence=parsed.confidence,
            reason="heuristic",
            fields=DealFields(
                brand=parsed.brand,
                compensation=str(parsed.compensation) if parsed.compensation is not None else None,
                deliverables=list(parsed.deliverables),
                deadline=parsed.deadline,
                payment_terms=parsed.payment_terms,
            ),
        )


class LLMClassifier:
    """Delegates every message to LLMDealAnalyzer."""

    name = "llm"

    def __init__(self, analyzer: LLMDealAnalyzer) -> None:
        self._analyzer = analyzer

    async def classify(self, message: GmailMessage) -> Classification:
        text = message.body or message.snippet
        return await self._analyzer.analyze(text, message.subject, message.sender)


def create_classifier(settings: Settings) -> DealClassifier:
    """Return the classifier strategy named by ``settings.classifier``."""
    if settings.classifier == "llm":
        logger.info("Using LLM classifier (model=%s)", settings.llm_model)
        return LLMClassifier(
            LLMDealAnalyzer(api_key=settings.anthropic_api_key, model=settings.llm_model)
        )
    logger.info("Using heuristic classifier")
    return HeuristicClassifier()
