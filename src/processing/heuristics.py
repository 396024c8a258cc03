"""Regex-based deal extraction and rule-based deal-type classification."""

import re

from src.processing.types import DealType, ParsedContent

# ── Patterns ───────────────────────────────────────────────────────────────────

# Extraction patterns run against lower-cased "subject body" text.
COMPENSATION_RE = re.compile(r"\$?\d+(?:,\d{3})*(?:\.\d{2})?")
DELIVERABLES_RE = re.compile(
    r"\d+\s*(?:reels?|tiktok|stories?|posts?|videos?|photos?)", re.IGNORECASE
)
DEADLINE_RE = re.compile(
    r"(?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\s+\d{1,2}(?:st|nd|rd|th)?",
    re.IGNORECASE,
)
PAYMENT_TERMS_RE = re.compile(r"net\s?(?:15|30|45|60)", re.IGNORECASE)

# Brand needs the original casing: the lead word is matched case-insensitively,
# the captured name must be Capitalized Words.
BRAND_RE = re.compile(r"\b(?i:brand|company|from)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)")

# Deal-type keyword groups, in priority order.
PR_GIFT_RE = re.compile(r"pr\s*gift|gift|free\s*product|complimentary|sample")
UGC_RE = re.compile(r"ugc|user\s*generated|content\s*creation|organic\s*content")
BRAND_DEAL_RE = re.compile(r"brand\s*deal|partnership|collaboration|sponsor")
SPONSORSHIP_RE = re.compile(r"sponsor|paid\s*partnership|brand\s*ambassador")

#: Substrings that make a message worth parsing at all.
DEAL_KEYWORDS: tuple[str, ...] = (
    "collaboration",
    "partnership",
    "sponsor",
    "brand deal",
    "pr gift",
    "gift",
    "free product",
    "complimentary",
    "ugc",
    "user generated content",
    "content creation",
    "influencer",
    "ambassador",
    "campaign",
)

HIGH_COMPENSATION = 1000
HIGH_COMPENSATION_BONUS = 0.1


# ── Gate ───────────────────────────────────────────────────────────────────────


def is_deal_opportunity(subject: str, body: str) -> bool:
    """True if subject+body mention any of DEAL_KEYWORDS."""
    content = f"{subject} {body}".lower()
    return any(keyword in content for keyword in DEAL_KEYWORDS)


# ── Extraction ─────────────────────────────────────────────────────────────────


def _parse_compensation(content: str) -> int | None:
    match = COMPENSATION_RE.search(content)
    if match is None:
        return None
    digits = match.group(0).replace("$", "").replace(",", "")
    return int(digits.split(".")[0])


def _first(pattern: re.Pattern[str], content: str) -> str | None:
    match = pattern.search(content)
    return match.group(0) if match else None


def classify_deal(content: str, compensation: int | None) -> tuple[DealType, float]:
    """Return (type, confidence) for lower-cased content.

    First match wins: PR gift, then UGC, then brand deal, then sponsorship,
    then a compensation-only fallback. Overlapping keywords therefore favour
    the earlier category.
    """
    if PR_GIFT_RE.search(content):
        deal_type, confidence = DealType.PR_GIFT, 0.9
    elif UGC_RE.search(content):
        deal_type, confidence = DealType.UGC, 0.8 if compensation else 0.6
    elif BRAND_DEAL_RE.search(content):
        deal_type, confidence = DealType.BRAND_DEAL, 0.9 if compensation else 0.7
    elif SPONSORSHIP_RE.search(content):
        deal_type, confidence = DealType.SPONSORSHIP, 0.95 if compensation else 0.8
    elif compensation:
        deal_type, confidence = DealType.BRAND_DEAL, 0.6
    else:
        deal_type, confidence = DealType.UNKNOWN, 0.0

    if compensation and compensation > HIGH_COMPENSATION:
        confidence = min(round(confidence + HIGH_COMPENSATION_BONUS, 2), 1.0)

    return deal_type, confidence


def parse_content(subject: str, body: str) -> ParsedContent:
    """Extract deal details and classify a message from its subject and body."""
    original = f"{subject} {body}"
    content = original.lower()

    compensation = _parse_compensation(content)
    brand_match = BRAND_RE.search(original)
    deal_type, confidence = classify_deal(content, compensation)

    return ParsedContent(
        type=deal_type,
        confidence=confidence,
        compensation=compensation,
        deliverables=DELIVERABLES_RE.findall(content),
        deadline=_first(DEADLINE_RE, content),
        payment_terms=_first(PAYMENT_TERMS_RE, content),
        brand=brand_match.group(1) if brand_match else None,
    )
