"""Prompt builder for LLM deal analysis."""

#: Prepended to the prompt when the first response could not be parsed.
RETRY_PREFIX = "The previous response was malformed JSON. Please provide ONLY valid JSON. "

_INSTRUCTIONS = """\
You are an intelligent email analyzer for a Gmail tool that helps social media \
content creators manage potential brand collaborations, UGC deals, and PR/gifting offers.

Your task:
1. Read the email carefully.
2. Decide if it's a brand collaboration, UGC deal, or PR/gifting offer.
3. If yes, extract the structured details.
4. If not, classify it as "None."

Guidelines:
- Base your decision ONLY on the text provided.
- Do not guess missing information.
- If uncertain, set confidence below 0.6.
- Return ONLY valid JSON (no explanations outside the JSON).

Output JSON Format:
{
  "is_deal": true | false,
  "type": "Brand Deal | UGC | PR/Gifting | None",
  "confidence": 0.0-1.0,
  "reason": "short reasoning",
  "fields": {
    "brand": "brand or company name, if mentioned",
    "compensation": "exact pay or gift details, if mentioned",
    "deliverables": "expected social media content or tasks, if mentioned",
    "deadline": "any mentioned deadline or posting date"
  }
}
"""


def build_prompt(email_text: str, subject: str, sender: str, *, retry: bool = False) -> str:
    """Build the single user prompt for analysing one email.

    ``email_text`` is expected to be already extracted and truncated.
    """
    prompt = (
        f"{_INSTRUCTIONS}\n"
        "EMAIL CONTENT:\n"
        f"Subject: {subject}\n"
        f"From: {sender}\n"
        f"Body: {email_text}\n"
    )
    return RETRY_PREFIX + prompt if retry else prompt
