"""Runtime settings, read from environment variables (.env supported)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from src.gmail.client import DEFAULT_TOKEN_URI
from src.processing.analyzer import DEFAULT_MODEL

CLASSIFIERS = ("heuristic", "llm")


class ConfigError(Exception):
    """Raised when required configuration is missing or malformed."""


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


@dataclass
class Settings:
    """Everything the scanner, API and CLI need to run."""

    google_client_id: str = ""
    google_client_secret: str = ""
    google_token_uri: str = DEFAULT_TOKEN_URI
    anthropic_api_key: str = ""
    llm_model: str = DEFAULT_MODEL
    classifier: str = "heuristic"
    db_path: Path = field(default_factory=lambda: Path("data/deals.db"))
    scan_query: str = "in:inbox"
    scan_max_results: int = 50
    scan_batch_size: int = 20
    min_confidence: float = 0.7
    api_key: str | None = None

    @classmethod
    def from_env(cls) -> Settings:
        """Build Settings from environment variables.

        Raises:
            ConfigError: if a numeric variable cannot be parsed.
        """
        return cls(
            google_client_id=os.environ.get("GOOGLE_CLIENT_ID", ""),
            google_client_secret=os.environ.get("GOOGLE_CLIENT_SECRET", ""),
            google_token_uri=os.environ.get("GOOGLE_TOKEN_URI", DEFAULT_TOKEN_URI),
            anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY", ""),
            llm_model=os.environ.get("LLM_MODEL", DEFAULT_MODEL),
            classifier=os.environ.get("DEAL_CLASSIFIER", "heuristic").strip().lower(),
            db_path=Path(os.environ.get("DEAL_SCANNER_DB", "data/deals.db")),
            scan_query=os.environ.get("SCAN_QUERY", "in:inbox"),
            scan_max_results=_env_int("SCAN_MAX_RESULTS", 50),
            scan_batch_size=_env_int("SCAN_BATCH_SIZE", 20),
            min_confidence=_env_float("DEAL_MIN_CONFIDENCE", 0.7),
            api_key=os.environ.get("DEAL_SCANNER_API_KEY") or None,
        )

    def validate(self) -> None:
        """Fail closed on missing credentials or out-of-range values.

        Raises:
            ConfigError: naming every missing variable.
        """
        if self.classifier not in CLASSIFIERS:
            raise ConfigError(
                f"DEAL_CLASSIFIER must be one of {', '.join(CLASSIFIERS)}; got {self.classifier!r}"
            )

        missing = []
        if not self.google_client_id:
            missing.append("GOOGLE_CLIENT_ID")
        if not self.google_client_secret:
            missing.append("GOOGLE_CLIENT_SECRET")
        if self.classifier == "llm" and not self.anthropic_api_key:
            missing.append("ANTHROPIC_API_KEY")
        if missing:
            raise ConfigError(f"Missing required configuration: {', '.join(missing)}")

        if not 0.0 <= self.min_confidence <= 1.0:
            raise ConfigError("DEAL_MIN_CONFIDENCE must be between 0 and 1")
        if self.scan_max_results < 1 or self.scan_batch_size < 1:
            raise ConfigError("SCAN_MAX_RESULTS and SCAN_BATCH_SIZE must be positive")
