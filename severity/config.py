"""Escalation tuning constants and environment-driven runtime settings."""

import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

from severity.models import SeverityLevel


@dataclass(frozen=True)
class EscalationPolicy:
    """Heuristic tuning for the keyword classifier. Recalibrate here, not in the classifier."""
    signal_bump: int = 1  # ranks added per fired escalation signal
    distress_min_matches: int = 2  # emotional distress counts only from this many distinct keywords
    # wrapped read-only in __post_init__; excluded from the hash
    score_base: Mapping = field(hash=False, default_factory=lambda: {
        SeverityLevel.LOW: 2,
        SeverityLevel.MEDIUM: 5,
        SeverityLevel.HIGH: 7,
        SeverityLevel.CRITICAL: 9,
    })
    score_bonus_thresholds: tuple = (5, 8)  # +1 score at each total-match threshold reached
    empty_score: int = 1
    max_score: int = 10

    def __post_init__(self):
        object.__setattr__(self, "score_base", MappingProxyType(dict(self.score_base)))
        object.__setattr__(self, "score_bonus_thresholds", tuple(self.score_bonus_thresholds))


DEFAULT_POLICY = EscalationPolicy()

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_INFERENCE_TIMEOUT_SEC = 8.0
DEFAULT_DISPATCH_TIMEOUT_SEC = 10.0


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    openai_api_key: Optional[str] = None
    openai_model: str = DEFAULT_OPENAI_MODEL
    inference_timeout_sec: float = DEFAULT_INFERENCE_TIMEOUT_SEC
    hybrid_inference: bool = False
    dispatch_url: Optional[str] = None
    dispatch_timeout_sec: float = DEFAULT_DISPATCH_TIMEOUT_SEC

    @classmethod
    def from_env(cls) -> "Settings":
        """Read settings from os.environ (call load_dotenv() first to pick up .env)."""
        api_key = os.environ.get("OPENAI_API_KEY", "").strip() or None
        return cls(
            openai_api_key=api_key,
            openai_model=os.environ.get("OPENAI_MODEL", "").strip() or DEFAULT_OPENAI_MODEL,
            inference_timeout_sec=_env_float("INFERENCE_TIMEOUT_SEC", DEFAULT_INFERENCE_TIMEOUT_SEC),
            hybrid_inference=_env_flag("HYBRID_INFERENCE", api_key is not None),
            dispatch_url=(os.environ.get("DISPATCH_URL", "").strip().rstrip("/") or None),
            dispatch_timeout_sec=_env_float("DISPATCH_TIMEOUT_SEC", DEFAULT_DISPATCH_TIMEOUT_SEC),
        )
