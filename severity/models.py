"""Severity and escalation records: immutable results, per-conversation state, alerts."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class SeverityLevel(Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    @classmethod
    def from_rank(cls, rank: int) -> "SeverityLevel":
        rank = max(0, min(len(_SEVERITY_ORDER) - 1, rank))
        return _SEVERITY_ORDER[rank]

    @classmethod
    def from_label(cls, label: str) -> "SeverityLevel":
        """Case-insensitive parse ("high", "HIGH", " High ") -> HIGH. Raises ValueError."""
        wanted = str(label).strip().lower()
        for level in _SEVERITY_ORDER:
            if level.value.lower() == wanted:
                return level
        raise ValueError(f"unknown severity level: {label!r}")

    def __lt__(self, other):
        if not isinstance(other, SeverityLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, SeverityLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, SeverityLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, SeverityLevel):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_ORDER = [SeverityLevel.LOW, SeverityLevel.MEDIUM, SeverityLevel.HIGH, SeverityLevel.CRITICAL]


class EscalationSignal(Enum):
    POWER_IMBALANCE = "power_imbalance"
    REPETITION = "repetition"
    THREAT = "threat"
    EMOTIONAL_DISTRESS = "emotional_distress"
    PHYSICAL_HARM = "physical_harm"


class Channel(Enum):
    TEXT = "text"
    VOICE = "voice"


class ConversationPhase(Enum):
    IDLE = "idle"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    ALERT_ACTIVE = "alert_active"


@dataclass(frozen=True)
class SeverityResult:
    severity: SeverityLevel
    score: int  # 1 - 10
    matched_keywords: frozenset = frozenset()
    reasoning: str = ""

    def __post_init__(self):
        object.__setattr__(self, "score", max(1, min(10, int(self.score))))
        object.__setattr__(self, "matched_keywords", frozenset(self.matched_keywords))

    def to_dict(self):
        return {
            "severity": self.severity.value,
            "severity_score": self.score,
            "matched_keywords": sorted(self.matched_keywords),
            "reasoning": self.reasoning,
        }


@dataclass(frozen=True)
class ExternalResult:
    """Validated result from the external inference collaborator."""
    severity: SeverityLevel
    score: int
    matched_keywords: frozenset = frozenset()
    reasoning: str = ""
    incident_summary: Optional[str] = None
    sentiment: Optional[str] = None
    category: Optional[str] = None
    recommended_action: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "score", max(1, min(10, int(self.score))))
        object.__setattr__(self, "matched_keywords", frozenset(self.matched_keywords))


@dataclass(frozen=True)
class ExternalOutcome:
    """Either Ok(result) or Fallback(reason). Callers branch on `ok`, never on exceptions."""
    result: Optional[ExternalResult] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.result is not None

    @classmethod
    def success(cls, result: ExternalResult) -> "ExternalOutcome":
        return cls(result=result)

    @classmethod
    def fallback(cls, reason: str) -> "ExternalOutcome":
        return cls(reason=reason)


@dataclass(frozen=True)
class MergedResult:
    severity: SeverityLevel
    score: int
    matched_keywords: frozenset
    reasoning: str
    sentiment: str
    category: str
    recommended_action: str
    incident_summary: Optional[str] = None
    source: str = "local"  # "local" | "hybrid"
    fallback_reason: Optional[str] = None

    @property
    def risk_level(self) -> str:
        return self.severity.value.lower()

    def to_dict(self):
        d = {
            "severity": self.severity.value,
            "severity_score": self.score,
            "risk_level": self.risk_level,
            "matched_keywords": sorted(self.matched_keywords),
            "reasoning": self.reasoning,
            "sentiment": self.sentiment,
            "category": self.category,
            "recommended_action": self.recommended_action,
            "source": self.source,
        }
        if self.incident_summary is not None:
            d["incident_summary"] = self.incident_summary
        if self.fallback_reason is not None:
            d["fallback_reason"] = self.fallback_reason
        return d


@dataclass(frozen=True)
class EmergencyContact:
    name: str
    phone: str
    email: Optional[str] = None

    def to_dict(self):
        d = {"name": self.name, "phone": self.phone}
        if self.email is not None:
            d["email"] = self.email
        return d


@dataclass(frozen=True)
class EmergencyAlert:
    user_name: str
    latitude: float
    longitude: float
    maps_link: str
    message: str
    contacts: tuple  # tuple of EmergencyContact, order preserved
    triggered_at: str

    def to_dict(self):
        return {
            "user_name": self.user_name,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "maps_link": self.maps_link,
            "message": self.message,
            "contacts": [c.to_dict() for c in self.contacts],
            "triggered_at": self.triggered_at,
        }


@dataclass
class ConversationState:
    """Single-slot escalation state for one conversation. Never persisted."""
    phase: ConversationPhase = ConversationPhase.IDLE
    current_severity: SeverityLevel = SeverityLevel.LOW
    active_alert: Optional[EmergencyAlert] = None
    dispatch_id: Optional[str] = None
    alert_channel: Optional[Channel] = None  # channel that triggered active_alert

    @property
    def pending_alert(self) -> bool:
        return self.phase is ConversationPhase.AWAITING_CONFIRMATION

    def to_dict(self):
        return {
            "phase": self.phase.value,
            "pending_alert": self.pending_alert,
            "current_severity": self.current_severity.value,
            "active_alert": self.active_alert.to_dict() if self.active_alert else None,
            "dispatch_id": self.dispatch_id,
            "alert_channel": self.alert_channel.value if self.alert_channel else None,
        }
