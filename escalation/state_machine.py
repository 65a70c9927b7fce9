"""
Per-conversation escalation protocol: Idle -> AwaitingConfirmation -> AlertActive.

- Text input classified High/Critical asks the user to confirm an alert.
- The very next message decides: confirmation vocabulary sends it, anything else cancels.
  No timeout, no second chance.
- Voice input carrying an emergency phrase skips confirmation and forces Critical.
- AlertActive only leaves through resolve(), driven from outside.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from escalation.alerts import build_emergency_alert
from severity.keywords import CONFIRMATION_WORDS, VOICE_EMERGENCY_KEYWORDS
from severity.models import (
    Channel,
    ConversationPhase,
    ConversationState,
    EmergencyAlert,
    MergedResult,
    SeverityLevel,
)

logger = logging.getLogger("severity_api.escalation.state_machine")

EMERGENCY_PROMPT = (
    "🚨 Do you want me to alert your emergency contacts with your current location? "
    "Reply **yes** or **alert** to confirm."
)
CANCEL_ACKNOWLEDGEMENT = "Okay, I won't send the alert right now. I'm still here for you. 💜"
ALERT_ALREADY_ACTIVE = "An emergency alert is already active for this conversation."

SAFETY_RESPONSES = {
    SeverityLevel.CRITICAL: (
        "I hear you, and I want you to know, your safety is the most important thing right now. "
        "You are NOT alone. I'm going to help you get support immediately."
    ),
    SeverityLevel.HIGH: (
        "What you're describing sounds very concerning. I want to make sure you feel safe. "
        "Would you like me to alert your emergency contacts right now?"
    ),
    SeverityLevel.MEDIUM: (
        "Thank you for sharing this with me. What you're experiencing is not okay, "
        "and I'm here to help you through it."
    ),
    SeverityLevel.LOW: (
        "I appreciate you reaching out. I'm here to listen and support you. "
        "Let's talk about what happened."
    ),
}

PROMPT_SEVERITIES = (SeverityLevel.HIGH, SeverityLevel.CRITICAL)


class TransitionOutcome(Enum):
    NO_ALERT = "no_alert"
    CONFIRMATION_PROMPT = "confirmation_prompt"
    ALERT = "alert"
    CANCELLED = "cancelled"
    ALERT_ACTIVE = "alert_active"


@dataclass(frozen=True)
class Transition:
    outcome: TransitionOutcome
    phase: ConversationPhase
    severity: SeverityLevel
    alert: Optional[EmergencyAlert] = None
    reply: Optional[str] = None
    voice_keywords: tuple = ()
    auto_triggered: bool = False

    def to_dict(self):
        return {
            "outcome": self.outcome.value,
            "phase": self.phase.value,
            "severity": self.severity.value,
            "alert": self.alert.to_dict() if self.alert else None,
            "reply": self.reply,
            "voice_keywords": list(self.voice_keywords),
            "auto_triggered": self.auto_triggered,
        }


def get_safety_response(severity: SeverityLevel) -> str:
    return SAFETY_RESPONSES[severity]


def detect_voice_emergency_keywords(transcript: Optional[str], keywords=VOICE_EMERGENCY_KEYWORDS) -> list[str]:
    lower = (transcript or "").lower()
    return [kw for kw in keywords if kw in lower]


def is_alert_confirmation(message: Optional[str], words=CONFIRMATION_WORDS) -> bool:
    lower = (message or "").lower().strip()
    if not lower:
        return False
    return any(lower == w or w in lower for w in words)


class EmergencyEscalationStateMachine:
    """Owns one ConversationState. Not thread-safe: callers serialize per conversation."""

    def __init__(
        self,
        state: Optional[ConversationState] = None,
        voice_keywords=VOICE_EMERGENCY_KEYWORDS,
        confirmation_words=CONFIRMATION_WORDS,
    ):
        self.state = state or ConversationState()
        self.voice_keywords = tuple(voice_keywords)
        self.confirmation_words = tuple(confirmation_words)

    @property
    def phase(self) -> ConversationPhase:
        return self.state.phase

    def transition(
        self,
        message: str,
        channel: Channel,
        merged: Optional[MergedResult] = None,
        user_name: Optional[str] = None,
        coordinates: Optional[tuple] = None,
        contacts: Optional[list] = None,
    ) -> Transition:
        """Apply one inbound message. `merged` is the result for the accumulated conversation text."""
        state = self.state

        if state.phase is ConversationPhase.ALERT_ACTIVE:
            return Transition(
                outcome=TransitionOutcome.ALERT_ACTIVE,
                phase=state.phase,
                severity=state.current_severity,
                reply=ALERT_ALREADY_ACTIVE,
            )

        if channel is Channel.VOICE:
            voice_hits = detect_voice_emergency_keywords(message, self.voice_keywords)
            if voice_hits:
                logger.warning("voice emergency phrase detected keywords=%s phase=%s", voice_hits, state.phase.value)
                return self._activate(
                    channel, user_name, coordinates, contacts, voice_keywords=tuple(voice_hits), auto=True,
                )

        if state.phase is ConversationPhase.AWAITING_CONFIRMATION:
            if is_alert_confirmation(message, self.confirmation_words):
                logger.info("alert confirmed")
                return self._activate(channel, user_name, coordinates, contacts)
            logger.info("alert declined; returning to idle severity=%s", state.current_severity.value)
            state.phase = ConversationPhase.IDLE
            return Transition(
                outcome=TransitionOutcome.CANCELLED,
                phase=state.phase,
                severity=state.current_severity,
                reply=CANCEL_ACKNOWLEDGEMENT,
            )

        severity = merged.severity if merged is not None else SeverityLevel.LOW
        state.current_severity = severity
        if channel is Channel.TEXT and severity in PROMPT_SEVERITIES:
            state.phase = ConversationPhase.AWAITING_CONFIRMATION
            logger.info("confirmation requested severity=%s", severity.value)
            return Transition(
                outcome=TransitionOutcome.CONFIRMATION_PROMPT,
                phase=state.phase,
                severity=severity,
                reply=f"{get_safety_response(severity)}\n\n{EMERGENCY_PROMPT}",
            )
        return Transition(outcome=TransitionOutcome.NO_ALERT, phase=state.phase, severity=severity)

    def resolve(self) -> None:
        """External "resolve" action: clear any alert and return to Idle."""
        logger.info("conversation resolved from phase=%s", self.state.phase.value)
        self.state.phase = ConversationPhase.IDLE
        self.state.active_alert = None
        self.state.dispatch_id = None
        self.state.alert_channel = None

    def _activate(self, channel, user_name, coordinates, contacts, voice_keywords=(), auto=False) -> Transition:
        state = self.state
        alert = build_emergency_alert(user_name, coordinates, contacts)
        state.phase = ConversationPhase.ALERT_ACTIVE
        if auto:
            state.current_severity = SeverityLevel.CRITICAL
        state.active_alert = alert
        state.alert_channel = channel
        state.dispatch_id = None
        return Transition(
            outcome=TransitionOutcome.ALERT,
            phase=state.phase,
            severity=state.current_severity,
            alert=alert,
            voice_keywords=voice_keywords,
            auto_triggered=auto,
        )
