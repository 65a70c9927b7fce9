"""Emergency escalation: confirmation protocol, alert building and dispatch."""

from escalation.alerts import build_emergency_alert
from escalation.state_machine import EmergencyEscalationStateMachine, TransitionOutcome
from escalation.service import EscalationService

__all__ = [
    "build_emergency_alert",
    "EmergencyEscalationStateMachine",
    "TransitionOutcome",
    "EscalationService",
]
