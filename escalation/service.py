"""
Conversation-level escalation: one state machine per conversation id, one turn at a time.

A turn (classification, transition, alert build, dispatch) runs under the conversation's
lock, so a conversation never holds two pending confirmations and a confirmed escalation
builds exactly one alert.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional

from escalation.alerts import format_alert_summary
from escalation.dispatch import (
    CHAT_TRIGGER_MESSAGE,
    VOICE_TRIGGER_MESSAGE,
    AlertDispatcher,
    DispatchResult,
    InMemoryAlertDispatcher,
)
from escalation.state_machine import (
    EmergencyEscalationStateMachine,
    Transition,
    TransitionOutcome,
    detect_voice_emergency_keywords,
)
from inference.hybrid import InferenceFn, hybrid_classify
from severity.classifier import KeywordSeverityClassifier
from severity.merger import force_critical
from severity.models import Channel, ConversationPhase, ConversationState, MergedResult

logger = logging.getLogger("severity_api.escalation.service")

DEFAULT_USER_ID = "demo-emp-001"
DEFAULT_ORG_ID = "demo-org-001"

DISPATCH_FAILED_REPLY = (
    "⚠️ I could not confirm that your emergency contacts were notified. "
    "If you are in immediate physical danger, please call **112** right now."
)


@dataclass(frozen=True)
class TurnResult:
    conversation_id: str
    transition: Transition
    state: dict
    merged: Optional[MergedResult] = None
    dispatch: Optional[DispatchResult] = None
    reply: Optional[str] = None

    @property
    def outcome(self) -> str:
        if self.dispatch is not None and not self.dispatch.ok:
            return "dispatch_failed"
        return self.transition.outcome.value

    def to_dict(self):
        return {
            "conversation_id": self.conversation_id,
            "outcome": self.outcome,
            "transition": self.transition.to_dict(),
            "state": self.state,
            "classification": self.merged.to_dict() if self.merged else None,
            "dispatch": self.dispatch.to_dict() if self.dispatch else None,
            "reply": self.reply,
        }


def _trigger_message(channel: Optional[Channel]) -> str:
    return VOICE_TRIGGER_MESSAGE if channel is Channel.VOICE else CHAT_TRIGGER_MESSAGE


def cumulative_text(history: Optional[list], text: str) -> str:
    """User turns from prior history plus the new message, in order."""
    parts = []
    for turn in history or []:
        if isinstance(turn, dict) and turn.get("role") == "user" and turn.get("content"):
            parts.append(str(turn["content"]))
    parts.append(text or "")
    return " ".join(p for p in parts if p.strip())


class EscalationService:
    def __init__(
        self,
        classifier: Optional[KeywordSeverityClassifier] = None,
        inference: Optional[InferenceFn] = None,
        dispatcher: Optional[AlertDispatcher] = None,
    ):
        self.classifier = classifier or KeywordSeverityClassifier()
        self.inference = inference
        self.dispatcher = dispatcher or InMemoryAlertDispatcher()
        self._machines: dict[str, EmergencyEscalationStateMachine] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    @contextmanager
    def _conversation_lock(self, conversation_id: str):
        """Hold the conversation's lock; retry if resolve() evicted it while we waited."""
        while True:
            with self._registry_lock:
                lock = self._locks.get(conversation_id)
                if lock is None:
                    lock = self._locks[conversation_id] = threading.Lock()
            lock.acquire()
            with self._registry_lock:
                current = self._locks.get(conversation_id) is lock
            if current:
                break
            lock.release()
        try:
            yield
        finally:
            lock.release()

    def _evict(self, conversation_id: str) -> None:
        with self._registry_lock:
            self._machines.pop(conversation_id, None)
            self._locks.pop(conversation_id, None)

    def _machine_for(self, conversation_id: str) -> EmergencyEscalationStateMachine:
        with self._registry_lock:
            machine = self._machines.get(conversation_id)
            if machine is None:
                machine = self._machines[conversation_id] = EmergencyEscalationStateMachine()
                logger.info("conversation started conversation_id=%s", conversation_id)
        return machine

    def get_state(self, conversation_id: str) -> Optional[ConversationState]:
        machine = self._machines.get(conversation_id)
        return machine.state if machine else None

    def conversation_ids(self) -> list[str]:
        return list(self._machines.keys())

    def clear(self) -> None:
        with self._registry_lock:
            self._machines.clear()
            self._locks.clear()

    def handle_message(
        self,
        conversation_id: str,
        text: str,
        channel: Channel = Channel.TEXT,
        history: Optional[list] = None,
        user_name: Optional[str] = None,
        user_id: Optional[str] = None,
        org_id: Optional[str] = None,
        coordinates: Optional[tuple] = None,
        contacts: Optional[list] = None,
        category_hint: Optional[str] = None,
    ) -> TurnResult:
        with self._conversation_lock(conversation_id):
            machine = self._machine_for(conversation_id)
            merged = None
            if machine.phase is ConversationPhase.IDLE:
                inference = self.inference
                # voice SOS alerts are not held up by the external call
                if channel is Channel.VOICE and detect_voice_emergency_keywords(text, machine.voice_keywords):
                    inference = None
                merged = hybrid_classify(
                    cumulative_text(history, text), self.classifier, inference, category_hint=category_hint,
                )

            transition = machine.transition(
                text, channel, merged, user_name=user_name, coordinates=coordinates, contacts=contacts,
            )
            logger.info(
                "turn conversation_id=%s channel=%s text_len=%d outcome=%s phase=%s",
                conversation_id, channel.value, len(text or ""), transition.outcome.value, transition.phase.value,
            )

            if transition.auto_triggered:
                if merged is None:
                    merged = hybrid_classify(cumulative_text(history, text), self.classifier, None, category_hint)
                merged = force_critical(merged, transition.voice_keywords)

            if transition.outcome is not TransitionOutcome.ALERT:
                return TurnResult(
                    conversation_id=conversation_id,
                    transition=transition,
                    state=machine.state.to_dict(),
                    merged=merged,
                    reply=transition.reply,
                )

            result = self._dispatch(machine, user_id, org_id, _trigger_message(channel))
            return TurnResult(
                conversation_id=conversation_id,
                transition=transition,
                state=machine.state.to_dict(),
                merged=merged,
                dispatch=result,
                reply=format_alert_summary(transition.alert) if result.ok else DISPATCH_FAILED_REPLY,
            )

    def redispatch(self, conversation_id: str, user_id: Optional[str] = None, org_id: Optional[str] = None) -> DispatchResult:
        """Retry delivery of an active alert whose dispatch failed. Raises KeyError / LookupError."""
        with self._conversation_lock(conversation_id):
            machine = self._machines.get(conversation_id)
            if machine is None:
                self._evict(conversation_id)
                raise KeyError(conversation_id)
            state = machine.state
            if state.phase is not ConversationPhase.ALERT_ACTIVE or state.active_alert is None:
                raise LookupError("no active alert")
            if state.dispatch_id is not None:
                return DispatchResult(ok=True, alert_id=state.dispatch_id)
            return self._dispatch(machine, user_id, org_id, _trigger_message(state.alert_channel))

    def resolve(self, conversation_id: str) -> ConversationState:
        """Return the conversation to Idle and forget it; a later message starts afresh."""
        with self._conversation_lock(conversation_id):
            machine = self._machines.get(conversation_id)
            self._evict(conversation_id)
            if machine is None:
                raise KeyError(conversation_id)
            machine.resolve()
            logger.info("conversation evicted conversation_id=%s", conversation_id)
            return machine.state

    def _dispatch(self, machine, user_id, org_id, message) -> DispatchResult:
        state = machine.state
        try:
            result = self.dispatcher.dispatch(
                state.active_alert, user_id or DEFAULT_USER_ID, org_id or DEFAULT_ORG_ID, message,
            )
        except Exception as e:
            logger.exception("dispatcher raised: %s", e)
            result = DispatchResult(ok=False, error="dispatcher error")
        if result.ok:
            state.dispatch_id = result.alert_id
        else:
            logger.error("alert not delivered error=%s", result.error)
        return result
