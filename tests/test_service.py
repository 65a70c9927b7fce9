"""Tests for EscalationService: per-conversation turns, accumulated classification, dispatch, resolve."""

import threading

import pytest

from escalation.dispatch import CHAT_TRIGGER_MESSAGE, VOICE_TRIGGER_MESSAGE
from escalation.service import DISPATCH_FAILED_REPLY, EscalationService, cumulative_text
from severity.models import Channel, ConversationPhase, ExternalOutcome, ExternalResult, SeverityLevel

from tests.conftest import FailingDispatcher


class TestCumulativeText:
    def test_joins_user_turns_only(self):
        history = [
            {"role": "user", "content": "my manager"},
            {"role": "assistant", "content": "I hear you, help is here"},
            {"role": "user", "content": "keeps shouting"},
        ]
        assert cumulative_text(history, "at me") == "my manager keeps shouting at me"

    def test_no_history(self):
        assert cumulative_text(None, "hello") == "hello"


class TestHandleMessage:
    def test_unknown_conversation_has_no_state(self, service):
        assert service.get_state("c-1") is None

    def test_low_message_creates_idle_conversation(self, service):
        result = service.handle_message("c-1", "he told an awkward joke")
        assert result.outcome == "no_alert"
        assert service.get_state("c-1").phase is ConversationPhase.IDLE
        assert result.merged.severity is SeverityLevel.LOW

    def test_history_accumulates_severity(self, service):
        history = [{"role": "user", "content": "My director keeps calling me into his office"}]
        result = service.handle_message("c-1", "and he shouted at me", history=history)
        assert result.merged.severity >= SeverityLevel.HIGH
        assert result.outcome == "confirmation_prompt"

    def test_confirm_dispatches_alert(self, service, dispatcher):
        service.handle_message("c-1", "He touched me")
        result = service.handle_message("c-1", "yes", user_name="Priya", user_id="emp-7", org_id="org-3")
        assert result.outcome == "alert"
        assert result.dispatch.ok
        assert "EMERGENCY ALERT SENT" in result.reply
        assert result.state["phase"] == "alert_active"
        assert result.state["dispatch_id"] == result.dispatch.alert_id
        assert len(dispatcher.records) == 1
        assert dispatcher.records[0]["user_id"] == "emp-7"

    def test_confirmation_reply_is_not_classified(self, service):
        service.handle_message("c-1", "He touched me")
        result = service.handle_message("c-1", "no, I was raped")
        assert result.outcome == "cancelled"
        assert result.merged is None

    def test_voice_auto_trigger_forces_critical(self, service, dispatcher):
        result = service.handle_message("c-1", "somebody help, save me", channel=Channel.VOICE)
        assert result.outcome == "alert"
        assert result.merged.severity is SeverityLevel.CRITICAL
        assert {"somebody help", "save me"} <= result.merged.matched_keywords
        assert result.transition.auto_triggered
        assert len(dispatcher.records) == 1

    def test_alert_active_is_noop(self, service, dispatcher):
        service.handle_message("c-1", "help me", channel=Channel.VOICE)
        result = service.handle_message("c-1", "help me", channel=Channel.VOICE)
        assert result.outcome == "alert_active"
        assert len(dispatcher.records) == 1

    def test_conversations_are_independent(self, service):
        service.handle_message("c-1", "He touched me")
        service.handle_message("c-2", "hello")
        assert service.get_state("c-1").pending_alert
        assert not service.get_state("c-2").pending_alert
        assert sorted(service.conversation_ids()) == ["c-1", "c-2"]

    def test_inference_merged_monotonically(self, dispatcher):
        def infer(text, hint):
            return ExternalOutcome.success(ExternalResult(severity=SeverityLevel.HIGH, score=8, reasoning="coercion"))

        service = EscalationService(inference=infer, dispatcher=dispatcher)
        result = service.handle_message("c-1", "he keeps asking me out for drinks")
        assert result.merged.severity is SeverityLevel.HIGH
        assert result.merged.source == "hybrid"
        assert result.outcome == "confirmation_prompt"


class TestDispatchFailure:
    def test_failure_is_distinct_outcome(self):
        failing = FailingDispatcher()
        service = EscalationService(dispatcher=failing)
        result = service.handle_message("c-1", "help me", channel=Channel.VOICE)
        assert result.outcome == "dispatch_failed"
        assert result.reply == DISPATCH_FAILED_REPLY
        assert result.to_dict()["dispatch"]["ok"] is False
        state = service.get_state("c-1")
        assert state.phase is ConversationPhase.ALERT_ACTIVE
        assert state.active_alert is not None
        assert state.dispatch_id is None

    def test_raising_dispatcher_is_failure(self):
        class Broken:
            def dispatch(self, alert, user_id, org_id, message):
                raise RuntimeError("boom")

        result = EscalationService(dispatcher=Broken()).handle_message("c-1", "help me", channel=Channel.VOICE)
        assert result.outcome == "dispatch_failed"

    def test_redispatch_after_failure(self, dispatcher):
        service = EscalationService(dispatcher=FailingDispatcher())
        service.handle_message("c-1", "help me", channel=Channel.VOICE)
        service.dispatcher = dispatcher
        result = service.redispatch("c-1")
        assert result.ok
        assert service.get_state("c-1").dispatch_id == result.alert_id
        assert len(dispatcher.records) == 1

    def test_redispatch_when_already_delivered(self, service, dispatcher):
        service.handle_message("c-1", "help me", channel=Channel.VOICE)
        result = service.redispatch("c-1")
        assert result.ok
        assert len(dispatcher.records) == 1

    def test_redispatch_without_alert(self, service):
        service.handle_message("c-1", "hello")
        with pytest.raises(LookupError):
            service.redispatch("c-1")

    def test_redispatch_unknown_conversation(self, service):
        with pytest.raises(KeyError):
            service.redispatch("missing")


class TestResolve:
    def test_resolve_returns_idle(self, service):
        service.handle_message("c-1", "help me", channel=Channel.VOICE)
        state = service.resolve("c-1")
        assert state.phase is ConversationPhase.IDLE
        assert state.active_alert is None

    def test_resolve_unknown(self, service):
        with pytest.raises(KeyError):
            service.resolve("missing")

    def test_clear(self, service):
        service.handle_message("c-1", "hello")
        service.clear()
        assert service.get_state("c-1") is None


class TestConcurrency:
    def test_concurrent_confirmations_build_one_alert(self, service, dispatcher):
        service.handle_message("c-1", "He touched me")
        barrier = threading.Barrier(8)
        outcomes = []

        def confirm():
            barrier.wait()
            outcomes.append(service.handle_message("c-1", "yes").outcome)

        threads = [threading.Thread(target=confirm) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("alert") == 1
        assert len(dispatcher.records) == 1


class TestVoiceSOSSkipsInference:
    def test_inference_not_called_on_voice_sos(self, dispatcher):
        calls = []

        def infer(text, hint):
            calls.append(text)
            return ExternalOutcome.fallback("slow")

        service = EscalationService(inference=infer, dispatcher=dispatcher)
        result = service.handle_message("c-1", "help me", channel=Channel.VOICE)
        assert result.outcome == "alert"
        assert result.merged.severity is SeverityLevel.CRITICAL
        assert calls == []

    def test_inference_still_used_for_other_voice_input(self, dispatcher):
        calls = []

        def infer(text, hint):
            calls.append(text)
            return ExternalOutcome.fallback("slow")

        service = EscalationService(inference=infer, dispatcher=dispatcher)
        service.handle_message("c-1", "he shouted at me", channel=Channel.VOICE)
        assert calls == ["he shouted at me"]


class TestRedispatchMessage:
    def test_voice_alert_redispatched_as_voice(self, dispatcher):
        service = EscalationService(dispatcher=FailingDispatcher())
        service.handle_message("c-1", "help me", channel=Channel.VOICE)
        service.dispatcher = dispatcher
        service.redispatch("c-1")
        assert dispatcher.records[0]["message"] == VOICE_TRIGGER_MESSAGE

    def test_chat_alert_redispatched_as_chat(self, dispatcher):
        service = EscalationService(dispatcher=FailingDispatcher())
        service.handle_message("c-1", "He touched me")
        service.handle_message("c-1", "yes")
        service.dispatcher = dispatcher
        service.redispatch("c-1")
        assert dispatcher.records[0]["message"] == CHAT_TRIGGER_MESSAGE


class TestResolveEviction:
    def test_resolved_conversation_is_forgotten(self, service):
        service.handle_message("c-1", "help me", channel=Channel.VOICE)
        service.resolve("c-1")
        assert service.get_state("c-1") is None
        assert service.conversation_ids() == []
        assert service._locks == {}

    def test_unknown_ids_leave_no_locks(self, service):
        with pytest.raises(KeyError):
            service.resolve("missing")
        with pytest.raises(KeyError):
            service.redispatch("missing")
        assert service._locks == {}

    def test_message_after_resolve_starts_idle(self, service):
        service.handle_message("c-1", "help me", channel=Channel.VOICE)
        service.resolve("c-1")
        result = service.handle_message("c-1", "hello")
        assert result.outcome == "no_alert"
        assert service.get_state("c-1").active_alert is None

    def test_resolve_racing_confirmations_keeps_one_machine(self, service):
        service.handle_message("c-1", "He touched me")
        barrier = threading.Barrier(5)

        def confirm():
            barrier.wait()
            service.handle_message("c-1", "yes")

        def resolve():
            barrier.wait()
            service.resolve("c-1")

        threads = [threading.Thread(target=confirm) for _ in range(4)] + [threading.Thread(target=resolve)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(service.conversation_ids()) <= 1
        assert set(service._locks) <= {"c-1"}
