"""Tests for records: SeverityLevel ordering, SeverityResult clamping, serialization."""

import dataclasses

import pytest

from severity.models import (
    ConversationPhase,
    ConversationState,
    EmergencyContact,
    ExternalOutcome,
    SeverityLevel,
    SeverityResult,
)


class TestSeverityLevel:
    def test_total_order(self):
        assert SeverityLevel.LOW < SeverityLevel.MEDIUM < SeverityLevel.HIGH < SeverityLevel.CRITICAL
        assert max(SeverityLevel.HIGH, SeverityLevel.LOW) is SeverityLevel.HIGH

    def test_rank(self):
        assert [level.rank for level in SeverityLevel] == [0, 1, 2, 3]

    def test_from_rank_clamps(self):
        assert SeverityLevel.from_rank(7) is SeverityLevel.CRITICAL
        assert SeverityLevel.from_rank(-1) is SeverityLevel.LOW

    def test_from_label_case_insensitive(self):
        assert SeverityLevel.from_label(" high ") is SeverityLevel.HIGH
        assert SeverityLevel.from_label("CRITICAL") is SeverityLevel.CRITICAL

    def test_from_label_unknown(self):
        with pytest.raises(ValueError):
            SeverityLevel.from_label("severe")


class TestSeverityResult:
    def test_clamps_score(self):
        assert SeverityResult(severity=SeverityLevel.CRITICAL, score=14).score == 10
        assert SeverityResult(severity=SeverityLevel.LOW, score=0).score == 1

    def test_immutable(self):
        result = SeverityResult(severity=SeverityLevel.LOW, score=2)
        with pytest.raises(dataclasses.FrozenInstanceError):
            result.score = 5

    def test_to_dict(self):
        result = SeverityResult(severity=SeverityLevel.HIGH, score=7, matched_keywords={"touched", "boss"}, reasoning="r")
        assert result.to_dict() == {
            "severity": "High",
            "severity_score": 7,
            "matched_keywords": ["boss", "touched"],
            "reasoning": "r",
        }


class TestExternalOutcome:
    def test_fallback_is_not_ok(self):
        outcome = ExternalOutcome.fallback("timeout")
        assert not outcome.ok
        assert outcome.reason == "timeout"


class TestConversationState:
    def test_defaults(self):
        state = ConversationState()
        assert state.phase is ConversationPhase.IDLE
        assert state.current_severity is SeverityLevel.LOW
        assert state.pending_alert is False
        assert state.active_alert is None

    def test_pending_alert_follows_phase(self):
        state = ConversationState(phase=ConversationPhase.AWAITING_CONFIRMATION)
        assert state.pending_alert is True
        assert state.to_dict()["pending_alert"] is True


class TestEmergencyContact:
    def test_to_dict_without_email(self):
        assert EmergencyContact(name="A", phone="1").to_dict() == {"name": "A", "phone": "1"}

    def test_to_dict_with_email(self):
        d = EmergencyContact(name="A", phone="1", email="a@example.com").to_dict()
        assert d["email"] == "a@example.com"
