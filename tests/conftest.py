"""Pytest fixtures for severity and escalation tests."""

import pytest

from escalation.dispatch import DispatchResult, InMemoryAlertDispatcher
from escalation.service import EscalationService
from escalation.state_machine import EmergencyEscalationStateMachine
from severity.classifier import KeywordSeverityClassifier
from severity.merger import merge
from severity.models import SeverityLevel, SeverityResult


def make_result(severity: SeverityLevel, score: int = None, keywords=(), reasoning: str = "local") -> SeverityResult:
    scores = {SeverityLevel.LOW: 2, SeverityLevel.MEDIUM: 5, SeverityLevel.HIGH: 7, SeverityLevel.CRITICAL: 9}
    return SeverityResult(
        severity=severity,
        score=scores[severity] if score is None else score,
        matched_keywords=frozenset(keywords),
        reasoning=reasoning,
    )


class FailingDispatcher:
    """Dispatcher that never delivers."""

    def __init__(self):
        self.calls = 0

    def dispatch(self, alert, user_id, org_id, message):
        self.calls += 1
        return DispatchResult(ok=False, error="notification service down")


@pytest.fixture
def classifier():
    return KeywordSeverityClassifier()


@pytest.fixture
def machine():
    """Fresh state machine in Idle."""
    return EmergencyEscalationStateMachine()


@pytest.fixture
def high_merged():
    return merge(make_result(SeverityLevel.HIGH, keywords={"touched"}))


@pytest.fixture
def low_merged():
    return merge(make_result(SeverityLevel.LOW))


@pytest.fixture
def dispatcher():
    return InMemoryAlertDispatcher()


@pytest.fixture
def service(dispatcher):
    """Keyword-only service with an in-memory dispatcher."""
    return EscalationService(inference=None, dispatcher=dispatcher)


@pytest.fixture
def app_client():
    """FastAPI TestClient. Clears conversations and disables LLM inference before each use."""
    from fastapi.testclient import TestClient
    import api.main as main_module
    main_module.service.clear()
    main_module.service.inference = None
    main_module.service.dispatcher = InMemoryAlertDispatcher()
    main_module.analysis_inference = None
    return TestClient(main_module.app)
