"""Hybrid classification: instant keyword layer, optional inference layer, max-merge."""

import logging
from typing import Callable, Optional

from inference.openai_classifier import classify_with_openai
from severity.classifier import KeywordSeverityClassifier
from severity.config import Settings
from severity.merger import merge
from severity.models import ExternalOutcome, MergedResult

logger = logging.getLogger("severity_api.inference.hybrid")

# (text, category_hint) -> ExternalOutcome
InferenceFn = Callable[[str, Optional[str]], ExternalOutcome]


def openai_inference(settings: Settings, analysis: bool = False) -> Optional[InferenceFn]:
    """Inference callable bound to settings, or None when hybrid inference is off."""
    if not settings.hybrid_inference or not settings.openai_api_key:
        return None

    def _infer(text: str, category_hint: Optional[str] = None) -> ExternalOutcome:
        return classify_with_openai(text, settings, analysis=analysis, category_hint=category_hint)

    return _infer


def hybrid_classify(
    text: str,
    classifier: KeywordSeverityClassifier,
    inference: Optional[InferenceFn] = None,
    category_hint: Optional[str] = None,
) -> MergedResult:
    """Layer 1 always runs. Layer 2 only if an inference callable is given; its failure is a fallback."""
    local = classifier.classify(text)
    if inference is None or not (text or "").strip():
        return merge(local, None, category_hint=category_hint)

    try:
        outcome = inference(text, category_hint)
    except Exception as e:
        # inference callables are meant to return fallbacks; a raise still must not reach callers
        logger.exception("inference callable raised: %s", e)
        outcome = ExternalOutcome.fallback("external inference unavailable")
    if outcome is None:
        outcome = ExternalOutcome.fallback("external inference returned nothing")

    merged = merge(local, outcome, category_hint=category_hint)
    logger.info(
        "hybrid classify local=%s final=%s source=%s fallback=%s",
        local.severity.value, merged.severity.value, merged.source, merged.fallback_reason,
    )
    return merged
