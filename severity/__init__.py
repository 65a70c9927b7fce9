"""Severity records, keyword classifier and the local/remote merge policy."""

from severity.models import SeverityLevel, SeverityResult, MergedResult, ExternalOutcome
from severity.classifier import KeywordSeverityClassifier, classify_severity
from severity.merger import merge, parse_external_result

__all__ = [
    "SeverityLevel",
    "SeverityResult",
    "MergedResult",
    "ExternalOutcome",
    "KeywordSeverityClassifier",
    "classify_severity",
    "merge",
    "parse_external_result",
]
