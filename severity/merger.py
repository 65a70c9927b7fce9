"""Merge the local keyword result with an optional external inference result.

The external side can only raise severity, never lower it. Anything unusable from the
external side (absent, timed out, malformed) leaves the local result authoritative.
"""

import json
import logging
import math
import re
from typing import Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from severity.config import DEFAULT_POLICY
from severity.models import (
    ExternalOutcome,
    ExternalResult,
    MergedResult,
    SeverityLevel,
    SeverityResult,
)

logger = logging.getLogger("severity_api.merger")

DEFAULT_CATEGORY = "verbal"

DEFAULT_RECOMMENDED_ACTIONS = {
    SeverityLevel.CRITICAL: "Immediately escalate to ICC Presiding Officer and notify Security. Ensure complainant safety.",
    SeverityLevel.HIGH: "Assign senior ICC member within 24 hours. Document all evidence. Consider interim safety measures.",
    SeverityLevel.MEDIUM: "Assign ICC member for initial review within 48 hours. Schedule preliminary hearing.",
    SeverityLevel.LOW: "Log the complaint and schedule an informal resolution meeting with HR.",
}

DEFAULT_SENTIMENTS = {
    SeverityLevel.CRITICAL: "distressed",
    SeverityLevel.HIGH: "distressed",
    SeverityLevel.MEDIUM: "negative",
    SeverityLevel.LOW: "negative",
}


class ExternalPayload(BaseModel):
    """Shape we accept from the inference collaborator. Unknown keys are ignored."""
    severity: SeverityLevel
    matched_keywords: list[str] = Field(default_factory=list)
    reasoning: str = ""
    severity_score: Optional[int] = None
    incident_summary: Optional[str] = None
    sentiment: Optional[str] = None
    category: Optional[str] = None
    recommended_action: Optional[str] = None

    @field_validator("severity", mode="before")
    @classmethod
    def _parse_severity(cls, v):
        if isinstance(v, SeverityLevel):
            return v
        return SeverityLevel.from_label(v)

    @field_validator("matched_keywords", mode="before")
    @classmethod
    def _parse_keywords(cls, v):
        if v is None:
            return []
        if not isinstance(v, list):
            raise ValueError("matched_keywords must be a list")
        return [str(k).strip().lower() for k in v if str(k).strip()]

    @field_validator("severity_score", mode="before")
    @classmethod
    def _parse_score(cls, v):
        if v is None or v == "":
            return None
        try:
            score = float(v)
        except TypeError:
            raise ValueError("severity_score must be a number")
        if not math.isfinite(score):
            raise ValueError("severity_score must be finite")
        return max(1, min(10, int(round(score))))


def _strip_json_block(raw: str) -> str:
    """Remove markdown code fence if present so we can parse JSON."""
    s = raw.strip()
    if s.startswith("```"):
        s = re.sub(r"^```(?:json)?\s*", "", s)
        s = re.sub(r"\s*```\s*$", "", s)
    return s.strip()


def _normalize_keys(data: dict) -> dict:
    """Accept the aliases the prompts in use produce (keywords, analysis_reason, camelCase)."""
    out = dict(data)
    if "matched_keywords" not in out:
        for alias in ("matchedKeywords", "keywords"):
            if alias in out:
                out["matched_keywords"] = out[alias]
                break
    if not out.get("reasoning"):
        if out.get("analysis_reason"):
            out["reasoning"] = out["analysis_reason"]
    if "severity" not in out and out.get("risk_level"):
        out["severity"] = out["risk_level"]
    for camel, snake in (("severityScore", "severity_score"), ("incidentSummary", "incident_summary"),
                         ("recommendedAction", "recommended_action")):
        if snake not in out and camel in out:
            out[snake] = out[camel]
    return out


def parse_external_result(raw: Optional[str]) -> ExternalOutcome:
    """Parse untrusted inference text into Ok(ExternalResult) or Fallback(reason). Never raises."""
    if raw is None or not str(raw).strip():
        return ExternalOutcome.fallback("empty external response")
    raw = _strip_json_block(str(raw))
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        m = re.search(r"\{[\s\S]*\}", raw)
        if not m:
            logger.warning("external response has no json object len=%d raw_preview=%r", len(raw), raw[:200])
            return ExternalOutcome.fallback("external response is not JSON")
        try:
            data = json.loads(m.group(0))
        except json.JSONDecodeError as e:
            logger.warning("external json decode failed len=%d err=%s", len(raw), e)
            return ExternalOutcome.fallback("external response is not JSON")

    if not isinstance(data, dict):
        logger.warning("external response not a dict type=%s", type(data).__name__)
        return ExternalOutcome.fallback("external response is not an object")

    try:
        payload = ExternalPayload.model_validate(_normalize_keys(data))
    except ValidationError as e:
        logger.warning("external response failed validation errors=%d", e.error_count())
        return ExternalOutcome.fallback("external response failed validation")

    score = payload.severity_score
    if score is None:
        score = DEFAULT_POLICY.score_base[payload.severity]
    return ExternalOutcome.success(ExternalResult(
        severity=payload.severity,
        score=score,
        matched_keywords=frozenset(payload.matched_keywords),
        reasoning=payload.reasoning.strip(),
        incident_summary=(payload.incident_summary or "").strip() or None,
        sentiment=(payload.sentiment or "").strip() or None,
        category=(payload.category or "").strip() or None,
        recommended_action=(payload.recommended_action or "").strip() or None,
    ))


def merge(
    local: SeverityResult,
    external: Union[ExternalOutcome, ExternalResult, None] = None,
    category_hint: Optional[str] = None,
) -> MergedResult:
    """Higher severity wins; scores take the max; keywords are unioned.

    rank(merge(a, b).severity) == max(rank(a.severity), rank(b.severity)).
    """
    fallback_reason = None
    if isinstance(external, ExternalOutcome):
        if not external.ok:
            fallback_reason = external.reason
        external = external.result
    elif external is None:
        fallback_reason = "external inference not requested"

    category = (category_hint or "").strip() or DEFAULT_CATEGORY

    if external is None:
        return MergedResult(
            severity=local.severity,
            score=local.score,
            matched_keywords=local.matched_keywords,
            reasoning=local.reasoning,
            sentiment=DEFAULT_SENTIMENTS[local.severity],
            category=category,
            recommended_action=DEFAULT_RECOMMENDED_ACTIONS[local.severity],
            source="local",
            fallback_reason=fallback_reason,
        )

    severity = max(local.severity, external.severity)
    return MergedResult(
        severity=severity,
        score=max(local.score, external.score),
        matched_keywords=local.matched_keywords | external.matched_keywords,
        reasoning=external.reasoning or local.reasoning,
        sentiment=external.sentiment or DEFAULT_SENTIMENTS[severity],
        category=external.category or category,
        recommended_action=external.recommended_action or DEFAULT_RECOMMENDED_ACTIONS[severity],
        incident_summary=external.incident_summary,
        source="hybrid",
    )


def force_critical(merged: MergedResult, extra_keywords=()) -> MergedResult:
    """Voice SOS override: severity becomes Critical, score lifted to the Critical base."""
    critical = SeverityLevel.CRITICAL
    return MergedResult(
        severity=critical,
        score=max(merged.score, DEFAULT_POLICY.score_base[critical]),
        matched_keywords=merged.matched_keywords | frozenset(extra_keywords),
        reasoning=merged.reasoning,
        sentiment=DEFAULT_SENTIMENTS[critical],
        category=merged.category,
        recommended_action=DEFAULT_RECOMMENDED_ACTIONS[critical],
        incident_summary=merged.incident_summary,
        source=merged.source,
        fallback_reason=merged.fallback_reason,
    )
