"""Keyword-based severity classifier (no external services).

Rules:
 1. The highest tier with a keyword match is the base severity.
 2. Power imbalance, repetition, threats and (two or more) emotional distress markers
    each escalate by one tier, up to Critical.
 3. Any physical-harm indicator is Critical, whatever else matched.
 4. Ambiguity never lowers severity.
"""

import logging
import re
from typing import Optional

from severity.config import DEFAULT_POLICY, EscalationPolicy
from severity.keywords import DEFAULT_TABLES, KeywordTables
from severity.models import EscalationSignal, SeverityLevel, SeverityResult

logger = logging.getLogger("severity_api.classifier")

_SIGNAL_LABELS = {
    EscalationSignal.POWER_IMBALANCE: "Power imbalance detected",
    EscalationSignal.REPETITION: "Repetition/ongoing behavior",
    EscalationSignal.THREAT: "Threats detected",
    EscalationSignal.EMOTIONAL_DISTRESS: "Emotional distress signals",
    EscalationSignal.PHYSICAL_HARM: "Physical harm indicators",
}


class KeywordMatcher:
    """Precompiled matcher for one keyword category.

    Phrases (containing a space) match as case-insensitive substrings; single words
    match on word boundaries so "hit" does not fire inside "white".
    """

    def __init__(self, keywords):
        self.keywords = tuple(keywords)
        self._phrases = [kw.lower() for kw in self.keywords if " " in kw]
        words = [kw.lower() for kw in self.keywords if " " not in kw]
        self._word_patterns = [(w, re.compile(r"\b" + re.escape(w) + r"\b", re.I)) for w in words]

    def find(self, text: str) -> list[str]:
        """Matched keywords in table order (so output is stable for identical input)."""
        lower = text.lower()
        hits = set(p for p in self._phrases if p in lower)
        hits.update(w for w, rx in self._word_patterns if rx.search(lower))
        return [kw.lower() for kw in self.keywords if kw.lower() in hits]


class KeywordSeverityClassifier:
    def __init__(self, tables: KeywordTables = DEFAULT_TABLES, policy: EscalationPolicy = DEFAULT_POLICY):
        self.tables = tables
        self.policy = policy
        self.tier_matchers = {level: KeywordMatcher(kws) for level, kws in tables.tiers().items()}
        self.signal_matchers = {sig: KeywordMatcher(kws) for sig, kws in tables.signals().items()}

    def classify(self, text: Optional[str]) -> SeverityResult:
        text = (text or "").strip()
        if not text:
            logger.debug("classify skipped empty text")
            return SeverityResult(
                severity=SeverityLevel.LOW,
                score=self.policy.empty_score,
                matched_keywords=frozenset(),
                reasoning="Empty complaint text, defaulting to Low.",
            )

        tier_matches = {level: m.find(text) for level, m in self.tier_matchers.items()}
        signal_matches = {sig: m.find(text) for sig, m in self.signal_matchers.items()}

        base = SeverityLevel.LOW
        for level in sorted(tier_matches, reverse=True):
            if tier_matches[level]:
                base = level
                break

        physical = signal_matches[EscalationSignal.PHYSICAL_HARM]
        if physical:
            final = SeverityLevel.CRITICAL
        else:
            final = SeverityLevel.from_rank(base.rank + self._escalation_bumps(signal_matches))

        fired = [
            sig for sig, hits in signal_matches.items()
            if hits and (sig is not EscalationSignal.EMOTIONAL_DISTRESS or len(hits) >= self.policy.distress_min_matches)
        ]
        # physical harm and weak distress still belong in the audit trail
        reported = [sig for sig, hits in signal_matches.items() if hits]

        total = sum(len(h) for h in tier_matches.values()) + sum(len(h) for h in signal_matches.values())
        score = self.policy.score_base[final]
        for threshold in self.policy.score_bonus_thresholds:
            if total >= threshold:
                score += 1
        score = min(score, self.policy.max_score)

        reasons = [
            f"Base severity: {base.value} (keywords: {', '.join(tier_matches[base]) or 'none'})"
        ]
        if reported:
            details = "; ".join(f"{_SIGNAL_LABELS[sig]} ({', '.join(signal_matches[sig])})" for sig in reported)
            if final > base:
                reasons.append(f"Escalated to {final.value} due to: {details}")
            else:
                reasons.append(f"Signals noted without escalation: {details}")
        if physical:
            reasons.append("Physical harm indicators automatically classify as Critical.")

        matched = set()
        for hits in tier_matches.values():
            matched.update(hits)
        for hits in signal_matches.values():
            matched.update(hits)

        logger.debug(
            "classify done text_len=%d base=%s final=%s score=%d signals=%s",
            len(text), base.value, final.value, score, [s.value for s in fired],
        )
        return SeverityResult(
            severity=final,
            score=score,
            matched_keywords=frozenset(matched),
            reasoning=" | ".join(reasons),
        )

    def _escalation_bumps(self, signal_matches: dict) -> int:
        bumps = 0
        for sig in (EscalationSignal.POWER_IMBALANCE, EscalationSignal.REPETITION, EscalationSignal.THREAT):
            if signal_matches[sig]:
                bumps += self.policy.signal_bump
        if len(signal_matches[EscalationSignal.EMOTIONAL_DISTRESS]) >= self.policy.distress_min_matches:
            bumps += self.policy.signal_bump
        return bumps


_default_classifier = KeywordSeverityClassifier()


def classify_severity(text: Optional[str]) -> SeverityResult:
    """Classify with the default English tables and policy."""
    return _default_classifier.classify(text)


def severity_to_score(severity: SeverityLevel, policy: EscalationPolicy = DEFAULT_POLICY) -> int:
    return policy.score_base[severity]


def score_to_severity(score: int) -> SeverityLevel:
    if score >= 9:
        return SeverityLevel.CRITICAL
    if score >= 7:
        return SeverityLevel.HIGH
    if score >= 4:
        return SeverityLevel.MEDIUM
    return SeverityLevel.LOW
