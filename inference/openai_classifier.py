"""
OpenAI-based severity inference (the slow, optional layer).
- One bounded-timeout call, no automatic retry.
- Never raises: every failure comes back as ExternalOutcome.fallback(reason) so the
  caller keeps the deterministic keyword result.
- The response is untrusted text; parsing and validation live in severity.merger.
"""

import logging
from typing import Optional

from openai import APIStatusError, APITimeoutError, OpenAI

from severity.config import Settings
from severity.keywords import CRITICAL_KEYWORDS, HIGH_KEYWORDS, LOW_KEYWORDS, MEDIUM_KEYWORDS
from severity.merger import parse_external_result
from severity.models import ExternalOutcome

logger = logging.getLogger("severity_api.inference.openai")


def _kw_line(keywords) -> str:
    return ", ".join(keywords)


CLASSIFICATION_PROMPT = f"""You are an AI severity classification engine for a workplace safety and POSH compliance system.

Analyze the complaint description and classify it into EXACTLY ONE severity level: Low, Medium, High, Critical.

Keyword guidance:
LOW: {_kw_line(LOW_KEYWORDS)}
MEDIUM: {_kw_line(MEDIUM_KEYWORDS)}
HIGH: {_kw_line(HIGH_KEYWORDS)}
CRITICAL: {_kw_line(CRITICAL_KEYWORDS)}

Rules:
1. Use the HIGHEST severity keyword detected as the base severity.
2. If multiple severity keywords appear, choose the most severe category.
3. Increase severity for power imbalance (manager, senior, lead), repetition or ongoing behavior,
   and threats related to job, appraisal, or safety.
4. Emotional distress indicators (fear, panic, trauma) increase severity.
5. Physical harm or credible threats are CRITICAL.
6. If the complaint is ambiguous, prioritize user safety and choose the higher severity.
"""

CLASSIFY_SCHEMA = """
Return ONLY a JSON object, no markdown fences:
{
  "severity": "Low | Medium | High | Critical",
  "matched_keywords": [],
  "reasoning": "",
  "incident_summary": "<one neutral sentence>"
}"""

ANALYSIS_SCHEMA = """
Return ONLY a JSON object, no markdown fences:
{
  "severity": "Low | Medium | High | Critical",
  "severity_score": <1-10 integer>,
  "matched_keywords": [],
  "reasoning": "",
  "incident_summary": "<one neutral sentence>",
  "sentiment": "negative | distressed | neutral | mixed",
  "category": "verbal | physical | cyber | quid_pro_quo",
  "recommended_action": "<one sentence recommended immediate HR action>"
}

severity_score guide: 1-3 minor discomfort, 4-6 significant harassment, 7-8 severe, 9-10 extremely serious/criminal."""


def build_prompt(text: str, analysis: bool = False, category_hint: Optional[str] = None) -> str:
    parts = [CLASSIFICATION_PROMPT]
    if category_hint:
        parts.append(f"Complaint type reported by the user: {category_hint}")
    parts.append('Complaint description:\n"""\n' + text.strip()[:4000] + '\n"""')
    parts.append(ANALYSIS_SCHEMA if analysis else CLASSIFY_SCHEMA)
    return "\n\n".join(parts)


def classify_with_openai(
    text: str,
    settings: Settings,
    analysis: bool = False,
    category_hint: Optional[str] = None,
    client=None,
) -> ExternalOutcome:
    """
    Ask the model for a structured severity judgment. `client` may be injected (tests);
    otherwise one is built from settings with timeout=inference_timeout_sec, max_retries=0.
    """
    if not text or not text.strip():
        return ExternalOutcome.fallback("empty text")
    if client is None:
        if not settings.openai_api_key:
            logger.debug("openai inference skipped: no OPENAI_API_KEY")
            return ExternalOutcome.fallback("external inference not configured")
        client = OpenAI(
            api_key=settings.openai_api_key,
            timeout=settings.inference_timeout_sec,
            max_retries=0,
        )

    prompt = build_prompt(text, analysis=analysis, category_hint=category_hint)
    logger.info("openai inference start text_len=%d analysis=%s model=%s", len(text.strip()), analysis, settings.openai_model)
    try:
        response = client.chat.completions.create(
            model=settings.openai_model,
            messages=[{"role": "user", "content": prompt}],
            temperature=0,
            max_tokens=400,
        )
        raw = (response.choices[0].message.content or "").strip()
    except APITimeoutError:
        logger.warning("openai inference timed out after %.1fs", settings.inference_timeout_sec)
        return ExternalOutcome.fallback("external inference timed out")
    except APIStatusError as e:
        logger.warning("openai inference non-success status=%s", e.status_code)
        return ExternalOutcome.fallback(f"external inference returned status {e.status_code}")
    except Exception as e:
        logger.exception("openai inference failed: %s", e)
        return ExternalOutcome.fallback("external inference unavailable")

    if not raw:
        logger.warning("openai empty response")
        return ExternalOutcome.fallback("empty external response")
    outcome = parse_external_result(raw)
    logger.info("openai inference done ok=%s", outcome.ok)
    return outcome
