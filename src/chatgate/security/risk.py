"""Two-stage risk screening of inbound chat turns.

Stage A is a deterministic pattern filter that never leaves the process.
Stage B asks a completion backend to judge the message and return a small
JSON verdict. A judge that cannot be reached or understood yields an
``INCONCLUSIVE`` verdict, and ``_apply_fail_open`` is the only place that
turns it into a passing one.
"""

from __future__ import annotations

import json
import math
import re
import time
from typing import Any

import openai
from prometheus_client import Counter, Histogram

from chatgate.core.config import RiskSettings
from chatgate.core.domain import RiskAssessment, TenantType, VerdictKind
from chatgate.core.logging import get_logger, log_incoming, log_outgoing
from chatgate.llm.prompts import JUDGE_INSTRUCTIONS, build_judge_request
from chatgate.utils.timing import elapsed_ms

RISK_VERDICTS = Counter(
    "chatgate_risk_verdicts_total",
    "Risk verdicts by classifier stage and outcome.",
    ["stage", "verdict"],
)

RISK_JUDGE_LATENCY = Histogram(
    "chatgate_risk_judge_latency_seconds",
    "Round-trip latency of semantic risk judge calls.",
)

logger = get_logger(__name__, component="risk_classifier")

MAX_RISK_LEVEL = 10
MIN_RISK_LEVEL = 1

QUICK_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("template_injection", re.compile(r"\{\{.*\}\}")),
    ("script_tag", re.compile(r"<script", re.IGNORECASE)),
    ("shell_sudo", re.compile(r"\bsudo\b")),
    ("code_exec", re.compile(r"\bexec\(")),
    ("code_eval", re.compile(r"\beval\(")),
    ("sql_drop_table", re.compile(r"DROP\s+TABLE", re.IGNORECASE)),
    ("sql_delete_from", re.compile(r";\s*DELETE\s+FROM", re.IGNORECASE)),
)

_SLUG_HINTS: tuple[tuple[TenantType, tuple[str, ...]], ...] = (
    (TenantType.ELDERCARE, ("eldercare", "mimre")),
    (TenantType.RESTAURANT, ("restaurant", "bella", "italia")),
    (TenantType.AUTO_SHOP, ("verkstad", "auto", "bil")),
)

_DECODER = json.JSONDecoder()


def tenant_type_for_slug(slug: str | None) -> TenantType:
    """Derive the tenant category from keywords in its slug."""

    if not slug:
        return TenantType.GENERAL
    lowered = slug.lower()
    for tenant_type, hints in _SLUG_HINTS:
        if any(hint in lowered for hint in hints):
            return tenant_type
    return TenantType.GENERAL


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Return the first well-formed JSON object embedded in ``text``.

    Handles replies wrapped in markdown fences or surrounded by prose.
    """

    index = text.find("{")
    while index != -1:
        try:
            candidate, _ = _DECODER.raw_decode(text, index)
        except json.JSONDecodeError:
            candidate = None
        if isinstance(candidate, dict):
            return candidate
        index = text.find("{", index + 1)
    return None


def clamp_risk_level(value: int) -> int:
    return max(MIN_RISK_LEVEL, min(MAX_RISK_LEVEL, value))


def _coerce_level(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, str):
        try:
            raw = float(raw.strip())
        except ValueError:
            return None
    if not isinstance(raw, (int, float)):
        return None
    if isinstance(raw, float) and not math.isfinite(raw):
        return None
    try:
        return int(raw)
    except (ValueError, OverflowError):
        return None


def _apply_fail_open(assessment: RiskAssessment) -> RiskAssessment:
    """Map an inconclusive verdict to a passing one.

    Availability wins over false-positive safety: a judge that errors,
    times out or answers in an unreadable form never blocks a user.
    """

    if assessment.kind is not VerdictKind.INCONCLUSIVE:
        return assessment
    return RiskAssessment(
        kind=VerdictKind.SAFE,
        risk_level=MIN_RISK_LEVEL,
        reason=assessment.reason,
        analysis_ms=assessment.analysis_ms,
        stage=assessment.stage,
        fail_open=True,
    )


class RiskClassifier:
    """Grades a user message on a 1-10 scale before it reaches generation."""

    def __init__(
        self,
        client: Any,
        settings: RiskSettings,
        *,
        model: str,
    ) -> None:
        self._client = client
        self._settings = settings
        self._model = settings.judge_model or model

    def quick_check(self, text: str) -> str | None:
        """Return the name of the first structural attack pattern in ``text``."""

        for name, pattern in QUICK_PATTERNS:
            if pattern.search(text):
                return name
        return None

    def classify(self, text: str, tenant_type: TenantType) -> RiskAssessment:
        """Run both stages and return the effective verdict for the turn."""

        matched = self.quick_check(text)
        if matched is not None:
            logger.warning("risk.quick_block", pattern=matched)
            assessment = RiskAssessment(
                kind=VerdictKind.SUSPICIOUS,
                risk_level=MAX_RISK_LEVEL,
                reason=f"Dangerous pattern detected: {matched}",
                stage="pattern",
            )
            RISK_VERDICTS.labels("pattern", assessment.kind.value).inc()
            return assessment

        if len(text) < self._settings.min_semantic_length:
            logger.debug("risk.skip_short_message", length=len(text))
            RISK_VERDICTS.labels("skipped", VerdictKind.SAFE.value).inc()
            return RiskAssessment(
                kind=VerdictKind.SAFE,
                risk_level=MIN_RISK_LEVEL,
                reason="Message too short to analyze",
                analysis_ms=0,
                stage="skipped",
            )

        verdict = _apply_fail_open(self._judge(text, tenant_type))
        RISK_VERDICTS.labels(
            "semantic", "fail_open" if verdict.fail_open else verdict.kind.value
        ).inc()
        self._log_verdict(verdict)
        return verdict

    def _judge(self, text: str, tenant_type: TenantType) -> RiskAssessment:
        started = time.perf_counter()
        log_outgoing(
            logger,
            "risk_judge",
            model=self._model,
            prompt_length=len(text),
            tenant_type=tenant_type.value,
        )
        try:
            response = self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": JUDGE_INSTRUCTIONS},
                    {"role": "user", "content": build_judge_request(text, tenant_type)},
                ],
                temperature=self._settings.judge_temperature,
                max_tokens=self._settings.judge_max_tokens,
                timeout=self._settings.judge_timeout_seconds,
            )
        except openai.APIError as exc:
            analysis_ms = elapsed_ms(started)
            log_incoming(logger, "risk_judge", analysis_ms, success=False, error=type(exc).__name__)
            return self._inconclusive(f"Judge unavailable: {type(exc).__name__}", analysis_ms)
        except Exception:
            analysis_ms = elapsed_ms(started)
            logger.exception("risk.judge_failed")
            return self._inconclusive("Judge call failed", analysis_ms)

        analysis_ms = elapsed_ms(started)
        RISK_JUDGE_LATENCY.observe(analysis_ms / 1000)
        reply = _reply_text(response)
        log_incoming(logger, "risk_judge", analysis_ms, response_length=len(reply))
        return self._parse(reply, analysis_ms)

    def _parse(self, reply: str, analysis_ms: int) -> RiskAssessment:
        payload = extract_json_object(reply)
        if payload is None:
            logger.warning("risk.parse_error", response_preview=reply[:100])
            return self._inconclusive("Parse error: no JSON object in judge reply", analysis_ms)

        level = _coerce_level(payload.get("riskLevel"))
        if level is None:
            logger.warning("risk.parse_error", response_preview=reply[:100])
            return self._inconclusive("Parse error: riskLevel missing or not numeric", analysis_ms)

        level = clamp_risk_level(level)
        reason = str(payload.get("reason") or "No reason provided")
        suspicious = level >= self._settings.high_threshold
        return RiskAssessment(
            kind=VerdictKind.SUSPICIOUS if suspicious else VerdictKind.SAFE,
            risk_level=level,
            reason=reason,
            analysis_ms=analysis_ms,
            stage="semantic",
            elevated=not suspicious and level >= self._settings.elevated_threshold,
        )

    @staticmethod
    def _inconclusive(reason: str, analysis_ms: int) -> RiskAssessment:
        return RiskAssessment(
            kind=VerdictKind.INCONCLUSIVE,
            risk_level=MIN_RISK_LEVEL,
            reason=reason,
            analysis_ms=analysis_ms,
            stage="semantic",
        )

    @staticmethod
    def _log_verdict(verdict: RiskAssessment) -> None:
        if verdict.fail_open:
            logger.warning("risk.fail_open", reason=verdict.reason)
        elif verdict.suspicious:
            logger.warning(
                "risk.suspicious", risk_level=verdict.risk_level, reason=verdict.reason
            )
        elif verdict.elevated:
            logger.info("risk.elevated", risk_level=verdict.risk_level, reason=verdict.reason)
        else:
            logger.debug("risk.safe", risk_level=verdict.risk_level)


def _reply_text(response: Any) -> str:
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    return getattr(message, "content", None) or ""
