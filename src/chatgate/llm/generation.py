"""Streaming completions with time-to-first-token instrumentation."""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Sequence
from typing import Any

import openai
from prometheus_client import Counter, Histogram

from chatgate.core.config import LLMSettings
from chatgate.core.domain import (
    GenerationParams,
    GenerationResult,
    HistoryTurn,
    Role,
    SenderType,
    TokenEstimate,
)
from chatgate.core.errors import UpstreamError, UpstreamRateLimitedError
from chatgate.core.logging import get_logger, log_incoming, log_outgoing
from chatgate.utils.timing import elapsed_ms

from .prompts import HEALTH_PROBE_PROMPT, STAFF_REPLY_ACKNOWLEDGEMENT, STAFF_REPLY_TEMPLATE

GENERATION_CALLS = Counter(
    "chatgate_generation_calls_total",
    "Completion requests by outcome.",
    ["outcome"],
)

GENERATION_TTFT = Histogram(
    "chatgate_generation_ttft_seconds",
    "Time until the first streamed content chunk arrives.",
    buckets=(0.1, 0.25, 0.5, 0.75, 1.0, 1.5, 2.5, 5.0, 10.0),
)

GENERATION_LATENCY = Histogram(
    "chatgate_generation_latency_seconds",
    "Total duration of streamed completions.",
)

ESTIMATED_TOKENS = Counter(
    "chatgate_generation_estimated_tokens_total",
    "Estimated (character based) token usage.",
    ["direction"],
)

CHARS_PER_TOKEN = 4

logger = get_logger(__name__, component="generation")


def estimate_tokens(
    prompt_chars: int,
    output_chars: int,
    *,
    input_price_per_million: float,
    output_price_per_million: float,
) -> TokenEstimate:
    """Rough token and cost estimate from character counts; not billing grade."""

    input_tokens = math.ceil(prompt_chars / CHARS_PER_TOKEN)
    output_tokens = math.ceil(output_chars / CHARS_PER_TOKEN)
    cost = (
        input_tokens * input_price_per_million + output_tokens * output_price_per_million
    ) / 1_000_000
    return TokenEstimate(
        input=input_tokens,
        output=output_tokens,
        total=input_tokens + output_tokens,
        estimated_cost=cost,
    )


def build_messages(
    system_instructions: str,
    history: Sequence[HistoryTurn],
    user_message: str,
) -> list[dict[str, str]]:
    """Translate stored or client history into chat completion messages.

    A reply written by a human operator becomes a synthetic user/assistant
    pair so the model knows staff already answered and does not contradict it.
    """

    messages = [{"role": "system", "content": system_instructions}]
    for turn in history:
        if turn.sender_type is SenderType.HUMAN_OPERATOR:
            messages.append(
                {"role": "user", "content": STAFF_REPLY_TEMPLATE.format(content=turn.content)}
            )
            messages.append({"role": "assistant", "content": STAFF_REPLY_ACKNOWLEDGEMENT})
            continue
        if turn.role is Role.ASSISTANT or turn.sender_type is SenderType.ASSISTANT:
            messages.append({"role": "assistant", "content": turn.content})
        else:
            messages.append({"role": "user", "content": turn.content})
    messages.append({"role": "user", "content": user_message})
    return messages


class GenerationStats:
    """Process-lifetime call counters surfaced by the health report."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts = {
            "totalCalls": 0,
            "successfulCalls": 0,
            "failedCalls": 0,
            "rateLimitHits": 0,
            "totalTokensUsed": 0,
        }

    def bump(self, key: str, amount: int = 1) -> None:
        with self._lock:
            self._counts[key] += amount

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counts)


class GenerationClient:
    """Streams completions from an OpenAI-compatible backend."""

    def __init__(
        self,
        client: Any,
        settings: LLMSettings,
        *,
        model: str,
        stats: GenerationStats | None = None,
    ) -> None:
        self._client = client
        self._settings = settings
        self._model = model
        self._stats = stats or GenerationStats()

    @property
    def model(self) -> str:
        return self._model

    def generate(
        self,
        system_instructions: str,
        history: Sequence[HistoryTurn],
        user_message: str,
        params: GenerationParams | None = None,
    ) -> GenerationResult:
        """Stream one completion and return the concatenated reply with timings.

        Raises ``UpstreamRateLimitedError`` when the backend reports
        saturation and ``UpstreamError`` for every other backend failure.
        """

        params = params or GenerationParams()
        model = params.model or self._model
        temperature = (
            params.temperature if params.temperature is not None else self._settings.temperature
        )
        max_tokens = params.max_tokens if params.max_tokens is not None else self._settings.max_tokens
        messages = build_messages(system_instructions, history, user_message)

        log_outgoing(
            logger,
            "completion_backend",
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            message_count=len(messages),
            prompt_length=len(user_message),
            system_prompt_length=len(system_instructions),
        )
        self._stats.bump("totalCalls")

        started = time.perf_counter()
        ttft_ms: int | None = None
        parts: list[str] = []
        try:
            stream = self._client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                stream=True,
            )
            for chunk in stream:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if not content:
                    continue
                if ttft_ms is None:
                    ttft_ms = elapsed_ms(started)
                    GENERATION_TTFT.observe(ttft_ms / 1000)
                    logger.info("generation.ttft", ttft_ms=ttft_ms)
                parts.append(content)
        except openai.RateLimitError as exc:
            self._record_failure(started, rate_limited=True)
            raise UpstreamRateLimitedError() from exc
        except openai.APIError as exc:
            self._record_failure(started)
            raise UpstreamError(
                "Completion backend request failed",
                details={"type": type(exc).__name__},
            ) from exc

        total_ms = elapsed_ms(started)
        text = "".join(parts).strip()
        tokens = estimate_tokens(
            len(system_instructions) + len(user_message),
            len(text),
            input_price_per_million=self._settings.input_price_per_million,
            output_price_per_million=self._settings.output_price_per_million,
        )

        GENERATION_CALLS.labels("success").inc()
        GENERATION_LATENCY.observe(total_ms / 1000)
        ESTIMATED_TOKENS.labels("input").inc(tokens.input)
        ESTIMATED_TOKENS.labels("output").inc(tokens.output)
        self._stats.bump("successfulCalls")
        self._stats.bump("totalTokensUsed", tokens.total)

        log_incoming(
            logger,
            "completion_backend",
            total_ms,
            ttft_ms=ttft_ms,
            response_length=len(text),
            estimated_input_tokens=tokens.input,
            estimated_output_tokens=tokens.output,
            estimated_cost=round(tokens.estimated_cost, 6),
            model=model,
        )
        if tokens.output > self._settings.long_response_tokens:
            logger.warning(
                "generation.long_response",
                output_tokens=tokens.output,
                response_length=len(text),
            )

        return GenerationResult(
            text=text,
            ttft_ms=ttft_ms if ttft_ms is not None else total_ms,
            total_ms=total_ms,
            tokens=tokens,
            model=model,
        )

    def ping(self) -> dict[str, Any]:
        """Issue a tiny completion to check the backend is reachable."""

        started = time.perf_counter()
        log_outgoing(logger, "completion_backend", query="health check", model=self._model)
        try:
            response = self._client.chat.completions.create(
                model=self._model,
                messages=[{"role": "user", "content": HEALTH_PROBE_PROMPT}],
                max_tokens=10,
            )
        except Exception as exc:
            latency = elapsed_ms(started)
            log_incoming(logger, "completion_backend", latency, success=False)
            logger.warning("generation.ping_failed", error=str(exc))
            return {"ok": False, "error": str(exc), "latencyMs": latency, "model": self._model}

        latency = elapsed_ms(started)
        choices = getattr(response, "choices", None) or []
        text = (choices[0].message.content or "") if choices else ""
        log_incoming(logger, "completion_backend", latency, response=text[:20], model=self._model)
        return {"ok": True, "response": text.strip(), "latencyMs": latency, "model": self._model}

    def runtime_stats(self) -> dict[str, int]:
        return self._stats.snapshot()

    def _record_failure(self, started: float, *, rate_limited: bool = False) -> None:
        latency = elapsed_ms(started)
        GENERATION_CALLS.labels("rate_limited" if rate_limited else "failure").inc()
        self._stats.bump("failedCalls")
        if rate_limited:
            self._stats.bump("rateLimitHits")
        log_incoming(
            logger,
            "completion_backend",
            latency,
            success=False,
            rate_limited=rate_limited,
        )
        logger.warning("generation.failed", rate_limited=rate_limited, latency_ms=latency)
