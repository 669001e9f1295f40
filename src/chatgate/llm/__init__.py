"""Completion backend access: client construction, prompts and streaming generation."""

from .client import build_llm_client
from .generation import GenerationClient, GenerationStats, build_messages, estimate_tokens
from .prompts import build_system_prompt, deflection_for

__all__ = [
    "build_llm_client",
    "GenerationClient",
    "GenerationStats",
    "build_messages",
    "estimate_tokens",
    "build_system_prompt",
    "deflection_for",
]
