"""Configuration, domain types and cross-cutting plumbing for the chat gateway."""

from . import config, domain, errors, logging
from .config import (
    AppSettings,
    ChatSettings,
    LLMProvider,
    LLMSettings,
    MistralSettings,
    OpenAISettings,
    OpenRouterSettings,
    PostgresSettings,
    RateLimitSettings,
    RiskSettings,
)
from .domain import (
    Admission,
    ChatTurn,
    GenerationParams,
    PersonaConfig,
    RiskAssessment,
    TenantConfig,
    TenantType,
    TurnResult,
)
from .logging import configure_logging, get_logger

__all__ = [
    "config",
    "domain",
    "errors",
    "logging",
    "configure_logging",
    "get_logger",
    "AppSettings",
    "PostgresSettings",
    "MistralSettings",
    "OpenAISettings",
    "OpenRouterSettings",
    "LLMProvider",
    "LLMSettings",
    "RateLimitSettings",
    "RiskSettings",
    "ChatSettings",
    "Admission",
    "ChatTurn",
    "GenerationParams",
    "PersonaConfig",
    "RiskAssessment",
    "TenantConfig",
    "TenantType",
    "TurnResult",
]
