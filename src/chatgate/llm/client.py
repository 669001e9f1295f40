"""Construction of the OpenAI-compatible completion client."""

from __future__ import annotations

import logging

from openai import OpenAI

from chatgate.core.config import AppSettings
from chatgate.core.errors import ConfigurationError

logger = logging.getLogger(__name__)


def build_llm_client(settings: AppSettings) -> OpenAI:
    """Create the SDK client for the configured provider.

    Retries are disabled: a failed completion is terminal for the turn and
    any retry policy belongs to the caller.
    """

    credentials = settings.llm_credentials()
    provider = settings.llm.provider.value
    if not credentials["api_key"]:
        raise ConfigurationError(f"{provider} api key is not configured")

    logger.info(
        "initialising completion client",
        extra={"provider": provider, "model": credentials["model"]},
    )
    return OpenAI(
        api_key=credentials["api_key"],
        base_url=credentials["base_url"],
        timeout=credentials["timeout_seconds"],
        max_retries=0,
    )
