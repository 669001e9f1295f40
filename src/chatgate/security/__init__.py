"""Admission control and risk screening applied before generation."""

from .ratelimit import RequestGate, client_key_from_request
from .risk import RiskClassifier, extract_json_object, tenant_type_for_slug

__all__ = [
    "RequestGate",
    "client_key_from_request",
    "RiskClassifier",
    "extract_json_object",
    "tenant_type_for_slug",
]
