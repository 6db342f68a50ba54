"""Translate provider error payloads into a single actionable sentence."""

from __future__ import annotations

import json
from typing import Any, Mapping

from aiquery_cli.shared.paths import CONFIG_FILE_NAME

NETWORK_PHRASES = (
    "connection refused",
    "connection reset",
    "connection error",
    "could not resolve",
    "name or service not known",
    "failed to connect",
    "network is unreachable",
    "timed out",
    "timeout",
)
RATE_LIMIT_TYPES = frozenset({"rate_limit_error", "rate_limit_exceeded"})
AUTH_TYPES = frozenset({"authentication_error", "invalid_api_key", "permission_error"})
QUOTA_TYPES = frozenset({"payment_required", "insufficient_quota", "billing_error"})
TIMEOUT_TYPES = frozenset({"timeout_error"})
UNAVAILABLE_TYPES = frozenset({"overloaded_error", "service_unavailable", "api_error_unavailable"})
NOT_FOUND_TYPES = frozenset({"not_found_error", "model_not_found"})
UNAVAILABLE_STATUSES = frozenset({502, 503, 504})
MODEL_MARKER = "model:"


def translate_api_error(provider: str, status_code: int | None, raw_error: str) -> str:
    """Return one user-facing sentence for a failed provider call.

    ``status_code`` may be 0 or None for transport-level failures. The raw
    payload is only returned when it carries no structured error at all.
    """
    raw_error = raw_error or ""
    status = status_code or 0
    error_obj = _extract_error_object(raw_error)
    if error_obj is None:
        if _looks_like_network_failure(raw_error):
            return (
                f"Could not reach the {provider} API. Check your network connection and the "
                f"api_endpoint setting in ~/{CONFIG_FILE_NAME}."
            )
        return raw_error.strip() or f"{provider} request failed (HTTP {status})."

    error_type = str(error_obj.get("type") or error_obj.get("code") or error_obj.get("status") or "").lower()
    error_code = str(error_obj.get("code") or "").lower()
    message = str(error_obj.get("message") or "")
    lowered = message.lower()

    if status == 429 or error_type in RATE_LIMIT_TYPES or "rate limit" in lowered or "rate_limit" in lowered:
        return "Rate limit exceeded. Please wait before making more requests."

    if (
        status == 401
        or error_type in AUTH_TYPES
        or error_code == "invalid_api_key"
        or "invalid_api_key" in lowered
        or "invalid api key" in lowered
        or "unauthorized" in lowered
    ):
        return f"Invalid API key for {provider}. Please check your ~/{CONFIG_FILE_NAME} file."

    if status == 402 or error_type in QUOTA_TYPES or error_code == "insufficient_quota" or "quota" in lowered:
        return f"API quota exceeded. Check your {provider} account usage."

    if status == 408 or error_type in TIMEOUT_TYPES or "timeout" in lowered or "timed out" in lowered:
        return "Request timed out. Try increasing request_timeout_ms in config."

    if status in UNAVAILABLE_STATUSES or error_type in UNAVAILABLE_TYPES or "overloaded" in lowered:
        return f"{provider} service is temporarily unavailable. Try again later."

    if error_type in NOT_FOUND_TYPES or error_code == "model_not_found":
        model_name = _extract_model_name(message)
        if model_name:
            return (
                f"Invalid model '{model_name}'. Please check your configuration and use a valid model name. "
                "Common models: 'claude-sonnet-4-5-20250929' (Anthropic), 'gpt-4o' (OpenAI), "
                "'gemini-2.5-flash' (Gemini)."
            )
        return "Model not found. Please check your model configuration and ensure you're using a valid model name."

    if 400 <= status < 500:
        if message:
            return f"The request was invalid ({status}): {message}"
        return "The request was invalid."

    if message:
        return message
    return raw_error.strip()


def _extract_error_object(raw_error: str) -> Mapping[str, Any] | None:
    start = raw_error.find("{")
    if start == -1:
        return None
    try:
        data, _ = json.JSONDecoder().raw_decode(raw_error[start:])
    except json.JSONDecodeError:
        return None
    if isinstance(data, list) and data and isinstance(data[0], Mapping):
        # Gemini wraps its error envelope in a one-element array.
        data = data[0]
    if not isinstance(data, Mapping):
        return None
    error_obj = data.get("error")
    if isinstance(error_obj, Mapping):
        return error_obj
    if isinstance(error_obj, str):
        return {"message": error_obj}
    return None


def _looks_like_network_failure(raw_error: str) -> bool:
    lowered = raw_error.lower()
    return any(phrase in lowered for phrase in NETWORK_PHRASES)


def _extract_model_name(message: str) -> str:
    position = message.find(MODEL_MARKER)
    if position == -1:
        return ""
    return message[position + len(MODEL_MARKER) :].strip().strip("'\"`.")
