from __future__ import annotations

import json

import pytest

from aiquery_cli.ai_query.errors import translate_api_error


def _body(error_type: str = "", message: str = "", code: str | None = None) -> str:
    error: dict[str, str] = {}
    if error_type:
        error["type"] = error_type
    if message:
        error["message"] = message
    if code:
        error["code"] = code
    return json.dumps({"error": error})


def test_rate_limit_body_is_translated() -> None:
    raw = '{"error":{"type":"rate_limit_error","message":"too many requests"}}'

    message = translate_api_error("Anthropic", 429, raw)

    assert "rate limit" in message.lower()
    assert "{" not in message


def test_rate_limit_detected_by_type_without_status() -> None:
    assert translate_api_error("OpenAI", 0, _body("rate_limit_error", "slow down")).startswith("Rate limit exceeded")


@pytest.mark.parametrize(
    "status, body",
    [
        (401, _body("authentication_error", "invalid x-api-key")),
        (400, _body("invalid_request_error", "Incorrect API key provided", code="invalid_api_key")),
        (403, _body("", "Unauthorized request")),
    ],
)
def test_auth_errors_point_at_config_file(status: int, body: str) -> None:
    message = translate_api_error("OpenAI", status, body)

    assert message == "Invalid API key for OpenAI. Please check your ~/.aiquery.config file."


@pytest.mark.parametrize(
    "status, body",
    [
        (402, _body("payment_required", "add credits")),
        (429, _body("insufficient_quota", "You exceeded your current quota")),
    ],
)
def test_quota_errors(status: int, body: str) -> None:
    message = translate_api_error("OpenAI", status, body)

    if status == 429:
        # 429 is checked first, before quota.
        assert message.startswith("Rate limit exceeded")
    else:
        assert message == "API quota exceeded. Check your OpenAI account usage."


def test_quota_detected_from_message() -> None:
    message = translate_api_error("Gemini", 400, _body("", "Quota exhausted for project"))

    assert message == "API quota exceeded. Check your Gemini account usage."


def test_timeout_suggests_config_change() -> None:
    message = translate_api_error("Anthropic", 408, _body("timeout_error", "Request timed out."))

    assert "request_timeout_ms" in message


@pytest.mark.parametrize("status", [502, 503, 504])
def test_gateway_statuses_mean_unavailable(status: int) -> None:
    message = translate_api_error("Anthropic", status, _body("api_error", "upstream failure"))

    assert message == "Anthropic service is temporarily unavailable. Try again later."


def test_overloaded_type_means_unavailable() -> None:
    message = translate_api_error("Anthropic", 529, _body("overloaded_error", "Overloaded"))

    assert "temporarily unavailable" in message


def test_model_not_found_names_the_model() -> None:
    body = _body("not_found_error", "model: claude-imaginary-9")

    message = translate_api_error("Anthropic", 404, body)

    assert message.startswith("Invalid model 'claude-imaginary-9'.")


def test_model_not_found_without_model_name() -> None:
    body = _body("invalid_request_error", "The model does not exist", code="model_not_found")

    message = translate_api_error("OpenAI", 404, body)

    assert message.startswith("Model not found.")


def test_other_client_errors_include_status_and_message() -> None:
    message = translate_api_error("OpenAI", 400, _body("invalid_request_error", "max_tokens is too large"))

    assert message == "The request was invalid (400): max_tokens is too large"


def test_server_error_falls_back_to_provider_message() -> None:
    assert translate_api_error("OpenAI", 500, _body("server_error", "Something broke")) == "Something broke"


def test_gemini_array_envelope() -> None:
    raw = json.dumps([{"error": {"code": 429, "message": "Resource exhausted", "status": "RESOURCE_EXHAUSTED"}}])

    assert translate_api_error("Gemini", 429, raw).startswith("Rate limit exceeded")


def test_json_after_prefix_text() -> None:
    raw = 'HTTP 401: {"error": {"type": "authentication_error", "message": "bad key"}}'

    assert translate_api_error("Anthropic", 401, raw).startswith("Invalid API key for Anthropic")


@pytest.mark.parametrize(
    "raw",
    [
        "Connection error. [Errno 111] Connection refused",
        "Could not resolve host: api.openai.com",
        "Name or service not known",
        "Operation timed out after 30000 milliseconds",
    ],
)
def test_network_failures_without_json(raw: str) -> None:
    message = translate_api_error("OpenAI", 0, raw)

    assert message.startswith("Could not reach the OpenAI API.")


def test_plain_text_without_json_is_returned() -> None:
    assert translate_api_error("OpenAI", 500, "  upstream exploded  ") == "upstream exploded"


def test_empty_payload_still_produces_message() -> None:
    assert translate_api_error("OpenAI", 500, "") == "OpenAI request failed (HTTP 500)."
