"""Completion transports backed by the provider SDKs."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Protocol

import anthropic
import openai
from anthropic import Anthropic
from openai import OpenAI

from aiquery_cli.shared.exceptions import ProviderAPIError
from aiquery_cli.shared.logging import Logger, get_logger
from aiquery_cli.shared.providers import Provider

TIMEOUT_STATUS = 408


@dataclass(frozen=True, slots=True)
class ProviderRequest:
    """Everything a transport needs for one chat completion."""

    provider: Provider
    api_key: str
    model: str
    system_prompt: str
    user_prompt: str
    max_tokens: int
    temperature: float
    endpoint: str = ""
    timeout_ms: int = 30000
    max_retries: int = 3

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


class CompletionTransport(Protocol):
    """Send a prompt pair to a provider and return the raw answer text."""

    def complete(self, request: ProviderRequest) -> str: ...


class SDKTransport:
    """Dispatch completions to the openai or anthropic SDK.

    Gemini is reached through its OpenAI-compatible endpoint. SDK failures are
    raised as ProviderAPIError carrying the HTTP status and the response body.
    """

    def __init__(self, logger: Logger | None = None) -> None:
        self._logger = logger or get_logger()
        self._handlers: dict[Provider, Callable[[ProviderRequest], str]] = {
            Provider.OPENAI: self._complete_openai,
            Provider.GEMINI: self._complete_openai,
            Provider.ANTHROPIC: self._complete_anthropic,
        }

    def complete(self, request: ProviderRequest) -> str:
        handler = self._handlers.get(request.provider)
        if handler is None:
            raise ProviderAPIError(0, f"Unsupported provider '{request.provider.value}'.")
        self._logger.debug(
            f"Calling {request.provider.value} model {request.model} "
            f"(max_tokens={request.max_tokens}, temperature={request.temperature})"
        )
        text = handler(request)
        self._logger.debug(f"LLM raw output preview: {text[:500]!r}")
        return text

    def _complete_openai(self, request: ProviderRequest) -> str:
        try:
            client = OpenAI(
                api_key=request.api_key,
                base_url=request.endpoint or None,
                timeout=request.timeout_seconds,
                max_retries=request.max_retries,
            )
            response = client.chat.completions.create(
                model=request.model,
                messages=[
                    {"role": "system", "content": request.system_prompt},
                    {"role": "user", "content": request.user_prompt},
                ],
                max_tokens=request.max_tokens,
                temperature=request.temperature,
            )
        except openai.APIStatusError as exc:
            raise ProviderAPIError(exc.status_code, _response_body(exc)) from exc
        except openai.APITimeoutError as exc:
            raise _timeout_error(exc) from exc
        except openai.APIConnectionError as exc:
            raise ProviderAPIError(0, _connection_message(exc)) from exc
        except openai.OpenAIError as exc:
            raise ProviderAPIError(0, str(exc)) from exc

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    def _complete_anthropic(self, request: ProviderRequest) -> str:
        try:
            client = Anthropic(
                api_key=request.api_key,
                base_url=request.endpoint or None,
                timeout=request.timeout_seconds,
                max_retries=request.max_retries,
            )
            response = client.messages.create(
                model=request.model,
                max_tokens=request.max_tokens,
                temperature=request.temperature,
                system=request.system_prompt,
                messages=[{"role": "user", "content": request.user_prompt}],
            )
        except anthropic.APIStatusError as exc:
            raise ProviderAPIError(exc.status_code, _response_body(exc)) from exc
        except anthropic.APITimeoutError as exc:
            raise _timeout_error(exc) from exc
        except anthropic.APIConnectionError as exc:
            raise ProviderAPIError(0, _connection_message(exc)) from exc
        except anthropic.AnthropicError as exc:
            raise ProviderAPIError(0, str(exc)) from exc

        return "".join(block.text for block in response.content if getattr(block, "type", "") == "text")


def _response_body(exc: Any) -> str:
    response = getattr(exc, "response", None)
    text = getattr(response, "text", "") if response is not None else ""
    if text:
        return text
    body = getattr(exc, "body", None)
    if isinstance(body, dict) and "error" in body:
        return json.dumps(body)
    if body is not None:
        # The openai SDK stores the inner error object; restore the envelope.
        return json.dumps({"error": body})
    return str(exc)


def _timeout_error(exc: Exception) -> ProviderAPIError:
    body = json.dumps({"error": {"type": "timeout_error", "message": str(exc) or "Request timed out."}})
    return ProviderAPIError(TIMEOUT_STATUS, body)


def _connection_message(exc: Exception) -> str:
    cause = exc.__cause__
    if cause is not None and str(cause):
        return f"{exc} {cause}"
    return str(exc) or "Connection error."
