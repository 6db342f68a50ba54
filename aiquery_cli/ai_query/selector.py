"""Provider resolution for explicit and automatic selection."""

from __future__ import annotations

from dataclasses import dataclass

from aiquery_cli.shared.config import Configuration, ProviderConfig
from aiquery_cli.shared.logging import Logger, get_logger
from aiquery_cli.shared.paths import CONFIG_FILE_NAME
from aiquery_cli.shared.providers import (
    PRIMARY_PROVIDER,
    PROVIDER_AUTO,
    PROVIDER_PRIORITY,
    Provider,
    defaults_for,
    provider_from_string,
)

from .types import ProviderSelectionResult


@dataclass(frozen=True, slots=True)
class ModelSettings:
    """Effective model parameters for the selected provider."""

    model: str
    max_tokens: int
    temperature: float
    endpoint: str


class ProviderSelector:
    """Pick exactly one provider and credential for a request.

    Explicit provider names win. In auto mode a caller-supplied key always
    means the primary provider; without one, providers are scanned in
    ``PROVIDER_PRIORITY`` order and the first with a configured key is used.
    """

    def __init__(self, config: Configuration, logger: Logger | None = None) -> None:
        self._config = config
        self._logger = logger or get_logger()

    def select(self, preference: str | None, api_key: str | None = None) -> ProviderSelectionResult:
        requested = (preference or PROVIDER_AUTO).strip()
        caller_key = (api_key or "").strip()
        explicit = provider_from_string(requested)

        if explicit is not Provider.UNKNOWN:
            return self._select_explicit(explicit, caller_key)

        unknown_name = requested if requested.lower() != PROVIDER_AUTO else None
        if unknown_name:
            self._logger.warning(f"Unknown provider '{unknown_name}'; falling back to auto-selection.")
        return self._select_auto(caller_key, unknown_name)

    def _select_explicit(self, provider: Provider, caller_key: str) -> ProviderSelectionResult:
        config = self._config.provider_config(provider)
        resolved_key = caller_key or (config.api_key if config else "")
        if not resolved_key:
            return ProviderSelectionResult(
                provider=provider,
                config=config,
                success=False,
                error_message=(
                    f"No API key configured for {provider.value}. Pass one as an argument or add it to the "
                    f"[{provider.value}] section of ~/{CONFIG_FILE_NAME}."
                ),
            )
        self._logger.debug(f"Using explicitly requested provider: {provider.value}")
        return ProviderSelectionResult(provider=provider, config=config, api_key=resolved_key, success=True)

    def _select_auto(self, caller_key: str, unknown_name: str | None) -> ProviderSelectionResult:
        if caller_key:
            self._logger.debug(f"API key supplied; auto-selecting primary provider {PRIMARY_PROVIDER.value}.")
            return ProviderSelectionResult(
                provider=PRIMARY_PROVIDER,
                config=self._config.provider_config(PRIMARY_PROVIDER),
                api_key=caller_key,
                success=True,
            )

        for provider in PROVIDER_PRIORITY:
            config = self._config.provider_config(provider)
            if config is not None and config.api_key:
                self._logger.debug(f"Auto-selected provider: {provider.value}")
                return ProviderSelectionResult(provider=provider, config=config, api_key=config.api_key, success=True)

        if unknown_name:
            message = (
                f"Unknown provider '{unknown_name}'. Use one of: "
                f"{', '.join(p.value for p in PROVIDER_PRIORITY)} or {PROVIDER_AUTO}."
            )
        else:
            message = (
                "No API key available. Pass one as an argument or configure a provider "
                f"in ~/{CONFIG_FILE_NAME}."
            )
        return ProviderSelectionResult(success=False, error_message=message)


def model_settings(selection: ProviderSelectionResult) -> ModelSettings:
    """Merge the selected provider's config with its built-in defaults."""
    defaults = defaults_for(selection.provider)
    config: ProviderConfig | None = selection.config
    if config is None:
        return ModelSettings(
            model=defaults.model,
            max_tokens=defaults.max_tokens,
            temperature=defaults.temperature,
            endpoint=defaults.endpoint,
        )
    return ModelSettings(
        model=config.default_model or defaults.model,
        max_tokens=config.default_max_tokens or defaults.max_tokens,
        temperature=config.default_temperature,
        endpoint=config.api_endpoint or defaults.endpoint,
    )
