"""Configuration loading utilities for the ai-query toolkit."""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

from . import paths
from .exceptions import ConfigMissingError, ConfigParseError, ConfigurationError
from .ini import KeyValue, SectionHeader, SkippedKey, scan
from .logging import Logger, get_logger
from .providers import (
    PRIMARY_PROVIDER,
    PROVIDER_PRIORITY,
    PROVIDER_TABLE,
    Provider,
    defaults_for,
    provider_from_string,
)

SECTION_GENERAL = "general"
SECTION_QUERY = "query"
SECTION_RESPONSE = "response"
SECTION_PROMPTS = "prompts"
SETTINGS_SECTIONS = (SECTION_GENERAL, SECTION_QUERY, SECTION_RESPONSE, SECTION_PROMPTS)
KNOWN_SECTIONS = frozenset(SETTINGS_SECTIONS) | {provider.value for provider in PROVIDER_TABLE}

TRUE_VALUES = frozenset({"true", "yes", "1"})
FALSE_VALUES = frozenset({"false", "no", "0"})
MIN_TEMPERATURE = 0.0
MAX_TEMPERATURE = 2.0


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    """Credentials and tuning for a single provider."""

    provider: Provider = Provider.UNKNOWN
    api_key: str = ""
    default_model: str = ""
    default_max_tokens: int = 4096
    default_temperature: float = 0.7
    api_endpoint: str = ""

    @classmethod
    def from_defaults(cls, provider: Provider, api_key: str = "") -> ProviderConfig:
        """Return a config populated with ``provider``'s built-in defaults."""
        defaults = defaults_for(provider)
        return cls(
            provider=provider,
            api_key=api_key,
            default_model=defaults.model,
            default_max_tokens=defaults.max_tokens,
            default_temperature=defaults.temperature,
        )


@dataclass(frozen=True, slots=True)
class GeneralSettings:
    """Logging and transport settings."""

    log_level: str = "INFO"
    enable_logging: bool = False
    request_timeout_ms: int = 30000
    max_retries: int = 3


@dataclass(frozen=True, slots=True)
class QuerySettings:
    """Query generation behaviour."""

    enforce_limit: bool = True
    default_limit: int = 1000
    max_query_length: int = 4000


@dataclass(frozen=True, slots=True)
class ResponseSettings:
    """Which parts of a result are rendered, and how."""

    show_explanation: bool = True
    show_warnings: bool = True
    show_suggested_visualization: bool = False
    use_formatted_response: bool = False


@dataclass(frozen=True, slots=True)
class PromptSettings:
    """Custom system prompts; empty strings select the built-in prompts."""

    system_prompt: str = ""
    explain_system_prompt: str = ""


@dataclass(frozen=True, slots=True)
class Configuration:
    """Top-level configuration snapshot."""

    source_path: Path | None = None
    providers: tuple[ProviderConfig, ...] = ()
    general: GeneralSettings = field(default_factory=GeneralSettings)
    query: QuerySettings = field(default_factory=QuerySettings)
    response: ResponseSettings = field(default_factory=ResponseSettings)
    prompts: PromptSettings = field(default_factory=PromptSettings)

    @property
    def default_provider(self) -> ProviderConfig:
        """First declared provider, or the primary provider's defaults."""
        if self.providers:
            return self.providers[0]
        return ProviderConfig.from_defaults(PRIMARY_PROVIDER)

    def provider_config(self, provider: Provider) -> ProviderConfig | None:
        for entry in self.providers:
            if entry.provider == provider:
                return entry
        return None

    def with_overrides(self, overrides: Mapping[Provider, str | None] | None) -> Configuration:
        """Return a copy with session API keys layered on top.

        Empty or None values mean "no override". Providers missing from this
        configuration are appended with their built-in defaults.
        """
        if not overrides:
            return self
        providers = list(self.providers)
        for provider in PROVIDER_PRIORITY:
            api_key = overrides.get(provider)
            if not api_key:
                continue
            for index, entry in enumerate(providers):
                if entry.provider == provider:
                    providers[index] = replace(entry, api_key=api_key)
                    break
            else:
                providers.append(ProviderConfig.from_defaults(provider, api_key=api_key))
        return replace(self, providers=tuple(providers))


# (section, key) -> (settings attribute, expected type)
SETTINGS_FIELD_SPEC: dict[tuple[str, str], tuple[str, type]] = {
    (SECTION_GENERAL, "log_level"): ("log_level", str),
    (SECTION_GENERAL, "enable_logging"): ("enable_logging", bool),
    (SECTION_GENERAL, "request_timeout_ms"): ("request_timeout_ms", int),
    (SECTION_GENERAL, "max_retries"): ("max_retries", int),
    (SECTION_QUERY, "enforce_limit"): ("enforce_limit", bool),
    (SECTION_QUERY, "default_limit"): ("default_limit", int),
    (SECTION_QUERY, "max_query_length"): ("max_query_length", int),
    (SECTION_RESPONSE, "show_explanation"): ("show_explanation", bool),
    (SECTION_RESPONSE, "show_warnings"): ("show_warnings", bool),
    (SECTION_RESPONSE, "show_suggested_visualization"): ("show_suggested_visualization", bool),
    (SECTION_RESPONSE, "use_formatted_response"): ("use_formatted_response", bool),
    (SECTION_PROMPTS, "system_prompt"): ("system_prompt", str),
    (SECTION_PROMPTS, "explain_system_prompt"): ("explain_system_prompt", str),
}

PROVIDER_FIELD_SPEC: dict[str, tuple[str, type]] = {
    "api_key": ("api_key", str),
    "default_model": ("default_model", str),
    "max_tokens": ("default_max_tokens", int),
    "temperature": ("default_temperature", float),
    "api_endpoint": ("api_endpoint", str),
}


def parse_config(
    content: str,
    *,
    source_path: Path | None = None,
    logger: Logger | None = None,
) -> Configuration:
    """Parse configuration text into a Configuration.

    Malformed lines and non-numeric values for numeric keys raise
    ConfigParseError. Unknown sections, stray keys, unterminated quotes and
    invalid booleans only produce warnings.
    """
    logger = logger or get_logger()
    settings: dict[str, dict[str, Any]] = {section: {} for section in SETTINGS_SECTIONS}
    providers: dict[Provider, dict[str, Any]] = {}
    section: str | None = None

    for event in scan(content):
        if isinstance(event, SectionHeader):
            section = event.name
            if section not in KNOWN_SECTIONS:
                logger.warning(f"Invalid section '{section}' on line {event.line_number}; it will be ignored.")
            continue

        if isinstance(event, SkippedKey):
            logger.warning(
                f"Unclosed quote in value of key '{event.key}' on line {event.line_number}; the key will be skipped."
            )
            continue

        assert isinstance(event, KeyValue)
        if section is None:
            logger.warning(f"Key '{event.key}' is outside a section; the key will be ignored.")
            continue
        if section not in KNOWN_SECTIONS:
            logger.warning(f"Key '{event.key}' is in an invalid section '{section}'; the key will be ignored.")
            continue

        provider = provider_from_string(section)
        if provider is not Provider.UNKNOWN:
            fields = providers.setdefault(provider, {})
            spec = PROVIDER_FIELD_SPEC.get(event.key)
        else:
            fields = settings[section]
            spec = SETTINGS_FIELD_SPEC.get((section, event.key))
        if spec is None:
            logger.debug(f"Ignoring unrecognised key '{event.key}' in [{section}].")
            continue
        attribute, expected_type = spec
        fields[attribute] = _coerce_value(event, expected_type, logger)

    return _build_config(settings, providers, source_path, logger)


def _coerce_value(event: KeyValue, expected_type: type, logger: Logger) -> Any:
    if expected_type is bool:
        return parse_bool(event.value, logger)
    if expected_type is int or expected_type is float:
        try:
            number = expected_type(event.value)
        except ValueError as exc:
            raise ConfigParseError(
                f"Line {event.line_number}: '{event.key}' expects a number, got '{event.value}'."
            ) from exc
        if isinstance(number, float) and not math.isfinite(number):
            raise ConfigParseError(
                f"Line {event.line_number}: '{event.key}' expects a finite number, got '{event.value}'."
            )
        return number
    return event.value


def parse_bool(value: str, logger: Logger | None = None) -> bool:
    lowered = value.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    (logger or get_logger()).warning(f"Invalid boolean value '{value}'; falling back to false.")
    return False


def _build_config(
    settings: Mapping[str, Mapping[str, Any]],
    providers: Mapping[Provider, Mapping[str, Any]],
    source_path: Path | None,
    logger: Logger,
) -> Configuration:
    query_values = dict(settings[SECTION_QUERY])
    for key in ("default_limit", "max_query_length"):
        if key in query_values and query_values[key] <= 0:
            logger.warning(f"Ignoring non-positive {key}={query_values[key]}; using the default.")
            del query_values[key]

    prompt_values = {key: _resolve_prompt(value, logger) for key, value in settings[SECTION_PROMPTS].items()}

    provider_configs: list[ProviderConfig] = []
    for provider, fields in providers.items():
        values = dict(fields)
        temperature = values.get("default_temperature")
        if temperature is not None and not MIN_TEMPERATURE <= temperature <= MAX_TEMPERATURE:
            clamped = min(max(temperature, MIN_TEMPERATURE), MAX_TEMPERATURE)
            logger.warning(f"[{provider.value}] temperature {temperature} is outside 0.0-2.0; using {clamped}.")
            values["default_temperature"] = clamped
        provider_configs.append(replace(ProviderConfig.from_defaults(provider), **values))

    return Configuration(
        source_path=source_path,
        providers=tuple(provider_configs),
        general=replace(GeneralSettings(), **settings[SECTION_GENERAL]),
        query=replace(QuerySettings(), **query_values),
        response=replace(ResponseSettings(), **settings[SECTION_RESPONSE]),
        prompts=replace(PromptSettings(), **prompt_values),
    )


def _resolve_prompt(value: str, logger: Logger) -> str:
    """Return the file contents when ``value`` names an existing file."""
    if not value:
        return value
    candidate = paths.resolve_path(value)
    try:
        if candidate.is_file():
            logger.debug(f"Loading prompt from {candidate}")
            return candidate.read_text(encoding="utf-8").strip()
    except OSError as exc:
        raise ConfigurationError(f"Unable to read prompt file {candidate}: {exc}") from exc
    return value


def load_config(config_path: str | Path, *, logger: Logger | None = None) -> Configuration:
    """Read and parse the configuration file at ``config_path``.

    A missing file raises ConfigMissingError carrying setup instructions.
    """
    logger = logger or get_logger()
    path = paths.resolve_path(config_path)
    logger.info(f"Loading configuration from: {path}")
    if not path.is_file():
        _log_setup_guidance(path, logger)
        raise ConfigMissingError(
            f"ai-query configuration file not found at: {path}\n"
            f"Create it with your API key, for example:\n{_sample_config()}"
        )
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Unable to read configuration file {path}: {exc}") from exc

    try:
        config = parse_config(content, source_path=path, logger=logger)
    except ConfigParseError as exc:
        logger.error(f"Failed to parse configuration file {path}: {exc}")
        raise
    logger.info("Configuration loaded successfully")
    return config


def _sample_config() -> str:
    return '  [openai]\n  api_key = "your-api-key-here"'


def _log_setup_guidance(path: Path, logger: Logger) -> None:
    logger.warning(f"Configuration file not found at: {path}")
    logger.info("To create it, run:")
    logger.info(f"  cat > {path} << 'EOF'")
    logger.info(_sample_config())
    logger.info("  EOF")


class ConfigService:
    """Owns the cached base configuration and derives effective snapshots.

    The default-path load happens lazily, exactly once, even when several
    threads ask for the configuration at the same time. Session overrides are
    layered on every call without touching the disk.
    """

    def __init__(
        self,
        config_path: str | Path | None = None,
        *,
        logger: Logger | None = None,
        env: Mapping[str, str] | None = None,
        configure_logging: bool = True,
    ) -> None:
        self._config_path = config_path
        self._logger = logger or get_logger()
        self._env = env
        self._configure_logging = configure_logging
        self._lock = threading.Lock()
        self._base: Configuration | None = None

    @property
    def loaded(self) -> bool:
        return self._base is not None

    def load(self, config_path: str | Path | None = None) -> Configuration:
        """Parse ``config_path`` (or the service default) and cache it as the base."""
        with self._lock:
            return self._load_locked(config_path)

    def get_config(self) -> Configuration:
        """Return the base configuration, loading it on first use."""
        base = self._base
        if base is not None:
            return base
        with self._lock:
            if self._base is None:
                self._load_locked(None)
            assert self._base is not None
            return self._base

    def effective_config(self, overrides: Mapping[Provider, str | None] | None = None) -> Configuration:
        """Return the base configuration with ``overrides`` applied."""
        return self.get_config().with_overrides(overrides)

    def get_provider_config(
        self,
        provider: Provider,
        overrides: Mapping[Provider, str | None] | None = None,
    ) -> ProviderConfig | None:
        return self.effective_config(overrides).provider_config(provider)

    def reset(self) -> None:
        """Forget the cached configuration (used for test isolation)."""
        with self._lock:
            self._base = None

    def _load_locked(self, config_path: str | Path | None) -> Configuration:
        path = config_path or self._config_path or paths.default_config_path(env=self._env)
        if path is None:
            raise ConfigMissingError("Could not determine home directory to locate the configuration file.")
        config = load_config(path, logger=self._logger)
        if self._configure_logging:
            self._logger.reconfigure(enabled=config.general.enable_logging, level=config.general.log_level)
        self._base = config
        return config
