"""Provider identities and their built-in defaults.

Every provider-specific constant lives in ``PROVIDER_TABLE``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Provider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    UNKNOWN = "unknown"


PROVIDER_AUTO = "auto"


@dataclass(frozen=True, slots=True)
class ProviderDefaults:
    """Built-in settings applied when a provider section omits a field."""

    label: str
    model: str
    max_tokens: int
    temperature: float
    endpoint: str


PROVIDER_TABLE: dict[Provider, ProviderDefaults] = {
    Provider.OPENAI: ProviderDefaults(
        label="OpenAI",
        model="gpt-4o",
        max_tokens=16384,
        temperature=0.7,
        endpoint="https://api.openai.com/v1",
    ),
    Provider.ANTHROPIC: ProviderDefaults(
        label="Anthropic",
        model="claude-sonnet-4-5-20250929",
        max_tokens=8192,
        temperature=0.7,
        endpoint="https://api.anthropic.com",
    ),
    Provider.GEMINI: ProviderDefaults(
        label="Gemini",
        model="gemini-2.5-flash",
        max_tokens=8192,
        temperature=0.7,
        endpoint="https://generativelanguage.googleapis.com/v1beta/openai/",
    ),
}

# Auto-selection scans providers in this order; the first entry is the primary.
PROVIDER_PRIORITY: tuple[Provider, ...] = tuple(PROVIDER_TABLE)
PRIMARY_PROVIDER = PROVIDER_PRIORITY[0]


def provider_from_string(value: str | None) -> Provider:
    """Map a provider name (any case) to its enum, or ``Provider.UNKNOWN``."""
    if not value:
        return Provider.UNKNOWN
    lowered = value.strip().lower()
    for provider in PROVIDER_TABLE:
        if provider.value == lowered:
            return provider
    return Provider.UNKNOWN


def defaults_for(provider: Provider) -> ProviderDefaults:
    try:
        return PROVIDER_TABLE[provider]
    except KeyError as exc:
        raise ValueError(f"No built-in defaults for provider '{provider.value}'.") from exc
