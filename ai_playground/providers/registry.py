"""
Provider Registry Module

Closed dispatch table from provider tag to provider variant.
"""

from ai_playground.common.errors import UnsupportedProviderError
from ai_playground.providers.anthropic import ANTHROPIC
from ai_playground.providers.base import ProviderVariant
from ai_playground.providers.gemini import GEMINI
from ai_playground.providers.openai_compatible import OPENAI_COMPATIBLE

PROVIDERS: dict[str, ProviderVariant] = {
    variant.name: variant
    for variant in (ANTHROPIC, GEMINI, OPENAI_COMPATIBLE)
}

# Route-facing names that resolve to a registered tag
PROVIDER_ALIASES: dict[str, str] = {
    "openrouter": "openai_compatible",
}


def get_provider_variant(provider: str) -> ProviderVariant:
    """
    Get provider variant for the specified tag

    Args:
        provider: Provider tag or alias (case-insensitive)

    Returns:
        ProviderVariant: Registered variant

    Raises:
        UnsupportedProviderError: Unknown provider
    """
    key = (provider or "").strip().lower()
    key = PROVIDER_ALIASES.get(key, key)
    try:
        return PROVIDERS[key]
    except KeyError:
        raise UnsupportedProviderError(provider) from None
