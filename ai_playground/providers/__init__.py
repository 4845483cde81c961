"""
Upstream provider variants
"""

from ai_playground.providers.anthropic import ANTHROPIC
from ai_playground.providers.base import ProviderVariant, StreamNormalizer
from ai_playground.providers.gemini import GEMINI
from ai_playground.providers.openai_compatible import OPENAI_COMPATIBLE
from ai_playground.providers.registry import PROVIDERS, get_provider_variant

__all__ = [
    "ANTHROPIC",
    "GEMINI",
    "OPENAI_COMPATIBLE",
    "PROVIDERS",
    "ProviderVariant",
    "StreamNormalizer",
    "get_provider_variant",
]
