"""
Domain Model Module Initialization
"""

from ai_playground.domain.chat import (
    ChatCompletionBody,
    ChatMessage,
    Done,
    ErrorEvent,
    NormalizedEvent,
    NormalizedRequest,
    TextDelta,
    ThinkingConfig,
    ThinkingDelta,
    Usage,
)

__all__ = [
    # Request
    "ChatMessage",
    "ChatCompletionBody",
    "NormalizedRequest",
    "ThinkingConfig",
    # Events
    "TextDelta",
    "ThinkingDelta",
    "Done",
    "ErrorEvent",
    "NormalizedEvent",
    "Usage",
]
