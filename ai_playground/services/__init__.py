"""
Service Layer Module Initialization
"""

from ai_playground.services.chat_adapter import ChatAdapter, ChatStream

__all__ = [
    "ChatAdapter",
    "ChatStream",
]
