"""
API Router Module Initialization
"""

from ai_playground.api.deps import get_bearer_credential, get_chat_adapter
from ai_playground.api.playground import router as playground_router

__all__ = [
    "get_bearer_credential",
    "get_chat_adapter",
    "playground_router",
]
