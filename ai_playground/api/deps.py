"""
API Dependency Injection Module

Provides dependencies required by FastAPI routes.
"""

from typing import Annotated, Optional

from fastapi import Depends, Header

from ai_playground.common.utils import extract_bearer_token
from ai_playground.config import get_settings
from ai_playground.services.chat_adapter import ChatAdapter


def get_chat_adapter() -> ChatAdapter:
    """Get chat adapter, one per request"""
    return ChatAdapter(settings=get_settings())


ChatAdapterDep = Annotated[ChatAdapter, Depends(get_chat_adapter)]


async def get_bearer_credential(
    authorization: Annotated[Optional[str], Header()] = None,
) -> Optional[str]:
    """
    Get the caller's provider credential

    The playground forwards the user's own provider key as a bearer token.
    Absence is not rejected here; the adapter answers it with 401 before
    any upstream call.

    Args:
        authorization: Authorization Header

    Returns:
        Optional[str]: Credential, None when missing or blank
    """
    return extract_bearer_token(authorization)


BearerCredential = Annotated[Optional[str], Depends(get_bearer_credential)]
