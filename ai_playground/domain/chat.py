"""
Chat Domain Model

Defines the provider-agnostic chat request and the normalized events every
provider stream is rewritten into.
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator
from pydantic.alias_generators import to_camel

from ai_playground.common.errors import ErrorKind

Role = Literal["system", "user", "assistant"]

# Finish reason used when the upstream stream ends without a finish signal
UNKNOWN_FINISH_REASON = "unknown"


class ChatMessage(BaseModel):
    """Single chat turn"""

    model_config = ConfigDict(frozen=True)

    # Message role
    role: Role
    # Message text
    content: str


class NormalizedRequest(BaseModel):
    """
    Provider-agnostic chat request

    Created once per adapter call and never mutated. The credential is a
    SecretStr so that it never shows up in reprs or logs.
    """

    model_config = ConfigDict(frozen=True)

    # Provider tag (anthropic / gemini / openai_compatible)
    provider: str
    # Upstream model name
    model: str = Field(..., min_length=1)
    # Ordered conversation, never empty
    messages: tuple[ChatMessage, ...] = Field(..., min_length=1)
    # Sampling temperature
    temperature: Optional[float] = None
    # Output token limit
    max_tokens: Optional[int] = Field(None, gt=0)
    # Extended thinking / reasoning toggle
    thinking_enabled: bool = False
    # Thinking budget (Anthropic budget_tokens)
    thinking_budget_tokens: Optional[int] = Field(None, gt=0)
    # Caller's bearer credential for the upstream provider
    credential: Optional[SecretStr] = None

    @field_validator("provider")
    @classmethod
    def normalize_provider(cls, v: str) -> str:
        return v.strip().lower()

    @property
    def credential_value(self) -> str:
        """Plain credential, empty when missing"""
        if self.credential is None:
            return ""
        return self.credential.get_secret_value().strip()


class _EventModel(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    @property
    def is_terminal(self) -> bool:
        return False

    def to_json(self) -> str:
        """Compact JSON with camelCase keys, as sent to the browser"""
        return self.model_dump_json(by_alias=True)


class TextDelta(_EventModel):
    """Incremental answer text"""

    type: Literal["text_delta"] = "text_delta"
    text: str


class ThinkingDelta(_EventModel):
    """Incremental reasoning text"""

    type: Literal["thinking_delta"] = "thinking_delta"
    text: str


class Usage(_EventModel):
    """Token usage reported by the upstream"""

    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None


class Done(_EventModel):
    """Successful end of stream"""

    type: Literal["done"] = "done"
    finish_reason: str = UNKNOWN_FINISH_REASON
    usage: Optional[Usage] = None

    @property
    def is_terminal(self) -> bool:
        return True


class ErrorEvent(_EventModel):
    """Failed end of stream"""

    type: Literal["error"] = "error"
    kind: ErrorKind
    message: str
    http_status: Optional[int] = None

    @property
    def is_terminal(self) -> bool:
        return True


NormalizedEvent = Annotated[
    Union[TextDelta, ThinkingDelta, Done, ErrorEvent],
    Field(discriminator="type"),
]


class ThinkingConfig(BaseModel):
    """Object form of the inbound ``thinking`` field"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: Literal["enabled", "disabled"] = "enabled"
    budget_tokens: Optional[int] = Field(None, gt=0)


class ChatCompletionBody(BaseModel):
    """
    Inbound JSON body of the playground routes

    ``provider`` is only read by the unified console route; the per-provider
    routes take it from the path.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    provider: Optional[str] = None
    model: str = Field(..., min_length=1)
    messages: list[ChatMessage] = Field(..., min_length=1)
    temperature: Optional[float] = None
    max_tokens: Optional[int] = Field(None, gt=0)
    thinking: Union[bool, ThinkingConfig, None] = None

    def to_normalized(self, provider: str, credential: Optional[str]) -> NormalizedRequest:
        thinking_enabled = False
        budget = None
        if isinstance(self.thinking, ThinkingConfig):
            thinking_enabled = self.thinking.type == "enabled"
            budget = self.thinking.budget_tokens
        elif self.thinking:
            thinking_enabled = True

        return NormalizedRequest(
            provider=provider,
            model=self.model,
            messages=tuple(self.messages),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            thinking_enabled=thinking_enabled,
            thinking_budget_tokens=budget,
            credential=credential or None,
        )
