"""
Request/response models for the HTTP API.

Request bodies are validated here; any ``ValidationError`` becomes a 400
with the first error's message.
"""

import re
from typing import Any, Literal, Optional
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..config.settings import settings
from ..core.models import ConversationMessage


def sanitize_text(text: str) -> str:
    """Remove control characters except newline and tab."""
    return re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", text)


class HistoryItem(BaseModel):
    """One prior conversation turn supplied by the client."""

    role: Literal["user", "assistant"]
    content: str

    @field_validator("content")
    @classmethod
    def clean_content(cls, value: str) -> str:
        return sanitize_text(value)[:settings.api.history_message_chars]


class ChatRequest(BaseModel):
    """Body of ``POST /api/chat``."""

    message: str
    history: list[HistoryItem] = Field(default_factory=list)

    @field_validator("message", mode="before")
    @classmethod
    def check_message(cls, value: Any) -> str:
        if not value or not isinstance(value, str):
            raise ValueError("Message is required and must be a string")

        limits = settings.api
        if len(value) < limits.message_min_chars:
            raise ValueError(f"Message must be at least {limits.message_min_chars} characters")
        if len(value) > limits.message_max_chars:
            raise ValueError(f"Message must be less than {limits.message_max_chars} characters")

        return sanitize_text(value).strip()

    @field_validator("history", mode="before")
    @classmethod
    def keep_recent_history(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, list):
            return value[-settings.api.history_max_messages:]
        return value

    def conversation(self) -> list[ConversationMessage]:
        return [ConversationMessage(role=h.role, content=h.content) for h in self.history]


class ChatAPIResponse(BaseModel):
    """Envelope for every JSON response of the chat API."""

    success: bool
    data: Optional[Any] = None
    context: Optional[list[dict]] = None
    error: Optional[str] = None


def first_error_message(error: ValidationError) -> str:
    """Human-readable message for the first validation error."""
    errors = error.errors()
    if not errors:
        return "Invalid request body"

    first = errors[0]
    message = first.get("msg", "Invalid request body")
    # Custom validator errors are prefixed by pydantic
    message = message.removeprefix("Value error, ")

    location = ".".join(str(part) for part in first.get("loc", ()))
    if first.get("type") == "value_error" or not location:
        return message
    return f"{location}: {message}"
