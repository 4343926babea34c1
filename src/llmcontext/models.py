"""
Core data models for the llmcontext library.

This module defines the Pydantic models used to represent conversation
messages, the agent state a pipeline run starts from, and the capability
profile of a target model.

Messages are modelled as one variant per role (``SystemMessage``,
``UserMessage``, ``AssistantMessage``, ``ToolMessage``) joined into the
``ChatMessage`` discriminated union, so a field such as ``tool_calls`` only
exists on the role where it means something.  Message models are frozen:
pipeline stages derive modified copies with ``model_copy(update=...)``
instead of editing a message another stage may still hold.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class Role(str, Enum):
    """
    Enumeration of possible roles in a conversation.
    These roles define the origin or type of a message.
    """
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"

    @classmethod
    def _missing_(cls, value: object):  # type: ignore[misc]
        """
        Handles case-insensitive matching and common aliases for roles.
        For example, "Agent" or "AGENT" will be mapped to Role.ASSISTANT.
        """
        if isinstance(value, str):
            lower_value = value.lower()
            if lower_value == "agent":
                return cls.ASSISTANT
            if lower_value == "function":
                return cls.TOOL
            for member in cls:
                if member.value == lower_value:
                    return member
        return None


# =============================================================================
# Content parts and attachments
# =============================================================================


class TextPart(BaseModel):
    """A plain-text fragment of structured message content."""
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str = ""


class ImagePart(BaseModel):
    """An image reference inside structured message content."""
    model_config = ConfigDict(frozen=True)

    type: Literal["image_url"] = "image_url"
    image_url: str = Field(description="URL or data URI of the image.")
    detail: Optional[str] = None


ContentPart = Annotated[Union[TextPart, ImagePart], Field(discriminator="type")]
MessageContent = Union[str, List[ContentPart]]


class ToolCall(BaseModel):
    """
    A single tool invocation declared by an assistant message.

    An invocation with an empty or missing ``id`` can never be matched to a
    tool response.
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = Field(default=None, description="Invocation id echoed back by the tool response.")
    name: str = Field(default="", description="Name of the tool being invoked.")
    arguments: Union[str, Dict[str, Any]] = Field(default="{}", description="Argument payload, raw JSON or parsed.")


class Reasoning(BaseModel):
    """Reasoning payload attached to an assistant message."""
    model_config = ConfigDict(frozen=True)

    content: str = ""
    signature: Optional[str] = None


class ImageAttachment(BaseModel):
    """An image attached to a message outside of its content parts."""
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    url: str
    alt: Optional[str] = None


class FileAttachment(BaseModel):
    """A file attached to a user message."""
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    name: str
    url: Optional[str] = None
    file_type: Optional[str] = None


# =============================================================================
# Messages
# =============================================================================


class BaseMessage(BaseModel):
    """
    Fields shared by every message variant.

    Attributes:
        id: Stable identifier for the message.
        content: Plain text, or a sequence of typed content parts.
        created_at: Optional creation time, used as the logical ordering key.
        metadata: Free-form per-message data.
    """
    model_config = ConfigDict(frozen=True, use_enum_values=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique identifier for the message.")
    content: MessageContent = Field(default="", description="Text content or structured content parts.")
    created_at: Optional[datetime] = Field(default=None, description="Creation timestamp (UTC).")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Additional per-message metadata.")

    @field_validator("content", mode="before")
    @classmethod
    def coerce_missing_content(cls, v: Any) -> Any:
        """Treat a null content field as empty text."""
        return "" if v is None else v

    @field_validator("created_at", mode="before")
    @classmethod
    def ensure_utc_timestamp(cls, v: Any) -> Optional[datetime]:
        """Accept datetimes, ISO strings and epoch milliseconds; normalise to UTC."""
        if v is None:
            return None
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return datetime.fromtimestamp(v / 1000.0, tz=timezone.utc)
        if isinstance(v, str):
            try:
                if v.endswith("Z"):
                    v_parsed = datetime.fromisoformat(v[:-1] + "+00:00")
                else:
                    v_parsed = datetime.fromisoformat(v)
            except ValueError:
                raise ValueError(f"Invalid datetime format: {v}")
            v = v_parsed
        if isinstance(v, datetime):
            if v.tzinfo is None:
                return v.replace(tzinfo=timezone.utc)
            return v.astimezone(timezone.utc)
        return v

    @property
    def text(self) -> str:
        """All plain-text fragments of the content; non-text parts are ignored."""
        if isinstance(self.content, str):
            return self.content
        return " ".join(part.text for part in self.content if isinstance(part, TextPart))

    @property
    def sort_key(self) -> datetime:
        """Chronological key; messages without a timestamp sort as the epoch."""
        return self.created_at or EPOCH

    def has_image_parts(self) -> bool:
        """Whether structured content carries at least one image part."""
        return not isinstance(self.content, str) and any(
            isinstance(part, ImagePart) for part in self.content
        )

    @property
    def has_images(self) -> bool:
        """Whether the message carries any image, as a content part or an attachment."""
        return bool(getattr(self, "images", None)) or self.has_image_parts()


class SystemMessage(BaseMessage):
    """System-role instructions."""
    role: Literal["system"] = "system"


class UserMessage(BaseMessage):
    """A user turn, optionally carrying image and file attachments."""
    role: Literal["user"] = "user"
    images: List[ImageAttachment] = Field(default_factory=list)
    files: List[FileAttachment] = Field(default_factory=list)


class AssistantMessage(BaseMessage):
    """An assistant turn, optionally declaring tool invocations and reasoning."""
    role: Literal["assistant"] = "assistant"
    tool_calls: List[ToolCall] = Field(default_factory=list)
    reasoning: Optional[Reasoning] = None
    images: List[ImageAttachment] = Field(default_factory=list)

    @property
    def tool_call_ids(self) -> List[str]:
        """Declared invocation ids in declaration order, skipping empty ids."""
        return [call.id for call in self.tool_calls if call.id]


class ToolMessage(BaseMessage):
    """The response to one tool invocation."""
    role: Literal["tool"] = "tool"
    tool_call_id: Optional[str] = Field(default=None, description="Id of the invocation this message answers.")
    name: Optional[str] = Field(default=None, description="Name of the tool that produced the response.")


ChatMessage = Annotated[
    Union[SystemMessage, UserMessage, AssistantMessage, ToolMessage],
    Field(discriminator="role"),
]

_chat_message_adapter: TypeAdapter = TypeAdapter(ChatMessage)


def parse_message(data: Any) -> BaseMessage:
    """
    Build the right message variant from a dict (or pass a message through).

    The ``role`` value is matched case-insensitively and accepts the same
    aliases as ``Role``.
    """
    if isinstance(data, BaseMessage):
        return data
    if isinstance(data, dict) and "role" in data:
        data = {**data, "role": Role(data["role"]).value}
    return _chat_message_adapter.validate_python(data)


# =============================================================================
# Agent state and model capabilities
# =============================================================================


class AgentState(BaseModel):
    """
    The immutable source of truth a pipeline run starts from.

    Attributes:
        messages: Stored conversation history.
        agent: Agent configuration (persona, plugins, ...).
        session: Session data (id, topic, ...).
    """
    model_config = ConfigDict(frozen=True)

    messages: List[ChatMessage] = Field(default_factory=list)
    agent: Dict[str, Any] = Field(default_factory=dict)
    session: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("messages", mode="before")
    @classmethod
    def parse_history(cls, v: Any) -> Any:
        """Allow loosely-cased roles in raw history dicts."""
        if isinstance(v, list):
            return [parse_message(item) if isinstance(item, dict) else item for item in v]
        return v


class ModelCapabilities(BaseModel):
    """Feature support of the target model."""
    supports_vision: bool = True
    supports_function_call: bool = True
    supports_reasoning: bool = True
    supports_search: bool = True
    max_tokens: Optional[int] = Field(default=None, ge=1)
