# src/llmcontext/__init__.py
"""
llmcontext - context assembly for LLM requests.

Builds the message list sent to a language model from stored conversation
history and injected knowledge, under a token budget, while keeping the
structure chat APIs require (a single leading system message, tool responses
directly after the assistant message that invoked them).
"""

from importlib.metadata import PackageNotFoundError, version

from .context import (
    ContextPipeline,
    HistoryInjector,
    HistoryTruncator,
    ModelCapabilityValidator,
    PipelineContext,
    PipelineResult,
    SystemRoleInjector,
    TokenBasedTruncator,
    ToolMessageReorder,
    create_pipeline_from_config,
    create_preset_pipeline,
)
from .exceptions import (
    ConfigError,
    ContextError,
    ContextLengthError,
    LLMContextError,
    PipelineError,
    ProcessorError,
    TokenCountError,
)
from .models import (
    AgentState,
    AssistantMessage,
    ModelCapabilities,
    Role,
    SystemMessage,
    ToolCall,
    ToolMessage,
    UserMessage,
    parse_message,
)

try:
    __version__ = version("llmcontext")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "AgentState",
    "AssistantMessage",
    "ConfigError",
    "ContextError",
    "ContextLengthError",
    "ContextPipeline",
    "HistoryInjector",
    "HistoryTruncator",
    "LLMContextError",
    "ModelCapabilities",
    "ModelCapabilityValidator",
    "PipelineContext",
    "PipelineError",
    "PipelineResult",
    "ProcessorError",
    "Role",
    "SystemMessage",
    "SystemRoleInjector",
    "TokenBasedTruncator",
    "TokenCountError",
    "ToolCall",
    "ToolMessage",
    "ToolMessageReorder",
    "UserMessage",
    "create_pipeline_from_config",
    "create_preset_pipeline",
    "parse_message",
]
