# src/llmcontext/context/processors/__init__.py
"""Stages that validate, truncate and reorder the working message list."""

from .capability_validator import ModelCapabilityValidator
from .history_truncator import HistoryTruncator
from .token_truncator import TokenBasedTruncator, calculate_importance
from .tool_reorder import ToolMessageReorder, ToolValidationResult

__all__ = [
    "HistoryTruncator",
    "ModelCapabilityValidator",
    "TokenBasedTruncator",
    "ToolMessageReorder",
    "ToolValidationResult",
    "calculate_importance",
]
