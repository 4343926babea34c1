# src/llmcontext/context/processors/capability_validator.py
"""
Checks the working messages against what the target model supports.

Detected issues (one per offending message and feature):

- images when the model has no vision support;
- assistant tool invocations and tool-role messages when the model has no
  function calling;
- reasoning payloads when the model has no reasoning support;
- ``metadata["searchContext"]["enabled"]`` when the model has no search.

With ``auto_fix`` the offending parts are stripped (tool messages become user
messages).  With ``abort_on_unsupported`` and no auto-fix, any issue
soft-aborts the run.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ...models import (
    BaseMessage,
    ImagePart,
    ModelCapabilities,
    Role,
    TextPart,
    UserMessage,
)
from ..base import BaseProcessor
from ..types import PipelineContext

logger = logging.getLogger(__name__)

METADATA_KEY = "modelCapabilityValidation"
SEARCH_CONTEXT_KEY = "searchContext"


class ModelCapabilityValidator(BaseProcessor):
    """Validates (and optionally repairs) messages for a model's feature set."""

    name = "ModelCapabilityValidator"

    def __init__(
        self,
        model_capabilities: Optional[ModelCapabilities] = None,
        auto_fix: bool = False,
        abort_on_unsupported: bool = False,
    ) -> None:
        self.model_capabilities = model_capabilities or ModelCapabilities()
        self.auto_fix = auto_fix
        self.abort_on_unsupported = abort_on_unsupported

    async def do_process(self, context: PipelineContext) -> PipelineContext:
        caps = self.model_capabilities
        issues = self.find_issues(context.messages, context.metadata)

        if issues:
            logger.warning(f"Model capability issues found: {issues}")

        if issues and self.abort_on_unsupported and not self.auto_fix:
            return self.abort(context, f"Model does not support required features: {'; '.join(issues)}")

        result = context.clone()
        auto_fixed = False
        if issues and self.auto_fix:
            result.messages = [self._fix_message(m) for m in result.messages]
            search = result.metadata.get(SEARCH_CONTEXT_KEY)
            if not caps.supports_search and isinstance(search, dict) and search.get("enabled"):
                result.metadata[SEARCH_CONTEXT_KEY] = {**search, "enabled": False}
            auto_fixed = True

        result.metadata[METADATA_KEY] = {
            "validated": True,
            "issues": issues,
            "auto_fixed": auto_fixed,
            "capabilities": caps.model_dump(),
        }
        return result

    def find_issues(self, messages: List[BaseMessage], metadata: Dict[str, Any]) -> List[str]:
        """Human-readable list of unsupported features in use."""
        caps = self.model_capabilities
        issues: List[str] = []
        for message in messages:
            if not caps.supports_vision and message.has_images:
                issues.append(f"Message {message.id} contains images, but the model does not support vision")
            if not caps.supports_function_call:
                if message.role == Role.ASSISTANT.value and message.tool_calls:
                    issues.append(f"Message {message.id} contains tool calls, but the model does not support function calling")
                if message.role == Role.TOOL.value:
                    issues.append(f"Message {message.id} is a tool response, but the model does not support function calling")
            if not caps.supports_reasoning and getattr(message, "reasoning", None) is not None:
                issues.append(f"Message {message.id} contains reasoning, but the model does not support reasoning")

        search = metadata.get(SEARCH_CONTEXT_KEY)
        if not caps.supports_search and isinstance(search, dict) and search.get("enabled"):
            issues.append("Search is enabled, but the model does not support search")
        return issues

    def _fix_message(self, message: BaseMessage) -> BaseMessage:
        caps = self.model_capabilities
        update: Dict[str, Any] = {}

        if not caps.supports_vision and message.has_images:
            if message.has_image_parts():
                parts = [p for p in message.content if not isinstance(p, ImagePart)]
                if all(isinstance(p, TextPart) for p in parts):
                    update["content"] = " ".join(p.text for p in parts)
                else:
                    update["content"] = parts
            if getattr(message, "images", None):
                update["images"] = []

        if not caps.supports_function_call:
            if message.role == Role.TOOL.value:
                fixed = message.model_copy(update=update) if update else message
                return UserMessage(
                    id=fixed.id,
                    content=fixed.content,
                    created_at=fixed.created_at,
                    metadata=fixed.metadata,
                )
            if message.role == Role.ASSISTANT.value and message.tool_calls:
                update["tool_calls"] = []

        if not caps.supports_reasoning and getattr(message, "reasoning", None) is not None:
            update["reasoning"] = None

        return message.model_copy(update=update) if update else message

    # =========================================================================
    # Configuration
    # =========================================================================

    def set_model_capabilities(self, capabilities: ModelCapabilities) -> "ModelCapabilityValidator":
        self.model_capabilities = capabilities
        return self

    def set_auto_fix(self, auto_fix: bool) -> "ModelCapabilityValidator":
        self.auto_fix = auto_fix
        return self

    def set_abort_on_unsupported(self, abort: bool) -> "ModelCapabilityValidator":
        self.abort_on_unsupported = abort
        return self

    def get_config(self) -> Dict[str, Any]:
        return {
            "model_capabilities": self.model_capabilities.model_copy(),
            "auto_fix": self.auto_fix,
            "abort_on_unsupported": self.abort_on_unsupported,
        }
