# src/llmcontext/context/processors/tool_reorder.py
"""
Tool response reordering and validation.

Chat APIs require each tool response to follow the assistant message that
invoked it.  Injection and truncation stages can break that, so
``ToolMessageReorder`` rebuilds the sequence in one pass:

- tool messages whose ``tool_call_id`` is missing or was never declared by an
  assistant are dropped;
- for each declared id only the first tool response is kept;
- right after an assistant message, its tool responses are placed in the
  order the assistant declared the invocations.

``validate_tool_messages`` reports pairing problems without changing anything.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Set

from ...models import BaseMessage, Role
from ..base import BaseProcessor
from ..types import PipelineContext

logger = logging.getLogger(__name__)

METADATA_KEY = "toolMessageReorder"


@dataclass
class ToolValidationResult:
    """
    Outcome of ``ToolMessageReorder.validate_tool_messages``.

    Attributes:
        valid: True when there are no orphaned calls or responses.
        issues: Human-readable description of each problem.
        orphaned_calls: Invocation ids with no tool response.
        orphaned_responses: Tool response ids with no declaring invocation.
    """

    valid: bool
    issues: List[str] = field(default_factory=list)
    orphaned_calls: Set[str] = field(default_factory=set)
    orphaned_responses: Set[str] = field(default_factory=set)


def _declared_ids(messages: List[BaseMessage]) -> List[str]:
    ids: List[str] = []
    for message in messages:
        if message.role == Role.ASSISTANT.value:
            ids.extend(message.tool_call_ids)
    return ids


def _response_ids(messages: List[BaseMessage]) -> List[str]:
    return [
        m.tool_call_id for m in messages if m.role == Role.TOOL.value and m.tool_call_id
    ]


class ToolMessageReorder(BaseProcessor):
    """Places each tool response directly after its invoking assistant message."""

    name = "ToolMessageReorder"

    async def do_process(self, context: PipelineContext) -> PipelineContext:
        original = list(context.messages)
        reordered = self.reorder(original)

        result = context.clone()
        result.messages = reordered
        removed = len(original) - len(reordered)
        result.metadata[METADATA_KEY] = {
            "original_count": len(original),
            "final_count": len(reordered),
            "removed_invalid_tools": removed,
        }
        if removed:
            logger.debug(f"ToolMessageReorder removed {removed} invalid or duplicate tool messages")
        return result

    def reorder(self, messages: List[BaseMessage]) -> List[BaseMessage]:
        """Return the reordered sequence; ``messages`` is left untouched."""
        valid_ids = set(_declared_ids(messages))

        # First tool response per declared id, waiting for its assistant.
        pending: Dict[str, BaseMessage] = {}
        for message in messages:
            if message.role == Role.TOOL.value and message.tool_call_id in valid_ids:
                pending.setdefault(message.tool_call_id, message)

        output: List[BaseMessage] = []
        for message in messages:
            if message.role == Role.TOOL.value:
                call_id = message.tool_call_id
                if not call_id or call_id not in valid_ids:
                    logger.debug(f"Dropping tool message {message.id}: unknown tool_call_id {call_id!r}")
                elif pending.get(call_id) is not message:
                    logger.debug(f"Dropping duplicate tool message {message.id} for {call_id}")
                # Pending responses are emitted after their assistant message.
                continue

            output.append(message)

            if message.role == Role.ASSISTANT.value:
                for call_id in message.tool_call_ids:
                    response = pending.pop(call_id, None)
                    if response is not None:
                        output.append(response)

        return output

    def validate_tool_messages(self, messages: List[BaseMessage]) -> ToolValidationResult:
        """Report orphaned calls and responses without modifying anything."""
        call_ids = _declared_ids(messages)
        response_ids = _response_ids(messages)
        call_set, response_set = set(call_ids), set(response_ids)

        issues: List[str] = []
        orphaned_calls = {i for i in call_ids if i not in response_set}
        orphaned_responses = {i for i in response_ids if i not in call_set}
        for call_id in dict.fromkeys(call_ids):
            if call_id in orphaned_calls:
                issues.append(f"Tool call {call_id} has no matching response")
        for response_id in dict.fromkeys(response_ids):
            if response_id in orphaned_responses:
                issues.append(f"Tool response {response_id} has no matching call")

        return ToolValidationResult(
            valid=not issues,
            issues=issues,
            orphaned_calls=orphaned_calls,
            orphaned_responses=orphaned_responses,
        )

    @staticmethod
    def get_tool_stats(messages: List[BaseMessage]) -> Dict[str, Any]:
        """Counts of invocations, responses and orphans on either side."""
        call_ids = _declared_ids(messages)
        response_ids = _response_ids(messages)
        return {
            "tool_calls": len(call_ids),
            "tool_responses": len(response_ids),
            "assistant_with_tools": sum(
                1 for m in messages if m.role == Role.ASSISTANT.value and m.tool_calls
            ),
            "orphaned_calls": len(set(call_ids) - set(response_ids)),
            "orphaned_responses": len(set(response_ids) - set(call_ids)),
        }
