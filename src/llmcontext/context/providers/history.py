# src/llmcontext/context/providers/history.py
"""Injects the stored conversation history into the working message list."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ...models import Role
from ..base import BaseProvider
from ..types import PipelineContext

logger = logging.getLogger(__name__)


class HistoryInjector(BaseProvider):
    """
    Appends ``initial_state.messages`` to the working list.

    Entries without an id or without any content are skipped with a warning.
    The injected messages are ordered by timestamp (messages without one sort
    first); the relative order of equal timestamps is kept.
    ``initial_state`` itself is never modified.
    """

    name = "HistoryInjector"

    async def build_context(self, context: PipelineContext) -> Optional[str]:
        # History is injected as messages, not as system text.
        return None

    async def do_process(self, context: PipelineContext) -> PipelineContext:
        history = list(context.initial_state.messages)
        if not history:
            logger.debug("No history messages to inject")
            return context

        valid = []
        for message in history:
            if not message.id or not message.id.strip():
                logger.warning(f"Skipping invalid history message without id: {message!r}")
                continue
            if self.is_empty_message(message):
                logger.warning(f"Skipping empty history message {message.id}")
                continue
            valid.append(message)

        if not valid:
            logger.warning("No valid history messages to inject")
            return context

        valid.sort(key=lambda m: m.sort_key)

        counts: Dict[str, int] = {role.value: 0 for role in Role}
        counts["other"] = 0
        for message in valid:
            if message.role in counts:
                counts[message.role] += 1
            else:
                counts["other"] += 1

        result = context.clone()
        result.messages.extend(valid)
        result.metadata["historyMessagesCount"] = len(valid)
        result.metadata["totalHistoryLength"] = sum(len(m.text) for m in valid)
        result.metadata["historyMessageTypes"] = counts
        logger.debug(f"Injected {len(valid)} history messages: {counts}")
        return result

    @staticmethod
    def get_history_stats(context: PipelineContext) -> Dict[str, Any]:
        """What a previous run of this stage recorded in ``context.metadata``."""
        return {
            "total": context.metadata.get("historyMessagesCount", 0),
            "total_length": context.metadata.get("totalHistoryLength", 0),
            "types": context.metadata.get("historyMessageTypes", {}),
        }
