# src/llmcontext/context/processors/history_truncator.py
"""
History truncation by message count and/or token ceiling.

System messages are never removed.  When both limits are configured, the
count limit is applied first and the token limit is then enforced on what
remains.

Count limit
    Keep every system message plus the last ``keep_latest_n`` non-system
    messages, in their original order.  With ``include_new_user_message``,
    a new user turn at the end of the list is guaranteed a place among them;
    older user messages get no special treatment.

Token limit
    Drop the oldest non-system message until the summed token cost of the
    survivors is within ``max_tokens`` (or only system messages remain).
    Any failure of the token counter is fatal for the stage.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ...exceptions import ConfigError
from ...models import BaseMessage, Role
from ..base import BaseProcessor
from ..token_counter import TokenCounter
from ..types import PipelineContext, count_tokens

logger = logging.getLogger(__name__)

METADATA_KEY = "historyTruncation"


class HistoryTruncator(BaseProcessor):
    """
    Bounds the working message list by count and/or estimated tokens.

    Example::

        truncator = HistoryTruncator(keep_latest_n=20, max_tokens=4000, token_counter=counter)
        context = await truncator.process(context)
        context.metadata["historyTruncation"]["removed_count"]
    """

    name = "HistoryTruncator"

    def __init__(
        self,
        keep_latest_n: Optional[int] = 10,
        max_tokens: Optional[int] = None,
        token_counter: Optional[TokenCounter] = None,
        include_new_user_message: bool = True,
    ) -> None:
        """
        Initialize the truncator.

        Args:
            keep_latest_n: Non-system messages to keep; ``None`` disables the
                count limit and ``0`` keeps only system messages.
            max_tokens: Token ceiling for the surviving messages; ``None``
                disables the token limit.
            token_counter: Required whenever ``max_tokens`` is set.
            include_new_user_message: Guarantee a trailing user message
                survives the count limit.
        """
        if keep_latest_n is not None and keep_latest_n < 0:
            raise ConfigError(f"keep_latest_n must be >= 0, got {keep_latest_n}")
        self.keep_latest_n = keep_latest_n
        self.max_tokens = max_tokens
        self.token_counter = token_counter
        self.include_new_user_message = include_new_user_message

    # =========================================================================
    # Processing
    # =========================================================================

    async def do_process(self, context: PipelineContext) -> PipelineContext:
        messages = list(context.messages)
        if not messages:
            return context

        methods: List[str] = []

        if self.keep_latest_n is not None:
            limited = self._apply_count_limit(messages)
            if len(limited) < len(messages):
                methods.append("count")
            kept = limited
        else:
            kept = messages

        if self.max_tokens is not None:
            if self.token_counter is None:
                raise ConfigError("HistoryTruncator: max_tokens is set but no token_counter was provided")
            limited = await self._apply_token_limit(kept)
            if len(limited) < len(kept):
                methods.append("tokens")
            kept = limited

        result = context.clone()
        result.messages = kept
        result.metadata[METADATA_KEY] = {
            "original_count": len(messages),
            "final_count": len(kept),
            "removed_count": len(messages) - len(kept),
            "truncation_method": methods,
        }

        if methods:
            logger.debug(
                f"HistoryTruncator removed {len(messages) - len(kept)} of {len(messages)} "
                f"messages (method: {'+'.join(methods)})"
            )
        return result

    def _apply_count_limit(self, messages: List[BaseMessage]) -> List[BaseMessage]:
        """System messages plus the last ``keep_latest_n`` others, original order."""
        n = self.keep_latest_n or 0
        non_system = [i for i, m in enumerate(messages) if m.role != Role.SYSTEM.value]
        kept_indices = non_system[-n:] if n > 0 else []

        if self.include_new_user_message and kept_indices:
            new_turn = len(messages) - 1
            if messages[new_turn].role == Role.USER.value and new_turn not in kept_indices:
                # Replace the oldest kept message so the count stays at n.
                kept_indices = kept_indices[1:] + [new_turn]

        keep = set(kept_indices)
        return [m for i, m in enumerate(messages) if m.role == Role.SYSTEM.value or i in keep]

    async def _apply_token_limit(self, messages: List[BaseMessage]) -> List[BaseMessage]:
        """Drop the oldest non-system messages until the total fits ``max_tokens``."""
        costs = [await count_tokens(self.token_counter, m.text) for m in messages]
        total = sum(costs)
        kept = list(range(len(messages)))

        while total > self.max_tokens:
            oldest = next((i for i in kept if messages[i].role != Role.SYSTEM.value), None)
            if oldest is None:
                break
            kept.remove(oldest)
            total -= costs[oldest]

        return [messages[i] for i in kept]

    # =========================================================================
    # Configuration and diagnostics
    # =========================================================================

    def set_keep_latest_n(self, keep_latest_n: Optional[int]) -> "HistoryTruncator":
        if keep_latest_n is not None and keep_latest_n < 0:
            raise ConfigError(f"keep_latest_n must be >= 0, got {keep_latest_n}")
        self.keep_latest_n = keep_latest_n
        return self

    def set_max_tokens(self, max_tokens: Optional[int]) -> "HistoryTruncator":
        self.max_tokens = max_tokens
        return self

    def set_token_counter(self, token_counter: Optional[TokenCounter]) -> "HistoryTruncator":
        self.token_counter = token_counter
        return self

    def set_include_new_user_message(self, include: bool) -> "HistoryTruncator":
        self.include_new_user_message = include
        return self

    def get_config(self) -> Dict[str, Any]:
        return {
            "keep_latest_n": self.keep_latest_n,
            "max_tokens": self.max_tokens,
            "token_counter": self.token_counter,
            "include_new_user_message": self.include_new_user_message,
        }

    async def estimate_truncated_count(self, messages: List[BaseMessage]) -> Dict[str, int]:
        """
        Message counts each configured limit would leave, without a pipeline run.

        Returns:
            ``{"count_based": int}`` plus ``"token_based"`` when a token
            limit and counter are configured.
        """
        messages = list(messages)
        estimate: Dict[str, int] = {}
        count_limited = self._apply_count_limit(messages) if self.keep_latest_n is not None else messages
        estimate["count_based"] = len(count_limited)
        if self.max_tokens is not None and self.token_counter is not None:
            estimate["token_based"] = len(await self._apply_token_limit(count_limited))
        return estimate

    def needs_truncation(self, message_count: int) -> bool:
        """Whether ``message_count`` messages exceed the count limit."""
        return self.keep_latest_n is not None and message_count > self.keep_latest_n
