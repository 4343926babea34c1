# src/llmcontext/context/processors/token_truncator.py
"""
Budget-aware, importance-ranked truncation.

The effective limit is ``max_tokens * (1 - buffer_percentage)``.  When the
working messages exceed it:

1. System messages (``preserve_system_messages``) and the most recent user
   message (``preserve_last_user_message``) form the hard-kept set.  If that
   set alone is over the limit, it is returned as is.
2. The remaining messages are scored (see ``calculate_importance``) and
   packed greedily, highest score first, into the residual budget.
3. The first candidate that does not fit gets one chance at a partial
   truncation of its text (binary search for the longest prefix + ``"..."``
   that fits).  Scanning stops there either way.
4. The survivors are put back into chronological order.

Token costs are computed once per message from its plain text and summed,
so the enforced total is exactly what the metadata reports.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from ...exceptions import ConfigError
from ...models import BaseMessage, Role
from ..base import BaseProcessor
from ..token_counter import TokenCounter
from ..types import PipelineContext, count_tokens

logger = logging.getLogger(__name__)

METADATA_KEY = "tokenBasedTruncation"

ELLIPSIS = "..."
MIN_TRUNCATION_TOKENS = 50

ROLE_WEIGHTS: Dict[str, int] = {
    Role.SYSTEM.value: 10,
    Role.USER.value: 8,
    Role.ASSISTANT.value: 6,
    Role.TOOL.value: 4,
}

RECENCY_MAX_BONUS = 5.0
RECENCY_WINDOW_SECONDS = 3600.0


# =============================================================================
# Importance scoring
# =============================================================================


def calculate_importance(message: BaseMessage, now: Optional[datetime] = None) -> float:
    """
    Score a message for greedy selection.

    Components::

        1                                   base
        + role weight                       system 10, user 8, assistant 6, tool 4
        + length band (text length)         50 < len < 500: +2, 500 <= len < 1000: +1
        + tool invocations                  +3
        + images                            +2
        + reasoning (non-empty)             +2
        + recency                           5 * max(0, 1 - age / 1h), at most 5

    Messages without a timestamp get no recency bonus.
    """
    score = 1.0
    score += ROLE_WEIGHTS.get(message.role, 0)

    length = len(message.text)
    if 50 < length < 500:
        score += 2
    elif 500 <= length < 1000:
        score += 1

    if getattr(message, "tool_calls", None):
        score += 3
    if message.has_images:
        score += 2
    reasoning = getattr(message, "reasoning", None)
    if reasoning and reasoning.content:
        score += 2

    if message.created_at is not None:
        now = now or datetime.now(timezone.utc)
        age_seconds = (now - message.created_at).total_seconds()
        recency = RECENCY_MAX_BONUS * max(0.0, 1.0 - age_seconds / RECENCY_WINDOW_SECONDS)
        score += min(RECENCY_MAX_BONUS, recency)

    return score


# =============================================================================
# Truncator
# =============================================================================


class TokenBasedTruncator(BaseProcessor):
    """
    Keeps the most valuable messages that fit under a buffered token limit.

    Example::

        truncator = TokenBasedTruncator(counter, max_tokens=8000, buffer_percentage=0.1)
        context = await truncator.process(context)
        # total tokens of context.messages <= 7200, unless the hard-kept set alone is larger
    """

    name = "TokenBasedTruncator"

    def __init__(
        self,
        token_counter: TokenCounter,
        max_tokens: int,
        preserve_system_messages: bool = True,
        preserve_last_user_message: bool = True,
        buffer_percentage: float = 0.1,
    ) -> None:
        if token_counter is None:
            raise ConfigError("TokenBasedTruncator requires a token_counter")
        if max_tokens is None or max_tokens < 1:
            raise ConfigError(f"max_tokens must be >= 1, got {max_tokens}")
        if not 0.0 <= buffer_percentage < 1.0:
            raise ConfigError(f"buffer_percentage must be in [0.0, 1.0), got {buffer_percentage}")
        self.token_counter = token_counter
        self.max_tokens = max_tokens
        self.preserve_system_messages = preserve_system_messages
        self.preserve_last_user_message = preserve_last_user_message
        self.buffer_percentage = buffer_percentage

    @property
    def effective_limit(self) -> float:
        """``max_tokens`` reduced by the safety buffer."""
        return self.max_tokens * (1 - self.buffer_percentage)

    async def do_process(self, context: PipelineContext) -> PipelineContext:
        messages = list(context.messages)
        costs = await self._message_costs(messages)
        original_tokens = sum(costs)
        limit = self.effective_limit

        if original_tokens <= limit:
            return context

        kept, final_tokens = await self._select(messages, costs, limit)

        result = context.clone()
        result.messages = kept
        result.metadata[METADATA_KEY] = {
            "original_tokens": original_tokens,
            "final_tokens": final_tokens,
            "saved_tokens": original_tokens - final_tokens,
            "original_message_count": len(messages),
            "final_message_count": len(kept),
            "max_tokens": self.max_tokens,
            "buffer_percentage": self.buffer_percentage,
            "effective_limit": limit,
        }
        logger.debug(
            f"TokenBasedTruncator: {original_tokens} -> {final_tokens} tokens, "
            f"{len(messages)} -> {len(kept)} messages (limit {limit:.0f})"
        )
        return result

    async def _message_costs(self, messages: List[BaseMessage]) -> List[int]:
        return [await count_tokens(self.token_counter, m.text) for m in messages]

    def _hard_kept_indices(self, messages: List[BaseMessage]) -> List[int]:
        indices = []
        if self.preserve_system_messages:
            indices.extend(i for i, m in enumerate(messages) if m.role == Role.SYSTEM.value)
        if self.preserve_last_user_message:
            for i in range(len(messages) - 1, -1, -1):
                if messages[i].role == Role.USER.value:
                    indices.append(i)
                    break
        return sorted(indices)

    async def _select(
        self, messages: List[BaseMessage], costs: List[int], limit: float
    ) -> Tuple[List[BaseMessage], int]:
        """Hard-kept set plus greedily packed candidates, chronologically ordered."""
        hard_kept = self._hard_kept_indices(messages)
        hard_cost = sum(costs[i] for i in hard_kept)

        if hard_cost > limit:
            logger.debug(
                f"Hard-kept messages ({hard_cost} tokens) exceed limit {limit:.0f}; returning them only"
            )
            kept = [messages[i] for i in hard_kept]
            kept.sort(key=lambda m: m.sort_key)
            return kept, hard_cost

        remaining = limit - hard_cost
        now = datetime.now(timezone.utc)
        hard_set = set(hard_kept)
        candidates = [i for i in range(len(messages)) if i not in hard_set]
        # sorted() is stable, so equal scores keep their original order.
        candidates = sorted(candidates, key=lambda i: -calculate_importance(messages[i], now))

        chosen: Dict[int, BaseMessage] = {i: messages[i] for i in hard_kept}
        total = hard_cost
        for index in candidates:
            if costs[index] <= remaining:
                chosen[index] = messages[index]
                remaining -= costs[index]
                total += costs[index]
                continue

            truncated = await self._truncate_message(messages[index], remaining)
            if truncated is not None:
                message, cost = truncated
                chosen[index] = message
                total += cost
            break

        merged = [chosen[i] for i in sorted(chosen)]
        merged.sort(key=lambda m: m.sort_key)
        return merged, total

    async def _truncate_message(
        self, message: BaseMessage, budget: float
    ) -> Optional[Tuple[BaseMessage, int]]:
        """
        Longest ``prefix + "..."`` of a message's text costing at most *budget*.

        Binary search over the prefix length, so the counter is called
        O(log n) times.  Only plain-string content is truncated, and only when
        the budget is at least ``MIN_TRUNCATION_TOKENS``.

        Returns:
            ``(truncated_message, token_cost)`` or ``None``.
        """
        if budget < MIN_TRUNCATION_TOKENS:
            return None
        content = message.content
        if not isinstance(content, str) or len(content) < 2:
            return None

        low, high = 1, len(content) - 1
        best: Optional[Tuple[str, int]] = None
        while low <= high:
            mid = (low + high) // 2
            candidate = content[:mid] + ELLIPSIS
            cost = await count_tokens(self.token_counter, candidate)
            if cost <= budget:
                best = (candidate, cost)
                low = mid + 1
            else:
                high = mid - 1

        if best is None:
            return None
        text, cost = best
        logger.debug(f"Partially truncated message {message.id}: {len(content)} -> {len(text)} chars")
        return message.model_copy(update={"content": text}), cost

    # =========================================================================
    # Configuration and diagnostics
    # =========================================================================

    async def estimate_truncation(self, messages: List[BaseMessage]) -> Dict[str, Any]:
        """
        Rough effect of truncation without running it.

        When truncation is needed the final size is estimated as 90% of the
        effective limit.
        """
        current = sum(await self._message_costs(list(messages)))
        limit = self.effective_limit
        if current <= limit:
            return {
                "current_tokens": current,
                "estimated_final_tokens": current,
                "estimated_saved_tokens": 0,
                "needs_truncation": False,
            }
        estimated_final = int(limit * 0.9)
        return {
            "current_tokens": current,
            "estimated_final_tokens": estimated_final,
            "estimated_saved_tokens": current - estimated_final,
            "needs_truncation": True,
        }

    def set_max_tokens(self, max_tokens: int) -> "TokenBasedTruncator":
        if max_tokens < 1:
            raise ConfigError(f"max_tokens must be >= 1, got {max_tokens}")
        self.max_tokens = max_tokens
        return self

    def set_token_counter(self, token_counter: TokenCounter) -> "TokenBasedTruncator":
        self.token_counter = token_counter
        return self

    def get_config(self) -> Dict[str, Any]:
        return {
            "token_counter": self.token_counter,
            "max_tokens": self.max_tokens,
            "preserve_system_messages": self.preserve_system_messages,
            "preserve_last_user_message": self.preserve_last_user_message,
            "buffer_percentage": self.buffer_percentage,
        }
