# src/llmcontext/context/types.py
"""
Value types threaded through a context pipeline run.

A ``PipelineContext`` is created once per ``ContextPipeline.process`` call and
replaced, never edited in place, by each stage: a stage calls ``clone()``,
changes its own copy of the message list and metadata map, and returns it.
``initial_state`` is shared by reference across all clones and must never be
replaced by a stage.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from ..exceptions import ContextLengthError, TokenCountError
from ..models import AgentState, BaseMessage


@dataclass
class ExecutionInfo:
    """
    Bookkeeping for one run.

    Attributes:
        executed_processors: Names of stages that completed, in order.
        errors: Errors recorded by stages that soft-aborted the run.
    """

    executed_processors: List[str] = field(default_factory=list)
    errors: List[Exception] = field(default_factory=list)

    def copy(self) -> "ExecutionInfo":
        return ExecutionInfo(list(self.executed_processors), list(self.errors))


@dataclass
class PipelineContext:
    """
    The unit of work passed from stage to stage.

    Attributes:
        initial_state: Source-of-truth conversation and agent data.
        messages: Working message sequence owned by the current stage.
        metadata: Open key/value bag for inter-stage signalling and diagnostics.
            Each stage writes under its own key.
        is_aborted: Set by a stage to stop the run early with partial results.
        abort_reason: Why the run was aborted.
        execution_info: Executed stage names and recorded errors.
    """

    initial_state: AgentState
    messages: List[BaseMessage] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    is_aborted: bool = False
    abort_reason: Optional[str] = None
    execution_info: ExecutionInfo = field(default_factory=ExecutionInfo)

    def clone(self) -> "PipelineContext":
        """Copy with an independent message list, metadata map and execution info."""
        return replace(
            self,
            messages=list(self.messages),
            metadata=dict(self.metadata),
            execution_info=self.execution_info.copy(),
        )


@dataclass
class PipelineStats:
    """
    Timing information for a completed run.

    Attributes:
        total_duration_ms: Wall-clock duration of the whole run.
        processed_count: Number of stages that actually ran.
        processor_durations: Wall-clock duration per stage name (ms).
    """

    total_duration_ms: float = 0.0
    processed_count: int = 0
    processor_durations: Dict[str, float] = field(default_factory=dict)


@dataclass
class PipelineResult:
    """Terminal snapshot of a pipeline run."""

    messages: List[BaseMessage]
    metadata: Dict[str, Any]
    is_aborted: bool
    abort_reason: Optional[str] = None
    stats: PipelineStats = field(default_factory=PipelineStats)
    execution_info: ExecutionInfo = field(default_factory=ExecutionInfo)

    async def ensure_within(self, limit: int, token_counter: Any) -> int:
        """
        Raise ``ContextLengthError`` if the final messages exceed ``limit`` tokens.

        Returns:
            The total token count of ``messages``.
        """
        total = 0
        for message in self.messages:
            total += await count_tokens(token_counter, message.text)
        if total > limit:
            raise ContextLengthError(
                model_name=str(self.metadata.get("model", "Unknown")),
                limit=limit,
                actual=total,
            )
        return total


async def count_tokens(token_counter: Any, text: str) -> int:
    """
    Invoke a sync or async token counter and check its result.

    Raises:
        TokenCountError: If the counter does not return a non-negative int.
    """
    result = token_counter.count(text)
    if inspect.isawaitable(result):
        result = await result
    if isinstance(result, bool) or not isinstance(result, int) or result < 0:
        raise TokenCountError(result)
    return result
