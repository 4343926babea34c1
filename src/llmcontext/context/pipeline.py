# src/llmcontext/context/pipeline.py
"""
Context pipeline orchestrator.

A ``ContextPipeline`` owns an ordered list of stages and runs them strictly in
sequence over a fresh ``PipelineContext`` for every ``process`` call.  Each
stage sees only the previous stage's output.

Outcomes of a run:

- **Completed**: every stage ran.
- **Aborted**: a stage returned a context with ``is_aborted`` set.  The run
  stops after that stage and the partial result is returned.
- **Failed**: a stage raised.  The run stops and ``PipelineError`` is raised;
  no partial result is returned.

Example::

    pipeline = ContextPipeline([
        HistoryInjector(),
        HistoryTruncator(keep_latest_n=20),
        ToolMessageReorder(),
    ])
    result = await pipeline.process(state, model="gpt-4o", max_tokens=8000)
    send(result.messages)
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Union

from ..exceptions import PipelineError
from ..models import AgentState
from .base import BaseProcessor
from .types import PipelineContext, PipelineResult, PipelineStats

logger = logging.getLogger(__name__)


class ContextPipeline:
    """
    Runs an ordered list of processors over one conversation at a time.

    The stage list is fixed by the caller; there is no dependency resolution.
    Concurrent ``process`` calls on the same instance are safe as long as the
    stages themselves keep no per-request state.
    """

    def __init__(
        self,
        processors: Optional[List[BaseProcessor]] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Initialize the pipeline.

        Args:
            processors: Stages to run, in order.
            options: Free-form pipeline options, copied on ``clone()``.
        """
        self._processors: List[BaseProcessor] = list(processors or [])
        self.options: Dict[str, Any] = dict(options or {})

    # =========================================================================
    # Stage list management
    # =========================================================================

    def add_processor(self, processor: BaseProcessor) -> "ContextPipeline":
        self._processors.append(processor)
        return self

    def remove_processor(self, name: str) -> "ContextPipeline":
        """Remove every stage called ``name``."""
        self._processors = [p for p in self._processors if getattr(p, "name", None) != name]
        return self

    def clear(self) -> "ContextPipeline":
        self._processors = []
        return self

    def get_processors(self) -> List[BaseProcessor]:
        """A copy of the stage list."""
        return list(self._processors)

    def clone(self) -> "ContextPipeline":
        """Independent pipeline sharing the same stage instances."""
        return ContextPipeline(self._processors, self.options)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "processor_count": len(self._processors),
            "processor_names": [getattr(p, "name", "") for p in self._processors],
        }

    def validate(self) -> Dict[str, Any]:
        """
        Static sanity checks, without running anything.

        Returns:
            ``{"valid": bool, "errors": [str, ...]}``
        """
        errors: List[str] = []
        if not self._processors:
            errors.append("Pipeline has no processors")

        seen: Dict[str, int] = {}
        for index, processor in enumerate(self._processors):
            name = getattr(processor, "name", None)
            if not name:
                errors.append(f"Processor at index {index} has no name")
            else:
                seen[name] = seen.get(name, 0) + 1
            if not callable(getattr(processor, "process", None)):
                errors.append(f"Processor at index {index} ({name or 'unnamed'}) has no callable process method")

        for name, count in seen.items():
            if count > 1:
                errors.append(f"Duplicate processor name: {name}")

        return {"valid": not errors, "errors": errors}

    # =========================================================================
    # Execution
    # =========================================================================

    async def process(
        self,
        initial_state: Union[AgentState, Dict[str, Any]],
        model: str,
        max_tokens: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PipelineResult:
        """
        Run every stage over a fresh context built from ``initial_state``.

        Args:
            initial_state: Conversation history plus agent/session data.
            model: Target model name, stored as ``metadata["model"]``.
            max_tokens: Token budget, stored as ``metadata["maxTokens"]``.
            metadata: Extra initial metadata merged after the two keys above.

        Returns:
            The final messages, metadata, abort flag/reason and timing stats.

        Raises:
            PipelineError: If a stage fails (``processor_name`` set) or an
                unexpected error escapes the run loop (``processor_name`` is
                ``None``).
        """
        start = time.perf_counter()
        try:
            if isinstance(initial_state, dict):
                initial_state = AgentState.model_validate(initial_state)

            context = PipelineContext(
                initial_state=initial_state,
                messages=[],
                metadata={"model": model, "maxTokens": max_tokens, **(metadata or {})},
            )
            stats = PipelineStats()

            for processor in self._processors:
                if context.is_aborted:
                    break

                stage_start = time.perf_counter()
                try:
                    context = await processor.process(context)
                except Exception as exc:
                    raise PipelineError(
                        f"Processor [{processor.name}] execution failed", processor.name, exc
                    ) from exc
                finally:
                    stats.processor_durations[processor.name] = _elapsed_ms(stage_start)

                stats.processed_count += 1
                logger.debug(
                    f"Processor '{processor.name}' finished in "
                    f"{stats.processor_durations[processor.name]:.2f}ms "
                    f"({len(context.messages)} messages)"
                )

                if context.is_aborted:
                    logger.info(f"Pipeline aborted by '{processor.name}': {context.abort_reason}")

            stats.total_duration_ms = _elapsed_ms(start)
            logger.debug(
                f"Pipeline finished: {stats.processed_count}/{len(self._processors)} processors "
                f"in {stats.total_duration_ms:.2f}ms"
            )

            return PipelineResult(
                messages=list(context.messages),
                metadata=dict(context.metadata),
                is_aborted=context.is_aborted,
                abort_reason=context.abort_reason,
                stats=stats,
                execution_info=context.execution_info.copy(),
            )
        except PipelineError as exc:
            logger.error(str(exc))
            raise
        except Exception as exc:
            logger.error(f"Unexpected error during pipeline execution: {exc}")
            raise PipelineError("Unknown error during pipeline execution", None, exc) from exc


def _elapsed_ms(start: float) -> float:
    """Milliseconds since *start* (from ``time.perf_counter``)."""
    return (time.perf_counter() - start) * 1000
