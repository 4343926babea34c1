# src/llmcontext/context/base.py
"""
Execution contract shared by every pipeline stage.

``BaseProcessor`` wraps a stage's own ``do_process`` in a uniform envelope:

1. Validate the incoming context.
2. Run the stage.
3. Validate the outgoing context (``initial_state`` must be the same object).
4. Record the stage name in ``execution_info.executed_processors``.

Any exception raised along the way is wrapped in a ``ProcessorError`` naming
the stage and re-raised; the pipeline treats that as fatal for the run.  A
stage that wants to stop the run *without* failing it returns
``self.abort(context, reason)`` instead.

``BaseProvider`` specialises the contract for stages that inject text into
the conversation as a system message, exposing small overridable hooks
(where to inject, how to format, how to detect a previous injection).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple, Union

from ..exceptions import ProcessorError
from ..models import BaseMessage, Role, SystemMessage
from .types import PipelineContext

logger = logging.getLogger(__name__)

MAX_INJECTED_CONTENT_LENGTH = 100_000

InjectionPosition = Union[str, int]


# =============================================================================
# Processor
# =============================================================================


class BaseProcessor(ABC):
    """
    Base class for pipeline stages.

    Subclasses set ``name`` and implement ``do_process``.  ``do_process`` must
    not mutate the context it receives: it either returns it unchanged or
    returns a ``context.clone()`` it has modified.

    Example::

        class Uppercase(BaseProcessor):
            name = "Uppercase"

            async def do_process(self, context):
                result = context.clone()
                result.messages = [
                    m.model_copy(update={"content": m.text.upper()})
                    for m in result.messages
                ]
                return result
    """

    name: str = ""

    async def process(self, context: PipelineContext) -> PipelineContext:
        """
        Run this stage inside the validation/bookkeeping envelope.

        Raises:
            ProcessorError: On invalid input/output or any failure inside
                ``do_process``.
        """
        try:
            self.validate_input(context)
            result = await self.do_process(context)
            self.validate_output(context, result)
        except ProcessorError as exc:
            logger.error(f"Processor '{self.name}' failed: {exc}")
            raise
        except Exception as exc:
            logger.error(f"Processor '{self.name}' failed: {exc}")
            raise ProcessorError(self.name, f"Processing failed: {exc}", exc) from exc

        return self.mark_as_executed(result)

    @abstractmethod
    async def do_process(self, context: PipelineContext) -> PipelineContext:
        """Stage-specific transformation."""
        ...

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def validate_input(self, context: Any) -> None:
        """Reject contexts a stage cannot safely work on."""
        if context is None:
            raise ProcessorError(self.name, "Invalid input context: context is None")
        if getattr(context, "initial_state", None) is None:
            raise ProcessorError(self.name, "Invalid input context: initial_state is missing")
        if not isinstance(getattr(context, "messages", None), (list, tuple)):
            raise ProcessorError(self.name, "Invalid input context: messages must be a sequence")
        if not isinstance(getattr(context, "metadata", None), dict):
            raise ProcessorError(self.name, "Invalid input context: metadata must be a dict")

    def validate_output(self, original: PipelineContext, result: Any) -> None:
        """Reject results that lost their messages or replaced ``initial_state``."""
        if result is None:
            raise ProcessorError(self.name, "Invalid output context: stage returned None")
        if not isinstance(getattr(result, "messages", None), (list, tuple)):
            raise ProcessorError(self.name, "Invalid output context: messages must be a sequence")
        if getattr(result, "initial_state", None) is not original.initial_state:
            raise ProcessorError(self.name, "Invalid output context: initial_state must not be replaced")

    # -------------------------------------------------------------------------
    # Helpers for subclasses
    # -------------------------------------------------------------------------

    def abort(self, context: PipelineContext, reason: str) -> PipelineContext:
        """
        Return a soft-aborted copy of ``context``.

        The run ends successfully after this stage; the reason is kept in
        ``abort_reason`` and a ``ProcessorError`` is recorded (not raised) in
        ``execution_info.errors``.
        """
        logger.warning(f"Processor '{self.name}' aborted the pipeline: {reason}")
        result = context.clone()
        result.is_aborted = True
        result.abort_reason = reason
        result.execution_info.errors.append(ProcessorError(self.name, reason))
        return result

    def mark_as_executed(self, context: PipelineContext) -> PipelineContext:
        """Copy of ``context`` with this stage appended to the executed list."""
        info = context.execution_info.copy()
        info.executed_processors.append(self.name)
        return replace(context, execution_info=info)

    @staticmethod
    def count_messages(context: PipelineContext) -> Dict[str, int]:
        """Per-role message counts of the working list."""
        counts = {"total": len(context.messages)}
        for role in Role:
            counts[role.value] = 0
        for message in context.messages:
            counts[message.role] = counts.get(message.role, 0) + 1
        return counts

    @staticmethod
    def is_empty_message(message: BaseMessage) -> bool:
        """
        True when a message carries nothing at all.

        Text, images, file attachments, tool calls, reasoning and a tool
        back-reference each count as content.
        """
        if message.text.strip():
            return False
        if message.has_images:
            return False
        if getattr(message, "files", None) or getattr(message, "tool_calls", None):
            return False
        if getattr(message, "tool_call_id", None):
            return False
        reasoning = getattr(message, "reasoning", None)
        return not (reasoning and reasoning.content)


# =============================================================================
# Provider
# =============================================================================


class BaseProvider(BaseProcessor):
    """
    Base class for stages that inject context into the conversation.

    The default ``do_process`` builds content with ``build_context``, formats
    it, and then either refreshes the system message that already carries this
    provider's marker or inserts a new system message at
    ``get_injection_position``.  Every step is a hook subclasses may override.
    """

    #: Prefix for the injected/length metadata keys; defaults to the stage name.
    metadata_key: Optional[str] = None

    @abstractmethod
    async def build_context(self, context: PipelineContext) -> Optional[str]:
        """Produce the raw text to inject, or ``None`` to skip."""
        ...

    async def do_process(self, context: PipelineContext) -> PipelineContext:
        if not self.should_inject(context):
            return context

        content = await self.build_context(context)
        if not self.validate_injected_content(content):
            logger.debug(f"Provider '{self.name}' produced no usable content; skipping")
            return context

        formatted = self.format_context(content)
        result = context.clone()

        existing = self.find_existing_context_message(result.messages)
        if existing is not None:
            index, message = existing
            if not self.should_update_existing(message, formatted):
                return context
            result.messages[index] = message.model_copy(update={"content": formatted})
        else:
            position = self._resolve_position(self.get_injection_position(context), len(result.messages))
            result.messages.insert(position, self.create_system_message(formatted))

        self.record_metadata(result, formatted)
        return result

    # -------------------------------------------------------------------------
    # Hooks
    # -------------------------------------------------------------------------

    def should_inject(self, context: PipelineContext) -> bool:
        """Inject only into a non-empty conversation by default."""
        return len(context.messages) > 0

    def get_injection_position(self, context: PipelineContext) -> InjectionPosition:
        """``"start"``, ``"end"`` or an explicit index."""
        return "start"

    def get_context_marker(self) -> Optional[str]:
        """Marker string identifying this provider's injected message, if any."""
        return None

    def format_context(self, content: str, title: Optional[str] = None) -> str:
        if title:
            return f"## {title}\n\n{content}"
        return content

    def validate_injected_content(self, content: Optional[str]) -> bool:
        """Content must be non-blank and at most ``MAX_INJECTED_CONTENT_LENGTH`` characters."""
        if not content or not content.strip():
            return False
        if len(content) > MAX_INJECTED_CONTENT_LENGTH:
            logger.warning(
                f"Provider '{self.name}' content too long ({len(content)} chars); skipping injection"
            )
            return False
        return True

    def should_update_existing(self, message: BaseMessage, formatted: str) -> bool:
        return message.text != formatted

    def create_system_message(self, content: str, **kwargs: Any) -> SystemMessage:
        return SystemMessage(content=content, **kwargs)

    def merge_context_to_message(self, message: BaseMessage, content: str, separator: str = "\n\n") -> BaseMessage:
        """Append ``content`` to a message's text, returning a new message."""
        existing = message.text
        merged = f"{existing}{separator}{content}" if existing else content
        return message.model_copy(update={"content": merged})

    def find_existing_context_message(self, messages: List[BaseMessage]) -> Optional[Tuple[int, BaseMessage]]:
        """Locate the system message carrying this provider's marker."""
        marker = self.get_context_marker()
        if not marker:
            return None
        for index, message in enumerate(messages):
            if message.role == Role.SYSTEM.value and marker in message.text:
                return index, message
        return None

    def record_metadata(self, context: PipelineContext, content: str) -> None:
        """Write ``<name>Injected`` / ``<name>Length`` into the (already cloned) context."""
        key = self.metadata_key or self.name[:1].lower() + self.name[1:]
        context.metadata[f"{key}Injected"] = True
        context.metadata[f"{key}Length"] = len(content)

    @staticmethod
    def _resolve_position(position: InjectionPosition, length: int) -> int:
        if position == "start":
            return 0
        if position == "end":
            return length
        if isinstance(position, int):
            return max(0, min(position, length))
        raise ValueError(f"Unknown injection position: {position!r}")
