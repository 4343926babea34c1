# src/llmcontext/context/providers/system_role.py
"""Injects the agent's system role text."""

from __future__ import annotations

import logging
from typing import Optional

from ...models import Role
from ..base import BaseProvider
from ..types import PipelineContext

logger = logging.getLogger(__name__)


class SystemRoleInjector(BaseProvider):
    """
    Adds ``system_role`` to the conversation.

    If a system message already exists, the role text is appended to the
    first one (separated by a blank line); otherwise a new system message is
    inserted at the start.  A blank role is a no-op.
    """

    name = "SystemRoleInjector"
    metadata_key = "systemRole"

    def __init__(self, system_role: Optional[str] = None) -> None:
        self.system_role = system_role or ""

    def should_inject(self, context: PipelineContext) -> bool:
        return bool(self.system_role.strip())

    async def build_context(self, context: PipelineContext) -> Optional[str]:
        return self.system_role

    async def do_process(self, context: PipelineContext) -> PipelineContext:
        if not self.should_inject(context):
            logger.debug("System role is empty; skipping injection")
            return context

        content = await self.build_context(context)
        result = context.clone()

        index = next(
            (i for i, m in enumerate(result.messages) if m.role == Role.SYSTEM.value), None
        )
        if index is not None:
            result.messages[index] = self.merge_context_to_message(result.messages[index], content)
            logger.debug(f"Merged system role into existing system message at index {index}")
        else:
            result.messages.insert(0, self.create_system_message(content))
            logger.debug(f"Inserted new system message ({len(content)} chars)")

        self.record_metadata(result, content)
        return result

    def set_system_role(self, system_role: str) -> "SystemRoleInjector":
        self.system_role = system_role or ""
        return self

    def get_system_role(self) -> str:
        return self.system_role
