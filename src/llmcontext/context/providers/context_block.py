# src/llmcontext/context/providers/context_block.py
"""Generic titled context block, e.g. retrieved documents or search snippets."""

from __future__ import annotations

from typing import Optional

from ..base import BaseProvider, InjectionPosition
from ..types import PipelineContext


class ContextBlockInjector(BaseProvider):
    """
    Injects ``## <title>\\n\\n<content>`` as a system message.

    The block is tagged with ``marker`` so a later run (or a second instance
    of this stage) refreshes the same message instead of adding another one;
    an unchanged block is left alone.

    Example::

        ContextBlockInjector(
            title="Relevant documents",
            content=snippets,
            marker="<!-- rag-context -->",
            position="end",
        )
    """

    name = "ContextBlockInjector"

    def __init__(
        self,
        title: str,
        content: str,
        marker: Optional[str] = None,
        position: InjectionPosition = "start",
        name: Optional[str] = None,
    ) -> None:
        self.title = title
        self.content = content
        self.marker = marker or f"<!-- context:{title} -->"
        self.position = position
        if name:
            self.name = name

    async def build_context(self, context: PipelineContext) -> Optional[str]:
        return self.content

    def get_context_marker(self) -> Optional[str]:
        return self.marker

    def get_injection_position(self, context: PipelineContext) -> InjectionPosition:
        return self.position

    def format_context(self, content: str, title: Optional[str] = None) -> str:
        return f"{self.marker}\n{super().format_context(content, title or self.title)}"
