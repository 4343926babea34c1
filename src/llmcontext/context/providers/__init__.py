# src/llmcontext/context/providers/__init__.py
"""Stages that inject content into the working message list."""

from .context_block import ContextBlockInjector
from .history import HistoryInjector
from .system_role import SystemRoleInjector

__all__ = [
    "ContextBlockInjector",
    "HistoryInjector",
    "SystemRoleInjector",
]
