# tests/context/conftest.py
"""
Shared fixtures for context pipeline tests.

Provides deterministic token counters, a context factory and a small
sample conversation used across the processor and pipeline tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest


# =============================================================================
# Token Counter Fixtures
# =============================================================================


class CharCounter:
    """One token per character; records every call."""

    def __init__(self) -> None:
        self.calls: List[str] = []

    def count(self, text: str) -> int:
        self.calls.append(text)
        return len(text)


class AsyncCharCounter(CharCounter):
    """Async variant of ``CharCounter``."""

    async def count(self, text: str) -> int:  # type: ignore[override]
        self.calls.append(text)
        return len(text)


class FailingCounter:
    """Counter that always raises."""

    def count(self, text: str) -> int:
        raise RuntimeError("token service unavailable")


@pytest.fixture
def char_counter():
    """Deterministic 1-token-per-character counter."""
    return CharCounter()


@pytest.fixture
def async_char_counter():
    """Async 1-token-per-character counter."""
    return AsyncCharCounter()


@pytest.fixture
def failing_counter():
    """Counter whose count() raises RuntimeError."""
    return FailingCounter()


# =============================================================================
# Context Fixtures
# =============================================================================


@pytest.fixture
def agent_state():
    """Empty AgentState with agent/session data."""
    from llmcontext.models import AgentState

    return AgentState(agent={"persona": "helper"}, session={"id": "s-1"})


@pytest.fixture
def make_context(agent_state):
    """Factory building a PipelineContext around the shared agent_state."""
    from llmcontext.context.types import PipelineContext

    def _make(messages: Optional[List[Any]] = None, metadata: Optional[Dict[str, Any]] = None):
        return PipelineContext(
            initial_state=agent_state,
            messages=list(messages or []),
            metadata=dict(metadata or {"model": "gpt-4", "maxTokens": 1000}),
        )

    return _make


@pytest.fixture
def base_time():
    """A fixed point in time one day ago, so recency bonuses are zero."""
    return datetime.now(timezone.utc) - timedelta(days=1)


@pytest.fixture
def conversation(base_time):
    """system, then alternating user/assistant turns, one minute apart."""
    from llmcontext.models import AssistantMessage, SystemMessage, UserMessage

    messages = [SystemMessage(id="sys", content="You are helpful.", created_at=base_time)]
    for i in range(1, 6):
        messages.append(
            UserMessage(id=f"u{i}", content=f"question {i}", created_at=base_time + timedelta(minutes=2 * i))
        )
        messages.append(
            AssistantMessage(id=f"a{i}", content=f"answer {i}", created_at=base_time + timedelta(minutes=2 * i + 1))
        )
    return messages
