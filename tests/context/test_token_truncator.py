# tests/context/test_token_truncator.py
"""
Tests for TokenBasedTruncator and importance scoring.

All tests use a 1-token-per-character counter, so token costs equal text
lengths.
"""

from datetime import datetime, timedelta, timezone

import pytest

from llmcontext.context.processors import TokenBasedTruncator, calculate_importance
from llmcontext.exceptions import ConfigError, ProcessorError
from llmcontext.models import (
    AssistantMessage,
    ImageAttachment,
    ImagePart,
    Reasoning,
    SystemMessage,
    TextPart,
    ToolCall,
    ToolMessage,
    UserMessage,
)


def total_chars(messages):
    return sum(len(m.text) for m in messages)


# =============================================================================
# Importance scoring
# =============================================================================


class TestCalculateImportance:
    """Tests for the importance formula."""

    def test_role_weights(self):
        assert calculate_importance(SystemMessage(content="x")) == 11
        assert calculate_importance(UserMessage(content="x")) == 9
        assert calculate_importance(AssistantMessage(content="x")) == 7
        assert calculate_importance(ToolMessage(content="x")) == 5

    @pytest.mark.parametrize(
        "length,bonus",
        [(0, 0), (50, 0), (51, 2), (499, 2), (500, 1), (999, 1), (1000, 0), (5000, 0)],
    )
    def test_length_bands(self, length, bonus):
        assert calculate_importance(UserMessage(content="a" * length)) == 9 + bonus

    def test_capability_bonuses(self):
        with_tools = AssistantMessage(content="x", tool_calls=[ToolCall(id="c1", name="f")])
        with_reasoning = AssistantMessage(content="x", reasoning=Reasoning(content="because"))
        with_image = UserMessage(content="x", images=[ImageAttachment(url="http://img")])
        with_image_part = UserMessage(content=[TextPart(text="x"), ImagePart(image_url="http://img")])

        assert calculate_importance(with_tools) == 7 + 3
        assert calculate_importance(with_reasoning) == 7 + 2
        assert calculate_importance(with_image) == 9 + 2
        assert calculate_importance(with_image_part) == 9 + 2

    def test_empty_reasoning_earns_no_bonus(self):
        message = AssistantMessage(content="x", reasoning=Reasoning(content=""))
        assert calculate_importance(message) == 7

    def test_recency_decays_over_one_hour(self):
        now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

        def score_at(age):
            return calculate_importance(UserMessage(content="x", created_at=now - age), now=now)

        assert score_at(timedelta(0)) == pytest.approx(9 + 5)
        assert score_at(timedelta(minutes=30)) == pytest.approx(9 + 2.5)
        assert score_at(timedelta(hours=1)) == pytest.approx(9)
        assert score_at(timedelta(hours=5)) == pytest.approx(9)

    def test_future_timestamp_clamped(self):
        now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        message = UserMessage(content="x", created_at=now + timedelta(hours=2))
        assert calculate_importance(message, now=now) == pytest.approx(9 + 5)

    def test_missing_timestamp_no_recency(self):
        assert calculate_importance(UserMessage(content="x")) == 9


# =============================================================================
# Configuration
# =============================================================================


class TestTokenTruncatorConfig:
    """Tests for construction and configuration helpers."""

    def test_effective_limit(self, char_counter):
        truncator = TokenBasedTruncator(char_counter, max_tokens=1000, buffer_percentage=0.2)
        assert truncator.effective_limit == pytest.approx(800)

    def test_default_buffer(self, char_counter):
        truncator = TokenBasedTruncator(char_counter, max_tokens=1000)
        assert truncator.get_config()["buffer_percentage"] == 0.1
        assert truncator.effective_limit == pytest.approx(900)

    @pytest.mark.parametrize("buffer", [-0.1, 1.0, 1.5])
    def test_invalid_buffer(self, char_counter, buffer):
        with pytest.raises(ConfigError):
            TokenBasedTruncator(char_counter, max_tokens=100, buffer_percentage=buffer)

    def test_invalid_max_tokens(self, char_counter):
        with pytest.raises(ConfigError):
            TokenBasedTruncator(char_counter, max_tokens=0)

    def test_requires_counter(self):
        with pytest.raises(ConfigError):
            TokenBasedTruncator(None, max_tokens=100)

    def test_set_max_tokens(self, char_counter):
        truncator = TokenBasedTruncator(char_counter, max_tokens=100).set_max_tokens(500)
        assert truncator.get_config()["max_tokens"] == 500


# =============================================================================
# Truncation behaviour
# =============================================================================


class TestTokenTruncation:
    """Tests for TokenBasedTruncator.process."""

    @pytest.mark.asyncio
    async def test_no_op_within_budget(self, make_context, conversation, char_counter):
        context = make_context(conversation)
        truncator = TokenBasedTruncator(char_counter, max_tokens=10_000)
        result = await truncator.process(context)

        assert len(result.messages) == len(conversation)
        assert all(a is b for a, b in zip(result.messages, conversation))
        assert "tokenBasedTruncation" not in result.metadata

    @pytest.mark.asyncio
    async def test_long_message_truncated_with_ellipsis(self, make_context, char_counter):
        messages = [
            SystemMessage(id="s", content="S" * 5),
            UserMessage(id="long", content="A" * 5000),
            AssistantMessage(id="b", content="B" * 12),
            UserMessage(id="final", content="Final"),
        ]
        truncator = TokenBasedTruncator(char_counter, max_tokens=200, buffer_percentage=0.1)
        result = await truncator.process(make_context(messages))

        by_id = {m.id: m for m in result.messages}
        assert by_id["s"].text == "S" * 5
        assert by_id["final"].text == "Final"
        assert by_id["long"].text == "A" * 167 + "..."
        assert "b" not in by_id
        assert [m.id for m in result.messages] == ["s", "long", "final"]
        assert total_chars(result.messages) <= 180

    @pytest.mark.asyncio
    async def test_metadata(self, make_context, char_counter):
        messages = [
            SystemMessage(id="s", content="S" * 5),
            UserMessage(id="long", content="A" * 5000),
            AssistantMessage(id="b", content="B" * 12),
            UserMessage(id="final", content="Final"),
        ]
        truncator = TokenBasedTruncator(char_counter, max_tokens=200, buffer_percentage=0.1)
        result = await truncator.process(make_context(messages))

        meta = result.metadata["tokenBasedTruncation"]
        assert meta["original_tokens"] == 5022
        assert meta["final_tokens"] == 180
        assert meta["saved_tokens"] == 5022 - 180
        assert meta["original_message_count"] == 4
        assert meta["final_message_count"] == 3
        assert meta["max_tokens"] == 200
        assert meta["buffer_percentage"] == 0.1
        assert meta["effective_limit"] == pytest.approx(180)

    @pytest.mark.asyncio
    async def test_hard_kept_over_budget_returned_alone(self, make_context, char_counter):
        messages = [
            SystemMessage(id="s", content="S" * 100),
            AssistantMessage(id="a", content="tiny"),
            UserMessage(id="u", content="U" * 100),
        ]
        truncator = TokenBasedTruncator(char_counter, max_tokens=100)
        result = await truncator.process(make_context(messages))

        assert [m.id for m in result.messages] == ["s", "u"]
        assert result.messages[0] is messages[0]
        assert result.messages[1] is messages[2]

    @pytest.mark.asyncio
    async def test_greedy_selection_by_score(self, make_context, char_counter):
        messages = [
            SystemMessage(id="s", content="s" * 10),
            UserMessage(id="u1", content="a" * 40),
            AssistantMessage(id="a1", content="b" * 30),
            ToolMessage(id="t1", content="c" * 30, tool_call_id="x"),
            UserMessage(id="q", content="q" * 10),
        ]
        truncator = TokenBasedTruncator(char_counter, max_tokens=100, buffer_percentage=0.0)
        result = await truncator.process(make_context(messages))

        assert [m.id for m in result.messages] == ["s", "u1", "a1", "q"]
        assert total_chars(result.messages) == 90

    @pytest.mark.asyncio
    async def test_ties_keep_original_order(self, make_context, char_counter):
        messages = [
            AssistantMessage(id="first", content="x" * 30),
            AssistantMessage(id="second", content="y" * 30),
            UserMessage(id="q", content="q" * 60),
        ]
        truncator = TokenBasedTruncator(char_counter, max_tokens=100, buffer_percentage=0.0)
        result = await truncator.process(make_context(messages))

        assert [m.id for m in result.messages] == ["first", "q"]

    @pytest.mark.asyncio
    async def test_scanning_stops_when_truncation_impossible(self, make_context, char_counter):
        """A candidate that cannot be truncated ends selection, even if later ones would fit."""
        messages = [
            SystemMessage(id="s", content="s" * 60),
            AssistantMessage(id="a", content="b" * 90, tool_calls=[ToolCall(id="c1", name="f")]),
            ToolMessage(id="t", content="c" * 5, tool_call_id="c1"),
            UserMessage(id="u", content="u" * 10),
        ]
        truncator = TokenBasedTruncator(char_counter, max_tokens=100, buffer_percentage=0.0)
        result = await truncator.process(make_context(messages))

        assert [m.id for m in result.messages] == ["s", "u"]

    @pytest.mark.asyncio
    async def test_structured_content_not_truncated(self, make_context, char_counter):
        messages = [
            AssistantMessage(id="a", content=[TextPart(text="z" * 200)]),
            UserMessage(id="u", content="u" * 10),
        ]
        truncator = TokenBasedTruncator(char_counter, max_tokens=100, buffer_percentage=0.0)
        result = await truncator.process(make_context(messages))

        assert [m.id for m in result.messages] == ["u"]

    @pytest.mark.asyncio
    async def test_chronological_output(self, make_context, char_counter, base_time):
        messages = [
            SystemMessage(id="s", content="s" * 10),
            UserMessage(id="u1", content="a" * 30, created_at=base_time + timedelta(minutes=5)),
            AssistantMessage(id="a1", content="b" * 30, created_at=base_time + timedelta(minutes=1)),
            AssistantMessage(id="a2", content="c" * 300, created_at=base_time + timedelta(minutes=3)),
            UserMessage(id="u2", content="d" * 10, created_at=base_time + timedelta(minutes=9)),
        ]
        truncator = TokenBasedTruncator(char_counter, max_tokens=100, buffer_percentage=0.0)
        result = await truncator.process(make_context(messages))

        keys = [m.sort_key for m in result.messages]
        assert keys == sorted(keys)
        assert result.messages[0].id == "s"

    @pytest.mark.asyncio
    async def test_preserve_flags_off(self, make_context, char_counter):
        messages = [
            SystemMessage(id="s", content="s" * 80),
            UserMessage(id="u", content="u" * 80),
        ]
        truncator = TokenBasedTruncator(
            char_counter,
            max_tokens=100,
            buffer_percentage=0.0,
            preserve_system_messages=False,
            preserve_last_user_message=False,
        )
        result = await truncator.process(make_context(messages))

        # system (13) outranks user (11); the 20 tokens left are too few to truncate into
        assert [m.id for m in result.messages] == ["s"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_tokens", [60, 150, 400, 1000, 2500])
    @pytest.mark.parametrize("buffer", [0.0, 0.1, 0.25])
    async def test_budget_respected(self, make_context, char_counter, base_time, max_tokens, buffer):
        lengths = [5, 300, 40, 1200, 75, 20, 600, 10, 90]
        builders = [UserMessage, AssistantMessage, ToolMessage]
        messages = [SystemMessage(id="s", content="S" * 30)]
        for i, length in enumerate(lengths):
            messages.append(
                builders[i % 3](id=f"m{i}", content="x" * length, created_at=base_time + timedelta(minutes=i))
            )

        truncator = TokenBasedTruncator(char_counter, max_tokens=max_tokens, buffer_percentage=buffer)
        result = await truncator.process(make_context(messages))
        limit = max_tokens * (1 - buffer)

        hard_kept = {"s", "m6"}  # system + last user (index 6 in lengths -> UserMessage)
        if 30 + 600 > limit:
            assert {m.id for m in result.messages} == hard_kept
        else:
            assert total_chars(result.messages) <= limit

    @pytest.mark.asyncio
    async def test_failing_counter_is_fatal(self, make_context, conversation, failing_counter):
        truncator = TokenBasedTruncator(failing_counter, max_tokens=100)
        with pytest.raises(ProcessorError) as exc_info:
            await truncator.process(make_context(conversation))
        assert exc_info.value.processor_name == "TokenBasedTruncator"

    @pytest.mark.asyncio
    async def test_async_counter(self, make_context, async_char_counter):
        messages = [UserMessage(id="old", content="o" * 100), UserMessage(id="new", content="n" * 10)]
        truncator = TokenBasedTruncator(async_char_counter, max_tokens=50, buffer_percentage=0.0)
        result = await truncator.process(make_context(messages))

        assert [m.id for m in result.messages] == ["new"]

    @pytest.mark.asyncio
    async def test_binary_search_is_logarithmic(self, make_context, char_counter):
        messages = [UserMessage(id="long", content="A" * 4096), UserMessage(id="q", content="q")]
        truncator = TokenBasedTruncator(char_counter, max_tokens=200, buffer_percentage=0.0)
        await truncator.process(make_context(messages))

        # 2 per-message costs + at most ~log2(4096) + 1 counter calls
        assert len(char_counter.calls) <= 2 + 14


class TestEstimateTruncation:
    """Tests for estimate_truncation."""

    @pytest.mark.asyncio
    async def test_within_budget(self, char_counter):
        truncator = TokenBasedTruncator(char_counter, max_tokens=100)
        estimate = await truncator.estimate_truncation([UserMessage(content="x" * 10)])
        assert estimate == {
            "current_tokens": 10,
            "estimated_final_tokens": 10,
            "estimated_saved_tokens": 0,
            "needs_truncation": False,
        }

    @pytest.mark.asyncio
    async def test_over_budget(self, char_counter):
        truncator = TokenBasedTruncator(char_counter, max_tokens=100, buffer_percentage=0.0)
        estimate = await truncator.estimate_truncation([UserMessage(content="x" * 200)])
        assert estimate["needs_truncation"] is True
        assert estimate["estimated_final_tokens"] == 90
        assert estimate["estimated_saved_tokens"] == 110
