# tests/context/test_factory.py
"""
Tests for the pipeline factories and presets.
"""

import pytest

from llmcontext.config import (
    CapabilityValidationConfig,
    ContextEngineConfig,
    HistoryTruncationConfig,
    TokenCounterConfig,
    TokenTruncationConfig,
)
from llmcontext.context.factory import (
    PRESET_PIPELINES,
    PipelineFactoryConfig,
    create_advanced_pipeline,
    create_default_pipeline,
    create_minimal_pipeline,
    create_pipeline_from_config,
    create_preset_pipeline,
)
from llmcontext.context.token_counter import EstimateCounter
from llmcontext.exceptions import ConfigError
from llmcontext.models import AgentState, ModelCapabilities


def stage_names(pipeline):
    return [p.name for p in pipeline.get_processors()]


# =============================================================================
# Preset factories
# =============================================================================


class TestPresetFactories:
    """Tests for the minimal/default/advanced factories."""

    def test_minimal_without_role(self):
        assert stage_names(create_minimal_pipeline()) == ["HistoryInjector"]

    def test_minimal_with_role(self):
        pipeline = create_minimal_pipeline(PipelineFactoryConfig(system_role="Be kind."))
        assert stage_names(pipeline) == ["SystemRoleInjector", "HistoryInjector"]

    def test_default_with_history_and_capabilities(self):
        config = PipelineFactoryConfig(
            history_count=10, model_capabilities=ModelCapabilities(supports_vision=False)
        )
        pipeline = create_default_pipeline(config)

        assert stage_names(pipeline) == ["HistoryInjector", "HistoryTruncator", "ModelCapabilityValidator"]
        validator = pipeline.get_processors()[-1]
        assert validator.auto_fix is True

    def test_default_without_options_is_minimal(self):
        assert stage_names(create_default_pipeline()) == ["HistoryInjector"]

    def test_advanced_full(self, char_counter):
        config = PipelineFactoryConfig(
            system_role="role",
            model_capabilities=ModelCapabilities(),
            token_counter=char_counter,
            history_count=20,
            max_tokens=4000,
        )
        assert stage_names(create_advanced_pipeline(config)) == [
            "SystemRoleInjector",
            "HistoryInjector",
            "ModelCapabilityValidator",
            "HistoryTruncator",
            "TokenBasedTruncator",
            "ToolMessageReorder",
        ]

    def test_advanced_without_counter_skips_token_stages(self):
        config = PipelineFactoryConfig(history_count=5, max_tokens=4000)
        assert stage_names(create_advanced_pipeline(config)) == [
            "HistoryInjector",
            "HistoryTruncator",
            "ToolMessageReorder",
        ]

    def test_options_passed_through(self):
        pipeline = create_minimal_pipeline(PipelineFactoryConfig(options={"debug": True}))
        assert pipeline.options == {"debug": True}

    def test_presets_registered(self):
        assert set(PRESET_PIPELINES) == {"BASIC_CHAT", "STANDARD_CHAT", "ADVANCED_CHAT"}
        for preset in PRESET_PIPELINES.values():
            assert preset["description"]
            assert callable(preset["factory"])

    def test_create_preset_pipeline(self):
        pipeline = create_preset_pipeline("ADVANCED_CHAT")
        assert stage_names(pipeline)[-1] == "ToolMessageReorder"

    def test_unknown_preset(self):
        with pytest.raises(ConfigError, match="Unknown pipeline preset"):
            create_preset_pipeline("TURBO_CHAT")

    @pytest.mark.asyncio
    async def test_advanced_pipeline_runs(self, char_counter, conversation):
        config = PipelineFactoryConfig(
            system_role="Be brief.",
            model_capabilities=ModelCapabilities(),
            token_counter=char_counter,
            history_count=4,
            max_tokens=200,
        )
        pipeline = create_preset_pipeline("ADVANCED_CHAT", config)
        result = await pipeline.process(AgentState(messages=conversation), model="gpt-4")

        assert result.is_aborted is False
        # role injection runs before history injection
        assert [m.text for m in result.messages[:2]] == ["Be brief.", "You are helpful."]
        assert len([m for m in result.messages if m.role != "system"]) <= 4
        assert result.stats.processed_count == 6


# =============================================================================
# From configuration
# =============================================================================


class TestPipelineFromConfig:
    """Tests for create_pipeline_from_config."""

    def test_default_config(self):
        assert stage_names(create_pipeline_from_config(ContextEngineConfig())) == [
            "HistoryInjector",
            "ToolMessageReorder",
        ]

    def test_full_config_order(self, char_counter):
        config = ContextEngineConfig(
            system_role="role",
            capability_validation=CapabilityValidationConfig(enabled=True),
            history=HistoryTruncationConfig(enabled=True, keep_latest_n=10),
            token_truncation=TokenTruncationConfig(enabled=True, max_tokens=1000),
        )
        pipeline = create_pipeline_from_config(config, token_counter=char_counter)

        assert stage_names(pipeline) == [
            "SystemRoleInjector",
            "HistoryInjector",
            "ModelCapabilityValidator",
            "HistoryTruncator",
            "TokenBasedTruncator",
            "ToolMessageReorder",
        ]
        truncator = pipeline.get_processors()[4]
        assert truncator.token_counter is char_counter
        assert truncator.max_tokens == 1000

    def test_builds_counter_from_config(self):
        config = ContextEngineConfig(
            token_truncation=TokenTruncationConfig(enabled=True, max_tokens=500),
            token_counter=TokenCounterConfig(backend="estimate", chars_per_token=3),
            tool_reorder_enabled=False,
        )
        pipeline = create_pipeline_from_config(config)

        truncator = pipeline.get_processors()[-1]
        assert truncator.name == "TokenBasedTruncator"
        assert isinstance(truncator.token_counter, EstimateCounter)
        assert truncator.token_counter.count("abcdef") == 2

    def test_validator_settings(self):
        config = ContextEngineConfig(
            capability_validation=CapabilityValidationConfig(
                enabled=True, auto_fix=False, abort_on_unsupported=True
            ),
        )
        caps = ModelCapabilities(supports_vision=False)
        pipeline = create_pipeline_from_config(config, model_capabilities=caps)

        validator = pipeline.get_processors()[1]
        assert validator.auto_fix is False
        assert validator.abort_on_unsupported is True
        assert validator.model_capabilities is caps

    def test_history_settings(self):
        config = ContextEngineConfig(
            history=HistoryTruncationConfig(enabled=True, keep_latest_n=3, include_new_user_message=False),
        )
        truncator = create_pipeline_from_config(config).get_processors()[1]

        assert truncator.keep_latest_n == 3
        assert truncator.include_new_user_message is False
        assert truncator.token_counter is None
