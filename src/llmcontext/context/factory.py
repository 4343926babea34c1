# src/llmcontext/context/factory.py
"""
Ready-made pipelines.

Three presets cover the common cases:

- ``BASIC_CHAT``: system role + history injection.
- ``STANDARD_CHAT``: basic + count-based history truncation + capability
  validation with auto-fix.
- ``ADVANCED_CHAT``: basic + capability validation + count/token history
  truncation + importance-ranked token truncation + tool reordering.

``create_pipeline_from_config`` builds a pipeline from a
``ContextEngineConfig`` instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ..config import ContextEngineConfig
from ..exceptions import ConfigError
from ..models import ModelCapabilities
from .base import BaseProcessor
from .pipeline import ContextPipeline
from .processors import (
    HistoryTruncator,
    ModelCapabilityValidator,
    TokenBasedTruncator,
    ToolMessageReorder,
)
from .providers import HistoryInjector, SystemRoleInjector
from .token_counter import TokenCounter, get_token_counter

logger = logging.getLogger(__name__)


@dataclass
class PipelineFactoryConfig:
    """
    Inputs for the preset factories.

    Attributes:
        system_role: System role text; no injector when empty.
        model_capabilities: Target model features; no validator when ``None``.
        token_counter: Required for any token-based limit.
        history_count: ``keep_latest_n`` for the history truncator.
        max_tokens: Token budget for the truncators.
        options: Pipeline options.
    """

    system_role: Optional[str] = None
    model_capabilities: Optional[ModelCapabilities] = None
    token_counter: Optional[TokenCounter] = None
    history_count: Optional[int] = None
    max_tokens: Optional[int] = None
    options: Optional[Dict[str, Any]] = None


def _injectors(config: PipelineFactoryConfig) -> List[BaseProcessor]:
    processors: List[BaseProcessor] = []
    if config.system_role:
        processors.append(SystemRoleInjector(config.system_role))
    processors.append(HistoryInjector())
    return processors


def create_minimal_pipeline(config: Optional[PipelineFactoryConfig] = None) -> ContextPipeline:
    """System role (if any) and history injection only."""
    config = config or PipelineFactoryConfig()
    return ContextPipeline(_injectors(config), config.options)


def create_default_pipeline(config: Optional[PipelineFactoryConfig] = None) -> ContextPipeline:
    """Minimal pipeline plus history truncation and capability validation."""
    config = config or PipelineFactoryConfig()
    processors = _injectors(config)

    if config.history_count is not None:
        processors.append(
            HistoryTruncator(
                keep_latest_n=config.history_count,
                max_tokens=config.max_tokens if config.token_counter else None,
                token_counter=config.token_counter,
            )
        )
    if config.model_capabilities is not None:
        processors.append(ModelCapabilityValidator(config.model_capabilities, auto_fix=True))

    return ContextPipeline(processors, config.options)


def create_advanced_pipeline(config: Optional[PipelineFactoryConfig] = None) -> ContextPipeline:
    """Every stage the configuration allows, in injection → validation → truncation → reorder order."""
    config = config or PipelineFactoryConfig()
    processors = _injectors(config)

    if config.model_capabilities is not None:
        processors.append(ModelCapabilityValidator(config.model_capabilities, auto_fix=True))

    token_limit = config.max_tokens if config.token_counter else None
    if config.history_count is not None or token_limit is not None:
        processors.append(
            HistoryTruncator(
                keep_latest_n=config.history_count,
                max_tokens=token_limit,
                token_counter=config.token_counter,
            )
        )

    if config.token_counter is not None and config.max_tokens:
        processors.append(TokenBasedTruncator(config.token_counter, max_tokens=config.max_tokens))

    processors.append(ToolMessageReorder())
    return ContextPipeline(processors, config.options)


PRESET_PIPELINES: Dict[str, Dict[str, Any]] = {
    "BASIC_CHAT": {
        "description": "Basic chat: system role and history injection",
        "factory": create_minimal_pipeline,
    },
    "STANDARD_CHAT": {
        "description": "Standard chat: history management and capability validation",
        "factory": create_default_pipeline,
    },
    "ADVANCED_CHAT": {
        "description": "Advanced chat: every truncation, validation and reorder stage",
        "factory": create_advanced_pipeline,
    },
}


def create_preset_pipeline(name: str, config: Optional[PipelineFactoryConfig] = None) -> ContextPipeline:
    """
    Build one of ``PRESET_PIPELINES`` by name.

    Raises:
        ConfigError: If ``name`` is not a known preset.
    """
    preset = PRESET_PIPELINES.get(name)
    if preset is None:
        raise ConfigError(
            f"Unknown pipeline preset '{name}'. Available: {', '.join(PRESET_PIPELINES)}"
        )
    factory: Callable[[Optional[PipelineFactoryConfig]], ContextPipeline] = preset["factory"]
    return factory(config)


def create_pipeline_from_config(
    engine_config: ContextEngineConfig,
    token_counter: Optional[TokenCounter] = None,
    model_capabilities: Optional[ModelCapabilities] = None,
) -> ContextPipeline:
    """
    Build a pipeline from a ``ContextEngineConfig``.

    Stage order is fixed: system role → history injection → capability
    validation → history truncation → token truncation → tool reorder.  A
    token counter is built from ``engine_config.token_counter`` when one is
    needed and none is given.
    """
    needs_counter = (
        (engine_config.history.enabled and engine_config.history.max_tokens is not None)
        or engine_config.token_truncation.enabled
    )
    if needs_counter and token_counter is None:
        counter_cfg = engine_config.token_counter
        token_counter = get_token_counter(
            backend=counter_cfg.backend,
            encoding=counter_cfg.encoding,
            chars_per_token=counter_cfg.chars_per_token,
        )

    processors: List[BaseProcessor] = []
    if engine_config.system_role:
        processors.append(SystemRoleInjector(engine_config.system_role))
    processors.append(HistoryInjector())

    validation = engine_config.capability_validation
    if validation.enabled:
        processors.append(
            ModelCapabilityValidator(
                model_capabilities,
                auto_fix=validation.auto_fix,
                abort_on_unsupported=validation.abort_on_unsupported,
            )
        )

    history = engine_config.history
    if history.enabled:
        processors.append(
            HistoryTruncator(
                keep_latest_n=history.keep_latest_n,
                max_tokens=history.max_tokens,
                token_counter=token_counter,
                include_new_user_message=history.include_new_user_message,
            )
        )

    truncation = engine_config.token_truncation
    if truncation.enabled:
        processors.append(
            TokenBasedTruncator(
                token_counter,
                max_tokens=truncation.max_tokens,
                preserve_system_messages=truncation.preserve_system_messages,
                preserve_last_user_message=truncation.preserve_last_user_message,
                buffer_percentage=truncation.buffer_percentage,
            )
        )

    if engine_config.tool_reorder_enabled:
        processors.append(ToolMessageReorder())

    logger.debug(f"Built pipeline from config: {[p.name for p in processors]}")
    return ContextPipeline(processors)
