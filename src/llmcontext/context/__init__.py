# src/llmcontext/context/__init__.py
"""
Context assembly pipeline.

A ``ContextPipeline`` runs an ordered list of stages (processors and
providers) over a ``PipelineContext`` built from an ``AgentState``, producing
the message list to send to a model under a token budget.
"""

from .base import BaseProcessor, BaseProvider
from .factory import (
    PRESET_PIPELINES,
    PipelineFactoryConfig,
    create_advanced_pipeline,
    create_default_pipeline,
    create_minimal_pipeline,
    create_pipeline_from_config,
    create_preset_pipeline,
)
from .pipeline import ContextPipeline
from .processors import (
    HistoryTruncator,
    ModelCapabilityValidator,
    TokenBasedTruncator,
    ToolMessageReorder,
    ToolValidationResult,
)
from .providers import ContextBlockInjector, HistoryInjector, SystemRoleInjector
from .token_counter import (
    EstimateCounter,
    TiktokenCounter,
    TokenCounter,
    get_token_counter,
    make_default_counter,
)
from .types import ExecutionInfo, PipelineContext, PipelineResult, PipelineStats

__all__ = [
    "BaseProcessor",
    "BaseProvider",
    "ContextBlockInjector",
    "ContextPipeline",
    "EstimateCounter",
    "ExecutionInfo",
    "HistoryInjector",
    "HistoryTruncator",
    "ModelCapabilityValidator",
    "PRESET_PIPELINES",
    "PipelineContext",
    "PipelineFactoryConfig",
    "PipelineResult",
    "PipelineStats",
    "SystemRoleInjector",
    "TiktokenCounter",
    "TokenBasedTruncator",
    "TokenCounter",
    "ToolMessageReorder",
    "ToolValidationResult",
    "create_advanced_pipeline",
    "create_default_pipeline",
    "create_minimal_pipeline",
    "create_pipeline_from_config",
    "create_preset_pipeline",
    "get_token_counter",
    "make_default_counter",
]
