# src/llmcontext/config/__init__.py
"""
Configuration module for the llmcontext library.

Configuration sources, merged in order:
    - Pydantic model defaults
    - The [context_engine] table of a TOML file (plus the top-level [logging] table)
    - A config dictionary with a ``context_engine`` section
    - Environment variables: prefix LLMCONTEXT__, nested keys joined with
      double underscores, e.g. LLMCONTEXT__HISTORY__KEEP_LATEST_N=20
    - Runtime overrides
"""

from .models import (
    CapabilityValidationConfig,
    ContextEngineConfig,
    HistoryTruncationConfig,
    TokenCounterConfig,
    TokenTruncationConfig,
    load_engine_config,
)

__all__ = [
    "CapabilityValidationConfig",
    "ContextEngineConfig",
    "HistoryTruncationConfig",
    "TokenCounterConfig",
    "TokenTruncationConfig",
    "load_engine_config",
]
