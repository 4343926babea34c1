# src/llmcontext/config/models.py
"""
Context engine configuration models.

This module defines Pydantic models for the configuration of a context
pipeline. These models are used for:
1. Type-safe configuration loading
2. Validation with sensible defaults
3. Building pipelines from configuration (see ``llmcontext.context.factory``)

The configuration hierarchy:
    ContextEngineConfig (root, the [context_engine] TOML table)
    ├── HistoryTruncationConfig    - Count/token history limits
    ├── TokenTruncationConfig      - Importance-ranked token budget
    ├── CapabilityValidationConfig - Model feature checks
    └── TokenCounterConfig         - Token counting backend

Usage:
    >>> from llmcontext.config import ContextEngineConfig, load_engine_config
    >>> config = ContextEngineConfig()  # All defaults
    >>> config.tool_reorder_enabled
    True

    >>> # Load from TOML
    >>> config = load_engine_config(config_path=Path("config.toml"))

    >>> # Load with overrides
    >>> config = load_engine_config(
    ...     config_dict={"context_engine": {"history": {"keep_latest_n": 5}}}
    ... )
"""

from __future__ import annotations

import copy
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError, model_validator

from ..exceptions import ConfigError

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

logger = logging.getLogger(__name__)

CONFIG_SECTION = "context_engine"
ENV_PREFIX = "LLMCONTEXT__"


# =============================================================================
# SECTION MODELS
# =============================================================================


class HistoryTruncationConfig(BaseModel):
    """
    Configuration for the count/token history truncator.

    ``keep_latest_n`` and ``max_tokens`` may be combined; the count limit is
    applied first.
    """

    enabled: bool = Field(default=False, description="Add a HistoryTruncator stage")
    keep_latest_n: Optional[int] = Field(
        default=None, ge=0, description="Non-system messages to keep (0 keeps only system messages)"
    )
    max_tokens: Optional[int] = Field(
        default=None, ge=1, description="Token ceiling for the surviving history"
    )
    include_new_user_message: bool = Field(
        default=True, description="Always keep the latest user message under the count limit"
    )


class TokenTruncationConfig(BaseModel):
    """Configuration for importance-ranked token truncation."""

    enabled: bool = Field(default=False, description="Add a TokenBasedTruncator stage")
    max_tokens: Optional[int] = Field(default=None, ge=1, description="Raw token budget")
    preserve_system_messages: bool = Field(default=True, description="Never drop system messages")
    preserve_last_user_message: bool = Field(
        default=True, description="Never drop the most recent user message"
    )
    buffer_percentage: float = Field(
        default=0.1, ge=0.0, lt=1.0, description="Safety margin subtracted from max_tokens"
    )

    @model_validator(mode="after")
    def require_budget_when_enabled(self) -> "TokenTruncationConfig":
        if self.enabled and self.max_tokens is None:
            raise ValueError("token_truncation.max_tokens is required when token truncation is enabled")
        return self


class CapabilityValidationConfig(BaseModel):
    """Configuration for model capability checks."""

    enabled: bool = Field(default=False, description="Add a ModelCapabilityValidator stage")
    auto_fix: bool = Field(default=True, description="Strip unsupported content instead of reporting only")
    abort_on_unsupported: bool = Field(
        default=False, description="Soft-abort the run on unsupported content (ignored with auto_fix)"
    )


class TokenCounterConfig(BaseModel):
    """Token counting backend."""

    backend: Literal["tiktoken", "estimate"] = Field(
        default="tiktoken", description="Exact tiktoken counts or a chars/token estimate"
    )
    encoding: str = Field(default="cl100k_base", description="tiktoken encoding name")
    chars_per_token: int = Field(default=4, ge=1, description="Ratio for the estimate backend")


# =============================================================================
# ROOT CONFIG
# =============================================================================


class ContextEngineConfig(BaseModel):
    """
    Root configuration model for a context pipeline.

    It corresponds to the [context_engine] section in TOML configuration;
    ``logging`` is filled from the top-level [logging] table unless the
    section sets it explicitly.

    Usage:
        >>> config = ContextEngineConfig(
        ...     system_role="You are terse.",
        ...     history=HistoryTruncationConfig(enabled=True, keep_latest_n=10),
        ... )
    """

    system_role: Optional[str] = Field(default=None, description="System role text to inject")
    history: HistoryTruncationConfig = Field(
        default_factory=HistoryTruncationConfig, description="History truncation settings"
    )
    token_truncation: TokenTruncationConfig = Field(
        default_factory=TokenTruncationConfig, description="Token truncation settings"
    )
    capability_validation: CapabilityValidationConfig = Field(
        default_factory=CapabilityValidationConfig, description="Capability validation settings"
    )
    token_counter: TokenCounterConfig = Field(
        default_factory=TokenCounterConfig, description="Token counter settings"
    )
    tool_reorder_enabled: bool = Field(default=True, description="Add a ToolMessageReorder stage")
    logging: Dict[str, Any] = Field(
        default_factory=dict, description="Options passed to configure_logging()"
    )


# =============================================================================
# CONFIG LOADING
# =============================================================================


def load_engine_config(
    config_path: Optional[Union[str, Path]] = None,
    config_dict: Optional[Dict[str, Any]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> ContextEngineConfig:
    """
    Load context engine configuration from TOML file or dictionary.

    Configuration is loaded and merged in order:
        1. Default values (from Pydantic models)
        2. TOML config file (if provided)
        3. Config dictionary (if provided)
        4. Environment variables (LLMCONTEXT__*)
        5. Runtime overrides (if provided)

    Args:
        config_path: Optional path to TOML config file
        config_dict: Optional config dictionary with a ``context_engine`` section
        overrides: Optional runtime overrides (section contents, not wrapped)

    Returns:
        ContextEngineConfig instance

    Raises:
        ConfigError: If the TOML file cannot be parsed or the merged
            configuration is invalid.
    """
    merged_config: Dict[str, Any] = {}

    if config_path is not None:
        try:
            with open(config_path, "rb") as f:
                full_config = tomllib.load(f)
        except FileNotFoundError:
            logger.warning(f"Config file not found: {config_path}")
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Failed to parse config file {config_path}: {e}") from e
        else:
            if isinstance(full_config.get("logging"), dict):
                merged_config["logging"] = full_config["logging"]
            merged_config = _deep_merge(merged_config, full_config.get(CONFIG_SECTION, {}))
            logger.debug(f"Loaded context engine config from {config_path}")

    if config_dict is not None:
        merged_config = _deep_merge(merged_config, config_dict.get(CONFIG_SECTION, {}))

    merged_config = _apply_env_overrides(merged_config)

    if overrides is not None:
        merged_config = _deep_merge(merged_config, overrides)

    try:
        return ContextEngineConfig(**merged_config)
    except ValidationError as e:
        logger.error(f"Invalid context engine configuration: {e}")
        raise ConfigError(f"Invalid context engine configuration: {e}") from e


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge two dictionaries, with override taking precedence.

    Args:
        base: Base dictionary
        override: Override dictionary (values take precedence)

    Returns:
        Merged dictionary
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Apply environment variable overrides.

    Environment variables follow the pattern:
        LLMCONTEXT__<SECTION>__<KEY>=value   (or LLMCONTEXT__<KEY> for top-level keys)

    Examples:
        LLMCONTEXT__HISTORY__KEEP_LATEST_N=20
        LLMCONTEXT__TOKEN_TRUNCATION__BUFFER_PERCENTAGE=0.2
        LLMCONTEXT__TOOL_REORDER_ENABLED=false

    Values for fields declared as strings (e.g. ``system_role``) are taken
    verbatim; everything else goes through ``_convert_env_value``.

    Args:
        config: Current config dictionary

    Returns:
        Config with environment overrides applied
    """
    config = copy.deepcopy(config)
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue

        path_parts = key[len(ENV_PREFIX):].lower().split("__")
        if not all(path_parts):
            continue

        current = config
        for part in path_parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        if _is_string_field(path_parts):
            current[path_parts[-1]] = value
        else:
            current[path_parts[-1]] = _convert_env_value(value)

    return config


def _convert_env_value(value: str) -> Any:
    """
    Convert environment variable string to appropriate type.

    Args:
        value: String value from environment

    Returns:
        Converted value (bool, int, float, JSON list/object, or string)
    """
    # Boolean
    if value.lower() in ("true", "false"):
        return value.lower() == "true"

    # Integer
    try:
        return int(value)
    except ValueError:
        pass

    # Float
    try:
        return float(value)
    except ValueError:
        pass

    # JSON list / object
    if value.strip().startswith(("[", "{")):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            pass

    # String
    return value


def _is_string_field(path_parts: List[str]) -> bool:
    """Whether the ContextEngineConfig field at ``path_parts`` is declared as a string."""
    model = ContextEngineConfig
    for part in path_parts[:-1]:
        field = model.model_fields.get(part)
        if field is None:
            return False
        annotation = field.annotation
        if not (isinstance(annotation, type) and issubclass(annotation, BaseModel)):
            return False
        model = annotation
    field = model.model_fields.get(path_parts[-1])
    if field is None:
        return False
    return field.annotation in (str, Optional[str])
