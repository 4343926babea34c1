# src/llmcontext/context/token_counter.py
"""
Token counting backends.

Stages only rely on the ``TokenCounter`` protocol: an object with a
``count(text)`` method returning an ``int`` or an awaitable of one.  Two
implementations ship with the library:

- ``TiktokenCounter``: exact counts through ``tiktoken``.
- ``EstimateCounter``: a character-ratio heuristic that needs no data files.

Use ``get_token_counter`` to build one from configuration, or
``make_default_counter`` for the best backend available at runtime.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Protocol, Union, runtime_checkable

from ..exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "cl100k_base"
DEFAULT_CHARS_PER_TOKEN = 4


@runtime_checkable
class TokenCounter(Protocol):
    """Protocol for counting tokens in text."""

    def count(self, text: str) -> Union[int, Awaitable[int]]:
        """
        Count tokens in the given text.

        Args:
            text: Input string.

        Returns:
            Number of tokens, or an awaitable resolving to it.
        """
        ...


# =============================================================================
# Implementations
# =============================================================================


class TiktokenCounter:
    """Token counter using a ``tiktoken`` encoding (``cl100k_base`` by default)."""

    def __init__(self, encoding_name: str = DEFAULT_ENCODING) -> None:
        import tiktoken

        self.encoding_name = encoding_name
        self._encoding = tiktoken.get_encoding(encoding_name)

    def count(self, text: str) -> int:
        """Count tokens via tiktoken."""
        if not text:
            return 0
        return len(self._encoding.encode(text, disallowed_special=()))


class EstimateCounter:
    """
    Fallback token counter using character-based estimation.

    Uses ~4 characters per token as a rough heuristic.
    """

    def __init__(self, chars_per_token: int = DEFAULT_CHARS_PER_TOKEN) -> None:
        if chars_per_token < 1:
            raise ConfigError(f"chars_per_token must be >= 1, got {chars_per_token}")
        self._chars_per_token = chars_per_token

    def count(self, text: str) -> int:
        """Estimate tokens from character count."""
        return max(1, len(text) // self._chars_per_token) if text else 0


# =============================================================================
# Factories
# =============================================================================


def make_default_counter() -> TokenCounter:
    """
    Create the best available token counter.

    Tries tiktoken first; falls back to estimation if the encoding cannot be
    loaded (missing package, no network for the encoding files, ...).
    """
    try:
        return TiktokenCounter()
    except Exception as exc:
        logger.warning(f"tiktoken not available ({exc}); using character-based token estimation")
        return EstimateCounter()


def get_token_counter(
    backend: str = "tiktoken",
    encoding: str = DEFAULT_ENCODING,
    chars_per_token: int = DEFAULT_CHARS_PER_TOKEN,
) -> TokenCounter:
    """
    Build a token counter by backend name.

    Args:
        backend: ``"tiktoken"`` or ``"estimate"``.
        encoding: tiktoken encoding name (``tiktoken`` backend only).
        chars_per_token: Character ratio (``estimate`` backend, and the
            fallback when tiktoken cannot be loaded).

    Raises:
        ConfigError: If ``backend`` is not recognised.
    """
    backend_key = backend.lower()
    if backend_key == "estimate":
        return EstimateCounter(chars_per_token=chars_per_token)
    if backend_key == "tiktoken":
        try:
            return TiktokenCounter(encoding_name=encoding)
        except Exception as exc:
            logger.warning(
                f"Could not load tiktoken encoding '{encoding}' ({exc}); "
                f"falling back to {chars_per_token} chars/token estimation"
            )
            return EstimateCounter(chars_per_token=chars_per_token)
    raise ConfigError(f"Unknown token counter backend '{backend}'. Expected 'tiktoken' or 'estimate'.")
