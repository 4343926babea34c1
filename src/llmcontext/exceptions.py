# src/llmcontext/exceptions.py
"""
Custom exceptions for the llmcontext library.

This module defines a hierarchy of exception classes so callers can tell
configuration problems apart from failures raised while a context pipeline
is running, and so a failed run always names the stage that broke it.
"""

from typing import Optional


class LLMContextError(Exception):
    """Base class for all llmcontext specific errors."""
    def __init__(self, message: str = "An unspecified error occurred in llmcontext."):
        super().__init__(message)

class ConfigError(LLMContextError):
    """Raised for errors related to configuration loading or validation."""
    def __init__(self, message: str = "Configuration error."):
        super().__init__(message)

class ContextError(LLMContextError):
    """Base class for errors related to context assembly."""
    def __init__(self, message: str = "Context assembly error."):
        super().__init__(message)

class ProcessorError(ContextError):
    """
    Raised when a single pipeline stage fails validation or execution.

    Also recorded (not raised) in ``execution_info.errors`` when a stage
    soft-aborts the run.
    """
    def __init__(self, processor_name: str = "Unknown", message: str = "Processor error.", cause: Optional[BaseException] = None):
        self.processor_name = processor_name
        self.message = message
        self.cause = cause
        super().__init__(f"[{processor_name}] {message}")

class PipelineError(ContextError):
    """
    Raised by the pipeline when a stage fails, or when an unexpected error
    escapes the run loop (``processor_name`` is ``None`` in that case).
    """
    def __init__(self, message: str = "Pipeline error.", processor_name: Optional[str] = None, cause: Optional[BaseException] = None):
        self.processor_name = processor_name
        self.message = message
        self.cause = cause
        if cause is not None:
            super().__init__(f"{message}: {cause}")
        else:
            super().__init__(message)

class TokenCountError(ContextError):
    """Raised when a token counter returns something that is not a non-negative integer."""
    def __init__(self, value: object = None, message: str = "Token counter returned an invalid value."):
        self.value = value
        super().__init__(f"{message} Got: {value!r}")

class ContextLengthError(ContextError):
    """Raised when assembled context still exceeds a hard token ceiling."""
    def __init__(self, model_name: str = "Unknown", limit: int = 0, actual: int = 0, message: str = "Context length exceeded."):
        self.model_name = model_name
        self.limit = limit
        self.actual = actual
        super().__init__(f"{message} Model: '{model_name}', Limit: {limit} tokens, Actual: {actual} tokens.")
