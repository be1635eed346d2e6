"""
Error kinds raised by the OCR suggestion pipeline.

Strategy-level errors are caught by the orchestrator and turned into either a
fallback to the next provider or a final status message. They never escape to
the surrounding application.
"""


class OcrPipelineError(Exception):
    """Base class for all pipeline errors. ``reason`` is user-facing."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ConfigurationError(OcrPipelineError):
    """Provider is not configured or is disabled (permanent until admin action)."""


class QuotaExceededError(OcrPipelineError):
    """Monthly cloud OCR budget is spent (resets next period or via override)."""

    def __init__(self, reason: str, limit: int = 0, remaining: int | None = 0):
        super().__init__(reason)
        self.limit = limit
        self.remaining = remaining


class TransportError(OcrPipelineError):
    """Network or IO failure while calling an external engine."""


class EmptyResultError(OcrPipelineError):
    """The call succeeded but produced no usable text."""


class UnsupportedInputError(OcrPipelineError):
    """The input cannot be handled by the requested mode or provider."""


class StaleRequestError(OcrPipelineError):
    """The request token was superseded while the pipeline was suspended."""


class StorageError(Exception):
    """A persistence backend could not load or save state."""
