"""
Error kinds raised by the normalization pipeline.

Callers distinguish two failure classes: validation failures caused by the
caller or by policy, and gateway failures caused by the completion service.
"""

from typing import Optional


class NormalizationError(Exception):
    """Base class for every pipeline failure."""


class ValidationError(NormalizationError):
    """Raised for caller or policy violations.

    Examples: text too short, budget exhausted, review target missing or
    already reviewed, empty rejection reason. Never retried.
    """


class GatewayError(NormalizationError):
    """Raised when the completion service fails or returns unusable output.

    Covers timeouts, retry exhaustion, malformed or empty model output and
    explicit non-retryable remote rejections.
    """
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
