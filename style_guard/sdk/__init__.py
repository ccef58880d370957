"""
SDK for the completion service.

Provides the bounded, retrying client used by the normalization pipeline.
"""

from .completion_client import CompletionClient, CompletionResult

__all__ = ["CompletionClient", "CompletionResult"]
