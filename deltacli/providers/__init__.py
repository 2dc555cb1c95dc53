"""
Delta CLI providers module.

This module provides abstractions for the completion providers.
"""

from deltacli.providers.base import (
    EmptyResult,
    NetworkFailure,
    Provider,
    ProviderError,
    ProviderFactory,
    ProviderFailure,
    ProviderResponse,
)

__all__ = [
    "EmptyResult",
    "NetworkFailure",
    "Provider",
    "ProviderError",
    "ProviderFactory",
    "ProviderFailure",
    "ProviderResponse",
]
