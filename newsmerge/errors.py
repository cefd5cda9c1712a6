"""Exception hierarchy for newsmerge.

Lets callers catch specific failure modes (provider payload errors,
store failures) without resorting to bare ``Exception``.
"""
from __future__ import annotations


class NewsMergeError(Exception):
    """Base error for all newsmerge subsystems."""
    pass


class ProviderError(NewsMergeError):
    """A provider returned a payload that could not be interpreted."""

    def __init__(self, message: str, *, provider: str = ""):
        self.provider = provider
        super().__init__(message)


class StoreError(NewsMergeError):
    """The article store failed an operation whose caller must know about it."""

    def __init__(self, message: str, *, operation: str = ""):
        self.operation = operation
        super().__init__(message)


class ConfigError(NewsMergeError):
    """Invalid configuration value."""
    pass
