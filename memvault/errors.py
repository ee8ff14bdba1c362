"""Shared error types for memvault.

Public operations degrade to empty results instead of raising; these types
mark the failure at the layer that detects it so it can be logged once.
"""


class MemvaultError(Exception):
    """Base error for memvault."""


class IndexLoadError(MemvaultError):
    """Memory index file could not be read or parsed."""


class MetricsLogError(MemvaultError):
    """Archive metrics log could not be read or parsed."""


class InvalidMemoryPathError(MemvaultError):
    """Memory path resolves outside the sessions root."""
