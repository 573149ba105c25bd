"""Custom exception hierarchy for the chat reconciler."""


class ReconcilerError(Exception):
    """Base exception for all reconciliation errors."""


class ConfigError(ReconcilerError):
    """Raised when configuration is invalid or missing."""


class ValidationError(ReconcilerError):
    """Raised when a requested identifier or input file is invalid."""
