"""
Custom exception classes for the MMM engine.
"""


class MMMException(Exception):
    """Base exception for the MMM engine."""
    pass


class ConfigurationError(MMMException):
    """Raised when configuration is invalid."""
    pass


class InsufficientDataError(MMMException):
    """Raised when a channel has too few observations to fit a curve."""

    def __init__(self, message: str, data_points: int = 0):
        super().__init__(message)
        self.data_points = data_points


class ParameterValidationError(MMMException):
    """Raised when model parameters or request arguments fail validation."""
    pass


class StorageError(MMMException):
    """Raised when reading or writing persisted data fails."""
    pass
