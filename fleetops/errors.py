"""
Engine exceptions.

The HTTP layer maps each class to a status code; the engine itself never
retries.
"""


class EngineError(Exception):
    """Base exception for compliance engine errors."""
    status_code = 500


class ValidationError(EngineError):
    """Malformed or missing input. Raised before any mutation."""
    status_code = 400


class NotFound(EngineError):
    """Unknown task or other missing record."""
    status_code = 404


class ConflictError(EngineError):
    """Concurrent modification; the caller decides whether to retry."""
    status_code = 409


__all__ = [
    'EngineError',
    'ValidationError',
    'NotFound',
    'ConflictError',
]
