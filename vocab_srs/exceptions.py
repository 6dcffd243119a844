"""
Exceptions raised by the spaced-repetition engine.
"""


class SrsError(Exception):
    """Base exception for all SRS engine errors."""
    pass


class ValidationError(SrsError, ValueError):
    """Raised for unknown ids, invalid assessments or out-of-range config."""
    pass


class StateError(SrsError):
    """Raised when an operation is not allowed in the current lifecycle state."""
    pass


class PersistenceError(SrsError):
    """Raised by persistence gateways when a load or save fails."""
    pass
