"""
Exceptions for the AI extraction modules.
"""


class AIServiceError(Exception):
    """Raised when the model call fails or returns unusable output."""

    pass
