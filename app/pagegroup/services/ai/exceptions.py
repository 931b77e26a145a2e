"""
Shared exceptions for AI service modules.
"""


class AIServiceError(Exception):
    """Raised when AI service operations fail."""

    pass


class TransientTransportError(AIServiceError):
    """
    Raised when the inference call itself fails (network error or non-2xx status).

    Attributes:
        status_code: HTTP status reported by the backend, if any.
        is_connection_error: True when the backend could not be reached at all.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        is_connection_error: bool = False,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.is_connection_error = is_connection_error


class MalformedResponse(AIServiceError):
    """
    Raised when the inference text cannot be parsed into the expected shape.

    Attributes:
        raw_text: The unmodified response text, kept for diagnostics.
    """

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text
