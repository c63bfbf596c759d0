"""Exception types for IHHT."""


class IHHTError(Exception):
    """Base exception for IHHT engine errors."""

    pass


class PhaseStateError(IHHTError):
    """Raised when a phase clock operation is not valid in the current state."""

    pass


class SessionStateError(IHHTError):
    """Raised when a training session operation is called out of order."""

    pass


class ReadingFormatError(IHHTError):
    """Raised when a readings file cannot be parsed."""

    def __init__(self, message: str, line_number: int | None = None):
        super().__init__(message)
        self.line_number = line_number
