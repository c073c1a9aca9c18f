"""Domain errors raised by the reading services.

Each error carries the HTTP status the API answers with and a message that is
safe to show to the reader.
"""


class VreadError(Exception):
    status_code = 400
    message = "Request failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class NotAuthenticated(VreadError):
    status_code = 401
    message = "You must be signed in"


class BookNotFound(VreadError):
    status_code = 404
    message = "Book not found"


class ProgressNotFound(VreadError):
    status_code = 404
    message = "This book is not on your reading list"


class QuestionNotFound(VreadError):
    status_code = 404
    message = "No question found for this segment"


class DuplicateValidation(VreadError):
    """The segment is already validated. Benign: callers get the existing row."""

    status_code = 409
    message = "This segment was already validated"

    def __init__(self, existing, message: str | None = None):
        super().__init__(message)
        self.existing = existing


class QuotaExceeded(VreadError):
    status_code = 403
    message = "No jokers left for this book"


class IntegrityViolation(VreadError):
    status_code = 409
    message = "This change would break reading progress consistency"


class TransientFetchError(VreadError):
    """Network or database hiccup. Retried by the refresh controller."""

    status_code = 503
    message = "Reading data is temporarily unavailable, retrying shortly"
