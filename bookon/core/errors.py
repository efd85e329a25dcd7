"""Domain errors raised by the services and translated to HTTP errors by the routes."""


class BookOnError(Exception):
    code = "BOOKON_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class NotFoundError(BookOnError):
    code = "BOOKING_NOT_FOUND"


class IneligibleCancellationError(BookOnError):
    """The booking cannot be cancelled; message is the policy reason."""

    code = "CANCELLATION_NOT_ELIGIBLE"


class PersistenceFailure(BookOnError):
    """A storage error aborted the transaction. Nothing was written."""

    code = "PERSISTENCE_FAILURE"


class InsufficientCreditsError(BookOnError):
    code = "INSUFFICIENT_CREDITS"


class RefundAlreadyProcessedError(BookOnError):
    code = "REFUND_ALREADY_PROCESSED"
