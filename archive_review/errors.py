"""Review workflow errors and the HTTP status each one maps to."""


class ReviewError(Exception):
    status_code = 500
    code = "review_error"
    default_message = "Review request failed"

    def __init__(self, message=None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class NotFoundError(ReviewError):
    status_code = 404
    code = "not_found"
    default_message = "Submission not found"


class InvalidTransitionError(ReviewError):
    status_code = 409
    code = "already_decided"
    default_message = "Submission has already been decided"


class AlreadyDecidedError(InvalidTransitionError):
    """Lost the compare-and-set race to another reviewer."""

    default_message = "Submission was already handled by another reviewer"


class ForbiddenError(ReviewError):
    status_code = 403
    code = "forbidden"
    default_message = "You are not allowed to review this submission"


class ValidationError(ReviewError):
    status_code = 400
    code = "validation_error"
    default_message = "Invalid review request"


class StoreUnavailableError(ReviewError):
    """The store did not answer within its timeout; safe to retry."""

    status_code = 503
    code = "store_unavailable"
    default_message = "Storage is temporarily unavailable, try again"


class ConflictError(Exception):
    """Raised by the store when a compare-and-set finds an unexpected value.

    Internal signal: callers translate it before it reaches a client.
    """

    def __init__(self, submission_id, expected, actual=None):
        self.submission_id = submission_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"submission {submission_id}: expected {expected!r}, "
            f"found {actual!r}"
        )
