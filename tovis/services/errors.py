"""
Domain errors raised by the booking core.

Routers never catch these; the app-level handler in `tovis.main` turns each
one into a JSON response with its `status_code` and `message`.
"""


class DomainError(Exception):
    """Base class for all booking/availability errors."""

    status_code = 400
    default_message = "Invalid request."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidRangeError(DomainError):
    """Malformed time input: end not after start, bad duration, past time."""

    default_message = "End must be after start."


class ConflictError(DomainError):
    """Requested time overlaps an existing block or booking."""

    status_code = 409
    default_message = "That time overlaps an existing booking or block."


class ForbiddenError(DomainError):
    """Actor does not own the resource."""

    status_code = 403
    default_message = "Forbidden."


class NotFoundError(DomainError):
    status_code = 404
    default_message = "Not found."


class InvalidTransitionError(DomainError):
    """Requested status change is not allowed from the current status."""

    default_message = "Invalid status transition."


class AlreadyFinalizedError(DomainError):
    """Booking is COMPLETED or CANCELLED and cannot change anymore."""

    default_message = "Booking is completed/cancelled."


class ConcurrentSessionError(DomainError):
    """Professional already has an active session."""

    status_code = 409
    default_message = "Finish your current session before starting another one."


class StorageTimeoutError(DomainError):
    """Store did not answer in time. Retryable; never shown as a business error."""

    status_code = 503
    default_message = "Something went wrong. Please try again."
