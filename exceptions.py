"""
Billboard Rental Core - Error Taxonomy
======================================

Every failure leaving the booking core is one of these. The enclosing
transaction has already been rolled back when any of them is raised.

- ValidationError: malformed input (e.g. start after end)          -> 400
- NotFoundError:   reservation/resource missing within the tenant  -> 404
- ConflictError:   overlap, booked resource, lock contention       -> 409
- InternalError:   datastore/transport failure                     -> 503
"""


class BookingError(Exception):
    """Base class for errors raised by the booking core."""

    code = "booking_error"
    status_code = 500

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.message = message
        self.retryable = retryable

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code, "retryable": self.retryable}


class ValidationError(BookingError):
    code = "validation_error"
    status_code = 400


class NotFoundError(BookingError):
    code = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id: str = ""):
        message = f"{entity} not found" if not entity_id else f"{entity} {entity_id} not found"
        super().__init__(message)
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(BookingError):
    code = "conflict"
    status_code = 409


class InternalError(BookingError):
    code = "internal_error"
    status_code = 503

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message, retryable=retryable)
