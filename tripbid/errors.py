"""Client-facing errors raised by the trip and bid services."""

import functools
import logging


class TripBidError(Exception):
    """Base class for business rule violations surfaced to the caller."""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(TripBidError):
    """Raised when a referenced trip, bid or profile does not exist."""
    status_code = 404


class BadRequestError(TripBidError):
    """Raised when a precondition is violated (wrong status, ineligible driver, duplicate bid)."""
    status_code = 400


class ForbiddenError(TripBidError):
    """Raised when the caller is not allowed to act on the trip or bid."""
    status_code = 403


def log_failures(fn):
    """Log unexpected (non-business) failures of a service operation, then re-raise them unchanged."""

    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except TripBidError:
            raise
        except Exception:
            logging.getLogger(fn.__module__).exception("%s failed", fn.__qualname__)
            raise

    return wrapper
