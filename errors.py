"""
Domain errors raised by the catalog, negotiation and order services.

Each error carries the HTTP status it is surfaced with; the mapping to a
response happens in exception_handlers.py.
"""


class MarketplaceError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(MarketplaceError):
    """Malformed input: bad price, empty items, missing field, bad id."""

    status_code = 400


class AuthenticationError(MarketplaceError):
    status_code = 401


class AuthorizationError(MarketplaceError):
    """Caller lacks the role or ownership the action requires."""

    status_code = 403


class NotFoundError(MarketplaceError):
    status_code = 404


class InvalidStateError(MarketplaceError):
    """Bargain or order is not in the state the operation requires."""

    status_code = 400


class ConflictError(MarketplaceError):
    status_code = 409
