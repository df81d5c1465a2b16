"""Exceptions raised while exporting directory extension attributes."""


class ExtAttrsError(Exception):
    """Base exception for the exporter."""


class AuthenticationError(ExtAttrsError):
    """No access token could be obtained for the tenant."""


class PermissionDeniedError(ExtAttrsError):
    """Graph refused the request (403, or 401 before any page succeeded)."""


class BadRequestError(ExtAttrsError):
    """Graph rejected the query itself (400)."""


class ThrottledError(ExtAttrsError):
    """Graph asked us to slow down (429, 503, 504)."""


class TokenExpiredError(ExtAttrsError):
    """Access token expired part-way through a run (401 after a success)."""


class TransientError(ExtAttrsError):
    """Connection failure, unreadable body or unexpected status."""


class RetriesExhaustedError(TransientError):
    """Too many consecutive transient failures."""
