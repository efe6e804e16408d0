"""Stockwatch — Exception Types.

Errors raised to callers of the on-demand test-alert interface. The
scheduled batch never raises these; it logs and isolates failures.
"""

from __future__ import annotations


class StockwatchError(Exception):
    """Base class for errors raised by this package."""


class AlertRequestError(StockwatchError):
    """A test-alert request was rejected.

    Attributes:
        status_code: HTTP-style status a front end should answer with.
    """

    status_code = 400

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidRequestError(AlertRequestError):
    """The request is missing required data (e.g. the store id)."""

    status_code = 400


class AuthenticationError(AlertRequestError):
    """The identity token is missing or could not be verified."""

    status_code = 401


class PermissionDeniedError(AlertRequestError):
    """The verified identity does not own the requested store."""

    status_code = 403


class NoSubscribersError(AlertRequestError):
    """The store has no registered subscribers to send to."""

    status_code = 404
