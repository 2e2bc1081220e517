from __future__ import annotations

from fastapi import HTTPException


class LedgerError(ValueError):
    """Base class for domain failures; `status_code` is the HTTP equivalent."""

    status_code: int = 400


class NotFoundError(LedgerError):
    status_code = 404


class ConflictError(LedgerError):
    status_code = 409


class InvalidStateError(LedgerError):
    status_code = 400


class ForbiddenError(LedgerError):
    status_code = 403


class NothingOwedError(LedgerError):
    status_code = 400


class CurrencyMismatchError(LedgerError):
    status_code = 400


def to_http_exception(exc: ValueError) -> HTTPException:
    status_code = exc.status_code if isinstance(exc, LedgerError) else 400
    return HTTPException(status_code=status_code, detail=str(exc))
