"""
Error taxonomy for ledger and billing operations.

Every error carries a machine-readable ``kind`` and the HTTP status the API
layer answers with. ``details()`` adds the numbers a client needs to correct
the request.
"""
from __future__ import annotations

from typing import Any, Dict


class LedgerError(Exception):
    kind = 'error'
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def details(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        body = {'success': False, 'kind': self.kind, 'message': self.message}
        body.update(self.details())
        return body


class ValidationError(LedgerError):
    kind = 'validation_error'
    status_code = 400


class BudgetExceededError(ValidationError):
    kind = 'budget_exceeded'

    def __init__(self, requested: int, remaining: int):
        super().__init__(
            f"Cannot freeze. The selected period ({requested} days) exceeds "
            f"remaining freeze days ({remaining} days)."
        )
        self.requested = requested
        self.remaining = remaining

    def details(self) -> Dict[str, Any]:
        return {
            'requested_freeze_days': self.requested,
            'remaining_freeze_days': self.remaining,
        }


class NotFoundError(LedgerError):
    kind = 'not_found'
    status_code = 404


class ConflictError(LedgerError):
    kind = 'conflict'
    status_code = 409


class StorageError(LedgerError):
    kind = 'storage_unavailable'
    status_code = 503
