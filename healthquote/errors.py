"""
Ledger error taxonomy.

Every failure the ledger can surface maps to one HTTP status. Handlers in
main.py render them as {"detail": ..., "code": ...}.
"""


class LedgerError(Exception):
    status_code = 500
    default_code = "INTERNAL"

    def __init__(self, detail: str, code: str = None):
        super().__init__(detail)
        self.detail = detail
        self.code = code or self.default_code


class ValidationFailed(LedgerError):
    """Bad input. Terminal for the request, nothing is written."""
    status_code = 400
    default_code = "VALIDATION_ERROR"


class NotFound(LedgerError):
    status_code = 404
    default_code = "NOT_FOUND"


class Conflict(LedgerError):
    status_code = 409
    default_code = "CONFLICT"
