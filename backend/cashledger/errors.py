# Overview: Business-rule error kinds raised by the registry and the session ledger.

"""
Every rejection carries the ErrorKind name in ``code`` so callers (UI,
reporting, the HTTP layer) can tell exactly which rule was violated and let
the operator correct their input. All of these are raised before anything is
appended; none of them is ever retried.
"""


class CashLedgerError(Exception):
    """Base class for registry and ledger rule violations."""

    code = "CashLedgerError"
    http_status = 409

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class RegisterNotFoundError(CashLedgerError):
    code = "RegisterNotFound"
    http_status = 404


class DuplicateRegisterNumberError(CashLedgerError):
    code = "DuplicateRegisterNumber"


class AlreadyAssignedError(CashLedgerError):
    code = "AlreadyAssigned"


class AlreadyOpenError(CashLedgerError):
    code = "AlreadyOpen"


class RegisterNotOpenError(CashLedgerError):
    code = "RegisterNotOpen"


class InsufficientBalanceError(CashLedgerError):
    code = "InsufficientBalance"
