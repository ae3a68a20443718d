"""
inventory/errors.py -- Exception taxonomy for the inventory domain.

Every failure the store or the managers report to a caller is one of these.
The HTTP layer translates them in a single exception handler using the
status_code and code attributes, so route handlers never build error
responses for domain failures themselves.

  ValidationError -- malformed input: missing field, value outside a closed
                     set, number out of range, unparseable id or date  (400)
  NotFoundError   -- an id does not resolve, or a join id does not resolve
                     under the asset it was requested through          (404)
  ConflictError   -- uniqueness violation: duplicate vulnerability name or
                     a second link for the same (asset, vulnerability)  (409)
"""


class InventoryError(Exception):
    """Base class for inventory domain failures."""

    status_code: int = 500
    code: str = "inventory_error"

    def __init__(self, message: str, code: str = "") -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class ValidationError(InventoryError):
    status_code = 400
    code = "validation_error"


class NotFoundError(InventoryError):
    status_code = 404
    code = "not_found"


class ConflictError(InventoryError):
    status_code = 409
    code = "conflict"
