# Overview: Error taxonomy shared by the ledger services and mapped to HTTP status codes by the routes.

"""
Ledger errors.

Raised:
- ValidationError: malformed identifiers, non-positive quantities, bad input shapes
- PermissionDenied: scope mismatch or caller lacks the approver role
- NotFoundError: row does not exist or is not visible in the caller's scope
- ConflictError: compare-and-swap lost, receipt already processed (never retried)
- ProductMissingError: a receipt line points at a product that no longer exists

Not raised to callers:
- AttachmentUnavailable: per-attachment degradation reason
- DataIntegrityWarning: negative reconstructed balance, clamped and logged
"""


class LedgerError(Exception):
    """Base class for ledger failures the API reports to the caller."""
    http_status = 400

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError):
    http_status = 400


class PermissionDenied(LedgerError):
    http_status = 403


class NotFoundError(LedgerError):
    http_status = 404


class ConflictError(LedgerError):
    http_status = 409

    def __init__(self, message: str = "", current_status: str | None = None):
        super().__init__(message)
        self.current_status = current_status


class ProductMissingError(LedgerError):
    http_status = 409

    def __init__(self, message: str = "", product_ids: list[int] | None = None):
        super().__init__(message)
        self.product_ids = sorted(product_ids or [])


class AttachmentUnavailable(Exception):
    """A single attachment could not be signed."""
    pass


class DataIntegrityWarning(UserWarning):
    """A reconstructed balance went negative and was clamped to zero."""
    pass
