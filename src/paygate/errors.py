"""
Error taxonomy for paygate.

Every failure the orchestration core can produce is one of these classes.
The API layer maps them to responses using `code` and `status_code`.
"""

from typing import Any, Dict, Optional


class PaygateError(Exception):
    code = "PAYGATE_ERROR"
    status_code = 500

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra: Dict[str, Any] = extra

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.code, "detail": self.message}
        body.update(self.extra)
        return body


class ValidationError(PaygateError):
    code = "VALIDATION_ERROR"
    status_code = 422


class NotFound(PaygateError):
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(PaygateError):
    code = "CONFLICT"
    status_code = 409


class PersistenceError(PaygateError):
    """Local record store failed to read or write."""

    code = "PERSISTENCE_ERROR"
    status_code = 500


class UpstreamError(PaygateError):
    """Base for failures reported by (or talking to) the payment processor."""

    code = "UPSTREAM_ERROR"
    status_code = 502

    def __init__(self, message: str, upstream_status: Optional[int] = None, **extra: Any):
        if upstream_status is not None:
            extra["upstream_status"] = upstream_status
        super().__init__(message, **extra)
        self.upstream_status = upstream_status


class UpstreamAuthError(UpstreamError):
    code = "UPSTREAM_AUTH_FAILED"


class UpstreamAccountError(UpstreamError):
    code = "UPSTREAM_ACCOUNT_FAILED"


class UpstreamLookupError(UpstreamError):
    """The processor does not know the requested reference or recipient."""

    code = "UPSTREAM_NOT_FOUND"
    status_code = 424


class UpstreamTransferError(UpstreamError):
    """The processor confirmed that a disbursement was not accepted."""

    code = "UPSTREAM_TRANSFER_FAILED"


class UpstreamUnavailable(UpstreamError):
    """Transport failure on a call that moves no money; safe to retry."""

    code = "UPSTREAM_UNAVAILABLE"
    status_code = 503


class UpstreamUnknownOutcome(UpstreamError):
    """
    A money-moving call timed out or lost its connection.

    The processor may have accepted it. Re-query the status with the same
    reference before ever retrying with a new one.
    """

    code = "UPSTREAM_UNKNOWN_OUTCOME"
    status_code = 504

    def __init__(self, message: str, reference: str, **extra: Any):
        super().__init__(message, reference=reference, status="PENDING", **extra)
        self.reference = reference


class ReconciliationError(UpstreamError):
    """Processor payload is missing data needed to update the local record."""

    code = "RECONCILIATION_FAILED"
