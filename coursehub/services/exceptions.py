"""
Ledger exceptions.

Services raise these; the API layer turns them into the standard
{"success": false, "message": ..., "error": {...}} response.
"""

from typing import Any, Dict, Optional


class LedgerError(Exception):
    """
    Base class for expected ledger failures.

    Attributes:
        message: Human-readable error message
        status_code: HTTP status the API answers with
        details: Extra context for the caller (ids, amounts)
    """

    status_code: int = 400
    error_code: str = "ledger_error"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form, without any traceback."""
        return {
            "code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class NotFound(LedgerError):
    """User, course, payment, commission or payout request does not exist."""

    status_code = 404
    error_code = "not_found"


class InvalidState(LedgerError):
    """Record is not in the status the operation requires."""

    status_code = 409
    error_code = "invalid_state"


class ValidationError(LedgerError):
    """Malformed amounts, ids or decisions."""

    status_code = 422
    error_code = "validation_error"


class AmountExceedsAvailable(LedgerError):
    """Requested payout is larger than the agent's pending balance."""

    status_code = 400
    error_code = "amount_exceeds_available"


class NoPendingCommissions(LedgerError):
    """Nothing left to pay."""

    status_code = 400
    error_code = "no_pending_commissions"


class ExternalProviderError(LedgerError):
    """The payment provider call failed."""

    status_code = 502
    error_code = "external_provider_error"


class SignatureVerificationFailed(LedgerError):
    """Webhook payload could not be authenticated. Never processed."""

    status_code = 400
    error_code = "signature_verification_failed"
