"""
Error taxonomy for the application lifecycle.

Every error carries a stable ``code`` so the HTTP layer and the notification
payloads can report it without string matching.
"""
from typing import Optional


class ScholarshipError(Exception):
    """Base class for all lifecycle failures."""
    code = "error"

    def __init__(self, message: str, *, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class NotAuthenticated(ScholarshipError):
    code = "not_authenticated"


class ValidationFailed(ScholarshipError):
    code = "validation_failed"


class ApplicationNotFound(ValidationFailed):
    code = "application_not_found"


class EncryptionFailed(ScholarshipError):
    code = "encryption_failed"


class SubmissionRejected(ScholarshipError):
    """The signer declined the transaction."""
    code = "submission_rejected"


class LedgerWriteFailed(ScholarshipError):
    code = "ledger_write_failed"


class LedgerUnavailable(ScholarshipError):
    code = "ledger_unavailable"


class DecryptionFailed(ScholarshipError):
    code = "decryption_failed"


class AlreadyVerified(ScholarshipError):
    """Raised by a gateway when another actor already verified the record."""
    code = "already_verified"


def is_already_verified(exc: BaseException) -> bool:
    """True if ``exc`` (or anything it wraps) reports an already-verified record."""
    seen = set()
    while exc is not None and id(exc) not in seen:
        seen.add(id(exc))
        if isinstance(exc, AlreadyVerified):
            return True
        if "already verified" in str(exc).lower():
            return True
        exc = getattr(exc, "cause", None) or exc.__cause__
    return False
