"""Exceptions raised by the phishsentry security layer."""


class AdmissionRejected(Exception):
    """A scoring request was refused before any analyzer ran."""
    reason = "rejected"

    def __init__(self, caller_id=None, detail=None):
        self.caller_id = caller_id
        self.detail = detail or self.reason
        super().__init__(self.detail)


class RateLimitExceeded(AdmissionRejected):
    reason = "rate_limited"


class InvalidSession(AdmissionRejected):
    reason = "invalid_session"


class AuditError(Exception):
    """Audit records could not be produced or read back."""
