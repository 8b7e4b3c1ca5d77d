"""Domain-specific exceptions"""

from typing import Optional

from finance_notes.domain.models import OtpFailureReason


class DomainException(Exception):
    """Base exception for domain layer"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class ValidationError(DomainException):
    """Input is malformed or missing"""

    pass


class ForbiddenError(DomainException):
    """Caller is not entitled to the requested transition"""

    pass


class NotFoundError(DomainException):
    """Referenced transaction or record does not exist"""

    pass


class ConflictError(DomainException):
    """Write collides with existing state (duplicate unique field, already closed)"""

    pass


class OtpError(DomainException):
    """Base for one-time-code failures; keeps the provider's own message for diagnostics"""

    default_reason = OtpFailureReason.INVALID_CODE

    def __init__(
        self,
        message: str,
        reason: Optional[OtpFailureReason] = None,
        provider_message: Optional[str] = None,
    ):
        super().__init__(message)
        self.reason = reason or self.default_reason
        self.provider_message = provider_message


class OtpInvalidError(OtpError):
    """Code does not match, was already used, or identity was rejected"""

    default_reason = OtpFailureReason.INVALID_CODE


class OtpExpiredError(OtpError):
    default_reason = OtpFailureReason.EXPIRED


class OtpRateLimitedError(OtpError):
    """Too many codes requested, locally or at the provider"""

    default_reason = OtpFailureReason.RATE_LIMITED

    def __init__(
        self,
        message: str,
        reason: Optional[OtpFailureReason] = None,
        provider_message: Optional[str] = None,
        retry_after: Optional[int] = None,
    ):
        super().__init__(message, reason, provider_message)
        self.retry_after = retry_after


class ProviderUnavailableError(OtpError):
    """Verification provider failed or timed out; safe to retry"""

    default_reason = OtpFailureReason.SERVICE_UNAVAILABLE
