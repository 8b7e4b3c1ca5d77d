"""One-time code issuing and verification across test, local and remote providers"""

import logging
import secrets
import time
from typing import Optional

from finance_notes.config import Settings, settings as default_settings
from finance_notes.domain.exceptions import (
    OtpError,
    OtpExpiredError,
    OtpInvalidError,
    OtpRateLimitedError,
    ProviderUnavailableError,
)
from finance_notes.domain.models import OtpFailureReason, OtpIssue, OtpPurpose, ProviderTag
from finance_notes.domain.validation import mask_identity, validate_otp_code
from finance_notes.infrastructure.clients.verification import VerificationClient
from finance_notes.infrastructure.database.repositories import OtpRepository
from finance_notes.infrastructure.observability.logging import log_otp_event
from finance_notes.infrastructure.observability.metrics import record_otp_outcome
from finance_notes.utils.date_utils import seconds_from_now, seconds_until, utcnow


def select_provider(config: Settings) -> ProviderTag:
    """
    Resolve the configured provider name to a tag.

    'auto' means the test bypass in development, otherwise the remote service
    when an API key is configured and the local generator when not.
    """
    if config.otp_provider != "auto":
        return ProviderTag(config.otp_provider)
    if config.environment == "development":
        return ProviderTag.TEST
    if config.verification_api_key:
        return ProviderTag.REMOTE
    return ProviderTag.LOCAL


def generate_local_code() -> str:
    return str(secrets.randbelow(900000) + 100000)


class OtpGateway:
    """
    Issues and checks one-time codes per (subject identity, purpose).

    The provider tag chosen at generation time is stored on the record and
    verification dispatches on that tag. Every generate is subject to a local
    cooldown so a subject cannot burn provider quota by hammering the endpoint.
    """

    def __init__(
        self,
        repository: OtpRepository,
        provider: ProviderTag,
        client: Optional[VerificationClient] = None,
        ttl_seconds: Optional[int] = None,
        cooldown_seconds: Optional[int] = None,
        test_code: Optional[str] = None,
    ):
        self.repository = repository
        self.provider = provider
        self.client = client
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else default_settings.otp_ttl_seconds
        self.cooldown_seconds = (
            cooldown_seconds if cooldown_seconds is not None else default_settings.otp_cooldown_seconds
        )
        self.test_code = test_code or default_settings.otp_test_code

    async def generate(self, subject: str, purpose: OtpPurpose) -> OtpIssue:
        """
        Issue a code for subject and append it to the OTP log.

        Raises:
            OtpRateLimitedError: A code for the same pair was issued within the cooldown
            OtpError: Remote provider rejected the request or is unavailable
        """
        start_time = time.time()
        now = utcnow()

        latest = self.repository.latest_for(subject, purpose)
        if latest is not None:
            cooldown_ends = seconds_from_now(self.cooldown_seconds, latest.created_at)
            if cooldown_ends > now:
                record_otp_outcome("generate", self.provider.value, OtpFailureReason.TOO_FREQUENT.value)
                raise OtpRateLimitedError(
                    "Too many requests. Please wait before requesting another OTP.",
                    OtpFailureReason.TOO_FREQUENT,
                    retry_after=seconds_until(cooldown_ends, now),
                )

        expires_at = seconds_from_now(self.ttl_seconds, now)
        try:
            if self.provider is ProviderTag.TEST:
                issue = OtpIssue(provider_tag=ProviderTag.TEST, expires_at=expires_at, code=self.test_code)
            elif self.provider is ProviderTag.LOCAL:
                issue = OtpIssue(provider_tag=ProviderTag.LOCAL, expires_at=expires_at, code=generate_local_code())
            elif self.provider is ProviderTag.REMOTE:
                request_id = await self._remote().generate_otp(subject)
                issue = OtpIssue(provider_tag=ProviderTag.REMOTE, expires_at=expires_at, request_id=request_id)
            else:
                raise ValueError(f"Unsupported OTP provider: {self.provider}")
        except OtpError as e:
            record_otp_outcome("generate", self.provider.value, e.reason.value)
            log_otp_event("generate", subject, purpose.value, self.provider.value, e.reason.value, _elapsed_ms(start_time))
            raise

        self.repository.add_record(subject, purpose, issue)
        record_otp_outcome("generate", self.provider.value, "success")
        log_otp_event("generate", subject, purpose.value, self.provider.value, "success", _elapsed_ms(start_time))
        return issue

    async def verify(self, subject: str, purpose: OtpPurpose, submitted_code: str) -> ProviderTag:
        """
        Check a submitted code against the latest record for (subject, purpose).

        Returns:
            Tag of the provider that accepted the code

        Raises:
            ValidationError: Code is not six digits
            OtpError: Code rejected; the reason tells the caller what to do next
        """
        start_time = time.time()
        try:
            provider = await self._verify(subject, purpose, submitted_code)
        except OtpError as e:
            record_otp_outcome("verify", self.provider.value, e.reason.value)
            log_otp_event("verify", subject, purpose.value, self.provider.value, e.reason.value, _elapsed_ms(start_time))
            raise
        record_otp_outcome("verify", provider.value, "success")
        log_otp_event("verify", subject, purpose.value, provider.value, "success", _elapsed_ms(start_time))
        return provider

    async def _verify(self, subject: str, purpose: OtpPurpose, submitted_code: str) -> ProviderTag:
        # Test bypass ignores stored records entirely
        if self.provider is ProviderTag.TEST:
            if submitted_code != self.test_code:
                raise OtpInvalidError("Invalid OTP code")
            return ProviderTag.TEST

        code = validate_otp_code(submitted_code)
        now = utcnow()

        record = self.repository.latest_for(subject, purpose)
        if record is None:
            raise OtpInvalidError("OTP not found. Please generate a new OTP.", OtpFailureReason.NOT_FOUND)
        if record.consumed_at is not None:
            raise OtpInvalidError(
                "This OTP has already been used. Please generate a new OTP.",
                OtpFailureReason.ALREADY_USED,
            )
        if record.expires_at <= now:
            raise OtpExpiredError("OTP expired. Please generate a new OTP.")

        tag = ProviderTag(record.provider_tag)
        if tag is ProviderTag.TEST:
            if code != self.test_code:
                raise OtpInvalidError("Invalid OTP code")
        elif tag is ProviderTag.LOCAL:
            if not record.code or not secrets.compare_digest(record.code, code):
                raise OtpInvalidError("Invalid OTP code")
        elif tag is ProviderTag.REMOTE:
            if not record.provider_request_id:
                raise OtpInvalidError("Invalid OTP record. Please generate a new OTP.", OtpFailureReason.NOT_FOUND)
            await self._remote().submit_otp(record.provider_request_id, code)

        self.repository.mark_consumed(record, now)
        logging.debug("OTP record %s consumed for %s", record.id, mask_identity(subject))
        return tag

    def _remote(self) -> VerificationClient:
        if self.client is None:
            raise ProviderUnavailableError("Remote verification provider is not configured")
        return self.client


def _elapsed_ms(start_time: float) -> float:
    return round((time.time() - start_time) * 1000, 2)
