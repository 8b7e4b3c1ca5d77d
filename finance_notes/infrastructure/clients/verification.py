"""Remote identity verification service client (OTP generate / submit)"""

import httpx
from typing import Any, Dict
from finance_notes.domain.models import OtpFailureReason, ProviderResponse
from finance_notes.domain.exceptions import (
    OtpError,
    OtpExpiredError,
    OtpInvalidError,
    OtpRateLimitedError,
    ProviderUnavailableError,
)
from finance_notes.config import settings
from finance_notes.infrastructure.observability.metrics import provider_failure_counter, provider_latency_histogram


class VerificationClient:
    """Client for the external OTP verification API"""

    GENERATE_PATH = "/api/v1/aadhaar-v2/generate-otp"
    SUBMIT_PATH = "/api/v1/aadhaar-v2/submit-otp"

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or settings.verification_api_base
        self.api_key = api_key if api_key is not None else settings.verification_api_key
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    async def generate_otp(self, id_number: str) -> str:
        """
        Ask the provider to send a code to the holder of an identity number.

        Returns:
            Provider-side request id, the only thing the ledger keeps

        Raises:
            OtpError: Provider rejected the request or is unavailable
        """
        response = await self._post("generate", self.GENERATE_PATH, {"key": self.api_key, "id_number": id_number})
        if response.succeeded:
            request_id = response.request_id or str(response.data.get("request_id") or "")
            if not request_id:
                raise ProviderUnavailableError(
                    "Verification service returned no request id",
                    provider_message=response.message,
                )
            return request_id
        raise generate_failure(response)

    async def submit_otp(self, request_id: str, otp: str) -> None:
        """
        Forward a submitted code for a previous request id.

        Raises:
            OtpError: Code rejected, expired, reused, or provider unavailable
        """
        response = await self._post("verify", self.SUBMIT_PATH, {"key": self.api_key, "request_id": request_id, "otp": otp})
        if response.succeeded and response.data.get("valid_aadhaar") is not False:
            return
        raise submit_failure(response)

    async def _post(self, operation: str, path: str, payload: Dict[str, Any]) -> ProviderResponse:
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
            try:
                with provider_latency_histogram.labels(operation=operation).time():
                    response = await client.post(path, json=payload)
            except httpx.TimeoutException as e:
                provider_failure_counter.labels(operation=operation).inc()
                raise ProviderUnavailableError(
                    f"Verification service timeout after {self.timeout}s",
                    provider_message=str(e),
                ) from e
            except httpx.RequestError as e:
                provider_failure_counter.labels(operation=operation).inc()
                raise ProviderUnavailableError("Verification service unreachable", provider_message=str(e)) from e

        if response.status_code >= 500:
            provider_failure_counter.labels(operation=operation).inc()
            raise ProviderUnavailableError(
                f"Verification service error: {response.status_code}",
                provider_message=response.text[:200],
            )

        try:
            body = response.json()
            data = body.get("data") or {}
            return ProviderResponse(
                status_code=int(body.get("status_code", response.status_code)),
                status=str(body.get("status", "")),
                message=str(body.get("message") or ""),
                data=data if isinstance(data, dict) else {},
                request_id=str(body["request_id"]) if body.get("request_id") else None,
            )
        except (ValueError, TypeError, AttributeError) as e:
            provider_failure_counter.labels(operation=operation).inc()
            raise ProviderUnavailableError(
                "Invalid response from verification service",
                provider_message=response.text[:200],
            ) from e


def generate_failure(response: ProviderResponse) -> OtpError:
    """Translate a rejected generate call into the local taxonomy"""
    message = response.message
    lowered = message.lower()

    if "not linked" in lowered:
        return OtpInvalidError(
            "Mobile number is not linked to this identity number",
            OtpFailureReason.INVALID_IDENTITY,
            message,
        )
    if "invalid aadha" in lowered or "invalid id" in lowered:
        return OtpInvalidError("Invalid identity number", OtpFailureReason.INVALID_IDENTITY, message)
    if "maximum attempts" in lowered:
        return OtpRateLimitedError(
            "Maximum OTP generation attempts reached. Please try again later.",
            OtpFailureReason.RATE_LIMITED,
            message,
        )
    if "error from backend" in lowered or response.status_code >= 500:
        return ProviderUnavailableError(
            "Verification service temporarily unavailable. Please try again later.",
            provider_message=message or "Unknown provider response",
        )
    # Other refusals reach the caller with the provider's own wording
    return OtpInvalidError(
        message or "OTP generation failed",
        OtpFailureReason.INVALID_IDENTITY,
        message or "Unknown provider response",
    )


def submit_failure(response: ProviderResponse) -> OtpError:
    """Translate a rejected submit call into the local taxonomy"""
    message = response.message
    lowered = message.lower()

    if "already processed" in lowered or "already used" in lowered:
        return OtpInvalidError(
            "This OTP has already been used. Please generate a new OTP.",
            OtpFailureReason.ALREADY_USED,
            message,
        )
    if "invalid request" in lowered or "expired" in lowered:
        return OtpExpiredError("OTP expired. Please generate a new OTP.", provider_message=message)
    if "maximum attempts" in lowered:
        return OtpRateLimitedError(
            "Maximum OTP verification attempts reached. Please generate a new OTP.",
            OtpFailureReason.RATE_LIMITED,
            message,
        )
    if "error from backend" in lowered:
        return ProviderUnavailableError(
            "Verification service temporarily unavailable. Please try again later.",
            provider_message=message,
        )
    if "invalid aadha" in lowered or response.data.get("valid_aadhaar") is False:
        return OtpInvalidError("Invalid identity number", OtpFailureReason.INVALID_IDENTITY, message)
    return OtpInvalidError(
        "Invalid OTP code. Please check and try again.",
        OtpFailureReason.INVALID_CODE,
        message or "OTP verification failed",
    )
