"""Dependency injection for FastAPI endpoints"""

from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from finance_notes.config import settings
from finance_notes.domain.models import ProviderTag
from finance_notes.infrastructure.clients.push import PushClient
from finance_notes.infrastructure.clients.storage import DocumentStore
from finance_notes.infrastructure.clients.verification import VerificationClient
from finance_notes.infrastructure.database.repositories import OtpRepository
from finance_notes.infrastructure.database.session import get_db
from finance_notes.services.otp_gateway import OtpGateway, select_provider


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_otp_provider() -> ProviderTag:
    """Provider used for newly generated codes"""
    return select_provider(settings)


def get_verification_client() -> Optional[VerificationClient]:
    """Provide remote verification client when an API key is configured"""
    if not settings.verification_api_key:
        return None
    return VerificationClient()


def get_otp_gateway(
    db: Session = Depends(get_db),
    provider: ProviderTag = Depends(get_otp_provider),
    client: Optional[VerificationClient] = Depends(get_verification_client),
) -> OtpGateway:
    return OtpGateway(OtpRepository(db), provider, client)


def get_push_client() -> PushClient:
    """Provide push notification client instance"""
    return PushClient()


def get_document_store() -> DocumentStore:
    return DocumentStore()
