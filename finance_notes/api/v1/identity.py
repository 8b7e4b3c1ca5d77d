"""/v1/identity - prove control of an identity number and bind it to the account"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from finance_notes.api.dependencies import get_otp_gateway, get_request_id
from finance_notes.api.errors import commit_or_rollback
from finance_notes.api.security import get_current_account
from finance_notes.api.v1.schemas import (
    IdentityOtpRequest,
    IdentityOtpResponse,
    IdentityVerifyRequest,
    IdentityVerifyResponse,
)
from finance_notes.domain.models import AccountContext
from finance_notes.infrastructure.database.session import get_db
from finance_notes.services.identity import IdentityVerifier
from finance_notes.services.otp_gateway import OtpGateway

router = APIRouter()


@router.post("/identity/otp", response_model=IdentityOtpResponse)
async def request_identity_otp(
    request_body: IdentityOtpRequest,
    request: Request,
    db: Session = Depends(get_db),
    caller: AccountContext = Depends(get_current_account),
    otp_gateway: OtpGateway = Depends(get_otp_gateway),
):
    with commit_or_rollback(db, get_request_id(request), "identity otp"):
        issue = await IdentityVerifier(db, otp_gateway).request_code(caller, request_body.identity_number)
    return IdentityOtpResponse.from_issue(issue)


@router.post("/identity/verify", response_model=IdentityVerifyResponse)
async def verify_identity(
    request_body: IdentityVerifyRequest,
    request: Request,
    db: Session = Depends(get_db),
    caller: AccountContext = Depends(get_current_account),
    otp_gateway: OtpGateway = Depends(get_otp_gateway),
):
    """Bind the identity number to the caller's account once the code checks out"""
    with commit_or_rollback(db, get_request_id(request), "identity verify"):
        account = await IdentityVerifier(db, otp_gateway).confirm(
            caller, request_body.identity_number, request_body.otp
        )
    return IdentityVerifyResponse(verified=bool(account.identity_verified), identity_number=account.identity_number)
