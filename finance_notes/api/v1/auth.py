"""POST /v1/auth/logout - revoke the caller's bearer token"""

import logging

from fastapi import APIRouter, Depends

from finance_notes.api.security import get_bearer_token, get_current_account, revocation_list
from finance_notes.api.v1.schemas import LogoutResponse
from finance_notes.domain.models import AccountContext

router = APIRouter()


@router.post("/auth/logout", response_model=LogoutResponse)
def logout(
    token: str = Depends(get_bearer_token),
    caller: AccountContext = Depends(get_current_account),
):
    revocation_list.revoke(token)
    logging.info("Token revoked", extra={"account_id": caller.account_id})
    return LogoutResponse()
