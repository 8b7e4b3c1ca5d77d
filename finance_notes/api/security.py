"""Bearer token authentication and the logout revocation list"""

import threading
import uuid

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from finance_notes.config import settings
from finance_notes.domain.models import AccountContext
from finance_notes.infrastructure.database.repositories import AccountRepository
from finance_notes.infrastructure.database.session import get_db

bearer_scheme = HTTPBearer(auto_error=False)


class TokenRevocationList:
    """
    Tokens invalidated by logout.

    Lives in process memory: filled on logout, checked on every authenticated
    call, emptied only on restart. Instances behind a load balancer do not
    share it.
    """

    def __init__(self) -> None:
        self._tokens: set[str] = set()
        self._lock = threading.Lock()

    def revoke(self, token: str) -> None:
        if token:
            with self._lock:
                self._tokens.add(token)

    def is_revoked(self, token: str) -> bool:
        with self._lock:
            return token in self._tokens

    def clear(self) -> None:
        with self._lock:
            self._tokens.clear()


revocation_list = TokenRevocationList()


def decode_access_token(token: str) -> dict:
    """Decode and verify a signed access token; raises jwt.PyJWTError when invalid"""
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])


def get_bearer_token(credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme)) -> str:
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return credentials.credentials


def get_current_account(token: str = Depends(get_bearer_token), db: Session = Depends(get_db)) -> AccountContext:
    """Resolve the caller; the account is re-read so identity changes apply immediately"""
    if revocation_list.is_revoked(token):
        raise HTTPException(status_code=401, detail="Unauthorized")
    try:
        payload = decode_access_token(token)
        account_id = uuid.UUID(str(payload["sub"]))
    except (jwt.PyJWTError, KeyError, ValueError) as e:
        raise HTTPException(status_code=401, detail="Unauthorized") from e

    account = AccountRepository(db).get_by_id(account_id)
    if account is None:
        raise HTTPException(status_code=401, detail="Unauthorized")

    return AccountContext(
        account_id=str(account.id),
        name=account.name or "",
        phone=account.phone or "",
        identity_number=account.identity_number or "",
        identity_verified=bool(account.identity_verified),
    )
