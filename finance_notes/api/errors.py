"""Translation of domain exceptions into HTTP responses"""

import logging
from contextlib import contextmanager
from typing import Iterator

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from finance_notes.domain.exceptions import (
    ConflictError,
    DomainException,
    ForbiddenError,
    NotFoundError,
    OtpError,
    OtpExpiredError,
    OtpInvalidError,
    OtpRateLimitedError,
    ProviderUnavailableError,
    ValidationError,
)

# Most specific first
STATUS_CODES = [
    (ValidationError, 422),
    (ForbiddenError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
    (OtpRateLimitedError, 429),
    (ProviderUnavailableError, 503),
    (OtpExpiredError, 400),
    (OtpInvalidError, 400),
    (OtpError, 400),
]


def status_for(exc: DomainException) -> int:
    for exc_type, status_code in STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return 400


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    body = {"detail": exc.message}
    headers = {}
    if exc.field:
        body["field"] = exc.field
    if isinstance(exc, OtpError):
        body["reason"] = exc.reason.value
        if isinstance(exc, OtpRateLimitedError) and exc.retry_after:
            headers["Retry-After"] = str(exc.retry_after)
        if exc.provider_message:
            logging.info(
                f"Provider said: {exc.provider_message}",
                extra={"request_id": getattr(request.state, "request_id", "unknown"), "reason": exc.reason.value},
            )
    return JSONResponse(status_code=status_for(exc), content=body, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainException, domain_exception_handler)


@contextmanager
def commit_or_rollback(db: Session, request_id: str, action: str) -> Iterator[None]:
    """Commit the request's unit of work, or roll it back and let the error surface"""
    try:
        yield
        db.commit()
    except (DomainException, HTTPException) as e:
        db.rollback()
        logging.warning(f"{action} rejected: {e}", extra={"request_id": request_id})
        raise
    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error during {action}: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error") from e
