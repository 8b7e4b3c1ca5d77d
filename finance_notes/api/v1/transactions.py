"""/v1/transactions - create, close and list ledger transactions"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from finance_notes.api.dependencies import get_document_store, get_otp_gateway, get_request_id
from finance_notes.api.errors import commit_or_rollback
from finance_notes.api.security import get_current_account
from finance_notes.api.v1.schemas import (
    CloseChallengeResponse,
    CloseResponse,
    CustomerCloseConfirmRequest,
    CustomerCloseRequest,
    TransactionCreateRequest,
    TransactionPageResponse,
    TransactionResponse,
)
from finance_notes.domain.models import AccountContext, TransactionMetadata
from finance_notes.infrastructure.clients.storage import DocumentStore
from finance_notes.infrastructure.database.session import get_db
from finance_notes.services.ledger import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT, TransactionLedger
from finance_notes.services.otp_gateway import OtpGateway

router = APIRouter()


@router.post("/transactions", response_model=TransactionResponse)
def create_transaction(
    request_body: TransactionCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    caller: AccountContext = Depends(get_current_account),
    store: DocumentStore = Depends(get_document_store),
):
    """
    Record a sum extended by the caller to a customer.

    The owner identity is the caller's verified identity number; documents are
    descriptors returned earlier by POST /v1/documents; any other URL is rejected.
    """
    documents = [store.check_descriptor(doc.to_descriptor()) for doc in request_body.documents]
    with commit_or_rollback(db, get_request_id(request), "create transaction"):
        transaction = TransactionLedger(db).create(
            creator=caller,
            customer_identity_number=request_body.customer_identity_number,
            amount=request_body.amount,
            metadata=TransactionMetadata(
                customer_name=request_body.customer_name,
                customer_mobile=request_body.customer_mobile,
                interest=request_body.interest,
            ),
            documents=documents,
        )
    return TransactionResponse.from_model(transaction)


@router.get("/transactions/history", response_model=TransactionPageResponse)
def get_transaction_history(
    identity_number: str = Query(..., description="Customer identity number to search"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    db: Session = Depends(get_db),
    caller: AccountContext = Depends(get_current_account),
):
    """Transactions extended to a customer identity, newest first"""
    return TransactionPageResponse.from_page(TransactionLedger(db).history(caller, identity_number, page, limit))


@router.get("/transactions/owned", response_model=TransactionPageResponse)
def get_owned_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    db: Session = Depends(get_db),
    caller: AccountContext = Depends(get_current_account),
):
    """Transactions the caller created"""
    return TransactionPageResponse.from_page(TransactionLedger(db).owned_by(caller, page, limit))


@router.get("/transactions/received", response_model=TransactionPageResponse)
def get_received_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    db: Session = Depends(get_db),
    caller: AccountContext = Depends(get_current_account),
):
    """Transactions where the caller is the customer"""
    return TransactionPageResponse.from_page(TransactionLedger(db).received_by(caller, page, limit))


@router.get("/transactions/{transaction_id}", response_model=TransactionResponse)
def get_transaction(
    transaction_id: str,
    db: Session = Depends(get_db),
    caller: AccountContext = Depends(get_current_account),
):
    return TransactionResponse.from_model(TransactionLedger(db).get(transaction_id, caller))


@router.post("/transactions/{transaction_id}/close", response_model=CloseResponse)
def close_transaction(
    transaction_id: str,
    request: Request,
    db: Session = Depends(get_db),
    caller: AccountContext = Depends(get_current_account),
):
    """Owner closes the transaction directly"""
    with commit_or_rollback(db, get_request_id(request), "direct close"):
        transaction = TransactionLedger(db).direct_close(transaction_id, caller)
    return CloseResponse(transaction=TransactionResponse.from_model(transaction))


@router.post("/transactions/{transaction_id}/customer-close/request", response_model=CloseChallengeResponse)
async def request_customer_close(
    transaction_id: str,
    request_body: CustomerCloseRequest,
    request: Request,
    db: Session = Depends(get_db),
    caller: AccountContext = Depends(get_current_account),
    otp_gateway: OtpGateway = Depends(get_otp_gateway),
):
    """
    Customer asks to close; a code goes to the owner's identity.

    The code itself is never returned except as a hint from the test provider.
    """
    with commit_or_rollback(db, get_request_id(request), "customer close request"):
        challenge = await TransactionLedger(db, otp_gateway).request_close(
            transaction_id, caller, request_body.owner_identity_number
        )
    return CloseChallengeResponse.from_challenge(challenge)


@router.post("/transactions/{transaction_id}/customer-close/confirm", response_model=CloseResponse)
async def confirm_customer_close(
    transaction_id: str,
    request_body: CustomerCloseConfirmRequest,
    request: Request,
    db: Session = Depends(get_db),
    caller: AccountContext = Depends(get_current_account),
    otp_gateway: OtpGateway = Depends(get_otp_gateway),
):
    """Customer submits the owner's code; the transaction closes on success"""
    with commit_or_rollback(db, get_request_id(request), "customer close confirm"):
        transaction = await TransactionLedger(db, otp_gateway).confirm_close(
            transaction_id, caller, request_body.owner_identity_number, request_body.otp
        )
    return CloseResponse(transaction=TransactionResponse.from_model(transaction))
