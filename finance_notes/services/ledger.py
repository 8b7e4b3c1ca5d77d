"""Transaction ledger: creation, direct close and the OTP-gated customer close"""

import logging
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from finance_notes.domain.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from finance_notes.domain.models import (
    AccountContext,
    CloseChallenge,
    DocumentDescriptor,
    OtpPurpose,
    Page,
    TransactionMetadata,
    TransactionStatus,
)
from finance_notes.domain.validation import (
    INTEREST_MAX_INTEGER_DIGITS,
    mask_identity,
    normalize_identity,
    parse_uuid,
    quantize_bounded,
    require_verified_identity,
    same_identity,
    validate_amount,
    validate_identity_number,
)
from finance_notes.infrastructure.database.models import Transaction
from finance_notes.infrastructure.database.repositories import TransactionRepository
from finance_notes.infrastructure.observability.logging import log_transaction_closed
from finance_notes.infrastructure.observability.metrics import transaction_counter
from finance_notes.services.otp_gateway import OtpGateway
from finance_notes.utils.date_utils import utcnow

DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 100


class TransactionLedger:
    """Owns Transaction entities and every state transition on them"""

    def __init__(self, db: Session, otp_gateway: Optional[OtpGateway] = None):
        self.db = db
        self.transactions = TransactionRepository(db)
        self.otp_gateway = otp_gateway

    def create(
        self,
        creator: AccountContext,
        customer_identity_number: str,
        amount: Any,
        metadata: TransactionMetadata,
        documents: Optional[List[DocumentDescriptor]] = None,
    ) -> Transaction:
        """
        Record a sum extended by the creator to a customer.

        The owner identity always comes from the creator's verified account.

        Raises:
            ForbiddenError: Creator has no verified identity number
            ValidationError: Amount not positive, customer id malformed, name blank
        """
        owner_identity = require_verified_identity(creator)
        customer_identity = validate_identity_number(customer_identity_number, "customer_identity_number")
        value = validate_amount(amount)
        customer_name = (metadata.customer_name or "").strip()
        if not customer_name:
            raise ValidationError("Customer name is required", "customer_name")
        interest = validate_interest(metadata.interest)

        transaction = self.transactions.create_transaction(
            amount=value,
            owner_identity_number=owner_identity,
            owner_contact=creator.phone or "",
            customer_identity_number=customer_identity,
            metadata=TransactionMetadata(
                customer_name=customer_name,
                customer_mobile=(metadata.customer_mobile or "").strip(),
                interest=interest,
            ),
            documents=documents or [],
        )
        transaction_counter.labels(event="created").inc()
        logging.info(
            "Transaction created",
            extra={
                "transaction_id": str(transaction.id),
                "owner": mask_identity(owner_identity),
                "customer": mask_identity(customer_identity),
                "document_count": len(documents or []),
            },
        )
        return transaction

    def get(self, transaction_id: Any, caller: AccountContext) -> Transaction:
        transaction = self._resolve(transaction_id)
        if not (
            same_identity(caller.identity_number, transaction.owner_identity_number)
            or same_identity(caller.identity_number, transaction.customer_identity_number)
        ):
            raise ForbiddenError("Not a party to this transaction")
        return transaction

    def direct_close(self, transaction_id: Any, caller: AccountContext) -> Transaction:
        """
        Close a transaction on the owner's own authority.

        Raises:
            NotFoundError: Transaction does not exist
            ForbiddenError: Caller is not the owner
            ConflictError: Transaction is already closed
        """
        transaction = self._resolve(transaction_id)
        if not same_identity(caller.identity_number, transaction.owner_identity_number):
            raise ForbiddenError("Not authorized to close this payment")

        self._close(transaction, caller, mode="direct")
        return transaction

    async def request_close(
        self,
        transaction_id: Any,
        caller: AccountContext,
        owner_identity_number: str,
    ) -> CloseChallenge:
        """
        First phase of the customer close: send a code to the owner's identity.

        The supplied owner id is checked against the stored one before any code
        is generated, so a customer cannot trigger codes for an unrelated owner.
        """
        transaction = self._authorize_customer_close(transaction_id, caller, owner_identity_number)
        issue = await self._gateway().generate(transaction.owner_identity_number, OtpPurpose.TRANSACTION_CLOSE)
        logging.info(
            "Customer close requested",
            extra={
                "transaction_id": str(transaction.id),
                "provider": issue.provider_tag.value,
                "customer": mask_identity(caller.identity_number),
            },
        )
        return CloseChallenge(
            transaction_id=str(transaction.id),
            provider_tag=issue.provider_tag,
            expires_at=issue.expires_at,
            hint=issue.hint,
        )

    async def confirm_close(
        self,
        transaction_id: Any,
        caller: AccountContext,
        owner_identity_number: str,
        code: str,
    ) -> Transaction:
        """
        Second phase of the customer close: verify the owner's code and close.

        On any verification failure the transaction stays pending and the OTP
        error propagates unchanged.
        """
        transaction = self._authorize_customer_close(transaction_id, caller, owner_identity_number)
        await self._gateway().verify(transaction.owner_identity_number, OtpPurpose.TRANSACTION_CLOSE, code)
        self._close(transaction, caller, mode="otp")
        return transaction

    def history(self, caller: AccountContext, identity_number: str, page: int = 1, limit: int = DEFAULT_PAGE_LIMIT) -> Page:
        """Transactions where the searched identity is the customer"""
        searched = validate_identity_number(identity_number)
        if not normalize_identity(caller.identity_number):
            return empty_page(page, limit)
        return self._page(self.transactions.page_by_customer, searched, page, limit)

    def owned_by(self, caller: AccountContext, page: int = 1, limit: int = DEFAULT_PAGE_LIMIT) -> Page:
        identity = normalize_identity(caller.identity_number)
        if not identity:
            return empty_page(page, limit)
        return self._page(self.transactions.page_by_owner, identity, page, limit)

    def received_by(self, caller: AccountContext, page: int = 1, limit: int = DEFAULT_PAGE_LIMIT) -> Page:
        identity = normalize_identity(caller.identity_number)
        if not identity:
            return empty_page(page, limit)
        return self._page(self.transactions.page_by_customer, identity, page, limit)

    def _page(self, fetch, identity: str, page: int, limit: int) -> Page:
        page, limit = clamp_paging(page, limit)
        items, total = fetch(identity, (page - 1) * limit, limit)
        return Page(items=items, page=page, limit=limit, total=total)

    def _resolve(self, transaction_id: Any) -> Transaction:
        transaction = self.transactions.get_by_id(parse_uuid(transaction_id))
        if transaction is None:
            raise NotFoundError("Transaction not found")
        return transaction

    def _authorize_customer_close(
        self,
        transaction_id: Any,
        caller: AccountContext,
        owner_identity_number: str,
    ) -> Transaction:
        transaction = self._resolve(transaction_id)
        if not same_identity(caller.identity_number, transaction.customer_identity_number):
            raise ForbiddenError("Only the customer can close this transaction")
        if not same_identity(owner_identity_number, transaction.owner_identity_number):
            raise ValidationError("Owner identity number does not match transaction owner", "owner_identity_number")
        if transaction.status != TransactionStatus.PENDING.value:
            raise ConflictError("Transaction is already closed")
        return transaction

    def _close(self, transaction: Transaction, caller: AccountContext, mode: str) -> None:
        if not self.transactions.close_if_pending(transaction.id, utcnow()):
            raise ConflictError("Transaction is already closed")
        self.db.refresh(transaction)
        transaction_counter.labels(event=f"closed_{mode}").inc()
        log_transaction_closed(str(transaction.id), mode, caller.identity_number)

    def _gateway(self) -> OtpGateway:
        if self.otp_gateway is None:
            raise RuntimeError("TransactionLedger needs an OtpGateway for customer close")
        return self.otp_gateway


def validate_interest(value: Any) -> Decimal:
    if value in (None, ""):
        return Decimal("0")
    try:
        interest = Decimal(str(value))
    except ArithmeticError as e:
        raise ValidationError("Interest must be a number", "interest") from e
    if not interest.is_finite() or interest < 0:
        raise ValidationError("Interest cannot be negative", "interest")
    return quantize_bounded(interest, INTEREST_MAX_INTEGER_DIGITS, "interest")


def clamp_paging(page: int, limit: int) -> tuple:
    page = max(int(page or 1), 1)
    limit = max(min(int(limit or DEFAULT_PAGE_LIMIT), MAX_PAGE_LIMIT), 1)
    return page, limit


def empty_page(page: int, limit: int) -> Page:
    page, limit = clamp_paging(page, limit)
    return Page(items=[], page=page, limit=limit, total=0)
