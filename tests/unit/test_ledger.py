"""Unit tests for transaction creation, closing and projections"""

import uuid
import pytest
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock
from sqlalchemy.orm import Session
from finance_notes.domain.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    OtpExpiredError,
    OtpInvalidError,
    ValidationError,
)
from finance_notes.domain.models import (
    AccountContext,
    DocumentDescriptor,
    OtpPurpose,
    ProviderTag,
    TransactionMetadata,
    TransactionStatus,
)
from finance_notes.infrastructure.database.models import OtpRecord, Transaction
from finance_notes.infrastructure.database.repositories import OtpRepository
from finance_notes.services.ledger import TransactionLedger, clamp_paging
from finance_notes.services.otp_gateway import OtpGateway
from finance_notes.utils.date_utils import utcnow

OWNER_ID = "123412341234"
CUSTOMER_ID = "999999999999"


def local_gateway(db: Session) -> OtpGateway:
    return OtpGateway(OtpRepository(db), ProviderTag.LOCAL, ttl_seconds=300, cooldown_seconds=0)


def create_pending(ledger: TransactionLedger, owner: AccountContext, amount="500") -> Transaction:
    return ledger.create(owner, CUSTOMER_ID, amount, TransactionMetadata(customer_name="Ravi"))


def test_create_records_pending_transaction(db: Session, owner: AccountContext):
    ledger = TransactionLedger(db)
    document = DocumentDescriptor(name="receipt.pdf", url="http://files/receipt.pdf", size=10, mimetype="application/pdf")

    transaction = ledger.create(
        owner,
        CUSTOMER_ID,
        "500",
        TransactionMetadata(customer_name="  Ravi  ", customer_mobile="9000000000", interest="2.5"),
        [document],
    )

    assert transaction.status == TransactionStatus.PENDING.value
    assert transaction.amount == Decimal("500.00")
    assert transaction.owner_identity_number == OWNER_ID
    assert transaction.owner_contact == "9876543210"
    assert transaction.customer_identity_number == CUSTOMER_ID
    assert transaction.customer_name == "Ravi"
    assert transaction.interest == Decimal("2.50")
    assert transaction.documents == [document.to_dict()]
    assert transaction.closed_at is None


def test_create_requires_verified_creator(db: Session, create_account, as_context):
    unverified = as_context(create_account("Unverified", "111122223333", verified=False))

    with pytest.raises(ForbiddenError):
        TransactionLedger(db).create(unverified, CUSTOMER_ID, "10", TransactionMetadata(customer_name="Ravi"))
    assert db.query(Transaction).count() == 0


@pytest.mark.parametrize(
    "customer_id, amount, name, interest, field",
    [
        ("12345", "10", "Ravi", "0", "customer_identity_number"),
        (CUSTOMER_ID, "0", "Ravi", "0", "amount"),
        (CUSTOMER_ID, "-5", "Ravi", "0", "amount"),
        (CUSTOMER_ID, "10", "   ", "0", "customer_name"),
        (CUSTOMER_ID, "10", "Ravi", "-1", "interest"),
        (CUSTOMER_ID, "10", "Ravi", "1000000", "interest"),
        (CUSTOMER_ID, "1e20", "Ravi", "0", "amount"),
    ],
)
def test_create_rejects_invalid_input(db: Session, owner: AccountContext, customer_id, amount, name, interest, field):
    with pytest.raises(ValidationError) as exc_info:
        TransactionLedger(db).create(
            owner, customer_id, amount, TransactionMetadata(customer_name=name, interest=interest)
        )
    assert exc_info.value.field == field


def test_get_is_limited_to_parties(db: Session, owner, customer, stranger):
    ledger = TransactionLedger(db)
    transaction = create_pending(ledger, owner)

    assert ledger.get(transaction.id, owner).id == transaction.id
    assert ledger.get(str(transaction.id), customer).id == transaction.id
    with pytest.raises(ForbiddenError):
        ledger.get(transaction.id, stranger)


def test_direct_close_by_owner_only_and_once(db: Session, owner, customer):
    ledger = TransactionLedger(db)
    transaction = create_pending(ledger, owner)

    with pytest.raises(ForbiddenError):
        ledger.direct_close(transaction.id, customer)
    assert transaction.status == TransactionStatus.PENDING.value

    closed = ledger.direct_close(transaction.id, owner)
    assert closed.status == TransactionStatus.CLOSED.value
    assert closed.closed_at is not None
    first_closed_at = closed.closed_at

    with pytest.raises(ConflictError):
        ledger.direct_close(transaction.id, owner)
    db.refresh(transaction)
    assert transaction.closed_at == first_closed_at


def test_direct_close_unknown_or_malformed_id(db: Session, owner):
    ledger = TransactionLedger(db)

    with pytest.raises(NotFoundError):
        ledger.direct_close(uuid.uuid4(), owner)
    with pytest.raises(ValidationError):
        ledger.direct_close("not-a-uuid", owner)


async def test_request_close_rejects_wrong_owner_before_generating(db: Session, owner, customer):
    gateway = AsyncMock(spec=OtpGateway)
    ledger = TransactionLedger(db, gateway)
    transaction = create_pending(ledger, owner)

    with pytest.raises(ValidationError) as exc_info:
        await ledger.request_close(transaction.id, customer, "000000000000")

    assert exc_info.value.field == "owner_identity_number"
    gateway.generate.assert_not_called()


async def test_request_close_by_owner_is_forbidden(db: Session, owner):
    gateway = AsyncMock(spec=OtpGateway)
    ledger = TransactionLedger(db, gateway)
    transaction = create_pending(ledger, owner)

    with pytest.raises(ForbiddenError):
        await ledger.request_close(transaction.id, owner, OWNER_ID)
    gateway.generate.assert_not_called()


async def test_request_close_on_closed_transaction_conflicts(db: Session, owner, customer):
    gateway = AsyncMock(spec=OtpGateway)
    ledger = TransactionLedger(db, gateway)
    transaction = create_pending(ledger, owner)
    ledger.direct_close(transaction.id, owner)

    with pytest.raises(ConflictError):
        await ledger.request_close(transaction.id, customer, OWNER_ID)
    gateway.generate.assert_not_called()


async def test_customer_close_with_local_code(db: Session, owner, customer):
    ledger = TransactionLedger(db, local_gateway(db))
    transaction = create_pending(ledger, owner)

    challenge = await ledger.request_close(transaction.id, customer, OWNER_ID)

    assert challenge.transaction_id == str(transaction.id)
    assert challenge.provider_tag is ProviderTag.LOCAL
    assert challenge.hint is None
    # Code is issued to the owner's identity, not the caller's
    record = db.query(OtpRecord).one()
    assert record.subject_identity_number == OWNER_ID
    assert record.purpose == OtpPurpose.TRANSACTION_CLOSE.value

    closed = await ledger.confirm_close(transaction.id, customer, OWNER_ID, record.code)

    assert closed.status == TransactionStatus.CLOSED.value
    assert closed.closed_at is not None


async def test_confirm_close_with_expired_code_keeps_pending(db: Session, owner, customer):
    ledger = TransactionLedger(db, local_gateway(db))
    transaction = create_pending(ledger, owner)
    await ledger.request_close(transaction.id, customer, OWNER_ID)
    record = db.query(OtpRecord).one()
    record.expires_at = utcnow() - timedelta(seconds=1)
    db.flush()

    with pytest.raises(OtpExpiredError):
        await ledger.confirm_close(transaction.id, customer, OWNER_ID, record.code)

    db.refresh(transaction)
    assert transaction.status == TransactionStatus.PENDING.value
    assert transaction.closed_at is None


async def test_confirm_close_with_wrong_code_keeps_pending(db: Session, owner, customer):
    gateway = AsyncMock(spec=OtpGateway)
    gateway.verify.side_effect = OtpInvalidError("Invalid OTP code")
    ledger = TransactionLedger(db, gateway)
    transaction = create_pending(ledger, owner)

    with pytest.raises(OtpInvalidError):
        await ledger.confirm_close(transaction.id, customer, OWNER_ID, "000000")

    gateway.verify.assert_awaited_once_with(OWNER_ID, OtpPurpose.TRANSACTION_CLOSE, "000000")
    assert transaction.status == TransactionStatus.PENDING.value


async def test_confirm_close_after_direct_close_conflicts(db: Session, owner, customer):
    gateway = AsyncMock(spec=OtpGateway)
    ledger = TransactionLedger(db, gateway)
    transaction = create_pending(ledger, owner)
    ledger.direct_close(transaction.id, owner)

    with pytest.raises(ConflictError):
        await ledger.confirm_close(transaction.id, customer, OWNER_ID, "123456")
    gateway.verify.assert_not_called()


def test_close_if_pending_only_transitions_once(db: Session, owner):
    ledger = TransactionLedger(db)
    transaction = create_pending(ledger, owner)

    assert ledger.transactions.close_if_pending(transaction.id, utcnow()) is True
    assert ledger.transactions.close_if_pending(transaction.id, utcnow()) is False


def test_projections(db: Session, owner, customer, stranger):
    ledger = TransactionLedger(db)
    first = create_pending(ledger, owner, "100")
    second = create_pending(ledger, owner, "200")

    owned = ledger.owned_by(owner)
    assert {t.id for t in owned.items} == {first.id, second.id}
    assert owned.total == 2
    assert not owned.has_more

    received = ledger.received_by(customer)
    assert received.total == 2
    assert ledger.received_by(owner).total == 0

    history = ledger.history(stranger, CUSTOMER_ID)
    assert history.total == 2

    paged = ledger.owned_by(owner, page=1, limit=1)
    assert len(paged.items) == 1
    assert paged.has_more


def test_projections_empty_without_caller_identity(db: Session, owner):
    ledger = TransactionLedger(db)
    create_pending(ledger, owner)
    anonymous = AccountContext(account_id=str(uuid.uuid4()))

    assert ledger.owned_by(anonymous).items == []
    assert ledger.received_by(anonymous).items == []
    assert ledger.history(anonymous, CUSTOMER_ID).items == []


def test_history_rejects_malformed_identity(db: Session, owner):
    with pytest.raises(ValidationError):
        TransactionLedger(db).history(owner, "abc")


def test_clamp_paging():
    assert clamp_paging(0, 0) == (1, 50)
    assert clamp_paging(3, 1000) == (3, 100)
    assert clamp_paging(-2, 5) == (1, 5)


def test_interest_accepts_widest_value_the_column_holds(db: Session, owner):
    transaction = TransactionLedger(db).create(
        owner, CUSTOMER_ID, "10", TransactionMetadata(customer_name="Ravi", interest="999999.99")
    )
    assert transaction.interest == Decimal("999999.99")
