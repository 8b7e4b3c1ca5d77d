"""Data access layer for accounts, transactions, OTP records and chat messages"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple
from sqlalchemy import String, and_, case, cast, func, or_
from sqlalchemy.orm import Session
from finance_notes.infrastructure.database.models import Account, ChatMessage, OtpRecord, Transaction
from finance_notes.domain.models import (
    DeliveryState,
    DocumentDescriptor,
    OtpIssue,
    OtpPurpose,
    TransactionMetadata,
    TransactionStatus,
)


class AccountRepository:
    """Identity directory: resolves identity numbers to registered accounts"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, account_id: uuid.UUID) -> Optional[Account]:
        return self.db.query(Account).filter(Account.id == account_id).first()

    def lookup_by_identity_number(self, identity_number: str) -> Optional[Account]:
        if not identity_number:
            return None
        return self.db.query(Account).filter(Account.identity_number == identity_number).first()

    def names_by_identity(self, identity_numbers: Iterable[str]) -> dict:
        wanted = {i for i in identity_numbers if i}
        if not wanted:
            return {}
        rows = self.db.query(Account.identity_number, Account.name).filter(Account.identity_number.in_(wanted)).all()
        return {identity: name for identity, name in rows}

    def bind_identity(self, account: Account, identity_number: str) -> Account:
        """Attach a verified identity number to an account"""
        account.identity_number = identity_number
        account.identity_verified = True
        self.db.flush()
        return account

    def clear_push_token(self, account: Account) -> None:
        account.push_token = ""
        self.db.flush()


class TransactionRepository:
    """Repository for ledger transactions"""

    def __init__(self, db: Session):
        self.db = db

    def create_transaction(
        self,
        amount: Decimal,
        owner_identity_number: str,
        owner_contact: str,
        customer_identity_number: str,
        metadata: TransactionMetadata,
        documents: List[DocumentDescriptor],
    ) -> Transaction:
        """Persist a new pending transaction"""
        db_transaction = Transaction(
            amount=amount,
            status=TransactionStatus.PENDING.value,
            owner_identity_number=owner_identity_number,
            owner_contact=owner_contact,
            customer_identity_number=customer_identity_number,
            customer_name=metadata.customer_name,
            customer_mobile=metadata.customer_mobile,
            interest=metadata.interest,
            documents=[doc.to_dict() for doc in documents],
        )
        self.db.add(db_transaction)
        self.db.flush()  # Get ID without committing
        return db_transaction

    def get_by_id(self, transaction_id: uuid.UUID) -> Optional[Transaction]:
        return self.db.query(Transaction).filter(Transaction.id == transaction_id).first()

    def get_many(self, transaction_ids: Iterable[uuid.UUID]) -> dict:
        ids = list(transaction_ids)
        if not ids:
            return {}
        rows = self.db.query(Transaction).filter(Transaction.id.in_(ids)).all()
        return {row.id: row for row in rows}

    def close_if_pending(self, transaction_id: uuid.UUID, closed_at: datetime) -> bool:
        """
        Conditionally move a transaction from pending to closed.

        The status check happens inside the UPDATE so two concurrent closes
        cannot both succeed.

        Returns:
            True if this call performed the transition
        """
        updated = (
            self.db.query(Transaction)
            .filter(
                Transaction.id == transaction_id,
                Transaction.status == TransactionStatus.PENDING.value,
            )
            .update(
                {
                    Transaction.status: TransactionStatus.CLOSED.value,
                    Transaction.closed_at: closed_at,
                    Transaction.close_code: None,
                    Transaction.close_code_expires_at: None,
                },
                synchronize_session="fetch",
            )
        )
        return updated == 1

    def party_transaction_with_document(self, identity_number: str, url: str) -> Optional[Transaction]:
        """First transaction the identity is a party to whose documents include the URL"""
        candidates = (
            self.db.query(Transaction)
            .filter(
                or_(
                    Transaction.owner_identity_number == identity_number,
                    Transaction.customer_identity_number == identity_number,
                ),
                # Text match narrows the rows; the exact URL is confirmed below
                cast(Transaction.documents, String).contains(url, autoescape=True),
            )
            .all()
        )
        for transaction in candidates:
            if any(doc.get("url") == url for doc in transaction.documents or []):
                return transaction
        return None

    def page_by_owner(self, identity_number: str, offset: int, limit: int) -> Tuple[List[Transaction], int]:
        return self._page(Transaction.owner_identity_number == identity_number, offset, limit)

    def page_by_customer(self, identity_number: str, offset: int, limit: int) -> Tuple[List[Transaction], int]:
        return self._page(Transaction.customer_identity_number == identity_number, offset, limit)

    def _page(self, criterion, offset: int, limit: int) -> Tuple[List[Transaction], int]:
        query = self.db.query(Transaction).filter(criterion)
        total = query.count()
        rows = query.order_by(Transaction.created_at.desc()).offset(offset).limit(limit).all()
        return rows, total


class OtpRepository:
    """Append-only log of issued one-time codes"""

    def __init__(self, db: Session):
        self.db = db

    def add_record(self, subject_identity_number: str, purpose: OtpPurpose, issue: OtpIssue) -> OtpRecord:
        record = OtpRecord(
            subject_identity_number=subject_identity_number,
            purpose=purpose.value,
            provider_tag=issue.provider_tag.value,
            provider_request_id=issue.request_id,
            code=issue.code,
            expires_at=issue.expires_at,
        )
        self.db.add(record)
        self.db.flush()
        return record

    def latest_for(self, subject_identity_number: str, purpose: OtpPurpose) -> Optional[OtpRecord]:
        """Most recent record for (subject, purpose)"""
        return (
            self.db.query(OtpRecord)
            .filter(
                OtpRecord.subject_identity_number == subject_identity_number,
                OtpRecord.purpose == purpose.value,
            )
            .order_by(OtpRecord.created_at.desc(), OtpRecord.id.desc())
            .first()
        )

    def mark_consumed(self, record: OtpRecord, consumed_at: datetime) -> None:
        record.consumed_at = consumed_at
        self.db.flush()


class ChatRepository:
    """Repository for per-transaction chat messages"""

    def __init__(self, db: Session):
        self.db = db

    def add_message(
        self,
        transaction_id: uuid.UUID,
        sender_identity_number: str,
        receiver_identity_number: str,
        body: str,
    ) -> ChatMessage:
        message = ChatMessage(
            transaction_id=transaction_id,
            sender_identity_number=sender_identity_number,
            receiver_identity_number=receiver_identity_number,
            body=body,
            delivery_state=DeliveryState.SENT.value,
        )
        self.db.add(message)
        self.db.flush()
        return message

    def thread(self, transaction_id: uuid.UUID) -> List[ChatMessage]:
        """All messages of a transaction in creation order"""
        return (
            self.db.query(ChatMessage)
            .filter(ChatMessage.transaction_id == transaction_id)
            .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
            .all()
        )

    def conversation_heads(self, identity_number: str) -> List[Tuple[ChatMessage, int]]:
        """
        Latest message per transaction the identity has chatted on, with the
        count of messages addressed to it that are not yet read.

        Grouping happens in one aggregate query; the highest id in a group is
        its latest message since ids follow insertion order.
        """
        unread = func.count(
            case(
                (
                    and_(
                        ChatMessage.receiver_identity_number == identity_number,
                        ChatMessage.delivery_state != DeliveryState.READ.value,
                    ),
                    1,
                )
            )
        )
        heads = (
            self.db.query(
                func.max(ChatMessage.id).label("last_id"),
                unread.label("unread"),
            )
            .filter(
                or_(
                    ChatMessage.sender_identity_number == identity_number,
                    ChatMessage.receiver_identity_number == identity_number,
                )
            )
            .group_by(ChatMessage.transaction_id)
            .subquery()
        )
        rows = (
            self.db.query(ChatMessage, heads.c.unread)
            .join(heads, ChatMessage.id == heads.c.last_id)
            .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
            .all()
        )
        return [(message, int(unread_count or 0)) for message, unread_count in rows]

    def count_unread(self, identity_number: str) -> int:
        return (
            self.db.query(ChatMessage)
            .filter(
                ChatMessage.receiver_identity_number == identity_number,
                ChatMessage.delivery_state != DeliveryState.READ.value,
            )
            .count()
        )
