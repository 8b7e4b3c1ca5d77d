"""SQLAlchemy ORM models for accounts, transactions, OTP records and chat"""

import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Integer, Numeric, Text, JSON, Uuid, Index
from sqlalchemy.orm import declarative_base

from finance_notes.domain.models import DeliveryState, TransactionStatus
from finance_notes.utils.date_utils import utcnow

Base = declarative_base()


class Account(Base):
    """Registered user; identity_number is the join key to transactions and chat"""

    __tablename__ = "account"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=False, default="")
    phone = Column(Text, nullable=False, default="")
    identity_number = Column(String(32), nullable=True, unique=True)
    identity_verified = Column(Boolean, nullable=False, default=False)
    push_token = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, nullable=False, default=utcnow)


class Transaction(Base):
    """Sum extended by an owner to a customer, closed exactly once"""

    __tablename__ = "ledger_transaction"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    amount = Column(Numeric(14, 2), nullable=False)
    status = Column(String(16), nullable=False, default=TransactionStatus.PENDING.value)
    # Plain identity strings, not foreign keys to account
    owner_identity_number = Column(String(32), nullable=False, default="", index=True)
    customer_identity_number = Column(String(32), nullable=False, default="", index=True)
    owner_contact = Column(Text, nullable=False, default="")
    customer_name = Column(Text, nullable=False, default="")
    customer_mobile = Column(Text, nullable=False, default="")
    interest = Column(Numeric(8, 2), nullable=False, default=0)
    documents = Column(JSON, nullable=False, default=list)
    close_code = Column(Text, nullable=True)
    close_code_expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    closed_at = Column(DateTime, nullable=True)


class OtpRecord(Base):
    """Audit trail of issued one-time codes"""

    __tablename__ = "otp_record"
    __table_args__ = (Index("ix_otp_record_subject_purpose", "subject_identity_number", "purpose", "created_at"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    subject_identity_number = Column(String(32), nullable=False)
    purpose = Column(String(32), nullable=False)
    provider_tag = Column(String(16), nullable=False)
    provider_request_id = Column(Text, nullable=True)
    code = Column(Text, nullable=True)  # local and test providers only
    expires_at = Column(DateTime, nullable=False)
    consumed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class ChatMessage(Base):
    """Message on a transaction's thread; id doubles as insertion order"""

    __tablename__ = "chat_message"
    __table_args__ = (
        Index("ix_chat_message_transaction_created", "transaction_id", "created_at"),
        Index("ix_chat_message_sender_receiver", "sender_identity_number", "receiver_identity_number"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_id = Column(Uuid, nullable=False)
    sender_identity_number = Column(String(32), nullable=False)
    receiver_identity_number = Column(String(32), nullable=False)
    body = Column(Text, nullable=False)
    delivery_state = Column(String(16), nullable=False, default=DeliveryState.SENT.value)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    delivered_at = Column(DateTime, nullable=True)
    read_at = Column(DateTime, nullable=True)
