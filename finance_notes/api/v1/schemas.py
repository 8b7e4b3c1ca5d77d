"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from finance_notes.domain.models import CloseChallenge, ConversationSummary, DocumentDescriptor, OtpIssue, Page
from finance_notes.infrastructure.database.models import ChatMessage, Transaction


class DocumentSchema(BaseModel):
    """Stored document descriptor"""

    name: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    size: int = Field(..., ge=0)
    mimetype: str = "application/octet-stream"

    def to_descriptor(self) -> DocumentDescriptor:
        return DocumentDescriptor(name=self.name, url=self.url, size=self.size, mimetype=self.mimetype)


class TransactionCreateRequest(BaseModel):
    """Request body for POST /v1/transactions"""

    customer_identity_number: str = Field(..., description="Customer's 12-digit identity number")
    amount: Decimal = Field(..., description="Amount extended to the customer")
    customer_name: str = Field(..., description="Customer display name")
    customer_mobile: str = ""
    interest: Decimal = Decimal("0")
    documents: List[DocumentSchema] = Field(default_factory=list)


class TransactionResponse(BaseModel):
    """Transaction as seen by its parties; close codes are never exposed"""

    id: str
    amount: Decimal
    status: str
    owner_identity_number: str
    customer_identity_number: str
    owner_contact: str
    customer_name: str
    customer_mobile: str
    interest: Decimal
    documents: List[DocumentSchema]
    created_at: datetime
    closed_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, transaction: Transaction) -> "TransactionResponse":
        return cls(
            id=str(transaction.id),
            amount=transaction.amount,
            status=transaction.status,
            owner_identity_number=transaction.owner_identity_number,
            customer_identity_number=transaction.customer_identity_number,
            owner_contact=transaction.owner_contact or "",
            customer_name=transaction.customer_name or "",
            customer_mobile=transaction.customer_mobile or "",
            interest=transaction.interest or Decimal("0"),
            documents=[DocumentSchema(**doc) for doc in transaction.documents or []],
            created_at=transaction.created_at,
            closed_at=transaction.closed_at,
        )


class TransactionPageResponse(BaseModel):
    """Paginated transaction listing"""

    transactions: List[TransactionResponse]
    page: int
    limit: int
    total: int
    has_more: bool

    @classmethod
    def from_page(cls, page: Page) -> "TransactionPageResponse":
        return cls(
            transactions=[TransactionResponse.from_model(t) for t in page.items],
            page=page.page,
            limit=page.limit,
            total=page.total,
            has_more=page.has_more,
        )


class CloseResponse(BaseModel):
    success: bool = True
    transaction: TransactionResponse


class CustomerCloseRequest(BaseModel):
    """Request body for POST /v1/transactions/{id}/customer-close/request"""

    owner_identity_number: str


class CustomerCloseConfirmRequest(BaseModel):
    """Request body for POST /v1/transactions/{id}/customer-close/confirm"""

    owner_identity_number: str
    otp: str


class CloseChallengeResponse(BaseModel):
    success: bool = True
    transaction_id: str
    provider: str
    expires_at: datetime
    message: str = "OTP sent to the transaction owner"
    hint: Optional[str] = None

    @classmethod
    def from_challenge(cls, challenge: CloseChallenge) -> "CloseChallengeResponse":
        return cls(
            transaction_id=challenge.transaction_id,
            provider=challenge.provider_tag.value,
            expires_at=challenge.expires_at,
            hint=challenge.hint,
        )


class IdentityOtpRequest(BaseModel):
    identity_number: str


class IdentityOtpResponse(BaseModel):
    success: bool = True
    provider: str
    expires_at: datetime
    hint: Optional[str] = None

    @classmethod
    def from_issue(cls, issue: OtpIssue) -> "IdentityOtpResponse":
        return cls(provider=issue.provider_tag.value, expires_at=issue.expires_at, hint=issue.hint)


class IdentityVerifyRequest(BaseModel):
    identity_number: str
    otp: str


class IdentityVerifyResponse(BaseModel):
    verified: bool
    identity_number: str


class ChatSendRequest(BaseModel):
    """Request body for POST /v1/chat/{transaction_id}/messages"""

    message: str


class ChatMessageSchema(BaseModel):
    id: int
    transaction_id: str
    sender_identity_number: str
    receiver_identity_number: str
    message: str
    status: str
    created_at: datetime
    delivered_at: Optional[datetime] = None
    read_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, message: ChatMessage) -> "ChatMessageSchema":
        return cls(
            id=message.id,
            transaction_id=str(message.transaction_id),
            sender_identity_number=message.sender_identity_number,
            receiver_identity_number=message.receiver_identity_number,
            message=message.body,
            status=message.delivery_state,
            created_at=message.created_at,
            delivered_at=message.delivered_at,
            read_at=message.read_at,
        )


class ChatThreadResponse(BaseModel):
    messages: List[ChatMessageSchema]


class ConversationTransactionSchema(BaseModel):
    amount: Decimal
    status: str
    owner_identity_number: str
    customer_identity_number: str
    customer_name: str
    owner_name: str
    customer_account_name: str
    created_at: datetime


class ConversationSchema(BaseModel):
    transaction_id: str
    last_message: str
    last_sender_identity_number: str
    last_receiver_identity_number: str
    last_created_at: datetime
    unread_count: int
    transaction: ConversationTransactionSchema

    @classmethod
    def from_summary(cls, summary: ConversationSummary) -> "ConversationSchema":
        return cls(
            transaction_id=summary.transaction_id,
            last_message=summary.last_message,
            last_sender_identity_number=summary.last_sender_identity_number,
            last_receiver_identity_number=summary.last_receiver_identity_number,
            last_created_at=summary.last_created_at,
            unread_count=summary.unread_count,
            transaction=ConversationTransactionSchema(**summary.transaction),
        )


class ConversationListResponse(BaseModel):
    conversations: List[ConversationSchema]


class UnreadCountResponse(BaseModel):
    count: int


class LogoutResponse(BaseModel):
    success: bool = True
