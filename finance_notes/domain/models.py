"""Domain models - pure Python dataclasses and enums representing business entities"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


class TransactionStatus(str, Enum):
    PENDING = "pending"
    CLOSED = "closed"


class OtpPurpose(str, Enum):
    IDENTITY_VERIFY = "identity-verify"
    TRANSACTION_CLOSE = "transaction-close"


class ProviderTag(str, Enum):
    """Which one-time-code provider issued a record; verification dispatches on it"""

    TEST = "test"
    LOCAL = "local"
    REMOTE = "remote"


class DeliveryState(str, Enum):
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"


class OtpFailureReason(str, Enum):
    INVALID_CODE = "invalid_code"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    ALREADY_USED = "already_used"
    RATE_LIMITED = "rate_limited"
    TOO_FREQUENT = "too_frequent"
    INVALID_IDENTITY = "invalid_identity"
    SERVICE_UNAVAILABLE = "service_unavailable"


@dataclass
class AccountContext:
    """Authenticated caller, freshly read from the account registry"""

    account_id: str
    name: str = ""
    phone: str = ""
    identity_number: str = ""
    identity_verified: bool = False


@dataclass
class DocumentDescriptor:
    """Stored document reference; file bytes never reach the ledger"""

    name: str
    url: str
    size: int
    mimetype: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "url": self.url, "size": self.size, "mimetype": self.mimetype}


@dataclass
class TransactionMetadata:
    """Free-form details recorded alongside a transaction"""

    customer_name: str
    customer_mobile: str = ""
    interest: Decimal = Decimal("0")


@dataclass
class OtpIssue:
    """Result of generating a one-time code"""

    provider_tag: ProviderTag
    expires_at: datetime
    request_id: Optional[str] = None
    code: Optional[str] = None

    @property
    def hint(self) -> Optional[str]:
        # Only the test provider ever reveals its code
        if self.provider_tag is ProviderTag.TEST:
            return f"Use OTP: {self.code}"
        return None


@dataclass
class CloseChallenge:
    """Acknowledgement returned when a customer asks to close a transaction"""

    transaction_id: str
    provider_tag: ProviderTag
    expires_at: datetime
    hint: Optional[str] = None


@dataclass
class ProviderResponse:
    """Normalized response from the remote verification service"""

    status_code: int
    status: str
    message: str = ""
    data: Dict[str, Any] = field(default_factory=dict)
    request_id: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status_code == 200 and self.status == "success"


@dataclass
class Page:
    """One page of a transaction projection"""

    items: List[Any]
    page: int
    limit: int
    total: int

    @property
    def has_more(self) -> bool:
        return (self.page - 1) * self.limit + len(self.items) < self.total


@dataclass
class ConversationSummary:
    """Latest message of one transaction's chat plus unread count"""

    transaction_id: str
    last_message: str
    last_sender_identity_number: str
    last_receiver_identity_number: str
    last_created_at: datetime
    unread_count: int
    transaction: Dict[str, Any]


@dataclass
class PushResult:
    success: bool
    error: Optional[str] = None
