"""Pytest fixtures for testing"""

import pytest
import httpx
import jwt
from typing import Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from finance_notes.api.main import create_app
from finance_notes.api.dependencies import get_document_store, get_otp_provider, get_push_client
from finance_notes.api.security import revocation_list
from finance_notes.config import settings
from finance_notes.domain.models import AccountContext, ProviderTag
from finance_notes.infrastructure.clients.storage import DocumentStore
from finance_notes.infrastructure.clients.push import PushClient
from finance_notes.infrastructure.database.models import Account, Base
from finance_notes.infrastructure.database.session import get_db


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

OWNER_ID = "123412341234"
CUSTOMER_ID = "999999999999"
STRANGER_ID = "555555555555"


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


def _make_account(
    db: Session,
    name: str,
    identity_number: str | None,
    verified: bool = True,
    phone: str = "",
    push_token: str = "",
) -> Account:
    account = Account(
        name=name,
        phone=phone,
        identity_number=identity_number,
        identity_verified=verified,
        push_token=push_token,
    )
    db.add(account)
    db.commit()
    return account


def _context_for(account: Account) -> AccountContext:
    return AccountContext(
        account_id=str(account.id),
        name=account.name,
        phone=account.phone or "",
        identity_number=account.identity_number or "",
        identity_verified=bool(account.identity_verified),
    )


def _auth_headers(account: Account) -> dict:
    token = jwt.encode({"sub": str(account.id)}, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def owner_account(db: Session) -> Account:
    return _make_account(db, "Asha Owner", OWNER_ID, phone="9876543210")


@pytest.fixture
def customer_account(db: Session) -> Account:
    return _make_account(db, "Ravi Customer", CUSTOMER_ID)


@pytest.fixture
def stranger_account(db: Session) -> Account:
    return _make_account(db, "Meera Stranger", STRANGER_ID)


@pytest.fixture
def owner(owner_account: Account) -> AccountContext:
    return _context_for(owner_account)


@pytest.fixture
def customer(customer_account: Account) -> AccountContext:
    return _context_for(customer_account)


@pytest.fixture
def stranger(stranger_account: Account) -> AccountContext:
    return _context_for(stranger_account)


@pytest.fixture
def push_requests() -> list:
    """Payloads received by the fake push endpoint"""
    return []


@pytest.fixture
def push_client(push_requests: list) -> PushClient:
    def handler(request: httpx.Request) -> httpx.Response:
        push_requests.append(request)
        return httpx.Response(200, json={"name": "projects/test/messages/1"})

    return PushClient(url="https://push.test/send", timeout=1.0, transport=httpx.MockTransport(handler))


@pytest.fixture
def document_store(tmp_path) -> DocumentStore:
    """Store writing under a per-test directory"""
    return DocumentStore(root=str(tmp_path / "uploads"), base_url="http://files.test/v1/documents/files")


@pytest.fixture
def otp_provider() -> ProviderTag:
    return ProviderTag.TEST


@pytest.fixture
def client(
    db: Session, otp_provider: ProviderTag, push_client: PushClient, document_store: DocumentStore
) -> Generator[TestClient, None, None]:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_otp_provider] = lambda: otp_provider
    app.dependency_overrides[get_push_client] = lambda: push_client
    app.dependency_overrides[get_document_store] = lambda: document_store
    yield TestClient(app)
    revocation_list.clear()


@pytest.fixture
def create_account(db: Session):
    """Factory for extra accounts: create_account(name, identity_number, verified=True, ...)"""

    def factory(name: str, identity_number: str | None, **kwargs) -> Account:
        return _make_account(db, name, identity_number, **kwargs)

    return factory


@pytest.fixture
def as_context():
    return _context_for


@pytest.fixture
def headers_for():
    """Bearer headers for an account"""
    return _auth_headers
