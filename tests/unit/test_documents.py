"""Unit tests for document storage and access checks"""

import io
import pytest
from sqlalchemy.orm import Session
from finance_notes.domain.exceptions import ForbiddenError, NotFoundError, ValidationError
from finance_notes.domain.models import AccountContext, DocumentDescriptor, TransactionMetadata
from finance_notes.infrastructure.clients.storage import DocumentStore
from finance_notes.services.documents import DocumentAccess
from finance_notes.services.ledger import TransactionLedger

CUSTOMER_ID = "999999999999"
BASE_URL = "http://files.test/v1/documents/files"


@pytest.fixture
def store(tmp_path) -> DocumentStore:
    return DocumentStore(root=str(tmp_path), base_url=BASE_URL + "/")


@pytest.fixture
def attached(db: Session, store: DocumentStore, owner, customer_account) -> DocumentDescriptor:
    descriptor = store.store("loan note.pdf", io.BytesIO(b"note"), "application/pdf")
    TransactionLedger(db).create(
        owner, CUSTOMER_ID, "40", TransactionMetadata(customer_name="Ravi"), documents=[descriptor]
    )
    return descriptor


def test_store_writes_file_and_quotes_url(store: DocumentStore):
    descriptor = store.store("../loan note.pdf", io.BytesIO(b"note"))

    assert descriptor.name == "loan note.pdf"
    assert descriptor.size == 4
    assert descriptor.mimetype == "application/octet-stream"
    assert descriptor.url.startswith(f"{BASE_URL}/transactions/")
    assert descriptor.url.endswith("_loan%20note.pdf")
    assert store.open(descriptor.url).read_bytes() == b"note"


def test_store_requires_file_name(store: DocumentStore):
    with pytest.raises(ValidationError):
        store.store("   ", io.BytesIO(b""))


@pytest.mark.parametrize(
    "url",
    [
        "",
        "http://elsewhere.test/transactions/1_a.pdf",
        f"{BASE_URL}/other/1_a.pdf",
        f"{BASE_URL}/transactions/..",
        f"{BASE_URL}/transactions/%2E%2E",
        f"{BASE_URL}/transactions/..%2F..%2Fsecrets",
        f"{BASE_URL}/transactions/",
    ],
)
def test_relative_path_rejects_urls_not_issued_here(store: DocumentStore, url):
    assert store.relative_path(url) is None
    with pytest.raises(ValidationError):
        store.check_descriptor(DocumentDescriptor(name="a.pdf", url=url, size=1, mimetype="application/pdf"))


def test_open_missing_file(store: DocumentStore):
    with pytest.raises(NotFoundError):
        store.open(store.url_for("transactions/1_gone.pdf"))


def test_parties_can_open_attached_document(db: Session, store, attached, owner, customer):
    access = DocumentAccess(db, store)

    for caller in (owner, customer):
        path, descriptor = access.open(caller, attached.url)
        assert path.read_bytes() == b"note"
        assert descriptor.name == "loan note.pdf"
        assert descriptor.mimetype == "application/pdf"


def test_stranger_and_anonymous_are_denied(db: Session, store, attached, stranger):
    access = DocumentAccess(db, store)

    with pytest.raises(ForbiddenError):
        access.open(stranger, attached.url)
    with pytest.raises(ForbiddenError):
        access.open(AccountContext(account_id="x"), attached.url)


def test_url_must_match_exactly(db: Session, store, owner, customer_account):
    """A URL that is only a prefix of an attached one is a different document"""
    backup = DocumentDescriptor(
        name="a.pdf.bak", url=store.url_for("transactions/1_a.pdf.bak"), size=1, mimetype="application/pdf"
    )
    TransactionLedger(db).create(
        owner, CUSTOMER_ID, "40", TransactionMetadata(customer_name="Ravi"), documents=[backup]
    )

    with pytest.raises(ForbiddenError):
        DocumentAccess(db, store).open(owner, store.url_for("transactions/1_a.pdf"))


def test_open_validates_url_before_access(db: Session, store, owner):
    access = DocumentAccess(db, store)

    with pytest.raises(ValidationError):
        access.open(owner, "")
    with pytest.raises(ValidationError):
        access.open(owner, "http://elsewhere.test/a.pdf")
