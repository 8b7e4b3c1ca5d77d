"""Access-checked retrieval of documents attached to transactions"""

import logging
from pathlib import Path
from typing import Tuple

from sqlalchemy.orm import Session

from finance_notes.domain.exceptions import ForbiddenError, ValidationError
from finance_notes.domain.models import AccountContext, DocumentDescriptor
from finance_notes.domain.validation import mask_identity, normalize_identity
from finance_notes.infrastructure.clients.storage import DocumentStore
from finance_notes.infrastructure.database.repositories import TransactionRepository


class DocumentAccess:
    """Serves a stored document only to the owner or customer of a transaction listing it"""

    def __init__(self, db: Session, store: DocumentStore):
        self.transactions = TransactionRepository(db)
        self.store = store

    def open(self, caller: AccountContext, url: str) -> Tuple[Path, DocumentDescriptor]:
        """
        Resolve a document URL to its file and the descriptor stored with the transaction.

        Raises:
            ValidationError: URL is empty or was not issued by the store
            ForbiddenError: No transaction of the caller's lists the document
            NotFoundError: File is missing from storage
        """
        if not url:
            raise ValidationError("Document URL is required", "url")
        if self.store.relative_path(url) is None:
            raise ValidationError("Invalid storage URL", "url")

        identity = normalize_identity(caller.identity_number)
        transaction = self.transactions.party_transaction_with_document(identity, url) if identity else None
        if transaction is None:
            logging.warning(
                "Document access denied",
                extra={"account_id": caller.account_id, "identity": mask_identity(identity)},
            )
            raise ForbiddenError("Access denied to this document")

        entry = next(doc for doc in transaction.documents if doc.get("url") == url)
        return self.store.open(url), DocumentDescriptor(**entry)
