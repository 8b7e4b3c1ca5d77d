"""/v1/documents - upload supporting documents and fetch them back"""

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from finance_notes.api.dependencies import get_document_store
from finance_notes.api.security import get_current_account
from finance_notes.api.v1.schemas import DocumentSchema
from finance_notes.domain.models import AccountContext
from finance_notes.infrastructure.clients.storage import DocumentStore
from finance_notes.infrastructure.database.session import get_db
from finance_notes.services.documents import DocumentAccess

router = APIRouter()


@router.post("/documents", response_model=DocumentSchema)
def upload_document(
    file: UploadFile = File(...),
    caller: AccountContext = Depends(get_current_account),
    store: DocumentStore = Depends(get_document_store),
):
    """Store the file and return the descriptor to attach when creating a transaction"""
    descriptor = store.store(file.filename or "", file.file, file.content_type)
    return DocumentSchema(**descriptor.to_dict())


@router.get("/documents/files/{relative_path:path}")
def download_document(
    relative_path: str,
    db: Session = Depends(get_db),
    caller: AccountContext = Depends(get_current_account),
    store: DocumentStore = Depends(get_document_store),
):
    """
    Stream a stored document to a party of a transaction that lists it.

    The request path is the descriptor URL issued at upload, so the URL can be
    fetched as-is with the caller's bearer token.
    """
    url = store.url_for(relative_path)
    path, descriptor = DocumentAccess(db, store).open(caller, url)
    return FileResponse(path, media_type=descriptor.mimetype, filename=descriptor.name)
