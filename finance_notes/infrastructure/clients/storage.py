"""Document custody: stores uploaded files, hands back a descriptor and resolves it again"""

import os
import shutil
import time
from pathlib import Path
from typing import BinaryIO, Optional
from urllib.parse import quote, unquote
from finance_notes.domain.models import DocumentDescriptor
from finance_notes.domain.exceptions import NotFoundError, ValidationError
from finance_notes.config import settings

UPLOAD_FOLDER = "transactions"


class DocumentStore:
    """Writes uploads beneath a root directory served at a public base URL"""

    def __init__(self, root: str | None = None, base_url: str | None = None):
        self.root = Path(root or settings.document_root)
        self.base_url = (base_url or settings.document_base_url).rstrip("/")

    def store(self, filename: str, stream: BinaryIO, mimetype: str | None = None) -> DocumentDescriptor:
        name = Path(filename or "").name.strip()
        if not name:
            raise ValidationError("Document file name is required", "documents")

        relative = f"{UPLOAD_FOLDER}/{int(time.time() * 1000)}_{name}"
        destination = self.root / relative
        destination.parent.mkdir(parents=True, exist_ok=True)
        with open(destination, "wb") as out:
            shutil.copyfileobj(stream, out)

        return DocumentDescriptor(
            name=name,
            url=self.url_for(relative),
            size=os.path.getsize(destination),
            mimetype=mimetype or "application/octet-stream",
        )

    def url_for(self, relative: str) -> str:
        return f"{self.base_url}/{quote(relative)}"

    def relative_path(self, url: str) -> Optional[str]:
        """
        Path below the root for a URL this store issued.

        Returns:
            None when the URL is foreign or would escape the upload folder
        """
        prefix = f"{self.base_url}/"
        if not url or not url.startswith(prefix):
            return None
        relative = unquote(url[len(prefix):])
        parts = relative.split("/")
        if len(parts) != 2 or parts[0] != UPLOAD_FOLDER or parts[1] in ("", ".", ".."):
            return None
        return relative

    def check_descriptor(self, descriptor: DocumentDescriptor) -> DocumentDescriptor:
        """Reject descriptors that do not point at a file uploaded here"""
        if self.relative_path(descriptor.url) is None:
            raise ValidationError(f"Document {descriptor.name} was not uploaded to this service", "documents")
        return descriptor

    def open(self, url: str) -> Path:
        """
        Local path of a stored document.

        Raises:
            ValidationError: URL was not issued by this store
            NotFoundError: File is gone from the upload folder
        """
        relative = self.relative_path(url)
        if relative is None:
            raise ValidationError("Invalid storage URL", "url")
        path = self.root / relative
        if not path.is_file():
            raise NotFoundError("File not found")
        return path
