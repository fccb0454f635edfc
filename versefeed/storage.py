"""File storage for profile pictures.

Implements the storage collaborator's contract: ``generate_upload_url``
hands out a single-use upload URL; uploading to it returns an opaque
storage handle that the client then passes to ``updateProfile`` as
``profilePicture``. Blobs live on local disk under ``settings.upload_dir``
and their metadata in ``StoredFileRow``.
"""

import uuid
from collections.abc import AsyncIterator
from pathlib import Path

from sqlalchemy import delete, or_
from sqlmodel import col

from versefeed.config import settings
from versefeed.database import DatabaseManager
from versefeed.logging import logger
from versefeed.models import StoredFileRow, UploadTicketRow
from versefeed.repository import Repository
from versefeed.utils import epoch_millis

MAX_UPLOAD_BYTES = 5 * 1024 * 1024
UPLOAD_ROUTE = "/api/files/upload"


class UploadRejectedError(Exception):
    """Upload refused: unknown, spent or expired ticket, empty or oversized body."""


class StoredFileNotFoundError(LookupError):
    """No blob is stored under the requested handle."""


class LocalFileStorage:
    """Disk-backed blob store with single-use upload tickets.

    Tickets expire after ``ticket_ttl_seconds``. Spent and expired tickets are
    pruned whenever a new one is issued.

    Args:
        db: Initialized database manager
        upload_dir: Blob directory (defaults to settings.upload_dir)
        max_bytes: Largest accepted upload
        ticket_ttl_seconds: Ticket lifetime (defaults to settings.upload_ticket_ttl_seconds)
    """

    def __init__(
        self,
        db: DatabaseManager,
        upload_dir: Path | None = None,
        max_bytes: int = MAX_UPLOAD_BYTES,
        ticket_ttl_seconds: int | None = None,
    ):
        self.db = db
        self.upload_dir = upload_dir or settings.upload_dir
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        self.max_bytes = max_bytes
        self.ticket_ttl_seconds = ticket_ttl_seconds or settings.upload_ticket_ttl_seconds

    def _ticket_cutoff(self) -> float:
        return epoch_millis() - self.ticket_ttl_seconds * 1000.0

    def generate_upload_url(self, base_url: str = "") -> str:
        """Issue a ticket and return the URL the client should POST the file to."""
        token = uuid.uuid4().hex
        stale = delete(UploadTicketRow).where(
            or_(
                col(UploadTicketRow.used).is_(True),
                col(UploadTicketRow.creationTime) < self._ticket_cutoff(),
            )
        )
        with self.db.transaction() as session:
            session.connection().execute(stale)
            Repository[UploadTicketRow](session, UploadTicketRow).add(UploadTicketRow(token=token))
        return f"{base_url.rstrip('/')}{UPLOAD_ROUTE}/{token}"

    def store(self, token: str, data: bytes, content_type: str | None = None) -> str:
        """Consume an upload ticket and persist the blob.

        Returns:
            The storage handle of the new blob

        Raises:
            UploadRejectedError: Ticket unknown, used or expired, or body invalid
        """
        if not data:
            raise UploadRejectedError("Upload body is empty")
        if len(data) > self.max_bytes:
            raise UploadRejectedError(f"Upload exceeds {self.max_bytes} bytes")

        storage_id = uuid.uuid4().hex
        path = self.upload_dir / storage_id

        try:
            with self.db.transaction() as session:
                ticket = Repository[UploadTicketRow](session, UploadTicketRow).get(token)
                if ticket is None or ticket.used:
                    raise UploadRejectedError("Upload URL is invalid or has already been used")
                if ticket.creationTime < self._ticket_cutoff():
                    raise UploadRejectedError("Upload URL has expired")
                ticket.used = True
                session.add(ticket)
                path.write_bytes(data)
                session.add(
                    StoredFileRow(
                        storageId=storage_id,
                        contentType=content_type or "application/octet-stream",
                        size=len(data),
                    )
                )
        except Exception:
            path.unlink(missing_ok=True)
            raise

        logger.info(f"Stored upload {storage_id} ({len(data)} bytes)")
        return storage_id

    def open(self, storage_id: str) -> tuple[Path, str]:
        """Locate a stored blob.

        Returns:
            Tuple of (file path, content type)

        Raises:
            StoredFileNotFoundError: No such handle, or the blob is gone from disk
        """
        with self.db.session() as session:
            row = Repository[StoredFileRow](session, StoredFileRow).get(storage_id)
        path = self.upload_dir / storage_id
        if row is None or not path.is_file():
            raise StoredFileNotFoundError(storage_id)
        return path, row.contentType


async def read_upload(
    chunks: AsyncIterator[bytes],
    max_bytes: int,
    declared_length: str | None = None,
) -> bytes:
    """Collect a streamed upload body, refusing it once it passes ``max_bytes``.

    A declared ``Content-Length`` over the limit is refused before any chunk
    is read; otherwise reading stops at the first chunk that crosses it.

    Raises:
        UploadRejectedError: Body larger than ``max_bytes``
    """
    if declared_length and declared_length.isdigit() and int(declared_length) > max_bytes:
        raise UploadRejectedError(f"Upload exceeds {max_bytes} bytes")

    body = bytearray()
    async for chunk in chunks:
        body.extend(chunk)
        if len(body) > max_bytes:
            raise UploadRejectedError(f"Upload exceeds {max_bytes} bytes")
    return bytes(body)


__all__ = [
    "LocalFileStorage",
    "read_upload",
    "StoredFileNotFoundError",
    "UploadRejectedError",
    "MAX_UPLOAD_BYTES",
]
