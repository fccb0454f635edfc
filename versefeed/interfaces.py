"""Protocol interfaces for dependency injection.

This module defines Protocol interfaces for the collaborators the HTTP
layer is wired with. ``create_app`` accepts any object satisfying these
contracts, so tests can swap in fakes without inheritance.

Example:
    >>> from versefeed.interfaces import IIdentityResolver
    >>> class FixedIdentity:
    ...     def resolve(self, authorization):
    ...         return 7
    >>> isinstance(FixedIdentity(), IIdentityResolver)  # True, structural typing!
"""

from contextlib import AbstractContextManager
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

from sqlmodel import Session


@runtime_checkable
class IIdentityResolver(Protocol):
    """Turns an ``Authorization`` header into a user id.

    Implementations must return None for anonymous callers and for any
    credential they cannot verify; they never raise for bad input.
    """

    def resolve(self, authorization: Optional[str]) -> Optional[int]:
        """Resolve a raw header value to a user id, or None."""
        ...


@runtime_checkable
class IFileStorage(Protocol):
    """Blob store for profile pictures."""

    max_bytes: int

    def generate_upload_url(self, base_url: str = "") -> str:
        """Return a single-use URL the client uploads one file to."""
        ...

    def store(self, token: str, data: bytes, content_type: str | None = None) -> str:
        """Consume an upload ticket, persist the blob, return its storage handle."""
        ...

    def open(self, storage_id: str) -> tuple[Path, str]:
        """Return (path, content type) of a stored blob."""
        ...


@runtime_checkable
class IPaymentBridge(Protocol):
    """Relays checkout requests to the payment processor."""

    async def create_order(self, body: Any) -> dict[str, Any]:
        """Create a one-off order and return the processor's JSON."""
        ...

    async def create_subscription(self, body: Any) -> dict[str, Any]:
        """Create a recurring subscription and return the processor's JSON."""
        ...


@runtime_checkable
class IDatabaseManager(Protocol):
    """Database lifecycle and unit-of-work scopes."""

    def initialize(self) -> None:
        """Create the engine, tables and indexes."""
        ...

    def close(self) -> None:
        """Dispose of the engine."""
        ...

    def ping(self) -> bool:
        """True when the database answers a trivial query."""
        ...

    def session(self) -> AbstractContextManager[Session]:
        """Read-only session scope."""
        ...

    def transaction(self) -> AbstractContextManager[Session]:
        """Session scope that commits on success and rolls back on error."""
        ...


__all__ = [
    "IIdentityResolver",
    "IFileStorage",
    "IPaymentBridge",
    "IDatabaseManager",
]
