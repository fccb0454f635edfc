"""Query and mutation services.

Each public method is one logical operation of the API surface. Services
take the caller's resolved user id (or None for anonymous callers) and
apply the access rule:

* profile mutations require a caller (``AuthorizationError`` otherwise);
* profile reads return None for anonymous callers;
* poem creation and visitor counting fall back to the anonymous path.

Example:
    >>> poems = PoemService(db)
    >>> poem_id = poems.create_poem(
    ...     CreatePoemRequest(title="Dawn", content="light...", isPublic=True),
    ...     user_id=None,
    ... )
    >>> [p.title for p in poems.list_public_poems()]
    ['Dawn']
"""

from typing import Optional

from versefeed.database import DatabaseManager
from versefeed.logging import logger
from versefeed.metrics import (
    errors_total,
    poems_created_total,
    profile_updates_total,
    visitor_increments_total,
)
from versefeed.models import (
    CreatePoemRequest,
    Poem,
    PoemRow,
    UpdateProfileRequest,
    UserProfile,
    UserRow,
)
from versefeed.repository import Repository
from versefeed.utils import ANONYMOUS, derive_username, display_author_name

# =============================================================================
# Custom Exceptions
# =============================================================================


class AuthorizationError(Exception):
    """The operation requires an authenticated caller."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class ProfileUpdateError(Exception):
    """A step of the profile update failed; no write was kept."""


# =============================================================================
# Poems
# =============================================================================


class PoemService:
    """Public feed and poem creation."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    def list_public_poems(self) -> list[Poem]:
        """All public poems, newest first, unbounded."""
        return [Poem.from_row(row) for row in self.db.list_public_poems()]

    def create_poem(self, request: CreatePoemRequest, user_id: Optional[int]) -> int:
        """Store a poem and return its id.

        ``authorName`` is a snapshot of the author's name (or email) at this
        moment; later renames do not touch existing poems.
        """
        author_id = None
        author_name = ANONYMOUS
        username = request.username or ANONYMOUS

        if user_id is not None:
            user = self.db.get_user(user_id)
            if user is not None:
                author_id = user.id
                author_name = display_author_name(user.name, user.email)
                if request.username is None:
                    username = derive_username(user.name, user.email)
            else:
                logger.warning(f"createPoem: user {user_id} not found, posting anonymously")

        row = self.db.insert_poem(
            PoemRow(
                title=request.title,
                content=request.content,
                authorId=author_id,
                authorName=author_name,
                username=username,
                isPublic=request.isPublic,
            )
        )
        poems_created_total.labels(
            visibility="public" if row.isPublic else "private",
            author="user" if author_id is not None else "anonymous",
        ).inc()
        logger.info(f"Created poem {row.id} by {username!r}")
        return row.id


# =============================================================================
# Profiles
# =============================================================================


class ProfileService:
    """Merged profile reads and the two-step profile update."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    def get_user_profile(self, user_id: Optional[int]) -> Optional[UserProfile]:
        """Merged user + profile view.

        Returns None for anonymous callers and for ids without a user row.
        A user who never edited their profile gets empty defaults.
        """
        if user_id is None:
            return None
        user, profile = self.db.get_user_with_profile(user_id)
        if user is None:
            return None
        return UserProfile.merge(user, profile)

    def update_profile(self, request: UpdateProfileRequest, user_id: Optional[int]) -> dict[str, bool]:
        """Rename the user and upsert their profile in one transaction.

        Raises:
            AuthorizationError: Caller is anonymous
            ProfileUpdateError: Either write failed; both were rolled back
        """
        if user_id is None:
            logger.warning("updateProfile: not authenticated")
            raise AuthorizationError()

        logger.debug(f"updateProfile: starting for user {user_id}")

        try:
            with self.db.transaction() as session:
                self._rename_user(session, user_id, request.username)
                logger.debug("updateProfile: user name staged")

                try:
                    self.db.upsert_profile(
                        session,
                        user_id=user_id,
                        text_fields=request.profile_text_fields(),
                        profile_picture=request.profilePicture,
                        set_profile_picture=request.sets_profile_picture,
                    )
                except Exception as exc:
                    raise ProfileUpdateError(f"Failed to update profile data: {exc}") from exc
                logger.debug("updateProfile: profile row staged")
        except ProfileUpdateError:
            errors_total.labels(error_type="ProfileUpdateError", component="profiles").inc()
            profile_updates_total.labels(status="error").inc()
            logger.exception(f"updateProfile: rolled back for user {user_id}")
            raise

        profile_updates_total.labels(status="success").inc()
        logger.info(f"Updated profile for user {user_id}")
        return {"success": True}

    @staticmethod
    def _rename_user(session, user_id: int, username: str) -> None:
        try:
            user = Repository[UserRow](session, UserRow).get(user_id)
            if user is None:
                raise LookupError(f"user {user_id} does not exist")
            user.name = username
            session.add(user)
            session.flush()
        except Exception as exc:
            raise ProfileUpdateError(f"Failed to update user name: {exc}") from exc


# =============================================================================
# Visitor Counter
# =============================================================================


class VisitorService:
    """Global page-load counter."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    def get_visitor_count(self) -> int:
        return self.db.get_visitor_count()

    def increment_visitor_count(self) -> int:
        count = self.db.increment_visitor_count()
        visitor_increments_total.inc()
        return count


__all__ = [
    "AuthorizationError",
    "ProfileUpdateError",
    "PoemService",
    "ProfileService",
    "VisitorService",
]
