"""Data models for VerseFeed.

This module defines both SQLModel ORM models (for database persistence)
and Pydantic models (for request validation and API responses).

Models are organized into three sections:
1. SQLModel tables for database persistence
2. Pydantic request models for the mutation surface
3. Pydantic view models returned by queries
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field as PydanticField, field_validator
from sqlmodel import Field, SQLModel

from versefeed.utils import ANONYMOUS, epoch_millis

# Singleton key of the visitor counter row
VISITOR_COUNTER_ID = 1

# Largest order amount accepted, in rupees
MAX_ORDER_AMOUNT = 10_000_000

# =============================================================================
# Section 1: SQLModel Tables
# =============================================================================


class UserRow(SQLModel, table=True):
    """Identity record owned by the auth collaborator.

    This system only reads it and patches ``name`` on profile updates.

    Attributes:
        id: Auto-incremented primary key (the opaque user id)
        name: Display name, optional
        email: Email address, optional
        creationTime: Epoch milliseconds at insert
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    name: Optional[str] = None
    email: Optional[str] = Field(default=None, index=True)
    creationTime: float = Field(default_factory=epoch_millis)


class UserProfileRow(SQLModel, table=True):
    """Extended profile attributes, one row per user.

    The unique index on ``userId`` makes "at most one profile per user" a
    database constraint and is the conflict target of the profile upsert.

    Attributes:
        id: Auto-incremented primary key
        userId: FK to UserRow.id (unique)
        bio: Free-text bio, ``""`` when unset
        instagram: Instagram handle, ``""`` when unset
        twitter: Twitter/X handle, ``""`` when unset
        profilePicture: Storage handle of the avatar, or None
        creationTime: Epoch milliseconds at insert
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    userId: int = Field(foreign_key="userrow.id", unique=True, index=True)
    bio: str = ""
    instagram: str = ""
    twitter: str = ""
    profilePicture: Optional[str] = None
    creationTime: float = Field(default_factory=epoch_millis)


class PoemRow(SQLModel, table=True):
    """Persisted poem. Immutable once inserted.

    Attributes:
        id: Auto-incremented primary key
        title: Poem title
        content: Poem body, may span multiple lines
        authorId: FK to UserRow.id, None for anonymous submissions
        authorName: Author display name captured at creation time
        username: Display handle supplied by the poster
        isPublic: Feed visibility flag (indexed)
        creationTime: Epoch milliseconds at insert, the feed sort key
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    content: str
    authorId: Optional[int] = Field(default=None, foreign_key="userrow.id")
    authorName: str = ANONYMOUS
    username: str = ANONYMOUS
    isPublic: bool = Field(default=True, index=True)
    creationTime: float = Field(default_factory=epoch_millis, index=True)


class VisitorCounterRow(SQLModel, table=True):
    """Global page-load counter.

    The primary key is pinned to ``VISITOR_COUNTER_ID`` so the table can
    never hold more than one row.
    """

    id: int = Field(default=VISITOR_COUNTER_ID, primary_key=True)
    count: int = 0


class StoredFileRow(SQLModel, table=True):
    """Metadata for a blob held by the local file store.

    Attributes:
        storageId: Opaque storage handle (primary key)
        contentType: MIME type reported at upload
        size: Size in bytes
        creationTime: Epoch milliseconds at upload
    """

    storageId: str = Field(primary_key=True)
    contentType: str = "application/octet-stream"
    size: int = 0
    creationTime: float = Field(default_factory=epoch_millis)


class UploadTicketRow(SQLModel, table=True):
    """Single-use upload authorization issued by ``generateUploadUrl``."""

    token: str = Field(primary_key=True)
    used: bool = False
    creationTime: float = Field(default_factory=epoch_millis)


# =============================================================================
# Section 2: Request Models
# =============================================================================


def _require_text(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be blank")
    return value.strip()


def _loose_text(value: Any) -> Optional[str]:
    """Empty or falsy values become None; anything else its stripped string form."""
    if not value:
        return None
    text = value if isinstance(value, str) else str(value)
    return text.strip() or None


class CreatePoemRequest(BaseModel):
    """Arguments of ``createPoem``.

    Title and content must be non-blank; a blank username means "not given".
    """

    model_config = ConfigDict(extra="ignore")

    title: str = PydanticField(..., min_length=1, max_length=200)
    content: str = PydanticField(..., min_length=1, max_length=10_000)
    isPublic: bool
    username: Optional[str] = PydanticField(None, max_length=50)

    @field_validator("title", "content")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        return _require_text(v)

    @field_validator("username")
    @classmethod
    def _blank_username_is_missing(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()


class UpdateProfileRequest(BaseModel):
    """Arguments of ``updateProfile``.

    ``bio``, ``instagram`` and ``twitter`` are always written (omitted or
    blank clears them). ``profilePicture`` is written only when present in
    the request, so callers can keep the current avatar by omitting it.
    """

    model_config = ConfigDict(extra="ignore")

    username: str = PydanticField(..., min_length=1, max_length=50)
    bio: Optional[str] = PydanticField(None, max_length=500)
    instagram: Optional[str] = PydanticField(None, max_length=100)
    twitter: Optional[str] = PydanticField(None, max_length=100)
    profilePicture: Optional[str] = None

    @field_validator("username")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        return _require_text(v)

    @property
    def sets_profile_picture(self) -> bool:
        """True when the caller explicitly passed ``profilePicture``."""
        return "profilePicture" in self.model_fields_set

    def profile_text_fields(self) -> dict[str, str]:
        """Text fields normalized for storage: unset or blank becomes ``""``."""
        return {
            "bio": (self.bio or "").strip(),
            "instagram": (self.instagram or "").strip(),
            "twitter": (self.twitter or "").strip(),
        }


class OrderRequest(BaseModel):
    """Body of ``POST /create-razorpay-order``. Amount is in rupees."""

    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    amount: float = PydanticField(..., gt=0, le=MAX_ORDER_AMOUNT)
    currency: Optional[str] = PydanticField(None, min_length=3, max_length=3)
    plan: Optional[str] = None

    @field_validator("currency", "plan", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> Optional[str]:
        return _loose_text(v)


class SubscriptionRequest(BaseModel):
    """Body of ``POST /create-razorpay-subscription``.

    The plan identifier may arrive under any of three keys; the first truthy
    one wins. Non-string values are kept in their string form.
    """

    model_config = ConfigDict(extra="ignore")

    planId: Optional[str] = None
    plan_id: Optional[str] = None
    plan: Optional[str] = None

    @field_validator("planId", "plan_id", "plan", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> Optional[str]:
        return _loose_text(v)

    @property
    def plan_identifier(self) -> Optional[str]:
        """First non-empty of ``planId``, ``plan_id``, ``plan``."""
        return self.planId or self.plan_id or self.plan


# =============================================================================
# Section 3: View Models
# =============================================================================


class Poem(BaseModel):
    """Poem as returned by the feed."""

    id: int
    title: str
    content: str
    authorId: Optional[int] = None
    authorName: str
    username: str
    isPublic: bool
    creationTime: float

    @classmethod
    def from_row(cls, row: PoemRow) -> "Poem":
        """Create a Poem view from its table row."""
        return cls(
            id=row.id,
            title=row.title,
            content=row.content,
            authorId=row.authorId,
            authorName=row.authorName,
            username=row.username,
            isPublic=row.isPublic,
            creationTime=row.creationTime,
        )


class UserProfile(BaseModel):
    """User identity merged with the extended profile.

    Profile fields default to ``""`` (text) and None (avatar) when the user
    has never edited their profile.
    """

    id: int
    name: Optional[str] = None
    email: Optional[str] = None
    creationTime: float
    bio: str = ""
    instagram: str = ""
    twitter: str = ""
    profilePicture: Optional[str] = None

    @classmethod
    def merge(cls, user: UserRow, profile: Optional[UserProfileRow]) -> "UserProfile":
        """Merge a user row with its (possibly missing) profile row."""
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            creationTime=user.creationTime,
            bio=(profile.bio if profile else "") or "",
            instagram=(profile.instagram if profile else "") or "",
            twitter=(profile.twitter if profile else "") or "",
            profilePicture=(profile.profilePicture if profile else None) or None,
        )


class SubscriptionPlan(BaseModel):
    """Entry of the paid-tier catalog."""

    key: str
    name: str
    price: int
    currency: str = "INR"
    interval: str = "monthly"
    description: str
    planId: str
    features: list[str] = PydanticField(default_factory=list)


SUBSCRIPTION_PLANS: tuple[SubscriptionPlan, ...] = (
    SubscriptionPlan(
        key="poet",
        name="Poet",
        price=499,
        description="Basic plan for poets.",
        planId="plan_Qjb7LgzjcDPb9e",
        features=["Unlimited poems", "Advanced analytics", "Custom themes", "Ad-free experience"],
    ),
    SubscriptionPlan(
        key="patron",
        name="Patron",
        price=599,
        description="Premium plan with extra features.",
        planId="plan_Qjb8cWcJvA2OG2",
        features=["All Poet features", "Featured profile", "Early access to features", "Priority support"],
    ),
)


__all__ = [
    "VISITOR_COUNTER_ID",
    "UserRow",
    "UserProfileRow",
    "PoemRow",
    "VisitorCounterRow",
    "StoredFileRow",
    "UploadTicketRow",
    "CreatePoemRequest",
    "UpdateProfileRequest",
    "OrderRequest",
    "SubscriptionRequest",
    "Poem",
    "UserProfile",
    "SubscriptionPlan",
    "SUBSCRIPTION_PLANS",
    "SQLModel",
]
