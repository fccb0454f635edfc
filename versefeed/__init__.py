"""VerseFeed - public poetry feed with profiles, visitor counter and Razorpay checkout.

This package provides the backend of a poetry-sharing site: a public poem
feed stored in SQLite, user profiles, a global visitor counter, profile
picture uploads and a stateless bridge to the Razorpay payment API, served
over HTTP with FastAPI.

Example:
    >>> from versefeed import DatabaseManager, PoemService
    >>>
    >>> db = DatabaseManager()
    >>> db.initialize()
    >>> poems = PoemService(db)
    >>> feed = poems.list_public_poems()
"""

__version__ = "0.1.0"

from versefeed.config import settings
from versefeed.database import DatabaseManager
from versefeed.models import (
    CreatePoemRequest,
    Poem,
    PoemRow,
    UpdateProfileRequest,
    UserProfile,
    UserProfileRow,
    UserRow,
)
from versefeed.payments import PaymentBridge
from versefeed.services import PoemService, ProfileService, VisitorService

__all__ = [
    "__version__",
    # Main components
    "DatabaseManager",
    "PoemService",
    "ProfileService",
    "VisitorService",
    "PaymentBridge",
    # Configuration
    "settings",
    # Pydantic models
    "Poem",
    "UserProfile",
    "CreatePoemRequest",
    "UpdateProfileRequest",
    # SQLModel tables
    "PoemRow",
    "UserRow",
    "UserProfileRow",
]
