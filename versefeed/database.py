"""Database operations for VerseFeed.

This module provides SQLite database management with:
- Engine setup with WAL mode and foreign-key enforcement
- Schema and index creation
- Session and transaction scopes (one unit of work per operation)
- Atomic store primitives for the visitor counter and profile upsert

Example:
    >>> from versefeed.database import DatabaseManager
    >>>
    >>> db = DatabaseManager()
    >>> db.initialize()
    >>>
    >>> db.increment_visitor_count()
    1
    >>> with db.transaction() as session:
    ...     db.upsert_profile(session, user_id=1, text_fields={"bio": "hi"})
    >>>
    >>> db.close()
"""

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from versefeed.config import settings
from versefeed.logging import logger
from versefeed.models import (
    VISITOR_COUNTER_ID,
    PoemRow,
    StoredFileRow,
    UserProfileRow,
    UserRow,
    VisitorCounterRow,
)
from versefeed.repository import Repository
from versefeed.utils import epoch_millis

IN_MEMORY = ":memory:"

INDEX_STATEMENTS = (
    # Feed: WHERE isPublic = 1 ORDER BY creationTime DESC
    """
    CREATE INDEX IF NOT EXISTS idx_poem_public_created
    ON poemrow(isPublic, creationTime DESC)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_poem_author
    ON poemrow(authorId)
    """,
)


def _enable_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.close()


# =============================================================================
# Database Manager
# =============================================================================


class DatabaseManager:
    """Manages SQLite database operations.

    Every public read opens its own short-lived session; writes that must be
    atomic as a unit go through ``transaction()``.

    Args:
        database_path: Path to SQLite database file (defaults to settings.database_path)
    """

    def __init__(self, database_path: Path | str | None = None):
        self.database_path = Path(database_path) if database_path else settings.database_path
        self.engine = None

    @property
    def is_memory(self) -> bool:
        return str(self.database_path) == IN_MEMORY

    def initialize(self) -> None:
        """Initialize database engine and create tables.

        This method:
        1. Creates the database file's parent directory
        2. Creates all tables from SQLModel
        3. Enables WAL mode for file databases
        4. Creates indexes for the feed query
        """
        if self.is_memory:
            # One shared connection, otherwise every session sees an empty database
            self.engine = create_engine(
                f"sqlite:///{IN_MEMORY}",
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.database_path.parent.mkdir(parents=True, exist_ok=True)
            self.engine = create_engine(
                f"sqlite:///{self.database_path}",
                echo=False,
                connect_args={"check_same_thread": False},
            )

        event.listen(self.engine, "connect", _enable_foreign_keys)

        SQLModel.metadata.create_all(self.engine)

        if not self.is_memory:
            with self.engine.connect() as conn:
                conn.exec_driver_sql("PRAGMA journal_mode = WAL;")
                conn.exec_driver_sql("PRAGMA synchronous = NORMAL;")
                conn.commit()

        self.create_indexes()

        logger.info(f"Database initialized at {self.database_path}")

    def create_indexes(self) -> None:
        """Create database indexes for query performance."""
        engine = self._require_engine()

        with engine.connect() as conn:
            for statement in INDEX_STATEMENTS:
                conn.execute(text(statement))
            conn.commit()

        logger.debug("Database indexes created")

    def close(self) -> None:
        """Dispose of the engine and its pooled connections."""
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None

    def _require_engine(self):
        if self.engine is None:
            raise RuntimeError("Database not initialized")
        return self.engine

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Open a session for reads. Nothing is committed."""
        with Session(self._require_engine()) as session:
            yield session

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Open a session whose writes commit together or not at all."""
        session = Session(self._require_engine(), expire_on_commit=False)
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def ping(self) -> bool:
        """Run a trivial query; True when the database answers."""
        with self._require_engine().connect() as conn:
            return conn.execute(text("SELECT 1")).scalar_one() == 1

    # =========================================================================
    # User Operations
    # =========================================================================

    def create_user(self, name: str | None = None, email: str | None = None) -> UserRow:
        """Insert an identity record (used for seeding and tests).

        Example:
            >>> user = db.create_user(name="Ada", email="ada@example.com")
            >>> user.id
            1
        """
        with self.transaction() as session:
            user = Repository[UserRow](session, UserRow).add(UserRow(name=name, email=email))
            session.flush()
            session.refresh(user)
        return user

    def get_user(self, user_id: int) -> UserRow | None:
        with self.session() as session:
            return Repository[UserRow](session, UserRow).get(user_id)

    def get_user_with_profile(
        self, user_id: int
    ) -> tuple[UserRow | None, UserProfileRow | None]:
        """Load a user and their profile row (either may be missing)."""
        with self.session() as session:
            user = Repository[UserRow](session, UserRow).get(user_id)
            if user is None:
                return None, None
            profile = Repository[UserProfileRow](session, UserProfileRow).first_by(
                userId=user_id
            )
            return user, profile

    # =========================================================================
    # Poem Operations
    # =========================================================================

    def insert_poem(self, poem: PoemRow) -> PoemRow:
        """Insert a poem and return it with its assigned id and creation time."""
        with self.transaction() as session:
            Repository[PoemRow](session, PoemRow).add(poem)
            session.flush()
            session.refresh(poem)
        return poem

    def list_public_poems(self) -> list[PoemRow]:
        """All public poems, newest first. Unbounded."""
        with self.session() as session:
            rows = Repository[PoemRow](session, PoemRow).find_ordered(
                PoemRow.creationTime.desc(),
                PoemRow.id.desc(),
                isPublic=True,
            )
            return list(rows)

    # =========================================================================
    # Profile Operations
    # =========================================================================

    def upsert_profile(
        self,
        session: Session,
        user_id: int,
        text_fields: dict[str, str],
        profile_picture: str | None = None,
        set_profile_picture: bool = False,
    ) -> None:
        """Insert or update the user's profile row in one statement.

        Runs inside the caller's transaction. On insert an unset avatar is
        stored as None; on update the avatar is only touched when
        ``set_profile_picture`` is true.

        Args:
            session: Session of the enclosing transaction
            user_id: Owner of the profile
            text_fields: bio/instagram/twitter values, already normalized
            profile_picture: Storage handle or None
            set_profile_picture: Whether the avatar should be written on update
        """
        insert_values: dict[str, Any] = {
            "userId": user_id,
            "bio": text_fields.get("bio", ""),
            "instagram": text_fields.get("instagram", ""),
            "twitter": text_fields.get("twitter", ""),
            "profilePicture": profile_picture if set_profile_picture else None,
            "creationTime": epoch_millis(),
        }
        update_values: dict[str, Any] = {
            "bio": insert_values["bio"],
            "instagram": insert_values["instagram"],
            "twitter": insert_values["twitter"],
        }
        if set_profile_picture:
            update_values["profilePicture"] = profile_picture

        stmt = (
            sqlite_insert(UserProfileRow)
            .values(**insert_values)
            .on_conflict_do_update(index_elements=["userId"], set_=update_values)
        )
        session.connection().execute(stmt)

    # =========================================================================
    # Visitor Counter Operations
    # =========================================================================

    def get_visitor_count(self) -> int:
        """Current count, or 0 when the counter was never incremented."""
        with self.session() as session:
            counter = Repository[VisitorCounterRow](session, VisitorCounterRow).get(
                VISITOR_COUNTER_ID
            )
            return counter.count if counter else 0

    def increment_visitor_count(self) -> int:
        """Atomically create-or-increment the singleton counter.

        Returns:
            The count after this increment
        """
        table = VisitorCounterRow.__table__
        stmt = (
            sqlite_insert(table)
            .values(id=VISITOR_COUNTER_ID, count=1)
            .on_conflict_do_update(
                index_elements=["id"],
                set_={"count": table.c["count"] + 1},
            )
            .returning(table.c["count"])
        )
        with self.transaction() as session:
            return int(session.connection().execute(stmt).scalar_one())

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_statistics(self) -> dict[str, int]:
        """Entity counts used by `versefeed status` and the health check."""
        with self.session() as session:
            poems = Repository[PoemRow](session, PoemRow)
            return {
                "users": Repository[UserRow](session, UserRow).count(),
                "profiles": Repository[UserProfileRow](session, UserProfileRow).count(),
                "poems": poems.count(),
                "public_poems": poems.count(isPublic=True),
                "files": Repository[StoredFileRow](session, StoredFileRow).count(),
                "visitors": self.get_visitor_count(),
            }


__all__ = ["DatabaseManager"]
