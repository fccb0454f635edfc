"""Tests for the generic repository."""

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from versefeed.models import PoemRow, UserRow
from versefeed.repository import Repository


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def test_engine():
    """Create in-memory SQLite engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture
def test_session(test_engine):
    """Create a test session."""
    with Session(test_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def poems(test_session):
    """Repository for PoemRow."""
    return Repository[PoemRow](test_session, PoemRow)


def _poem(title: str, created: float, is_public: bool = True) -> PoemRow:
    return PoemRow(title=title, content="...", isPublic=is_public, creationTime=created)


# =============================================================================
# Repository Core Tests
# =============================================================================


def test_create_assigns_id(poems):
    poem = poems.create(_poem("Dawn", 1.0))

    assert poem.id is not None
    assert poems.exists(poem.id)


def test_get_missing_returns_none(poems):
    assert poems.get(999) is None
    assert not poems.exists(999)


def test_add_does_not_commit(poems, test_session):
    poems.add(_poem("Draft", 1.0))
    test_session.flush()

    assert poems.count() == 1

    test_session.rollback()

    assert poems.count() == 0


def test_find_by_filters(poems):
    poems.create(_poem("Public", 1.0))
    poems.create(_poem("Private", 2.0, is_public=False))

    public = poems.find_by(isPublic=True)

    assert [p.title for p in public] == ["Public"]


def test_first_by(test_session):
    users = Repository[UserRow](test_session, UserRow)
    users.create(UserRow(name="Ada", email="ada@example.com"))

    assert users.first_by(email="ada@example.com").name == "Ada"
    assert users.first_by(email="nobody@example.com") is None


def test_find_ordered(poems):
    poems.create(_poem("Old", 1.0))
    poems.create(_poem("New", 3.0))
    poems.create(_poem("Middle", 2.0))

    ordered = poems.find_ordered(PoemRow.creationTime.desc(), isPublic=True)

    assert [p.title for p in ordered] == ["New", "Middle", "Old"]


def test_count_with_filters(poems):
    poems.create(_poem("A", 1.0))
    poems.create(_poem("B", 2.0, is_public=False))

    assert poems.count() == 2
    assert poems.count(isPublic=False) == 1


def test_unknown_column_rejected(poems):
    with pytest.raises(AttributeError):
        poems.find_by(nonexistent="x")
