"""Pytest configuration and shared fixtures for VerseFeed tests."""

import json
import os
import sys
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any, Generator

# Settings and the logger are built at import time
os.environ["ENVIRONMENT"] = "testing"
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="versefeed-test-"))
os.environ["AUTH_SECRET_KEY"] = "test-secret-key-0123456789"
os.environ.pop("RAZORPAY_KEY_ID", None)
os.environ.pop("RAZORPAY_KEY_SECRET", None)

import httpx
import pytest
from fastapi.testclient import TestClient
from loguru import logger

from versefeed.config import Settings
from versefeed.database import DatabaseManager
from versefeed.identity import TokenIdentityResolver
from versefeed.models import UserRow
from versefeed.payments import PaymentBridge
from versefeed.server import create_app
from versefeed.storage import LocalFileStorage

TEST_SECRET = "test-secret-key-0123456789"


# =============================================================================
# Test Configuration
# =============================================================================


@pytest.fixture(scope="function", autouse=True)
def reset_loguru():
    """Reset loguru handlers before each test to prevent I/O errors."""
    logger.remove()
    logger.add(
        sys.stderr,
        level="ERROR",
        format="{time} {level} {message}",
        catch=True,
    )
    yield
    logger.remove()


@pytest.fixture
def payment_settings(tmp_path: Path) -> Settings:
    """Settings with Razorpay test credentials configured."""
    return Settings(
        razorpay_key_id="rzp_test_1234567890abcd",
        razorpay_key_secret="secret_0123456789",
        razorpay_api_base="https://razorpay.test/v1",
        data_dir=tmp_path,
    )


@pytest.fixture
def unconfigured_settings(tmp_path: Path) -> Settings:
    """Settings without payment credentials."""
    return Settings(
        razorpay_key_id=None,
        razorpay_key_secret=None,
        razorpay_api_base="https://razorpay.test/v1",
        data_dir=tmp_path,
    )


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def db(tmp_path: Path) -> Generator[DatabaseManager, None, None]:
    """Initialized database manager on a temporary SQLite file."""
    manager = DatabaseManager(database_path=tmp_path / "versefeed.db")
    manager.initialize()

    yield manager

    manager.close()


@pytest.fixture
def ada(db: DatabaseManager) -> UserRow:
    """User with both a name and an email."""
    return db.create_user(name="Ada Lovelace", email="ada@example.com")


@pytest.fixture
def email_only_user(db: DatabaseManager) -> UserRow:
    """User that has an email but never set a name."""
    return db.create_user(name=None, email="grace@example.com")


@pytest.fixture
def storage(db: DatabaseManager, tmp_path: Path) -> LocalFileStorage:
    """Local file storage rooted in a temporary directory."""
    return LocalFileStorage(db, upload_dir=tmp_path / "uploads", max_bytes=1024)


# =============================================================================
# Identity Fixtures
# =============================================================================


@pytest.fixture
def resolver() -> TokenIdentityResolver:
    """Token resolver sharing the test secret."""
    return TokenIdentityResolver(secret_key=TEST_SECRET)


@pytest.fixture
def auth_headers(resolver: TokenIdentityResolver) -> Callable[[int], dict[str, str]]:
    """Factory for Authorization headers carrying a valid token."""

    def _headers(user_id: int) -> dict[str, str]:
        return {"Authorization": f"Bearer {resolver.issue(user_id)}"}

    return _headers


# =============================================================================
# Razorpay Fakes
# =============================================================================


class RazorpayRecorder:
    """Fake Razorpay API backed by ``httpx.MockTransport``.

    Records every request and answers with the configured status and body.
    """

    def __init__(self, status_code: int = 200, body: Any = None, raw: bytes | None = None):
        self.status_code = status_code
        self.body = body
        self.raw = raw
        self.requests: list[httpx.Request] = []
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raw is not None:
            return httpx.Response(self.status_code, content=self.raw)
        return httpx.Response(self.status_code, json=self.body)

    @property
    def last_json(self) -> dict[str, Any]:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def razorpay_factory() -> type[RazorpayRecorder]:
    """The fake Razorpay class, for tests that need a specific answer."""
    return RazorpayRecorder


@pytest.fixture
def razorpay_ok() -> RazorpayRecorder:
    """Fake Razorpay that accepts every request."""
    return RazorpayRecorder(200, {"id": "order_TEST123", "status": "created", "amount": 49900})


# =============================================================================
# HTTP Fixtures
# =============================================================================


@pytest.fixture
def client(
    db: DatabaseManager,
    resolver: TokenIdentityResolver,
    storage: LocalFileStorage,
    unconfigured_settings: Settings,
) -> Generator[TestClient, None, None]:
    """TestClient for an app wired to the temporary database.

    Payments are unconfigured; payment route tests build their own app.
    """
    app = create_app(
        db=db,
        identity=resolver,
        storage=storage,
        payments=PaymentBridge(config=unconfigured_settings),
    )
    with TestClient(app) as test_client:
        yield test_client
