"""Tests for bearer-token identity resolution."""

from datetime import timedelta

from jose import jwt

from versefeed.identity import TokenIdentityResolver
from versefeed.interfaces import IIdentityResolver


def test_round_trip(resolver):
    token = resolver.issue(7)

    assert resolver.resolve(f"Bearer {token}") == 7


def test_scheme_is_case_insensitive(resolver):
    token = resolver.issue(7)

    assert resolver.resolve(f"bearer {token}") == 7


def test_missing_header_is_anonymous(resolver):
    assert resolver.resolve(None) is None
    assert resolver.resolve("") is None
    assert resolver.resolve("Bearer ") is None


def test_other_schemes_are_anonymous(resolver):
    assert resolver.resolve("Basic dXNlcjpwYXNz") is None


def test_wrong_secret_is_anonymous(resolver):
    token = TokenIdentityResolver(secret_key="another-secret-0123456789").issue(7)

    assert resolver.resolve(f"Bearer {token}") is None


def test_expired_token_is_anonymous(resolver):
    token = resolver.issue(7, ttl=timedelta(seconds=-60))

    assert resolver.resolve(f"Bearer {token}") is None


def test_garbage_token_is_anonymous(resolver):
    assert resolver.resolve("Bearer not-a-jwt") is None


def test_non_numeric_subject_is_anonymous(resolver):
    token = jwt.encode({"sub": "ada"}, "test-secret-key-0123456789", algorithm="HS256")

    assert resolver.resolve(f"Bearer {token}") is None


def test_satisfies_protocol(resolver):
    assert isinstance(resolver, IIdentityResolver)
