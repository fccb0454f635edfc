"""Identity resolution for inbound requests.

The auth provider is an external collaborator: it issues signed bearer
tokens whose ``sub`` claim is the user's id. This module only verifies
those tokens and turns them into an opaque user id, or None for anonymous
callers. A malformed, expired or wrongly-signed token is treated exactly
like a missing one.

Example:
    >>> resolver = TokenIdentityResolver()
    >>> resolver.resolve("Bearer eyJhbGciOi...")
    7
    >>> resolver.resolve(None) is None
    True
"""

from datetime import timedelta
from typing import Any, Optional

from jose import JWTError, jwt

from versefeed.config import settings
from versefeed.logging import logger
from versefeed.utils import utc_now

BEARER_PREFIX = "bearer "


class TokenIdentityResolver:
    """Verify HS256 bearer tokens and extract the caller's user id.

    Args:
        secret_key: Verification key (defaults to settings.auth_secret_key)
        algorithm: JWT algorithm (defaults to settings.auth_algorithm)
    """

    def __init__(self, secret_key: str | None = None, algorithm: str | None = None):
        self._secret_key = secret_key or settings.auth_secret_key
        self._algorithm = algorithm or settings.auth_algorithm

    def resolve(self, authorization: Optional[str]) -> Optional[int]:
        """Resolve an ``Authorization`` header value to a user id.

        Args:
            authorization: Raw header value, e.g. ``"Bearer <token>"``

        Returns:
            The user id, or None for anonymous callers
        """
        if not authorization or not authorization.lower().startswith(BEARER_PREFIX):
            return None

        token = authorization[len(BEARER_PREFIX):].strip()
        if not token:
            return None

        try:
            claims = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except JWTError as exc:
            logger.debug(f"Rejected bearer token: {exc}")
            return None

        subject = claims.get("sub")
        try:
            return int(subject)
        except (TypeError, ValueError):
            logger.debug(f"Bearer token has non-numeric subject: {subject!r}")
            return None

    def issue(self, user_id: int, ttl: timedelta | None = None) -> str:
        """Mint a token for ``user_id``.

        Used by the ``versefeed token`` developer command and by tests; real
        deployments get tokens from the auth provider.
        """
        expires = utc_now() + (ttl or timedelta(minutes=settings.auth_token_ttl_minutes))
        claims: dict[str, Any] = {"sub": str(user_id), "exp": int(expires.timestamp())}
        return jwt.encode(claims, self._secret_key, algorithm=self._algorithm)


__all__ = ["TokenIdentityResolver"]
