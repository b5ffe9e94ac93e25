"""
Bearer-token authentication for the companion gateway.

Tokens are opaque 256-bit random strings handed to a client once
(``companion token issue``). Only their SHA-256 hash is persisted, and only a
short hash prefix ever appears in logs.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from datetime import timedelta

from companion.storage.store import Store
from companion.utils.logging import get_logger
from companion.utils.timestamps import parse_timestamp, utcnow

logger = get_logger("auth")

# Token length (256-bit)
TOKEN_BYTES = 32


class AuthError(Exception):
    """Missing, malformed, unknown or expired bearer credential."""

    pass


@dataclass
class AuthManager:
    """Issues and verifies bearer tokens against the store."""

    token_ttl_seconds: int = 30 * 24 * 3600

    def issue_token(self, store: Store, user_id: str) -> str:
        """Create a token for ``user_id`` and return the raw value (shown once)."""
        if not user_id:
            raise ValueError("user_id is required")
        token = secrets.token_hex(TOKEN_BYTES)
        expires_at = utcnow() + timedelta(seconds=self.token_ttl_seconds)
        store.add_auth_token(hash_token(token), user_id, expires_at)
        logger.info("token_issued", user_id=user_id, token_hash=hash_token(token)[:12])
        return token

    def authenticate(self, store: Store, authorization: str | None) -> str:
        """
        Resolve an ``Authorization`` header to a user id.

        Raises AuthError when the header is absent or the token is unknown
        or expired.
        """
        if not authorization:
            raise AuthError("No authorization header")

        token = authorization.removeprefix("Bearer ").strip()
        if not token:
            raise AuthError("Unauthorized")

        token_hash = hash_token(token)
        record = store.get_auth_token(token_hash)
        if record is None or not hmac.compare_digest(record["token_hash"], token_hash):
            logger.warning("auth_failed", token_hash=token_hash[:12], reason="unknown")
            raise AuthError("Unauthorized")

        expires_at = parse_timestamp(record["expires_at"])
        if expires_at is None or expires_at <= utcnow():
            logger.info("token_expired", token_hash=token_hash[:12])
            raise AuthError("Unauthorized")

        return record["user_id"]

    def revoke_token(self, store: Store, token: str) -> bool:
        revoked = store.delete_auth_token(hash_token(token)) > 0
        if revoked:
            logger.info("token_revoked", token_hash=hash_token(token)[:12])
        return revoked


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()
