from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from ..ports import TokenResult

logger = logging.getLogger(__name__)


class TokenIssuer:
    """
    Signs and verifies custom identity tokens (HS256 JWT by default).

    Claims: identity, userId, iat, exp, jti.
    """

    def __init__(self, secret: str, ttl_seconds: int = 3600, algorithm: str = "HS256") -> None:
        self.secret = secret
        self.ttl_seconds = int(ttl_seconds)
        self.algorithm = algorithm

    def issue(self, *, identity: str, user_id: Optional[str] = None) -> TokenResult:
        if not self.secret:
            return TokenResult(success=False, error="token secret is not configured")

        now = datetime.now(timezone.utc)
        claims: Dict[str, Any] = {
            "identity": identity,
            "iat": now,
            "exp": now + timedelta(seconds=self.ttl_seconds),
            "jti": secrets.token_hex(16),
        }
        if user_id is not None:
            claims["userId"] = user_id

        try:
            token = jwt.encode(claims, self.secret, algorithm=self.algorithm)
        except (jwt.PyJWTError, TypeError, ValueError) as exc:
            logger.warning("token issuance failed: %s", type(exc).__name__)
            return TokenResult(success=False, error=str(exc))

        return TokenResult(
            success=True,
            data={
                "accessToken": token,
                "tokenType": "Bearer",
                "expiresIn": self.ttl_seconds,
            },
        )

    def verify(self, token: str) -> Optional[Dict[str, Any]]:
        """Decoded claims, or None if the token is invalid or expired."""
        if not token or not self.secret:
            return None
        try:
            return jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None
