"""Stockwatch — Identity Tokens.

Signed identity tokens for the on-demand test alert. The dashboard issues
a JWT whose ``sub`` claim is the owner's uid, which is also the store id;
a test alert is only sent when that uid owns the requested store.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from stockwatch.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_ALGORITHM = "HS256"


class IdTokenVerifier:
    """Callable that maps a signed identity token to its uid.

    Usable as the dispatcher's token verifier.

    Attributes:
        algorithm: JWT signing algorithm accepted.
    """

    def __init__(self, secret: str, algorithm: str = DEFAULT_ALGORITHM) -> None:
        """Initialize the verifier.

        Args:
            secret: Shared signing secret.
            algorithm: JWT algorithm, HS256 by default.

        Raises:
            ValueError: If the secret is empty.
        """
        if not secret:
            raise ValueError("Identity token secret must not be empty")
        self._secret = secret
        self.algorithm = algorithm

    def __call__(self, token: str) -> str:
        """Verify ``token`` and return the uid it was issued for.

        Raises:
            ValueError: If the signature, expiry or subject is invalid.
        """
        try:
            claims = jwt.decode(token, self._secret, algorithms=[self.algorithm])
        except JWTError as e:
            raise ValueError(f"invalid identity token: {e}") from e

        uid = claims.get("sub")
        if not uid:
            raise ValueError("identity token has no subject")
        logger.debug("Verified identity token for uid %s", uid)
        return str(uid)

    def __repr__(self) -> str:
        return f"IdTokenVerifier(algorithm={self.algorithm!r})"


def create_id_token(
    uid: str,
    secret: str,
    algorithm: str = DEFAULT_ALGORITHM,
    expires_minutes: int = 60,
    now: Optional[datetime] = None,
) -> str:
    """Issue a signed identity token for ``uid``.

    Args:
        uid: Owner uid (the store id).
        secret: Shared signing secret.
        algorithm: JWT algorithm.
        expires_minutes: Token lifetime.
        now: Issue time override (UTC now by default).

    Returns:
        Encoded JWT.
    """
    issued_at = now or datetime.now(timezone.utc)
    claims = {
        "sub": uid,
        "iat": issued_at,
        "exp": issued_at + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(claims, secret, algorithm=algorithm)
