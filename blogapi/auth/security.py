"""Security utilities for authentication.

Provides:
- Password hashing with Argon2id
- Signed, time-limited JWT access tokens
"""

from datetime import UTC, datetime, timedelta
from typing import Any

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from jose import JWTError, jwt

from blogapi.config.settings import get_settings


# Argon2id with OWASP recommended parameters
_password_hasher = PasswordHasher(
    time_cost=2,
    memory_cost=19456,
    parallelism=1,
    hash_len=32,
    salt_len=16,
)


def hash_password(password: str) -> str:
    """Hash a password using Argon2id.

    The hash embeds its parameters and salt.
    """
    return _password_hasher.hash(password)


def verify_password(password: str, password_hash: str) -> tuple[bool, str | None]:
    """Verify a password against its hash.

    Returns:
        Tuple of (is_valid, new_hash). ``new_hash`` is set when the stored
        hash was produced with outdated parameters and should be replaced.

    Example:
        >>> hashed = hash_password("Secret1")
        >>> verify_password("Secret1", hashed)
        (True, None)
    """
    try:
        _password_hasher.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False, None

    if _password_hasher.check_needs_rehash(password_hash):
        return True, hash_password(password)
    return True, None


def create_access_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed access token.

    Args:
        data: Claims, typically {"sub": user_id, "email": email, "role": role}
        expires_delta: Token lifetime (default from settings)

    Returns:
        Encoded JWT carrying the claims plus exp, iat and type="access"
    """
    settings = get_settings()
    now = datetime.now(UTC)

    to_encode = data.copy()
    to_encode.update(
        {
            "exp": now
            + (
                expires_delta
                or timedelta(minutes=settings.auth_access_token_expire_minutes)
            ),
            "iat": now,
            "type": "access",
        }
    )

    return jwt.encode(
        to_encode,
        settings.auth_secret_key,
        algorithm=settings.auth_algorithm,
    )


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and validate an access token.

    Raises:
        JWTError: If the signature is invalid, the token expired, the type is
            not "access" or required claims are missing
    """
    settings = get_settings()

    payload = jwt.decode(
        token,
        settings.auth_secret_key,
        algorithms=[settings.auth_algorithm],
    )

    if payload.get("type") != "access":
        msg = "Invalid token type: expected 'access'"
        raise JWTError(msg)

    for claim in ("sub", "email", "role"):
        if claim not in payload:
            msg = f"Token missing '{claim}' claim"
            raise JWTError(msg)

    return payload
