"""
Security utilities for authentication, secret hashing and token generation.
"""
from datetime import datetime, timedelta
from typing import Optional, Dict, Any
import hashlib
import json
import secrets

from jose import jwt, JWTError
from passlib.context import CryptContext

from pollara.core.config import settings


# OTP codes are low-entropy, so they are hashed with a memory-hard function
secret_context = CryptContext(schemes=["argon2"], deprecated="auto")


def create_access_token(
    data: Dict[str, Any],
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({
        "exp": expire,
        "iat": datetime.utcnow(),
        "type": "access"
    })

    encoded_jwt = jwt.encode(
        to_encode,
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM
    )
    return encoded_jwt


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """Decode and verify a JWT token."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )
        return payload
    except JWTError:
        return None


def hash_secret(secret: str) -> str:
    """Hash a short-lived secret (e.g. an OTP) with a salted argon2 hash."""
    return secret_context.hash(secret)


def verify_secret(plain_secret: str, hashed_secret: str) -> bool:
    """Verify a secret against its argon2 hash."""
    try:
        return secret_context.verify(plain_secret, hashed_secret)
    except ValueError:
        # malformed hash in the store is treated as a mismatch
        return False


def generate_otp(length: int = 6) -> str:
    """Generate a fixed-length numeric one-time passcode."""
    return "".join(secrets.choice("0123456789") for _ in range(length))


def generate_vote_token() -> str:
    """Generate a secure one-time vote token."""
    return secrets.token_urlsafe(32)


def hash_vote_token(token: str) -> str:
    """Hash a vote token for use as a cache key."""
    return hashlib.sha256(token.encode()).hexdigest()


def generate_nonce() -> str:
    """Generate a random nonce mixed into ballot content hashes."""
    return secrets.token_hex(16)


def canonical_json(data: Any) -> str:
    """Serialize data with sorted keys so equal content hashes equally."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


def content_hash(data: Dict[str, Any]) -> str:
    """SHA-256 hex digest of the canonical JSON form of ``data``."""
    return hashlib.sha256(canonical_json(data).encode()).hexdigest()
