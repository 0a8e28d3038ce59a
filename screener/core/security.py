import logging
from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from jose import jwt, JWTError
from screener.core import config

logger = logging.getLogger(__name__)


def create_access_token(data: dict, expires_delta: timedelta = None):
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


def decode_access_token(token: str) -> Optional[str]:
    """Return the account e-mail carried in the token, or None if invalid."""
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError:
        return None
    return payload.get("sub")


def create_signed_token(claims: Dict[str, Any], ttl_seconds: int) -> str:
    """
    Sign short-lived claims (used for CV download links).

    Args:
        claims: Claims to embed
        ttl_seconds: Lifetime of the token

    Returns:
        Encoded JWT
    """
    to_encode = claims.copy()
    to_encode["exp"] = datetime.utcnow() + timedelta(seconds=ttl_seconds)
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


def decode_signed_token(token: str) -> Optional[Dict[str, Any]]:
    """Return the claims of a signed token, or None if invalid or expired."""
    try:
        return jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError as e:
        logger.debug(f"Signed token rejected: {e}")
        return None
