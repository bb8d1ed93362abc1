from typing import Optional
from passlib.context import CryptContext

from kioku.core.config import settings

pwd_context = CryptContext(schemes=settings.PASSWORD_SCHEMES, deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def check_profile_password(stored_hash: Optional[str], provided: Optional[str]) -> bool:
    """
    Local profile password rule: a profile without a stored hash accepts any
    login, a protected profile requires a matching password.
    """
    if stored_hash is None:
        return True
    if provided is None:
        return False
    return verify_password(provided, stored_hash)
