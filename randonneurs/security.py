from __future__ import annotations

from passlib.context import CryptContext
import hashlib

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def _prehash(password: str) -> str:
    # keep very long passphrases to a fixed size before hashing
    if len(password.encode("utf-8")) > 72:
        return hashlib.sha256(password.encode("utf-8")).hexdigest()
    return password


def hash_password(password: str) -> str:
    return pwd_context.hash(_prehash(password))


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(_prehash(password), password_hash)
    except ValueError:
        # unknown or malformed hash
        return False
