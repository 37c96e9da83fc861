"""
Lazy encryption key resolver for ORM column definitions.

StringEncryptedType accepts a callable for the `key` parameter, evaluated at
encrypt/decrypt time rather than import time, so models import cleanly in
tooling and tests that never touch encrypted columns.

Usage in models:
    from portalight.models._encryption import get_encryption_key
    ...
    token: Mapped[str] = mapped_column(
        StringEncryptedType(String, get_encryption_key, AesEngine, "pkcs5")
    )
"""

from typing import Optional

_cached_key: Optional[str] = None


def get_encryption_key() -> str:
    global _cached_key
    if _cached_key is not None:
        return _cached_key

    from portalight.shared.core.config import get_settings

    key = get_settings().ENCRYPTION_KEY
    if not key:
        raise RuntimeError(
            "ENCRYPTION_KEY is not set. Encrypted columns cannot be read or written."
        )
    _cached_key = key
    return key


def reset_encryption_key_cache() -> None:
    global _cached_key
    _cached_key = None
