import hashlib
import hmac
import base64
import binascii
import os
import secrets
import threading
from typing import Any, cast
import structlog
from cryptography.fernet import Fernet, MultiFernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from portalight.shared.core.config import get_settings

logger = structlog.get_logger()

# ============================================================================
# Encryption Key Manager
# ============================================================================


class EncryptionKeyManager:
    """
    Derives Fernet keys from the configured master key(s).

    - Salt comes from the environment (never generated at runtime)
    - Fallback keys stay decryptable during rotation
    - PBKDF2-SHA256 key derivation
    """

    KDF_ITERATIONS = 100000
    KDF_SALT_LENGTH = 32  # 256 bits

    _cache: dict[str, Any] = {}
    _cache_lock = threading.Lock()

    @staticmethod
    def generate_salt() -> str:
        """Generate a cryptographically secure random salt."""
        random_bytes = secrets.token_bytes(EncryptionKeyManager.KDF_SALT_LENGTH)
        return base64.b64encode(random_bytes).decode("utf-8")

    @staticmethod
    def get_salt() -> str:
        """Get KDF salt from the environment."""
        settings = get_settings()
        salt = os.environ.get("KDF_SALT") or settings.KDF_SALT
        if salt:
            return str(salt)
        raise ValueError(
            "KDF_SALT is required for encryption stability and must be set in the environment "
            "(base64-encoded random 32 bytes)."
        )

    @classmethod
    def clear_key_caches(cls) -> None:
        with cls._cache_lock:
            cls._cache.clear()

    @classmethod
    def derive_key(
        cls,
        master_key: str,
        salt: str,
        iterations: int = KDF_ITERATIONS,
    ) -> bytes:
        """Derive an encryption key from master key using PBKDF2 (cached)."""
        key_fingerprint = hashlib.sha256(master_key.encode()).hexdigest()
        cache_key = f"dk:{key_fingerprint}:{salt}:{iterations}"
        with cls._cache_lock:
            cached = cls._cache.get(cache_key)
        if cached is not None:
            return cast(bytes, cached)

        try:
            salt_bytes = base64.b64decode(salt, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Invalid KDF salt format: {str(e)}") from e

        if len(salt_bytes) != EncryptionKeyManager.KDF_SALT_LENGTH:
            raise ValueError(
                f"Invalid KDF salt length: expected {EncryptionKeyManager.KDF_SALT_LENGTH} bytes, got {len(salt_bytes)}"
            )

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt_bytes,
            iterations=iterations,
        )
        result = base64.urlsafe_b64encode(kdf.derive(master_key.encode()))
        with cls._cache_lock:
            cls._cache[cache_key] = result
        return result

    @classmethod
    def create_multi_fernet(
        cls,
        primary_key: str,
        fallback_keys: tuple[str, ...] | None = None,
        salt: str | None = None,
    ) -> MultiFernet:
        """Create MultiFernet for key rotation support."""
        if salt is None:
            salt = cls.get_salt()

        all_keys = [primary_key]
        if fallback_keys:
            all_keys.extend(fallback_keys)

        fernet_instances: list[Fernet] = []
        for idx, key in enumerate(all_keys):
            try:
                fernet_instances.append(Fernet(cls.derive_key(key, salt)))
            except ValueError as e:
                logger.error(
                    "fernet_creation_failed",
                    key_index=idx,
                    is_primary=(idx == 0),
                    error=str(e),
                )
                # Primary key must always work; fallback keys are best-effort.
                if idx == 0:
                    raise

        return MultiFernet(fernet_instances)


# ============================================================================
# Encryption Functions
# ============================================================================


def _get_multi_fernet() -> MultiFernet:
    settings = get_settings()
    if not settings.ENCRYPTION_KEY:
        raise ValueError("ENCRYPTION_KEY must be set for secure encryption.")
    fallback = (
        tuple(settings.ENCRYPTION_FALLBACK_KEYS)
        if settings.ENCRYPTION_FALLBACK_KEYS
        else None
    )
    return EncryptionKeyManager.create_multi_fernet(settings.ENCRYPTION_KEY, fallback)


def encrypt_string(value: str) -> str | None:
    """Symmetrically encrypt a string (cloud credentials, GitHub tokens)."""
    if not value:
        return None
    return _get_multi_fernet().encrypt(value.encode()).decode()


def decrypt_string(value: str) -> str | None:
    """
    Symmetrically decrypt a string.

    Returns None when the token cannot be decrypted with any configured key.
    """
    if not value:
        return None
    try:
        return _get_multi_fernet().decrypt(value.encode()).decode()
    except InvalidToken:
        logger.error(
            "decryption_failed",
            token_fingerprint=hashlib.sha256(value.encode()).hexdigest()[:12],
        )
        return None


# ============================================================================
# Signatures
# ============================================================================


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def constant_time_equals(left: str, right: str) -> bool:
    return hmac.compare_digest(left.encode(), right.encode())


def generate_webhook_secret() -> str:
    return secrets.token_hex(32)
