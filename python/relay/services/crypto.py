"""Credential vault for per-user upstream secrets.

Implements XSalsa20-Poly1305 authenticated encryption (secretbox) using PyNaCl
(libsodium bindings). Ciphertext is a self-describing string so a single
text column can hold it:

    base64( version (1 byte) || nonce (24 bytes) || secretbox ciphertext )

Key versions:
- v1 is read from RELAY_KEY_ENCRYPTION_KEY_V1, falling back to
  RELAY_KEY_ENCRYPTION_KEY
- vN is read from RELAY_KEY_ENCRYPTION_KEY_V<N>
- New ciphertext is always written with CURRENT_KEY_VERSION; reencrypt()
  migrates older rows during rotation

Security invariants:
- Never log plaintext or ciphertext
- Nonce is random per encryption
- Decryption fails if the key, nonce or ciphertext is wrong (authentication)
"""

import base64
import binascii
import os
from functools import lru_cache

from nacl.exceptions import CryptoError as NaclCryptoError
from nacl.secret import SecretBox

from relay.logging import get_logger

logger = get_logger(__name__)

# Secretbox nonce size (24 bytes)
NONCE_SIZE = SecretBox.NONCE_SIZE

# Master key size (32 bytes)
MASTER_KEY_SIZE = SecretBox.KEY_SIZE

# Poly1305 authentication tag size
MAC_SIZE = SecretBox.MACBYTES

# Version written by encrypt()
CURRENT_KEY_VERSION = 1

KEY_ENV_VAR = "RELAY_KEY_ENCRYPTION_KEY"

# Smallest valid envelope: version + nonce + tag + one byte of plaintext
MIN_ENVELOPE_SIZE = 1 + NONCE_SIZE + MAC_SIZE + 1


class CryptoError(Exception):
    """Raised when cryptographic operations fail."""

    pass


def _key_env_names(version: int) -> tuple[str, ...]:
    versioned = f"{KEY_ENV_VAR}_V{version}"
    if version == 1:
        return (versioned, KEY_ENV_VAR)
    return (versioned,)


@lru_cache(maxsize=8)
def _get_master_key(version: int) -> bytes:
    """Load and validate the master key for a version.

    Raises:
        CryptoError: If the key is missing, invalid base64, or wrong size.
    """
    names = _key_env_names(version)
    key_b64 = next((os.environ[name] for name in names if os.environ.get(name)), None)
    if not key_b64:
        raise CryptoError(f"{' or '.join(names)} environment variable is not set")

    try:
        key = base64.b64decode(key_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CryptoError(f"{names[0]} is not valid base64: {e}") from e

    if len(key) != MASTER_KEY_SIZE:
        raise CryptoError(f"{names[0]} must be {MASTER_KEY_SIZE} bytes, got {len(key)} bytes")

    return key


def require_master_key(version: int = CURRENT_KEY_VERSION) -> bytes:
    """Public accessor for the master key of a version."""
    return _get_master_key(version)


def clear_master_key_cache() -> None:
    """Clear cached master keys (tests, key rotation)."""
    _get_master_key.cache_clear()


def generate_nonce() -> bytes:
    """Generate a random 24-byte nonce. Never reuse one under the same key."""
    return os.urandom(NONCE_SIZE)


# =============================================================================
# Envelope API
# =============================================================================


def encrypt(plaintext: str) -> str:
    """Encrypt a secret for storage with the current key version.

    Raises:
        CryptoError: If the master key is not configured.
    """
    version = CURRENT_KEY_VERSION
    box = SecretBox(require_master_key(version))
    nonce = generate_nonce()
    sealed = box.encrypt(plaintext.encode("utf-8"), nonce=nonce)
    # sealed is nonce || ciphertext
    envelope = bytes([version]) + bytes(sealed)
    return base64.b64encode(envelope).decode("ascii")


def _decode_envelope(ciphertext: str) -> bytes:
    try:
        return base64.b64decode(ciphertext, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CryptoError("Invalid ciphertext: not valid base64") from e


def decrypt(ciphertext: str) -> str:
    """Decrypt a vault envelope.

    Raises:
        CryptoError: On malformed input, unsupported version, missing key,
            or authentication failure.
    """
    data = _decode_envelope(ciphertext)
    if len(data) < MIN_ENVELOPE_SIZE:
        raise CryptoError("Invalid ciphertext: too short")

    version = data[0]
    if version < 1 or version > CURRENT_KEY_VERSION:
        raise CryptoError(f"Unsupported encryption version: {version}")

    nonce = data[1 : 1 + NONCE_SIZE]
    body = data[1 + NONCE_SIZE :]

    box = SecretBox(require_master_key(version))
    try:
        plaintext = box.decrypt(body, nonce=nonce)
    except NaclCryptoError as e:
        logger.warning("decryption_failed", key_version=version)
        raise CryptoError("Decryption failed") from e

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise CryptoError("Decryption failed: plaintext is not UTF-8") from e


def reencrypt(ciphertext: str) -> str:
    """Re-encrypt a ciphertext with the current key version."""
    return encrypt(decrypt(ciphertext))


def get_encryption_version(ciphertext: str) -> int:
    """Return the key version a ciphertext was written with."""
    data = _decode_envelope(ciphertext)
    if not data:
        raise CryptoError("Invalid ciphertext: empty")
    return data[0]


def mask_secret(value: str | None) -> str | None:
    """Mask a credential for display: first 12 chars, `...`, last 4 chars.

    Works for API keys (sk-ant-api03-...) and session keys (sk-ant-sid01-...).
    """
    if not value:
        return None
    return f"{value[:12]}...{value[-4:]}"
