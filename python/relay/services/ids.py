"""External session identifiers.

Sessions are stored under UUIDs but exposed in the upstream API's format:
`session_` followed by the UUID's 128-bit value in base62, left-padded with
`0` to 24 characters.
"""

from uuid import UUID

SESSION_PREFIX = "session_"

# 0-9, A-Z, a-z
BASE62_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
_BASE62_INDEX = {char: index for index, char in enumerate(BASE62_ALPHABET)}

ENCODED_LENGTH = 24

_UUID_MASK = (1 << 128) - 1


class InvalidIdError(ValueError):
    """Raised when an external id cannot be decoded."""

    pass


def _encode_base62(value: int) -> str:
    if value == 0:
        return "0" * ENCODED_LENGTH

    digits = []
    while value > 0:
        value, remainder = divmod(value, 62)
        digits.append(BASE62_ALPHABET[remainder])
    return "".join(reversed(digits)).rjust(ENCODED_LENGTH, "0")


def _decode_base62(encoded: str) -> int:
    value = 0
    for char in encoded:
        index = _BASE62_INDEX.get(char)
        if index is None:
            raise InvalidIdError(f"Invalid base62 character: {char}")
        value = value * 62 + index
    return value


def uuid_to_session_id(value: UUID) -> str:
    """Encode a session UUID as an external session id."""
    return SESSION_PREFIX + _encode_base62(value.int)


def session_id_to_uuid(session_id: str) -> UUID:
    """Decode an external session id.

    Inputs wider than 128 bits keep their low 128 bits.

    Raises:
        InvalidIdError: Missing prefix or a character outside the base62 alphabet.
    """
    if not session_id.startswith(SESSION_PREFIX):
        raise InvalidIdError(f"Invalid session ID format: {session_id}")
    value = _decode_base62(session_id[len(SESSION_PREFIX) :])
    return UUID(int=value & _UUID_MASK)
