"""Token string generation.

Uniqueness is enforced by the key store, not here: the generator accepts the
birthday-bound collision risk of its ID space, and the service regenerates on
``DuplicateTokenError``.
"""

import uuid

import nanoid

from keygate.features.keys.models import KeyFormat

HEX_ALPHABET = "0123456789abcdef"
ALPHANUMERIC_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
# nanoid's default alphabet (A-Za-z0-9_-)
URLSAFE_ALPHABET = "_-0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"

SEGMENTED_PREFIX = "FREE"
SEGMENTED_SIZES = (10, 8)

DEFAULT_MIN_LENGTH = 8
DEFAULT_MAX_LENGTH = 128


def clamp_length(length: int, min_length: int = DEFAULT_MIN_LENGTH, max_length: int = DEFAULT_MAX_LENGTH) -> int:
    """Clamp a requested token length into [min_length, max_length]."""
    return max(min_length, min(length, max_length))


def generate(
    key_format: KeyFormat,
    length: int,
    *,
    min_length: int = DEFAULT_MIN_LENGTH,
    max_length: int = DEFAULT_MAX_LENGTH,
) -> str:
    """Generate a token string.

    Args:
        key_format: Token format.
        length: Requested length. Clamped, never rejected. Ignored by the
            fixed-shape formats (uuid, segmented).
        min_length: Lower clamp bound.
        max_length: Upper clamp bound.

    Returns:
        The token string.
    """
    size = clamp_length(length, min_length, max_length)

    match key_format:
        case KeyFormat.UUID:
            return str(uuid.uuid4())
        case KeyFormat.HEX:
            return nanoid.generate(HEX_ALPHABET, size)
        case KeyFormat.ALPHANUMERIC:
            return nanoid.generate(ALPHANUMERIC_ALPHABET, size)
        case KeyFormat.CUSTOM:
            return nanoid.generate(URLSAFE_ALPHABET, size)
        case KeyFormat.SEGMENTED:
            segments = [nanoid.generate(HEX_ALPHABET, n) for n in SEGMENTED_SIZES]
            return "-".join([SEGMENTED_PREFIX, *segments])

    raise ValueError(f"Unsupported key format: {key_format}")
