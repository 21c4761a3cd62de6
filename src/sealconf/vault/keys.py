"""
Key derivation from the machine identifier.

The 64-bit hardware identifier seeds a deterministic pseudo-random generator
and 32 bytes are drawn from it. The same host always yields the same key, so
values sealed on it can be opened again after a restart. A cryptographically
random source must not be used here.
"""

import random

KEY_LENGTH = 32  # AES-256

_MAX_HARDWARE_ID = 2**64


def derive_key(hardware_id: int) -> bytes:
    """
    Expand a 64-bit hardware identifier into a 256-bit key.

    Args:
        hardware_id: Unsigned 64-bit machine identifier.

    Returns:
        32-byte key, identical for identical identifiers.

    Raises:
        ValueError: If hardware_id is not an unsigned 64-bit integer.
    """
    if isinstance(hardware_id, bool) or not isinstance(hardware_id, int):
        raise ValueError(f"hardware_id must be an int, got {type(hardware_id).__name__}")
    if not 0 <= hardware_id < _MAX_HARDWARE_ID:
        raise ValueError("hardware_id must be an unsigned 64-bit integer")

    rng = random.Random(hardware_id)
    return bytes(rng.getrandbits(8) for _ in range(KEY_LENGTH))
