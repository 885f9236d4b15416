"""
FAIRENGINE — Hash Primitive Adapter

The only place that touches hashlib and the OS random source. Everything
else in the engine goes through digest() / random_bytes() so a missing
primitive fails loudly instead of degrading to a weaker source.
"""

from __future__ import annotations

import hashlib
import os

from fair_engine.errors import InvalidParameters, PrimitiveUnavailable


def digest(data: bytes) -> bytes:
    """32-byte SHA-256 of raw bytes."""
    try:
        h = hashlib.new("sha256")
    except ValueError as e:
        raise PrimitiveUnavailable(f"SHA-256 not available: {e}") from e
    h.update(data)
    return h.digest()


def sha256_hex(text: str) -> str:
    """Lowercase hex SHA-256 of the UTF-8 encoding of text."""
    return digest(text.encode("utf-8")).hex()


def random_bytes(n: int) -> bytes:
    """n bytes from the OS CSPRNG."""
    if not isinstance(n, int) or n <= 0:
        raise InvalidParameters(f"random_bytes needs a positive byte count, got {n!r}")
    try:
        return os.urandom(n)
    except NotImplementedError as e:
        raise PrimitiveUnavailable(f"No secure random source: {e}") from e


def random_hex(n: int = 32) -> str:
    return random_bytes(n).hex()


def ensure_primitives() -> None:
    """Check that both primitives work. Call before starting a round."""
    if len(digest(b"")) != 32:
        raise PrimitiveUnavailable("SHA-256 returned an unexpected digest size")
    if len(random_bytes(1)) != 1:
        raise PrimitiveUnavailable("Random source returned short read")
