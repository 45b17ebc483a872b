"""Chunk bitfield encoding and membership tests.

A bitfield holds one bit per chunk index of a manifest. Chunk `c` maps to
byte `c // 8` and bit `c % 8` of that byte, where bit 0 is the least
significant bit. Bitfields travel as hex strings; base64 is also accepted
on decode.

Hex takes precedence. A string made only of an even number of hex digits
is always read as hex, even when it is also valid base64. For example,
`AAAA` decodes to the two bytes `0xaa 0xaa` and not to the three zero
bytes its base64 reading would give. Clients sending base64 must avoid
values that are also valid hex.
"""
from __future__ import annotations

import base64
import binascii
from typing import Iterable


def decode_bitfield(encoded: str) -> bytes:
    """Decode a transport encoded bitfield.

    Hex decoding is attempted first and base64 is used as a fallback.

    Args:
        encoded: Hex or base64 encoded bitfield.

    Returns:
        Raw bitfield bytes.

    Raises:
        ValueError: if `encoded` is neither valid hex nor valid base64.
    """
    try:
        return bytes.fromhex(encoded)
    except ValueError:
        pass

    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(
            'Bitfield is not a valid hex or base64 string.',
        ) from e


def has_chunk(bitfield: bytes, index: int) -> bool:
    """Check if the chunk bit at `index` is set.

    Indices beyond the end of the bitfield are not held.
    """
    if index < 0:
        return False
    byte_index, bit_index = divmod(index, 8)
    if byte_index >= len(bitfield):
        return False
    return bool(bitfield[byte_index] & (1 << bit_index))


def has_any_chunk(bitfield: bytes, indices: Iterable[int]) -> bool:
    """Check if at least one of the chunk indices is set in the bitfield."""
    return any(has_chunk(bitfield, index) for index in indices)


def count_chunks(bitfield: bytes) -> int:
    """Count the number of held chunks."""
    return sum(bin(byte).count('1') for byte in bitfield)
