from __future__ import annotations

import base64

import pytest

from peertrack.bitfield import count_chunks
from peertrack.bitfield import decode_bitfield
from peertrack.bitfield import has_any_chunk
from peertrack.bitfield import has_chunk
from testing.bitfield import encode_bitfield


def test_decode_hex() -> None:
    assert decode_bitfield('') == b''
    assert decode_bitfield('ff01') == b'\xff\x01'
    assert decode_bitfield('FF01') == b'\xff\x01'


def test_decode_base64_fallback() -> None:
    raw = b'\xff\x00\x01'
    encoded = base64.b64encode(raw).decode()
    assert encoded == '/wAB'
    assert decode_bitfield(encoded) == raw


def test_decode_prefers_hex_over_base64() -> None:
    # Valid as both encodings
    assert base64.b64decode('AAAA', validate=True) == b'\x00\x00\x00'
    assert decode_bitfield('AAAA') == b'\xaa\xaa'
    # Padding is not a hex digit so padded base64 is never ambiguous
    assert decode_bitfield('AA==') == b'\x00'


def test_decode_invalid() -> None:
    with pytest.raises(ValueError, match='hex or base64'):
        decode_bitfield('not a bitfield!')


@pytest.mark.parametrize(
    ('chunks', 'length', 'expected'),
    (
        ([], None, ''),
        ([0], None, '01'),
        ([3], None, '08'),
        ([7, 8], None, '8001'),
        ([1], 20, '020000'),
    ),
)
def test_encode_bitfield(chunks, length, expected) -> None:
    assert encode_bitfield(chunks, length) == expected


def test_encode_bitfield_bad_indices() -> None:
    with pytest.raises(ValueError, match='non-negative'):
        encode_bitfield([-1])
    with pytest.raises(ValueError, match='exceeds'):
        encode_bitfield([10], length=10)


def test_has_chunk_bit_order() -> None:
    # Byte 0 = 0b00001000 -> chunk 3, byte 1 = 0b00000001 -> chunk 8
    bitfield = bytes([0x08, 0x01])
    held = {index for index in range(16) if has_chunk(bitfield, index)}
    assert held == {3, 8}


def test_has_chunk_matches_byte_and_bit_for_all_indices() -> None:
    bitfield = bytes([0b10100101, 0b01011010, 0xFF])
    for index in range(len(bitfield) * 8):
        expected = bool(bitfield[index // 8] & (1 << (index % 8)))
        assert has_chunk(bitfield, index) == expected


def test_has_chunk_out_of_range() -> None:
    assert not has_chunk(b'\xff', 8)
    assert not has_chunk(b'\xff', 1000)
    assert not has_chunk(b'', 0)
    assert not has_chunk(b'\xff', -1)


def test_has_any_chunk() -> None:
    bitfield = decode_bitfield(encode_bitfield([2, 9]))
    assert has_any_chunk(bitfield, [0, 1, 9])
    assert not has_any_chunk(bitfield, [0, 1, 3])
    assert not has_any_chunk(bitfield, [])


def test_count_chunks() -> None:
    assert count_chunks(b'') == 0
    assert count_chunks(bytes([0xFF, 0x01])) == 9
