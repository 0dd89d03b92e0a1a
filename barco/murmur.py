"""Murmur3 128-bit hash (first half), matching the Cassandra variant."""

from __future__ import annotations

import struct

_MASK = (1 << 64) - 1
_C1 = 0x87C37B91114253D5
_C2 = 0x4CF5AD432745937F
_FMIX1 = 0xFF51AFD7ED558CCD
_FMIX2 = 0xC4CEB9FE1A85EC53


def _signed(value: int) -> int:
    value &= _MASK
    return value - (1 << 64) if value >= 1 << 63 else value


def _rotl(x: int, r: int) -> int:
    x &= _MASK
    return ((x << r) | (x >> (64 - r))) & _MASK


def _fmix(n: int) -> int:
    n &= _MASK
    n ^= n >> 33
    n = (n * _FMIX1) & _MASK
    n ^= n >> 33
    n = (n * _FMIX2) & _MASK
    n ^= n >> 33
    return n


def _block(byte: int) -> int:
    """Sign-extend a byte, as Cassandra does."""
    return byte - 256 if byte >= 128 else byte


def _tail_word(tail: bytes) -> int:
    word = 0
    for position, byte in enumerate(tail):
        word ^= (_block(byte) << (8 * position)) & _MASK
    return word


def rotl(x: int, r: int) -> int:
    """Rotate a signed 64-bit value left by r bits."""
    return _signed(_rotl(x, r))


def fmix(n: int) -> int:
    """Murmur3 finalisation mix on a signed 64-bit value."""
    return _signed(_fmix(n))


def _mix_k1(k1: int) -> int:
    k1 = (k1 * _C1) & _MASK
    k1 = _rotl(k1, 31)
    return (k1 * _C2) & _MASK


def _mix_k2(k2: int) -> int:
    k2 = (k2 * _C2) & _MASK
    k2 = _rotl(k2, 33)
    return (k2 * _C1) & _MASK


def murmur3_h1(data: bytes) -> int:
    """Return the first 64 bits of the Murmur3 x64 128 hash as a signed integer."""
    length = len(data)
    body_length = (length // 16) * 16
    h1 = h2 = 0

    for k1, k2 in struct.iter_unpack("<QQ", data[:body_length]):
        h1 ^= _mix_k1(k1)
        h1 = _rotl(h1, 27)
        h1 = (h1 + h2) & _MASK
        h1 = (h1 * 5 + 0x52DCE729) & _MASK

        h2 ^= _mix_k2(k2)
        h2 = _rotl(h2, 31)
        h2 = (h2 + h1) & _MASK
        h2 = (h2 * 5 + 0x38495AB5) & _MASK

    tail = data[body_length:]
    if len(tail) > 8:
        h2 ^= _mix_k2(_tail_word(tail[8:]))
    if tail:
        h1 ^= _mix_k1(_tail_word(tail[:8]))

    h1 ^= length
    h2 ^= length
    h1 = (h1 + h2) & _MASK
    h2 = (h2 + h1) & _MASK
    h1 = _fmix(h1)
    h2 = _fmix(h2)
    h1 = (h1 + h2) & _MASK
    return _signed(h1)