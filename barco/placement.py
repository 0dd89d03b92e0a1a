"""Placement order of broker ordinals in the ring."""

from __future__ import annotations

import math

_RING_SIZE_6 = (0, 3, 1, 4, 2, 5)


def ordinals_placement_order(size: int) -> list[int]:
    """Return the ordinals in ring placement order.

    For example [0, 1, 2] for 3 brokers and [0, 3, 1, 4, 2, 5] for 6 brokers.
    Rings are expected to be 3 * 2^n in size.
    """
    if size == 0:
        return []
    if size < 3:
        raise ValueError(f"Ring size {size} is not supported, it must be at least 3")
    if size == 3:
        return [0, 1, 2]
    if size == 6:
        return list(_RING_SIZE_6)

    exponent = math.log2(size // 3)
    last_exponent = exponent - 1
    last_pow2 = 2**last_exponent
    last_start_index = 3 * 2**last_exponent

    def ordinal_at(i: int) -> int:
        if i % 2 == 1:
            return int(last_start_index + i // 2)
        if i % int(last_pow2) == 0:
            return _RING_SIZE_6[int(i // last_pow2)]
        value = 0
        j = 1
        while j <= exponent - 2:
            e = exponent - j
            step = int(2**e)
            if i % step == int(2 ** (e - 1)):
                value = int(3 * 2**j) + i // step
            j += 1
        return value

    return [ordinal_at(i) for i in range(size)]