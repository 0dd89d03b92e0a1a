import pytest

from barco.placement import ordinals_placement_order


def test_ring_of_3():
    assert ordinals_placement_order(3) == [0, 1, 2]


def test_ring_of_6():
    assert ordinals_placement_order(6) == [0, 3, 1, 4, 2, 5]


def test_ring_of_12():
    assert ordinals_placement_order(12) == [0, 6, 3, 7, 1, 8, 4, 9, 2, 10, 5, 11]


def test_ring_of_24():
    assert ordinals_placement_order(24) == [
        0, 12, 6, 13, 3, 14, 7, 15, 1, 16, 8, 17, 4, 18, 9, 19, 2, 20, 10, 21, 5, 22, 11, 23,
    ]


def test_ring_of_48():
    assert ordinals_placement_order(48) == [
        0, 24, 12, 25, 6, 26, 13, 27, 3, 28, 14, 29, 7, 30, 15, 31, 1, 32, 16, 33, 8, 34,
        17, 35, 4, 36, 18, 37, 9, 38, 19, 39, 2, 40, 20, 41, 10, 42, 21, 43, 5, 44, 22, 45,
        11, 46, 23, 47,
    ]


@pytest.mark.parametrize("size", [3, 6, 12, 24, 48, 96, 192])
def test_ring_is_permutation(size):
    assert sorted(ordinals_placement_order(size)) == list(range(size))


@pytest.mark.parametrize("size", [12, 24, 48, 96])
def test_existing_positions_kept_when_doubling(size):
    smaller = ordinals_placement_order(size // 2)
    larger = ordinals_placement_order(size)
    assert larger[::2] == smaller


def test_returns_new_list_each_call():
    first = ordinals_placement_order(6)
    first.append(99)
    assert ordinals_placement_order(6) == [0, 3, 1, 4, 2, 5]


@pytest.mark.parametrize("size", [1, 2, -3])
def test_invalid_sizes(size):
    with pytest.raises(ValueError):
        ordinals_placement_order(size)