"""A set of strings with variadic add and sorted output."""

from __future__ import annotations


class StringSet(set):
    """Set of strings."""

    def add(self, *values: str) -> None:  # type: ignore[override]
        self.update(values)

    def to_sorted_list(self) -> list[str]:
        return sorted(self)