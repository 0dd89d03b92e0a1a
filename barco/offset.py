"""Consumer offset models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

from barco.generation import GenId

OFFSET_COMPLETED = 2**63 - 1


class OffsetCommitType(IntEnum):
    NONE = 0
    LOCAL = 1
    ALL = 2


class CompareResult(IntEnum):
    EQUAL = 0
    LESS_THAN = 1
    GREATER_THAN = 2


@dataclass
class Offset:
    """A topic offset for a given token."""

    offset: int
    version: int
    source: GenId

    def compare(self, other: Offset | None) -> CompareResult:
        """Compare by version first, then by offset; any offset is greater than None."""
        if other is None:
            return CompareResult.GREATER_THAN
        mine = (self.version, self.offset)
        theirs = (other.version, other.offset)
        if mine < theirs:
            return CompareResult.LESS_THAN
        if mine > theirs:
            return CompareResult.GREATER_THAN
        return CompareResult.EQUAL

    def __str__(self) -> str:
        return f"v{self.version} {self.offset}"


@dataclass(frozen=True)
class OffsetStoreKey:
    """Identifier of an offset to be persisted."""

    group: str
    topic: str
    token: int
    range_index: int


@dataclass
class OffsetStoreKeyValue:
    key: OffsetStoreKey
    value: Offset