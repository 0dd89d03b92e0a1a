"""Generation models: the ownership record of a token range."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import IntEnum

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class GenStatus(IntEnum):
    """State of a generation within its creation transaction."""

    CANCELLED = 0
    PROPOSED = 1
    ACCEPTED = 2
    COMMITTED = 3

    def __str__(self) -> str:
        return self.name.capitalize()


class TransactionStatus(IntEnum):
    CANCELLED = 0
    COMMITTED = 1


@dataclass(frozen=True)
class GenId:
    """Unique reference to a generation."""

    start: int
    version: int

    def __str__(self) -> str:
        return f"{self.start} v{self.version}"


@dataclass
class Generation:
    """A versioned assignment of a token range to a leader and followers."""

    start: int = 0
    end: int = 0
    version: int = 0
    timestamp: int = 0  # unix micros
    leader: int = 0
    followers: list[int] = field(default_factory=list)
    tx_leader: int = 0
    tx: uuid.UUID = field(default_factory=lambda: uuid.UUID(int=0))
    status: GenStatus = GenStatus.CANCELLED
    to_delete: bool = False
    parents: list[GenId] = field(default_factory=list)

    def time(self) -> datetime:
        """Return the timestamp as an aware UTC datetime."""
        return _EPOCH + timedelta(microseconds=self.timestamp)

    def id(self) -> GenId:
        return GenId(self.start, self.version)


@dataclass(frozen=True)
class TopicDataId:
    """Locates data of a topic for a token, range index and generation version."""

    name: str
    token: int
    range_index: int
    version: int

    def gen_id(self) -> GenId:
        return GenId(self.token, self.version)

    def __str__(self) -> str:
        return f"'{self.name}' {self.token}/{self.range_index} v{self.version}"