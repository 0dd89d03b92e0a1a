"""Broker placement: a point-in-time snapshot of the ring."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from barco.placement import ordinals_placement_order

NOT_FOUND_INDEX = -1

TokenAtIndex = Callable[[int, int], int]
"""Computes the token of a ring position: (ring size, index) -> token."""


class NotIncludedError(RuntimeError):
    """Raised when the local broker is not part of the topology."""


@dataclass(frozen=True)
class BrokerInfo:
    """Information about a broker."""

    is_self: bool
    ordinal: int
    host_name: str

    def __str__(self) -> str:
        return f"B{self.ordinal} ({self.host_name})"


@dataclass
class ReplicationInfo:
    """Replication plan for a token: leader (None when undetermined) and followers."""

    leader: BrokerInfo | None
    followers: list[BrokerInfo]
    token: int
    range_index: int


@dataclass
class TopologyInfo:
    """Snapshot of the current placement of the brokers.

    ``brokers`` is ordered by ring index, e.g. ordinals 0, 3, 1, 4, 2, 5.
    """

    brokers: list[BrokerInfo]
    local_index: int
    _ordinal: int
    _index_by_ordinal: dict[int, int]
    _token_at_index: TokenAtIndex = field(repr=False, compare=False)

    def get_token(self, index: int) -> int:
        """Return the token at the given broker index."""
        return self._token_at_index(len(self.brokers), index)

    def my_token(self) -> int:
        """Return the natural token of the local broker."""
        self._require_included("my token")
        return self._token_at_index(len(self.brokers), self.local_index)

    def my_ordinal(self) -> int:
        return self._ordinal

    def am_i_included(self) -> bool:
        return self.local_index != NOT_FOUND_INDEX

    def has_broker(self, ordinal: int) -> bool:
        return ordinal < len(self.brokers)

    def get_index(self, ordinal: int) -> int:
        """Return the position of the broker in the ring, or -1 when not found."""
        return self._index_by_ordinal.get(ordinal, NOT_FOUND_INDEX)

    def broker_by_ordinal(self, ordinal: int) -> BrokerInfo | None:
        index = self.get_index(ordinal)
        if index == NOT_FOUND_INDEX:
            return None
        return self.brokers[index]

    def broker_by_ordinal_list(self, ordinals: Sequence[int]) -> list[BrokerInfo]:
        """Return the brokers for the given ordinals; raises KeyError for unknown ones."""
        result = []
        for ordinal in ordinals:
            broker = self.broker_by_ordinal(ordinal)
            if broker is None:
                raise KeyError(f"Broker B{ordinal} is not included in the topology")
            result.append(broker)
        return result

    def previous_broker(self) -> BrokerInfo:
        """Return the broker at position n-1."""
        self._require_included("previous broker")
        return self.brokers[self.local_index - 1]

    def next_broker(self) -> BrokerInfo:
        """Return the broker at position n+1."""
        return self.brokers[self.next_index()]

    def next_index(self) -> int:
        self._require_included("next index")
        return (self.local_index + 1) % len(self.brokers)

    def next_brokers(self, index: int, length: int) -> list[BrokerInfo]:
        """Return the brokers at positions index+1, index+2, ... wrapping around."""
        total = len(self.brokers)
        return [self.brokers[(index + 1 + i) % total] for i in range(length)]

    def natural_followers(self, broker_index: int) -> list[int]:
        """Return the ordinals of the brokers at positions n+1 and n+2."""
        return [broker.ordinal for broker in self.next_brokers(broker_index, 2)]

    def peers(self) -> list[BrokerInfo]:
        """Return all brokers except the local one."""
        return [b for i, b in enumerate(self.brokers) if i != self.local_index]

    def _require_included(self, what: str) -> None:
        if not self.am_i_included():
            raise NotIncludedError(
                f"Can not get {what} as my ordinal is not included in the topology"
            )


def new_topology(
    brokers_by_ordinal: Sequence[BrokerInfo],
    my_ordinal: int,
    token_at_index: TokenAtIndex,
) -> TopologyInfo:
    """Create a topology from brokers listed in ordinal order."""
    order = ordinals_placement_order(len(brokers_by_ordinal))
    brokers = [brokers_by_ordinal[ordinal] for ordinal in order]
    index_by_ordinal = {ordinal: index for index, ordinal in enumerate(order)}
    local_index = next(
        (index for index, broker in enumerate(brokers) if broker.is_self),
        NOT_FOUND_INDEX,
    )
    return TopologyInfo(
        brokers=brokers,
        local_index=local_index,
        _ordinal=my_ordinal,
        _index_by_ordinal=index_by_ordinal,
        _token_at_index=token_at_index,
    )


def new_dev_topology(token_at_index: TokenAtIndex) -> TopologyInfo:
    """Create a single-broker topology for dev mode."""
    return TopologyInfo(
        brokers=[BrokerInfo(is_self=True, ordinal=0, host_name="localhost")],
        local_index=0,
        _ordinal=0,
        _index_by_ordinal={0: 0},
        _token_at_index=token_at_index,
    )


def new_replication_info(
    topology: TopologyInfo,
    token: int,
    leader: int,
    followers: Sequence[int],
    index: int,
) -> ReplicationInfo:
    return ReplicationInfo(
        leader=topology.broker_by_ordinal(leader),
        followers=topology.broker_by_ordinal_list(followers),
        token=token,
        range_index=index,
    )