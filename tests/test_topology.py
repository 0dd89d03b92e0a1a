import pytest

from barco.placement import ordinals_placement_order
from barco.topology import (
    BrokerInfo,
    NotIncludedError,
    new_dev_topology,
    new_replication_info,
    new_topology,
)


def _token_at_index(size, index):
    return (index % size) * 1000


def _brokers(length, ordinal):
    return [
        BrokerInfo(is_self=i == ordinal, ordinal=i, host_name=f"test-{i}")
        for i in range(length)
    ]


def _topology(length, ordinal):
    return new_topology(_brokers(length, ordinal), ordinal, _token_at_index)


def test_brokers_are_in_placement_order():
    topology = _topology(6, 1)
    assert [b.ordinal for b in topology.brokers] == ordinals_placement_order(6)


def test_local_index_matches_self():
    topology = _topology(6, 1)
    assert topology.brokers[topology.local_index].ordinal == 1
    assert topology.brokers[topology.local_index].is_self
    assert topology.my_ordinal() == 1
    assert topology.am_i_included()


def test_previous_broker_of_ordinal_one_in_six():
    topology = _topology(6, 1)
    assert topology.previous_broker().ordinal == 3


def test_previous_broker_wraps_for_first():
    topology = _topology(6, 0)
    assert topology.previous_broker() == topology.brokers[-1]


def test_next_broker_and_index_wrap():
    topology = _topology(6, 5)
    assert topology.local_index == len(topology.brokers) - 1
    assert topology.next_index() == 0
    assert topology.next_broker() == topology.brokers[0]


def test_get_index_round_trips_with_brokers():
    topology = _topology(12, 4)
    for index, broker in enumerate(topology.brokers):
        assert topology.get_index(broker.ordinal) == index
    assert topology.get_index(99) == -1


def test_broker_by_ordinal():
    topology = _topology(6, 2)
    assert topology.broker_by_ordinal(4).ordinal == 4
    assert topology.broker_by_ordinal(42) is None


def test_broker_by_ordinal_list():
    topology = _topology(6, 2)
    result = topology.broker_by_ordinal_list([5, 0, 3])
    assert [b.ordinal for b in result] == [5, 0, 3]
    with pytest.raises(KeyError):
        topology.broker_by_ordinal_list([7])


def test_next_brokers_and_natural_followers():
    topology = _topology(6, 1)
    idx = topology.local_index
    nxt = topology.next_brokers(idx, 4)
    assert len(nxt) == 4
    assert nxt[0] == topology.next_broker()
    assert [b.ordinal for b in nxt] == [
        topology.brokers[(idx + 1 + i) % 6].ordinal for i in range(4)
    ]
    assert topology.natural_followers(idx) == [b.ordinal for b in nxt[:2]]


def test_natural_followers_wrap():
    topology = _topology(3, 0)
    assert topology.natural_followers(2) == [
        topology.brokers[0].ordinal,
        topology.brokers[1].ordinal,
    ]


def test_tokens_use_injected_function():
    topology = _topology(6, 1)
    assert topology.get_token(0) == _token_at_index(6, 0)
    assert topology.my_token() == topology.get_token(topology.local_index)


def test_peers_exclude_self():
    topology = _topology(6, 3)
    peers = topology.peers()
    assert len(peers) == 5
    assert all(not b.is_self for b in peers)
    assert {b.ordinal for b in peers} == {0, 1, 2, 4, 5}


def test_has_broker():
    topology = _topology(6, 0)
    assert topology.has_broker(5)
    assert not topology.has_broker(6)


def test_not_included_raises():
    brokers = [BrokerInfo(False, i, f"test-{i}") for i in range(3)]
    topology = new_topology(brokers, 7, _token_at_index)
    assert not topology.am_i_included()
    with pytest.raises(NotIncludedError):
        topology.my_token()
    with pytest.raises(NotIncludedError):
        topology.previous_broker()
    with pytest.raises(NotIncludedError):
        topology.next_broker()


def test_dev_topology():
    topology = new_dev_topology(_token_at_index)
    assert topology.am_i_included()
    assert topology.my_ordinal() == 0
    assert topology.brokers[0].host_name == "localhost"
    assert topology.next_broker() == topology.brokers[0]
    assert topology.peers() == []


def test_broker_str():
    assert str(BrokerInfo(False, 2, "test-2")) == "B2 (test-2)"


def test_new_replication_info():
    topology = _topology(6, 0)
    info = new_replication_info(topology, 123, 0, [3, 1], 2)
    assert info.leader == topology.broker_by_ordinal(0)
    assert [b.ordinal for b in info.followers] == [3, 1]
    assert info.token == 123
    assert info.range_index == 2


def test_replication_info_unknown_leader_is_none():
    topology = _topology(3, 0)
    info = new_replication_info(topology, 0, 9, [1], 0)
    assert info.leader is None