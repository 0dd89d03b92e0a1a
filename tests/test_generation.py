import uuid
from datetime import datetime, timedelta, timezone

from barco.generation import GenId, GenStatus, Generation, TopicDataId, TransactionStatus


def test_gen_status_names():
    names = [str(GenStatus(value)) for value in range(4)]
    assert names == ["Cancelled", "Proposed", "Accepted", "Committed"]
    gen = Generation(status=GenStatus(3))
    assert str(gen.status) == "Committed"


def test_gen_status_ordering():
    statuses = [GenStatus(value) for value in range(4)]
    assert statuses == sorted(statuses)
    assert statuses[0] is GenStatus.CANCELLED
    assert statuses[-1] is GenStatus.COMMITTED
    assert TransactionStatus(1) is TransactionStatus.COMMITTED
    assert TransactionStatus(0) is TransactionStatus.CANCELLED


def test_gen_id_str():
    assert str(GenId(123, 4)) == "123 v4"


def test_gen_id_hashable_and_equal():
    assert {GenId(1, 2), GenId(1, 2)} == {GenId(1, 2)}


def test_generation_id_matches_start_and_version():
    gen = Generation(start=-100, end=200, version=7)
    assert gen.id() == GenId(-100, 7)


def test_generation_time_round_trip():
    moment = datetime(2022, 5, 1, 12, 30, 15, 123456, tzinfo=timezone.utc)
    micros = (moment - datetime(1970, 1, 1, tzinfo=timezone.utc)) // timedelta(microseconds=1)
    gen = Generation(timestamp=micros)
    assert gen.time() == moment


def test_generation_defaults_are_independent():
    a = Generation()
    b = Generation()
    a.followers.append(1)
    assert b.followers == []
    assert a.tx == uuid.UUID(int=0)
    assert a.status is GenStatus.CANCELLED


def test_topic_data_id_gen_id():
    topic = TopicDataId("abc", 10, 2, 3)
    assert topic.gen_id() == GenId(10, 3)


def test_topic_data_id_str():
    assert str(TopicDataId("abc", 10, 2, 3)) == "'abc' 10/2 v3"