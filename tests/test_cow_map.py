import threading

import pytest

from barco.cow_map import CopyOnWriteMap


def _run_concurrently(count, target):
    errors = []

    def wrapped():
        try:
            target()
        except Exception as exc:  # collected and re-raised in the main thread
            errors.append(exc)

    threads = [threading.Thread(target=wrapped) for _ in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    if errors:
        raise errors[0]


def test_concurrent_use():
    m = CopyOnWriteMap()
    lock = threading.Lock()
    counters = {"a": 0, "b": 0}
    values = []

    def work():
        v1, loaded1 = m.load_or_store("a", lambda: "value 1")
        v2, loaded2 = m.load_or_store("b", lambda: "value 2")
        with lock:
            values.append((v1, v2))
            counters["a"] += not loaded1
            counters["b"] += not loaded2

    _run_concurrently(10, work)
    assert counters == {"a": 1, "b": 1}
    assert values == [("value 1", "value 2")] * 10
    assert m.load_or_store("a", lambda: "other") == ("value 1", True)
    assert m.load_or_store("b", lambda: "other") == ("value 2", True)


def test_creation_errors():
    m = CopyOnWriteMap()
    lock = threading.Lock()
    counter = {"b": 0, "errors": 0}

    def failing():
        raise ValueError("test error")

    def work():
        try:
            m.load_or_store("a", failing)
        except ValueError:
            with lock:
                counter["errors"] += 1
        v, loaded = m.load_or_store("b", lambda: "value 2")
        assert v == "value 2"
        with lock:
            counter["b"] += not loaded

    _run_concurrently(10, work)
    assert counter == {"b": 1, "errors": 10}

    v, loaded = m.load_or_store("a", lambda: "a value")
    assert v == "a value"
    assert loaded is False


def test_loaded_returns_existing_value():
    m = CopyOnWriteMap()
    assert m.load_or_store("k", lambda: 1) == (1, False)
    assert m.load_or_store("k", lambda: 2) == (1, True)
    assert m.get("k") == 1
    assert "k" in m
    assert len(m) == 1


def test_error_does_not_store():
    m = CopyOnWriteMap()
    with pytest.raises(RuntimeError):
        m.load_or_store("x", lambda: (_ for _ in ()).throw(RuntimeError("boom")))
    assert "x" not in m
    assert len(m) == 0