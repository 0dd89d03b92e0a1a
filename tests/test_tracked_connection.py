import socket
import threading

import pytest

from barco.tracked_connection import TrackedConnection, new_failed_connection


@pytest.fixture
def pair():
    a, b = socket.socketpair()
    yield a, b
    a.close()
    b.close()


def test_open_connection_reads_and_writes(pair):
    a, b = pair
    conn = TrackedConnection(a, None)
    assert conn.is_open()
    assert conn.write(b"hello") == 5
    assert b.recv(5) == b"hello"
    b.sendall(b"world")
    assert conn.read(5) == b"world"


def test_close_marks_closed_and_calls_handler_once(pair):
    a, _ = pair
    calls = []
    done = threading.Event()

    def handler(c):
        calls.append(c)
        done.set()

    conn = TrackedConnection(a, handler)
    conn.close()
    conn.close()
    assert done.wait(2)
    assert not conn.is_open()
    assert calls == [conn]


def test_context_manager_closes(pair):
    a, _ = pair
    with TrackedConnection(a, None) as conn:
        assert conn.is_open()
    assert not conn.is_open()
    assert a.fileno() == -1


def test_failed_connection():
    conn = new_failed_connection()
    assert not conn.is_open()
    with pytest.raises(ConnectionError):
        conn.read(1)
    with pytest.raises(ConnectionError):
        conn.write(b"x")


def test_ids_are_unique(pair):
    a, b = pair
    assert TrackedConnection(a, None).id != TrackedConnection(b, None).id
    assert new_failed_connection().id != new_failed_connection().id