import uuid

import pytest

from barco.generation import GenStatus, Generation
from barco.ownership.messages import (
    CreationError,
    GenReadResult,
    LocalGenMessage,
    RemoteGenCommittedMessage,
    RemoteGenProposedMessage,
    new_creation_error,
    new_non_retryable_error,
    wrap_creation_error,
    wrap_if_err,
)


def test_new_creation_error_is_retryable():
    err = new_creation_error("Followers state could not be read")
    assert err.retryable is True
    assert err.can_be_retried() is True
    assert str(err) == "Followers state could not be read"


def test_non_retryable_error():
    err = new_non_retryable_error("Unexpected local error")
    assert err.retryable is False
    assert err.can_be_retried() is False
    assert str(err) == "Unexpected local error"


def test_wrap_creation_error_keeps_message():
    err = wrap_creation_error(ValueError("boom"))
    assert isinstance(err, CreationError)
    assert str(err) == "boom"
    assert err.retryable is True


def test_wrap_if_err_none():
    assert wrap_if_err(None) is None


def test_wrap_if_err_wraps():
    err = wrap_if_err(KeyError("missing"))
    assert isinstance(err, CreationError)
    assert err.retryable is True


def test_gen_read_result_defaults():
    result = GenReadResult()
    assert (result.committed, result.proposed, result.error) == (None, None, None)


def test_set_result_success_completes_message():
    message = RemoteGenCommittedMessage(token1=10, token2=None, tx=uuid.uuid4(), origin=1)
    message.set_result(None)
    assert message.result.done()
    assert message.wait(timeout=1) is None


def test_set_result_error_is_raised_by_wait():
    gen = Generation(start=5, version=2, status=GenStatus.PROPOSED)
    message = RemoteGenProposedMessage(gen=gen)
    error = new_creation_error("Concurrent generation creation rejected")
    message.set_result(error)
    with pytest.raises(CreationError) as info:
        message.wait(timeout=1)
    assert info.value is error


def test_messages_have_independent_results():
    first = LocalGenMessage(topology=None)
    second = LocalGenMessage(topology=None)
    first.set_result(None)
    assert first.result.done()
    assert not second.result.done()
    assert first.is_new is False