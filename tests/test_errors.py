import pytest

from barco.errors import (
    GossipGetNotFound,
    HttpError,
    ProducingError,
    new_no_write_attempted_error,
)


def test_gossip_get_not_found_default_message():
    err = GossipGetNotFound()
    assert str(err) == "Information not found"
    with pytest.raises(LookupError):
        raise err


def test_http_error_holds_code_and_message():
    err = HttpError(400, "Invalid topic")
    assert err.status_code == 400
    assert str(err) == "Invalid topic"
    with pytest.raises(HttpError) as info:
        raise err
    assert info.value.status_code == 400


def test_producing_error_write_attempted_flag():
    err = ProducingError("boom", True)
    assert err.was_write_attempted is True
    assert str(err) == "boom"


def test_new_no_write_attempted_error_without_args():
    err = new_no_write_attempted_error("Coalescer can not write as it's no longer the leader")
    assert err.was_write_attempted is False
    assert str(err) == "Coalescer can not write as it's no longer the leader"


def test_new_no_write_attempted_error_formats_args():
    err = new_no_write_attempted_error("token %d missing", 42)
    assert err.was_write_attempted is False
    assert "42" in str(err)
    assert str(err).startswith("token ")