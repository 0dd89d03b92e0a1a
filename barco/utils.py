"""Assorted helpers shared by the broker components."""

from __future__ import annotations

import logging
import math
import random
import threading
import uuid
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import Future
from datetime import datetime, timedelta, timezone
from typing import Any

from barco.generation import Generation
from barco.topology import BrokerInfo

_log = logging.getLogger(__name__)
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_jitter_rng = random.Random()


def max_version(*generations: Generation | None) -> int:
    """Return the highest version among the generations that are not None, or 0."""
    return max((g.version for g in generations if g is not None), default=0)


def to_csv(values: Iterable[int]) -> str:
    return ",".join(str(v) for v in values)


def valid_ring_length(length: int) -> int:
    """Return the largest ring length (1 or 3 * 2^n) that fits the given number.

    For example 3 -> 3, 4 -> 3, 5 -> 3 and 7 -> 6; 2 maps to 3.
    """
    if length < 1:
        raise ValueError(f"Ring length must be positive, got {length}")
    if length == 1:
        return 1
    if length == 2:
        return 3
    exponent = math.floor(math.log2(length / 3))
    return int(3 * 2**exponent)


def jitter(duration: float) -> float:
    """Add a +-5% jitter to a duration in seconds, with millisecond resolution."""
    ms = float(int(duration * 1000))
    max_jitter = 0.1 * ms
    if max_jitter < 1:
        raise ValueError("Delay should be at least 20ms")
    jitter_range = _jitter_rng.random() * max_jitter
    start_jitter = 0.05 * ms
    return int(ms - start_jitter + jitter_range) / 1000


def get_service_address(
    port: int, local_info: BrokerInfo, listen_on_all_addresses: bool
) -> str:
    """Return the address to bind: all interfaces or the broker's host name."""
    if listen_on_all_addresses:
        return f":{port}"
    return f"{local_info.host_name}:{port}"


def to_unix_millis(t: datetime) -> int:
    if t.tzinfo is None:
        t = t.astimezone()
    return (t - _EPOCH) // timedelta(milliseconds=1)


def from_unix_millis(millis: int) -> datetime:
    """Return an aware UTC datetime for the given unix milliseconds."""
    return _EPOCH + timedelta(milliseconds=millis)


def to_blob(value: uuid.UUID) -> bytes:
    return value.bytes


def contains_string(values: Iterable[str], key: str) -> bool:
    return key in values


def find_gen_by_token(generations: Sequence[Generation], token: int) -> int:
    """Return the index of the generation starting at the token, or -1."""
    return next((i for i, gen in enumerate(generations) if gen.start == token), -1)


def in_parallel(length: int, func: Callable[[int], Any]) -> list[Future]:
    """Call ``func(i)`` for each index in its own thread.

    Each future holds the value returned by its call, or what the call raised.
    """
    futures: list[Future] = []
    for index in range(length):
        future: Future = Future()
        future.set_running_or_notify_cancel()

        def run(i: int = index, f: Future = future) -> None:
            try:
                f.set_result(func(i))
            except BaseException as exc:  # noqa: BLE001 - delivered through the future
                f.set_exception(exc)

        threading.Thread(target=run, daemon=True).start()
        futures.append(future)
    return futures


def create_err_and_log(fmt: str, *args: object) -> RuntimeError:
    """Format a message, log it as an error and return it as an exception."""
    message = fmt % args if args else fmt
    _log.error(message)
    return RuntimeError(message)