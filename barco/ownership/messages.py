"""Queued generation messages and the errors of generation creation."""

from __future__ import annotations

import uuid
from concurrent.futures import Future
from dataclasses import dataclass, field

from barco.generation import Generation
from barco.topology import BrokerInfo, TopologyInfo


class CreationError(Exception):
    """Failure to create (propose, accept and commit) a generation."""

    def __init__(self, message: str, retryable: bool = True) -> None:
        super().__init__(message)
        self.message = message
        self.retryable = retryable

    def can_be_retried(self) -> bool:
        return self.retryable

    def __str__(self) -> str:
        return self.message


def new_creation_error(message: str) -> CreationError:
    """Return a retryable creation error."""
    return CreationError(message, retryable=True)


def new_non_retryable_error(message: str) -> CreationError:
    """Return a creation error that must not be retried."""
    return CreationError(message, retryable=False)


def wrap_creation_error(err: BaseException) -> CreationError:
    """Return a retryable creation error carrying the message of ``err``."""
    return CreationError(str(err), retryable=True)


def wrap_if_err(err: BaseException | None) -> CreationError | None:
    """Wrap ``err`` as a retryable creation error, or return None when there is none."""
    if err is None:
        return None
    return wrap_creation_error(err)


@dataclass
class GenReadResult:
    """Generation state read from a peer: committed, proposed or the read error."""

    committed: Generation | None = None
    proposed: Generation | None = None
    error: BaseException | None = None


class GenMessage:
    """A queued item processed by the generator one at a time.

    Subclasses hold a ``result`` future completed through :meth:`set_result`.
    """

    result: Future

    def set_result(self, err: BaseException | None) -> None:
        """Complete the message: success when ``err`` is None."""
        if err is None:
            self.result.set_result(None)
        else:
            self.result.set_exception(err)

    def wait(self, timeout: float | None = None) -> None:
        """Block until processed; raises the processing error, if any."""
        self.result.result(timeout)


@dataclass(eq=False)
class LocalGenMessage(GenMessage):
    """Creation of a generation for the token naturally owned by this broker."""

    topology: TopologyInfo
    is_new: bool = False  # a new token is expected to get version 1
    result: Future = field(default_factory=Future, repr=False)


@dataclass(eq=False)
class LocalFailoverGenMessage(GenMessage):
    """Taking over the token of a broker that is down or shutting down."""

    broker: BrokerInfo
    topology: TopologyInfo
    is_shutting_down: bool = False
    result: Future = field(default_factory=Future, repr=False)


@dataclass(eq=False)
class LocalSplitRangeGenMessage(GenMessage):
    """Splitting the local range at the request of a joining broker."""

    topology: TopologyInfo
    origin: int  # ordinal of the broker requesting the split
    result: Future = field(default_factory=Future, repr=False)


@dataclass(eq=False)
class LocalJoinRangeGenMessage(GenMessage):
    """Joining the local range with the next one after a scale down."""

    topology: TopologyInfo
    previous_topology: TopologyInfo
    result: Future = field(default_factory=Future, repr=False)


@dataclass(eq=False)
class RemoteGenProposedMessage(GenMessage):
    """A peer asking to store a generation as proposed or accepted."""

    gen: Generation
    gen2: Generation | None = None
    expected_tx: uuid.UUID | None = None
    result: Future = field(default_factory=Future, repr=False)


@dataclass(eq=False)
class RemoteGenCommittedMessage(GenMessage):
    """A peer asking to commit the transaction of one or two generations."""

    token1: int
    token2: int | None
    tx: uuid.UUID
    origin: int
    result: Future = field(default_factory=Future, repr=False)