"""Generation lifecycle: starting, failover, range splits and joins."""

from __future__ import annotations

import logging
import random
import threading
import time
import uuid
from collections.abc import Callable, Iterable
from typing import Any

from barco.generation import GenStatus, Generation
from barco.ownership.messages import (
    CreationError,
    GenMessage,
    LocalFailoverGenMessage,
    LocalGenMessage,
    LocalJoinRangeGenMessage,
    LocalSplitRangeGenMessage,
    RemoteGenCommittedMessage,
    RemoteGenProposedMessage,
    new_creation_error,
)
from barco.ownership.process_local import StartReason, _now_micros
from barco.ownership.range_changes import RangeProcessing
from barco.topology import BrokerInfo, TopologyInfo
from barco.utils import create_err_and_log, jitter

_log = logging.getLogger(__name__)

# Durations in seconds
BASE_DELAY = 0.15
MAX_DELAY = 0.3
MAX_WAIT_FOR_PREVIOUS = 120.0
WAIT_FOR_PREVIOUS_STEP = 0.5
MAX_WAIT_FOR_SPLIT = 300.0
WAIT_FOR_SPLIT_STEP = 5.0
WAIT_FOR_JOIN_BASE = 5.0
MAX_SHUTDOWN_TAKE_OVER_ATTEMPTS = 5
SHUTDOWN_TAKE_OVER_DELAY = 1.0
REPLICATION_FACTOR = 3

START_TOKEN = -(2**63)
_MAX_TOKEN = 2**63 - 1


def get_delay() -> float:
    """Return a random delay in seconds between the base delay and the max delay."""
    diff_ms = int((MAX_DELAY - BASE_DELAY) * 1000)
    return BASE_DELAY + random.randrange(diff_ms) / 1000


def check_state(
    gens: Iterable[Generation],
    accepted: Generation | None = None,
    proposed: Generation | None = None,
) -> tuple[Generation, Generation]:
    """Return the accepted and proposed generations with the highest versions."""
    if accepted is None:
        accepted = _empty_generation()
    if proposed is None:
        proposed = _empty_generation()
    for gen in gens:
        if gen.status == GenStatus.ACCEPTED:
            if gen.version > accepted.version:
                accepted = gen
        elif gen.status == GenStatus.PROPOSED:
            if gen.version > proposed.version:
                proposed = gen
    return accepted, proposed


def _empty_generation() -> Generation:
    return Generation(start=_MAX_TOKEN, version=0, status=GenStatus.CANCELLED)


class Generator(RangeProcessing):
    """Creates generations, processing one at a time.

    A generation request arriving while another one is being processed is
    rejected straight away with a retryable error, so that it can be retried
    after a short delay rather than waiting behind the current one.
    """

    def __init__(
        self, discoverer: Any, gossiper: Any, local_db: Any, dev_mode: bool = False
    ) -> None:
        super().__init__(discoverer, gossiper, local_db)
        self.dev_mode = dev_mode
        self._processing = threading.Lock()
        self._closed = threading.Event()
        self._handlers: dict[type, Callable[[Any], None]] = {
            LocalGenMessage: self.process_local_my_token,
            RemoteGenProposedMessage: self.process_remote_proposed,
            RemoteGenCommittedMessage: self.process_remote_committed,
            LocalFailoverGenMessage: self.process_local_failover,
            LocalSplitRangeGenMessage: self.process_local_split_range,
            LocalJoinRangeGenMessage: self.process_local_join_range,
        }

    def init(self) -> None:
        """Register as listener of generation requests from peers."""
        self.gossiper.register_gen_listener(self)

    def close(self) -> None:
        """Stop background retry loops."""
        self._closed.set()

    # Requests from peers

    def on_remote_set_as_proposed(
        self,
        new_gen: Generation,
        new_gen2: Generation | None,
        expected_tx: uuid.UUID | None,
    ) -> None:
        if new_gen2 is not None and new_gen2.status != GenStatus.ACCEPTED:
            raise ValueError("Multiple generations can only be accepted (not proposed)")
        self._submit(
            RemoteGenProposedMessage(gen=new_gen, gen2=new_gen2, expected_tx=expected_tx)
        )

    def on_remote_set_as_committed(
        self, token1: int, token2: int | None, tx: uuid.UUID, origin: int
    ) -> None:
        self._submit(
            RemoteGenCommittedMessage(token1=token1, token2=token2, tx=tx, origin=origin)
        )

    def on_remote_range_split_start(self, origin: int) -> None:
        """Split the local range at the request of the next broker."""
        topology = self.discoverer.topology()

        if not topology.am_i_included():
            raise create_err_and_log("Ignoring remote range split as I'm leaving the cluster")

        if origin >= len(topology.brokers):
            raise create_err_and_log(
                "Received split range request from B%d but topology does not contain it "
                "(length: %d)",
                origin,
                len(topology.brokers),
            )

        next_ordinal = topology.next_broker().ordinal
        if origin != next_ordinal:
            raise create_err_and_log(
                "Received split range request from B%d but it's not the next broker (B%d)",
                origin,
                next_ordinal,
            )

        self._submit(LocalSplitRangeGenMessage(topology=topology, origin=origin))

    # Lifecycle

    def start_generations(self) -> None:
        """Register for host up/down events and start creating generations."""
        self.gossiper.register_host_up_down_listener(self)
        self._spawn(self._start_new)

    def on_host_down(self, broker: BrokerInfo) -> None:
        topology = self.discoverer.topology()
        if not topology.am_i_included():
            _log.debug("Broker B%d detected but I'm leaving the cluster", broker.ordinal)
            return

        broker_index = topology.get_index(broker.ordinal)
        followers = topology.natural_followers(broker_index)
        if followers[0] != topology.my_ordinal():
            _log.debug(
                "Generator detected %s as DOWN but we are not the next broker in the ring",
                broker,
            )
            return

        previous_gen = self.discoverer.generation(topology.get_token(broker_index))
        if previous_gen is None:
            _log.warning(
                "Broker B%d detected down without owning a generation", broker.ordinal
            )
            return

        if previous_gen.leader == topology.my_ordinal():
            _log.debug(
                "Broker B%d detected as DOWN and we are already leaders of T%d",
                broker.ordinal,
                broker.ordinal,
            )
            return

        _log.info(
            "Generator detected %s as DOWN, trying to become the leader of T%d",
            broker,
            broker.ordinal,
        )
        self._spawn(self._failover_until_up, broker)

    def on_host_up(self, broker: BrokerInfo) -> None:
        _log.debug("Generator detected %s as UP", broker)

    def on_host_shutting_down(self, broker: BrokerInfo) -> None:
        topology = self.discoverer.topology()
        if not topology.am_i_included():
            _log.debug(
                "B%d detected as shutting down but I'm leaving the cluster", broker.ordinal
            )
            return

        if broker.ordinal >= len(topology.brokers):
            _log.info(
                "B%d detected as shutting down but it is already not included in the topology",
                broker.ordinal,
            )
            return

        if broker.ordinal != topology.previous_broker().ordinal:
            _log.info(
                "B%d detected as shutting down but it's not the previous broker",
                broker.ordinal,
            )
            return

        _log.info(
            "Attempting to take over T%d as the result of B%d shutting down",
            broker.ordinal,
            broker.ordinal,
        )
        self._spawn(self._shutdown_take_over, broker)

    def on_join_range(
        self, previous_topology: TopologyInfo, topology: TopologyInfo
    ) -> None:
        if not topology.am_i_included():
            _log.error("Ignoring join range call as I'm leaving the cluster")
        self._spawn(self._join_range_loop, previous_topology, topology)

    # Background loops

    def _failover_until_up(self, broker: BrokerInfo) -> None:
        # When the host comes back up, it's expected to retake its token
        while (
            not self._closed.is_set()
            and not self.gossiper.is_host_up(broker.ordinal)
            and not self.local_db.is_shutting_down()
        ):
            topology = self.discoverer.topology()
            if not topology.am_i_included():
                _log.info("Not attempting broker down failover as I'm leaving the cluster")
                return
            if self._try_submit(LocalFailoverGenMessage(broker=broker, topology=topology)):
                _log.debug("Generator was able to become leader of T%d", broker.ordinal)
                return
            self._closed.wait(get_delay())

    def _shutdown_take_over(self, broker: BrokerInfo) -> None:
        # Let topology changes catch up, if any
        if self._closed.wait(SHUTDOWN_TAKE_OVER_DELAY):
            return
        # Shutting down is only a hint: normal failover kicks in when this fails
        for _ in range(MAX_SHUTDOWN_TAKE_OVER_ATTEMPTS):
            topology = self.discoverer.topology()
            if not topology.am_i_included():
                _log.info("Not attempting shutdown failover as I'm leaving the cluster")
                return
            message = LocalFailoverGenMessage(
                broker=broker, topology=topology, is_shutting_down=True
            )
            if self._try_submit(message):
                return
            if self._closed.wait(get_delay()):
                return

    def _join_range_loop(
        self, previous_topology: TopologyInfo, topology: TopologyInfo
    ) -> None:
        if topology.local_index > 0:
            delay = topology.local_index * WAIT_FOR_JOIN_BASE
            _log.debug("Waiting for %ss before start joining the token ranges", delay)
            if self._closed.wait(delay):
                return

        # As long as the topology doesn't change
        while (
            not self._closed.is_set()
            and len(topology.brokers) == len(self.discoverer.topology().brokers)
            and not self.local_db.is_shutting_down()
        ):
            message = LocalJoinRangeGenMessage(
                topology=topology, previous_topology=previous_topology
            )
            if self._try_submit(message):
                _log.debug(
                    "Generator was able to become leader of joined range for T%d",
                    topology.my_ordinal(),
                )
                return
            # A short wait: long ones make the system unavailable
            self._closed.wait(get_delay())

    def _start_new(self) -> None:
        topology = self.discoverer.topology()

        if self.dev_mode:
            self._create_dev_generation()
            return

        if topology.my_ordinal() != 0:
            self._wait_for_previous_range(topology)

        reason = self.determine_start_reason()

        if reason == StartReason.SCALING_UP:
            _log.info("Broker considered as scaling up")
            self._request_range_split(topology)
            return

        # Restarting or starting fresh
        while not self._closed.is_set():
            topology = self.discoverer.topology()
            if topology.am_i_included():
                message = LocalGenMessage(
                    topology=topology, is_new=reason == StartReason.NEW_CLUSTER
                )
                try:
                    self._submit(message)
                    return
                except CreationError as err:
                    _log.error("Could not create generation when starting: %s", err)
                    if not err.can_be_retried():
                        raise RuntimeError(
                            "Non retryable error found when starting"
                        ) from err
            self._closed.wait(get_delay())

    def _wait_for_previous_range(self, topology: TopologyInfo) -> None:
        """Wait for the previous broker to create the generation of its token."""
        start = time.monotonic()
        while time.monotonic() - start <= MAX_WAIT_FOR_PREVIOUS:
            prev = topology.previous_broker()
            prev_token = topology.get_token(topology.get_index(prev.ordinal))
            if self._get_generations(prev.ordinal, prev_token).committed is not None:
                _log.debug(
                    "Waited %dms for a successful previous range generation",
                    (time.monotonic() - start) * 1000,
                )
                return
            if self._closed.wait(WAIT_FOR_PREVIOUS_STEP):
                return
        raise RuntimeError(
            f"Waited for previous range generation for more than {MAX_WAIT_FOR_PREVIOUS}s"
        )

    def _request_range_split(self, topology: TopologyInfo) -> None:
        """Ask the previous broker to split its range and wait for our generation."""
        token = topology.my_token()
        prev_ordinal = topology.previous_broker().ordinal

        # Initial delay based on the ring position, to avoid concurrent creations
        prev_index = topology.get_index(prev_ordinal)
        if prev_index > 0:
            delay = WAIT_FOR_SPLIT_STEP * (prev_index // 2)
            _log.info("Waiting %ss before requesting range split", delay)
            if self._closed.wait(delay):
                return

        start = time.monotonic()
        while self.discoverer.generation(token) is None:
            if self._closed.is_set():
                return
            _log.info(
                "Sending message to previous broker B%d to request token range split",
                prev_ordinal,
            )

            if len(topology.brokers) != len(self.discoverer.topology().brokers):
                raise RuntimeError("There was a change in the topology since starting")

            if time.monotonic() - start > MAX_WAIT_FOR_SPLIT:
                raise RuntimeError(
                    f"Waited for range split for more than {MAX_WAIT_FOR_SPLIT}s"
                )

            if not self.gossiper.is_host_up(prev_ordinal):
                _log.error(
                    "B%d is DOWN waiting for it to be UP to request a range split",
                    prev_ordinal,
                )
            else:
                try:
                    self.gossiper.range_split_start(prev_ordinal)
                except Exception as err:  # noqa: BLE001 - retried
                    _log.error(
                        "There was an error requesting token range split, retrying: %s", err
                    )

            self._closed.wait(jitter(WAIT_FOR_SPLIT_STEP))

        _log.info(
            "Waited %dms for B%d to split ranges",
            (time.monotonic() - start) * 1000,
            prev_ordinal,
        )

    def _create_dev_generation(self) -> None:
        gen = Generation(
            start=START_TOKEN,
            end=START_TOKEN,
            version=1,
            timestamp=_now_micros(),
            leader=0,
            followers=[],
            tx_leader=0,
            tx=uuid.uuid4(),
            status=GenStatus.COMMITTED,
            parents=[],
        )
        self.discoverer.repair_committed(gen)

    # Processing

    def _submit(self, message: GenMessage) -> None:
        """Process the message unless another one is in flight; raises its error."""
        if not self._processing.acquire(blocking=False):
            message.set_result(new_creation_error("Concurrent generation creation rejected"))
        else:
            try:
                self._process_generation(message)
            except Exception as err:  # noqa: BLE001 - delivered through the message
                _log.warning("Processing generation resulted in error: %s", err)
                message.set_result(err)
            else:
                message.set_result(None)
            finally:
                self._processing.release()
        message.wait()

    def _try_submit(self, message: GenMessage) -> bool:
        try:
            self._submit(message)
        except Exception:  # noqa: BLE001 - callers retry
            return False
        return True

    def _process_generation(self, message: GenMessage) -> None:
        handler = self._handlers.get(type(message))
        if handler is None:
            raise TypeError(
                f"Unhandled generation internal message type {type(message).__name__}"
            )
        handler(message)

    def _spawn(self, target: Callable[..., None], *args: Any) -> threading.Thread:
        thread = threading.Thread(target=target, args=args, daemon=True)
        thread.start()
        return thread


__all__ = [
    "START_TOKEN",
    "Generator",
    "check_state",
    "get_delay",
]