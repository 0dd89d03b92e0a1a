"""Generation creation for the local token, remote requests and failover."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Any

from barco.generation import GenId, GenStatus, Generation
from barco.ownership.messages import (
    CreationError,
    GenReadResult,
    LocalFailoverGenMessage,
    LocalGenMessage,
    RemoteGenCommittedMessage,
    RemoteGenProposedMessage,
    new_creation_error,
    new_non_retryable_error,
    wrap_creation_error,
)
from barco.utils import in_parallel, max_version

_log = logging.getLogger(__name__)

MAX_DELAY = 0.3  # seconds


class StartReason(IntEnum):
    RESTARTED = 0
    NEW_CLUSTER = 1
    SCALING_UP = 2


def _now_micros() -> int:
    return time.time_ns() // 1000


def is_in_progress(proposed: Generation | None) -> bool:
    """Return True when a proposed generation exists and is older than the max delay."""
    if proposed is None:
        return False
    return datetime.now(timezone.utc) - proposed.time() > timedelta(seconds=MAX_DELAY)


def get_tx(gen: Generation | None) -> uuid.UUID | None:
    return None if gen is None else gen.tx


class LocalProcessing:
    """Generation processing steps that run on the local broker.

    ``discoverer`` holds the local generation state and topology; ``gossiper``
    reaches the peers. Processing methods return None when the generation was
    created and raise :class:`CreationError` otherwise.
    """

    def __init__(self, discoverer: Any, gossiper: Any, local_db: Any = None) -> None:
        self.discoverer = discoverer
        self.gossiper = gossiper
        self.local_db = local_db

    def process_local_my_token(self, message: LocalGenMessage) -> None:
        """Create a generation for the token naturally owned by this broker."""
        topology = message.topology
        token = topology.my_token()
        my_ordinal = topology.my_ordinal()

        gen = Generation(
            start=token,
            end=topology.get_token(topology.local_index + 1),
            version=0,
            timestamp=_now_micros(),
            leader=my_ordinal,
            followers=topology.natural_followers(topology.local_index),
            tx=uuid.uuid4(),
            tx_leader=my_ordinal,
            status=GenStatus.PROPOSED,
            parents=[],
        )

        _log.info(
            "Processing a generation started locally for T%d (%d) with B%d and B%d as followers",
            my_ordinal, token, gen.followers[0], gen.followers[1],
        )

        read_results = self._read_state_from_followers(gen)
        if read_results[0].error is not None and read_results[1].error is not None:
            raise new_creation_error("Followers state could not be read")

        if message.is_new and (
            read_results[0].committed is not None or read_results[1].committed is not None
        ):
            raise new_creation_error("Unexpected information found in peer for new token")

        local_committed, local_proposed = self.discoverer.generation_proposed(token)

        if is_in_progress(local_proposed):
            raise new_creation_error("In progress generation in local broker")

        if is_in_progress(read_results[0].proposed) or is_in_progress(read_results[1].proposed):
            raise new_creation_error("In progress generation in remote broker")

        if message.is_new:
            _log.info("Proposing myself as a first time leader of T%d (%d)", my_ordinal, token)
            gen.version = 1
        else:
            parent_version = max_version(
                local_committed, read_results[0].committed, read_results[1].committed
            )
            gen.version = parent_version + 1
            gen.parents.append(GenId(start=token, version=parent_version))
            _log.info(
                "Proposing myself as leader of T%d (%d) in v%d", my_ordinal, token, gen.version
            )

        follower_errors = self.set_state_to_followers(gen, None, read_results)
        if follower_errors[0] is not None and follower_errors[1] is not None:
            raise new_creation_error("Followers state could not be set to proposed")

        try:
            self.discoverer.set_generation_proposed(gen, None, get_tx(local_proposed))
        except Exception as err:
            _log.error("Unexpected error when setting as proposed locally: %s", err)
            raise new_non_retryable_error("Unexpected local error") from err

        _log.info("Accepting myself as a leader for T%d (%d)", my_ordinal, token)
        gen.status = GenStatus.ACCEPTED

        follower_errors = self.set_state_to_followers(gen, follower_errors, read_results)
        if follower_errors[0] is not None and follower_errors[1] is not None:
            raise new_creation_error("Followers state could not be set to accepted")

        try:
            self.discoverer.set_generation_proposed(gen, None, gen.tx)
        except Exception as err:
            _log.error("Unexpected error when setting as accepted locally: %s", err)
            raise new_creation_error("Unexpected local error") from err

        _log.info("Setting transaction for T%d (%d) as committed", my_ordinal, token)

        try:
            self.discoverer.set_as_committed(gen.start, None, gen.tx, my_ordinal)
        except Exception as err:
            _log.error("Set as committed locally failed (probably local db related): %s", err)
            raise new_creation_error("Set as committed locally failed") from err

        gen.status = GenStatus.COMMITTED
        follower_errors = self.set_state_to_followers(gen, follower_errors, read_results)
        if follower_errors[0] is not None and follower_errors[1] is not None:
            # Still committed: followers will roll it forward
            _log.warning(
                "Setting transaction for T%d (%d) as committed failed on followers",
                my_ordinal, token,
            )

    def process_remote_proposed(self, m: RemoteGenProposedMessage) -> None:
        """Store a generation proposed or accepted by a remote leader."""
        gen = m.gen
        _log.debug(
            "Setting generation for token %d with remote leader B%d version %d as %s",
            gen.start, gen.leader, gen.version, gen.status,
        )
        if m.gen2 is not None:
            _log.debug(
                "Also setting generation for token %d with remote leader B%d version %d as %s",
                m.gen2.start, m.gen2.leader, m.gen2.version, m.gen2.status,
            )
        try:
            self.discoverer.set_generation_proposed(gen, m.gen2, m.expected_tx)
        except Exception as err:
            _log.error(
                "Failed to set generation for token %d with remote leader B%d version %d as %s: %s",
                gen.start, gen.leader, gen.version, gen.status, err,
            )
            raise wrap_creation_error(err) from err

    def process_remote_committed(self, m: RemoteGenCommittedMessage) -> None:
        """Commit a transaction requested by a remote leader."""
        _log.debug("Setting generation for token %d tx %s as committed", m.token1, m.tx)
        if m.token2 is not None:
            _log.debug("Also setting generation for token %d tx %s as committed", m.token2, m.tx)
        try:
            self.discoverer.set_as_committed(m.token1, m.token2, m.tx, m.origin)
        except Exception as err:
            _log.error(
                "Failed to set generation for token %d tx %s as committed: %s",
                m.token1, m.tx, err,
            )
            raise wrap_creation_error(err) from err

    def process_local_failover(self, m: LocalFailoverGenMessage) -> None:
        """Become the leader of the token of the previous broker, which is down."""
        reason = "failover"
        topology = m.topology
        down_broker = m.broker.ordinal
        my_ordinal = topology.my_ordinal()

        if down_broker >= len(topology.brokers):
            raise new_non_retryable_error(
                f"Could not process failover for B{down_broker} as it's already "
                "not included in the topology"
            )

        index = topology.get_index(down_broker)
        peer_follower = topology.natural_followers(index)[1]
        token = topology.get_token(index)

        previous_gen = self.discoverer.generation(token)
        if previous_gen is None:
            raise new_creation_error(
                f"Could not process token failover B{down_broker} because it does "
                "not own a generation"
            )

        if previous_gen.leader == my_ordinal:
            _log.debug("Failover not needed, we are already the leader of T%d", down_broker)
            return

        if down_broker != topology.previous_broker().ordinal:
            raise new_non_retryable_error(
                f"Could not process failover for B{down_broker} as it's not our "
                f"previous broker (ring size: {len(topology.brokers)})"
            )

        _log.debug("Processing token failover for T%d", down_broker)
        try:
            is_up = self.gossiper.read_broker_is_up(peer_follower, down_broker)
        except Exception as err:
            raise wrap_creation_error(err) from err

        if is_up:
            raise new_creation_error(
                f"Broker B{down_broker} is still consider as UP by B{peer_follower}"
            )

        gen = Generation(
            start=token,
            end=topology.get_token(index + 1),
            version=previous_gen.version + 1,
            timestamp=_now_micros(),
            leader=my_ordinal,
            followers=[peer_follower, down_broker],
            tx_leader=my_ordinal,
            tx=uuid.uuid4(),
            status=GenStatus.PROPOSED,
            parents=[GenId(start=token, version=previous_gen.version)],
        )

        _log.info(
            "Proposing myself as leader of T%d (%d) in v%d (%s)",
            down_broker, token, gen.version, reason,
        )

        committed, proposed = self.discoverer.generation_proposed(token)
        if previous_gen != committed:
            _log.error(
                "Unexpected new committed generation found for T%d (v%s)",
                down_broker, "?" if committed is None else committed.version,
            )
            return

        peer_info = self._get_generations(peer_follower, gen.start)
        if peer_info.error is not None:
            raise new_creation_error(
                f"Generation info could not be read from follower: {peer_info.error}"
            )

        try:
            self.discoverer.set_generation_proposed(gen, None, get_tx(proposed))
            self.gossiper.set_generation_as_proposed(
                peer_follower, gen, None, get_tx(peer_info.proposed)
            )
        except Exception as err:
            raise wrap_creation_error(err) from err

        _log.info(
            "Accepting myself as leader of T%d (%d) in v%d (%s)",
            down_broker, token, gen.version, reason,
        )
        gen.status = GenStatus.ACCEPTED

        try:
            self.gossiper.set_generation_as_proposed(peer_follower, gen, None, gen.tx)
        except Exception as err:
            raise wrap_creation_error(err) from err

        try:
            self.discoverer.set_generation_proposed(gen, None, gen.tx)
        except Exception as err:
            _log.error("Unexpected error when setting as accepted locally: %s", err)
            raise new_creation_error("Unexpected local error") from err

        _log.info(
            "Setting transaction for T%d (%d) as committed (%s)", down_broker, token, reason
        )

        try:
            self.discoverer.set_as_committed(gen.start, None, gen.tx, my_ordinal)
        except Exception as err:
            _log.error("Set as committed locally failed (probably local db related): %s", err)
            raise new_creation_error("Set as committed locally failed") from err

        try:
            self.gossiper.set_as_committed(peer_follower, gen.start, None, gen.tx)
        except Exception as err:
            _log.warning("Setting as committed on B%d failed: %s", peer_follower, err)

    def determine_start_reason(self) -> StartReason:
        """Determine whether the cluster is new, scaling up or this broker restarted."""
        _log.info("Trying to determine whether its a new cluster")
        topology = self.discoverer.topology()
        my_token = topology.my_token()

        try:
            covered = self.gossiper.is_token_range_covered(
                topology.previous_broker().ordinal, my_token
            )
        except Exception as err:
            raise RuntimeError("Gossip query failed for token range") from err
        if covered:
            # The previous broker covers my token: the range must be split
            return StartReason.SCALING_UP

        try:
            has_history = self.gossiper.has_token_history_for_token(
                topology.next_broker().ordinal, my_token
            )
        except Exception as err:
            raise RuntimeError("Gossip query failed for token history") from err
        if has_history:
            return StartReason.RESTARTED

        return StartReason.NEW_CLUSTER

    def read_state_from_peers(self, token: int, peers: Sequence[int]) -> list[GenReadResult]:
        """Read the generation state of a token from each peer, in parallel."""
        futures = in_parallel(len(peers), lambda i: self._get_generations(peers[i], token))
        return [future.result() for future in futures]

    def set_state_to_followers(
        self,
        gen: Generation,
        previous_errors: Sequence[BaseException | None] | None,
        read_results: Sequence[GenReadResult],
    ) -> list[BaseException | None]:
        """Store the generation on both followers; return the error of each, or None."""
        if previous_errors is None:
            previous_errors = [None, None]
        futures = in_parallel(
            2,
            lambda i: self._set_remote_state(
                gen.followers[i], gen, previous_errors[i], read_results[i]
            ),
        )
        return [future.result() for future in futures]

    def _read_state_from_followers(self, gen: Generation) -> list[GenReadResult]:
        return self.read_state_from_peers(gen.start, gen.followers)

    def _get_generations(self, ordinal: int, token: int) -> GenReadResult:
        try:
            return self.gossiper.get_generations(ordinal, token)
        except Exception as err:
            return GenReadResult(error=err)

    def _set_remote_state(
        self,
        ordinal: int,
        gen: Generation,
        previous_error: BaseException | None,
        read_result: GenReadResult,
    ) -> BaseException | None:
        if previous_error is not None:
            return previous_error
        if read_result.error is not None:
            return read_result.error

        if gen.status != GenStatus.PROPOSED:
            # Following steps compare against the transaction of the generation
            tx = gen.tx
        else:
            tx = get_tx(read_result.proposed)

        try:
            if gen.status != GenStatus.COMMITTED:
                self.gossiper.set_generation_as_proposed(ordinal, gen, None, tx)
            else:
                self.gossiper.set_as_committed(ordinal, gen.start, None, tx)
        except Exception as err:
            return err
        return None


__all__ = [
    "MAX_DELAY",
    "CreationError",
    "LocalProcessing",
    "StartReason",
    "get_tx",
    "is_in_progress",
]