"""Generation creation when token ranges are split (scale up) or joined (scale down)."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Sequence

from barco.generation import GenId, GenStatus, Generation
from barco.ownership.messages import (
    GenReadResult,
    LocalJoinRangeGenMessage,
    LocalSplitRangeGenMessage,
    new_creation_error,
    new_non_retryable_error,
    wrap_creation_error,
)
from barco.ownership.process_local import (
    LocalProcessing,
    _now_micros,
    get_tx,
    is_in_progress,
)
from barco.topology import BrokerInfo
from barco.utils import in_parallel, max_version

_log = logging.getLogger(__name__)


def ordinals(brokers: Sequence[BrokerInfo]) -> list[int]:
    """Return the ordinals of the brokers, in the same order."""
    return [broker.ordinal for broker in brokers]


def all_reads_errored(read_results: Sequence[GenReadResult]) -> bool:
    """Return True when every read failed (also for an empty sequence)."""
    return all(result.error is not None for result in read_results)


def _errors_in_parallel(
    length: int, func: Callable[[int], object]
) -> list[BaseException | None]:
    """Run ``func(i)`` in parallel and return the error each call raised, or None."""

    def call(i: int) -> BaseException | None:
        try:
            func(i)
        except Exception as err:  # noqa: BLE001 - collected per peer
            return err
        return None

    return [future.result() for future in in_parallel(length, call)]


class RangeProcessing(LocalProcessing):
    """Generation processing for splitting and joining token ranges."""

    def process_local_join_range(self, m: LocalJoinRangeGenMessage) -> None:
        """Join the local range with the next one after the cluster scaled down."""
        topology = m.topology
        previous_topology = m.previous_topology
        my_token = topology.my_token()
        next_broker = previous_topology.next_broker()
        next_brokers = ordinals(
            previous_topology.next_brokers(previous_topology.local_index, 4)
        )
        next_token = previous_topology.get_token(previous_topology.next_index())
        new_next_broker = topology.next_broker()
        my_ordinal = topology.my_ordinal()

        _log.info(
            "Start joining ranges T%d-T%d and T%d-T%d into T%d-T%d [%d, %d]",
            my_ordinal, next_broker.ordinal, next_broker.ordinal, new_next_broker.ordinal,
            my_ordinal, new_next_broker.ordinal, my_token,
            topology.get_token(topology.next_index()),
        )

        # Read state from peers as soon as possible
        my_gen_read_results = self.read_state_from_peers(my_token, next_brokers)
        next_token_read_results = self.read_state_from_peers(next_token, next_brokers)

        if all_reads_errored(next_token_read_results):
            raise new_creation_error(
                f"All reads errored for T{next_broker.ordinal} generation"
            )

        try:
            self.read_repair_from_peers(next_token, next_token_read_results)
        except Exception as err:
            raise new_non_retryable_error(f"There was an error repairing: {err}") from err

        local_committed1, local_proposed1 = self.discoverer.generation_proposed(my_token)
        if local_committed1 is None:
            _log.warning("No local committed information for T%d", my_ordinal)
            if all_reads_errored(my_gen_read_results[:2]):
                raise new_creation_error(
                    f"All reads errored for my token T{my_ordinal} generation"
                )

        parent_version1 = max_version(
            local_committed1, *(result.committed for result in my_gen_read_results)
        )

        local_committed2, local_proposed2 = self.discoverer.generation_proposed(next_token)
        # Read repair should have provided the committed information
        if local_committed2 is None:
            raise new_non_retryable_error(
                f"No committed generation found for T{next_broker.ordinal} after read repair"
            )
        parent_version2 = local_committed2.version

        tx = uuid.uuid4()
        gen = Generation(
            start=my_token,
            end=topology.get_token(topology.next_index()),
            version=parent_version1 + 1,
            timestamp=_now_micros(),
            leader=my_ordinal,
            followers=topology.natural_followers(topology.local_index),
            tx_leader=my_ordinal,
            tx=tx,
            status=GenStatus.PROPOSED,
            parents=[
                GenId(start=my_token, version=parent_version1),
                GenId(start=next_token, version=parent_version2),
            ],
        )

        to_delete_gen = Generation(
            start=next_token,
            end=gen.end,
            version=parent_version2 + 1,  # this version is not going to be recorded
            timestamp=_now_micros(),
            leader=-1,
            tx_leader=my_ordinal,
            tx=tx,
            status=GenStatus.PROPOSED,
            parents=[GenId(start=next_token, version=parent_version2)],
            to_delete=True,
        )

        # Propose on the peers first
        propose_results = self.propose_in_peers(gen, next_brokers, my_gen_read_results)
        if propose_results[1] is not None and propose_results[3] is not None:
            # The peers that stay (new followers) must have it
            raise new_creation_error(
                f"New generation could not be proposed to B{next_brokers[1]} "
                f"and B{next_brokers[3]}"
            )

        try:
            self.discoverer.set_generation_proposed(gen, None, get_tx(local_proposed1))
            self.discoverer.set_generation_proposed(
                to_delete_gen, None, get_tx(local_proposed2)
            )
        except Exception as err:
            raise new_non_retryable_error(
                f"Unexpected error when proposing join locally: {err}"
            ) from err

        _log.debug("Proposing to delete on next brokers")
        self.propose_in_peers(to_delete_gen, next_brokers, next_token_read_results)

        gen.status = GenStatus.ACCEPTED
        to_delete_gen.status = GenStatus.ACCEPTED

        accept_results = _errors_in_parallel(
            len(next_brokers),
            lambda i: self.gossiper.set_generation_as_proposed(
                next_brokers[i], gen, to_delete_gen, tx
            ),
        )
        if accept_results[1] is not None and accept_results[3] is not None:
            raise new_creation_error(
                f"New generation could not be proposed to B{next_brokers[1]} "
                f"and B{next_brokers[3]}"
            )

        try:
            self.discoverer.set_generation_proposed(gen, to_delete_gen, tx)
        except Exception as err:
            raise new_non_retryable_error(
                f"Unexpected error when accepting join locally: {err}"
            ) from err

        _log.info(
            "Setting transaction for joined range T%d-T%d v%d as committed",
            my_ordinal, new_next_broker.ordinal, gen.version,
        )

        # We have a majority of replicas
        try:
            self.discoverer.set_as_committed(
                gen.start, to_delete_gen.start, tx, previous_topology.my_ordinal()
            )
        except Exception as err:
            raise new_non_retryable_error(
                f"Unexpected error when committing join locally: {err}"
            ) from err

        _errors_in_parallel(
            len(next_brokers),
            lambda i: self.gossiper.set_as_committed(
                next_brokers[i], gen.start, to_delete_gen.start, tx
            ),
        )

    def propose_in_peers(
        self,
        gen: Generation,
        peers: Sequence[int],
        read_results: Sequence[GenReadResult],
    ) -> list[BaseException | None]:
        """Propose the generation on each peer whose read succeeded.

        Returns the error for each peer, or None; a failed read is returned as is.
        """

        def propose(i: int) -> BaseException | None:
            ordinal = peers[i]
            read = read_results[i]
            if read.error is not None:
                _log.warning(
                    "Not setting as proposed on B%d due to error: %s", ordinal, read.error
                )
                return read.error
            try:
                self.gossiper.set_generation_as_proposed(
                    ordinal, gen, None, get_tx(read.proposed)
                )
            except Exception as err:  # noqa: BLE001 - collected per peer
                return err
            return None

        return [future.result() for future in in_parallel(len(read_results), propose)]

    def read_repair_from_peers(
        self, token: int, read_results: Sequence[GenReadResult]
    ) -> None:
        """Store the newest committed generation read from peers when newer than local."""
        gen = self.discoverer.generation(token)
        version = 0 if gen is None else gen.version
        newer: Generation | None = None

        for read in read_results:
            peer_generation = read.committed
            if peer_generation is not None and peer_generation.version > version:
                version = peer_generation.version
                newer = peer_generation

        if newer is not None:
            self.discoverer.repair_committed(newer)

    def process_local_split_range(self, m: LocalSplitRangeGenMessage) -> None:
        """Split the local range so that the joining broker leads its second part."""
        topology = m.topology
        new_broker_ordinal = m.origin
        new_broker_index = topology.get_index(new_broker_ordinal)
        my_token = topology.my_token()
        my_ordinal = topology.my_ordinal()
        my_current_gen = self.discoverer.generation(my_token)
        new_token = topology.get_token(new_broker_index)

        if self.discoverer.generation(new_token) is not None:
            # Already created
            return
        if my_current_gen is None:
            raise new_creation_error(
                f"Could not split range as generation not found for T{my_ordinal}"
            )
        if my_current_gen.leader != my_ordinal:
            raise new_creation_error(
                f"Could not split range as I'm not the leader of my token T{my_ordinal}"
            )

        next_brokers = topology.next_brokers(topology.local_index, 3)
        for broker in next_brokers:
            if not self.gossiper.is_host_up(broker.ordinal):
                raise new_creation_error(
                    f"Could not split range as B{broker.ordinal} is not UP"
                )

        _log.info(
            "Processing token range split T%d-T%d", my_ordinal, next_brokers[1].ordinal
        )

        version = self.last_known_version(new_token, next_brokers) + 1
        _log.debug("Identified v%d for T%d (%d)", version, new_broker_ordinal, new_token)

        # The same transaction for both generations
        tx = uuid.uuid4()
        parents = [GenId(start=my_current_gen.start, version=my_current_gen.version)]

        my_gen = Generation(
            start=my_token,
            end=new_token,
            version=my_current_gen.version + 1,
            timestamp=_now_micros(),
            leader=my_ordinal,
            followers=ordinals(next_brokers[:2]),
            tx_leader=my_ordinal,
            tx=tx,
            status=GenStatus.PROPOSED,
            parents=parents,
        )

        next_token_gen = Generation(
            start=new_token,
            end=my_current_gen.end,
            version=version,
            timestamp=_now_micros(),
            leader=new_broker_ordinal,
            followers=ordinals(next_brokers[1:3]),
            tx_leader=my_ordinal,
            tx=tx,
            status=GenStatus.PROPOSED,
            parents=list(parents),
        )

        self.range_split_propose(my_gen, next_token_gen)

        my_gen.status = GenStatus.ACCEPTED
        next_token_gen.status = GenStatus.ACCEPTED

        try:
            self.gossiper.set_generation_as_proposed(
                new_broker_ordinal, my_gen, next_token_gen, tx
            )
        except Exception as err:
            raise wrap_creation_error(err) from err

        try:
            self.discoverer.set_generation_proposed(my_gen, next_token_gen, tx)
        except Exception as err:
            raise new_non_retryable_error(
                f"Unexpected error when accepting split locally: {err}"
            ) from err

        # Accept on the common follower Bn+2
        try:
            self.gossiper.set_generation_as_proposed(
                next_token_gen.followers[0], my_gen, next_token_gen, tx
            )
        except Exception as err:
            raise wrap_creation_error(err) from err

        # A majority of replicas accepted; Bn+3 is best effort
        background = in_parallel(
            1,
            lambda _: self.gossiper.set_generation_as_proposed(
                next_token_gen.followers[1], my_gen, next_token_gen, tx
            ),
        )[0]

        _log.info(
            "Setting transaction for T%d v%d and T%d v%d as committed",
            my_ordinal, my_gen.version, new_broker_ordinal, next_token_gen.version,
        )

        try:
            self.discoverer.set_as_committed(my_token, new_token, tx, my_ordinal)
        except Exception as err:
            raise wrap_creation_error(err) from err

        background.exception()

        commit_errors = _errors_in_parallel(
            len(next_brokers),
            lambda i: self.gossiper.set_as_committed(
                next_brokers[i].ordinal, my_token, new_token, tx
            ),
        )
        for broker, err in zip(next_brokers, commit_errors):
            if err is not None:
                _log.error("There was an error when committing on B%d: %s", broker.ordinal, err)

    def range_split_propose(self, my_gen: Generation, next_token_gen: Generation) -> None:
        """Propose both halves of a split range; raises CreationError on failure."""
        read_results = self._read_state_from_followers(my_gen)
        if read_results[0].error is not None and read_results[1].error is not None:
            raise new_creation_error("Followers state could not be read")
        if is_in_progress(read_results[0].proposed) or is_in_progress(read_results[1].proposed):
            raise new_creation_error("In progress generation in remote broker")

        leader_read = self._get_generations(next_token_gen.leader, next_token_gen.start)
        if leader_read.error is not None:
            raise new_creation_error(
                f"Next token leader generation state could not be read: {leader_read.error}"
            )

        follower_errors = self.set_state_to_followers(my_gen, None, read_results)
        if follower_errors[0] is not None and follower_errors[1] is not None:
            raise new_creation_error("Followers state could not be set to proposed")

        # Propose the first half on Bn+3, the second follower of the next token
        background = in_parallel(
            1,
            lambda _: self.gossiper.set_generation_as_proposed(
                next_token_gen.followers[1], my_gen, None, None
            ),
        )[0]

        # One at a time, as each might have a different original transaction
        try:
            self.discoverer.set_generation_proposed(
                my_gen, None, self._get_local_tx(my_gen.start)
            )
            self.discoverer.set_generation_proposed(
                next_token_gen, None, self._get_local_tx(next_token_gen.start)
            )
        except Exception as err:
            _log.error("Unexpected error when setting as proposed locally: %s", err)
            raise new_non_retryable_error("Unexpected local error") from err

        _log.debug(
            "Proposed myself as a leader for T%d-T%d [%d, %d] as part of range splitting",
            my_gen.leader, next_token_gen.leader, my_gen.start, my_gen.end,
        )

        read_results = self._read_state_from_followers(next_token_gen)
        if read_results[0].error is not None and read_results[1].error is not None:
            raise new_creation_error("Followers state could not be read")
        if is_in_progress(read_results[0].proposed) or is_in_progress(read_results[1].proposed):
            raise new_creation_error("In progress generation in remote broker")

        try:
            self.gossiper.set_generation_as_proposed(
                next_token_gen.leader, next_token_gen, None, get_tx(leader_read.proposed)
            )
        except Exception as err:
            raise new_creation_error(
                f"Next token leader generation state could not be set: {err}"
            ) from err

        next_follower_errors = self.set_state_to_followers(next_token_gen, None, read_results)
        if next_follower_errors[0] is not None and next_follower_errors[1] is not None:
            raise new_creation_error("Followers state could not be set to proposed")

        _log.info(
            "Proposed B%d as a leader for T%d-T%d [%d, %d] as part of range splitting",
            next_token_gen.leader, next_token_gen.leader, next_token_gen.followers[0],
            next_token_gen.start, next_token_gen.end,
        )

        background.exception()

    def last_known_version(self, token: int, peers: Sequence[BrokerInfo]) -> int:
        """Return the highest version of the token history, locally and on the peers."""
        try:
            local = self.discoverer.get_token_history(token)
        except Exception as err:
            raise RuntimeError("Error retrieving token history") from err
        version = 0 if local is None else local.version

        def read_peer(i: int) -> int:
            ordinal = peers[i].ordinal
            try:
                gen = self.gossiper.read_token_history(ordinal, token)
            except Exception as err:  # noqa: BLE001 - a failed peer counts as unknown
                _log.error("Error retrieving token history from B%d: %s", ordinal, err)
                return 0
            return 0 if gen is None else gen.version

        peer_versions = [future.result() for future in in_parallel(len(peers), read_peer)]
        return max([version, *peer_versions])

    def _get_local_tx(self, token: int) -> uuid.UUID | None:
        _, proposed = self.discoverer.generation_proposed(token)
        return get_tx(proposed)


__all__ = [
    "RangeProcessing",
    "all_reads_errored",
    "ordinals",
]