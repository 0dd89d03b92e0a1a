# barco

Building blocks for a distributed event streaming broker. The package
covers three things:

- how brokers are placed on a token ring;
- how brokers negotiate who owns each token range, which is called a
  generation;
- how produced records are grouped into compressed chunks.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Modules

- `barco.murmur`: `murmur3_h1(data)` returns the first 64 bits of the
  Murmur3 x64 128-bit hash as a signed integer. This is the
  Cassandra-compatible variant, with sign-extended tail bytes. The
  module also has the helpers `rotl` and `fmix`.
- `barco.placement`: `ordinals_placement_order(size)` gives the order in
  which broker ordinals sit on a ring of size 3 or `3 * 2**n`.
- `barco.topology`:
  - `BrokerInfo`, `ReplicationInfo`, `TopologyInfo` and
    `NotIncludedError`.
  - `new_topology(brokers_by_ordinal, my_ordinal, token_at_index)`,
    `new_dev_topology(token_at_index)` and `new_replication_info(...)`.
  - A `TopologyInfo` finds the previous, next and following brokers of
    any ring position, the natural followers of a position, and its
    peers.
  - The token of a ring position comes from the `token_at_index(ring_size,
    index)` callable that you pass in.
- `barco.generation`: `Generation`, `GenId`, `GenStatus`,
  `TransactionStatus` and `TopicDataId`. These are the records that say
  which broker leads a token range, and in which version.
- `barco.offset`: `Offset`, which sorts by version and then by offset,
  plus `OffsetStoreKey`, `OffsetStoreKeyValue`, `OffsetCommitType` and
  `CompareResult`.
- `barco.records`:
  - `Record.marshal(writer)` writes a big-endian int64 timestamp, a
    big-endian uint32 length and then the body.
  - `GroupCompressor.compress(group)` marshals a group of records into a
    single zstd frame that carries a checksum.
  - `DataChunk` holds a compressed block together with its records, and
    completes each record's response future.
- `barco.cow_map`: `CopyOnWriteMap`. Reads need no lock.
  `load_or_store(key, value_creator)` creates each value at most once and
  returns `(value, loaded)`. An exception raised by the creator
  propagates, and nothing is stored.
- `barco.debouncer`: `Debouncer` and `debounce(delay, threshold)`, with
  delays given in seconds.
- `barco.tracked_connection`: `TrackedConnection`, a socket wrapper that
  knows whether it is open and runs its close handler once.
  `new_failed_connection()` returns one that is already closed.
- `barco.utils`: helpers such as `max_version`, `valid_ring_length`,
  `jitter`, `in_parallel`, `to_csv` and `get_service_address`.
- `barco.errors`: `HttpError`, `ProducingError`, `GossipGetNotFound` and
  `new_no_write_attempted_error`.
- `barco.ownership`: the `Generator`, built on `LocalProcessing` and
  `RangeProcessing`.
  - It runs the propose, accept and commit steps that decide which broker
    leads a token range.
  - It handles startup, failover of a down or shutting-down previous
    broker, range splits on scale up and range joins on scale down.
  - It processes one generation at a time. A concurrent request is
    rejected at once with a retryable `CreationError`.

## Example

```python
from barco.murmur import murmur3_h1
from barco.placement import ordinals_placement_order

print(murmur3_h1(b"hello"))
print(ordinals_placement_order(12))
# [0, 6, 3, 7, 1, 8, 4, 9, 2, 10, 5, 11]
```

## Plugging in the Generator

`Generator(discoverer, gossiper, local_db, dev_mode=False)` works only
through the objects you give it.

The discoverer holds the local state and must provide:

- `topology()`
- `generation(token)`
- `generation_proposed(token)`
- `set_generation_proposed(gen, gen2, expected_tx)`
- `set_as_committed(token1, token2, tx, origin)`
- `repair_committed(gen)`
- `get_token_history(token)`

The gossiper reaches the peers and must provide:

- `get_generations(ordinal, token)`
- `set_generation_as_proposed(ordinal, gen, gen2, tx)`
- `set_as_committed(ordinal, token1, token2, tx)`
- `is_token_range_covered(...)`
- `has_token_history_for_token(...)`
- `read_broker_is_up(...)`
- `is_host_up(ordinal)`
- `range_split_start(ordinal)`
- `read_token_history(ordinal, token)`
- `register_gen_listener(listener)`
- `register_host_up_down_listener(listener)`

The local database only needs `is_shutting_down()`.

## What the package does not do

This is a library of parts, not a running broker.

- It has no command to start.
- It has no HTTP server for producers or consumers.
- It has no gossip transport between brokers.
- It has no discovery or local database implementation.
- It has no segment writer or on-disk storage.
- It has no function that maps partition keys or ring positions to
  tokens. You supply those pieces yourself.