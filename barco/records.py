"""Producer records and their grouping into compressed chunks."""

from __future__ import annotations

import io
import itertools
import shutil
import struct
import threading
from collections.abc import Sequence
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import BinaryIO

import zstandard

from barco.topology import ReplicationInfo

# Number of chunks that may be compressed/appended/sent at the same time
WRITE_CONCURRENCY_LEVEL = 2

_HEADER = struct.Struct(">qI")


@dataclass
class Record:
    """A single produced message waiting to be written."""

    replication: ReplicationInfo
    length: int  # body length
    timestamp: int  # unix micros
    body: BinaryIO
    offset: int = 0
    response: Future = field(default_factory=Future, repr=False, compare=False)

    def marshal(self, writer: BinaryIO) -> None:
        """Write timestamp, length and body to the writer."""
        writer.write(_HEADER.pack(self.timestamp, self.length))
        shutil.copyfileobj(self.body, writer)

    def _resolve(self, error: BaseException | None) -> None:
        if self.response.done():
            return
        if error is None:
            self.response.set_result(None)
        else:
            self.response.set_exception(error)


class GroupCompressor:
    """Compresses groups of records into zstd frames with checksums.

    Holds one compression context per concurrent writer and hands them out in turn.
    """

    def __init__(self, max_group_size: int) -> None:
        self.max_group_size = max_group_size
        self._contexts = [
            zstandard.ZstdCompressor(level=3, write_checksum=True)
            for _ in range(WRITE_CONCURRENCY_LEVEL)
        ]
        self._next = itertools.cycle(self._contexts)
        self._lock = threading.Lock()

    def compress(self, group: Sequence[Record]) -> bytes:
        """Marshal the records in order and return the compressed payload."""
        with self._lock:
            context = next(self._next)
        raw = io.BytesIO()
        for record in group:
            record.marshal(raw)
        return context.compress(raw.getvalue())


@dataclass
class DataChunk:
    """A compressed chunk together with the records it holds."""

    data_block: bytes
    group: list[Record]

    def replication(self) -> ReplicationInfo:
        return self.group[0].replication

    def start_offset(self) -> int:
        return self.group[0].offset

    def record_length(self) -> int:
        return len(self.group)

    def set_result(self, error: BaseException | None) -> None:
        """Complete every record's response: success when error is None."""
        for record in self.group:
            record._resolve(error)