from __future__ import annotations

import logging
from typing import Iterable, Iterator, Sequence, TypeVar

from .errors import DatagramTooLargeError
from .measurement import Measurement
from .serializer import Serializer

log = logging.getLogger(__name__)

MAX_BATCH = 5000
MAX_DATAGRAM_SIZE = 65535

T = TypeVar("T")


def chunked(items: Iterable[T], max_batch: int = MAX_BATCH) -> Iterator[list[T]]:
    """Yield consecutive chunks of at most ``max_batch`` items."""
    if max_batch < 1:
        raise ValueError("max_batch must be >= 1")
    chunk: list[T] = []
    for item in items:
        chunk.append(item)
        if len(chunk) == max_batch:
            yield chunk
            chunk = []
    if chunk:
        yield chunk


def pack_datagrams(lines: Iterable[str], max_size: int = MAX_DATAGRAM_SIZE) -> Iterator[bytes]:
    """Pack newline-terminated lines into payloads of at most ``max_size`` bytes.

    A line that cannot fit into an empty datagram raises
    :class:`DatagramTooLargeError`.
    """
    buf = bytearray()
    for line in lines:
        data = line.encode("utf-8") + b"\n"
        if len(data) > max_size:
            raise DatagramTooLargeError(len(data), max_size)
        if len(buf) + len(data) > max_size:
            yield bytes(buf)
            buf = bytearray()
        buf += data
    if buf:
        yield bytes(buf)


class WriteBatcher:
    def __init__(self, serializer: Serializer, max_batch: int = MAX_BATCH):
        if max_batch < 1:
            raise ValueError("max_batch must be >= 1")
        self.serializer = serializer
        self.max_batch = max_batch

    def batch(self, measurements: Iterable[Measurement]) -> list[list[Measurement]]:
        return list(chunked(measurements, self.max_batch))

    def lines(self, chunk: Sequence[Measurement]) -> list[str]:
        return [self.serializer.serialize(m) for m in chunk]

    def bodies(self, measurements: Iterable[Measurement]) -> Iterator[str]:
        """Yield one newline-joined request body per chunk."""
        for chunk in chunked(measurements, self.max_batch):
            yield "\n".join(self.lines(chunk))

    def datagrams(
        self, measurements: Iterable[Measurement], max_size: int = MAX_DATAGRAM_SIZE
    ) -> Iterator[list[bytes]]:
        """Yield, per chunk, the datagram payloads that carry it.

        Each chunk is packed completely before it is yielded, so an oversized
        line fails the chunk before any of its datagrams leave the process.
        """
        for n, chunk in enumerate(chunked(measurements, self.max_batch)):
            payloads = list(pack_datagrams(self.lines(chunk), max_size))
            log.debug("chunk %d: %d measurements in %d datagrams", n, len(chunk), len(payloads))
            yield payloads
