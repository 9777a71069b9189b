"""
ABX Stream Reassembler Module
=============================

Turns the variably-sized reads of a TCP stream into complete fixed-width
records.

TCP delivers a byte stream, not records: one recv() may return part of a
record, exactly one record, or several records plus the head of the next.
The reassembler keeps a growable buffer and only releases whole frames;
leftover bytes wait for the next read.
"""

import logging
from typing import Callable, Iterable, Iterator, List, Optional

from .decoder import RECORD_SIZE
from .errors import SessionCancelledError, TruncatedFrameError

logger = logging.getLogger(__name__)


class StreamReassembler:
    """
    Accumulates stream reads into complete fixed-width frames.

    Frames are released in arrival order. Bytes that never complete a frame
    before end-of-data are reported by finish() as a TruncatedFrameError.
    """

    def __init__(self, record_size: int = RECORD_SIZE):
        if record_size <= 0:
            raise ValueError(f"record_size must be positive, got {record_size}")
        self.record_size = record_size
        self._buffer = bytearray()
        self.stats = {
            'reads': 0,
            'bytes_in': 0,
            'frames_out': 0,
            'partial_reads': 0
        }

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet forming a complete frame."""
        return len(self._buffer)

    def feed(self, data: bytes) -> List[bytes]:
        """
        Append one read and extract every complete frame.

        Args:
            data: Bytes from a single transport read (any length)

        Returns:
            List of complete frames (possibly empty)
        """
        self.stats['reads'] += 1
        self.stats['bytes_in'] += len(data)
        self._buffer.extend(data)

        frame_count = len(self._buffer) // self.record_size
        if frame_count == 0:
            self.stats['partial_reads'] += 1
            logger.debug(
                f"Partial frame buffered ({len(self._buffer)}/{self.record_size} bytes), waiting for more..."
            )
            return []

        end = frame_count * self.record_size
        frames = [
            bytes(self._buffer[offset:offset + self.record_size])
            for offset in range(0, end, self.record_size)
        ]
        del self._buffer[:end]

        self.stats['frames_out'] += frame_count
        return frames

    def finish(self):
        """
        Signal end-of-data.

        Raises:
            TruncatedFrameError: If bytes of an incomplete frame remain buffered
        """
        if self._buffer:
            leftover = len(self._buffer)
            logger.error(f"✗ Stream ended inside a frame: {leftover} dangling bytes")
            self._buffer.clear()
            raise TruncatedFrameError(leftover, self.record_size)

    def frames(self, chunks: Iterable[bytes],
               should_stop: Optional[Callable[[], bool]] = None) -> Iterator[bytes]:
        """
        Lazily yield complete frames from an iterable of reads.

        Args:
            chunks: Transport reads, exhausted at end-of-data
            should_stop: Optional cancellation check, polled before each read

        Raises:
            TruncatedFrameError: If the stream ends inside a frame
            SessionCancelledError: If should_stop() returns True
        """
        for chunk in chunks:
            if should_stop and should_stop():
                raise SessionCancelledError("Stream read cancelled")
            yield from self.feed(chunk)
        self.finish()

    def get_stats(self) -> dict:
        return self.stats.copy()
