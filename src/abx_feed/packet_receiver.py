"""
ABX Packet Receiver Module
==========================

Receives the ABX response stream, reassembles and decodes records, and
stores them by sequence number.

Pipeline per connection:
1. Read raw chunks from the TCP socket
2. Reassemble chunks into fixed-width frames
3. Decode each frame into a Packet
4. Insert the packet into the SequenceStore

Two read modes:
- receive_all():   consume until the server closes (Stream All Packets)
- receive_until(): consume until one sequence arrives or the server closes
                   (Resend Packet)
"""

import logging
from typing import Callable, Optional

from .connection import ABXConnection
from .decoder import FrameDecoder, Packet, RECORD_SIZE
from .errors import SessionCancelledError
from .reassembler import StreamReassembler
from .store import SequenceStore

logger = logging.getLogger(__name__)


class PacketReceiver:
    """
    Reads ABX records from a connection into a SequenceStore.

    Responsibilities:
    - Reassembly of partial/merged reads into frames
    - Frame decoding
    - Storage by sequence number
    - Statistics tracking and logging

    Packets are stored as soon as they are decoded, so an error later in the
    stream never discards earlier packets.
    """

    def __init__(self, store: SequenceStore, config: Optional[dict] = None):
        """
        Initialize packet receiver.

        Args:
            store: Destination for decoded packets
            config: Configuration dictionary (uses 'record_size')
        """
        config = config or {}
        self.store = store
        self.record_size = config.get('record_size', RECORD_SIZE)
        self.decoder = FrameDecoder(self.record_size)

        self.stats = {
            'packets_received': 0,
            'packets_new': 0,
            'packets_duplicate': 0,
            'bytes_received': 0
        }

        logger.debug(f"PacketReceiver initialized (record size: {self.record_size} bytes)")

    def receive_all(self, connection: ABXConnection,
                    should_stop: Optional[Callable[[], bool]] = None) -> int:
        """
        Consume the connection until the server closes it.

        Args:
            connection: Connected ABXConnection with a request already sent
            should_stop: Optional cancellation check

        Returns:
            Number of packets received on this connection

        Raises:
            TruncatedFrameError: If the stream ends inside a frame
            FrameError: If a frame cannot be decoded
            TransportReadError: If the read fails
            SessionCancelledError: If should_stop() returns True
        """
        reassembler = StreamReassembler(self.record_size)
        received = 0

        for frame in reassembler.frames(self._counted(connection, should_stop), should_stop):
            self._process_frame(frame)
            received += 1

        logger.info(f"✓ Stream complete: {received} packets received")
        return received

    def receive_until(self, connection: ABXConnection, sequence: int,
                      should_stop: Optional[Callable[[], bool]] = None) -> bool:
        """
        Consume the connection until `sequence` is stored or the server closes.

        Every frame of a read is processed before checking for the target, so
        packets merged into the same read are never lost.

        Returns:
            True if the requested sequence arrived, False if the server closed first

        Raises:
            TruncatedFrameError: If the server closes inside a frame
            FrameError: If a frame cannot be decoded
            TransportReadError: If the read fails or times out
            SessionCancelledError: If should_stop() returns True
        """
        reassembler = StreamReassembler(self.record_size)

        for chunk in self._counted(connection, should_stop):
            if should_stop and should_stop():
                raise SessionCancelledError(f"Resend of sequence {sequence} cancelled")

            arrived = False
            for frame in reassembler.feed(chunk):
                packet = self._process_frame(frame)
                if packet.sequence == sequence:
                    arrived = True

            if arrived:
                if reassembler.pending:
                    logger.debug(f"Ignoring {reassembler.pending} trailing bytes after sequence {sequence}")
                return True

        reassembler.finish()
        return False

    def _counted(self, connection: ABXConnection,
                 should_stop: Optional[Callable[[], bool]] = None):
        for chunk in connection.read_chunks(should_stop):
            self.stats['bytes_received'] += len(chunk)
            yield chunk

    def _process_frame(self, frame: bytes) -> Packet:
        packet = self.decoder.decode(frame)
        self.stats['packets_received'] += 1

        if self.store.insert(packet):
            self.stats['packets_new'] += 1
        else:
            self.stats['packets_duplicate'] += 1

        logger.debug(
            f"Packet received: {packet.symbol}, Side: {packet.side}, Qty: {packet.quantity}, "
            f"Price: {packet.price}, Seq: {packet.sequence}"
        )
        return packet

    def get_stats(self) -> dict:
        return self.stats.copy()

    def print_statistics(self):
        """Log statistics about received packets."""
        logger.info("=" * 70)
        logger.info("PACKET RECEIVER STATISTICS")
        logger.info("=" * 70)
        logger.info(f"Packets Received:     {self.stats['packets_received']:,}")
        logger.info(f"Packets New:          {self.stats['packets_new']:,}")
        logger.info(f"Packets Duplicate:    {self.stats['packets_duplicate']:,}")
        logger.info(f"Bytes Received:       {self.stats['bytes_received']:,}")
        logger.info(f"Max Sequence:         {self.store.max_sequence:,}")
        logger.info("-" * 70)
        logger.info("Decoder:")
        for key, value in self.decoder.get_stats().items():
            logger.info(f"  {key}: {value:,}")
        logger.info("=" * 70)
