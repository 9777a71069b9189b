"""Sequence-indexed packet storage and gap detection."""

import logging
from typing import Dict, List, Optional, Tuple

from .decoder import Packet

logger = logging.getLogger(__name__)

EMPTY_SEQUENCE = -1


class SequenceStore:
    """
    Holds received packets keyed by sequence number.

    The store only grows: inserting an existing sequence replaces the packet,
    nothing is ever removed. max_sequence is the largest sequence ever
    inserted, or -1 while the store is empty.
    """

    def __init__(self):
        self._packets: Dict[int, Packet] = {}
        self.max_sequence = EMPTY_SEQUENCE

    def __len__(self) -> int:
        return len(self._packets)

    def __contains__(self, sequence: int) -> bool:
        return sequence in self._packets

    def get(self, sequence: int) -> Optional[Packet]:
        return self._packets.get(sequence)

    def insert(self, packet: Packet) -> bool:
        """
        Store a packet by its sequence, replacing any previous one.

        Returns:
            True if the sequence was new, False if it replaced a duplicate
        """
        is_new = packet.sequence not in self._packets
        if not is_new:
            logger.debug(f"Duplicate sequence {packet.sequence} replaced")
        self._packets[packet.sequence] = packet
        if packet.sequence > self.max_sequence:
            self.max_sequence = packet.sequence
        return is_new

    def missing_ranges(self) -> List[Tuple[int, int]]:
        """
        Gaps in [0, max_sequence] as ascending inclusive (first, last) pairs.

        Built from the stored keys, so a huge max_sequence with few packets
        costs no more than a small one.
        """
        ranges = []
        expected = 0
        for sequence in sorted(self._packets):
            if sequence < expected:
                continue
            if sequence > expected:
                ranges.append((expected, sequence - 1))
            expected = sequence + 1
        return ranges

    def missing_count(self) -> int:
        return sum(last - first + 1 for first, last in self.missing_ranges())

    def missing_sequences(self) -> List[int]:
        """Ascending sequence numbers in [0, max_sequence] that were never received."""
        return [
            sequence
            for first, last in self.missing_ranges()
            for sequence in range(first, last + 1)
        ]

    def ordered_packets(self) -> List[Packet]:
        """Stored packets in ascending sequence order; gaps are skipped."""
        return [self._packets[sequence] for sequence in sorted(self._packets)]
