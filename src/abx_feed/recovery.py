"""
ABX Gap Recovery Module
=======================

Fills sequence gaps left after the Stream All Packets phase.

For each missing sequence, in ascending order:
1. Open a fresh connection
2. Send a Resend Packet request (call type 2)
3. Read until the requested sequence is stored or the server closes
4. Close the connection

A failed step is logged and recorded, and recovery moves on to the next
sequence. If the server cannot be reached at all, the rest of the phase is
abandoned. Nothing is retried.
"""

import logging
from typing import Callable, Iterator, List, Optional, Tuple

from .connection import MAX_RESEND_SEQUENCE, ABXConnection, encode_resend_request
from .errors import (
    FeedConnectionError,
    FrameError,
    RecoveryStepError,
    SessionCancelledError,
    TransportError,
)
from .packet_receiver import PacketReceiver
from .store import SequenceStore

logger = logging.getLogger(__name__)


Range = Tuple[int, int]


def split_at_ceiling(ranges: List[Range], ceiling: int) -> Tuple[List[Range], List[Range]]:
    """Split inclusive ranges into the parts at or below ceiling and above it."""
    below, above = [], []
    for first, last in ranges:
        if last <= ceiling:
            below.append((first, last))
        elif first > ceiling:
            above.append((first, last))
        else:
            below.append((first, ceiling))
            above.append((ceiling + 1, last))
    return below, above


def count_sequences(ranges: List[Range]) -> int:
    return sum(last - first + 1 for first, last in ranges)


def iter_sequences(ranges: List[Range]) -> Iterator[int]:
    for first, last in ranges:
        yield from range(first, last + 1)


def format_ranges(ranges: List[Range], limit: int = 10) -> str:
    """Render ranges as "3, 7-9, 300-199999", keeping only the first few."""
    parts = [str(first) if first == last else f"{first}-{last}" for first, last in ranges[:limit]]
    if len(ranges) > limit:
        parts.append(f"... ({len(ranges) - limit} more ranges)")
    return ', '.join(parts)


class GapRecoveryCoordinator:
    """
    Drives the resend request/response cycle for missing sequences.

    Packets recovered before a failure stay in the store. Failed steps are
    kept in `errors`; a connection failure that ends the phase early is kept
    in `aborted_by`.
    """

    def __init__(self, connection_factory: Callable[[], ABXConnection],
                 receiver: PacketReceiver,
                 should_stop: Optional[Callable[[], bool]] = None):
        """
        Args:
            connection_factory: Returns a new, unconnected ABXConnection per step
            receiver: Packet receiver bound to the session's SequenceStore
            should_stop: Optional cancellation check
        """
        self.connection_factory = connection_factory
        self.receiver = receiver
        self.should_stop = should_stop
        self.errors: List[RecoveryStepError] = []
        self.aborted_by: Optional[Exception] = None
        self.stats = {
            'missing_at_start': 0,
            'requests_sent': 0,
            'recovered': 0,
            'filled_in_passing': 0,
            'unrequestable': 0,
            'failed': 0
        }

    @property
    def store(self) -> SequenceStore:
        return self.receiver.store

    def recover(self) -> List[int]:
        """
        Request every missing sequence once.

        Gaps are computed once up front. Sequences above the one-byte resend
        ceiling are counted and reported in a single warning, never requested.

        Returns:
            Sequences recovered by their own resend request, ascending
        """
        ranges = self.store.missing_ranges()
        requestable, unrequestable = split_at_ceiling(ranges, MAX_RESEND_SEQUENCE)
        self.stats['missing_at_start'] = count_sequences(ranges)
        self.stats['unrequestable'] = count_sequences(unrequestable)
        recovered = []

        logger.info(
            f"Recovering {self.stats['missing_at_start']:,} missing sequences "
            f"(max sequence: {self.store.max_sequence})"
        )
        if unrequestable:
            logger.warning(
                f"✗ {self.stats['unrequestable']:,} missing sequences above {MAX_RESEND_SEQUENCE} "
                f"cannot be requested with a one-byte resend: {format_ranges(unrequestable)}"
            )

        for sequence in iter_sequences(requestable):
            if self.should_stop and self.should_stop():
                logger.warning(f"Recovery cancelled before sequence {sequence}")
                self.aborted_by = SessionCancelledError("Recovery cancelled")
                break

            if sequence in self.store:
                # Delivered alongside an earlier resend response
                self.stats['filled_in_passing'] += 1
                continue

            try:
                self._recover_one(sequence)
            except RecoveryStepError as e:
                self.stats['failed'] += 1
                self.errors.append(e)
                logger.error(f"✗ {e}")
                continue
            except FeedConnectionError as e:
                self.aborted_by = e
                logger.error(f"✗ Recovery aborted at sequence {sequence}: {e}")
                break
            except SessionCancelledError as e:
                self.aborted_by = e
                logger.warning(f"Recovery cancelled during sequence {sequence}")
                break

            self.stats['recovered'] += 1
            recovered.append(sequence)
            logger.info(f"✓ Recovered sequence {sequence}")

        remaining = self.store.missing_ranges()
        if remaining:
            logger.warning(
                f"{count_sequences(remaining):,} sequences still missing after recovery: "
                f"{format_ranges(remaining)}"
            )
        else:
            logger.info("✓ All gaps filled")

        return recovered

    def _recover_one(self, sequence: int):
        """
        Run one resend step.

        Raises:
            RecoveryStepError: If this sequence could not be recovered
            FeedConnectionError: If the server cannot be reached
            SessionCancelledError: If cancelled while reading
        """
        try:
            request = encode_resend_request(sequence)
        except ValueError as e:
            raise RecoveryStepError(sequence, str(e)) from e

        logger.info(f"Requesting missing sequence: {sequence}")

        with self.connection_factory() as connection:
            try:
                connection.send_request(request)
                self.stats['requests_sent'] += 1
                arrived = self.receiver.receive_until(connection, sequence, self.should_stop)
            except (TransportError, FrameError) as e:
                raise RecoveryStepError(sequence, str(e)) from e

        if not arrived:
            raise RecoveryStepError(sequence, "server closed the connection without sending it")

    def get_stats(self) -> dict:
        return self.stats.copy()
