"""
ABX Client Session Module
=========================

Runs one complete client session as a one-way state machine:

    INIT -> STREAMING -> RECOVERING_GAPS -> EXPORTING -> DONE

STREAMING moves straight to EXPORTING when there are no gaps.

- STREAMING: Stream All Packets on one connection until the server closes.
  Any failure here is fatal: the session moves to FAILED and run() re-raises.
- RECOVERING_GAPS: resend each missing sequence. Failures are recorded in
  recovery_errors and never abort the session.
- EXPORTING: hand the ordered packets to the exporter.
"""

import logging
import threading
from enum import Enum
from typing import Callable, List, Optional

from .connection import create_connection, encode_stream_all_request
from .decoder import Packet
from .errors import FeedError, RecoveryStepError, SessionStateError
from .packet_receiver import PacketReceiver
from .recovery import GapRecoveryCoordinator
from .store import SequenceStore

logger = logging.getLogger(__name__)


class SessionState(Enum):
    INIT = 'init'
    STREAMING = 'streaming'
    RECOVERING_GAPS = 'recovering_gaps'
    EXPORTING = 'exporting'
    DONE = 'done'
    FAILED = 'failed'


TRANSITIONS = {
    SessionState.INIT: {SessionState.STREAMING, SessionState.FAILED},
    SessionState.STREAMING: {SessionState.RECOVERING_GAPS, SessionState.EXPORTING, SessionState.FAILED},
    SessionState.RECOVERING_GAPS: {SessionState.EXPORTING},
    SessionState.EXPORTING: {SessionState.DONE, SessionState.FAILED},
    SessionState.DONE: set(),
    SessionState.FAILED: set(),
}


class Session:
    """
    One ABX client session: stream all, recover gaps, export.

    A session runs once. After run() returns or raises, `store` still holds
    every packet received.
    """

    def __init__(self, config: dict,
                 exporter: Optional[Callable[[List[Packet]], object]] = None,
                 cancel_event: Optional[threading.Event] = None):
        """
        Args:
            config: Configuration dictionary (server, timeouts, record_size)
            exporter: Called once with the ordered packets
            cancel_event: Set by the caller to cancel the session
        """
        self.config = config
        self.exporter = exporter
        self.cancel_event = cancel_event or threading.Event()

        self.state = SessionState.INIT
        self.store = SequenceStore()
        self.receiver = PacketReceiver(self.store, config)
        self.coordinator: Optional[GapRecoveryCoordinator] = None
        self.recovery_errors: List[RecoveryStepError] = []
        self.export_result = None

    def _should_stop(self) -> bool:
        return self.cancel_event.is_set()

    def _transition(self, new_state: SessionState):
        if new_state not in TRANSITIONS[self.state]:
            raise SessionStateError(
                f"Illegal session transition {self.state.value} -> {new_state.value}"
            )
        logger.debug(f"Session state: {self.state.value} -> {new_state.value}")
        self.state = new_state

    def run(self) -> List[Packet]:
        """
        Run every phase in order.

        Returns:
            Ordered packets handed to the exporter

        Raises:
            FeedError: Any streaming-phase failure (connection, transport,
                frame, cancellation). The session is left in FAILED.
            SessionStateError: If the session was already run
        """
        if self.state is not SessionState.INIT:
            raise SessionStateError(f"Session already run (state: {self.state.value})")

        logger.info("Call to Stream All Packets")
        self._transition(SessionState.STREAMING)
        try:
            self._stream_all()
        except FeedError as e:
            logger.error(f"✗ Streaming phase failed, session aborted: {e}")
            self._transition(SessionState.FAILED)
            raise
        finally:
            self.receiver.print_statistics()

        if self.store.missing_ranges():
            logger.info("Call Request Missing Sequences")
            self._transition(SessionState.RECOVERING_GAPS)
            self._recover_gaps()
        else:
            logger.info("No gaps detected - skipping recovery")

        logger.info("Call Export")
        self._transition(SessionState.EXPORTING)
        packets = self.store.ordered_packets()
        try:
            if self.exporter is not None:
                self.export_result = self.exporter(packets)
        except Exception:
            self._transition(SessionState.FAILED)
            raise

        self._transition(SessionState.DONE)
        logger.info(f"✓ Session complete: {len(packets)} packets exported")
        return packets

    def _stream_all(self):
        connection = create_connection(self.config, read_timeout=self.config.get('stream_timeout'))
        with connection:
            connection.send_request(encode_stream_all_request())
            self.receiver.receive_all(connection, self._should_stop)
        logger.info(f"Max sequence after streaming: {self.store.max_sequence}")

    def _recover_gaps(self):
        resend_timeout = self.config.get('resend_timeout', 5.0)
        self.coordinator = GapRecoveryCoordinator(
            lambda: create_connection(self.config, read_timeout=resend_timeout),
            self.receiver,
            self._should_stop
        )
        self.coordinator.recover()
        self.recovery_errors = list(self.coordinator.errors)

        stats = self.coordinator.get_stats()
        logger.info(
            f"Recovery finished: {stats['recovered']} recovered, {stats['failed']} failed, "
            f"{self.store.missing_count():,} still missing"
        )
