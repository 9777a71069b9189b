"""
ABX Exchange Feed Client
========================

A Python client for the ABX exchange binary market data feed over TCP.

Streams every available packet, detects gaps in the sequence numbering,
requests each missing packet once, and exports the ordered packet set.

Modules:
    - errors: Exception taxonomy
    - decoder: Fixed-width record decoding (Packet, FrameDecoder)
    - reassembler: Byte stream to frame reassembly
    - store: Sequence-indexed packet storage and gap detection
    - connection: TCP connection and request encoding
    - packet_receiver: Read loops feeding the store
    - recovery: Resend cycle for missing sequences
    - session: Phase state machine
    - saver: JSON/CSV export
    - main: Application entry point
"""

from .decoder import FrameDecoder, Packet
from .errors import (
    FeedConnectionError,
    FeedError,
    FrameError,
    RecoveryStepError,
    TransportReadError,
    TruncatedFrameError,
)
from .reassembler import StreamReassembler
from .recovery import GapRecoveryCoordinator
from .session import Session, SessionState
from .store import SequenceStore

__version__ = '0.1.0'

__all__ = [
    'FeedConnectionError',
    'FeedError',
    'FrameDecoder',
    'FrameError',
    'GapRecoveryCoordinator',
    'Packet',
    'RecoveryStepError',
    'SequenceStore',
    'Session',
    'SessionState',
    'StreamReassembler',
    'TransportReadError',
    'TruncatedFrameError',
]
