"""
ABX Packet Decoder Module
=========================

Decodes fixed-width ABX exchange records into typed packets.

Record Layout (all integers Big-Endian, network byte order):
- Offset 0-3:   Symbol (4 ASCII chars, NUL/space padded)
- Offset 4:     Buy/Sell indicator ('B' or 'S')
- Offset 5-8:   Quantity (int32)
- Offset 9-12:  Price (int32)
- Offset 13-16: Packet sequence (int32, server assigned)

The field layout is 17 bytes. A feed may frame records with a larger fixed
size; any bytes past offset 17 are padding and ignored by the decoder.
"""

import struct
import logging
from dataclasses import dataclass
from typing import Dict

from .errors import FrameError, TruncatedFrameError

logger = logging.getLogger(__name__)

# symbol(4s) + side(c) + quantity(i) + price(i) + sequence(i)
RECORD_FORMAT = '>4sciii'
FIELD_SIZE = struct.calcsize(RECORD_FORMAT)  # 17 bytes
RECORD_SIZE = FIELD_SIZE

SIDE_BUY = 'B'
SIDE_SELL = 'S'


@dataclass(frozen=True)
class Packet:
    """A single decoded ABX market data record."""

    symbol: str
    side: str
    quantity: int
    price: int
    sequence: int

    def to_dict(self) -> Dict:
        return {
            'symbol': self.symbol,
            'side': self.side,
            'quantity': self.quantity,
            'price': self.price,
            'sequence': self.sequence
        }


class FrameDecoder:
    """
    Decoder for fixed-width ABX records.

    Handles:
    - Big-Endian integer fields
    - Symbol padding removal
    - Configurable framing size (record_size >= 17)
    """

    def __init__(self, record_size: int = RECORD_SIZE):
        """
        Initialize decoder with statistics tracking.

        Args:
            record_size: On-wire record length in bytes (default: 17)

        Raises:
            ValueError: If record_size is smaller than the field layout
        """
        if record_size < FIELD_SIZE:
            raise ValueError(
                f"record_size {record_size} is smaller than the {FIELD_SIZE}-byte field layout"
            )
        self.record_size = record_size
        self.stats = {
            'frames_decoded': 0,
            'decode_errors': 0,
            'unknown_side': 0
        }
        logger.debug(f"FrameDecoder initialized (record size: {record_size} bytes)")

    def decode(self, frame: bytes) -> Packet:
        """
        Decode one fixed-width block into a Packet.

        Args:
            frame: Raw record bytes

        Returns:
            Packet: Decoded record

        Raises:
            TruncatedFrameError: If frame is shorter than the field layout
            FrameError: If the symbol is not ASCII

        Note:
            Symbols are NUL-padded on the wire. Trailing NUL and space bytes
            are both stripped, so a space-padded symbol decodes to the same
            text but encode() writes it back NUL-padded.
        """
        if len(frame) < FIELD_SIZE:
            self.stats['decode_errors'] += 1
            raise TruncatedFrameError(len(frame), FIELD_SIZE)

        raw_symbol, raw_side, quantity, price, sequence = struct.unpack(
            RECORD_FORMAT, bytes(frame[:FIELD_SIZE])
        )

        try:
            symbol = raw_symbol.decode('ascii').rstrip('\x00 ')
            side = raw_side.decode('ascii')
        except UnicodeDecodeError as e:
            self.stats['decode_errors'] += 1
            raise FrameError(f"Non-ASCII text field in frame {bytes(frame[:FIELD_SIZE]).hex()}") from e

        if side not in (SIDE_BUY, SIDE_SELL):
            self.stats['unknown_side'] += 1
            logger.warning(f"Unknown side indicator {side!r} in sequence {sequence}")

        self.stats['frames_decoded'] += 1
        return Packet(
            symbol=symbol,
            side=side,
            quantity=quantity,
            price=price,
            sequence=sequence
        )

    def encode(self, packet: Packet) -> bytes:
        """
        Encode a Packet back into its on-wire record.

        Symbol is NUL padded to 4 bytes; the record is zero padded up to
        record_size.
        """
        block = struct.pack(
            RECORD_FORMAT,
            packet.symbol.encode('ascii').ljust(4, b'\x00'),
            packet.side.encode('ascii'),
            packet.quantity,
            packet.price,
            packet.sequence
        )
        return block.ljust(self.record_size, b'\x00')

    def get_stats(self) -> dict:
        """Get decoder statistics."""
        return self.stats.copy()
