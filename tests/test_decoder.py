"""
ABX Decoder Module Tests
========================

Test Coverage:
- Field layout and Big-Endian integer decoding
- Symbol padding removal
- Truncated and malformed frames
- Encode/decode round trip
- Framing sizes larger than the field layout
"""

import unittest
import struct
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from abx_feed.decoder import FrameDecoder, Packet, FIELD_SIZE
from abx_feed.errors import FrameError, TruncatedFrameError


def _frame(sequence, symbol=b'MSFT', side=b'B', quantity=50, price=100):
    return struct.pack('>4sciii', symbol, side, quantity, price, sequence)


class TestFrameDecoding(unittest.TestCase):
    """Test decoding of single records."""

    def setUp(self):
        self.decoder = FrameDecoder()

    def test_field_size(self):
        self.assertEqual(FIELD_SIZE, 17)

    def test_decode_fields(self):
        """Test every field lands at its offset."""
        packet = self.decoder.decode(_frame(7, b'AAPL', b'S', 1200, 987))

        self.assertEqual(packet, Packet('AAPL', 'S', 1200, 987, 7))

    def test_decode_big_endian(self):
        """Test integers are read as Big-Endian, not Little-Endian."""
        frame = b'MSFT' + b'B' + b'\x00\x00\x01\x00' + b'\x00\x00\x00\x02' + b'\x00\x00\x00\x03'

        packet = self.decoder.decode(frame)

        self.assertEqual(packet.quantity, 256)
        self.assertEqual(packet.price, 2)
        self.assertEqual(packet.sequence, 3)

    def test_decode_negative_values(self):
        packet = self.decoder.decode(_frame(1, quantity=-5, price=-2147483648))

        self.assertEqual(packet.quantity, -5)
        self.assertEqual(packet.price, -2147483648)

    def test_symbol_padding_stripped(self):
        self.assertEqual(self.decoder.decode(_frame(1, symbol=b'AB\x00\x00')).symbol, 'AB')
        self.assertEqual(self.decoder.decode(_frame(1, symbol=b'IBM ')).symbol, 'IBM')

    def test_truncated_frame(self):
        """Test a block shorter than 17 bytes raises TruncatedFrameError."""
        with self.assertRaises(TruncatedFrameError) as ctx:
            self.decoder.decode(_frame(1)[:12])

        self.assertEqual(ctx.exception.received, 12)
        self.assertEqual(ctx.exception.expected, 17)
        self.assertIsInstance(ctx.exception, FrameError)
        self.assertEqual(self.decoder.stats['decode_errors'], 1)

    def test_non_ascii_symbol(self):
        with self.assertRaises(FrameError):
            self.decoder.decode(_frame(1, symbol=b'\xff\xfeAB'))

    def test_unknown_side_is_kept(self):
        """Test an unexpected side indicator is passed through and counted."""
        packet = self.decoder.decode(_frame(4, side=b'X'))

        self.assertEqual(packet.side, 'X')
        self.assertEqual(self.decoder.stats['unknown_side'], 1)
        self.assertEqual(self.decoder.stats['frames_decoded'], 1)

    def test_packet_is_immutable(self):
        packet = self.decoder.decode(_frame(1))

        with self.assertRaises(AttributeError):
            packet.sequence = 2

    def test_to_dict(self):
        packet = Packet('MSFT', 'B', 50, 100, 1)

        self.assertEqual(packet.to_dict(), {
            'symbol': 'MSFT', 'side': 'B', 'quantity': 50, 'price': 100, 'sequence': 1
        })


class TestRoundTrip(unittest.TestCase):
    """Test decode -> encode reproduces the wire bytes."""

    def test_round_trip(self):
        decoder = FrameDecoder()
        frames = [
            _frame(0),
            _frame(1, b'AAPL', b'S', 2147483647, -1),
            _frame(255, b'META', b'B', 0, 0),
            _frame(100000, b'AMZN', b'S', -7, 31337),
        ]

        for frame in frames:
            with self.subTest(frame=frame.hex()):
                self.assertEqual(decoder.encode(decoder.decode(frame)), frame)

    def test_short_symbol_encoded_with_nul_padding(self):
        decoder = FrameDecoder()

        frame = decoder.encode(Packet('AB', 'B', 1, 2, 3))

        self.assertEqual(frame[:4], b'AB\x00\x00')

    def test_space_padded_symbol_re_encoded_with_nul(self):
        """Test space padding is not preserved: the wire format pads with NUL."""
        decoder = FrameDecoder()
        frame = _frame(4, symbol=b'AB  ')

        packet = decoder.decode(frame)
        encoded = decoder.encode(packet)

        self.assertEqual(packet.symbol, 'AB')
        self.assertEqual(encoded[:4], b'AB\x00\x00')
        self.assertEqual(encoded[4:], frame[4:])
        self.assertEqual(decoder.decode(encoded), packet)


class TestRecordSize(unittest.TestCase):
    """Test framing sizes larger than the field layout."""

    def test_padding_ignored(self):
        decoder = FrameDecoder(record_size=22)
        frame = _frame(9) + b'\xaa' * 5

        self.assertEqual(decoder.decode(frame).sequence, 9)

    def test_encode_pads_to_record_size(self):
        decoder = FrameDecoder(record_size=22)

        frame = decoder.encode(Packet('MSFT', 'B', 50, 100, 1))

        self.assertEqual(len(frame), 22)
        self.assertEqual(frame[17:], b'\x00' * 5)

    def test_record_size_too_small(self):
        with self.assertRaises(ValueError):
            FrameDecoder(record_size=16)


if __name__ == '__main__':
    unittest.main(verbosity=2)
