"""
ABX Main Application Tests
==========================

Test Coverage:
- Configuration loading and defaults
- Command line overrides
- Exit codes for successful and failed sessions
"""

import unittest
import json
import struct
import tempfile
from unittest.mock import patch, MagicMock
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from abx_feed.main import DEFAULT_CONFIG, build_config, load_config, main, parse_args


def _frame(sequence):
    return struct.pack('>4sciii', b'MSFT', b'B', 50, 100, sequence)


def _mock_sock(chunks):
    sock = MagicMock()
    sock.recv.side_effect = list(chunks)
    return sock


class TestConfig(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp_dir = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def _write_config(self, data):
        path = self.tmp_dir / 'config.json'
        path.write_text(json.dumps(data))
        return str(path)

    def test_missing_optional_config_uses_defaults(self):
        config = load_config(str(self.tmp_dir / 'absent.json'))

        self.assertEqual(config, DEFAULT_CONFIG)
        self.assertIsNot(config['server'], DEFAULT_CONFIG['server'])

    def test_missing_required_config(self):
        with self.assertRaises(FileNotFoundError):
            load_config(str(self.tmp_dir / 'absent.json'), required=True)

    def test_partial_config_merged_over_defaults(self):
        path = self._write_config({'server': {'port': 3100}, 'resend_timeout': 2.5})

        config = load_config(path)

        self.assertEqual(config['server'], {'host': '127.0.0.1', 'port': 3100})
        self.assertEqual(config['resend_timeout'], 2.5)
        self.assertEqual(config['record_size'], 17)

    def test_invalid_json(self):
        path = self.tmp_dir / 'config.json'
        path.write_text('{not json')

        with self.assertRaises(json.JSONDecodeError):
            load_config(str(path))

    def test_parse_args_defaults(self):
        args = parse_args([])

        self.assertIsNone(args.host)
        self.assertIsNone(args.port)
        self.assertFalse(args.csv)

    def test_command_line_overrides(self):
        path = self._write_config({})
        args = parse_args(['10.1.1.1', '--config', path, '--port', '3200',
                           '--output-dir', 'exports', '--csv'])

        config = build_config(args)

        self.assertEqual(config['server'], {'host': '10.1.1.1', 'port': 3200})
        self.assertEqual(config['output']['dir'], 'exports')
        self.assertTrue(config['output']['save_csv'])


@patch('abx_feed.main.signal.signal')
@patch('abx_feed.main.setup_logging')
class TestMain(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp_dir = Path(self._tmp.name)
        self.config_path = self.tmp_dir / 'config.json'
        self.config_path.write_text(json.dumps({'output': {'dir': str(self.tmp_dir)}}))

    def tearDown(self):
        self._tmp.cleanup()

    @patch('socket.socket')
    def test_successful_run(self, mock_socket, mock_logging, mock_signal):
        mock_socket.side_effect = [
            _mock_sock([_frame(0), _frame(2), b'']),
            _mock_sock([_frame(1), b'']),
        ]

        exit_code = main(['--config', str(self.config_path)])

        self.assertEqual(exit_code, 0)
        with open(self.tmp_dir / 'abx_exchange_data.json') as f:
            data = json.load(f)
        self.assertEqual([item['sequence'] for item in data], [0, 1, 2])
        mock_signal.assert_called_once()

    @patch('socket.socket')
    def test_host_argument(self, mock_socket, mock_logging, mock_signal):
        stream_sock = _mock_sock([b''])
        mock_socket.return_value = stream_sock

        self.assertEqual(main(['192.168.0.7', '--config', str(self.config_path)]), 0)

        stream_sock.connect.assert_called_once_with(('192.168.0.7', 3000))

    @patch('socket.socket')
    def test_connection_failure(self, mock_socket, mock_logging, mock_signal):
        refused = MagicMock()
        refused.connect.side_effect = ConnectionRefusedError("refused")
        mock_socket.return_value = refused

        self.assertEqual(main(['--config', str(self.config_path)]), 1)
        self.assertFalse((self.tmp_dir / 'abx_exchange_data.json').exists())

    def test_missing_config_file(self, mock_logging, mock_signal):
        self.assertEqual(main(['--config', str(self.tmp_dir / 'absent.json')]), 1)

    @patch('abx_feed.saver.DataSaver.save_to_json', return_value=False)
    @patch('socket.socket')
    def test_export_failure(self, mock_socket, mock_save, mock_logging, mock_signal):
        mock_socket.return_value = _mock_sock([_frame(0), b''])

        self.assertEqual(main(['--config', str(self.config_path)]), 1)


if __name__ == '__main__':
    unittest.main(verbosity=2)
