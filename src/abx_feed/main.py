"""
ABX Exchange Client - Main Application
======================================

Full pipeline from the ABX TCP feed to a JSON file.

This script:
1. Loads configuration (config.json, optional) and command line overrides
2. Streams all packets from the ABX server (call type 1)
3. Detects missing sequence numbers
4. Requests each missing packet once (call type 2)
5. Saves the ordered packet set to abx_exchange_data.json (and optional CSV)
6. Handles Ctrl+C by cancelling the session

Usage:
    abx-feed [host] [--port 3000] [--config config.json] [--output-dir .] [--csv]

Host defaults to 127.0.0.1.
"""

import sys
import copy
import json
import signal
import logging
import argparse
import threading
from pathlib import Path
from typing import Optional

from .errors import FeedError
from .saver import create_saver
from .session import Session

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = 'config.json'

DEFAULT_CONFIG = {
    'server': {
        'host': '127.0.0.1',
        'port': 3000
    },
    'buffer_size': 4096,
    'record_size': 17,
    'connect_timeout': 5.0,
    'stream_timeout': None,
    'resend_timeout': 5.0,
    'poll_interval': 1.0,
    'output': {
        'dir': '.',
        'json_file': 'abx_exchange_data.json',
        'csv_file': 'abx_exchange_data.csv',
        'save_csv': False
    },
    'log_file': 'abx_client.log'
}


def setup_logging(log_file: Optional[str] = None, level: int = logging.INFO):
    """Configure root logging to the console and, if given, a log file."""
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def _merge(defaults: dict, overrides: dict) -> dict:
    merged = copy.deepcopy(defaults)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: str = DEFAULT_CONFIG_PATH, required: bool = False) -> dict:
    """
    Load configuration from a JSON file, merged over the built-in defaults.

    Args:
        config_path: Path to configuration file
        required: If True, a missing file is an error

    Returns:
        dict: Configuration dictionary

    Raises:
        FileNotFoundError: If required and the config file doesn't exist
        json.JSONDecodeError: If config file is invalid JSON
    """
    path = Path(config_path)
    if not path.exists():
        if required:
            logger.error(f"✗ Configuration file not found: {config_path}")
            raise FileNotFoundError(config_path)
        logger.warning(f"Configuration file {config_path} not found - using defaults")
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        logger.info(f"Loading configuration from {config_path}...")
        with open(path, 'r') as f:
            config = _merge(DEFAULT_CONFIG, json.load(f))
    except json.JSONDecodeError as e:
        logger.error(f"✗ Invalid JSON in configuration file: {e}")
        raise

    server = config['server']
    logger.info("✓ Configuration loaded successfully")
    logger.info(f"  Server: {server['host']}:{server['port']}")
    logger.info(f"  Record Size: {config['record_size']} bytes")
    return config


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='ABX exchange feed client')
    parser.add_argument('host', nargs='?', default=None,
                        help='ABX server host (default: 127.0.0.1)')
    parser.add_argument('--port', type=int, default=None,
                        help='ABX server port (default: 3000)')
    parser.add_argument('--config', default=None,
                        help=f'Configuration file (default: {DEFAULT_CONFIG_PATH} if present)')
    parser.add_argument('--output-dir', default=None,
                        help='Directory for the exported files')
    parser.add_argument('--csv', action='store_true',
                        help='Also export a CSV file')
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> dict:
    """Load the config file and apply command line overrides."""
    if args.config:
        config = load_config(args.config, required=True)
    else:
        config = load_config(DEFAULT_CONFIG_PATH)

    if args.host:
        config['server']['host'] = args.host
    if args.port is not None:
        config['server']['port'] = args.port
    if args.output_dir:
        config['output']['dir'] = args.output_dir
    if args.csv:
        config['output']['save_csv'] = True
    return config


def main(argv=None) -> int:
    """
    Main application entry point.

    Returns:
        0 on success, 1 if the session or the export failed
    """
    args = parse_args(argv)

    try:
        config = build_config(args)
    except (OSError, json.JSONDecodeError) as e:
        setup_logging()
        logger.error(f"❌ Could not load configuration: {e}")
        return 1

    setup_logging(config.get('log_file'))

    cancel_event = threading.Event()

    def signal_handler(signum, frame):
        """Handle Ctrl+C by cancelling the session."""
        logger.info("⚠ Shutdown signal received (Ctrl+C)")
        cancel_event.set()

    signal.signal(signal.SIGINT, signal_handler)

    server = config['server']
    logger.info("=" * 70)
    logger.info(f"🚀 ABX Exchange Client - {server['host']}:{server['port']}")
    logger.info("=" * 70)

    saver = create_saver(config)
    save_csv = config['output'].get('save_csv', False)
    session = Session(
        config,
        exporter=lambda packets: saver.save_packets(packets, save_json=True, save_csv=save_csv),
        cancel_event=cancel_event
    )

    try:
        packets = session.run()
    except FeedError as e:
        logger.error(f"❌ Session failed: {e}")
        return 1

    for error in session.recovery_errors:
        logger.warning(f"Unrecovered: {error}")

    if not session.export_result:
        logger.error("❌ Export failed")
        return 1

    logger.info("=" * 70)
    logger.info(f"👋 Done: {len(packets)} packets, max sequence {session.store.max_sequence}")
    logger.info("=" * 70)
    return 0


if __name__ == '__main__':
    sys.exit(main())
