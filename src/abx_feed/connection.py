"""
ABX TCP Connection Module
=========================

Handles the TCP connection to the ABX exchange server and the request wire
format.

Key Features:
- Connect/read deadlines (socket timeouts)
- Request encoding for both call types
- Chunked reads until the server closes the connection
- Socket errors wrapped into the feed error taxonomy

Protocol Details:
- Transport: TCP (byte stream, no message framing)
- Byte Order: Big-endian (network byte order)
- Default server: 127.0.0.1:3000

Requests (2 bytes each):
- Call type 1, Stream All Packets:  [0x01, 0x00]
- Call type 2, Resend Packet:       [0x02, resendSeq]  (1-byte sequence)
"""

import socket
import struct
import logging
from typing import Callable, Iterator, Optional

from .errors import (
    FeedConnectionError,
    ReadTimeoutError,
    SessionCancelledError,
    TransportReadError,
    TransportWriteError,
)

logger = logging.getLogger(__name__)

DEFAULT_HOST = '127.0.0.1'
DEFAULT_PORT = 3000

CALL_STREAM_ALL = 1
CALL_RESEND = 2

# resendSeq is a single unsigned byte on the wire
MAX_RESEND_SEQUENCE = 0xFF


def encode_stream_all_request() -> bytes:
    """Build the "Stream All Packets" request."""
    return struct.pack('>BB', CALL_STREAM_ALL, 0)


def encode_resend_request(sequence: int) -> bytes:
    """
    Build the "Resend Packet" request for one sequence.

    Raises:
        ValueError: If sequence does not fit the 1-byte resendSeq field.
            Sending only the low byte would ask for a different packet.
    """
    if not 0 <= sequence <= MAX_RESEND_SEQUENCE:
        raise ValueError(
            f"Sequence {sequence} cannot be encoded in a resend request (0-{MAX_RESEND_SEQUENCE})"
        )
    return struct.pack('>BB', CALL_RESEND, sequence)


class ABXConnection:
    """
    Manages one TCP connection to the ABX exchange server.

    This class handles:
    - Socket creation and connect with deadline
    - Sending requests
    - Reading the response stream until the server closes it
    - Error handling and logging
    """

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT,
                 buffer_size: int = 4096, connect_timeout: Optional[float] = 5.0,
                 read_timeout: Optional[float] = None, poll_interval: float = 1.0):
        """
        Initialize ABX connection parameters.

        Args:
            host: Server address (e.g., "127.0.0.1")
            port: Server TCP port (default: 3000)
            buffer_size: Maximum bytes per recv() call (default: 4096)
            connect_timeout: Seconds allowed to establish the connection
            read_timeout: Seconds allowed without data; None waits until data or close
            poll_interval: Socket timeout per recv() tick (default: 1 second)

        Note:
            Reads never block longer than poll_interval, so a cancellation
            check runs at least once per tick even when the server is silent.
        """
        if poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {poll_interval}")
        self.host = host
        self.port = port
        self.buffer_size = buffer_size
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.poll_interval = poll_interval
        self.socket: Optional[socket.socket] = None
        self.stats = {
            'requests_sent': 0,
            'reads': 0,
            'bytes_received': 0
        }

        logger.debug(f"Initialized ABX connection parameters: {host}:{port}")

    def connect(self) -> socket.socket:
        """
        Establish the TCP connection to the ABX server.

        Returns:
            socket.socket: Connected TCP socket

        Raises:
            FeedConnectionError: If the socket cannot be created or connected
        """
        try:
            logger.info(f"Connecting to ABX server {self.host}:{self.port}...")
            self.socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            self.socket.settimeout(self.connect_timeout)
            self.socket.connect((self.host, self.port))

            # Reads wake up every tick to check for cancellation
            self.socket.settimeout(self._tick())

            logger.info(f"✓ Connected to ABX server: {self.host}:{self.port}")
            return self.socket

        except OSError as e:
            logger.error(f"✗ Socket error during connection: {e}")
            if self.socket:
                self.socket.close()
                self.socket = None
            raise FeedConnectionError(
                f"Could not connect to {self.host}:{self.port}: {e}"
            ) from e

    def send_request(self, request: bytes):
        """
        Send one request to the server.

        Raises:
            TransportWriteError: If the connection is closed or the write fails
        """
        if self.socket is None:
            raise TransportWriteError("Cannot send request: not connected")
        try:
            self.socket.sendall(request)
        except OSError as e:
            logger.error(f"✗ Failed to send request {request.hex()}: {e}")
            raise TransportWriteError(f"Failed to send request {request.hex()}: {e}") from e
        self.stats['requests_sent'] += 1
        logger.debug(f"Request sent: {request.hex()}")

    def _tick(self) -> float:
        if self.read_timeout is not None and 0 < self.read_timeout < self.poll_interval:
            return self.read_timeout
        return self.poll_interval

    def read_chunks(self, should_stop: Optional[Callable[[], bool]] = None) -> Iterator[bytes]:
        """
        Yield raw reads until the server closes the connection.

        Chunks have arbitrary size and are not aligned to records. While the
        server is silent, each socket timeout tick checks should_stop and
        adds to the idle time measured against read_timeout.

        Raises:
            ReadTimeoutError: If no data arrives within read_timeout
            TransportReadError: If the read fails
            SessionCancelledError: If should_stop() returns True while waiting
        """
        if self.socket is None:
            raise TransportReadError("Cannot read: not connected")

        tick = self._tick()
        ticks_per_notice = max(1, int(30 / tick))
        timeout_counter = 0

        while True:
            try:
                chunk = self.socket.recv(self.buffer_size)
            except socket.timeout as e:
                # Timeout waiting for data - check cancellation and the read deadline
                timeout_counter += 1
                idle = timeout_counter * tick
                if should_stop and should_stop():
                    raise SessionCancelledError(
                        f"Read from {self.host}:{self.port} cancelled"
                    ) from e
                if self.read_timeout is not None and idle >= self.read_timeout:
                    raise ReadTimeoutError(
                        f"No data from {self.host}:{self.port} within {self.read_timeout}s"
                    ) from e
                if timeout_counter % ticks_per_notice == 0:
                    logger.info(f"⏱️  Still waiting for data from {self.host}:{self.port} ({idle:.0f}s)")
                continue
            except OSError as e:
                logger.error(f"✗ Receive failed: {e}")
                raise TransportReadError(f"Receive failed: {e}") from e

            if not chunk:
                logger.info("Server closed the connection")
                return

            timeout_counter = 0
            self.stats['reads'] += 1
            self.stats['bytes_received'] += len(chunk)
            yield chunk

    def disconnect(self):
        """
        Close the TCP connection.

        Safe to call more than once.
        """
        if self.socket:
            try:
                logger.debug(f"Disconnecting from {self.host}:{self.port}...")
                self.socket.close()
            except OSError as e:
                logger.error(f"Error during disconnect: {e}")
            finally:
                self.socket = None

    def get_stats(self) -> dict:
        return self.stats.copy()

    def __enter__(self):
        """Context manager entry - establish connection."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - cleanup connection."""
        self.disconnect()


def create_connection(config: dict, read_timeout: Optional[float] = None) -> ABXConnection:
    """
    Factory function to create an ABX connection from configuration.

    Args:
        config: Configuration dictionary with 'server' section
        read_timeout: Per-read deadline for this connection (None blocks)

    Returns:
        ABXConnection: Configured (not yet connected) connection object

    Example:
        >>> config = {'server': {'host': '127.0.0.1', 'port': 3000}}
        >>> conn = create_connection(config)
        >>> with conn:
        ...     conn.send_request(encode_stream_all_request())
    """
    server_config = config.get('server', {})

    return ABXConnection(
        host=server_config.get('host', DEFAULT_HOST),
        port=server_config.get('port', DEFAULT_PORT),
        buffer_size=config.get('buffer_size', 4096),
        connect_timeout=config.get('connect_timeout', 5.0),
        read_timeout=read_timeout,
        poll_interval=config.get('poll_interval', 1.0)
    )
