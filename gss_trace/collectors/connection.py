"""
Connections to the aggregation service.

The aggregator protocol client is an external collaborator. Everything in
this package depends on it only through SampleConnection:

    - connect() / close()
    - is_ready: records may be sent now
    - send(record): raises ConnectionLost once records can no longer be accepted
    - listener callbacks: connection_ready, connection_lost, sample_received

Two implementations ship here:

    LoopbackConnection   in-memory, used by tests and dry runs
    TCPSampleConnection  socket client exchanging wire-framed records
                         ([i32 length][body]); handshake and subscription
                         negotiation are left to the aggregator client
"""

import logging
import socket
import threading
from abc import ABC, abstractmethod
from typing import List, Optional

from ..core.errors import ConnectionLost, MalformedLength, TraceIOError, TruncatedRecord
from ..formats.codec import SampleCodec
from ..formats.record import SampleRecord

logger = logging.getLogger(__name__)


class ConnectionListener:
    """Callbacks fired by a SampleConnection. All default to no-ops."""

    def connection_ready(self, connection: 'SampleConnection') -> None:
        pass

    def connection_lost(self, connection: 'SampleConnection') -> None:
        pass

    def sample_received(self, connection: 'SampleConnection', record: SampleRecord) -> None:
        pass


class SampleConnection(ABC):
    """Abstract connection that can emit and receive sample records."""

    def __init__(self):
        self._listeners: List[ConnectionListener] = []
        self._ready = threading.Event()
        self._closed = threading.Event()
        self._lost_notified = False
        self._state_lock = threading.Lock()

    def add_listener(self, listener: ConnectionListener) -> None:
        self._listeners.append(listener)

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set() and not self._closed.is_set()

    @property
    def is_closed(self) -> bool:
        return self._closed.is_set()

    def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until ready or closed. Returns is_ready."""
        self._ready.wait(timeout)
        return self.is_ready

    @abstractmethod
    def connect(self) -> None:
        """Establish the connection. Fires connection_ready when records may flow."""

    @abstractmethod
    def send(self, record: SampleRecord) -> None:
        """Send one record. Raises ConnectionLost if it cannot be accepted."""

    @abstractmethod
    def close(self) -> None:
        """Release the connection."""

    def _mark_ready(self) -> None:
        self._ready.set()
        for listener in self._listeners:
            listener.connection_ready(self)

    def _mark_not_ready(self) -> None:
        self._ready.clear()

    def _mark_lost(self) -> None:
        with self._state_lock:
            self._closed.set()
            # Release anyone blocked in wait_ready()
            self._ready.set()
            if self._lost_notified:
                return
            self._lost_notified = True
        for listener in self._listeners:
            listener.connection_lost(self)

    def _dispatch(self, record: SampleRecord) -> None:
        for listener in self._listeners:
            listener.sample_received(self, record)


class LoopbackConnection(SampleConnection):
    """
    In-memory connection.

    Sent records are kept in self.sent. inject() delivers a record to
    listeners as if it had arrived from the aggregator.

    Example:
        conn = LoopbackConnection(accept_limit=10)
        conn.connect()
        conn.send(record)
    """

    def __init__(self, ready_on_connect: bool = True, accept_limit: Optional[int] = None):
        super().__init__()
        self.ready_on_connect = ready_on_connect
        self.accept_limit = accept_limit
        self.sent: List[SampleRecord] = []

    def connect(self) -> None:
        logger.debug("Loopback connection established")
        if self.ready_on_connect:
            self._mark_ready()

    def make_ready(self) -> None:
        self._mark_ready()

    def interrupt(self) -> None:
        """Temporarily stop accepting records."""
        self._mark_not_ready()

    def drop(self) -> None:
        """Simulate the peer going away."""
        self._mark_lost()

    def inject(self, record: SampleRecord) -> None:
        self._dispatch(record)

    def send(self, record: SampleRecord) -> None:
        if self.is_closed:
            raise ConnectionLost("Loopback connection is closed")
        if self.accept_limit is not None and len(self.sent) >= self.accept_limit:
            self._mark_lost()
            raise ConnectionLost(context={'accepted': len(self.sent)})
        self.sent.append(record)

    def close(self) -> None:
        self._mark_lost()


class TCPSampleConnection(SampleConnection):
    """
    Exchange wire-framed records with a TCP peer.

    A receive thread decodes incoming records and dispatches them to
    listeners; end of stream or a decode failure marks the connection lost.

    Example:
        conn = TCPSampleConnection('aggregator.local', 7007)
        conn.add_listener(recorder)
        conn.connect()
        ...
        conn.close()
    """

    def __init__(self, host: str, port: int, connect_timeout: float = 10.0):
        super().__init__()
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout

        self.socket: Optional[socket.socket] = None
        self._send_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._closing = False

        # Statistics
        self.records_sent = 0
        self.records_received = 0

    def __repr__(self) -> str:
        return f"TCPSampleConnection({self.host}:{self.port})"

    def connect(self) -> None:
        """
        Connect to the peer.

        Raises:
            ConnectionLost: If the connection cannot be established
        """
        logger.debug(f"Attempting connection to {self.host}:{self.port}")
        try:
            self.socket = socket.create_connection((self.host, self.port), timeout=self.connect_timeout)
        except OSError as e:
            raise ConnectionLost(f"Connection to {self.host}:{self.port} failed: {e}") from e
        self.socket.settimeout(None)

        self._thread = threading.Thread(target=self._receive_loop, name='sample-receiver', daemon=True)
        self._thread.start()

        logger.info(f"Connected to {self.host}:{self.port}")
        self._mark_ready()

    def send(self, record: SampleRecord) -> None:
        if self.socket is None or self.is_closed:
            raise ConnectionLost(f"Not connected to {self.host}:{self.port}")
        data = SampleCodec.encode_wire(record)
        try:
            with self._send_lock:
                self.socket.sendall(data)
        except OSError as e:
            self._mark_lost()
            raise ConnectionLost(f"Send to {self.host}:{self.port} failed: {e}") from e
        self.records_sent += 1

    def _receive_loop(self) -> None:
        """Main receive loop."""
        stream = self.socket.makefile('rb')
        try:
            while not self._closing:
                record = SampleCodec.decode_wire(stream)
                if record is None:
                    if not self._closing:
                        logger.info(f"Lost connection to {self.host}:{self.port}")
                    break
                self.records_received += 1
                self._dispatch(record)
        except (TruncatedRecord, MalformedLength, TraceIOError) as e:
            if not self._closing:
                logger.error(f"Receive error from {self.host}:{self.port}: {e.message}")
        finally:
            stream.close()
            self._mark_lost()

    def close(self) -> None:
        """Close the connection and wait for the receive thread."""
        self._closing = True
        if self.socket is not None:
            try:
                self.socket.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass  # already disconnected
            self.socket.close()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=2.0)
        self._mark_lost()
        stats = self.stats()
        logger.info(
            f"Connection to {self.host}:{self.port} closed "
            f"({stats['records_sent']} sent, {stats['records_received']} received)"
        )

    def stats(self) -> dict:
        """Get connection statistics."""
        return {
            'records_sent': self.records_sent,
            'records_received': self.records_received,
        }
