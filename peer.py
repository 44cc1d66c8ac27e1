"""
Single-connection TCP node driving a Session from a selectors readiness loop.
"""
import errno
import os
import selectors
import socket
import time
from typing import Optional

from config import HOST, PORT, BACKLOG, RECV_BYTES, CONNECT_TIMEOUT
from session import Session, Connected, DataReceived, Disconnected, TransportError
from logging_util import setup_logger

ACCEPT = "accept"
CONNECT = "connect"
STREAM = "stream"


class PeerNode:
    """Listens for one peer and/or dials one, feeding socket readiness to a Session.

    Nothing here blocks: connects finish when the socket turns writable and
    outgoing frames are queued until the kernel accepts them.
    """

    def __init__(self, session: Session, host: str = HOST, port: int = PORT,
                 connect_timeout: float = CONNECT_TIMEOUT):
        self.session = session
        self.session.send = self.send
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout
        self.logger = setup_logger("peer")
        self.selector = selectors.DefaultSelector()

        self.server_socket: Optional[socket.socket] = None
        self.conn: Optional[socket.socket] = None
        self.outgoing = bytearray()
        self.connect_deadline: Optional[float] = None

    @property
    def listening_port(self) -> Optional[int]:
        if self.server_socket is None:
            return None
        return self.server_socket.getsockname()[1]

    def listen(self):
        self.server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.server_socket.bind((self.host, self.port))
        self.server_socket.listen(BACKLOG)
        self.server_socket.setblocking(False)
        self.selector.register(self.server_socket, selectors.EVENT_READ, ACCEPT)
        self.session.listen()
        self.logger.info(f"Listening on {self.host}:{self.listening_port}")

    def connect(self, host: str, port: int = PORT):
        self._drop_connection()
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setblocking(False)
        self.session.connect(host)
        err = sock.connect_ex((host, port))
        if err not in (0, errno.EINPROGRESS, errno.EWOULDBLOCK, errno.EALREADY):
            sock.close()
            self.session.handle_event(TransportError(os.strerror(err)))
            return
        self.conn = sock
        self.connect_deadline = time.monotonic() + self.connect_timeout
        self.selector.register(sock, selectors.EVENT_WRITE, CONNECT)
        self.logger.info(f"Connecting to {host}:{port}")

    def disconnect(self):
        self._drop_connection()
        self.session.disconnect()

    def send(self, data: bytes):
        if self.conn is None:
            self.logger.warning("No connection; dropping outgoing frame")
            return
        self.outgoing.extend(data)
        key = self.selector.get_key(self.conn)
        if key.data == STREAM:
            self.selector.modify(self.conn, selectors.EVENT_READ | selectors.EVENT_WRITE, STREAM)

    def register_input(self, fileobj, callback):
        """Watch an extra readable file object (e.g. stdin) in the same loop."""
        self.selector.register(fileobj, selectors.EVENT_READ, callback)

    def poll(self, timeout: Optional[float] = None):
        """Process one batch of readiness events."""
        if self.connect_deadline is not None:
            remaining = max(0.0, self.connect_deadline - time.monotonic())
            timeout = remaining if timeout is None else min(timeout, remaining)
        for key, mask in self.selector.select(timeout):
            if key.data in (CONNECT, STREAM) and key.fileobj is not self.conn:
                # an earlier handler in this batch dropped or replaced the socket
                continue
            if key.data == ACCEPT:
                self._accept()
            elif key.data == CONNECT:
                self._finish_connect()
            elif key.data == STREAM:
                if mask & selectors.EVENT_WRITE:
                    self._flush()
                if mask & selectors.EVENT_READ and self.conn is key.fileobj:
                    self._read()
            else:
                key.data(key.fileobj)
        self._check_connect_timeout()

    def close(self):
        self.disconnect()
        if self.server_socket is not None:
            self.selector.unregister(self.server_socket)
            self.server_socket.close()
            self.server_socket = None
        self.selector.close()

    def _accept(self):
        try:
            client_socket, client_address = self.server_socket.accept()
        except BlockingIOError:
            return
        if self.conn is not None:
            self.logger.info("Replacing active connection")
            self._drop_connection()
        client_socket.setblocking(False)
        self.conn = client_socket
        self.selector.register(client_socket, selectors.EVENT_READ, STREAM)
        self.logger.info(f"New connection from {client_address}")
        self.session.handle_event(Connected(client_address[0]))

    def _finish_connect(self):
        err = self.conn.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        try:
            if err:
                raise OSError(err, os.strerror(err))
            peer_address = self.conn.getpeername()[0]
        except OSError as e:
            self._drop_connection()
            self.session.handle_event(TransportError(e.strerror or str(e)))
            return
        self.connect_deadline = None
        self.selector.modify(self.conn, selectors.EVENT_READ, STREAM)
        self.session.handle_event(Connected(peer_address))

    def _check_connect_timeout(self):
        if self.connect_deadline is None or time.monotonic() < self.connect_deadline:
            return
        self._drop_connection()
        self.session.handle_event(TransportError("Connection timed out"))

    def _read(self):
        try:
            data = self.conn.recv(RECV_BYTES)
        except BlockingIOError:
            return
        except OSError as e:
            self._drop_connection()
            self.session.handle_event(TransportError(str(e)))
            return
        if not data:
            self._drop_connection()
            self.session.handle_event(Disconnected())
            return
        self.session.handle_event(DataReceived(data))

    def _flush(self):
        try:
            sent = self.conn.send(self.outgoing)
        except BlockingIOError:
            return
        except OSError as e:
            self._drop_connection()
            self.session.handle_event(TransportError(str(e)))
            return
        del self.outgoing[:sent]
        if not self.outgoing:
            self.selector.modify(self.conn, selectors.EVENT_READ, STREAM)

    def _drop_connection(self):
        if self.conn is None:
            return
        try:
            self.selector.unregister(self.conn)
        except (KeyError, ValueError):
            pass
        self.conn.close()
        self.conn = None
        self.outgoing.clear()
        self.connect_deadline = None
