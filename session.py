"""
Per-connection key exchange and messaging state machine.

The session owns the local key pair, the peer's public key once announced
and the lifecycle state. It never touches a socket: a transport feeds it
events through `handle_event` and it writes frames through the `send`
callable it was given.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from cipher import encrypt, decrypt
from key_store import KeyStore, KeyKind
from messages import KeyAnnouncement, CipherFrame, parse_line
from protocol import LineBuffer, encode_line
from rsa_keys import KeyPair, PublicKey, generate_and_save_key_pair
from logging_util import setup_logger


class SessionState(Enum):
    IDLE = "idle"
    LISTENING = "listening"
    CONNECTING = "connecting"
    KEY_PENDING = "key_pending"
    READY = "ready"
    CLOSED = "closed"


ACTIVE_STATES = (SessionState.KEY_PENDING, SessionState.READY)


# Transport events

@dataclass
class Connected:
    peer_address: str


@dataclass
class DataReceived:
    data: bytes


@dataclass
class Disconnected:
    reason: str = "Peer disconnected"


@dataclass
class TransportError:
    message: str


class SessionListener:
    """Front-end hooks. Every method is a no-op unless overridden."""

    def on_status(self, text: str):
        pass

    def on_key_exchanged(self, remote_key: PublicKey):
        pass

    def on_message_received(self, text: str, cipher: List[int]):
        pass

    def on_message_sent(self, text: str, cipher: List[int]):
        pass

    def on_closed(self, reason: str):
        pass


class Session:
    def __init__(self, local_address: str,
                 send: Optional[Callable[[bytes], None]] = None,
                 store: Optional[KeyStore] = None,
                 listener: Optional[SessionListener] = None):
        self.local_address = local_address
        self.send = send
        self.store = store or KeyStore()
        self.listener = listener or SessionListener()
        self.logger = setup_logger("session")

        self.state = SessionState.IDLE
        self.local_key_pair: Optional[KeyPair] = None
        self.remote_public_key: Optional[PublicKey] = None
        self.peer_address: Optional[str] = None
        self._lines = LineBuffer()

    @property
    def is_ready(self) -> bool:
        return self.state is SessionState.READY

    def generate_keys(self) -> KeyPair:
        self.local_key_pair = generate_and_save_key_pair(self.local_address, self.store)
        return self.local_key_pair

    def reset(self):
        """Return a closed session to IDLE so a new cycle can start."""
        if self.state is SessionState.CLOSED:
            self.state = SessionState.IDLE
            self.peer_address = None

    def listen(self):
        self._prepare_new_cycle()
        if self.state is SessionState.IDLE:
            self.state = SessionState.LISTENING

    def connect(self, peer_address: str):
        self._prepare_new_cycle()
        self.peer_address = peer_address
        self.state = SessionState.CONNECTING
        self.listener.on_status(f"Connecting to {peer_address}...")

    def disconnect(self, reason: str = "Disconnected"):
        self._close(reason)

    def handle_event(self, event):
        if isinstance(event, Connected):
            self._on_connected(event.peer_address)
        elif isinstance(event, DataReceived):
            self._on_data(event.data)
        elif isinstance(event, Disconnected):
            self._close(event.reason)
        elif isinstance(event, TransportError):
            self._close(f"Error: {event.message}")
        else:
            raise TypeError(f"unknown transport event {event!r}")

    def send_message(self, text: str) -> Optional[List[int]]:
        """Encrypt text with the peer's key and send it as one MSG frame."""
        if not text.strip():
            return None
        if not self.is_ready or self.remote_public_key is None:
            self.listener.on_status("Not connected!")
            return None

        cipher = encrypt(text, self.remote_public_key)
        if not cipher:
            self.listener.on_status("Encryption failed: peer key is invalid")
            return None

        self._write(CipherFrame(cipher).to_line())
        self.listener.on_message_sent(text, cipher)
        return cipher

    def _prepare_new_cycle(self):
        if self.state in ACTIVE_STATES:
            self._close("Connection replaced")
        self.reset()

    def _on_connected(self, peer_address: str):
        if self.state in ACTIVE_STATES:
            self._close("Connection replaced")
        self.reset()

        self.peer_address = peer_address
        self.remote_public_key = None
        self._lines.clear()
        self.state = SessionState.KEY_PENDING
        self.logger.info(f"Connected to {peer_address}")
        self.listener.on_status(f"Connected to {peer_address}. Exchanging keys...")

        if self.local_key_pair is None:
            self.generate_keys()
        self._announce_key()

    def _announce_key(self):
        public = self.local_key_pair.public
        self._write(KeyAnnouncement.from_key(public).to_line())
        self.logger.info(f"Sent public key: {public.e} {public.n}")

    def _write(self, line: str):
        if self.send is None:
            self.logger.warning(f"No transport attached; dropping {line!r}")
            return
        self.send(encode_line(line))

    def _on_data(self, data: bytes):
        if self.state not in ACTIVE_STATES:
            self.logger.debug(f"Dropping {len(data)} bytes received while {self.state.value}")
            return
        for line in self._lines.feed(data):
            self._handle_line(line)

    def _handle_line(self, line: str):
        frame = parse_line(line)
        if isinstance(frame, KeyAnnouncement):
            self._handle_key(frame)
        elif isinstance(frame, CipherFrame):
            self._handle_cipher(frame)
        else:
            self.logger.debug(f"Ignoring line: {line!r}")

    def _handle_key(self, frame: KeyAnnouncement):
        if frame.e <= 0 or frame.n <= 0:
            self.logger.warning(f"Peer sent invalid key: {frame.e} {frame.n}")
            self.listener.on_status("Peer sent an invalid key; waiting for a new one")
            return

        self.remote_public_key = frame.public_key
        self.store.save(self.remote_public_key, self.peer_address)
        self.state = SessionState.READY
        self.logger.info(f"Received public key - e: {frame.e} n: {frame.n}")
        self.listener.on_key_exchanged(self.remote_public_key)

    def _handle_cipher(self, frame: CipherFrame):
        if not self.is_ready:
            self.logger.warning("Received message before key exchange")
            return
        if not frame.values:
            return
        text = decrypt(frame.values, self.local_key_pair.private)
        self.listener.on_message_received(text, frame.values)

    def _close(self, reason: str):
        was_closed = self.state is SessionState.CLOSED
        self.store.delete_key_pair(self.local_address)
        if self.peer_address:
            self.store.delete(self.peer_address, KeyKind.PUBLIC)

        self.local_key_pair = None
        self.remote_public_key = None
        self._lines.clear()
        self.state = SessionState.CLOSED
        if not was_closed:
            self.logger.info(f"Connection closed: {reason}")
            self.listener.on_closed(reason)
