import os

import pytest

from cipher import encrypt, decrypt
from key_store import KeyStore, KeyKind
from rsa_keys import PublicKey
from session import (Session, SessionListener, SessionState, Connected, DataReceived,
                     Disconnected, TransportError)


class RecordingListener(SessionListener):
    def __init__(self):
        self.statuses = []
        self.keys = []
        self.received = []
        self.sent = []
        self.closed = []

    def on_status(self, text):
        self.statuses.append(text)

    def on_key_exchanged(self, remote_key):
        self.keys.append(remote_key)

    def on_message_received(self, text, cipher):
        self.received.append((text, list(cipher)))

    def on_message_sent(self, text, cipher):
        self.sent.append((text, list(cipher)))

    def on_closed(self, reason):
        self.closed.append(reason)


class Peer:
    """A session plus everything it wrote to its transport."""

    def __init__(self, tmp_path, name, address):
        directory = tmp_path / name
        directory.mkdir()
        self.dir = str(directory)
        self.outbox = []
        self.listener = RecordingListener()
        self.session = Session(address, send=self.outbox.append,
                               store=KeyStore(self.dir), listener=self.listener)

    def take(self) -> bytes:
        data = b"".join(self.outbox)
        self.outbox.clear()
        return data

    def files(self):
        return sorted(os.listdir(self.dir))


@pytest.fixture
def alice(tmp_path):
    return Peer(tmp_path, "alice", "10.0.0.1")


@pytest.fixture
def bob(tmp_path):
    return Peer(tmp_path, "bob", "10.0.0.2")


def _establish(a, b, a_first=True):
    a.session.listen()
    b.session.connect("10.0.0.1")
    a.session.handle_event(Connected("10.0.0.2"))
    b.session.handle_event(Connected("10.0.0.1"))
    a_out, b_out = a.take(), b.take()
    if a_first:
        b.session.handle_event(DataReceived(a_out))
        a.session.handle_event(DataReceived(b_out))
    else:
        a.session.handle_event(DataReceived(b_out))
        b.session.handle_event(DataReceived(a_out))


def test_initial_state(alice):
    assert alice.session.state is SessionState.IDLE
    assert alice.session.remote_public_key is None
    alice.session.listen()
    assert alice.session.state is SessionState.LISTENING


def test_connect_announces_key(alice):
    alice.session.connect("10.0.0.2")
    assert alice.session.state is SessionState.CONNECTING
    alice.session.handle_event(Connected("10.0.0.2"))
    assert alice.session.state is SessionState.KEY_PENDING
    public = alice.session.local_key_pair.public
    assert alice.take() == f"KEY:{public.e}:{public.n}\n".encode()
    assert alice.files() == ["10_0_0_1_private.key", "10_0_0_1_public.key"]


def test_pregenerated_keys_are_announced(alice):
    pair = alice.session.generate_keys()
    alice.session.handle_event(Connected("10.0.0.2"))
    assert alice.session.local_key_pair is pair
    assert alice.take() == f"KEY:{pair.public.e}:{pair.public.n}\n".encode()


@pytest.mark.parametrize("a_first", [True, False])
def test_both_sides_reach_ready(alice, bob, a_first):
    _establish(alice, bob, a_first)
    assert alice.session.state is SessionState.READY
    assert bob.session.state is SessionState.READY
    assert alice.session.remote_public_key == bob.session.local_key_pair.public
    assert bob.session.remote_public_key == alice.session.local_key_pair.public
    assert alice.listener.keys == [bob.session.local_key_pair.public]
    assert "10_0_0_2_public.key" in alice.files()
    assert "10_0_0_1_public.key" in bob.files()


def test_message_exchange(alice, bob):
    _establish(alice, bob)
    cipher = bob.session.send_message("Hi Alice")
    assert cipher == encrypt("Hi Alice", alice.session.local_key_pair.public)
    wire = bob.take()
    assert wire == ("MSG:" + ",".join(str(c) for c in cipher) + "\n").encode()
    assert bob.listener.sent == [("Hi Alice", cipher)]

    alice.session.handle_event(DataReceived(wire))
    assert alice.listener.received == [("Hi Alice", cipher)]


def test_message_split_across_reads(alice, bob):
    _establish(alice, bob)
    bob.session.send_message("fragmented")
    wire = bob.take()
    alice.session.handle_event(DataReceived(wire[:5]))
    assert alice.listener.received == []
    alice.session.handle_event(DataReceived(wire[5:]))
    assert alice.listener.received[0][0] == "fragmented"


def test_non_integer_tokens_are_skipped(alice, bob):
    _establish(alice, bob)
    alice.session.handle_event(DataReceived(b"MSG:12,abc,34\n"))
    expected = decrypt([12, 34], alice.session.local_key_pair.private)
    assert alice.listener.received == [(expected, [12, 34])]


def test_frame_without_integers_is_ignored(alice, bob):
    _establish(alice, bob)
    alice.session.handle_event(DataReceived(b"MSG:abc\nMSG:\n"))
    assert alice.listener.received == []


def test_malformed_key_keeps_key_pending(alice):
    alice.session.handle_event(Connected("10.0.0.2"))
    alice.session.handle_event(DataReceived(b"KEY:7\nKEY:x:y\nKEY:1:2:3\n"))
    assert alice.session.state is SessionState.KEY_PENDING
    assert alice.session.remote_public_key is None


def test_non_positive_key_is_ignored(alice):
    alice.session.handle_event(Connected("10.0.0.2"))
    alice.session.handle_event(DataReceived(b"KEY:0:0\n"))
    assert alice.session.state is SessionState.KEY_PENDING
    assert alice.listener.keys == []


def test_reannouncement_replaces_key(alice, bob):
    _establish(alice, bob)
    alice.session.handle_event(DataReceived(b"KEY:5:11663\n"))
    assert alice.session.state is SessionState.READY
    assert alice.session.remote_public_key == PublicKey(5, 11663)
    store = KeyStore(alice.dir)
    assert store.load_public_key(store.path_for("10.0.0.2", KeyKind.PUBLIC)) == PublicKey(5, 11663)


def test_message_before_key_exchange_is_ignored(alice):
    alice.session.handle_event(Connected("10.0.0.2"))
    alice.session.handle_event(DataReceived(b"MSG:1,2,3\n"))
    assert alice.listener.received == []


def test_send_rejected_until_ready(alice):
    assert alice.session.send_message("hello") is None
    alice.session.handle_event(Connected("10.0.0.2"))
    alice.take()
    assert alice.session.send_message("hello") is None
    assert alice.outbox == []
    assert "Not connected!" in alice.listener.statuses


def test_empty_input_never_sent(alice, bob):
    _establish(alice, bob)
    assert alice.session.send_message("") is None
    assert alice.session.send_message("   ") is None
    assert alice.outbox == []


def test_invalid_remote_key_blocks_sending(alice):
    alice.session.handle_event(Connected("10.0.0.2"))
    alice.take()
    alice.session.handle_event(DataReceived(b"KEY:7:10403\n"))
    alice.session.remote_public_key = PublicKey(0, 0)
    assert alice.session.send_message("hello") is None
    assert alice.outbox == []


def test_disconnect_deletes_key_files(alice, bob):
    _establish(alice, bob)
    assert alice.files() == ["10_0_0_1_private.key", "10_0_0_1_public.key", "10_0_0_2_public.key"]

    alice.session.handle_event(Disconnected())
    assert alice.session.state is SessionState.CLOSED
    assert alice.files() == []
    assert alice.session.remote_public_key is None
    assert alice.listener.closed == ["Peer disconnected"]

    alice.session.disconnect()
    assert alice.session.state is SessionState.CLOSED
    assert alice.listener.closed == ["Peer disconnected"]


def test_transport_error_closes(alice):
    alice.session.connect("10.0.0.9")
    alice.session.handle_event(TransportError("Connection refused"))
    assert alice.session.state is SessionState.CLOSED
    assert alice.listener.closed == ["Error: Connection refused"]


def test_data_after_close_is_dropped(alice, bob):
    _establish(alice, bob)
    alice.session.disconnect()
    alice.session.handle_event(DataReceived(b"KEY:7:10403\n"))
    assert alice.session.state is SessionState.CLOSED
    assert alice.session.remote_public_key is None


def test_new_cycle_after_close(alice, bob):
    _establish(alice, bob)
    alice.session.disconnect()
    alice.session.listen()
    assert alice.session.state is SessionState.LISTENING
    alice.session.handle_event(Connected("10.0.0.3"))
    assert alice.session.state is SessionState.KEY_PENDING
    assert alice.take().startswith(b"KEY:")


def test_new_connection_replaces_active_one(alice, bob):
    _establish(alice, bob)
    alice.session.handle_event(Connected("10.0.0.3"))
    assert alice.listener.closed == ["Connection replaced"]
    assert alice.session.state is SessionState.KEY_PENDING
    assert alice.session.peer_address == "10.0.0.3"
    assert alice.session.remote_public_key is None
    assert "10_0_0_2_public.key" not in alice.files()
    assert alice.take().startswith(b"KEY:")


def test_unknown_event_type(alice):
    with pytest.raises(TypeError):
        alice.session.handle_event("connected")
