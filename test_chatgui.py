import os

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
QtWidgets = pytest.importorskip("PyQt5.QtWidgets")
from PyQt5.QtNetwork import QTcpSocket  # noqa: E402

from chatgui import ChatWindow  # noqa: E402
from session import SessionState, DataReceived  # noqa: E402


@pytest.fixture(scope="module")
def app():
    return QtWidgets.QApplication.instance() or QtWidgets.QApplication([])


@pytest.fixture
def window(app, tmp_path):
    w = ChatWindow(port=0, key_dir=str(tmp_path))
    sent = []
    w.session.send = sent.append
    w.sent = sent
    yield w
    w.close()
    w.server.close()


def test_inbound_connection_replaces_active_one(window, tmp_path):
    old = QTcpSocket(window)
    window._accept_socket(old)
    window.session.handle_event(DataReceived(b"KEY:7:10403\n"))
    assert window.session.state is SessionState.READY

    window.sent.clear()
    new = QTcpSocket(window)
    window._accept_socket(new)

    assert window.socket is new
    assert window.session.state is SessionState.KEY_PENDING
    assert window.sent and window.sent[0].startswith(b"KEY:")
    assert "Connection replaced" in window.chat_page.chat_area.toPlainText()


def test_outbound_connect_replaces_active_one(window):
    old = QTcpSocket(window)
    window._accept_socket(old)
    window.session.handle_event(DataReceived(b"KEY:7:10403\n"))

    window._connect_to_peer("127.0.0.1", 1)

    assert window.socket is not None and window.socket is not old
    assert window.session.state is SessionState.CONNECTING
    assert window.session.remote_public_key is None
