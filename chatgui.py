import sys
import html

from PyQt5.QtWidgets import (
    QApplication, QMainWindow, QWidget, QVBoxLayout, QHBoxLayout, QFormLayout,
    QPushButton, QTextEdit, QLineEdit, QLabel, QCheckBox, QMessageBox, QStackedWidget
)
from PyQt5.QtCore import Qt, pyqtSignal, QObject
from PyQt5.QtNetwork import QTcpServer, QTcpSocket, QHostAddress, QAbstractSocket

from config import PORT, KEY_DIR, CIPHER_SENT_FILE, CIPHER_RECEIVED_FILE, PLAIN_RECEIVED_FILE, ENCODING
from key_store import KeyStore, KeyKind
from session import (Session, SessionListener, Connected, DataReceived,
                     Disconnected, TransportError, ACTIVE_STATES)
from utils import get_local_address
from logging_util import setup_logger

HELP_TEXT = """
<h2>RSA Chat - Help</h2>
<p>An educational peer-to-peer chat demonstrating RSA encryption principles.</p>
<p><b>For educational purposes only - not secure for real communication.</b></p>

<h3>How to Use</h3>
<ol>
<li><b>Generate Keys:</b> Click "Generate Keys" to create your RSA key pair.</li>
<li><b>Share Your IP:</b> Only one of you needs to give the other an address.</li>
<li><b>Connect:</b> Enter your friend's IP and port (default: 12345), then click "Connect".</li>
<li><b>Chat:</b> Keys are exchanged automatically once connected.</li>
</ol>

<h3>Why This Is Not Secure</h3>
<ul>
<li>Key size is tiny (~17 bits vs 2048+ bits in real RSA)</li>
<li>No padding scheme (vulnerable to frequency analysis)</li>
<li>Keys transmitted in plaintext (no TLS)</li>
<li>No authentication (vulnerable to MITM attacks)</li>
</ul>

<h3>Keyboard Shortcuts</h3>
<ul><li><b>F5</b> - Show this help</li></ul>
"""


class Communicator(QObject, SessionListener):
    """Qt signal bridge for session notifications."""
    status_changed = pyqtSignal(str)
    keys_exchanged = pyqtSignal(int, int)
    message_received = pyqtSignal(str, list)
    message_sent = pyqtSignal(str, list)
    closed = pyqtSignal(str)

    def on_status(self, text):
        self.status_changed.emit(text)

    def on_key_exchanged(self, remote_key):
        self.keys_exchanged.emit(remote_key.e, remote_key.n)

    def on_message_received(self, text, cipher):
        self.message_received.emit(text, list(cipher))

    def on_message_sent(self, text, cipher):
        self.message_sent.emit(text, list(cipher))

    def on_closed(self, reason):
        self.closed.emit(reason)


class SetupPage(QWidget):
    generate_keys_requested = pyqtSignal()
    connect_requested = pyqtSignal(str, int)

    def __init__(self, parent=None):
        super().__init__(parent)
        self.host_edit = QLineEdit()
        self.host_edit.setPlaceholderText("Friend's IP (e.g. 192.168.x.x)")
        self.port_edit = QLineEdit()
        self.port_edit.setPlaceholderText(str(PORT))
        self.status_label = QLabel()

        generate_button = QPushButton("Generate Keys")
        connect_button = QPushButton("Connect")
        generate_button.clicked.connect(self.generate_keys_requested.emit)
        connect_button.clicked.connect(self._on_connect_clicked)

        form = QFormLayout()
        form.addRow("Peer IP:", self.host_edit)
        form.addRow("Port:", self.port_edit)

        buttons = QHBoxLayout()
        buttons.addWidget(generate_button)
        buttons.addWidget(connect_button)

        layout = QVBoxLayout()
        layout.addLayout(form)
        layout.addLayout(buttons)
        layout.addWidget(self.status_label)
        layout.addStretch()
        self.setLayout(layout)

    def set_status(self, text: str):
        self.status_label.setText(text)

    def append_status(self, text: str):
        current = self.status_label.text()
        self.status_label.setText(f"{current}\n{text}" if current else text)

    def _on_connect_clicked(self):
        port_text = self.port_edit.text().strip() or str(PORT)
        if not port_text.isdigit() or not 0 < int(port_text) < 65536:
            self.set_status("Invalid port.")
            return
        host = self.host_edit.text().strip() or "127.0.0.1"
        self.connect_requested.emit(host, int(port_text))


class ChatPage(QWidget):
    send_requested = pyqtSignal(str)

    def __init__(self, parent=None):
        super().__init__(parent)
        self.chat_area = QTextEdit()
        self.chat_area.setReadOnly(True)
        self.message_input = QLineEdit()
        self.message_input.setPlaceholderText("Type your message...")
        self.preview_box = QCheckBox("Enable Preview")
        send_button = QPushButton("Send")

        send_button.clicked.connect(self._on_send)
        self.message_input.returnPressed.connect(self._on_send)

        bottom = QHBoxLayout()
        bottom.addWidget(self.message_input)
        bottom.addWidget(send_button)
        bottom.addWidget(self.preview_box)

        layout = QVBoxLayout()
        layout.addWidget(self.chat_area)
        layout.addLayout(bottom)
        self.setLayout(layout)

    @property
    def preview_enabled(self) -> bool:
        return self.preview_box.isChecked()

    def append_message(self, sender: str, text: str):
        self.chat_area.append(f"<b>{html.escape(sender)}:</b> {html.escape(text)}")

    def append_preview(self, info: str):
        self.chat_area.append(f"<i style='color:#888;'>{html.escape(info)}</i>")

    def _on_send(self):
        text = self.message_input.text().strip()
        if not text:
            return
        self.send_requested.emit(text)
        self.message_input.clear()


class ChatWindow(QMainWindow):
    """PyQt5 front end: QTcpServer/QTcpSocket signals drive the session."""

    def __init__(self, port=PORT, key_dir=KEY_DIR):
        super().__init__()
        self.setWindowTitle("RSA Chat (Press F5 for Help)")
        self.resize(600, 400)
        self.logger = setup_logger("gui")

        self.port = port
        self.local_address = get_local_address()
        self.store = KeyStore(key_dir)
        self.comm = Communicator()
        self.session = Session(self.local_address, send=self._write,
                               store=self.store, listener=self.comm)
        self.socket = None

        self.setup_page = SetupPage()
        self.chat_page = ChatPage()
        self.stack = QStackedWidget()
        self.stack.addWidget(self.setup_page)
        self.stack.addWidget(self.chat_page)
        self.setCentralWidget(self.stack)

        self.setup_page.generate_keys_requested.connect(self._generate_keys)
        self.setup_page.connect_requested.connect(self._connect_to_peer)
        self.chat_page.send_requested.connect(self.session.send_message)

        self.comm.status_changed.connect(self.setup_page.set_status)
        self.comm.keys_exchanged.connect(self._on_keys_exchanged)
        self.comm.message_received.connect(self._on_message_received)
        self.comm.message_sent.connect(self._on_message_sent)
        self.comm.closed.connect(self._on_closed)

        self.server = QTcpServer(self)
        self.server.newConnection.connect(self._on_new_connection)
        self.setup_page.set_status(f"Your IP: {self.local_address}\nListening on port {port}")
        self._start_server()

    def _start_server(self):
        if not self.server.listen(QHostAddress.Any, self.port):
            self.logger.warning(f"Server listen failed: {self.server.errorString()}")
            self.setup_page.set_status("Error: " + self.server.errorString())
            return
        self.session.listen()
        self.logger.info(f"Server listening on port {self.server.serverPort()}")

    def _generate_keys(self):
        pair = self.session.generate_keys()
        self.setup_page.append_status(
            "Keys generated!\n"
            f"{self.store.path_for(self.local_address, KeyKind.PUBLIC)}\n"
            f"{self.store.path_for(self.local_address, KeyKind.PRIVATE)}\n\n"
            f"n={pair.public.n}, e={pair.public.e}, d={pair.private.d}"
        )

    def _adopt_socket(self, sock: QTcpSocket):
        # the old connection must be fully closed before the new socket is live
        if self.socket is not None or self.session.state in ACTIVE_STATES:
            self._drop_socket()
            self.session.disconnect("Connection replaced")
        self.socket = sock
        sock.connected.connect(lambda: self._on_socket_connected(sock))
        sock.readyRead.connect(lambda: self._on_ready_read(sock))
        sock.disconnected.connect(lambda: self._on_socket_disconnected(sock))
        sock.errorOccurred.connect(lambda _err: self._on_socket_error(sock))

    def _drop_socket(self):
        if self.socket is None:
            return
        old, self.socket = self.socket, None
        old.abort()
        old.deleteLater()

    def _connect_to_peer(self, host: str, port: int):
        sock = QTcpSocket(self)
        self._adopt_socket(sock)
        self.session.connect(host)
        sock.connectToHost(host, port)

    def _on_new_connection(self):
        sock = self.server.nextPendingConnection()
        if sock is None:
            return
        self._accept_socket(sock)

    def _accept_socket(self, sock: QTcpSocket):
        self._adopt_socket(sock)
        self.session.handle_event(Connected(self._peer_ip(sock)))

    @staticmethod
    def _peer_ip(sock: QTcpSocket) -> str:
        return sock.peerAddress().toString()

    def _on_socket_connected(self, sock):
        if sock is self.socket:
            self.session.handle_event(Connected(self._peer_ip(sock)))

    def _on_ready_read(self, sock):
        if sock is self.socket:
            self.session.handle_event(DataReceived(bytes(sock.readAll())))

    def _on_socket_disconnected(self, sock):
        if sock is self.socket:
            self.session.handle_event(Disconnected())

    def _on_socket_error(self, sock):
        if sock is not self.socket:
            return
        if sock.error() == QAbstractSocket.RemoteHostClosedError:
            return  # disconnected() follows
        self.session.handle_event(TransportError(sock.errorString()))

    def _write(self, data: bytes):
        if self.socket is None or self.socket.state() != QAbstractSocket.ConnectedState:
            self.logger.warning("Not connected; dropping outgoing frame")
            return
        self.socket.write(data)
        self.socket.flush()

    def _on_keys_exchanged(self, e, n):
        self.chat_page.append_message("System", f"Keys exchanged! Peer's public key: ({e}, {n})")
        self.chat_page.append_message("System", "You can now chat.")
        self.stack.setCurrentWidget(self.chat_page)

    def _on_message_sent(self, text, cipher):
        if self.chat_page.preview_enabled:
            self.chat_page.append_preview(f"[Length: {len(cipher)}]")
            self.chat_page.append_preview(f"[Cipher: {','.join(str(c) for c in cipher)}]")
            if KeyStore.save_cipher(cipher, CIPHER_SENT_FILE):
                self.chat_page.append_preview(f"[Saved to: {CIPHER_SENT_FILE}]")
        self.chat_page.append_message("Me", text)

    def _on_message_received(self, text, cipher):
        if self.chat_page.preview_enabled:
            if KeyStore.save_cipher(cipher, CIPHER_RECEIVED_FILE):
                self.chat_page.append_preview(f"[Saved cipher to: {CIPHER_RECEIVED_FILE}]")
            try:
                with open(PLAIN_RECEIVED_FILE, 'w', encoding=ENCODING) as f:
                    f.write(text)
                self.chat_page.append_preview(f"[Saved plaintext to: {PLAIN_RECEIVED_FILE}]")
            except OSError as e:
                self.chat_page.append_preview(f"[Error saving plaintext: {e}]")
        self.chat_page.append_message("Peer", text)

    def _on_closed(self, reason):
        self._drop_socket()
        self.chat_page.append_message("System", f"{reason}. Keys deleted.")
        self.setup_page.append_status(f"{reason}. Keys deleted.")
        if self.server.isListening():
            self.session.listen()

    def keyPressEvent(self, event):
        if event.key() == Qt.Key_F5:
            self.show_help()
        else:
            super().keyPressEvent(event)

    def show_help(self):
        box = QMessageBox(self)
        box.setWindowTitle("RSA Chat - Help")
        box.setTextFormat(Qt.RichText)
        box.setText(HELP_TEXT)
        box.setIcon(QMessageBox.Information)
        box.exec_()

    def closeEvent(self, event):
        self._drop_socket()
        self.session.disconnect("Application closed")
        super().closeEvent(event)


def main():
    app = QApplication(sys.argv)
    window = ChatWindow()
    window.show()
    sys.exit(app.exec_())


if __name__ == '__main__':
    main()
