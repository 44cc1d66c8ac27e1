import sys
import argparse

from config import (HOST, PORT, KEY_DIR, CIPHER_SENT_FILE, CIPHER_RECEIVED_FILE,
                    PLAIN_RECEIVED_FILE, ENCODING)
from key_store import KeyStore, KeyKind
from peer import PeerNode
from session import Session, SessionListener
from utils import get_local_address
from logging_util import setup_logger

HELP = """Commands:
  /keys               generate a new key pair
  /connect HOST [PORT] connect to a peer
  /disconnect         drop the current peer
  /preview            toggle cipher preview
  /help               show this help
  /quit               exit
Anything else is encrypted and sent to the peer.
On Windows stdin cannot be polled alongside sockets; use rsa-chat-gui there."""


class ConsoleListener(SessionListener):
    def __init__(self, client):
        self.client = client

    def on_status(self, text):
        print(f"[System] {text}")

    def on_key_exchanged(self, remote_key):
        print(f"[System] Keys exchanged! Peer's public key: ({remote_key.e}, {remote_key.n})")
        print("[System] You can now chat.")

    def on_message_received(self, text, cipher):
        if self.client.preview:
            self.client.save_received(text, cipher)
        print(f"Peer: {text}")

    def on_message_sent(self, text, cipher):
        if self.client.preview:
            print(f"[Length: {len(cipher)}]")
            print(f"[Cipher: {','.join(str(c) for c in cipher)}]")
            KeyStore.save_cipher(cipher, CIPHER_SENT_FILE)
        print(f"Me: {text}")

    def on_closed(self, reason):
        print(f"[System] {reason}. Keys deleted.")


class ChatClient:
    def __init__(self, host=HOST, port=PORT, key_dir=KEY_DIR, preview=False):
        self.logger = setup_logger("cli")
        self.preview = preview
        self.running = False
        self.local_address = get_local_address()
        self.store = KeyStore(key_dir)
        self.session = Session(self.local_address, store=self.store,
                               listener=ConsoleListener(self))
        self.node = PeerNode(self.session, host=host, port=port)

    def save_received(self, text, cipher):
        KeyStore.save_cipher(cipher, CIPHER_RECEIVED_FILE)
        try:
            with open(PLAIN_RECEIVED_FILE, 'w', encoding=ENCODING) as f:
                f.write(text)
        except OSError as e:
            self.logger.warning(f"Error saving plaintext: {e}")

    def generate_keys(self):
        pair = self.session.generate_keys()
        print("[System] Keys generated!")
        print(self.store.path_for(self.local_address, KeyKind.PUBLIC))
        print(self.store.path_for(self.local_address, KeyKind.PRIVATE))
        print(f"n={pair.public.n}, e={pair.public.e}, d={pair.private.d}")

    def handle_command(self, line: str):
        parts = line.split()
        command = parts[0].lower()
        if command == '/keys':
            self.generate_keys()
        elif command == '/connect':
            if len(parts) < 2:
                print("Usage: /connect HOST [PORT]")
                return
            try:
                port = int(parts[2]) if len(parts) > 2 else PORT
            except ValueError:
                print("Invalid port.")
                return
            self.node.connect(parts[1], port)
        elif command == '/disconnect':
            self.node.disconnect()
        elif command == '/preview':
            self.preview = not self.preview
            print(f"[System] Preview {'enabled' if self.preview else 'disabled'}")
        elif command == '/help':
            print(HELP)
        elif command in ('/quit', '/exit'):
            self.running = False
        else:
            print(f"Unknown command {command}; try /help")

    def _on_stdin(self, stream):
        line = stream.readline()
        if not line:
            self.running = False
            return
        line = line.strip()
        if not line:
            return
        if line.startswith('/'):
            self.handle_command(line)
        else:
            self.session.send_message(line)

    def start(self, connect_to=None):
        self.node.listen()
        print(f"Your IP: {self.local_address}\nListening on port {self.node.listening_port}")
        print(HELP)
        if connect_to:
            self.node.connect(connect_to, self.node.port)

        self.node.register_input(sys.stdin, self._on_stdin)
        self.running = True
        try:
            while self.running:
                self.node.poll(timeout=1.0)
        except KeyboardInterrupt:
            pass
        finally:
            self.node.close()
            self.logger.info("Disconnected")


def parse_args():
    parser = argparse.ArgumentParser(description="RSA Chat (educational, insecure)")
    parser.add_argument("--host", default=HOST, help="Host to bind")
    parser.add_argument("--port", type=int, default=PORT, help="Port to listen on and connect to")
    parser.add_argument("--connect", metavar="PEER", help="Peer address to connect to on startup")
    parser.add_argument("--key-dir", default=KEY_DIR, help="Directory for key files")
    parser.add_argument("--preview", action="store_true", help="Show and save ciphertext")
    return parser.parse_args()


def _run_gui():
    from chatgui import main as gui_main
    gui_main()


def main():
    if sys.platform == "win32":
        setup_logger("cli").warning("Console chat needs a pollable stdin; starting the Qt window instead")
        _run_gui()
        return
    args = parse_args()
    client = ChatClient(host=args.host, port=args.port, key_dir=args.key_dir, preview=args.preview)
    client.start(connect_to=args.connect)


if __name__ == '__main__':
    main()
