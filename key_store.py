"""Key-material and cipher file handling."""
import os
from enum import Enum
from typing import List, Optional, Sequence, Union

from config import KEY_DIR, PUBLIC_KEY_SUFFIX, PRIVATE_KEY_SUFFIX, ENCODING
from rsa_keys import PublicKey, PrivateKey, KeyPair
from logging_util import setup_logger

logger = setup_logger("key_store")

IPV4_MAPPED_PREFIX = "::ffff:"


class KeyKind(Enum):
    """Key file kinds, valued by filename suffix."""
    PUBLIC = PUBLIC_KEY_SUFFIX
    PRIVATE = PRIVATE_KEY_SUFFIX


def sanitize_address(address: str) -> str:
    """Turn an address into something safe to use inside a filename."""
    if address.startswith(IPV4_MAPPED_PREFIX):
        address = address[len(IPV4_MAPPED_PREFIX):]
    return address.replace('.', '_').replace(':', '_')


def _read_tokens(path: str) -> List[str]:
    try:
        with open(path, 'r', encoding=ENCODING) as f:
            return f.read().split()
    except (OSError, UnicodeDecodeError) as e:
        logger.debug(f"Could not read {path}: {e}")
        return []


def _key_fields(path: str):
    """First two integers of a key file, or (0, 0) when they don't parse."""
    tokens = _read_tokens(path)
    try:
        return int(tokens[0]), int(tokens[1])
    except (IndexError, ValueError):
        logger.warning(f"Malformed key file {path}")
        return 0, 0


def _write_text(path: str, text: str) -> Optional[str]:
    try:
        with open(path, 'w', encoding=ENCODING) as f:
            f.write(text)
    except OSError as e:
        logger.warning(f"Could not write {path}: {e}")
        return None
    return path


class KeyStore:
    """Reads and writes `<e> <n>` / `<d> <n>` key files in one directory."""

    def __init__(self, directory: str = KEY_DIR):
        self.directory = directory

    def path_for(self, address: str, kind: KeyKind) -> str:
        return os.path.join(self.directory, sanitize_address(address) + kind.value)

    def save(self, key: Union[PublicKey, PrivateKey], address: str) -> Optional[str]:
        if isinstance(key, PublicKey):
            path = self.path_for(address, KeyKind.PUBLIC)
            text = f"{key.e} {key.n}"
        elif isinstance(key, PrivateKey):
            path = self.path_for(address, KeyKind.PRIVATE)
            text = f"{key.d} {key.n}"
        else:
            raise TypeError("key must be a PublicKey or PrivateKey")
        saved = _write_text(path, text)
        if saved:
            logger.info(f"Saved key to {saved}")
        return saved

    def save_key_pair(self, pair: KeyPair, address: str):
        return self.save(pair.public, address), self.save(pair.private, address)

    @staticmethod
    def load_public_key(path: str) -> PublicKey:
        return PublicKey(*_key_fields(path))

    @staticmethod
    def load_private_key(path: str) -> PrivateKey:
        return PrivateKey(*_key_fields(path))

    def load(self, path: str, kind: KeyKind) -> Union[PublicKey, PrivateKey]:
        if kind is KeyKind.PUBLIC:
            return self.load_public_key(path)
        return self.load_private_key(path)

    def delete(self, address: str, kind: KeyKind) -> bool:
        """Remove a key file; a missing file is not an error."""
        path = self.path_for(address, kind)
        try:
            os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"Could not delete {path}: {e}")
            return False
        logger.info(f"Deleted: {path}")
        return True

    def delete_key_pair(self, address: str):
        self.delete(address, KeyKind.PUBLIC)
        self.delete(address, KeyKind.PRIVATE)

    @staticmethod
    def save_cipher(cipher: Sequence[int], path: str) -> Optional[str]:
        return _write_text(path, " ".join(str(c) for c in cipher))

    @staticmethod
    def load_cipher(path: str) -> List[int]:
        cipher = []
        for token in _read_tokens(path):
            try:
                cipher.append(int(token))
            except ValueError:
                continue
        return cipher
