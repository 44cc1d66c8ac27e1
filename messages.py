import re
from dataclasses import dataclass, field
from typing import List, Optional, Union

from rsa_keys import PublicKey

KEY_PREFIX = "KEY:"
MSG_PREFIX = "MSG:"

_INT_RE = re.compile(r'^[+-]?[0-9]+$')


def _parse_int(token: str) -> Optional[int]:
    token = token.strip()
    if not _INT_RE.match(token):
        return None
    return int(token)


@dataclass
class KeyAnnouncement:
    e: int
    n: int

    @property
    def public_key(self) -> PublicKey:
        return PublicKey(self.e, self.n)

    @staticmethod
    def from_key(key: PublicKey) -> "KeyAnnouncement":
        return KeyAnnouncement(e=key.e, n=key.n)

    def to_line(self) -> str:
        return f"{KEY_PREFIX}{self.e}:{self.n}"

    @staticmethod
    def from_line(line: str) -> Optional["KeyAnnouncement"]:
        parts = line.strip().split(':')
        if len(parts) != 3 or parts[0] + ':' != KEY_PREFIX:
            return None
        e, n = _parse_int(parts[1]), _parse_int(parts[2])
        if e is None or n is None:
            return None
        return KeyAnnouncement(e=e, n=n)


@dataclass
class CipherFrame:
    values: List[int] = field(default_factory=list)

    def to_line(self) -> str:
        return MSG_PREFIX + ",".join(str(v) for v in self.values)

    @staticmethod
    def from_line(line: str) -> Optional["CipherFrame"]:
        line = line.strip()
        if not line.startswith(MSG_PREFIX):
            return None
        values = []
        for token in line[len(MSG_PREFIX):].split(','):
            value = _parse_int(token)
            if value is not None:
                values.append(value)
        return CipherFrame(values=values)


Frame = Union[KeyAnnouncement, CipherFrame]


def parse_line(line: str) -> Optional[Frame]:
    """Decode one protocol line; unknown or malformed lines give None."""
    line = line.strip()
    if line.startswith(KEY_PREFIX):
        return KeyAnnouncement.from_line(line)
    if line.startswith(MSG_PREFIX):
        return CipherFrame.from_line(line)
    return None
