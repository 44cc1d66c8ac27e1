from typing import List

from config import ENCODING, DECODE_ERRORS, MAX_LINE_BYTES
from logging_util import setup_logger

logger = setup_logger("protocol")

# Newline-delimited framing over a byte stream: one UTF-8 text line per frame.
DELIMITER = b'\n'


def encode_line(text: str) -> bytes:
    return text.encode(ENCODING) + DELIMITER


class LineBuffer:
    """Accumulates stream bytes and hands back only complete lines.

    A fragment without its trailing newline stays buffered until the rest
    arrives on a later read. A fragment that outgrows `max_line_bytes` is
    dropped along with everything up to its eventual newline.
    """

    def __init__(self, max_line_bytes: int = MAX_LINE_BYTES):
        self.max_line_bytes = max_line_bytes
        self._buf = bytearray()
        self._discarding = False

    def feed(self, data: bytes) -> List[str]:
        self._buf.extend(data)
        lines = []
        while True:
            idx = self._buf.find(DELIMITER)
            if idx < 0:
                break
            raw = bytes(self._buf[:idx])
            del self._buf[:idx + 1]
            if self._discarding:
                self._discarding = False
                continue
            line = raw.decode(ENCODING, errors=DECODE_ERRORS).strip()
            if line:
                lines.append(line)
        if len(self._buf) > self.max_line_bytes:
            logger.warning(f"Dropping unterminated line longer than {self.max_line_bytes} bytes")
            self._buf.clear()
            self._discarding = True
        return lines

    @property
    def pending(self) -> bytes:
        return bytes(self._buf)

    def clear(self):
        self._buf.clear()
        self._discarding = False
