"""
Central configuration for rsa-chat.
Avoids hardcoded literals spread across files.
"""
import logging

# Networking
HOST = "0.0.0.0"
PORT = 12345
BACKLOG = 1
RECV_BYTES = 4096
MAX_LINE_BYTES = 64 * 1024  # longest frame kept while waiting for its newline
CONNECT_TIMEOUT = 10.0  # seconds; key exchange itself has no timeout

# Key generation (educational only: these keys are trivially breakable)
PRIME_RANGE = (100, 500)
FIRST_PUBLIC_EXPONENT = 3

# Key material
KEY_DIR = "."
PUBLIC_KEY_SUFFIX = "_public.key"
PRIVATE_KEY_SUFFIX = "_private.key"
FALLBACK_ADDRESS = "127.0.0.1"

# Encoding
ENCODING = "utf-8"
DECODE_ERRORS = "replace"  # errors handling during decode

# Preview mode output
CIPHER_SENT_FILE = "cipher_sent.txt"
CIPHER_RECEIVED_FILE = "cipher_received.txt"
PLAIN_RECEIVED_FILE = "plain_received.txt"

# Logging
LOG_LEVEL = logging.INFO
LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'
