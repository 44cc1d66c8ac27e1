"""
Byte-wise textbook RSA: one ciphertext integer per plaintext byte.
No padding and no block packing, so identical bytes give identical integers.
"""
from typing import List, Sequence, Union

from config import ENCODING, DECODE_ERRORS
from number_theory import mod_pow
from rsa_keys import PublicKey, PrivateKey


def encrypt(plaintext: Union[str, bytes], public_key: PublicKey) -> List[int]:
    if public_key.e <= 0 or public_key.n <= 0:
        return []
    if isinstance(plaintext, str):
        plaintext = plaintext.encode(ENCODING)
    return [mod_pow(b, public_key.e, public_key.n) for b in plaintext]


def decrypt_bytes(ciphertext: Sequence[int], private_key: PrivateKey) -> bytes:
    if private_key.n <= 0:
        return b""
    return bytes(mod_pow(c, private_key.d, private_key.n) & 0xFF for c in ciphertext)


def decrypt(ciphertext: Sequence[int], private_key: PrivateKey) -> str:
    return decrypt_bytes(ciphertext, private_key).decode(ENCODING, errors=DECODE_ERRORS)
