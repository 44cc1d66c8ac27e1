from dataclasses import dataclass, field
import random
from typing import Optional

from config import PRIME_RANGE, FIRST_PUBLIC_EXPONENT
from number_theory import random_prime, gcd, mod_inverse
from logging_util import setup_logger

logger = setup_logger("keys")


@dataclass(frozen=True)
class PublicKey:
    e: int = 0
    n: int = 0


@dataclass(frozen=True)
class PrivateKey:
    d: int = 0
    n: int = 0


@dataclass(frozen=True)
class KeyPair:
    public: PublicKey
    private: PrivateKey
    # primes stay in memory only; the key files carry (e, n) and (d, n)
    p: int = field(default=0, repr=False)
    q: int = field(default=0, repr=False)

    @property
    def phi(self) -> int:
        return (self.p - 1) * (self.q - 1)


def key_pair_from_primes(p: int, q: int) -> KeyPair:
    n = p * q
    phi = (p - 1) * (q - 1)

    # phi is even, so stepping through odd candidates eventually finds a coprime e
    e = FIRST_PUBLIC_EXPONENT
    while gcd(e, phi) != 1:
        e += 2

    d = mod_inverse(e, phi)
    return KeyPair(PublicKey(e, n), PrivateKey(d, n), p, q)


def generate_key_pair(rng: Optional[random.Random] = None) -> KeyPair:
    low, high = PRIME_RANGE
    p = random_prime(low, high, rng)
    q = random_prime(low, high, rng)
    while q == p:
        q = random_prime(low, high, rng)

    pair = key_pair_from_primes(p, q)
    logger.info(f"Generated key pair n={pair.public.n} e={pair.public.e}")
    return pair


def generate_and_save_key_pair(local_address: str, store=None,
                               rng: Optional[random.Random] = None) -> KeyPair:
    """Generate a key pair and persist both halves under the local address."""
    if store is None:
        from key_store import KeyStore
        store = KeyStore()
    pair = generate_key_pair(rng)
    store.save_key_pair(pair, local_address)
    return pair
