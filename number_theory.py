"""Small number theory helpers behind the toy RSA engine."""
import random
from typing import Optional


def is_prime(n: int) -> bool:
    """Deterministic trial division up to sqrt(n)."""
    if n <= 1:
        return False
    if n in (2, 3):
        return True
    if n % 2 == 0:
        return False
    i = 3
    while i * i <= n:
        if n % i == 0:
            return False
        i += 2
    return True


def random_prime(low: int, high: int, rng: Optional[random.Random] = None) -> int:
    """Draw from the inclusive range [low, high] until a prime comes up.

    Never returns if the range holds no prime, so only call it with ranges
    known to contain one.
    """
    if low > high:
        raise ValueError(f"empty range [{low}, {high}]")
    rng = rng or random
    while True:
        candidate = rng.randint(low, high)
        if is_prime(candidate):
            return candidate


def gcd(a: int, b: int) -> int:
    while b != 0:
        a, b = b, a % b
    return abs(a)


def mod_inverse(a: int, m: int) -> int:
    """Return x in [0, m) with a*x == 1 (mod m)."""
    if m == 1:
        return 0
    old_r, r = a % m, m
    old_x, x = 1, 0
    while r:
        q = old_r // r
        old_r, r = r, old_r - q * r
        old_x, x = x, old_x - q * x
    if old_r != 1:
        raise ValueError(f"{a} has no inverse modulo {m}")
    return old_x % m


def mod_pow(base: int, exponent: int, modulus: int) -> int:
    """Square-and-multiply modular exponentiation."""
    if modulus == 1:
        return 0
    result = 1
    base %= modulus
    while exponent > 0:
        if exponent & 1:
            result = (result * base) % modulus
        base = (base * base) % modulus
        exponent >>= 1
    return result
