"""
ADHDOOM — Deterministic Random Source

Mulberry32: a counter-based generator whose whole state is one unsigned
32-bit word. Draw n of a stream is a pure function of (seed, n):

    s_n = (seed + n * 0x6D2B79F5) mod 2^32
    out = mix(s_n) / 2^32

Every intermediate is masked to 32 bits, so any implementation with the
same fixed-width arithmetic reproduces the same floats bit for bit.
The increment is odd, so the state walks all 2^32 values before repeating.

Usage:
    from doom_engine.rng import create_random_source
    rng = create_random_source(42)
    rng.next()          # float in [0, 1)
    rng.next_int(10)    # int in [0, 10)
    rng.next_bool(0.15) # True 15% of the time
"""

from __future__ import annotations

import os
import time
from typing import Sequence, TypeVar

import numpy as np

T = TypeVar("T")

MASK32 = 0xFFFFFFFF
GOLDEN_GAMMA = 0x6D2B79F5
TWO_POW_32 = 4294967296.0


def coerce_seed(seed) -> int:
    """Reduce any integer to a non-zero unsigned 32-bit state."""
    return (int(seed) & MASK32) or 1


def _mix(s: int) -> int:
    z = ((s ^ (s >> 15)) * (s | 1)) & MASK32
    z ^= (z + (((z ^ (z >> 7)) * (z | 61)) & MASK32)) & MASK32
    return (z ^ (z >> 14)) & MASK32


class RandomSource:
    """Seeded Mulberry32 stream. One instance per round or per simulation."""

    __slots__ = ("seed", "_state")

    def __init__(self, seed: int = 1):
        self.seed = coerce_seed(seed)
        self._state = self.seed

    def next(self) -> float:
        """Float in [0, 1)."""
        self._state = (self._state + GOLDEN_GAMMA) & MASK32
        return _mix(self._state) / TWO_POW_32

    def next_int(self, max_value: int) -> int:
        """Integer in [0, max_value)."""
        return int(self.next() * max_value)

    def next_bool(self, prob: float) -> bool:
        """True with probability ``prob``."""
        return self.next() < prob

    def pick(self, seq: Sequence[T]) -> T:
        if not seq:
            raise IndexError("pick() from an empty sequence")
        return seq[self.next_int(len(seq))]

    def __repr__(self) -> str:
        return f"RandomSource(seed={self.seed})"


def create_random_source(seed: int) -> RandomSource:
    return RandomSource(seed)


def make_seed() -> int:
    """Fresh non-deterministic seed for live play when none is supplied."""
    entropy = int.from_bytes(os.urandom(4), "little")
    return coerce_seed((time.time_ns() * 31337) ^ entropy)


# ═══════════════════════════════════════════════════════════════
# Vectorized stream (numpy)
# ═══════════════════════════════════════════════════════════════

def mulberry32_block(seed: int, start: int, count: int) -> np.ndarray:
    """Draws ``start+1 .. start+count`` of the stream for ``seed`` as float64.

    Same arithmetic as RandomSource, evaluated for a whole block of counters
    at once. ``mulberry32_block(seed, 0, n)`` equals the first n calls to
    ``RandomSource(seed).next()``.
    """
    base = coerce_seed(seed)
    n = np.arange(start + 1, start + count + 1, dtype=np.uint64)
    s = ((np.uint64(base) + n * np.uint64(GOLDEN_GAMMA)) & np.uint64(MASK32)).astype(np.uint32)

    z = (s ^ (s >> np.uint32(15))) * (s | np.uint32(1))
    z ^= z + (z ^ (z >> np.uint32(7))) * (z | np.uint32(61))
    z ^= z >> np.uint32(14)
    return z.astype(np.float64) / TWO_POW_32
