"""Helpers for generating benchmark data and formatting throughput."""

from __future__ import annotations

import os
import random
import string
from typing import List, Sequence, Tuple, TypeVar

T = TypeVar("T")

_ALPHANUMERIC = (string.ascii_letters + string.digits).encode()


def chunk_list(items: Sequence[T], size: int) -> List[List[T]]:
    """Split ``items`` into consecutive lists of at most ``size`` elements."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    return [list(items[start:start + size]) for start in range(0, len(items), size)]


def gen_bytes(length: int) -> bytes:
    """Return ``length`` random bytes."""
    return os.urandom(length)


def gen_str(length: int) -> bytes:
    """Return ``length`` random ASCII letters and digits."""
    return bytes(random.choices(_ALPHANUMERIC, k=length))


def gen_pairs(klen: int, vlen: int, length: int) -> List[Tuple[bytes, bytes]]:
    """Return ``length`` pairs of random key bytes and alphanumeric values."""
    return [(gen_bytes(klen), gen_str(vlen)) for _ in range(length)]


def gen_num_pair() -> Tuple[bytes, bytes]:
    """Return two random 64-bit numbers as big-endian bytes."""
    return (
        random.getrandbits(64).to_bytes(8, "big"),
        random.getrandbits(64).to_bytes(8, "big"),
    )


def fmt_num(count: float) -> str:
    """Format ``count`` with one decimal and a K, M or G suffix."""
    if count < 1_000.0:
        return f"{count:.1f}"
    if count < 1_000_000.0:
        return f"{count / 1_000.0:.1f}K"
    if count < 1_000_000_000.0:
        return f"{count / 1_000_000.0:.1f}M"
    return f"{count / 1_000_000_000.0:.1f}G"


def fmt_per_sec(count: int, seconds: float) -> str:
    """Format ``count`` events over ``seconds`` as a rate per second."""
    rate = count / seconds if seconds else float("inf")
    return f"{fmt_num(rate)}/s"