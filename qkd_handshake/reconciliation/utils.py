"""Block and parity helpers for reconciliation."""

import math
from typing import List, Sequence

from qkd_handshake.core.constants import MIN_BLOCK_QBER, MIN_BLOCK_SIZE


def compute_parity(key: Sequence[int], indices: Sequence[int]) -> int:
    """XOR of the key bits at ``indices``.

    Examples
    --------
    >>> compute_parity([1, 0, 1, 1], [0, 1, 2])
    0
    """
    parity = 0
    for i in indices:
        parity ^= int(key[i])
    return parity


def split_into_blocks(key_length: int, block_size: int) -> List[List[int]]:
    """Partition ``range(key_length)`` into consecutive blocks.

    The last block is shorter when ``block_size`` does not divide the key.

    Raises
    ------
    ValueError
        If ``block_size`` is not positive.
    """
    if block_size <= 0:
        raise ValueError(f"Block size must be positive, got {block_size}")
    return [
        list(range(start, min(start + block_size, key_length)))
        for start in range(0, key_length, block_size)
    ]


def compute_block_size(qber: float) -> int:
    """Block size for a given QBER: ``max(4, ceil(1 / (2 * max(qber, 0.01))))``.

    Aims at roughly one error per two blocks. QBER values below 1% are
    floored so an error-free sample still yields a finite block.
    """
    return max(MIN_BLOCK_SIZE, math.ceil(1 / (2 * max(qber, MIN_BLOCK_QBER))))


def block_midpoint(block: Sequence[int]) -> int:
    """Index flipped by the midpoint heuristic, ``(start + end) // 2``."""
    return (block[0] + block[-1] + 1) // 2
