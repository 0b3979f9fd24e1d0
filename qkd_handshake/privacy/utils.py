"""Toeplitz matrix and bit-vector utilities.

A Toeplitz matrix has constant diagonals, so an ``m x n`` matrix is fully
described by ``n + m - 1`` seed bits. Multiplying a key by a random Toeplitz
matrix modulo 2 is the classic 2-universal hash used for privacy
amplification.
"""

from typing import List, Sequence

import numpy as np
from scipy.linalg import toeplitz


def compute_seed_length(input_length: int, output_length: int) -> int:
    """Compute required seed length for Toeplitz matrix.

    Raises
    ------
    ValueError
        If lengths are not positive or output > input.
    """
    if input_length <= 0:
        raise ValueError(f"Input length must be positive, got {input_length}")
    if output_length <= 0:
        raise ValueError(f"Output length must be positive, got {output_length}")
    if output_length > input_length:
        raise ValueError(
            f"Output length ({output_length}) cannot exceed input length ({input_length})"
        )

    return input_length + output_length - 1


def key_seed(key: Sequence[int]) -> int:
    """Derive the hash seed from the key itself: ``sum(bit * (i + 1))``.

    Notes
    -----
    Both peers holding the same corrected key derive the same seed, so the
    matrix never crosses the channel. This is a demonstration construction,
    not a vetted randomness extractor.
    """
    return sum(int(bit) * (i + 1) for i, bit in enumerate(key))


def generate_toeplitz_seed(
    input_length: int,
    output_length: int,
    seed: int,
) -> List[int]:
    """Deterministic seed bits for an ``output_length x input_length`` matrix."""
    seed_length = compute_seed_length(input_length, output_length)
    rng = np.random.default_rng(seed)
    return [int(b) for b in rng.integers(0, 2, size=seed_length)]


def construct_toeplitz_matrix(
    seed_bits: Sequence[int],
    num_rows: int,
    num_cols: int,
) -> np.ndarray:
    """Construct Toeplitz matrix from seed.

    Parameters
    ----------
    seed_bits : Sequence[int]
        Seed bits (length = num_cols + num_rows - 1).
    num_rows : int
        Number of rows (output length).
    num_cols : int
        Number of columns (input length).

    Returns
    -------
    np.ndarray
        Toeplitz matrix of shape (num_rows, num_cols).

    Raises
    ------
    ValueError
        If seed length doesn't match dimensions.

    Notes
    -----
    First column: seed[0:num_rows]. First row: seed[num_rows-1:num_rows+num_cols-1].
    """
    expected_length = num_cols + num_rows - 1
    if len(seed_bits) != expected_length:
        raise ValueError(
            f"Seed length must be {expected_length}, got {len(seed_bits)}"
        )

    col = list(seed_bits[:num_rows])
    row_start = num_rows - 1
    row = list(seed_bits[row_start : row_start + num_cols])

    return toeplitz(col, row).astype(np.uint8)


def toeplitz_hash(key: Sequence[int], seed_bits: Sequence[int], output_length: int) -> List[int]:
    """Compute ``T x key mod 2`` for the matrix described by ``seed_bits``."""
    matrix = construct_toeplitz_matrix(seed_bits, output_length, len(key))
    key_arr = np.array(key, dtype=np.uint8)
    # int64 accumulation avoids uint8 overflow before the mod
    result = (matrix.astype(np.int64) @ key_arr.astype(np.int64)) % 2
    return result.astype(int).tolist()


def bits_to_bytes(bits: Sequence[int]) -> bytes:
    """Convert bit list to bytes (MSB first, zero-padded at the end)."""
    padded_length = ((len(bits) + 7) // 8) * 8
    padded_bits = list(bits) + [0] * (padded_length - len(bits))

    byte_list = []
    for i in range(0, padded_length, 8):
        byte_val = 0
        for j in range(8):
            byte_val = (byte_val << 1) | int(padded_bits[i + j])
        byte_list.append(byte_val)

    return bytes(byte_list)


def bits_to_hex(bits: Sequence[int]) -> str:
    """Hex rendering of a key, four bits per digit, zero-padded at the end."""
    digits = []
    for i in range(0, len(bits), 4):
        nibble = list(bits[i : i + 4]) + [0] * max(0, 4 - len(bits[i : i + 4]))
        value = 0
        for bit in nibble:
            value = (value << 1) | int(bit)
        digits.append(format(value, "x"))
    return "".join(digits)
