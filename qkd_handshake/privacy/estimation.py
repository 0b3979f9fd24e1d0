"""QBER estimation.

Alice picks a random subset of sifted positions, both peers reveal their bits
at those positions, and the fraction of disagreements is the QBER estimate.
Revealed positions are then removed from both sifted keys.

Notes
-----
QBER estimation decides whether the run continues at all: eavesdropping
and channel noise both show up as excess error, and a run above threshold
must stop before any key is derived.
"""

from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy import stats

from qkd_handshake.core.constants import QBER_THRESHOLD
from qkd_handshake.core.exceptions import (
    InsufficientLengthError,
    QberExceededError,
    ShapeMismatchError,
)

# Default confidence level for intervals
DEFAULT_CONFIDENCE = 0.95


def select_sample(
    sifted_length: int,
    sample_size: int,
    rng: Optional[np.random.Generator] = None,
) -> List[int]:
    """Choose sample positions uniformly without replacement.

    Parameters
    ----------
    sifted_length : int
        Length of the sifted key.
    sample_size : int
        Number of positions to reveal.
    rng : Optional[np.random.Generator]
        Source of randomness. Unseeded when None.

    Returns
    -------
    List[int]
        Strictly increasing sample indices.

    Raises
    ------
    InsufficientLengthError
        If ``sample_size > sifted_length``.
    """
    if sample_size < 0:
        raise ValueError(f"Sample size must be non-negative, got {sample_size}")
    if sample_size > sifted_length:
        raise InsufficientLengthError(
            f"Sample size {sample_size} exceeds sifted key length {sifted_length}"
        )
    rng = rng if rng is not None else np.random.default_rng()
    chosen = rng.choice(sifted_length, size=sample_size, replace=False)
    return sorted(int(i) for i in chosen)


def validate_sample_indices(indices: Sequence[int], sifted_length: int) -> None:
    """Check that ``indices`` form a valid sample of a sifted key.

    Raises
    ------
    ValueError
        If the indices are not strictly increasing or are negative.
    InsufficientLengthError
        If an index is beyond the end of the sifted key.
    """
    previous = -1
    for index in indices:
        if index <= previous:
            raise ValueError(f"Sample indices must be strictly increasing, got {list(indices)}")
        previous = index
    if indices and indices[-1] >= sifted_length:
        raise InsufficientLengthError(
            f"Sample index {indices[-1]} out of range for sifted key of length {sifted_length}"
        )


def sample_bits(key: Sequence[int], indices: Sequence[int]) -> List[int]:
    """Bits of ``key`` at the sample positions."""
    return [int(key[i]) for i in indices]


def count_sample_errors(
    sample_a: Sequence[int],
    sample_b: Sequence[int],
) -> int:
    """Count differing positions of two samples.

    Raises
    ------
    ShapeMismatchError
        If the samples differ in length.
    """
    if len(sample_a) != len(sample_b):
        raise ShapeMismatchError(
            f"Sample lengths must match: {len(sample_a)} != {len(sample_b)}"
        )
    return sum(1 for a, b in zip(sample_a, sample_b) if a != b)


def estimate_qber(
    sample_a: Sequence[int],
    sample_b: Sequence[int],
) -> float:
    """Estimate QBER from two revealed samples.

    Parameters
    ----------
    sample_a : Sequence[int]
        One party's sample bits.
    sample_b : Sequence[int]
        The other party's bits at the same positions.

    Returns
    -------
    float
        ``errors / len(sample_a)``, or 0.0 for an empty sample.

    Raises
    ------
    ShapeMismatchError
        If the samples differ in length.
    """
    errors = count_sample_errors(sample_a, sample_b)
    if len(sample_a) == 0:
        return 0.0
    return errors / len(sample_a)


def is_qber_acceptable(qber: float, threshold: float = QBER_THRESHOLD) -> bool:
    """Accept iff ``qber <= threshold``."""
    return qber <= threshold


def check_qber(qber: float, threshold: float = QBER_THRESHOLD) -> None:
    """Raise ``QberExceededError`` when the QBER is above threshold."""
    if not is_qber_acceptable(qber, threshold):
        raise QberExceededError(qber, threshold)


def remove_sampled_bits(key: Sequence[int], indices: Sequence[int]) -> List[int]:
    """Drop the revealed sample positions from a sifted key."""
    revealed = set(indices)
    return [int(bit) for i, bit in enumerate(key) if i not in revealed]


def compute_confidence_interval(
    error_count: int,
    sample_size: int,
    confidence_level: float = DEFAULT_CONFIDENCE,
) -> Tuple[float, float]:
    """Clopper-Pearson confidence interval for a QBER estimate.

    Parameters
    ----------
    error_count : int
        Number of errors observed.
    sample_size : int
        Total number of bits sampled.
    confidence_level : float, optional
        Desired confidence level (default 0.95).

    Returns
    -------
    Tuple[float, float]
        Lower and upper bounds of the interval.

    Raises
    ------
    ValueError
        If parameters are invalid.

    Notes
    -----
    The Clopper-Pearson interval is exact and conservative: actual coverage
    is at least the nominal level.
    """
    if sample_size <= 0:
        raise ValueError(f"Sample size must be positive, got {sample_size}")
    if error_count < 0 or error_count > sample_size:
        raise ValueError(
            f"Error count must be in [0, {sample_size}], got {error_count}"
        )
    if confidence_level <= 0 or confidence_level >= 1:
        raise ValueError(
            f"Confidence level must be in (0, 1), got {confidence_level}"
        )

    alpha = 1 - confidence_level

    if error_count == 0:
        lower = 0.0
    else:
        lower = stats.beta.ppf(alpha / 2, error_count, sample_size - error_count + 1)

    if error_count == sample_size:
        upper = 1.0
    else:
        upper = stats.beta.ppf(1 - alpha / 2, error_count + 1, sample_size - error_count)

    return (float(lower), float(upper))
