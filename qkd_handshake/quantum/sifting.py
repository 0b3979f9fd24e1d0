"""Basis sifting.

Positions where Alice and Bob used different bases carry no correlation and
are discarded. Both peers derive the same keep-mask from the two public basis
sequences.
"""

from typing import List, Sequence

from qkd_handshake.core.base import Basis
from qkd_handshake.core.exceptions import ShapeMismatchError


def sift(bases_a: Sequence[Basis], bases_b: Sequence[Basis]) -> List[bool]:
    """Compute the keep-mask of two basis sequences.

    Parameters
    ----------
    bases_a : Sequence[Basis]
        First party's bases.
    bases_b : Sequence[Basis]
        Second party's bases.

    Returns
    -------
    List[bool]
        ``keep[i]`` is True iff ``bases_a[i] == bases_b[i]``.

    Raises
    ------
    ShapeMismatchError
        If the sequences differ in length.

    Examples
    --------
    >>> R, D = Basis.RECTILINEAR, Basis.DIAGONAL
    >>> sift([R, D, R], [R, R, R])
    [True, False, True]
    """
    if len(bases_a) != len(bases_b):
        raise ShapeMismatchError(
            f"Basis sequences differ in length: {len(bases_a)} != {len(bases_b)}"
        )
    return [Basis(a) == Basis(b) for a, b in zip(bases_a, bases_b)]


def extract(bits: Sequence[int], mask: Sequence[bool]) -> List[int]:
    """Keep the bits at positions where ``mask`` is True, in order.

    Raises
    ------
    ShapeMismatchError
        If ``bits`` and ``mask`` differ in length.
    """
    if len(bits) != len(mask):
        raise ShapeMismatchError(
            f"Bits and keep-mask differ in length: {len(bits)} != {len(mask)}"
        )
    return [int(bit) for bit, keep in zip(bits, mask) if keep]


def keep_ratio(mask: Sequence[bool]) -> float:
    """Fraction of kept positions (0.0 for an empty mask)."""
    if not mask:
        return 0.0
    return sum(1 for keep in mask if keep) / len(mask)
