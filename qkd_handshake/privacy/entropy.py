"""Binary entropy and final key length.

Notes
-----
The binary entropy function h(p) quantifies uncertainty:
- h(0) = h(1) = 0 (no uncertainty)
- h(0.5) = 1 (maximum uncertainty for a binary variable)

The amplified key keeps ``n * (1 - h(QBER))`` bits of secrecy, minus every
parity bit disclosed during reconciliation and a fixed security margin.
"""

import math

import numpy as np

from qkd_handshake.core.constants import DEFAULT_SECURITY_MARGIN, MIN_KEY_LENGTH
from qkd_handshake.core.exceptions import InsufficientLengthError


def binary_entropy(p: float) -> float:
    """Compute binary entropy function h(p).

    Parameters
    ----------
    p : float
        Probability.

    Returns
    -------
    float
        0 if ``p <= 0`` (or ``p >= 1``), else ``-p*log2(p) - (1-p)*log2(1-p)``.

    Examples
    --------
    >>> binary_entropy(0.5)
    1.0
    >>> binary_entropy(0.0)
    0.0
    """
    if p <= 0 or p >= 1:
        return 0.0
    return float(-p * np.log2(p) - (1 - p) * np.log2(1 - p))


def secrecy_capacity(qber: float) -> float:
    """Secret bits per sifted bit, ``1 - h(qber)``; 0 once qber reaches 0.5."""
    if qber >= 0.5:
        return 0.0
    return 1.0 - binary_entropy(qber)


def compute_output_length(
    input_length: int,
    qber: float,
    bits_revealed: int,
    security_margin: int = DEFAULT_SECURITY_MARGIN,
) -> int:
    """Length of the privacy-amplified key.

    Parameters
    ----------
    input_length : int
        Length of the reconciled key.
    qber : float
        Estimated QBER.
    bits_revealed : int
        Parity bits disclosed during reconciliation.
    security_margin : int, optional
        Extra bits sacrificed (default 64).

    Returns
    -------
    int
        ``max(32, floor(n * (1 - h(qber)) - bits_revealed - security_margin))``,
        never more than ``input_length``.

    Raises
    ------
    InsufficientLengthError
        If the input is shorter than the 32-bit floor.
    ValueError
        If ``bits_revealed`` or ``security_margin`` is negative.
    """
    if bits_revealed < 0:
        raise ValueError(f"bits_revealed must be non-negative, got {bits_revealed}")
    if security_margin < 0:
        raise ValueError(f"security_margin must be non-negative, got {security_margin}")
    if input_length < MIN_KEY_LENGTH:
        raise InsufficientLengthError(
            f"Reconciled key of {input_length} bits is below the {MIN_KEY_LENGTH}-bit minimum"
        )

    # secrecy_capacity saturates at 0 past qber = 0.5, keeping the length monotone
    available = input_length * secrecy_capacity(qber)
    raw_length = math.floor(available - bits_revealed - security_margin)
    return min(input_length, max(MIN_KEY_LENGTH, raw_length))
