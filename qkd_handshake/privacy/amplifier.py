"""Privacy amplification using Toeplitz hashing.

This module implements privacy amplification, the final step that converts a
reconciled but partially leaked key into a shorter key about which an
eavesdropper has negligible information.

Notes
-----
The output length is bounded by the secrecy left after accounting for the
measured QBER, every disclosed parity bit and a fixed security margin (see
``compute_output_length``). The hash matrix is seeded from the key itself so
both peers derive it locally; a production variant must replace this with a
shared random seed for a proper 2-universal family.
"""

from typing import List, Sequence, Tuple

from qkd_handshake.core.base import AmplificationStats
from qkd_handshake.core.constants import DEFAULT_SECURITY_MARGIN
from qkd_handshake.privacy.entropy import compute_output_length
from qkd_handshake.privacy.utils import (
    generate_toeplitz_seed,
    key_seed,
    toeplitz_hash,
)
from qkd_handshake.utils.logging import get_logger

logger = get_logger(__name__)


class PrivacyAmplifier:
    """Toeplitz-style privacy amplification.

    Parameters
    ----------
    security_margin : int, optional
        Bits sacrificed on top of the entropy bound (default 64).
    """

    def __init__(self, security_margin: int = DEFAULT_SECURITY_MARGIN) -> None:
        if security_margin < 0:
            raise ValueError(
                f"Security margin must be non-negative, got {security_margin}"
            )
        self.security_margin = security_margin

    def compute_output_length(
        self,
        input_length: int,
        qber: float,
        bits_revealed: int,
    ) -> int:
        """Output key length for the configured security margin."""
        return compute_output_length(
            input_length=input_length,
            qber=qber,
            bits_revealed=bits_revealed,
            security_margin=self.security_margin,
        )

    def hash_key(self, key: Sequence[int], output_length: int) -> List[int]:
        """Compress ``key`` to ``output_length`` bits.

        Each output bit is the XOR of a pseudo-random subset of input bits,
        selected by a Toeplitz matrix seeded from the key.
        """
        seed_bits = generate_toeplitz_seed(len(key), output_length, key_seed(key))
        return toeplitz_hash(key, seed_bits, output_length)

    def amplify(
        self,
        key: Sequence[int],
        estimated_qber: float,
        bits_revealed: int,
    ) -> Tuple[AmplificationStats, List[int]]:
        """Amplify a reconciled key.

        Parameters
        ----------
        key : Sequence[int]
            Reconciled key bits.
        estimated_qber : float
            QBER measured on the sample.
        bits_revealed : int
            Parity bits disclosed during reconciliation.

        Returns
        -------
        Tuple[AmplificationStats, List[int]]
            Size statistics and the amplified key.

        Raises
        ------
        InsufficientLengthError
            If the key is shorter than the minimum output length.
        """
        output_length = self.compute_output_length(len(key), estimated_qber, bits_revealed)
        output_key = self.hash_key(key, output_length)

        stats = AmplificationStats(
            input_length=len(key),
            output_length=output_length,
            compression_ratio=output_length / len(key),
        )
        logger.debug(
            f"Amplified {stats.input_length} -> {stats.output_length} bits "
            f"(qber={estimated_qber:.4f}, revealed={bits_revealed}, "
            f"margin={self.security_margin})"
        )
        return stats, output_key


def amplify(
    key: Sequence[int],
    estimated_qber: float,
    bits_revealed: int,
    security_margin: int = DEFAULT_SECURITY_MARGIN,
) -> Tuple[AmplificationStats, List[int]]:
    """Convenience wrapper around ``PrivacyAmplifier.amplify``."""
    return PrivacyAmplifier(security_margin=security_margin).amplify(
        key, estimated_qber, bits_revealed
    )
