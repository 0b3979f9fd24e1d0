"""Block-parity error reconciliation.

A simplified relative of Cascade: the key is cut into fixed-size blocks, the
peers compare block parities, and each mismatching block gets one bit flipped.

Reference:
- Brassard & Salvail, "Secret-Key Reconciliation by Public Discussion" (1994)

The differences from Cascade:
- No permutation between passes, so every pass sees the same blocks
- No backtracking
- The flipped bit is the block midpoint unless binary search is enabled

Notes
-----
The midpoint flip only fixes an error when it happens to sit in the middle.
It is kept because both peers can apply it from parities alone, which is all
the state machine exchanges. ``bisect=True`` localizes errors exactly but
needs the partner's full key, so it serves simulations and comparisons.
"""

from dataclasses import dataclass
from typing import List, Sequence, Union

from qkd_handshake.core.base import ReconciliationStats
from qkd_handshake.core.constants import DEFAULT_NUM_PASSES
from qkd_handshake.core.exceptions import ShapeMismatchError
from qkd_handshake.reconciliation.utils import (
    block_midpoint,
    compute_block_size,
    compute_parity,
    split_into_blocks,
)
from qkd_handshake.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ParityReference:
    """Block parities a peer disclosed for its own key.

    Attributes
    ----------
    block_size : int
        Block size the parities were computed with.
    parities : List[int]
        One parity bit per block, in key order.
    """

    block_size: int
    parities: List[int]


Reference = Union[Sequence[int], ParityReference]


class BlockParityReconciler:
    """Bring a local key in line with a partner's key or block parities.

    Parameters
    ----------
    num_passes : int, optional
        Upper bound on passes (default 3).
    bisect : bool, optional
        Localize errors by binary search instead of flipping the block
        midpoint. Only valid when the partner's full key is supplied.
    """

    def __init__(self, num_passes: int = DEFAULT_NUM_PASSES, bisect: bool = False) -> None:
        if num_passes <= 0:
            raise ValueError(f"num_passes must be positive, got {num_passes}")
        self.num_passes = num_passes
        self.bisect = bisect

    @staticmethod
    def block_size(qber: float) -> int:
        return compute_block_size(qber)

    @staticmethod
    def block_parities(key: Sequence[int], block_size: int) -> List[int]:
        """Parities a peer discloses so the other side can reconcile."""
        return [compute_parity(key, block) for block in split_into_blocks(len(key), block_size)]

    def reconcile(
        self,
        local_key: Sequence[int],
        reference: Reference,
        estimated_qber: float,
    ) -> ReconciliationStats:
        """Correct ``local_key`` towards ``reference``.

        Parameters
        ----------
        local_key : Sequence[int]
            Key to correct. Not modified; the result holds a corrected copy.
        reference : Sequence[int] or ParityReference
            The partner's key, or the partner's block parities.
        estimated_qber : float
            Sample QBER, used to size the blocks when the partner's key is
            given. A ``ParityReference`` carries its own block size.

        Returns
        -------
        ReconciliationStats
            Error count, passes run, parity bits revealed and the corrected
            key.

        Raises
        ------
        ShapeMismatchError
            If the reference does not cover the local key.
        ValueError
            If ``bisect`` is set but only parities are available.
        """
        working = [int(b) for b in local_key]

        if isinstance(reference, ParityReference):
            if self.bisect:
                raise ValueError("Binary search needs the partner's full key")
            block_size = reference.block_size
            blocks = split_into_blocks(len(working), block_size)
            if len(reference.parities) != len(blocks):
                raise ShapeMismatchError(
                    f"Expected {len(blocks)} block parities, got {len(reference.parities)}"
                )
            partner_key = None
            reference_parities = [int(p) for p in reference.parities]
            initial_errors = 0
        else:
            if len(reference) != len(working):
                raise ShapeMismatchError(
                    f"Key lengths must match: {len(working)} != {len(reference)}"
                )
            block_size = self.block_size(estimated_qber)
            blocks = split_into_blocks(len(working), block_size)
            partner_key = [int(b) for b in reference]
            reference_parities = [compute_parity(partner_key, block) for block in blocks]
            initial_errors = sum(1 for a, b in zip(working, partner_key) if a != b)

        bits_revealed = 0
        passes_run = 0

        for pass_index in range(self.num_passes):
            passes_run += 1
            corrections = 0

            for block, reference_parity in zip(blocks, reference_parities):
                bits_revealed += 1
                if compute_parity(working, block) == reference_parity:
                    continue

                corrections += 1
                if partner_key is None and pass_index == 0:
                    # Lower bound: each mismatching block holds an odd error count
                    initial_errors += 1

                if self.bisect:
                    position, revealed = self._binary_search(working, partner_key, block)
                    bits_revealed += revealed
                else:
                    position = block_midpoint(block)
                working[position] ^= 1

            logger.debug(
                f"Pass {pass_index + 1}: {corrections} corrections "
                f"(block_size={block_size}, revealed={bits_revealed})"
            )
            if corrections == 0:
                break

        return ReconciliationStats(
            initial_error_count=initial_errors,
            parity_rounds_executed=passes_run,
            bits_revealed=bits_revealed,
            corrected_key=working,
            block_size=block_size,
        )

    @staticmethod
    def _binary_search(
        working: List[int],
        partner_key: List[int],
        block: List[int],
    ) -> "tuple[int, int]":
        """Find an erroneous position inside a block with odd parity difference.

        Returns
        -------
        tuple[int, int]
            The position to flip and the number of sub-block parities revealed.
        """
        current = block
        revealed = 0
        while len(current) > 1:
            half = current[: len(current) // 2]
            revealed += 1
            if compute_parity(working, half) != compute_parity(partner_key, half):
                current = half
            else:
                current = current[len(current) // 2 :]
        return current[0], revealed


def reconcile(
    local_key: Sequence[int],
    reference: Reference,
    estimated_qber: float,
    num_passes: int = DEFAULT_NUM_PASSES,
) -> ReconciliationStats:
    """Midpoint reconciliation with default settings."""
    return BlockParityReconciler(num_passes=num_passes).reconcile(
        local_key, reference, estimated_qber
    )
