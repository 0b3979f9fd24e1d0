"""Error reconciliation.

Example
-------
>>> from qkd_handshake.reconciliation import BlockParityReconciler
>>> stats = BlockParityReconciler().reconcile([1, 0, 1, 1], [1, 0, 1, 1], 0.0)
>>> stats.initial_error_count
0
"""

from qkd_handshake.reconciliation.block_parity import (
    BlockParityReconciler,
    ParityReference,
    reconcile,
)
from qkd_handshake.reconciliation.utils import (
    block_midpoint,
    compute_block_size,
    compute_parity,
    split_into_blocks,
)

__all__ = [
    "BlockParityReconciler",
    "ParityReference",
    "reconcile",
    "block_midpoint",
    "compute_block_size",
    "compute_parity",
    "split_into_blocks",
]
