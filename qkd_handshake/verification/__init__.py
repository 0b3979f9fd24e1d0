"""Final key confirmation.

Examples
--------
>>> from qkd_handshake.verification import get_committer
>>> committer = get_committer("sha256")
>>> key = [1, 0, 1, 1, 0, 0, 1, 0]
>>> committer.verify(key, committer.commit(key))
True
"""

from qkd_handshake.verification.commitment import (
    Committer,
    RollingCommitter,
    Sha256Committer,
    commit,
    get_committer,
    key_to_string,
    verify_commitment,
)

__all__ = [
    "Committer",
    "RollingCommitter",
    "Sha256Committer",
    "commit",
    "get_committer",
    "key_to_string",
    "verify_commitment",
]
