"""Final key commitment.

After amplification Alice publishes a digest of her key and Bob checks it
against his own. Matching digests confirm that reconciliation converged.

Notes
-----
``RollingCommitter`` reproduces the demonstration checksum: a 32-bit
``h * 31 + c`` rolling hash over the key's ``'0'``/``'1'`` characters. It has
no cryptographic strength and leaks structure about the key.
``Sha256Committer`` is the drop-in replacement for anything beyond a demo.
"""

import abc
import hashlib
import hmac
from typing import Dict, Sequence, Type

from qkd_handshake.core.constants import DEFAULT_COMMITMENT


def key_to_string(key: Sequence[int]) -> str:
    """Render a key as its ``'0'``/``'1'`` string."""
    return "".join("1" if int(bit) else "0" for bit in key)


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


class Committer(abc.ABC):
    """Digest scheme used for key confirmation."""

    name = ""

    @abc.abstractmethod
    def commit(self, key: Sequence[int]) -> str:
        """Digest of ``key`` as an ASCII string."""

    def verify(self, key: Sequence[int], digest: str) -> bool:
        """Recompute the digest of ``key`` and compare it in constant time.

        Digests that are not ASCII strings never match.
        """
        if not isinstance(digest, str) or not digest.isascii():
            return False
        return hmac.compare_digest(self.commit(key), digest)


class RollingCommitter(Committer):
    """32-bit rolling multiply-shift checksum.

    Examples
    --------
    >>> RollingCommitter().commit([1])
    '31'
    >>> RollingCommitter().commit([])
    '0'
    """

    name = "rolling"

    def commit(self, key: Sequence[int]) -> str:
        h = 0
        for char in key_to_string(key):
            h = _to_int32((h << 5) - h + ord(char))
        # Signed hex, as a negative int renders with a leading '-'
        return format(h, "x")


class Sha256Committer(Committer):
    """SHA-256 hex digest of the key string."""

    name = "sha256"

    def commit(self, key: Sequence[int]) -> str:
        return hashlib.sha256(key_to_string(key).encode("ascii")).hexdigest()


_COMMITTERS: Dict[str, Type[Committer]] = {
    RollingCommitter.name: RollingCommitter,
    Sha256Committer.name: Sha256Committer,
}


def get_committer(name: str = DEFAULT_COMMITMENT) -> Committer:
    """Instantiate a committer by scheme name.

    Raises
    ------
    ValueError
        If the scheme is unknown.
    """
    try:
        return _COMMITTERS[name]()
    except KeyError:
        raise ValueError(
            f"Unknown commitment scheme {name!r}, expected one of {sorted(_COMMITTERS)}"
        ) from None


def commit(key: Sequence[int]) -> str:
    """Digest of ``key`` under the default scheme."""
    return get_committer().commit(key)


def verify_commitment(key: Sequence[int], digest: str) -> bool:
    """Check ``key`` against a digest produced by ``commit``."""
    return get_committer().verify(key, digest)
