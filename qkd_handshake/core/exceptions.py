"""Exceptions raised by the BB84 handshake.

Every failure the protocol can detect derives from ``ProtocolError`` so the
state machine can converge on the aborted phase with a single handler.
Leaf components raise; only the state machine turns errors into aborts.
"""

from qkd_handshake.core.constants import REASON_QBER_TOO_HIGH


class ProtocolError(Exception):
    """Base class for all handshake failures."""


class ShapeMismatchError(ProtocolError):
    """Vectors that must be index-aligned have different lengths."""


class InsufficientLengthError(ProtocolError):
    """Not enough key material left for the requested operation."""


class QberExceededError(ProtocolError):
    """Measured QBER is above the configured abort threshold."""

    def __init__(self, qber: float, threshold: float) -> None:
        super().__init__(REASON_QBER_TOO_HIGH)
        self.qber = qber
        self.threshold = threshold


class CommitmentMismatchError(ProtocolError):
    """Final key digests of the two peers differ."""


class ChannelUnavailableError(ProtocolError):
    """A message could not be handed to the peer."""


class SecurityError(ProtocolError):
    """Malformed authenticated envelope."""


class IntegrityError(SecurityError):
    """Authentication tag of a received message did not verify."""
