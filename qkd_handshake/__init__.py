"""BB84 quantum key distribution handshake engine.

Two independent peers agree on a secret key over a simulated quantum channel
and an authenticated classical message channel, detecting eavesdropping
through the observed error rate.
"""

from qkd_handshake.core.base import Basis, Phase, ProtocolConfig, Role
from qkd_handshake.core.exceptions import ProtocolError
from qkd_handshake.core.protocol import LocalAction, ProtocolStateMachine
from qkd_handshake.core.session import HandshakeSession, run_handshake

__version__ = "0.1.0"

__all__ = [
    "Basis",
    "Phase",
    "ProtocolConfig",
    "Role",
    "ProtocolError",
    "LocalAction",
    "ProtocolStateMachine",
    "HandshakeSession",
    "run_handshake",
]
