"""Core package: data model, messages and the handshake state machine.

Only the dependency-free modules are re-exported here; import
``qkd_handshake.core.protocol`` and ``qkd_handshake.core.session`` directly
or through the top-level package.
"""

from qkd_handshake.core.base import (
    COMMITMENT_SCHEMES,
    TERMINAL_PHASES,
    AmplificationStats,
    Basis,
    Phase,
    ProtocolConfig,
    ReconciliationStats,
    Role,
    RoleState,
    RunSummary,
)
from qkd_handshake.core.constants import (
    DEFAULT_NUM_PASSES,
    DEFAULT_SECURITY_MARGIN,
    MIN_KEY_LENGTH,
    QBER_THRESHOLD,
)
from qkd_handshake.core.exceptions import (
    ChannelUnavailableError,
    CommitmentMismatchError,
    InsufficientLengthError,
    IntegrityError,
    ProtocolError,
    QberExceededError,
    SecurityError,
    ShapeMismatchError,
)

__all__ = [
    # Constants
    "QBER_THRESHOLD",
    "MIN_KEY_LENGTH",
    "DEFAULT_SECURITY_MARGIN",
    "DEFAULT_NUM_PASSES",
    "COMMITMENT_SCHEMES",
    "TERMINAL_PHASES",
    # Data model
    "Basis",
    "Role",
    "Phase",
    "ProtocolConfig",
    "ReconciliationStats",
    "AmplificationStats",
    "RunSummary",
    "RoleState",
    # Errors
    "ProtocolError",
    "ShapeMismatchError",
    "InsufficientLengthError",
    "QberExceededError",
    "CommitmentMismatchError",
    "ChannelUnavailableError",
    "SecurityError",
    "IntegrityError",
]
