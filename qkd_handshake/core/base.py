"""Data model shared by the protocol components.

Notes
-----
``RoleState`` is owned by exactly one ``ProtocolStateMachine``. Anything
sent to the peer is copied into a message first, never passed by reference.
"""

import enum
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional

from qkd_handshake.core.constants import (
    DEFAULT_CHANNEL_NOISE,
    DEFAULT_COMMITMENT,
    DEFAULT_NUM_PASSES,
    DEFAULT_QUBIT_COUNT,
    DEFAULT_SAMPLE_SIZE,
    DEFAULT_SECURITY_MARGIN,
    QBER_THRESHOLD,
)

COMMITMENT_SCHEMES = ("rolling", "sha256")


class Basis(enum.IntEnum):
    """Measurement basis. Serialized over the wire as its integer value."""

    RECTILINEAR = 0
    DIAGONAL = 1


class Role(str, enum.Enum):
    """Which side of the handshake a state machine plays."""

    ALICE = "alice"
    BOB = "bob"


class Phase(str, enum.Enum):
    """Protocol phases in the order a successful run visits them."""

    IDLE = "idle"
    PREPARED = "prepared"
    MEASURED = "measured"
    SIFTING = "sifting"
    QBER_CHECK = "qber_check"
    ERROR_CORRECTION = "error_correction"
    PRIVACY_AMPLIFICATION = "privacy_amplification"
    SUCCESS = "success"
    ABORTED = "aborted"
    CHAT = "chat"


TERMINAL_PHASES = frozenset({Phase.SUCCESS, Phase.ABORTED, Phase.CHAT})


@dataclass
class ProtocolConfig:
    """Parameters of one handshake run.

    Attributes
    ----------
    qubit_count : int
        Number of qubits Alice prepares.
    sample_size : int
        Sifted bits revealed for QBER estimation. Must not exceed the
        expected sifted length ``qubit_count // 2``.
    qber_threshold : float
        Abort threshold, in (0, 1).
    eve_enabled : bool
        Whether an intercept-resend eavesdropper sits on the channel.
    security_margin : int
        Bits subtracted from the amplified key length.
    noise : float
        Probability that the channel flips a transmitted bit.
    num_passes : int
        Upper bound on reconciliation passes.
    commitment : str
        Digest scheme for key confirmation ("rolling" or "sha256").
    """

    qubit_count: int = DEFAULT_QUBIT_COUNT
    sample_size: int = DEFAULT_SAMPLE_SIZE
    qber_threshold: float = QBER_THRESHOLD
    eve_enabled: bool = False
    security_margin: int = DEFAULT_SECURITY_MARGIN
    noise: float = DEFAULT_CHANNEL_NOISE
    num_passes: int = DEFAULT_NUM_PASSES
    commitment: str = DEFAULT_COMMITMENT

    def __post_init__(self) -> None:
        if self.qubit_count <= 0:
            raise ValueError(f"qubit_count must be positive, got {self.qubit_count}")
        if self.sample_size <= 0:
            raise ValueError(f"sample_size must be positive, got {self.sample_size}")
        if self.sample_size > self.qubit_count // 2:
            raise ValueError(
                f"sample_size ({self.sample_size}) exceeds expected sifted length "
                f"({self.qubit_count // 2})"
            )
        if not 0 < self.qber_threshold < 1:
            raise ValueError(f"qber_threshold must be in (0, 1), got {self.qber_threshold}")
        if self.security_margin < 0:
            raise ValueError(
                f"security_margin must be non-negative, got {self.security_margin}"
            )
        if not 0 <= self.noise <= 0.5:
            raise ValueError(f"noise must be in [0, 0.5], got {self.noise}")
        if self.num_passes <= 0:
            raise ValueError(f"num_passes must be positive, got {self.num_passes}")
        if self.commitment not in COMMITMENT_SCHEMES:
            raise ValueError(
                f"commitment must be one of {COMMITMENT_SCHEMES}, got {self.commitment!r}"
            )

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "ProtocolConfig":
        """Build a config from a scenario mapping.

        Raises
        ------
        ValueError
            If the mapping contains unknown keys.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ValueError(f"Unknown protocol options: {sorted(unknown)}")
        return cls(**dict(values))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ReconciliationStats:
    """Outcome of block-parity reconciliation.

    Attributes
    ----------
    initial_error_count : int
        Differing bits before correction (diagnostic only). When only the
        partner's parities are known this is the number of mismatching blocks
        in the first pass, which undercounts errors sharing a block.
    parity_rounds_executed : int
        Passes actually run.
    bits_revealed : int
        Parity bits disclosed over the public channel.
    corrected_key : List[int]
        Working key after correction.
    block_size : int
        Block size used by every pass.
    """

    initial_error_count: int
    parity_rounds_executed: int
    bits_revealed: int
    corrected_key: List[int] = field(default_factory=list)
    block_size: int = 0

    def to_payload(self) -> Dict[str, Any]:
        return {
            "initial_error_count": self.initial_error_count,
            "parity_rounds_executed": self.parity_rounds_executed,
            "bits_revealed": self.bits_revealed,
            "block_size": self.block_size,
            "corrected_key": list(self.corrected_key),
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ReconciliationStats":
        return cls(
            initial_error_count=int(payload["initial_error_count"]),
            parity_rounds_executed=int(payload["parity_rounds_executed"]),
            bits_revealed=int(payload["bits_revealed"]),
            corrected_key=[int(b) for b in payload["corrected_key"]],
            block_size=int(payload.get("block_size", 0)),
        )


@dataclass
class AmplificationStats:
    """Input/output sizes of privacy amplification."""

    input_length: int
    output_length: int
    compression_ratio: float


@dataclass
class RunSummary:
    """Condensed view of one run, for reports and the CLI."""

    raw_length: int
    sifted_length: int
    sample_size: int
    qber: Optional[float]
    threshold: float
    aborted: bool
    ec_stats: Optional[ReconciliationStats] = None
    pa_stats: Optional[AmplificationStats] = None
    final_key_length: int = 0
    abort_reason: Optional[str] = None


@dataclass
class RoleState:
    """Mutable per-role protocol record.

    Alice fills ``bits``/``bases``; Bob fills ``bases``/``outcomes`` and,
    while the photons are in flight, keeps Alice's prepared states in
    ``incoming_bits``/``incoming_bases``.
    """

    phase: Phase = Phase.IDLE
    run_id: Optional[str] = None
    bits: List[int] = field(default_factory=list)
    bases: List[Basis] = field(default_factory=list)
    outcomes: List[int] = field(default_factory=list)
    incoming_bits: List[int] = field(default_factory=list)
    incoming_bases: List[Basis] = field(default_factory=list)
    eve_bases: Optional[List[Basis]] = None
    eve_outcomes: Optional[List[int]] = None
    keep_mask: List[bool] = field(default_factory=list)
    sifted_key: List[int] = field(default_factory=list)
    sifted_length: int = 0
    sample_indices: List[int] = field(default_factory=list)
    qber: Optional[float] = None
    ec_stats: Optional[ReconciliationStats] = None
    pa_stats: Optional[AmplificationStats] = None
    final_key: List[int] = field(default_factory=list)
    abort_reason: Optional[str] = None
    peer_ready: bool = False
    bases_sent: bool = False
    peer_parities: Optional[List[int]] = None
    peer_block_size: Optional[int] = None
    commitment_sent: bool = False
