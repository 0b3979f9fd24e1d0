"""Messages exchanged between the two state machines.

Every message travels as ``{"type": ..., "run_id": ..., "payload": {...}}``.
The ``run_id`` ties a message to one handshake so that late messages from an
aborted or reset run are recognized and dropped.
"""

import numbers
from dataclasses import dataclass, fields
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Sequence, Type

from qkd_handshake.core.base import Basis
from qkd_handshake.core.constants import (
    MSG_ACCEPT_OR_ABORT,
    MSG_ANNOUNCE_BASES,
    MSG_ERROR_CORRECTION,
    MSG_ERROR_CORRECTION_STATS,
    MSG_FINAL_KEY_COMMITMENT,
    MSG_FINAL_KEY_CONFIRMED,
    MSG_MEASURED,
    MSG_PREPARED,
    MSG_QBER_REQUEST,
    MSG_QBER_RESPONSE,
    MSG_SIFTING_RESULT,
)


@dataclass
class ProtocolMessage:
    """Common header of all protocol messages."""

    TYPE: ClassVar[str] = ""

    run_id: str

    def payload(self) -> Dict[str, Any]:
        return {
            f.name: _to_wire(getattr(self, f.name))
            for f in fields(self)
            if f.name != "run_id"
        }


def _to_wire(value: Any) -> Any:
    if isinstance(value, list):
        return [_to_wire(v) for v in value]
    if isinstance(value, dict):
        return {k: _to_wire(v) for k, v in value.items()}
    if isinstance(value, Basis):
        return int(value)
    return value


# Field checks. Each raises ValueError on a badly typed value.


def _integer(name: str, value: Any, minimum: int = 0) -> int:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return int(value)


def _sequence(name: str, values: Any) -> Sequence[Any]:
    if not isinstance(values, (list, tuple)):
        raise ValueError(f"{name} must be a list, got {type(values).__name__}")
    return values


def _integers(name: str, values: Any) -> List[int]:
    return [_integer(name, v) for v in _sequence(name, values)]


def _bits(name: str, values: Any) -> List[int]:
    bits = _integers(name, values)
    if any(b > 1 for b in bits):
        raise ValueError(f"{name} must contain only 0 and 1")
    return bits


def _bases(name: str, values: Any) -> List[Basis]:
    return [Basis(_integer(name, v)) for v in _sequence(name, values)]


def _flag(name: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"{name} must be a boolean, got {value!r}")
    return value


def _optional_rate(name: str, value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ValueError(f"{name} must be a number, got {value!r}")
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be in [0, 1], got {value}")
    return float(value)


def _ascii(name: str, value: Any) -> str:
    if not isinstance(value, str) or not value.isascii():
        raise ValueError(f"{name} must be an ASCII string, got {value!r}")
    return value


@dataclass
class Prepared(ProtocolMessage):
    """Alice has prepared qubits. Carries the in-flight states for the simulator."""

    TYPE: ClassVar[str] = MSG_PREPARED

    num_qubits: int
    alice_bits: List[int]
    alice_bases: List[Basis]

    def __post_init__(self) -> None:
        self.num_qubits = _integer("num_qubits", self.num_qubits)
        self.alice_bits = _bits("alice_bits", self.alice_bits)
        self.alice_bases = _bases("alice_bases", self.alice_bases)


@dataclass
class Measured(ProtocolMessage):
    TYPE: ClassVar[str] = MSG_MEASURED

    num_qubits: int

    def __post_init__(self) -> None:
        self.num_qubits = _integer("num_qubits", self.num_qubits)


@dataclass
class AnnounceBases(ProtocolMessage):
    TYPE: ClassVar[str] = MSG_ANNOUNCE_BASES

    bases: List[Basis]

    def __post_init__(self) -> None:
        self.bases = _bases("bases", self.bases)


@dataclass
class SiftingResult(ProtocolMessage):
    TYPE: ClassVar[str] = MSG_SIFTING_RESULT

    keep_mask: List[bool]

    def __post_init__(self) -> None:
        self.keep_mask = [_flag("keep_mask", k) for k in _sequence("keep_mask", self.keep_mask)]


@dataclass
class QberRequest(ProtocolMessage):
    """Sample positions chosen by Alice together with her bits there."""

    TYPE: ClassVar[str] = MSG_QBER_REQUEST

    sample_indices: List[int]
    sample_bits: List[int]

    def __post_init__(self) -> None:
        self.sample_indices = _integers("sample_indices", self.sample_indices)
        self.sample_bits = _bits("sample_bits", self.sample_bits)
        if len(self.sample_indices) != len(self.sample_bits):
            raise ValueError(
                f"{len(self.sample_indices)} sample indices but {len(self.sample_bits)} bits"
            )


@dataclass
class QberResponse(ProtocolMessage):
    TYPE: ClassVar[str] = MSG_QBER_RESPONSE

    sample_bits: List[int]

    def __post_init__(self) -> None:
        self.sample_bits = _bits("sample_bits", self.sample_bits)


@dataclass
class AcceptOrAbort(ProtocolMessage):
    """QBER verdict. ``accepted=False`` tells the peer to abort."""

    TYPE: ClassVar[str] = MSG_ACCEPT_OR_ABORT

    accepted: bool
    qber: Optional[float]
    reason: Optional[str] = None

    def __post_init__(self) -> None:
        self.accepted = _flag("accepted", self.accepted)
        self.qber = _optional_rate("qber", self.qber)
        if self.reason is not None and not isinstance(self.reason, str):
            raise ValueError(f"reason must be a string, got {self.reason!r}")


@dataclass
class ErrorCorrection(ProtocolMessage):
    """Block parities of Bob's key."""

    TYPE: ClassVar[str] = MSG_ERROR_CORRECTION

    block_size: int
    parity_bits: List[int]

    def __post_init__(self) -> None:
        self.block_size = _integer("block_size", self.block_size, minimum=1)
        self.parity_bits = _bits("parity_bits", self.parity_bits)


@dataclass
class ErrorCorrectionStats(ProtocolMessage):
    """Alice's reconciliation outcome, including her corrected key."""

    TYPE: ClassVar[str] = MSG_ERROR_CORRECTION_STATS

    stats: Dict[str, Any]

    def __post_init__(self) -> None:
        if not isinstance(self.stats, Mapping):
            raise ValueError(f"stats must be a mapping, got {type(self.stats).__name__}")
        stats = dict(self.stats)
        for key in ("initial_error_count", "parity_rounds_executed", "bits_revealed"):
            if key not in stats:
                raise ValueError(f"stats is missing '{key}'")
            stats[key] = _integer(f"stats.{key}", stats[key])
        if "corrected_key" not in stats:
            raise ValueError("stats is missing 'corrected_key'")
        stats["corrected_key"] = _bits("stats.corrected_key", stats["corrected_key"])
        if "block_size" in stats:
            stats["block_size"] = _integer("stats.block_size", stats["block_size"])
        self.stats = stats


@dataclass
class FinalKeyCommitment(ProtocolMessage):
    TYPE: ClassVar[str] = MSG_FINAL_KEY_COMMITMENT

    digest: str

    def __post_init__(self) -> None:
        self.digest = _ascii("digest", self.digest)


@dataclass
class FinalKeyConfirmed(ProtocolMessage):
    TYPE: ClassVar[str] = MSG_FINAL_KEY_CONFIRMED

    match: bool

    def __post_init__(self) -> None:
        self.match = _flag("match", self.match)


MESSAGE_TYPES: Dict[str, Type[ProtocolMessage]] = {
    cls.TYPE: cls
    for cls in (
        Prepared,
        Measured,
        AnnounceBases,
        SiftingResult,
        QberRequest,
        QberResponse,
        AcceptOrAbort,
        ErrorCorrection,
        ErrorCorrectionStats,
        FinalKeyCommitment,
        FinalKeyConfirmed,
    )
}


def encode_message(message: ProtocolMessage) -> Dict[str, Any]:
    """Wire form of a message: plain JSON-able dict."""
    return {
        "type": message.TYPE,
        "run_id": message.run_id,
        "payload": message.payload(),
    }


def decode_message(data: Mapping[str, Any]) -> ProtocolMessage:
    """Parse the wire form produced by ``encode_message``.

    Raises
    ------
    ValueError
        If the type is unknown or the header or payload is malformed.
    """
    message_type = data.get("type")
    if message_type not in MESSAGE_TYPES:
        raise ValueError(f"Unknown message type: {message_type!r}")
    run_id = data.get("run_id")
    if not isinstance(run_id, str):
        raise ValueError(f"Message '{message_type}' has no run id")
    payload = data.get("payload", {})
    if not isinstance(payload, Mapping):
        raise ValueError(f"Payload of '{message_type}' must be a mapping")

    try:
        return MESSAGE_TYPES[message_type](run_id=run_id, **payload)
    except TypeError as e:
        raise ValueError(f"Malformed payload for '{message_type}': {e}") from e
