"""Quantum layer: channel simulation and basis sifting."""

from qkd_handshake.quantum.sifting import extract, keep_ratio, sift
from qkd_handshake.quantum.simulator import ChannelSimulator, TransmissionResult

__all__ = [
    "ChannelSimulator",
    "TransmissionResult",
    "sift",
    "extract",
    "keep_ratio",
]
