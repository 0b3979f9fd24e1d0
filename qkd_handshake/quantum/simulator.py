"""Quantum channel simulator for BB84.

Prepared qubits are modeled classically as (bit, basis) pairs. Measuring in
the preparation basis returns the bit; measuring in the conjugate basis
returns a uniformly random bit. An intercept-resend eavesdropper measures in a
random basis and re-prepares what she saw, which is where the observable
error comes from.

Notes
-----
With Eve present and uniformly random bases the expected error rate on
Bob's sifted key is 1/2 (Eve picks the wrong basis) * 1/2 (Bob then reads a
random bit) = 25%.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from qkd_handshake.core.base import Basis
from qkd_handshake.core.exceptions import ShapeMismatchError


@dataclass
class TransmissionResult:
    """Outcome of sending a batch of qubits.

    Attributes
    ----------
    bob_outcomes : List[int]
        Bob's measured bits.
    eve_bases : Optional[List[Basis]]
        Eve's measurement bases, when an eavesdropper was present.
    eve_outcomes : Optional[List[int]]
        Eve's measured bits, when an eavesdropper was present.
    """

    bob_outcomes: List[int]
    eve_bases: Optional[List[Basis]] = None
    eve_outcomes: Optional[List[int]] = None


class ChannelSimulator:
    """Probabilistic prepare-and-measure channel.

    Parameters
    ----------
    rng : Optional[np.random.Generator]
        Source of randomness for bases, bits, Eve's choices and noise.
        A fresh unseeded generator is used when None.
    noise : float, optional
        Probability that the channel flips the transmitted bit before Bob
        measures it (default 0.0, a noiseless channel).
    """

    def __init__(
        self,
        rng: Optional[np.random.Generator] = None,
        noise: float = 0.0,
    ) -> None:
        if not 0 <= noise <= 0.5:
            raise ValueError(f"noise must be in [0, 0.5], got {noise}")
        self._rng = rng if rng is not None else np.random.default_rng()
        self._noise = noise

    @property
    def noise(self) -> float:
        return self._noise

    def random_bits(self, count: int) -> List[int]:
        """Draw ``count`` uniform random bits."""
        return [int(b) for b in self._rng.integers(0, 2, size=count)]

    def random_bases(self, count: int) -> List[Basis]:
        """Draw ``count`` uniform random bases."""
        return [Basis(int(b)) for b in self._rng.integers(0, 2, size=count)]

    def measure(self, bit: int, prepared_basis: Basis, measure_basis: Basis) -> int:
        """Measure a prepared state in ``measure_basis``."""
        if measure_basis == prepared_basis:
            return bit
        return int(self._rng.integers(0, 2))

    def transmit(
        self,
        alice_bits: Sequence[int],
        alice_bases: Sequence[Basis],
        bob_bases: Sequence[Basis],
        eve_enabled: bool = False,
    ) -> TransmissionResult:
        """Send Alice's qubits to Bob, optionally through Eve.

        Parameters
        ----------
        alice_bits : Sequence[int]
            Bits Alice encoded.
        alice_bases : Sequence[Basis]
            Bases Alice encoded in.
        bob_bases : Sequence[Basis]
            Bases Bob measures in.
        eve_enabled : bool, optional
            Insert an intercept-resend eavesdropper.

        Returns
        -------
        TransmissionResult
            Bob's outcomes, plus Eve's bases and outcomes when present.

        Raises
        ------
        ShapeMismatchError
            If the three input sequences differ in length.
        """
        if not len(alice_bits) == len(alice_bases) == len(bob_bases):
            raise ShapeMismatchError(
                f"Transmission inputs differ in length: bits={len(alice_bits)}, "
                f"alice_bases={len(alice_bases)}, bob_bases={len(bob_bases)}"
            )

        bob_outcomes: List[int] = []
        eve_bases: List[Basis] = []
        eve_outcomes: List[int] = []

        for bit, basis, bob_basis in zip(alice_bits, alice_bases, bob_bases):
            sent_bit, sent_basis = int(bit), Basis(basis)

            if eve_enabled:
                eve_basis = Basis(int(self._rng.integers(0, 2)))
                eve_bit = self.measure(sent_bit, sent_basis, eve_basis)
                eve_bases.append(eve_basis)
                eve_outcomes.append(eve_bit)
                # Eve resends what she measured
                sent_bit, sent_basis = eve_bit, eve_basis

            if self._noise > 0 and self._rng.random() < self._noise:
                sent_bit ^= 1

            bob_outcomes.append(self.measure(sent_bit, sent_basis, Basis(bob_basis)))

        if eve_enabled:
            return TransmissionResult(bob_outcomes, eve_bases, eve_outcomes)
        return TransmissionResult(bob_outcomes)
