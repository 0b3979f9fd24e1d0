"""Unit tests for the channel simulator and basis sifting."""

import numpy as np
import pytest

from qkd_handshake.core.base import Basis
from qkd_handshake.core.exceptions import ShapeMismatchError
from qkd_handshake.quantum.sifting import extract, keep_ratio, sift
from qkd_handshake.quantum.simulator import ChannelSimulator, TransmissionResult

R = Basis.RECTILINEAR
D = Basis.DIAGONAL


def _sifted_error_rate(simulator: ChannelSimulator, count: int, eve: bool) -> float:
    alice_bits = simulator.random_bits(count)
    alice_bases = simulator.random_bases(count)
    bob_bases = simulator.random_bases(count)
    result = simulator.transmit(alice_bits, alice_bases, bob_bases, eve_enabled=eve)
    mask = sift(alice_bases, bob_bases)
    alice_key = extract(alice_bits, mask)
    bob_key = extract(result.bob_outcomes, mask)
    return sum(a != b for a, b in zip(alice_key, bob_key)) / len(alice_key)


# =============================================================================
# ChannelSimulator
# =============================================================================


class TestChannelSimulator:
    """Test suite for the prepare-and-measure channel."""

    def test_random_bits_are_binary(self, rng):
        bits = ChannelSimulator(rng).random_bits(500)
        assert len(bits) == 500
        assert set(bits) <= {0, 1}

    def test_random_bases_are_basis_values(self, rng):
        bases = ChannelSimulator(rng).random_bases(100)
        assert all(isinstance(b, Basis) for b in bases)

    def test_measure_matching_basis_returns_bit(self, rng):
        simulator = ChannelSimulator(rng)
        for _ in range(50):
            assert simulator.measure(1, D, D) == 1
            assert simulator.measure(0, R, R) == 0

    def test_measure_conjugate_basis_is_random(self, rng):
        simulator = ChannelSimulator(rng)
        outcomes = [simulator.measure(1, R, D) for _ in range(2000)]
        assert 0.45 < sum(outcomes) / len(outcomes) < 0.55

    def test_shape_mismatch(self, rng):
        simulator = ChannelSimulator(rng)
        with pytest.raises(ShapeMismatchError):
            simulator.transmit([0, 1], [R, D], [R])

    def test_noiseless_matching_bases_agree(self, rng, scenario_one):
        result = ChannelSimulator(rng).transmit(
            scenario_one["alice_bits"],
            scenario_one["alice_bases"],
            scenario_one["bob_bases"],
        )
        bob_sifted = extract(result.bob_outcomes, scenario_one["keep_mask"])
        assert bob_sifted == scenario_one["alice_sifted"]

    def test_no_eve_has_no_eve_record(self, rng):
        result = ChannelSimulator(rng).transmit([0, 1], [R, D], [R, D])
        assert isinstance(result, TransmissionResult)
        assert result.eve_bases is None
        assert result.eve_outcomes is None

    def test_eve_records_her_measurements(self, rng):
        result = ChannelSimulator(rng).transmit([0] * 20, [R] * 20, [R] * 20, eve_enabled=True)
        assert len(result.eve_bases) == 20
        assert len(result.eve_outcomes) == 20
        # Wherever Eve guessed the basis she read the bit exactly
        for basis, bit in zip(result.eve_bases, result.eve_outcomes):
            if basis == R:
                assert bit == 0

    def test_no_eve_zero_error_rate(self, rng):
        assert _sifted_error_rate(ChannelSimulator(rng), 2000, eve=False) == 0.0

    def test_eve_error_rate_near_quarter(self, rng):
        qber = _sifted_error_rate(ChannelSimulator(rng), 4000, eve=True)
        assert 0.2 < qber < 0.3

    def test_noise_error_rate(self, rng):
        qber = _sifted_error_rate(ChannelSimulator(rng, noise=0.1), 4000, eve=False)
        assert 0.07 < qber < 0.13

    def test_invalid_noise(self):
        with pytest.raises(ValueError):
            ChannelSimulator(noise=0.7)

    def test_seeded_runs_are_reproducible(self):
        first = ChannelSimulator(np.random.default_rng(5))
        second = ChannelSimulator(np.random.default_rng(5))
        assert first.random_bits(64) == second.random_bits(64)
        assert first.random_bases(64) == second.random_bases(64)


# =============================================================================
# Sifting
# =============================================================================


class TestSifting:
    """Test suite for keep-mask computation and extraction."""

    def test_scenario_one_mask(self, scenario_one):
        mask = sift(scenario_one["alice_bases"], scenario_one["bob_bases"])
        assert mask == scenario_one["keep_mask"]

    def test_scenario_one_extraction(self, scenario_one):
        sifted = extract(scenario_one["alice_bits"], scenario_one["keep_mask"])
        assert sifted == scenario_one["alice_sifted"]

    def test_sift_accepts_plain_ints(self):
        assert sift([0, 1, 1], [0, 0, 1]) == [True, False, True]

    def test_sift_length_mismatch(self):
        with pytest.raises(ShapeMismatchError):
            sift([R, D], [R])

    def test_extract_length_mismatch(self):
        with pytest.raises(ShapeMismatchError):
            extract([1, 0, 1], [True, False])

    def test_all_true_mask_is_identity(self, rng):
        bits = ChannelSimulator(rng).random_bits(64)
        assert extract(bits, [True] * 64) == bits

    def test_all_false_mask_is_empty(self):
        assert extract([1, 0, 1], [False] * 3) == []

    def test_keep_ratio_near_half(self, rng):
        simulator = ChannelSimulator(rng)
        mask = sift(simulator.random_bases(10000), simulator.random_bases(10000))
        assert 0.47 < keep_ratio(mask) < 0.53

    def test_keep_ratio_empty(self):
        assert keep_ratio([]) == 0.0
