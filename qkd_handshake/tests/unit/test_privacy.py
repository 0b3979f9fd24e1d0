"""Unit tests for QBER estimation and privacy amplification.

Covers sampling and the threshold decision, binary entropy and the output
length bound, the Toeplitz utilities and the amplifier itself.
"""

import random

import numpy as np
import pytest

from qkd_handshake.core.base import AmplificationStats
from qkd_handshake.core.exceptions import (
    InsufficientLengthError,
    QberExceededError,
    ShapeMismatchError,
)
from qkd_handshake.privacy.amplifier import PrivacyAmplifier, amplify
from qkd_handshake.privacy.entropy import (
    binary_entropy,
    compute_output_length,
    secrecy_capacity,
)
from qkd_handshake.privacy.estimation import (
    check_qber,
    compute_confidence_interval,
    count_sample_errors,
    estimate_qber,
    is_qber_acceptable,
    remove_sampled_bits,
    sample_bits,
    select_sample,
    validate_sample_indices,
)
from qkd_handshake.privacy.utils import (
    bits_to_bytes,
    bits_to_hex,
    compute_seed_length,
    construct_toeplitz_matrix,
    generate_toeplitz_seed,
    key_seed,
    toeplitz_hash,
)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def sample_key() -> list:
    """Generate a sample key for testing."""
    random.seed(42)
    return [random.randint(0, 1) for _ in range(400)]


# =============================================================================
# QBER Estimation Tests
# =============================================================================


class TestSelectSample:
    """Test suite for sample position selection."""

    def test_sorted_and_unique(self, rng):
        indices = select_sample(100, 30, rng)
        assert len(indices) == 30
        assert indices == sorted(set(indices))
        assert all(0 <= i < 100 for i in indices)

    def test_sample_larger_than_key(self, rng):
        with pytest.raises(InsufficientLengthError):
            select_sample(4, 5, rng)

    def test_whole_key(self, rng):
        assert select_sample(5, 5, rng) == [0, 1, 2, 3, 4]

    def test_empty_sample(self, rng):
        assert select_sample(10, 0, rng) == []

    def test_negative_sample(self, rng):
        with pytest.raises(ValueError):
            select_sample(10, -1, rng)

    def test_seeded_selection_is_reproducible(self):
        first = select_sample(500, 50, np.random.default_rng(9))
        second = select_sample(500, 50, np.random.default_rng(9))
        assert first == second


class TestValidateSampleIndices:
    """Test suite for validating a peer's sample request."""

    def test_valid(self):
        validate_sample_indices([0, 3, 9], 10)

    def test_empty(self):
        validate_sample_indices([], 0)

    def test_unsorted(self):
        with pytest.raises(ValueError, match="strictly increasing"):
            validate_sample_indices([3, 1], 10)

    def test_duplicates(self):
        with pytest.raises(ValueError):
            validate_sample_indices([1, 1], 10)

    def test_out_of_range(self):
        with pytest.raises(InsufficientLengthError):
            validate_sample_indices([0, 10], 10)

    def test_negative(self):
        with pytest.raises(ValueError):
            validate_sample_indices([-1, 2], 10)


class TestEstimateQber:
    """Test suite for QBER estimation from revealed samples."""

    def test_identical_samples(self):
        assert estimate_qber([0, 1, 1, 0], [0, 1, 1, 0]) == 0.0

    def test_half_errors(self):
        assert estimate_qber([0, 0, 1, 1], [0, 1, 1, 0]) == pytest.approx(0.5)

    def test_empty_sample(self):
        assert estimate_qber([], []) == 0.0

    def test_length_mismatch(self):
        with pytest.raises(ShapeMismatchError):
            estimate_qber([0, 1], [0])

    def test_count_errors(self):
        assert count_sample_errors([1, 1, 1], [0, 1, 0]) == 2

    def test_sample_bits(self):
        assert sample_bits([1, 0, 1, 1, 0], [0, 2, 4]) == [1, 1, 0]

    def test_remove_sampled_bits(self):
        assert remove_sampled_bits([1, 0, 1, 1, 0], [1, 3]) == [1, 1, 0]


class TestQberDecision:
    """Test suite for the threshold decision."""

    def test_threshold_is_inclusive(self):
        assert is_qber_acceptable(0.11, 0.11)

    def test_above_threshold(self):
        assert not is_qber_acceptable(0.1101, 0.11)

    def test_zero_always_accepted(self):
        assert is_qber_acceptable(0.0, 0.01)

    def test_check_qber_raises(self):
        with pytest.raises(QberExceededError) as excinfo:
            check_qber(0.25, 0.11)
        assert str(excinfo.value) == "QBER too high"
        assert excinfo.value.qber == 0.25
        assert excinfo.value.threshold == 0.11

    def test_check_qber_passes(self):
        check_qber(0.05, 0.11)


class TestConfidenceInterval:
    """Test suite for the Clopper-Pearson interval."""

    def test_zero_errors(self):
        lower, upper = compute_confidence_interval(0, 100)
        assert lower == 0.0
        assert 0.0 < upper < 0.05

    def test_all_errors(self):
        lower, upper = compute_confidence_interval(100, 100)
        assert upper == 1.0
        assert lower > 0.95

    def test_contains_estimate(self):
        lower, upper = compute_confidence_interval(10, 100)
        assert lower < 0.1 < upper

    def test_higher_confidence_is_wider(self):
        narrow = compute_confidence_interval(10, 100, 0.9)
        wide = compute_confidence_interval(10, 100, 0.99)
        assert wide[0] < narrow[0]
        assert wide[1] > narrow[1]

    def test_invalid_parameters(self):
        with pytest.raises(ValueError):
            compute_confidence_interval(5, 0)
        with pytest.raises(ValueError):
            compute_confidence_interval(11, 10)
        with pytest.raises(ValueError):
            compute_confidence_interval(1, 10, 1.0)


# =============================================================================
# Entropy Tests
# =============================================================================


class TestBinaryEntropy:
    """Test suite for binary entropy function."""

    def test_entropy_at_half(self):
        assert binary_entropy(0.5) == pytest.approx(1.0, abs=1e-10)

    def test_entropy_at_boundaries(self):
        assert binary_entropy(0.0) == 0.0
        assert binary_entropy(1.0) == 0.0
        assert binary_entropy(-0.2) == 0.0

    def test_entropy_known_values(self):
        assert binary_entropy(0.1) == pytest.approx(0.4689955935892812, abs=1e-6)
        assert binary_entropy(0.11) == pytest.approx(0.499915958164528, abs=1e-6)

    def test_entropy_symmetry(self):
        for p in [0.1, 0.2, 0.3, 0.4]:
            assert binary_entropy(p) == pytest.approx(binary_entropy(1 - p), abs=1e-10)

    def test_secrecy_capacity(self):
        assert secrecy_capacity(0.0) == pytest.approx(1.0)
        assert secrecy_capacity(0.5) == 0.0
        assert secrecy_capacity(0.7) == 0.0
        assert secrecy_capacity(0.11) == pytest.approx(1 - binary_entropy(0.11))


class TestOutputLength:
    """Test suite for the amplified key length bound."""

    def test_error_free_key(self):
        assert compute_output_length(400, 0.0, 8) == 400 - 8 - 64

    def test_floor_of_thirty_two(self):
        assert compute_output_length(100, 0.0, 10) == 32
        assert compute_output_length(200, 0.3, 50) == 32

    def test_capped_at_input_length(self):
        assert compute_output_length(40, 0.0, 0, security_margin=0) == 40
        assert compute_output_length(32, 0.2, 100) == 32

    def test_input_below_minimum(self):
        with pytest.raises(InsufficientLengthError):
            compute_output_length(31, 0.0, 0)

    def test_negative_arguments(self):
        with pytest.raises(ValueError):
            compute_output_length(400, 0.0, -1)
        with pytest.raises(ValueError):
            compute_output_length(400, 0.0, 0, security_margin=-5)

    def test_monotone_in_bits_revealed(self):
        lengths = [compute_output_length(1000, 0.03, r) for r in range(0, 1000, 25)]
        assert all(a >= b for a, b in zip(lengths, lengths[1:]))

    def test_monotone_in_qber(self):
        qbers = [i / 100 for i in range(0, 80)]
        lengths = [compute_output_length(1000, q, 20) for q in qbers]
        assert all(a >= b for a, b in zip(lengths, lengths[1:]))

    def test_always_within_bounds(self):
        for n in (32, 50, 300, 1000):
            for q in (0.0, 0.05, 0.11, 0.4):
                for revealed in (0, 10, 100):
                    length = compute_output_length(n, q, revealed)
                    assert 32 <= length <= n


# =============================================================================
# Toeplitz Utility Tests
# =============================================================================


class TestToeplitzUtilities:
    """Test suite for Toeplitz construction and bit conversions."""

    def test_seed_length(self):
        assert compute_seed_length(10, 4) == 13

    def test_seed_length_invalid(self):
        with pytest.raises(ValueError):
            compute_seed_length(0, 1)
        with pytest.raises(ValueError):
            compute_seed_length(10, 0)
        with pytest.raises(ValueError):
            compute_seed_length(4, 10)

    def test_key_seed(self):
        assert key_seed([1, 0, 1]) == 1 + 3
        assert key_seed([0, 0, 0]) == 0

    def test_generated_seed_is_deterministic(self):
        first = generate_toeplitz_seed(20, 8, seed=99)
        second = generate_toeplitz_seed(20, 8, seed=99)
        assert first == second
        assert len(first) == 27
        assert set(first) <= {0, 1}

    def test_matrix_structure(self):
        seed = generate_toeplitz_seed(12, 5, seed=3)
        matrix = construct_toeplitz_matrix(seed, 5, 12)
        assert matrix.shape == (5, 12)
        assert list(matrix[:, 0]) == seed[:5]
        assert list(matrix[0, 1:]) == seed[5:16]
        for i in range(4):
            for j in range(11):
                assert matrix[i, j] == matrix[i + 1, j + 1]

    def test_matrix_wrong_seed_length(self):
        with pytest.raises(ValueError):
            construct_toeplitz_matrix([0, 1, 1], 5, 12)

    def test_hash_is_linear(self, sample_key):
        other = [1 - b for b in sample_key]
        xored = [a ^ b for a, b in zip(sample_key, other)]
        seed = generate_toeplitz_seed(len(sample_key), 64, seed=5)
        h_a = toeplitz_hash(sample_key, seed, 64)
        h_b = toeplitz_hash(other, seed, 64)
        h_x = toeplitz_hash(xored, seed, 64)
        assert h_x == [a ^ b for a, b in zip(h_a, h_b)]

    def test_bits_to_bytes(self):
        assert bits_to_bytes([1, 0, 0, 0, 0, 0, 0, 1]) == b"\x81"
        assert bits_to_bytes([1]) == b"\x80"
        assert bits_to_bytes([]) == b""

    def test_bits_to_hex(self):
        assert bits_to_hex([1, 0, 1, 0, 1, 1, 1, 1]) == "af"
        assert bits_to_hex([1]) == "8"


# =============================================================================
# Privacy Amplifier Tests
# =============================================================================


class TestPrivacyAmplifier:
    """Test suite for the amplifier."""

    def test_output_length_and_stats(self, sample_key):
        stats, output = PrivacyAmplifier().amplify(sample_key, 0.0, 8)
        assert isinstance(stats, AmplificationStats)
        assert stats.input_length == 400
        assert stats.output_length == 328
        assert len(output) == 328
        assert stats.compression_ratio == pytest.approx(328 / 400)
        assert set(output) <= {0, 1}

    def test_identical_keys_give_identical_output(self, sample_key):
        _, first = amplify(list(sample_key), 0.02, 10)
        _, second = amplify(list(sample_key), 0.02, 10)
        assert first == second

    def test_single_bit_change_changes_output(self, sample_key):
        flipped = list(sample_key)
        flipped[17] ^= 1
        _, first = amplify(sample_key, 0.0, 0)
        _, second = amplify(flipped, 0.0, 0)
        assert first != second

    def test_security_margin(self, sample_key):
        stats, _ = PrivacyAmplifier(security_margin=0).amplify(sample_key, 0.0, 0)
        assert stats.output_length == 400

    def test_short_key(self):
        with pytest.raises(InsufficientLengthError):
            PrivacyAmplifier().amplify([1, 0] * 10, 0.0, 0)

    def test_negative_margin(self):
        with pytest.raises(ValueError):
            PrivacyAmplifier(security_margin=-1)
