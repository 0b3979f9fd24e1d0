"""Integration tests for reconciliation and amplification over a noisy channel."""

import pytest

from qkd_handshake import HandshakeSession, ProtocolConfig
from qkd_handshake.core.base import Phase
from qkd_handshake.privacy.entropy import compute_output_length


@pytest.fixture
def noisy_config():
    return ProtocolConfig(qubit_count=2000, sample_size=200, noise=0.03)


class TestNoisyChannel:
    """Test suite for runs with channel noise below the threshold."""

    def test_qber_reflects_noise(self, noisy_config):
        qbers = [HandshakeSession(noisy_config, seed=s).run().qber for s in range(5)]
        assert all(q < 0.11 for q in qbers)
        assert 0.01 < sum(qbers) / len(qbers) < 0.06

    @pytest.mark.parametrize("seed", range(10))
    def test_accepted_runs_establish_matching_keys(self, noisy_config, seed):
        session = HandshakeSession(noisy_config, seed=seed)
        result = session.run()
        assert 0 < result.qber <= noisy_config.qber_threshold
        assert result.success, result.abort_reason
        assert result.keys_match
        assert result.final_key_length >= 32
        assert session.alice.final_key == session.bob.final_key

    def test_bob_adopts_corrected_key(self, noisy_config):
        session = HandshakeSession(noisy_config, seed=3)
        session.run()
        assert session.bob.phase is Phase.SUCCESS
        assert session.bob.state.sifted_key == session.alice.state.ec_stats.corrected_key
        assert session.bob.state.ec_stats.corrected_key == session.alice.state.ec_stats.corrected_key

    def test_output_length_accounts_for_revealed_bits(self, noisy_config):
        session = HandshakeSession(noisy_config, seed=2)
        session.run()
        alice = session.alice.state
        expected = compute_output_length(
            len(alice.ec_stats.corrected_key), alice.qber, alice.ec_stats.bits_revealed
        )
        assert alice.pa_stats.output_length == expected
        assert session.bob.state.pa_stats.output_length == expected


class TestReconciliationStats:
    """Test suite for the stats Alice shares with Bob."""

    def test_stats_reach_bob(self):
        config = ProtocolConfig(qubit_count=1000, sample_size=100)
        session = HandshakeSession(config, seed=6)
        session.run()
        alice_stats = session.alice.state.ec_stats
        bob_stats = session.bob.state.ec_stats
        assert bob_stats.bits_revealed == alice_stats.bits_revealed
        assert bob_stats.parity_rounds_executed == alice_stats.parity_rounds_executed
        assert bob_stats.block_size == alice_stats.block_size
        assert bob_stats.initial_error_count == alice_stats.initial_error_count
