"""Integration tests for handshakes over the authenticated channel."""

import pytest

from qkd_handshake import HandshakeSession, LocalAction, ProtocolStateMachine
from qkd_handshake.core.base import Phase, Role
from qkd_handshake.core.constants import REASON_QBER_DISAGREEMENT
from qkd_handshake.core.exceptions import IntegrityError
from qkd_handshake.transport import AuthenticatedChannel, InMemoryLink


class TamperingChannel:
    """Flips the first sample bit of every QBER request in transit."""

    def __init__(self, channel):
        self._channel = channel

    def send_message(self, message):
        inner = message.get("message", message)
        if inner.get("type") == "qber_request":
            inner["payload"]["sample_bits"][0] ^= 1
        self._channel.send_message(message)

    def on_message(self, handler):
        self._channel.on_message(handler)


@pytest.fixture
def shared_key():
    return b"pre-shared authentication key 32"


class TestAuthenticatedHandshake:
    """Test suite for full runs with HMAC-tagged messages."""

    def test_handshake_succeeds(self, large_config, shared_key):
        session = HandshakeSession(large_config, seed=3, auth_key=shared_key)
        result = session.run()
        assert result.success
        assert result.keys_match

    def test_same_keys_with_and_without_auth(self, large_config, shared_key):
        plain = HandshakeSession(large_config, seed=4)
        authed = HandshakeSession(large_config, seed=4, auth_key=shared_key)
        plain.run()
        authed.run()
        assert plain.alice.final_key == authed.alice.final_key

    def test_eve_still_detected(self, eve_config, shared_key):
        result = HandshakeSession(eve_config, seed=5, auth_key=shared_key).run()
        assert not result.success
        assert result.abort_reason == "QBER too high"


class TestAuthenticationFailures:
    """Test suite for rejected messages."""

    def test_mismatched_keys(self, large_config):
        link = InMemoryLink()
        alice = ProtocolStateMachine(
            Role.ALICE, large_config, AuthenticatedChannel(link.alice, b"alice key")
        )
        bob = ProtocolStateMachine(
            Role.BOB, large_config, AuthenticatedChannel(link.bob, b"bob key")
        )
        alice.dispatch(LocalAction.PREPARE)
        with pytest.raises(IntegrityError):
            link.pump()
        assert bob.phase is Phase.IDLE
        assert bob.run_id is None

    def test_tampered_message_rejected(self, large_config, shared_key):
        link = InMemoryLink()
        alice = ProtocolStateMachine(
            Role.ALICE,
            large_config,
            AuthenticatedChannel(TamperingChannel(link.alice), shared_key),
        )
        bob = ProtocolStateMachine(Role.BOB, large_config, AuthenticatedChannel(link.bob, shared_key))

        alice.dispatch(LocalAction.PREPARE)
        link.pump()
        bob.dispatch(LocalAction.MEASURE)
        link.pump()
        alice.dispatch(LocalAction.ANNOUNCE_BASES)
        link.pump()
        assert bob.phase is Phase.QBER_CHECK

        alice.dispatch(LocalAction.ESTIMATE_QBER)
        with pytest.raises(IntegrityError):
            link.pump()
        assert bob.state.qber is None

    def test_unauthenticated_tampering_caught_late(self, large_config):
        link = InMemoryLink()
        alice = ProtocolStateMachine(Role.ALICE, large_config, TamperingChannel(link.alice))
        bob = ProtocolStateMachine(Role.BOB, large_config, link.bob)

        for actor, action in (
            (alice, LocalAction.PREPARE),
            (bob, LocalAction.MEASURE),
            (alice, LocalAction.ANNOUNCE_BASES),
            (alice, LocalAction.ESTIMATE_QBER),
        ):
            actor.dispatch(action)
            link.pump()

        # Bob saw one error that Alice never made; only the QBER cross-check notices
        assert bob.state.qber == pytest.approx(1 / large_config.sample_size)
        assert alice.state.qber == 0.0
        assert bob.state.abort_reason == REASON_QBER_DISAGREEMENT
        assert alice.phase is Phase.ABORTED
