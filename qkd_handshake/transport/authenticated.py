"""HMAC authentication for the classical message channel.

BB84 assumes an authenticated classical channel: without it an attacker can
impersonate either peer during sifting and reconciliation. This wrapper adds
an HMAC-SHA256 tag to every outgoing message and verifies it on receipt.

Notes
-----
HMAC-SHA256 gives computational security only. Information-theoretic
authentication (Wegman-Carter) would consume pre-shared key per message.
"""

import hashlib
import hmac
import json
from typing import Any

from qkd_handshake.core.exceptions import IntegrityError, SecurityError
from qkd_handshake.transport.channel import Message, MessageChannel, MessageHandler

ENVELOPE_MESSAGE = "message"
ENVELOPE_TAG = "tag"


def _serialize_payload(payload: Any) -> bytes:
    """Serialize payload deterministically for HMAC computation.

    Uses JSON serialization with sorted keys so the same message yields the
    same bytes on both sides regardless of dict ordering.

    Raises
    ------
    SecurityError
        If the payload is not JSON-serializable.
    """
    try:
        serialized = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise SecurityError(f"Cannot authenticate non-JSON payload: {e}") from e
    return serialized.encode("utf-8")


def _compute_hmac(key: bytes, data: bytes) -> str:
    """HMAC-SHA256 tag of ``data`` as a hex string."""
    return hmac.new(key, data, hashlib.sha256).hexdigest()


class AuthenticatedChannel:
    """Wrapper that adds HMAC-SHA256 authentication to a ``MessageChannel``.

    Each message travels in an envelope ``{"message": ..., "tag": ...}``.

    Parameters
    ----------
    channel : MessageChannel
        Underlying channel.
    key : bytes
        Pre-shared authentication key. Should be at least 32 bytes
        for adequate security.

    Raises
    ------
    ValueError
        If key is empty.

    Examples
    --------
    >>> from qkd_handshake.transport import InMemoryLink
    >>> link = InMemoryLink()
    >>> alice = AuthenticatedChannel(link.alice, b"shared_secret")
    >>> bob = AuthenticatedChannel(link.bob, b"shared_secret")
    """

    def __init__(self, channel: MessageChannel, key: bytes) -> None:
        if not key:
            raise ValueError("Authentication key cannot be empty")
        self._channel = channel
        self._key = key

    def send_message(self, message: Message) -> None:
        tag = _compute_hmac(self._key, _serialize_payload(message))
        self._channel.send_message({ENVELOPE_MESSAGE: message, ENVELOPE_TAG: tag})

    def on_message(self, handler: MessageHandler) -> None:
        """Register ``handler`` for verified messages only.

        The wrapped handler raises ``SecurityError`` for a malformed envelope
        and ``IntegrityError`` when the tag does not verify.
        """

        def _verify_and_dispatch(envelope: Message) -> None:
            handler(self.open_envelope(envelope))

        self._channel.on_message(_verify_and_dispatch)

    def open_envelope(self, envelope: Message) -> Message:
        """Verify an envelope and return the message inside.

        Raises
        ------
        SecurityError
            If the envelope format is invalid.
        IntegrityError
            If HMAC verification fails, indicating tampering or
            key mismatch.
        """
        if (
            not isinstance(envelope, dict)
            or ENVELOPE_MESSAGE not in envelope
            or ENVELOPE_TAG not in envelope
        ):
            raise SecurityError(
                f"Invalid envelope format: expected {{message, tag}}, got {envelope!r}"
            )

        message = envelope[ENVELOPE_MESSAGE]
        if not isinstance(message, dict):
            raise SecurityError(f"Invalid message type: expected dict, got {type(message)}")
        received_tag = envelope[ENVELOPE_TAG]
        if not isinstance(received_tag, str):
            raise SecurityError(f"Invalid tag type: expected str, got {type(received_tag)}")

        expected_tag = _compute_hmac(self._key, _serialize_payload(message))
        # Constant-time comparison
        if not hmac.compare_digest(received_tag, expected_tag):
            raise IntegrityError(
                f"HMAC verification failed for message of type '{message.get('type')}'. "
                "Message may have been tampered with or keys do not match."
            )
        return message
