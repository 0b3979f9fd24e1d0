"""Protocol constants.

Defaults mirror the demonstration handshake: 200 qubits, a 20-bit QBER
sample and the 11% Shor-Preskill abort threshold.
"""

# Security parameters
QBER_THRESHOLD: float = 0.11  # Shor-Preskill bound (11%)
MIN_KEY_LENGTH: int = 32  # Floor on the amplified key length
DEFAULT_SECURITY_MARGIN: int = 64  # Bits sacrificed in privacy amplification

# Reconciliation
DEFAULT_NUM_PASSES: int = 3
MIN_BLOCK_SIZE: int = 4
MIN_BLOCK_QBER: float = 0.01  # QBER floor used when sizing parity blocks

# Handshake defaults
DEFAULT_QUBIT_COUNT: int = 200
DEFAULT_SAMPLE_SIZE: int = 20
DEFAULT_CHANNEL_NOISE: float = 0.0
DEFAULT_COMMITMENT: str = "rolling"

# Message types exchanged between the peers
MSG_PREPARED: str = "prepared"
MSG_MEASURED: str = "measured"
MSG_ANNOUNCE_BASES: str = "announce_bases"
MSG_SIFTING_RESULT: str = "sifting_result"
MSG_QBER_REQUEST: str = "qber_request"
MSG_QBER_RESPONSE: str = "qber_response"
MSG_ACCEPT_OR_ABORT: str = "accept_or_abort"
MSG_ERROR_CORRECTION: str = "error_correction"
MSG_ERROR_CORRECTION_STATS: str = "error_correction_stats"
MSG_FINAL_KEY_COMMITMENT: str = "final_key_commitment"
MSG_FINAL_KEY_CONFIRMED: str = "final_key_confirmed"

# Abort reasons shown to the user
REASON_QBER_TOO_HIGH: str = "QBER too high"
REASON_VERIFICATION_FAILED: str = "Key verification failed"
REASON_COMMITMENT_MISMATCH: str = "Key commitment mismatch"
REASON_SIFTING_MISMATCH: str = "Sifting results disagree"
REASON_QBER_DISAGREEMENT: str = "Peers measured different QBER values"
