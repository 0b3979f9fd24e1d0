"""Parameter estimation and privacy amplification.

Key Components
--------------
QBER Estimation (estimation.py):
    - select_sample: Pick sorted sample positions without replacement
    - estimate_qber: Error fraction of two revealed samples
    - is_qber_acceptable / check_qber: Threshold decision
    - remove_sampled_bits: Drop revealed positions from the sifted key
    - compute_confidence_interval: Clopper-Pearson interval

Entropy Functions (entropy.py):
    - binary_entropy: Binary entropy function h(p)
    - secrecy_capacity: 1 - h(QBER)
    - compute_output_length: Amplified key length bound

Toeplitz Utilities (utils.py):
    - key_seed, generate_toeplitz_seed, construct_toeplitz_matrix, toeplitz_hash
    - bits_to_bytes, bits_to_hex

Privacy Amplifier (amplifier.py):
    - PrivacyAmplifier / amplify

Example
-------
>>> from qkd_handshake.privacy import amplify, compute_output_length
>>> compute_output_length(400, 0.0, 8)
328
"""

from qkd_handshake.privacy.entropy import (
    binary_entropy,
    compute_output_length,
    secrecy_capacity,
)
from qkd_handshake.privacy.estimation import (
    DEFAULT_CONFIDENCE,
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
from qkd_handshake.privacy.amplifier import PrivacyAmplifier, amplify

__all__ = [
    "DEFAULT_CONFIDENCE",
    # Entropy
    "binary_entropy",
    "secrecy_capacity",
    "compute_output_length",
    # QBER estimation
    "select_sample",
    "validate_sample_indices",
    "sample_bits",
    "count_sample_errors",
    "estimate_qber",
    "is_qber_acceptable",
    "check_qber",
    "remove_sampled_bits",
    "compute_confidence_interval",
    # Toeplitz utilities
    "compute_seed_length",
    "key_seed",
    "generate_toeplitz_seed",
    "construct_toeplitz_matrix",
    "toeplitz_hash",
    "bits_to_bytes",
    "bits_to_hex",
    # Privacy amplifier
    "PrivacyAmplifier",
    "amplify",
]
