"""Shared fixtures for the handshake test suite."""

import numpy as np
import pytest

from qkd_handshake.core.base import Basis, ProtocolConfig
from qkd_handshake.transport.channel import InMemoryLink

R = Basis.RECTILINEAR
D = Basis.DIAGONAL


@pytest.fixture
def rng() -> np.random.Generator:
    """Seeded generator so every test is deterministic."""
    return np.random.default_rng(1234)


@pytest.fixture
def scenario_one() -> dict:
    """Eight-qubit exchange with a known keep-mask."""
    return {
        "alice_bits": [1, 0, 1, 1, 0, 0, 1, 0],
        "alice_bases": [R, D, R, R, D, D, R, D],
        "bob_bases": [R, R, R, D, D, D, D, D],
        "keep_mask": [True, False, True, False, True, True, False, True],
        "alice_sifted": [1, 1, 0, 0, 0],
    }


@pytest.fixture
def large_config() -> ProtocolConfig:
    """Enough qubits for a comfortable amplified key."""
    return ProtocolConfig(qubit_count=1000, sample_size=100)


@pytest.fixture
def eve_config() -> ProtocolConfig:
    return ProtocolConfig(qubit_count=1000, sample_size=200, eve_enabled=True)


@pytest.fixture
def link() -> InMemoryLink:
    return InMemoryLink()
