"""
Test configuration and fixtures for markovseq.

Shared models follow the wireless-network example: a link is either
clear (state 0) or jammed (state 1), and each packet is either received
("OK") or lost ("LOSS").
"""

import itertools
import tempfile
from pathlib import Path

import numpy as np
import pytest

from markovseq.config import reset_config
from markovseq.generate import SequenceGenerator
from markovseq.hmm import CategoricalEmission, HMMBuilder

PACKET_SYMBOLS = ("OK", "LOSS")


@pytest.fixture(autouse=True)
def clean_config():
    """Every test starts and ends with the default configuration."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def packet_hmm():
    """The two-state packet-loss model, built entry by entry."""
    builder = HMMBuilder(2)

    builder.set_initial(0, 0.95)
    builder.set_initial(1, 0.05)

    builder.set_emission(0, CategoricalEmission([0.95, 0.05], PACKET_SYMBOLS))
    builder.set_emission(1, CategoricalEmission([0.20, 0.80], PACKET_SYMBOLS))

    builder.set_transition(0, 1, 0.05)
    builder.set_transition(0, 0, 0.95)
    builder.set_transition(1, 0, 0.10)
    builder.set_transition(1, 1, 0.90)

    return builder.build()


@pytest.fixture
def initial_guess_hmm():
    """Deliberately mismatched starting point for Baum-Welch."""
    builder = HMMBuilder(2)

    builder.set_initial(0, 0.50)
    builder.set_initial(1, 0.50)

    builder.set_emission(0, CategoricalEmission([0.8, 0.2], PACKET_SYMBOLS))
    builder.set_emission(1, CategoricalEmission([0.1, 0.9], PACKET_SYMBOLS))

    builder.set_transition(0, 1, 0.2)
    builder.set_transition(0, 0, 0.8)
    builder.set_transition(1, 0, 0.2)
    builder.set_transition(1, 1, 0.8)

    return builder.build()


@pytest.fixture
def packet_sequences(packet_hmm):
    """Training corpus drawn from the packet-loss model."""
    return SequenceGenerator(random_state=42).generate_many(packet_hmm, length=100, count=100)


@pytest.fixture
def integer_hmm():
    """Small three-symbol model over integer observations."""
    return (
        HMMBuilder(2)
        .set_initial_distribution([0.6, 0.4])
        .set_transition_row(0, [0.7, 0.3])
        .set_transition_row(1, [0.4, 0.6])
        .set_emission(0, CategoricalEmission([0.5, 0.4, 0.1]))
        .set_emission(1, CategoricalEmission([0.1, 0.3, 0.6]))
        .build()
    )


def _joint_path_probabilities(model, sequence):
    """Yield (state path, P(path, sequence)) for every state path."""
    pi = model.initial_distribution
    A = model.transition_matrix
    for path in itertools.product(range(model.n_states), repeat=len(sequence)):
        p = pi[path[0]] * model.emission(path[0]).density(sequence[0])
        for t in range(1, len(sequence)):
            p *= A[path[t - 1], path[t]] * model.emission(path[t]).density(sequence[t])
        yield path, p


def _brute_force_probability(model, sequence):
    return sum(p for _, p in _joint_path_probabilities(model, sequence))


def _brute_force_baum_welch(model, sequences, n_symbols):
    """One EM step by explicit enumeration of state paths (integer symbols only)."""
    n = model.n_states
    initial = np.zeros(n)
    transitions = np.zeros((n, n))
    emissions = np.zeros((n, n_symbols))

    for sequence in sequences:
        joints = list(_joint_path_probabilities(model, sequence))
        total = sum(p for _, p in joints)
        for path, p in joints:
            w = p / total
            initial[path[0]] += w
            for t in range(len(sequence)):
                emissions[path[t], sequence[t]] += w
                if t + 1 < len(sequence):
                    transitions[path[t], path[t + 1]] += w

    return (
        initial / len(sequences),
        transitions / transitions.sum(axis=1, keepdims=True),
        emissions / emissions.sum(axis=1, keepdims=True),
    )


@pytest.fixture
def brute_force_probability():
    """Sequence likelihood by summing over every state path."""
    return _brute_force_probability


@pytest.fixture
def brute_force_path_probabilities():
    """Joint probabilities of every state path with a sequence."""
    return lambda model, sequence: list(_joint_path_probabilities(model, sequence))


@pytest.fixture
def brute_force_baum_welch():
    """Reference Baum-Welch step by state-path enumeration."""
    return _brute_force_baum_welch


def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
