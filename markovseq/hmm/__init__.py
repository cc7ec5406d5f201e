"""
Hidden Markov Model module.

Model representation, pluggable emission families, scaled forward-backward
scoring and Viterbi decoding.
"""

from .emissions import (
    EmissionModel,
    CategoricalEmission,
    GaussianEmission,
    EMISSION_FAMILIES,
    emission_from_dict,
)
from .forward_backward import ForwardBackwardEngine, ForwardBackwardTable, probability, log_probability
from .model import HiddenMarkovModel, HMMBuilder
from .viterbi import ViterbiDecoder, most_likely_state_sequence

__all__ = [
    "EmissionModel",
    "CategoricalEmission",
    "GaussianEmission",
    "EMISSION_FAMILIES",
    "emission_from_dict",
    "ForwardBackwardEngine",
    "ForwardBackwardTable",
    "probability",
    "log_probability",
    "HiddenMarkovModel",
    "HMMBuilder",
    "ViterbiDecoder",
    "most_likely_state_sequence",
]
