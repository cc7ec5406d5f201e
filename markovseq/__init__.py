"""
markovseq: discrete-state Hidden Markov Model engine

Build HMMs with pluggable emission families, train them with Baum-Welch,
score and decode sequences, generate synthetic data and compare models
with a Monte-Carlo Kullback-Leibler distance.
"""

__version__ = "0.1.0"

from .config import get_config, set_config
from .logger import get_logger
from .exceptions import (
    MarkovSeqError,
    InvalidParameterError,
    DimensionMismatchError,
    InfeasibleSequenceError,
    NoFeasibleDataError,
    ModelExportError,
)
from .hmm import (
    EmissionModel,
    CategoricalEmission,
    GaussianEmission,
    HiddenMarkovModel,
    HMMBuilder,
    ForwardBackwardEngine,
    ForwardBackwardTable,
    ViterbiDecoder,
    probability,
    log_probability,
    most_likely_state_sequence,
)
from .train import BaumWelchLearner, SufficientStatistics, HMMTrainer, ModelExporter, iterate
from .generate import SequenceGenerator, generate, generate_sequences
from .evaluate import KullbackLeiblerDistance, distance

__all__ = [
    "get_config",
    "set_config",
    "get_logger",
    "MarkovSeqError",
    "InvalidParameterError",
    "DimensionMismatchError",
    "InfeasibleSequenceError",
    "NoFeasibleDataError",
    "ModelExportError",
    "EmissionModel",
    "CategoricalEmission",
    "GaussianEmission",
    "HiddenMarkovModel",
    "HMMBuilder",
    "ForwardBackwardEngine",
    "ForwardBackwardTable",
    "ViterbiDecoder",
    "probability",
    "log_probability",
    "most_likely_state_sequence",
    "BaumWelchLearner",
    "SufficientStatistics",
    "HMMTrainer",
    "ModelExporter",
    "iterate",
    "SequenceGenerator",
    "generate",
    "generate_sequences",
    "KullbackLeiblerDistance",
    "distance",
    "__version__",
]
