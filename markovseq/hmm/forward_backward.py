"""
Scaled forward-backward algorithm.

The forward variables are renormalised at every time step; the normalisers
``c[t]`` are kept so that the sequence log-likelihood is ``sum(log(c[t]))``
and so that the backward pass can be scaled consistently. With that scaling
``alpha[t] * beta[t]`` is directly the state posterior at time ``t``.
"""

from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple

import numpy as np

from ..exceptions import InfeasibleSequenceError, InvalidParameterError
from ..logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ForwardBackwardTable:
    """
    Result of one forward-backward run over a single sequence.

    Attributes:
        alpha: Scaled forward probabilities [T, n_states]
        beta: Scaled backward probabilities [T, n_states] (None after a forward-only run)
        scaling_factors: Per-step normalisers c[t] [T]
        log_likelihood: log P(sequence | model)
        emission_likelihoods: Density of each observation under each state [T, n_states]
    """
    alpha: np.ndarray
    beta: Optional[np.ndarray]
    scaling_factors: np.ndarray
    log_likelihood: float
    emission_likelihoods: np.ndarray

    @property
    def length(self) -> int:
        return self.alpha.shape[0]

    @property
    def gamma(self) -> np.ndarray:
        """State occupancy probabilities [T, n_states]."""
        if self.beta is None:
            raise InvalidParameterError("State occupancies need the backward pass; use run() instead of forward()")
        return self.alpha * self.beta


def as_observation_sequence(sequence: Sequence[Any]) -> Tuple[Any, ...]:
    """Freeze an observation sequence, rejecting empty input."""
    observations = tuple(sequence)
    if not observations:
        raise InvalidParameterError("Observation sequence must contain at least one observation")
    return observations


def emission_likelihoods(model, observations: Sequence[Any]) -> np.ndarray:
    """
    Evaluate every state's emission density on every observation.

    Returns:
        Array [T, n_states] with entry [t, i] = density of observation t under state i
    """
    emissions = model.emissions
    return np.array(
        [[emission.density(observation) for emission in emissions] for observation in observations],
        dtype=float
    )


class ForwardBackwardEngine:
    """Computes scaled forward/backward tables for one model and one sequence at a time."""

    def run(self, model, sequence: Sequence[Any]) -> ForwardBackwardTable:
        """
        Run the forward and backward passes.

        Args:
            model: HiddenMarkovModel, treated as read-only
            sequence: Observation sequence (length >= 1)

        Returns:
            ForwardBackwardTable with alpha, beta, scaling factors and log-likelihood

        Raises:
            InvalidParameterError: If the sequence is empty or holds invalid observations
            InfeasibleSequenceError: If some observation has zero likelihood
        """
        observations = as_observation_sequence(sequence)
        transition = model.transition_matrix
        densities = emission_likelihoods(model, observations)

        alpha, c_scale = self._forward(model.initial_distribution, transition, densities)
        beta = self._backward(transition, densities, c_scale)
        log_likelihood = float(np.sum(np.log(c_scale)))

        logger.debug(f"Forward-backward completed: T={len(observations)}, log_likelihood={log_likelihood:.6f}")

        return ForwardBackwardTable(alpha, beta, c_scale, log_likelihood, densities)

    def forward(self, model, sequence: Sequence[Any]) -> ForwardBackwardTable:
        """Forward pass only; enough to score a sequence."""
        observations = as_observation_sequence(sequence)
        densities = emission_likelihoods(model, observations)

        alpha, c_scale = self._forward(model.initial_distribution, model.transition_matrix, densities)
        log_likelihood = float(np.sum(np.log(c_scale)))

        return ForwardBackwardTable(alpha, None, c_scale, log_likelihood, densities)

    @staticmethod
    def _forward(pi: np.ndarray, A: np.ndarray, B: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        T, n_states = B.shape
        alpha = np.zeros((T, n_states))
        c_scale = np.zeros(T)

        alpha[0, :] = pi * B[0, :]
        for t in range(T):
            if t > 0:
                alpha[t, :] = (alpha[t - 1, :] @ A) * B[t, :]

            c_scale[t] = alpha[t, :].sum()
            if not c_scale[t] > 0:
                raise InfeasibleSequenceError(
                    f"Forward probabilities sum to zero at time {t}", time_step=t
                )

            alpha[t, :] /= c_scale[t]

        return alpha, c_scale

    @staticmethod
    def _backward(A: np.ndarray, B: np.ndarray, c_scale: np.ndarray) -> np.ndarray:
        T, n_states = B.shape
        beta = np.zeros((T, n_states))
        beta[T - 1, :] = 1.0

        for t in range(T - 2, -1, -1):
            beta[t, :] = A @ (B[t + 1, :] * beta[t + 1, :]) / c_scale[t + 1]

        return beta


_default_engine = ForwardBackwardEngine()


def log_probability(model, sequence: Sequence[Any]) -> float:
    """
    Log-likelihood of a sequence under a model.

    Returns:
        log P(sequence | model), or -inf if the sequence is infeasible
    """
    try:
        return _default_engine.forward(model, sequence).log_likelihood
    except InfeasibleSequenceError as e:
        logger.debug(f"Infeasible sequence scored as -inf: {e}")
        return float('-inf')


def probability(model, sequence: Sequence[Any]) -> float:
    """Likelihood of a sequence under a model (0.0 if infeasible)."""
    return float(np.exp(log_probability(model, sequence)))
