"""
Viterbi decoding of the most likely hidden state path.
"""

from typing import Any, Sequence, Tuple

import numpy as np

from .forward_backward import as_observation_sequence, emission_likelihoods
from ..exceptions import InfeasibleSequenceError
from ..logger import get_logger

logger = get_logger(__name__)


class ViterbiDecoder:
    """Log-space Viterbi decoder."""

    def decode(self, model, sequence: Sequence[Any]) -> Tuple[Tuple[int, ...], float]:
        """
        Find the most likely state path for an observation sequence.

        Args:
            model: HiddenMarkovModel, treated as read-only
            sequence: Observation sequence (length >= 1)

        Returns:
            Tuple of (state path, joint log-probability of path and sequence)

        Raises:
            InfeasibleSequenceError: If every state path has zero probability
        """
        observations = as_observation_sequence(sequence)
        T = len(observations)
        n_states = model.n_states

        with np.errstate(divide='ignore'):
            log_pi = np.log(model.initial_distribution)
            log_A = np.log(model.transition_matrix)
            log_B = np.log(emission_likelihoods(model, observations))

        delta = log_pi + log_B[0]
        psi = np.zeros((T, n_states), dtype=int)
        columns = np.arange(n_states)

        for t in range(1, T):
            scores = delta[:, None] + log_A
            psi[t] = np.argmax(scores, axis=0)
            delta = scores[psi[t], columns] + log_B[t]

        last_state = int(np.argmax(delta))
        best_log_probability = float(delta[last_state])
        if np.isneginf(best_log_probability):
            raise InfeasibleSequenceError("Every state path has zero probability")

        path = [last_state]
        for t in range(T - 1, 0, -1):
            path.append(int(psi[t, path[-1]]))
        path.reverse()

        logger.debug(f"Viterbi path of length {T}, log_probability={best_log_probability:.6f}")

        return tuple(path), best_log_probability


def most_likely_state_sequence(model, sequence: Sequence[Any]) -> Tuple[Tuple[int, ...], float]:
    """Most likely state path and its joint log-probability."""
    return ViterbiDecoder().decode(model, sequence)
