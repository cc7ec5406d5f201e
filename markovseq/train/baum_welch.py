"""
Baum-Welch (EM) re-estimation of Hidden Markov Model parameters.

One call to ``BaumWelchLearner.iterate`` performs a single EM step over a
batch of independent sequences: the E-step runs forward-backward on every
sequence and turns the tables into ``SufficientStatistics``; the partial
statistics are summed; the M-step builds a new model from the totals. The
input model is never modified.
"""

import itertools
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np
from joblib import Parallel, delayed

from ..config import get_config
from ..exceptions import InfeasibleSequenceError, InvalidParameterError, NoFeasibleDataError
from ..hmm.forward_backward import ForwardBackwardEngine, as_observation_sequence
from ..hmm.model import HiddenMarkovModel
from ..logger import get_logger

logger = get_logger(__name__)


@dataclass(eq=False)
class SufficientStatistics:
    """
    Expected counts accumulated over one or more sequences.

    Attributes:
        initial_occupancy: Sum over sequences of gamma[0] [n_states]
        transition_counts: Sum over sequences and time of xi[t] [n_states, n_states]
        observations: Every observation of every accumulated sequence [M]
        emission_weights: gamma weight of each observation for each state [M, n_states]
        n_sequences: Number of feasible sequences accumulated
        log_likelihood: Summed log-likelihood of those sequences
    """
    initial_occupancy: np.ndarray
    transition_counts: np.ndarray
    observations: List[Any] = field(default_factory=list)
    emission_weights: Optional[np.ndarray] = None
    n_sequences: int = 0
    log_likelihood: float = 0.0

    def __post_init__(self):
        if self.emission_weights is None:
            self.emission_weights = np.zeros((0, self.n_states))

    @classmethod
    def empty(cls, n_states: int) -> "SufficientStatistics":
        return cls(np.zeros(n_states), np.zeros((n_states, n_states)))

    @property
    def n_states(self) -> int:
        return self.initial_occupancy.shape[0]

    def weighted_observations(self, state: int) -> List[Tuple[Any, float]]:
        """(observation, weight) pairs collected for one state."""
        return list(zip(self.observations, self.emission_weights[:, state].tolist()))

    @classmethod
    def combine(cls, partials: Sequence["SufficientStatistics"], n_states: int) -> "SufficientStatistics":
        """
        Sum many partial statistics in one pass.

        Equal to chaining ``+`` over ``partials`` but linear in their total size.
        """
        partials = list(partials)
        mismatched = sorted({p.n_states for p in partials if p.n_states != n_states})
        if mismatched:
            raise InvalidParameterError(
                f"Cannot combine statistics over {mismatched} states into {n_states} states"
            )
        if not partials:
            return cls.empty(n_states)

        return cls(
            np.sum([p.initial_occupancy for p in partials], axis=0),
            np.sum([p.transition_counts for p in partials], axis=0),
            list(itertools.chain.from_iterable(p.observations for p in partials)),
            np.concatenate([p.emission_weights for p in partials], axis=0),
            sum(p.n_sequences for p in partials),
            float(sum(p.log_likelihood for p in partials))
        )

    def __add__(self, other):
        if not isinstance(other, SufficientStatistics):
            return NotImplemented
        if other.n_states != self.n_states:
            raise InvalidParameterError(
                f"Cannot combine statistics over {self.n_states} and {other.n_states} states"
            )
        return SufficientStatistics(
            self.initial_occupancy + other.initial_occupancy,
            self.transition_counts + other.transition_counts,
            self.observations + other.observations,
            np.vstack([self.emission_weights, other.emission_weights]),
            self.n_sequences + other.n_sequences,
            self.log_likelihood + other.log_likelihood
        )


class BaumWelchLearner:
    """
    Single-step Baum-Welch learner.

    The learner decides nothing about convergence; callers loop over
    ``iterate`` themselves (or use ``learn`` / ``HMMTrainer``).
    """

    def __init__(self, n_jobs: Optional[int] = None, engine: Optional[ForwardBackwardEngine] = None):
        """
        Args:
            n_jobs: Parallel workers for the per-sequence E-step (joblib
                semantics; 1 runs sequentially, -1 uses every core)
            engine: Forward-backward engine to use
        """
        self.n_jobs = n_jobs if n_jobs is not None else get_config('training', 'n_jobs')
        self.engine = engine if engine is not None else ForwardBackwardEngine()

        # Batch log-likelihood of the model given to the most recent iterate()
        self.last_log_likelihood = None

    def expectation(self, model: HiddenMarkovModel, sequence: Sequence[Any]) -> Optional[SufficientStatistics]:
        """
        E-step for a single sequence.

        Returns:
            The sequence's sufficient statistics, or None if it is infeasible
            under the model
        """
        observations = as_observation_sequence(sequence)
        try:
            table = self.engine.run(model, observations)
        except InfeasibleSequenceError as e:
            logger.warning(f"Skipping infeasible sequence of length {len(observations)}: {e}")
            return None

        alpha, beta = table.alpha, table.beta
        gamma = table.gamma

        if table.length > 1:
            # sum_t xi[t, i, j] = A[i, j] * sum_t alpha[t, i] * b_j(o_t+1) * beta[t+1, j] / c[t+1]
            weighted_next = table.emission_likelihoods[1:] * beta[1:] / table.scaling_factors[1:, None]
            transition_counts = model.transition_matrix * (alpha[:-1].T @ weighted_next)
        else:
            transition_counts = np.zeros((model.n_states, model.n_states))

        return SufficientStatistics(
            initial_occupancy=gamma[0].copy(),
            transition_counts=transition_counts,
            observations=list(observations),
            emission_weights=gamma,
            n_sequences=1,
            log_likelihood=table.log_likelihood
        )

    def accumulate(self, model: HiddenMarkovModel, sequences: Sequence[Sequence[Any]]) -> SufficientStatistics:
        """
        E-step over a batch; infeasible sequences contribute nothing.

        Raises:
            InvalidParameterError: If the batch is empty
            NoFeasibleDataError: If every sequence is infeasible
        """
        sequences = list(sequences)
        if not sequences:
            raise InvalidParameterError("sequences cannot be empty")

        if self.n_jobs == 1:
            partials = [self.expectation(model, sequence) for sequence in sequences]
        else:
            partials = Parallel(n_jobs=self.n_jobs)(
                delayed(self.expectation)(model, sequence) for sequence in sequences
            )

        feasible = [p for p in partials if p is not None]
        if not feasible:
            raise NoFeasibleDataError(f"All {len(sequences)} sequences are infeasible under the current model")

        skipped = len(sequences) - len(feasible)
        if skipped:
            logger.warning(f"{skipped} of {len(sequences)} sequences skipped as infeasible")

        return SufficientStatistics.combine(feasible, model.n_states)

    def maximization(self, model: HiddenMarkovModel, statistics: SufficientStatistics) -> HiddenMarkovModel:
        """
        M-step: closed-form re-estimation from accumulated statistics.

        Rows and emissions whose normaliser is zero keep their previous values.
        """
        if statistics.n_sequences == 0:
            raise NoFeasibleDataError("No sequence statistics to re-estimate from")

        pi_new = statistics.initial_occupancy / statistics.n_sequences

        A_new = model.transition_matrix
        row_totals = statistics.transition_counts.sum(axis=1)
        for i in range(model.n_states):
            if row_totals[i] > 0:
                A_new[i, :] = statistics.transition_counts[i, :] / row_totals[i]
            else:
                logger.debug(f"State {i} has no outgoing transitions in the data; keeping its row")

        emissions_new = []
        for i, emission in enumerate(model.emissions):
            emissions_new.append(emission.reestimate(
                statistics.observations,
                statistics.emission_weights[:, i],
                fallback=emission
            ))

        return model.with_parameters(pi_new, A_new, emissions_new)

    def iterate(self, model: HiddenMarkovModel, sequences: Sequence[Sequence[Any]]) -> HiddenMarkovModel:
        """
        One Baum-Welch step.

        Args:
            model: Current model (left untouched)
            sequences: Batch of independent observation sequences

        Returns:
            Re-estimated model
        """
        statistics = self.accumulate(model, sequences)
        self.last_log_likelihood = statistics.log_likelihood

        new_model = self.maximization(model, statistics)

        logger.debug(f"Baum-Welch step over {statistics.n_sequences} sequences: "
                     f"log_likelihood={statistics.log_likelihood:.6f}")

        return new_model

    def learn(self, model: HiddenMarkovModel, sequences: Sequence[Sequence[Any]],
              n_iterations: Optional[int] = None) -> HiddenMarkovModel:
        """Apply a fixed number of Baum-Welch steps."""
        if n_iterations is None:
            n_iterations = get_config('training', 'default_iterations')
        if n_iterations < 0:
            raise InvalidParameterError(f"n_iterations must be non-negative, got {n_iterations}")

        sequences = list(sequences)
        for _ in range(n_iterations):
            model = self.iterate(model, sequences)
        return model


def iterate(model: HiddenMarkovModel, sequences: Sequence[Sequence[Any]],
            n_jobs: Optional[int] = None) -> HiddenMarkovModel:
    """One Baum-Welch step with a fresh learner."""
    return BaumWelchLearner(n_jobs=n_jobs).iterate(model, sequences)
