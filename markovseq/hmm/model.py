"""
Hidden Markov Model parameter set.

``HiddenMarkovModel`` is an immutable value: the initial distribution, the
transition matrix and the per-state emission models are validated once at
construction and never change afterwards. Models are assembled entry by
entry through ``HMMBuilder`` and frozen with ``build()``.
"""

from typing import Any, Callable, Dict, Optional, Sequence

import numpy as np

from .emissions import EmissionModel, emission_from_dict, validate_probability_vector
from .forward_backward import log_probability as _log_probability
from ..config import get_config
from ..exceptions import DimensionMismatchError, InvalidParameterError
from ..logger import get_logger

logger = get_logger(__name__)


def _check_probability(p: float) -> float:
    p = float(p)
    if not 0.0 <= p <= 1.0:
        raise InvalidParameterError(f"Probability must be in [0, 1], got {p}")
    return p


def _check_n_states(n_states: int) -> int:
    if isinstance(n_states, bool) or not isinstance(n_states, (int, np.integer)) or n_states < 1:
        raise InvalidParameterError(f"Number of states must be a positive integer, got {n_states!r}")
    return int(n_states)


def _check_state_index(i: int, n_states: int) -> int:
    if isinstance(i, bool) or not isinstance(i, (int, np.integer)):
        raise DimensionMismatchError(f"State index must be an integer, got {i!r}")
    if not 0 <= i < n_states:
        raise DimensionMismatchError(f"State index {i} out of range [0, {n_states})")
    return int(i)


class HiddenMarkovModel:
    """
    Discrete-state Hidden Markov Model with pluggable emissions.

    Parameters:
    - pi: initial state distribution [n_states]
    - A: transition matrix [n_states, n_states], A[i, j] = P(q_t+1=j | q_t=i)
    - one EmissionModel per state
    """

    def __init__(self,
                 initial_distribution: Sequence[float],
                 transition_matrix: Sequence[Sequence[float]],
                 emissions: Sequence[EmissionModel],
                 tolerance: Optional[float] = None):
        """
        Args:
            initial_distribution: Initial state probabilities [n_states]
            transition_matrix: Transition probabilities [n_states, n_states]
            emissions: Emission model of each state [n_states]
            tolerance: Allowed deviation of each probability sum from 1.0

        Raises:
            InvalidParameterError: If dimensions disagree or any distribution is invalid
        """
        if tolerance is None:
            tolerance = get_config('hmm', 'tolerance')

        pi = np.array(initial_distribution, dtype=float)
        A = np.array(transition_matrix, dtype=float)
        emissions = tuple(emissions)

        validate_probability_vector(pi, "Initial probabilities", tolerance)
        n_states = pi.shape[0]

        if A.shape != (n_states, n_states):
            raise InvalidParameterError(
                f"Transition matrix shape {A.shape} doesn't match expected ({n_states}, {n_states})"
            )
        for i in range(n_states):
            validate_probability_vector(A[i], f"Transition probabilities from state {i}", tolerance)

        if len(emissions) != n_states:
            raise InvalidParameterError(f"Expected {n_states} emission models, got {len(emissions)}")
        for i, emission in enumerate(emissions):
            if not isinstance(emission, EmissionModel):
                raise InvalidParameterError(f"Emission of state {i} is not an emission model: {emission!r}")

        pi.setflags(write=False)
        A.setflags(write=False)

        self._pi = pi
        self._A = A
        self._emissions = emissions

    @classmethod
    def uniform(cls, n_states: int, emission_factory: Callable[[], EmissionModel]) -> "HiddenMarkovModel":
        """
        Model with uniform initial and transition probabilities.

        Args:
            n_states: Number of hidden states
            emission_factory: Called once per state to create its emission model
        """
        return HMMBuilder(n_states, emission_factory=emission_factory).build()

    @classmethod
    def from_dict(cls, document: Dict[str, Any]) -> "HiddenMarkovModel":
        """Rebuild a model from its ``to_dict`` description."""
        model = cls(
            document['initial_distribution'],
            document['transition_matrix'],
            [emission_from_dict(e) for e in document['emissions']]
        )
        if 'n_states' in document and document['n_states'] != model.n_states:
            raise InvalidParameterError(
                f"Document declares {document['n_states']} states but describes {model.n_states}"
            )
        return model

    @property
    def n_states(self) -> int:
        return self._pi.shape[0]

    @property
    def initial_distribution(self) -> np.ndarray:
        return self._pi.copy()

    @property
    def transition_matrix(self) -> np.ndarray:
        return self._A.copy()

    @property
    def emissions(self) -> tuple:
        return self._emissions

    def _check_state(self, i: int) -> int:
        return _check_state_index(i, self.n_states)

    def initial(self, i: int) -> float:
        return float(self._pi[self._check_state(i)])

    def transition(self, i: int, j: int) -> float:
        return float(self._A[self._check_state(i), self._check_state(j)])

    def emission(self, i: int) -> EmissionModel:
        return self._emissions[self._check_state(i)]

    def log_probability(self, sequence: Sequence[Any]) -> float:
        """Log-likelihood of a sequence (-inf if infeasible)."""
        return _log_probability(self, sequence)

    def probability(self, sequence: Sequence[Any]) -> float:
        """Likelihood of a sequence, re-exponentiated from the scaled forward pass."""
        return float(np.exp(self.log_probability(sequence)))

    def with_parameters(self,
                        initial_distribution: Optional[Sequence[float]] = None,
                        transition_matrix: Optional[Sequence[Sequence[float]]] = None,
                        emissions: Optional[Sequence[EmissionModel]] = None) -> "HiddenMarkovModel":
        """New model with some parameters replaced; this one is left untouched."""
        return HiddenMarkovModel(
            self._pi if initial_distribution is None else initial_distribution,
            self._A if transition_matrix is None else transition_matrix,
            self._emissions if emissions is None else emissions
        )

    def permute_states(self, order: Sequence[int]) -> "HiddenMarkovModel":
        """
        Relabel states consistently: new state k is old state ``order[k]``.

        The relabelled model assigns the same probability to every sequence.
        """
        order = np.asarray(order, dtype=int)
        if sorted(order.tolist()) != list(range(self.n_states)):
            raise InvalidParameterError(f"{order.tolist()} is not a permutation of {self.n_states} states")

        return HiddenMarkovModel(
            self._pi[order],
            self._A[np.ix_(order, order)],
            [self._emissions[k] for k in order]
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'n_states': self.n_states,
            'initial_distribution': self._pi.tolist(),
            'transition_matrix': self._A.tolist(),
            'emissions': [emission.to_dict() for emission in self._emissions]
        }

    def __eq__(self, other):
        if not isinstance(other, HiddenMarkovModel):
            return NotImplemented
        return (np.array_equal(self._pi, other._pi)
                and np.array_equal(self._A, other._A)
                and self._emissions == other._emissions)

    def __repr__(self) -> str:
        return f"HiddenMarkovModel(n_states={self.n_states})"

    def __str__(self) -> str:
        lines = [f"HMM with {self.n_states} state(s)"]
        for i in range(self.n_states):
            lines.append("")
            lines.append(f"State {i}")
            lines.append(f"  Pi: {self._pi[i]:.4g}")
            lines.append("  Aij: " + " ".join(f"{p:.4g}" for p in self._A[i]))
            lines.append(f"  Emission: {self._emissions[i]!r}")
        return "\n".join(lines)


class HMMBuilder:
    """
    Mutable staging area for entry-by-entry model construction.

    Single-entry setters only range-check their value; sums are validated by
    the whole-vector setters and, for everything, by ``build()``.
    """

    def __init__(self, n_states: int, emission_factory: Optional[Callable[[], EmissionModel]] = None):
        """
        Args:
            n_states: Number of hidden states
            emission_factory: If given, start from uniform initial/transition
                probabilities and one factory-made emission per state;
                otherwise every entry starts at zero and emissions unset
        """
        self.n_states = _check_n_states(n_states)

        if emission_factory is not None:
            self._pi = np.full(self.n_states, 1.0 / self.n_states)
            self._A = np.full((self.n_states, self.n_states), 1.0 / self.n_states)
            self._emissions = [emission_factory() for _ in range(self.n_states)]
        else:
            self._pi = np.zeros(self.n_states)
            self._A = np.zeros((self.n_states, self.n_states))
            self._emissions = [None] * self.n_states

    @classmethod
    def from_model(cls, model: HiddenMarkovModel) -> "HMMBuilder":
        """Builder pre-filled with an existing model's parameters."""
        builder = cls(model.n_states)
        builder._pi = model.initial_distribution
        builder._A = model.transition_matrix
        builder._emissions = list(model.emissions)
        return builder

    def _check_state(self, i: int) -> int:
        return _check_state_index(i, self.n_states)

    def set_initial(self, i: int, p: float) -> "HMMBuilder":
        self._pi[self._check_state(i)] = _check_probability(p)
        return self

    def set_transition(self, i: int, j: int, p: float) -> "HMMBuilder":
        self._A[self._check_state(i), self._check_state(j)] = _check_probability(p)
        return self

    def set_emission(self, i: int, emission: EmissionModel) -> "HMMBuilder":
        if not isinstance(emission, EmissionModel):
            raise InvalidParameterError(f"Not an emission model: {emission!r}")
        self._emissions[self._check_state(i)] = emission
        return self

    def set_initial_distribution(self, distribution: Sequence[float]) -> "HMMBuilder":
        distribution = np.array(distribution, dtype=float)
        if distribution.shape != (self.n_states,):
            raise InvalidParameterError(
                f"Initial distribution shape {distribution.shape} doesn't match expected ({self.n_states},)"
            )
        validate_probability_vector(distribution, "Initial probabilities")
        self._pi = distribution
        return self

    def set_transition_row(self, i: int, row: Sequence[float]) -> "HMMBuilder":
        row = np.array(row, dtype=float)
        if row.shape != (self.n_states,):
            raise InvalidParameterError(
                f"Transition row shape {row.shape} doesn't match expected ({self.n_states},)"
            )
        validate_probability_vector(row, f"Transition probabilities from state {self._check_state(i)}")
        self._A[i] = row
        return self

    def build(self) -> HiddenMarkovModel:
        """
        Validate everything once and freeze into an immutable model.

        Raises:
            InvalidParameterError: If an emission is missing or any vector/row
                does not sum to 1
        """
        missing = [i for i, e in enumerate(self._emissions) if e is None]
        if missing:
            raise InvalidParameterError(f"No emission model set for state(s) {missing}")

        model = HiddenMarkovModel(self._pi, self._A, self._emissions)
        logger.debug(f"Built {model!r}")
        return model
