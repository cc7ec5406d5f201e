"""
Per-state observation distributions.

An emission model is anything exposing ``density``, ``sample`` and
``reestimate``; the forward-backward engine and the Baum-Welch learner only
talk to that contract, so new families can be plugged in without touching
them. Two families ship with the package:

- ``CategoricalEmission``: a probability per symbol of a finite alphabet
- ``GaussianEmission``: a univariate normal density
"""

import enum
from typing import Any, Dict, Hashable, Optional, Protocol, Sequence, Tuple, runtime_checkable

import numpy as np
from scipy.stats import norm

from ..config import get_config
from ..exceptions import InvalidParameterError


@runtime_checkable
class EmissionModel(Protocol):
    """Capability contract shared by every emission family."""

    family: str

    def density(self, observation: Any) -> float:
        """Probability (discrete) or probability density (continuous) of an observation."""
        ...

    def sample(self, rng: np.random.Generator) -> Any:
        """Draw one observation using the supplied random source."""
        ...

    def reestimate(self, observations: Sequence[Any], weights: Optional[np.ndarray] = None,
                   fallback: Optional["EmissionModel"] = None) -> "EmissionModel":
        """
        Weighted maximum-likelihood fit returned as a new instance.

        ``observations`` is either aligned with ``weights`` or, when ``weights``
        is None, a sequence of (observation, weight) pairs.
        """
        ...

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready description of the parameters."""
        ...


def categorical_draw(probabilities: np.ndarray, rng: np.random.Generator) -> int:
    """
    Draw an index from a discrete distribution by cumulative-probability inversion.

    Args:
        probabilities: Non-negative weights [K], summing to 1 up to rounding
        rng: Random source

    Returns:
        Index in [0, K)
    """
    cumulative = np.cumsum(probabilities)
    index = int(np.searchsorted(cumulative, rng.random() * cumulative[-1], side='right'))
    return min(index, len(cumulative) - 1)


def validate_probability_vector(vector: np.ndarray, name: str,
                                tolerance: Optional[float] = None) -> None:
    """
    Check that a vector is a valid probability distribution.

    Raises:
        InvalidParameterError: If the vector is empty, has values outside
            [0, 1] or does not sum to 1 within tolerance
    """
    if tolerance is None:
        tolerance = get_config('hmm', 'tolerance')

    if vector.ndim != 1 or vector.size == 0:
        raise InvalidParameterError(f"{name} must be a non-empty vector, got shape {vector.shape}")

    if not np.all(np.isfinite(vector)):
        raise InvalidParameterError(f"{name} contain non-finite values")

    total = vector.sum()
    if abs(total - 1.0) > tolerance:
        raise InvalidParameterError(f"{name} sum to {total}, expected 1.0")

    if np.any(vector < 0) or np.any(vector > 1):
        raise InvalidParameterError(f"{name} contain values outside [0, 1]")


def _observations_and_weights(observations: Sequence[Any],
                               weights: Optional[np.ndarray]) -> Tuple[Sequence[Any], np.ndarray]:
    """Split (observation, weight) pairs when no weights are given, then check the weights."""
    if weights is None:
        pairs = list(observations)
        observations = [observation for observation, _ in pairs]
        weights = [weight for _, weight in pairs]

    weights = np.asarray(weights, dtype=float)
    if weights.ndim != 1 or len(observations) != len(weights):
        raise InvalidParameterError(
            f"Got {len(observations)} observations but weights of shape {weights.shape}"
        )
    if np.any(weights < 0):
        raise InvalidParameterError("Observation weights must be non-negative")
    return observations, weights


def _symbol_label(symbol: Hashable) -> Any:
    """JSON-friendly rendering of an alphabet symbol."""
    if isinstance(symbol, enum.Enum):
        return symbol.name
    if isinstance(symbol, np.integer):
        return int(symbol)
    if isinstance(symbol, np.floating):
        return float(symbol)
    if isinstance(symbol, (str, int, float, bool)):
        return symbol
    return str(symbol)


class CategoricalEmission:
    """
    Categorical distribution over a finite, ordered alphabet.

    Symbols default to the integers ``0..K-1``; any hashable values (strings,
    enum members) may be supplied instead.
    """

    family = 'categorical'

    def __init__(self, probabilities: Sequence[float], symbols: Optional[Sequence[Hashable]] = None):
        """
        Args:
            probabilities: Probability of each symbol [K]
            symbols: Alphabet, in the same order as ``probabilities``

        Raises:
            InvalidParameterError: If the probabilities are not a distribution
                or the alphabet does not match them
        """
        probabilities = np.array(probabilities, dtype=float)
        validate_probability_vector(probabilities, "Emission probabilities")

        if symbols is None:
            symbols = tuple(range(len(probabilities)))
        symbols = tuple(symbols)

        if len(symbols) != len(probabilities):
            raise InvalidParameterError(
                f"Alphabet has {len(symbols)} symbols but {len(probabilities)} probabilities were given"
            )

        index = {symbol: k for k, symbol in enumerate(symbols)}
        if len(index) != len(symbols):
            raise InvalidParameterError("Alphabet symbols must be unique")

        probabilities.setflags(write=False)
        self._probabilities = probabilities
        self._symbols = symbols
        self._index = index

    @classmethod
    def uniform(cls, symbols) -> "CategoricalEmission":
        """Uniform distribution over an alphabet, or over ``0..K-1`` when given a count."""
        if isinstance(symbols, (int, np.integer)):
            if symbols < 1:
                raise InvalidParameterError(f"Alphabet size must be positive, got {symbols}")
            return cls(np.full(int(symbols), 1.0 / symbols))
        symbols = tuple(symbols)
        if not symbols:
            raise InvalidParameterError("Alphabet must contain at least one symbol")
        return cls(np.full(len(symbols), 1.0 / len(symbols)), symbols)

    @property
    def probabilities(self) -> np.ndarray:
        return self._probabilities.copy()

    @property
    def symbols(self) -> tuple:
        return self._symbols

    @property
    def n_symbols(self) -> int:
        return len(self._symbols)

    def symbol_index(self, observation: Any) -> int:
        try:
            return self._index[observation]
        except (KeyError, TypeError):
            raise InvalidParameterError(f"Observation {observation!r} is not in the alphabet {self._symbols}")

    def density(self, observation: Any) -> float:
        return float(self._probabilities[self.symbol_index(observation)])

    def sample(self, rng: np.random.Generator) -> Any:
        return self._symbols[categorical_draw(self._probabilities, rng)]

    def reestimate(self, observations: Sequence[Any], weights: Optional[np.ndarray] = None,
                   fallback: Optional[EmissionModel] = None) -> EmissionModel:
        """
        Weight-normalized frequency count over the alphabet.

        Args:
            observations: Observed symbols [M], or (symbol, weight) pairs
            weights: Non-negative weight of each observation [M]; None when
                ``observations`` holds pairs
            fallback: Model returned when the total weight is zero
                (defaults to this instance)

        Returns:
            New CategoricalEmission, or the fallback
        """
        observations, weights = _observations_and_weights(observations, weights)
        if weights.sum() <= 0:
            return fallback if fallback is not None else self

        indices = np.fromiter((self.symbol_index(o) for o in observations),
                              dtype=int, count=len(observations))
        counts = np.zeros(self.n_symbols)
        np.add.at(counts, indices, weights)

        return CategoricalEmission(counts / counts.sum(), self._symbols)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'family': self.family,
            'probabilities': self._probabilities.tolist(),
            'symbols': [_symbol_label(s) for s in self._symbols]
        }

    @classmethod
    def from_dict(cls, document: Dict[str, Any]) -> "CategoricalEmission":
        return cls(document['probabilities'], document.get('symbols'))

    def __eq__(self, other):
        if not isinstance(other, CategoricalEmission):
            return NotImplemented
        return (self._symbols == other._symbols
                and np.array_equal(self._probabilities, other._probabilities))

    def __repr__(self) -> str:
        pairs = ", ".join(f"{_symbol_label(s)}: {p:.4g}"
                          for s, p in zip(self._symbols, self._probabilities))
        return f"CategoricalEmission({{{pairs}}})"


class GaussianEmission:
    """Univariate normal emission density."""

    family = 'gaussian'

    def __init__(self, mean: float = 0.0, variance: float = 1.0, min_variance: Optional[float] = None):
        if not np.isfinite(mean):
            raise InvalidParameterError(f"Gaussian mean must be finite, got {mean}")
        if not np.isfinite(variance) or variance <= 0:
            raise InvalidParameterError(f"Gaussian variance must be positive, got {variance}")

        self.mean = float(mean)
        self.variance = float(variance)
        self.min_variance = float(min_variance if min_variance is not None else get_config('hmm', 'min_variance'))

    @property
    def std(self) -> float:
        return float(np.sqrt(self.variance))

    def density(self, observation: Any) -> float:
        return float(norm.pdf(observation, loc=self.mean, scale=self.std))

    def sample(self, rng: np.random.Generator) -> float:
        return float(rng.normal(self.mean, self.std))

    def reestimate(self, observations: Sequence[Any], weights: Optional[np.ndarray] = None,
                   fallback: Optional[EmissionModel] = None) -> EmissionModel:
        """
        Weighted mean and variance; the variance is floored at ``min_variance``.
        """
        observations, weights = _observations_and_weights(observations, weights)
        total = weights.sum()
        if total <= 0:
            return fallback if fallback is not None else self

        values = np.asarray(observations, dtype=float)
        mean = float(np.dot(weights, values) / total)
        variance = float(np.dot(weights, (values - mean) ** 2) / total)

        return GaussianEmission(mean, max(variance, self.min_variance), self.min_variance)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'family': self.family,
            'mean': self.mean,
            'variance': self.variance,
            'min_variance': self.min_variance
        }

    @classmethod
    def from_dict(cls, document: Dict[str, Any]) -> "GaussianEmission":
        return cls(document['mean'], document['variance'], document.get('min_variance'))

    def __eq__(self, other):
        if not isinstance(other, GaussianEmission):
            return NotImplemented
        return (self.mean == other.mean
                and self.variance == other.variance
                and self.min_variance == other.min_variance)

    def __repr__(self) -> str:
        return f"GaussianEmission(mean={self.mean:.4g}, variance={self.variance:.4g})"


EMISSION_FAMILIES = {
    CategoricalEmission.family: CategoricalEmission,
    GaussianEmission.family: GaussianEmission,
}


def emission_from_dict(document: Dict[str, Any]) -> EmissionModel:
    """Rebuild an emission model from its ``to_dict`` description."""
    family = document.get('family')
    if family not in EMISSION_FAMILIES:
        raise InvalidParameterError(
            f"Unknown emission family {family!r}, expected one of {sorted(EMISSION_FAMILIES)}"
        )
    return EMISSION_FAMILIES[family].from_dict(document)
