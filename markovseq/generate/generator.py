"""
Sampling of state paths and observation sequences from a model.
"""

from typing import Any, Iterator, List, Optional, Tuple, Union

import numpy as np

from ..config import get_config
from ..exceptions import InvalidParameterError
from ..hmm.emissions import categorical_draw
from ..logger import get_logger

logger = get_logger(__name__)

RandomState = Union[None, int, np.random.SeedSequence, np.random.Generator]


def check_positive(value: int, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value < 1:
        raise InvalidParameterError(f"{name} must be a positive integer, got {value!r}")
    return int(value)


class SequenceGenerator:
    """
    Draws sequences from a model using its own random stream.

    A generator instance is not meant to be shared between concurrent
    workers; use ``spawn`` to give each worker an independent stream.

    Every instance constructed without ``random_state`` starts from the
    configured ``generation.random_seed``, so two such instances repeat each
    other when a seed is configured. The module-level ``generate`` and
    ``generate_sequences`` share one stream instead.
    """

    def __init__(self, random_state: RandomState = None):
        """
        Args:
            random_state: Seed, SeedSequence or numpy Generator; defaults to
                the configured seed (fresh entropy when that is None)
        """
        if random_state is None:
            random_state = get_config('generation', 'random_seed')

        if isinstance(random_state, np.random.Generator):
            self._seed_sequence = None
            self.rng = random_state
        else:
            if not isinstance(random_state, np.random.SeedSequence):
                random_state = np.random.SeedSequence(random_state)
            self._seed_sequence = random_state
            self.rng = np.random.default_rng(random_state)

    def spawn(self, n: int) -> List["SequenceGenerator"]:
        """Independent child generators for parallel workers."""
        n = check_positive(n, "Number of generators")
        if self._seed_sequence is not None:
            children = self._seed_sequence.spawn(n)
        else:
            children = [np.random.SeedSequence(int(s)) for s in self.rng.integers(0, 2 ** 63 - 1, size=n)]
        return [SequenceGenerator(child) for child in children]

    def iter_states_and_observations(self, model, length: int) -> Iterator[Tuple[int, Any]]:
        """
        Lazily yield ``length`` (state, observation) pairs.

        Raises:
            InvalidParameterError: If length < 1 (raised on call, not on first iteration)
        """
        length = check_positive(length, "Sequence length")
        return self._walk(model, length)

    def _walk(self, model, length: int) -> Iterator[Tuple[int, Any]]:
        transition = model.transition_matrix
        state = categorical_draw(model.initial_distribution, self.rng)

        for t in range(length):
            yield state, model.emission(state).sample(self.rng)
            if t + 1 < length:
                state = categorical_draw(transition[state], self.rng)

    def iter_observations(self, model, length: int) -> Iterator[Any]:
        """Lazily yield ``length`` observations; every call is an independent draw."""
        pairs = self.iter_states_and_observations(model, length)
        return (observation for _, observation in pairs)

    def generate(self, model, length: int) -> Tuple[Any, ...]:
        """Draw one observation sequence of exactly ``length`` observations."""
        return tuple(self.iter_observations(model, length))

    def generate_with_states(self, model, length: int) -> Tuple[Tuple[int, ...], Tuple[Any, ...]]:
        """Draw a hidden state path together with its observations."""
        pairs = list(self.iter_states_and_observations(model, length))
        states = tuple(state for state, _ in pairs)
        observations = tuple(observation for _, observation in pairs)
        return states, observations

    def generate_many(self, model, length: int, count: int) -> List[Tuple[Any, ...]]:
        """Draw ``count`` independent sequences of ``length`` observations."""
        count = check_positive(count, "Sequence count")
        length = check_positive(length, "Sequence length")

        sequences = [self.generate(model, length) for _ in range(count)]
        logger.debug(f"Generated {count} sequences of length {length}")
        return sequences


_shared_generator: Optional[SequenceGenerator] = None
_shared_seed = None


def _default_generator() -> SequenceGenerator:
    """Process-wide stream, reseeded only when the configured seed changes."""
    global _shared_generator, _shared_seed

    seed = get_config('generation', 'random_seed')
    if _shared_generator is None or seed != _shared_seed:
        _shared_generator = SequenceGenerator(seed)
        _shared_seed = seed
    return _shared_generator


def _generator_for(random_state: RandomState) -> SequenceGenerator:
    if random_state is None:
        return _default_generator()
    return SequenceGenerator(random_state)


def generate(model, length: int, random_state: RandomState = None) -> Tuple[Any, ...]:
    """
    Draw one observation sequence from a model.

    Without ``random_state`` successive calls continue one shared stream,
    so every call is a fresh draw.
    """
    return _generator_for(random_state).generate(model, length)


def generate_sequences(model, length: int, count: int, random_state: RandomState = None) -> List[Tuple[Any, ...]]:
    """Draw ``count`` observation sequences from a model."""
    return _generator_for(random_state).generate_many(model, length, count)
