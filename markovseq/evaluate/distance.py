"""
Monte-Carlo Kullback-Leibler distance between two models.

Sequences are drawn from the first model and scored under both; the
estimate is the mean per-observation log-likelihood ratio. The measure is
asymmetric and its variance shrinks as ``sample_count`` grows.
"""

from typing import Optional

import numpy as np
from joblib import Parallel, delayed

from ..config import get_config
from ..exceptions import NoFeasibleDataError
from ..generate.generator import RandomState, SequenceGenerator, check_positive
from ..hmm.forward_backward import log_probability
from ..logger import get_logger

logger = get_logger(__name__)


class KullbackLeiblerDistance:
    """Estimates KL(model_a || model_b) by sampling from model_a."""

    def __init__(self,
                 sample_count: Optional[int] = None,
                 sequence_length: Optional[int] = None,
                 random_state: RandomState = None,
                 n_jobs: Optional[int] = None):
        """
        Args:
            sample_count: Number of sampled sequences (default from config)
            sequence_length: Length of each sampled sequence (default from config)
            random_state: Seed for the sampling streams
            n_jobs: Parallel workers for generation and scoring
        """
        self.sample_count = check_positive(
            sample_count if sample_count is not None else get_config('distance', 'sample_count'),
            "Sample count"
        )
        self.sequence_length = check_positive(
            sequence_length if sequence_length is not None else get_config('distance', 'sequence_length'),
            "Sequence length"
        )
        self.random_state = random_state
        self.n_jobs = n_jobs if n_jobs is not None else get_config('training', 'n_jobs')

    def _sample_term(self, generator: SequenceGenerator, model_a, model_b) -> Optional[float]:
        sequence = generator.generate(model_a, self.sequence_length)

        log_p_a = log_probability(model_a, sequence)
        log_p_b = log_probability(model_b, sequence)
        if not (np.isfinite(log_p_a) and np.isfinite(log_p_b)):
            return None

        return (log_p_a - log_p_b) / self.sequence_length

    def distance(self, model_a, model_b) -> float:
        """
        Estimate the distance of ``model_b`` from ``model_a``.

        Raises:
            NoFeasibleDataError: If every sampled sequence was infeasible under a model
        """
        generators = SequenceGenerator(self.random_state).spawn(self.sample_count)

        if self.n_jobs == 1:
            terms = [self._sample_term(g, model_a, model_b) for g in generators]
        else:
            terms = Parallel(n_jobs=self.n_jobs)(
                delayed(self._sample_term)(g, model_a, model_b) for g in generators
            )

        feasible = [term for term in terms if term is not None]
        if not feasible:
            raise NoFeasibleDataError(f"All {self.sample_count} sampled sequences were infeasible")

        excluded = len(terms) - len(feasible)
        if excluded:
            logger.warning(f"{excluded} of {len(terms)} sampled sequences excluded as infeasible")

        estimate = float(np.mean(feasible))
        logger.debug(f"KL distance estimate over {len(feasible)} samples: {estimate:.6f}")
        return estimate


def distance(model_a, model_b,
             sample_count: Optional[int] = None,
             sequence_length: Optional[int] = None,
             random_state: RandomState = None,
             n_jobs: Optional[int] = None) -> float:
    """Monte-Carlo estimate of KL(model_a || model_b)."""
    return KullbackLeiblerDistance(sample_count, sequence_length, random_state, n_jobs).distance(model_a, model_b)
