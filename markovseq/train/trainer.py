"""
HMMTrainer: repeated Baum-Welch steps with convergence monitoring.

The Baum-Welch learner performs exactly one EM step per call. This module
is the caller-side loop around it: stop after ``max_iterations`` or once the
batch log-likelihood improves by less than ``convergence_tolerance``.
"""

import time
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np

from .baum_welch import BaumWelchLearner
from ..config import get_config
from ..exceptions import InvalidParameterError, NoFeasibleDataError
from ..hmm.forward_backward import log_probability
from ..hmm.model import HiddenMarkovModel
from ..logger import get_logger

logger = get_logger(__name__)


class HMMTrainer:
    """
    Baum-Welch training loop with a log-likelihood stopping rule.
    """

    def __init__(self,
                 max_iterations: Optional[int] = None,
                 convergence_tolerance: Optional[float] = None,
                 n_jobs: Optional[int] = None):
        """
        Initialize HMMTrainer.

        Args:
            max_iterations: Maximum Baum-Welch iterations (default from config)
            convergence_tolerance: Stop when log-likelihood improvement < tolerance
                (default from config)
            n_jobs: Parallel workers for the E-step (default from config)
        """
        self.max_iterations = max_iterations if max_iterations is not None else get_config('training', 'max_iterations')
        self.convergence_tolerance = (convergence_tolerance if convergence_tolerance is not None
                                      else get_config('training', 'convergence_tolerance'))
        self.learner = BaumWelchLearner(n_jobs=n_jobs)

        if self.max_iterations < 1:
            raise InvalidParameterError(f"max_iterations must be positive, got {self.max_iterations}")

        logger.debug(f"HMMTrainer initialized: max_iterations={self.max_iterations}, "
                     f"tolerance={self.convergence_tolerance}")

    @staticmethod
    def compute_total_log_likelihood(model: HiddenMarkovModel, sequences: Sequence[Sequence[Any]]) -> float:
        """
        Total log-likelihood over the feasible sequences of a batch.

        Raises:
            NoFeasibleDataError: If no sequence is feasible
        """
        scores = [log_probability(model, sequence) for sequence in sequences]
        finite = [s for s in scores if np.isfinite(s)]
        if not finite:
            raise NoFeasibleDataError(f"All {len(scores)} sequences are infeasible under the model")
        return float(sum(finite))

    def train(self, model: HiddenMarkovModel, sequences: Sequence[Sequence[Any]],
              verbose: bool = False) -> Tuple[HiddenMarkovModel, Dict[str, Any]]:
        """
        Train a model until convergence or the iteration cap.

        Args:
            model: Initial model (left untouched)
            sequences: Training sequences
            verbose: Log progress at INFO level instead of DEBUG

        Returns:
            Tuple of (trained model, training statistics) where the statistics hold:
            - 'converged': Whether training converged
            - 'iterations': Number of iterations performed
            - 'final_log_likelihood': Final log-likelihood
            - 'log_likelihood_history': Log-likelihood before training and after each iteration
            - 'improvement_history': Improvement per iteration
            - 'training_time': Wall-clock seconds
        """
        sequences = [tuple(sequence) for sequence in sequences]
        if not sequences:
            raise InvalidParameterError("sequences cannot be empty")

        log = logger.info if verbose else logger.debug

        log_likelihood_history = []
        improvement_history = []
        converged = False
        start_time = time.time()

        prev_log_likelihood = self.compute_total_log_likelihood(model, sequences)
        log_likelihood_history.append(prev_log_likelihood)

        log(f"Starting HMM training with {len(sequences)} sequences")
        log(f"Initial log-likelihood: {prev_log_likelihood:.6f}")

        for iteration in range(self.max_iterations):
            model = self.learner.iterate(model, sequences)

            current_log_likelihood = self.compute_total_log_likelihood(model, sequences)
            improvement = current_log_likelihood - prev_log_likelihood
            log_likelihood_history.append(current_log_likelihood)
            improvement_history.append(improvement)

            log(f"Iteration {iteration + 1}: log_likelihood={current_log_likelihood:.6f}, "
                f"improvement={improvement:.6f}")

            # EM never decreases the likelihood beyond rounding
            if improvement < -1e-6:
                logger.warning(f"Log-likelihood decreased by {-improvement:.6f} at iteration {iteration + 1}")

            if improvement < self.convergence_tolerance:
                converged = True
                log(f"Converged after {iteration + 1} iterations "
                    f"(improvement {improvement:.6f} < tolerance {self.convergence_tolerance})")
                break

            prev_log_likelihood = current_log_likelihood

        if not converged:
            log(f"Training stopped after {self.max_iterations} iterations without convergence")

        training_stats = {
            'converged': converged,
            'iterations': len(improvement_history),
            'final_log_likelihood': log_likelihood_history[-1],
            'log_likelihood_history': log_likelihood_history,
            'improvement_history': improvement_history,
            'training_time': time.time() - start_time
        }

        logger.debug(f"Training completed: converged={converged}, iterations={len(improvement_history)}")

        return model, training_stats
