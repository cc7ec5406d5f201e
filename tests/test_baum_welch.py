"""
Tests for Baum-Welch re-estimation.

Tests cover agreement with an enumeration-based reference step,
monotonic likelihood ascent, handling of infeasible sequences and
unvisited states, and associativity of the statistics reduction.
"""

import functools
import operator

import numpy as np
import pytest

from markovseq.exceptions import InvalidParameterError, NoFeasibleDataError
from markovseq.generate import SequenceGenerator
from markovseq.hmm import CategoricalEmission, HiddenMarkovModel
from markovseq.train import BaumWelchLearner, HMMTrainer, SufficientStatistics, iterate


@pytest.fixture
def learner():
    return BaumWelchLearner(n_jobs=1)


@pytest.fixture
def integer_sequences():
    return [[0, 1, 2], [2, 2, 1, 0], [1], [0, 0, 2, 1]]


class TestIterate:
    """Test a single EM step."""

    def test_matches_reference_step(self, learner, integer_hmm, integer_sequences, brute_force_baum_welch):
        """Test re-estimated parameters against explicit path enumeration."""
        expected_pi, expected_A, expected_B = brute_force_baum_welch(integer_hmm, integer_sequences, 3)

        new_model = learner.iterate(integer_hmm, integer_sequences)

        np.testing.assert_allclose(new_model.initial_distribution, expected_pi, atol=1e-12)
        np.testing.assert_allclose(new_model.transition_matrix, expected_A, atol=1e-12)
        for i in range(2):
            np.testing.assert_allclose(new_model.emission(i).probabilities, expected_B[i], atol=1e-12)

    def test_input_model_untouched(self, learner, packet_hmm, packet_sequences):
        """Test that iterate returns a new model."""
        before = packet_hmm.to_dict()

        new_model = learner.iterate(packet_hmm, packet_sequences)

        assert new_model is not packet_hmm
        assert packet_hmm.to_dict() == before

    def test_result_is_stochastic(self, learner, initial_guess_hmm, packet_sequences):
        """Test that re-estimated distributions sum to 1."""
        new_model = learner.iterate(initial_guess_hmm, packet_sequences)

        assert abs(new_model.initial_distribution.sum() - 1.0) < 1e-9
        np.testing.assert_allclose(new_model.transition_matrix.sum(axis=1), 1.0, atol=1e-9)
        for emission in new_model.emissions:
            assert abs(emission.probabilities.sum() - 1.0) < 1e-9

    def test_monotonic_likelihood(self, learner, initial_guess_hmm, packet_sequences):
        """Test that EM never decreases the batch log-likelihood."""
        model = initial_guess_hmm
        previous = HMMTrainer.compute_total_log_likelihood(model, packet_sequences)

        for _ in range(5):
            model = learner.iterate(model, packet_sequences)
            current = HMMTrainer.compute_total_log_likelihood(model, packet_sequences)
            assert current >= previous - 1e-8
            previous = current

    def test_last_log_likelihood(self, learner, initial_guess_hmm, packet_sequences):
        """Test that the batch log-likelihood of the input model is recorded."""
        learner.iterate(initial_guess_hmm, packet_sequences)

        expected = HMMTrainer.compute_total_log_likelihood(initial_guess_hmm, packet_sequences)
        assert learner.last_log_likelihood == pytest.approx(expected)

    def test_module_level_iterate(self, integer_hmm, integer_sequences):
        """Test the functional entry point."""
        expected = BaumWelchLearner(n_jobs=1).iterate(integer_hmm, integer_sequences)

        result = iterate(integer_hmm, integer_sequences, n_jobs=1)

        np.testing.assert_allclose(result.transition_matrix, expected.transition_matrix)

    def test_empty_batch(self, learner, packet_hmm):
        """Test that an empty batch is rejected."""
        with pytest.raises(InvalidParameterError, match="cannot be empty"):
            learner.iterate(packet_hmm, [])


class TestDegenerateData:
    """Test infeasible sequences and unvisited states."""

    @pytest.fixture
    def blocked_hmm(self):
        return HiddenMarkovModel(
            [0.5, 0.5],
            [[0.9, 0.1], [0.1, 0.9]],
            [CategoricalEmission([0.6, 0.4, 0.0]), CategoricalEmission([0.3, 0.7, 0.0])]
        )

    def test_infeasible_sequence_is_skipped(self, learner, blocked_hmm):
        """Test that infeasible sequences contribute zero weight."""
        feasible = [[0, 1, 0], [1, 1]]

        with_infeasible = learner.iterate(blocked_hmm, feasible + [[0, 2, 1]])
        without = learner.iterate(blocked_hmm, feasible)

        np.testing.assert_allclose(with_infeasible.initial_distribution, without.initial_distribution)
        np.testing.assert_allclose(with_infeasible.transition_matrix, without.transition_matrix)

    def test_all_infeasible(self, learner, blocked_hmm):
        """Test that an entirely infeasible batch raises NoFeasibleDataError."""
        with pytest.raises(NoFeasibleDataError):
            learner.iterate(blocked_hmm, [[2], [0, 2]])

    def test_unvisited_state_keeps_parameters(self, learner):
        """Test that zero normalisers leave the previous parameters in place."""
        unreachable = CategoricalEmission([0.2, 0.8])
        model = HiddenMarkovModel(
            [1.0, 0.0],
            [[1.0, 0.0], [0.5, 0.5]],
            [CategoricalEmission([0.5, 0.5]), unreachable]
        )

        new_model = learner.iterate(model, [[0, 1, 1], [1, 0]])

        np.testing.assert_allclose(new_model.initial_distribution, [1.0, 0.0])
        np.testing.assert_allclose(new_model.transition_matrix[1], [0.5, 0.5])
        assert new_model.emission(1) is unreachable
        np.testing.assert_allclose(new_model.emission(0).probabilities, [0.4, 0.6])

    def test_single_observation_sequences(self, learner, integer_hmm):
        """Test that length-1 sequences only update initial and emission parameters."""
        new_model = learner.iterate(integer_hmm, [[0], [2]])

        np.testing.assert_allclose(new_model.transition_matrix, integer_hmm.transition_matrix)
        assert abs(new_model.initial_distribution.sum() - 1.0) < 1e-12


class TestSufficientStatistics:
    """Test the statistics reduction."""

    def test_combination_is_order_independent(self, learner, integer_hmm, integer_sequences):
        """Test that partial statistics can be merged in any order."""
        parts = [learner.expectation(integer_hmm, s) for s in integer_sequences]

        forward = ((parts[0] + parts[1]) + parts[2]) + parts[3]
        backward = parts[3] + (parts[2] + (parts[1] + parts[0]))

        np.testing.assert_allclose(forward.initial_occupancy, backward.initial_occupancy)
        np.testing.assert_allclose(forward.transition_counts, backward.transition_counts)
        assert forward.n_sequences == backward.n_sequences == 4
        assert forward.log_likelihood == pytest.approx(backward.log_likelihood)
        assert sorted(forward.observations) == sorted(backward.observations)
        np.testing.assert_allclose(forward.emission_weights.sum(axis=0),
                                   backward.emission_weights.sum(axis=0))

    def test_weighted_observations(self, learner, integer_hmm):
        """Test the per-state (observation, weight) view."""
        stats = learner.expectation(integer_hmm, [0, 2])

        pairs = stats.weighted_observations(1)

        assert [o for o, _ in pairs] == [0, 2]
        assert all(0.0 <= w <= 1.0 for _, w in pairs)

    def test_expectation_of_infeasible_sequence(self, learner):
        """Test that infeasible sequences produce no statistics."""
        model = HiddenMarkovModel([1.0], [[1.0]], [CategoricalEmission([1.0, 0.0])])

        assert learner.expectation(model, [1]) is None

    def test_combine_matches_chained_addition(self, learner, packet_hmm):
        """Test that the one-pass reduction equals pairwise addition over many partials."""
        sequences = SequenceGenerator(random_state=3).generate_many(packet_hmm, length=15, count=300)
        parts = [learner.expectation(packet_hmm, s) for s in sequences]

        chained = functools.reduce(operator.add, parts, SufficientStatistics.empty(2))
        combined = SufficientStatistics.combine(parts, 2)

        np.testing.assert_allclose(combined.initial_occupancy, chained.initial_occupancy)
        np.testing.assert_allclose(combined.transition_counts, chained.transition_counts)
        np.testing.assert_allclose(combined.emission_weights, chained.emission_weights)
        assert combined.observations == chained.observations
        assert combined.n_sequences == chained.n_sequences == 300
        assert combined.log_likelihood == pytest.approx(chained.log_likelihood)

    def test_accumulate_uses_one_pass_reduction(self, learner, packet_hmm):
        """Test that batch accumulation agrees with combining per-sequence statistics."""
        sequences = SequenceGenerator(random_state=4).generate_many(packet_hmm, length=10, count=50)

        accumulated = learner.accumulate(packet_hmm, sequences)
        combined = SufficientStatistics.combine([learner.expectation(packet_hmm, s) for s in sequences], 2)

        np.testing.assert_allclose(accumulated.transition_counts, combined.transition_counts)
        assert accumulated.emission_weights.shape == (500, 2)
        assert len(accumulated.observations) == 500

    def test_combine_empty(self):
        """Test that combining nothing gives empty statistics."""
        combined = SufficientStatistics.combine([], 3)

        assert combined.n_sequences == 0
        assert combined.emission_weights.shape == (0, 3)

    def test_combine_rejects_mismatched_states(self):
        """Test that the one-pass reduction checks state counts."""
        with pytest.raises(InvalidParameterError):
            SufficientStatistics.combine([SufficientStatistics.empty(2), SufficientStatistics.empty(3)], 2)

    def test_mismatched_state_counts(self):
        """Test that statistics over different state spaces cannot be combined."""
        with pytest.raises(InvalidParameterError):
            SufficientStatistics.empty(2) + SufficientStatistics.empty(3)


class TestLearn:
    """Test fixed-count learning."""

    def test_learn_equals_repeated_iterate(self, learner, integer_hmm, integer_sequences):
        """Test that learn() chains iterate()."""
        expected = integer_hmm
        for _ in range(3):
            expected = learner.iterate(expected, integer_sequences)

        result = learner.learn(integer_hmm, integer_sequences, n_iterations=3)

        np.testing.assert_allclose(result.transition_matrix, expected.transition_matrix)
        np.testing.assert_allclose(result.initial_distribution, expected.initial_distribution)

    def test_zero_iterations(self, learner, integer_hmm, integer_sequences):
        """Test that zero iterations return the input model."""
        assert learner.learn(integer_hmm, integer_sequences, n_iterations=0) is integer_hmm


@pytest.mark.slow
class TestParallelExpectation:
    """Test the joblib-parallel E-step."""

    def test_parallel_matches_sequential(self, initial_guess_hmm, packet_sequences):
        """Test that worker count does not change the result."""
        sequential = BaumWelchLearner(n_jobs=1).iterate(initial_guess_hmm, packet_sequences[:20])
        parallel = BaumWelchLearner(n_jobs=2).iterate(initial_guess_hmm, packet_sequences[:20])

        np.testing.assert_allclose(parallel.initial_distribution, sequential.initial_distribution)
        np.testing.assert_allclose(parallel.transition_matrix, sequential.transition_matrix)
        for a, b in zip(parallel.emissions, sequential.emissions):
            np.testing.assert_allclose(a.probabilities, b.probabilities)
