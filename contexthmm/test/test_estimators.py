#!/usr/bin/env python
"""Tests of sufficient statistics, transition pruning, and estimators"""
import numpy
import pytest
from numpy.testing import assert_almost_equal, assert_array_equal

from contexthmm.alphabet import NUCLEOTIDE
from contexthmm.estimators import (
    StateEstimator,
    SufficientStatistics,
    TransitionEstimator,
    prune_transitions,
)
from contexthmm.factors import ContextProfile, MultinomialEmission
from contexthmm.forward_backward import expected_transitions, forward_backward
from contexthmm.hmm import ContextHMM
from contexthmm.subjects import Sequence
from contexthmm.test.common import BINARY, get_random_hmm, get_random_sequence, get_two_state_hmm
from contexthmm.util import NormalizationError


class TestPruneTransitions():

    def test_keeps_largest(self):
        assert prune_transitions({1: 0.6, 2: 0.3, 3: 0.1}, 1) == {1: 0.6}
        assert prune_transitions({1: 0.6, 2: 0.3, 3: 0.1}, 2) == {1: 0.6, 2: 0.3}

    def test_ties_favor_lower_index(self):
        assert prune_transitions({4: 0.5, 2: 0.5, 7: 0.5}, 2) == {2: 0.5, 4: 0.5}

    def test_zero_means_no_limit(self):
        weights = {1: 0.6, 2: 0.3, 3: 0.1}
        assert prune_transitions(weights, 0) == weights

    def test_limit_above_size(self):
        weights = {1: 0.6, 2: 0.4}
        assert prune_transitions(weights, 5) == weights


class TestSufficientStatistics():

    def test_like(self):
        hmm = get_two_state_hmm()
        stats = SufficientStatistics.like(hmm)
        assert stats.transitions == {(0, 1): 0.0, (1, 0): 0.0}
        assert stats.profiles.shape == (2, 1, 2)
        assert stats.priors.shape == (2, )

    def test_scale_and_add(self):
        a = SufficientStatistics(2, 1, 2)
        a.transitions = {(0, 1): 2.0, (1, 0): 4.0}
        a.priors[:] = [1.0, 3.0]
        a.profiles[:] = 2.0

        b = SufficientStatistics(2, 1, 2)
        b.transitions = {(0, 1): 1.0, (1, 1): 1.0}
        b.priors[:] = [1.0, 1.0]
        b.profiles[:] = 1.0

        a.scale_and_add(0.5, b)
        assert a.transitions == {(0, 1): 2.0, (1, 0): 2.0, (1, 1): 1.0}
        assert_almost_equal(a.priors, [1.5, 2.5])
        assert_almost_equal(a.profiles, numpy.full((2, 1, 2), 2.0))

    def test_scale_by_zero_replaces(self):
        a = SufficientStatistics(1, 1, 2)
        a.priors[:] = 5.0
        b = SufficientStatistics(1, 1, 2)
        b.priors[:] = 2.0
        a.scale_and_add(0.0, b)
        assert_almost_equal(a.priors, [2.0])

    def test_reset_keeps_keys(self):
        a = SufficientStatistics(2, 1, 2)
        a.transitions = {(0, 1): 2.0}
        a.priors[:] = 1.0
        a.reset()
        assert a.transitions == {(0, 1): 0.0}
        assert_array_equal(a.priors, [0.0, 0.0])


class TestTransitionEstimator():

    @classmethod
    def setup_class(cls):
        cls.hmm = ContextHMM(
            [ContextProfile([[0.5, 0.5]], prior=1.0)],
            BINARY,
            transitions={(0, 0): 1.0},
        )

    def _three_state_hmm(self):
        profiles = [ContextProfile([[0.5, 0.5]], prior=1.0 / 3) for _ in range(3)]
        hmm = ContextHMM(profiles, BINARY)
        for k in range(3):
            hmm.set_out_transitions(k, {0: 1.0 / 3, 1: 1.0 / 3, 2: 1.0 / 3})
        return hmm

    def test_normalized_with_pseudocounts(self):
        hmm = self._three_state_hmm()
        stats = SufficientStatistics.like(hmm)
        stats.transitions[(0, 1)] = 4.0
        stats.transitions[(0, 2)] = 1.0

        new = TransitionEstimator(pseudocount=1.0).construct_factors(hmm, stats)
        assert_almost_equal(new[0][0], 1.0 / 8)
        assert_almost_equal(new[0][1], 5.0 / 8)
        assert_almost_equal(new[0][2], 2.0 / 8)
        for weights in new:
            assert_almost_equal(sum(weights.values()), 1.0)

    def test_zero_counts_dropped_without_pseudocounts(self):
        hmm = self._three_state_hmm()
        stats = SufficientStatistics.like(hmm)
        stats.transitions[(0, 1)] = 4.0
        stats.transitions[(1, 1)] = 1.0
        stats.transitions[(2, 2)] = 1.0

        new = TransitionEstimator(pseudocount=0.0).construct_factors(hmm, stats)
        assert new[0] == {1: 1.0}

    def test_no_mass_raises(self):
        hmm = self._three_state_hmm()
        stats = SufficientStatistics.like(hmm)
        stats.transitions[(0, 1)] = 4.0
        with pytest.raises(NormalizationError):
            TransitionEstimator(pseudocount=0.0).construct_factors(hmm, stats)

    def test_pruning(self):
        hmm = self._three_state_hmm()
        stats = SufficientStatistics.like(hmm)
        stats.transitions[(0, 1)] = 6.0
        stats.transitions[(0, 2)] = 3.0

        new = TransitionEstimator(pseudocount=1.0, max_connectivity=1).construct_factors(hmm, stats)
        assert new[0] == {1: 1.0}
        # rows holding only pseudocounts are all ties, so the lowest target is kept
        assert new[1] == {0: 1.0}
        assert new[2] == {0: 1.0}

    def test_reduce_data_matches_expected_transitions(self):
        hmm = get_random_hmm(3, 1, NUCLEOTIDE, 20)
        emission = MultinomialEmission(1)
        seq = get_random_sequence(12, NUCLEOTIDE, 21)
        fbm = forward_backward(hmm, seq, emission)

        stats = SufficientStatistics.like(hmm)
        TransitionEstimator().reduce_data(hmm, seq, fbm, stats)
        TransitionEstimator().reduce_data(hmm, seq, fbm, stats)

        sources, targets, counts = expected_transitions(hmm, fbm)
        for k, l, c in zip(sources, targets, counts):
            assert_almost_equal(stats.transitions[(k, l)], 2 * c)

    def test_invalid_parameters_raise(self):
        with pytest.raises(ValueError):
            TransitionEstimator(pseudocount=-1)
        with pytest.raises(ValueError):
            TransitionEstimator(max_connectivity=-1)


class TestStateEstimator():

    def test_reduce_data_window_offsets(self):
        # one state, so posteriors are all 1 and profile statistics are
        # plain residue counts at each window offset
        profiles = [ContextProfile(numpy.full((3, 2), 0.5), prior=1.0)]
        hmm = ContextHMM(profiles, BINARY, transitions={(0, 0): 1.0})
        seq = Sequence([0, 0, 1, 1], BINARY)
        fbm = forward_backward(hmm, seq, MultinomialEmission(3))

        stats = SufficientStatistics.like(hmm)
        StateEstimator().reduce_data(hmm, seq, fbm, stats)

        assert_almost_equal(stats.priors, [4.0])
        # column 0 sees positions 0..2, column 1 positions 0..3, column 2 positions 1..3
        assert_almost_equal(stats.profiles[0, 0], [2.0, 1.0])
        assert_almost_equal(stats.profiles[0, 1], [2.0, 2.0])
        assert_almost_equal(stats.profiles[0, 2], [1.0, 2.0])

    def test_construct_factors(self):
        hmm = get_two_state_hmm()
        stats = SufficientStatistics.like(hmm)
        stats.priors[:] = [3.0, 1.0]
        stats.profiles[0, 0] = [3.0, 1.0]
        stats.profiles[1, 0] = [1.0, 1.0]

        priors, profiles = StateEstimator().construct_factors(hmm, stats)
        assert_almost_equal(priors, [0.75, 0.25])
        assert all(X.logspace for X in profiles)
        assert_almost_equal(profiles[0].probs(), [[0.75, 0.25]])
        assert_almost_equal(profiles[1].probs(), [[0.5, 0.5]])

    def test_state_pseudocounts(self):
        hmm = get_two_state_hmm()
        stats = SufficientStatistics.like(hmm)
        stats.priors[:] = [1.0, 1.0]
        stats.profiles[0, 0] = [1.0, 0.0]
        stats.profiles[1, 0] = [0.0, 1.0]

        _, profiles = StateEstimator(state_pseudocount=0.5).construct_factors(hmm, stats)
        background = BINARY.background
        assert_almost_equal(profiles[0].probs()[0], 0.5 * numpy.array([1.0, 0.0]) + 0.5 * background)
        assert_almost_equal(profiles[1].probs()[0], 0.5 * numpy.array([0.0, 1.0]) + 0.5 * background)

    def test_empty_column_raises(self):
        hmm = get_two_state_hmm()
        stats = SufficientStatistics.like(hmm)
        stats.priors[:] = [1.0, 1.0]
        stats.profiles[0, 0] = [1.0, 1.0]
        with pytest.raises(NormalizationError):
            StateEstimator().construct_factors(hmm, stats)

    def test_empty_priors_raise(self):
        hmm = get_two_state_hmm()
        stats = SufficientStatistics.like(hmm)
        with pytest.raises(NormalizationError):
            StateEstimator().construct_factors(hmm, stats)
