#!/usr/bin/env python
import numpy
import pytest
from numpy.testing import assert_almost_equal, assert_array_equal

from contexthmm.alphabet import NUCLEOTIDE
from contexthmm.factors import ContextProfile, MultinomialEmission, normalize
from contexthmm.subjects import CountProfile, Sequence
from contexthmm.test.common import get_random_count_profile, get_random_sequence
from contexthmm.util import ConfigurationError, NormalizationError


class TestContextProfile():

    @classmethod
    def setup_class(cls):
        cls.data = numpy.array([
            [0.5, 0.5, 0.0, 0.0],
            [0.1, 0.2, 0.3, 0.4],
            [1.0, 0.0, 0.0, 0.0],
        ])

    def test_center(self):
        profile = ContextProfile(self.data)
        assert profile.num_cols == 3
        assert profile.alphabet_size == 4
        assert profile.center == 1

    def test_log_and_linear_transforms(self):
        profile = ContextProfile(self.data.copy())
        profile.transform_to_logspace()
        assert profile.logspace
        assert profile.data[0, 2] == -numpy.inf
        assert_almost_equal(profile.data[0, 0], -1.0)

        profile.transform_to_linspace()
        assert not profile.logspace
        assert_almost_equal(profile.data, self.data)

    def test_log_probs_regardless_of_space(self):
        linear = ContextProfile(self.data.copy())
        log = ContextProfile(self.data.copy())
        log.transform_to_logspace()
        assert_array_equal(linear.log_probs(), log.log_probs())
        assert_almost_equal(log.probs(), self.data)

    def test_normalize(self):
        profile = ContextProfile(self.data * 3)
        normalize(profile)
        assert_almost_equal(profile.data, self.data)

    def test_normalize_keeps_logspace(self):
        profile = ContextProfile(self.data * 3)
        profile.transform_to_logspace()
        normalize(profile)
        assert profile.logspace
        assert_almost_equal(profile.probs(), self.data)

    def test_normalize_zero_column_raises(self):
        data = self.data.copy()
        data[1] = 0
        with pytest.raises(NormalizationError):
            normalize(ContextProfile(data))

    def test_header_matches_row(self):
        profile = ContextProfile(self.data, prior=0.3)
        assert len(profile.get_header()) == len(profile.get_row())
        assert profile.get_row()[0] == 0.3


class TestMultinomialEmission():

    @classmethod
    def setup_class(cls):
        cls.emission = MultinomialEmission(3, weight_center=1.5, weight_decay=0.5)
        cls.profile = ContextProfile(
            numpy.array([
                [0.1, 0.2, 0.3, 0.4],
                [0.4, 0.3, 0.2, 0.1],
                [0.25, 0.25, 0.25, 0.25],
            ])
        )
        cls.logp = numpy.log2(cls.profile.data)

    def test_weights(self):
        assert_almost_equal(self.emission.weights, [0.75, 1.5, 0.75])
        assert_almost_equal(self.emission.sum_weights(), 3.0)

    def test_even_window_raises(self):
        with pytest.raises(ConfigurationError):
            MultinomialEmission(4)

    def test_mismatched_profile_raises(self):
        seq = Sequence.from_string("ACGT", NUCLEOTIDE)
        with pytest.raises(ValueError):
            MultinomialEmission(5).logprob(self.profile, seq, 1)

    def test_sequence_interior_position(self):
        seq = Sequence.from_string("ACGT", NUCLEOTIDE)
        expected = 0.75 * self.logp[0, 0] + 1.5 * self.logp[1, 1] + 0.75 * self.logp[2, 2]
        assert_almost_equal(self.emission.logprob(self.profile, seq, 1), expected)

    def test_sequence_window_clipped_at_ends(self):
        seq = Sequence.from_string("ACGT", NUCLEOTIDE)
        first = 1.5 * self.logp[1, 0] + 0.75 * self.logp[2, 1]
        last = 0.75 * self.logp[0, 2] + 1.5 * self.logp[1, 3]
        assert_almost_equal(self.emission.logprob(self.profile, seq, 0), first)
        assert_almost_equal(self.emission.logprob(self.profile, seq, 3), last)

    def test_sequence_unknown_residues_contribute_nothing(self):
        seq = Sequence.from_string("ANG", NUCLEOTIDE)
        expected = 0.75 * self.logp[0, 0] + 0.75 * self.logp[2, 2]
        assert_almost_equal(self.emission.logprob(self.profile, seq, 1), expected)

    def test_length_one_subject(self):
        seq = Sequence.from_string("G", NUCLEOTIDE)
        assert_almost_equal(self.emission.logprob(self.profile, seq, 0), 1.5 * self.logp[1, 2])

    def test_count_profile(self):
        counts = numpy.array([[1, 0, 2, 0], [0, 3, 0, 0], [0, 0, 0, 1]], dtype=float)
        profile = CountProfile(counts, NUCLEOTIDE, has_counts=True)
        expected = 0.75 * (self.logp[0, 0] + 2 * self.logp[0, 2]) \
                   + 1.5 * 3 * self.logp[1, 1] \
                   + 0.75 * self.logp[2, 3]
        assert_almost_equal(self.emission.logprob(self.profile, profile, 1), expected)

    def test_zero_counts_ignore_zero_probabilities(self):
        data = self.profile.data.copy()
        data[1] = [0.0, 1.0, 0.0, 0.0]
        profile = ContextProfile(data)
        profile.transform_to_logspace()

        counts = CountProfile(numpy.array([[0, 1, 0, 0]], dtype=float), NUCLEOTIDE)
        found = self.emission.logprob(profile, counts, 0)
        assert numpy.isfinite(found)
        assert_almost_equal(found, 0.0)
        assert_almost_equal(self.emission.log_emissions(profile, counts), [0.0])

    def test_log_emissions_matches_logprob_for_sequences(self):
        seq = get_random_sequence(12, NUCLEOTIDE, 3)
        expected = [self.emission.logprob(self.profile, seq, X) for X in range(len(seq))]
        assert_almost_equal(self.emission.log_emissions(self.profile, seq), expected)

    def test_log_emissions_matches_logprob_for_count_profiles(self):
        emission = MultinomialEmission(5, weight_center=1.3, weight_decay=0.9)
        profile = ContextProfile(numpy.random.RandomState(1).dirichlet(numpy.ones(4), size=5))
        counts = get_random_count_profile(9, NUCLEOTIDE, 4)
        expected = [emission.logprob(profile, counts, X) for X in range(len(counts))]
        assert_almost_equal(emission.log_emissions(profile, counts), expected)

    def test_log_emissions_short_subject(self):
        emission = MultinomialEmission(7)
        profile = ContextProfile(numpy.random.RandomState(2).dirichlet(numpy.ones(4), size=7))
        seq = Sequence.from_string("AC", NUCLEOTIDE)
        expected = [emission.logprob(profile, seq, X) for X in range(2)]
        assert_almost_equal(emission.log_emissions(profile, seq), expected)
