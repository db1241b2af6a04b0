#!/usr/bin/env python
"""Tests of the ContextHMM transition graph, model checks, and serialization"""
import io
import pickle

import numpy
import pytest
from numpy.testing import assert_almost_equal, assert_array_equal

import jsonpickle
import jsonpickle.ext.numpy
jsonpickle.ext.numpy.register_handlers()

from contexthmm.alphabet import NUCLEOTIDE
from contexthmm.factors import ContextProfile, MultinomialEmission
from contexthmm.hmm import ContextHMM
from contexthmm.test.common import get_random_hmm, get_random_sequence
from contexthmm.util import ConfigurationError, MalformedModelError


def _profiles(num_states, num_cols=3):
    return [ContextProfile(numpy.ones((num_cols, 4)) / 4, prior=1.0 / num_states) for _ in range(num_states)]


class TestTransitions():

    def test_set_transition_updates_both_tables(self):
        hmm = ContextHMM(_profiles(3), NUCLEOTIDE)
        hmm.set_transition(0, 2, 0.4)
        assert hmm[0].out_transitions == {2: 0.4}
        assert hmm[2].in_transitions == {0: 0.4}
        assert hmm.num_transitions == 1

    def test_overwrite_does_not_double_count(self):
        hmm = ContextHMM(_profiles(3), NUCLEOTIDE)
        hmm.set_transition(0, 2, 0.4)
        hmm.set_transition(0, 2, 0.6)
        assert hmm.num_transitions == 1
        assert hmm[2].in_transitions[0] == 0.6

    def test_remove_transition_updates_both_tables(self):
        hmm = ContextHMM(_profiles(3), NUCLEOTIDE, transitions={(0, 1): 0.5, (0, 2): 0.5})
        hmm.remove_transition(0, 1)
        assert hmm[0].out_transitions == {2: 0.5}
        assert hmm[1].in_transitions == {}
        assert hmm.num_transitions == 1

        # removing absent transition is a no-op
        hmm.remove_transition(0, 1)
        assert hmm.num_transitions == 1

    def test_set_out_transitions_replaces_all(self):
        hmm = ContextHMM(_profiles(3), NUCLEOTIDE, transitions={(0, 1): 0.5, (0, 2): 0.5})
        hmm.set_out_transitions(0, {0: 1.0})
        assert hmm[0].out_transitions == {0: 1.0}
        assert hmm[0].in_transitions == {0: 1.0}
        assert hmm[1].in_transitions == {}
        assert hmm[2].in_transitions == {}

    def test_clear_transitions(self):
        hmm = get_random_hmm(3, 1, NUCLEOTIDE, 1)
        hmm.clear_transitions()
        assert hmm.num_transitions == 0
        for state in hmm:
            assert state.out_transitions == {}
            assert state.in_transitions == {}

    def test_invalid_weights_raise(self):
        hmm = ContextHMM(_profiles(2), NUCLEOTIDE)
        for weight in (0.0, -1.0, numpy.inf):
            with pytest.raises(ValueError):
                hmm.set_transition(0, 1, weight)

    def test_invalid_index_raises(self):
        hmm = ContextHMM(_profiles(2), NUCLEOTIDE)
        with pytest.raises(IndexError):
            hmm.set_transition(0, 2, 1.0)

    def test_connectivity(self):
        hmm = get_random_hmm(4, 1, NUCLEOTIDE, 2, out_degree=3)
        assert hmm.num_transitions == 12
        assert hmm.connectivity == 3.0

    def test_transition_matrix_follows_changes(self):
        hmm = ContextHMM(_profiles(2), NUCLEOTIDE, transitions={(0, 1): 1.0, (1, 1): 1.0})
        assert_array_equal(hmm.transition_matrix.toarray(), [[0, 1], [0, 1]])

        hmm.set_out_transitions(1, {0: 0.3, 1: 0.7})
        assert_array_equal(hmm.transition_matrix.toarray(), [[0, 1], [0.3, 0.7]])

    def test_transitions_from_matrix(self):
        mat = numpy.array([[0.5, 0.5], [0.0, 1.0]])
        hmm = ContextHMM(_profiles(2), NUCLEOTIDE, transitions=mat)
        assert hmm.num_transitions == 3
        assert_array_equal(hmm.transition_matrix.toarray(), mat)


class TestConstruction():

    def test_no_profiles_raise(self):
        with pytest.raises(ConfigurationError):
            ContextHMM([], NUCLEOTIDE)

    def test_mismatched_profiles_raise(self):
        profiles = _profiles(1, 3) + _profiles(1, 5)
        with pytest.raises(ConfigurationError):
            ContextHMM(profiles, NUCLEOTIDE)

    def test_wrong_alphabet_size_raises(self):
        with pytest.raises(ConfigurationError):
            ContextHMM([ContextProfile(numpy.ones((1, 20)) / 20)], NUCLEOTIDE)

    def test_even_window_raises(self):
        with pytest.raises(ConfigurationError):
            ContextHMM(_profiles(2, 4), NUCLEOTIDE)


class TestCheck():

    def test_valid_model_passes(self):
        get_random_hmm(5, 3, NUCLEOTIDE, 3).check()

    def test_missing_out_transitions_raise(self):
        hmm = ContextHMM(_profiles(2), NUCLEOTIDE, transitions={(0, 1): 1.0})
        with pytest.raises(MalformedModelError):
            hmm.check()

    def test_unnormalized_transitions_raise(self):
        hmm = ContextHMM(_profiles(2), NUCLEOTIDE, transitions={(0, 1): 0.5, (1, 0): 1.0})
        with pytest.raises(MalformedModelError):
            hmm.check()

    def test_asymmetric_tables_raise(self):
        hmm = get_random_hmm(3, 1, NUCLEOTIDE, 4)
        hmm[1].in_transitions.clear()
        with pytest.raises(MalformedModelError):
            hmm.check()

    def test_unnormalized_priors_raise(self):
        hmm = get_random_hmm(3, 1, NUCLEOTIDE, 5)
        hmm.priors = [1.0, 1.0, 1.0]
        with pytest.raises(MalformedModelError):
            hmm.check()


class TestSerialization():

    @classmethod
    def setup_class(cls):
        cls.hmm = get_random_hmm(4, 3, NUCLEOTIDE, 6, out_degree=2)
        for profile in cls.hmm.profiles:
            profile.transform_to_logspace()
        cls.hmm.iterations = 7

    def check_revived(self, revived):
        assert revived == self.hmm
        assert revived.iterations == 7
        assert revived.alphabet == NUCLEOTIDE
        assert all(X.profile.logspace for X in revived)
        assert_almost_equal(revived.priors, self.hmm.priors)
        assert_almost_equal(revived.transition_matrix.toarray(), self.hmm.transition_matrix.toarray())
        revived.check()

    def test_json_roundtrip(self):
        self.check_revived(ContextHMM.from_json(self.hmm.to_json()))

    def test_jsonpickle_roundtrip(self):
        self.check_revived(jsonpickle.decode(jsonpickle.encode(self.hmm)))

    def test_pickle_roundtrip(self):
        self.check_revived(pickle.loads(pickle.dumps(self.hmm)))

    def test_write_read(self):
        fh = io.StringIO()
        self.hmm.write(fh)
        fh.seek(0)
        self.check_revived(ContextHMM.read(fh))

    def test_header_matches_row(self):
        header = self.hmm.get_header()
        row = self.hmm.get_row()
        assert len(header) == len(row)
        assert header[0] == "sp_0"
        assert_almost_equal(row[:4], self.hmm.priors)


class TestInference():

    def test_posterior_decode(self):
        hmm = get_random_hmm(3, 3, NUCLEOTIDE, 7)
        emission = MultinomialEmission(3)
        seq = get_random_sequence(15, NUCLEOTIDE, 8)
        states, pp = hmm.posterior_decode(seq, emission)
        assert_array_equal(states, pp.argmax(1))
        assert_almost_equal(pp.sum(1), numpy.ones(15))

    def test_logprob_matches_forward_backward(self):
        hmm = get_random_hmm(3, 3, NUCLEOTIDE, 9)
        emission = MultinomialEmission(3)
        seq = get_random_sequence(10, NUCLEOTIDE, 10)
        assert hmm.logprob(seq, emission) == hmm.forward_backward(seq, emission).log_likelihood
