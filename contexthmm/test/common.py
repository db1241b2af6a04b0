#!/usr/bin/env python
"""Pre-built models, subjects, and brute-force reference calculations shared
by tests
"""
import itertools

import numpy

from contexthmm.alphabet import Alphabet
from contexthmm.factors import ContextProfile
from contexthmm.hmm import ContextHMM
from contexthmm.subjects import CountProfile, Sequence

BINARY = Alphabet("Binary", "AB", any_char="X")

#===============================================================================
# Pre-built HMMs for testing and examples
#===============================================================================


def get_two_state_hmm():
    """Return a two-state HMM over a binary alphabet, with window length 1.
    Each state always transitions to the other one.
    """
    profiles = [
        ContextProfile(numpy.log2([[0.9, 0.1]]), logspace=True, prior=0.5),
        ContextProfile(numpy.log2([[0.1, 0.9]]), logspace=True, prior=0.5),
    ]
    return ContextHMM(profiles, BINARY, transitions={(0, 1): 1.0, (1, 0): 1.0})


def get_random_hmm(num_states, num_cols, alphabet, seed, out_degree=None):
    """Return a random HMM

    Parameters
    ----------
    num_states : int

    num_cols : int
        Window length

    alphabet : :class:`~contexthmm.alphabet.Alphabet`

    seed : int
        Random seed

    out_degree : int or None, optional
        Number of out-transitions per state. If `None`, states are fully
        connected.
    """
    random_state = numpy.random.RandomState(seed)
    profiles = []
    for _ in range(num_states):
        data = random_state.dirichlet(numpy.ones(alphabet.size), size=num_cols)
        profiles.append(ContextProfile(data, prior=1.0))

    hmm = ContextHMM(profiles, alphabet)
    hmm.priors = random_state.dirichlet(numpy.ones(num_states))

    out_degree = num_states if out_degree is None else out_degree
    for k in range(num_states):
        targets = random_state.choice(num_states, size=out_degree, replace=False)
        weights = random_state.dirichlet(numpy.ones(out_degree))
        hmm.set_out_transitions(k, dict(zip(targets.tolist(), weights)))

    return hmm


def get_random_sequence(length, alphabet, seed, header="random"):
    """Return a :class:`~contexthmm.subjects.Sequence` of uniformly random residues"""
    random_state = numpy.random.RandomState(seed)
    return Sequence(random_state.randint(0, alphabet.size, size=length), alphabet, header=header)


def get_random_count_profile(length, alphabet, seed):
    """Return a :class:`~contexthmm.subjects.CountProfile` of random counts"""
    random_state = numpy.random.RandomState(seed)
    counts = random_state.randint(0, 5, size=(length, alphabet.size)).astype(float)
    counts[:, 0] += 1
    neff = counts.sum(1)
    return CountProfile(counts, alphabet, neff=neff, has_counts=True)


def generate_sequence(hmm, length, random_state):
    """Sample a state path and residues from an HMM with window length 1

    Returns
    -------
    numpy.ndarray
        State path

    :class:`~contexthmm.subjects.Sequence`
        Generated residues
    """
    assert hmm.num_cols == 1
    T = hmm.transition_matrix.toarray()
    states = numpy.zeros(length, dtype=int)
    codes = numpy.zeros(length, dtype=int)

    states[0] = random_state.choice(hmm.num_states, p=hmm.priors)
    for i in range(length):
        if i > 0:
            states[i] = random_state.choice(hmm.num_states, p=T[states[i - 1]])
        codes[i] = random_state.choice(hmm.alphabet.size, p=hmm[states[i]].profile.probs()[0])

    return states, Sequence(codes, hmm.alphabet)


#===============================================================================
# Brute-force reference calculations
#===============================================================================


def brute_force_log_likelihood(hmm, subject, emission):
    """Compute log2 likelihood of `subject` by summing the joint probability of
    every possible state path. Only feasible for short subjects.
    """
    T = hmm.transition_matrix.toarray()
    priors = hmm.priors
    e = numpy.array([
        [2**emission.logprob(hmm[k].profile, subject, i) for k in range(hmm.num_states)]
        for i in range(len(subject))
    ])

    total = 0.0
    for path in itertools.product(range(hmm.num_states), repeat=len(subject)):
        p = priors[path[0]] * e[0, path[0]]
        for i in range(1, len(subject)):
            p *= T[path[i - 1], path[i]] * e[i, path[i]]
        total += p

    return numpy.log2(total)
