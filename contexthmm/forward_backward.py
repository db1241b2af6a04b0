#!/usr/bin/env python
"""Scaled forward-backward algorithm for context-profile HMMs.

Forward probabilities are rescaled at every position so that they sum to 1,
following Rabiner (1989) and Durbin et al. (1998). The scale factors `s[i]`
are kept, and the log2 likelihood of the subject equals the sum of their log2.
Backward probabilities are divided by the scale factor of the following
position, so that `f[i][k] * b[i][k]` is directly the posterior probability
of state `k` at position `i`.

Both recursions only visit defined transitions, via the sparse transition
matrix of the model, and so run in `O(N * num_transitions)` time.


References
----------
[Durbin1998]
    Durbin R et al. (1998). Biological sequence analysis: Probabilistic models
    of proteins and nucleic acids. Cambridge University Press, New York.
    ISBN 978-0-521-62971-3

[Rabiner1989]
    Rabiner, LR (1989). A Tutorial on Hidden Markov Models and Selected
    Applications in Speech Recognition. Proceedings of the IEEE, 77(2), pp
    257-286
"""
import numpy

from contexthmm.util import MalformedModelError


class ForwardBackwardMatrices(object):
    """Dynamic programming tables for one subject

    Attributes
    ----------
    f : numpy.ndarray
        `[N x num_states]` scaled forward probabilities. Each row sums to 1.

    b : numpy.ndarray
        `[N x num_states]` scaled backward probabilities

    e : numpy.ndarray
        `[N x num_states]` linear-space emission probabilities

    s : numpy.ndarray
        `[N]` scale factors

    log_likelihood : float
        log2 likelihood of the subject, `sum(log2(s))`
    """

    def __init__(self, length, num_states):
        self.f = numpy.zeros((length, num_states))
        self.b = numpy.zeros((length, num_states))
        self.e = numpy.zeros((length, num_states))
        self.s = numpy.ones(length)
        self.log_likelihood = 0.0

    def __len__(self):
        return len(self.s)

    def __repr__(self):
        return "<%s length=%s num_states=%s log_likelihood=%s>" % (
            self.__class__.__name__, self.f.shape[0], self.f.shape[1], self.log_likelihood
        )

    def posterior_probs(self):
        """Return `[N x num_states]` posterior probability of each state at
        each position, renormalized to sum to exactly 1 per position
        """
        pp = self.f * self.b
        return pp / pp.sum(1)[:, None]


def emission_probs(hmm, subject, emission):
    """Return `[N x num_states]` linear-space emission probabilities of every
    state at every position of `subject`
    """
    e = numpy.empty((len(subject), hmm.num_states))
    for state in hmm.states:
        e[:, state.index] = numpy.exp2(emission.log_emissions(state.profile, subject))

    return e


def forward_algorithm(hmm, subject, emission, fbm):
    """Fill in the scaled forward table, emission table, and scale factors of
    `fbm`, and compute the log2 likelihood

    Parameters
    ----------
    hmm : :class:`~contexthmm.hmm.ContextHMM`

    subject : :class:`~contexthmm.subjects.Sequence` or :class:`~contexthmm.subjects.CountProfile`

    emission : :class:`~contexthmm.factors.MultinomialEmission`

    fbm : :class:`ForwardBackwardMatrices`
        Tables sized for `subject` and `hmm`

    Raises
    ------
    MalformedModelError
        If the subject is longer than one position and some state has no
        out-transitions, or if the total forward probability at any
        position is zero
    """
    N = len(subject)
    if N > 1:
        for state in hmm.states:
            if state.num_out_transitions == 0:
                raise MalformedModelError("State %s has no out-transitions" % state.index)

    fbm.e[:] = emission_probs(hmm, subject, emission)

    # predecessor sums for all states at once: (T^t f[i-1])[l] = sum_k f[i-1][k] T[k, l]
    Tt = hmm.transition_matrix.T.tocsr()

    fbm.f[0] = hmm.priors * fbm.e[0]
    _rescale(fbm, 0)

    for i in range(1, N):
        fbm.f[i] = fbm.e[i] * Tt.dot(fbm.f[i - 1])
        _rescale(fbm, i)

    fbm.log_likelihood = numpy.log2(fbm.s).sum()


def _rescale(fbm, i):
    """Scale row `i` of forward table to sum to 1, recording the scale factor"""
    c = fbm.f[i].sum()
    if not c > 0 or not numpy.isfinite(c):
        raise MalformedModelError(
            "Total forward probability at position %s is %s. The subject cannot be generated "
            "by the model" % (i, c)
        )
    fbm.f[i] /= c
    fbm.s[i] = c


def backward_algorithm(hmm, subject, fbm):
    """Fill in the scaled backward table of `fbm`, which must already hold the
    results of :func:`forward_algorithm`

    Parameters
    ----------
    hmm : :class:`~contexthmm.hmm.ContextHMM`

    subject : :class:`~contexthmm.subjects.Sequence` or :class:`~contexthmm.subjects.CountProfile`

    fbm : :class:`ForwardBackwardMatrices`
    """
    N = len(subject)
    T = hmm.transition_matrix

    fbm.b[N - 1] = 1.0
    for i in range(N - 2, -1, -1):
        fbm.b[i] = T.dot(fbm.e[i + 1] * fbm.b[i + 1]) / fbm.s[i + 1]


def forward_backward(hmm, subject, emission):
    """Run the forward and backward algorithms on `subject`

    Parameters
    ----------
    hmm : :class:`~contexthmm.hmm.ContextHMM`

    subject : :class:`~contexthmm.subjects.Sequence` or :class:`~contexthmm.subjects.CountProfile`

    emission : :class:`~contexthmm.factors.MultinomialEmission`

    Returns
    -------
    :class:`ForwardBackwardMatrices`
    """
    if len(subject) == 0:
        raise ValueError("Cannot run forward-backward on an empty subject")

    fbm = ForwardBackwardMatrices(len(subject), hmm.num_states)
    forward_algorithm(hmm, subject, emission, fbm)
    backward_algorithm(hmm, subject, fbm)
    return fbm


def expected_transitions(hmm, fbm):
    """Compute the expected number of times each defined transition is used

    For each transition `k -> l` with weight `w`, this is::

        sum_i f[i][k] * w * e[i+1][l] * b[i+1][l] / s[i+1]

    Parameters
    ----------
    hmm : :class:`~contexthmm.hmm.ContextHMM`

    fbm : :class:`ForwardBackwardMatrices`
        Completed forward-backward tables

    Returns
    -------
    numpy.ndarray
        Source state of each transition

    numpy.ndarray
        Target state of each transition

    numpy.ndarray
        Expected count of each transition
    """
    coomat = hmm.transition_matrix.tocoo()
    sources, targets, weights = coomat.row, coomat.col, coomat.data
    if len(fbm) < 2:
        return sources, targets, numpy.zeros(len(weights))

    # ksi summed over positions, only over defined transitions
    G = fbm.e[1:] * fbm.b[1:] / fbm.s[1:, None]
    counts = weights * numpy.einsum("ij,ij->j", fbm.f[:-1][:, sources], G[:, targets])
    return sources, targets, counts
