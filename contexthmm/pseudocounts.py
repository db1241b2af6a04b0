#!/usr/bin/env python
"""Pseudocounts for sequences and profiles.

Pseudocounts are added to a subject by admixture::

    p'[i][a] = (1 - tau[i]) * p[i][a] + tau[i] * pc[i][a]

where `p` are the observed frequencies, `pc` the pseudocount distribution at
column `i`, and `tau[i]` the admixture weight. Admixture weights are computed
from the effective number of sequences at each column by an admixture policy:

:class:`ConstantAdmixture`
    The same weight at every column

:class:`DivergenceDependentAdmixture`
    Weight decreasing with the diversity of the column, as in CS-BLAST

Two pseudocount sources are provided:

:class:`BackgroundPseudocounts`
    Background frequencies of the alphabet, regardless of context

:class:`HMMPseudocounts`
    Context-specific pseudocounts, mixing the central columns of the states
    of a :class:`~contexthmm.hmm.ContextHMM` by their posterior probability
    at each position
"""
from abc import abstractmethod

import numpy

from contexthmm.factors import ContextProfile
from contexthmm.forward_backward import forward_backward
from contexthmm.subjects import CountProfile, Sequence

#===============================================================================
# INDEX: admixture policies
#===============================================================================


class ConstantAdmixture(object):
    """Admixture with a constant weight `tau`"""

    def __init__(self, tau):
        if not 0 <= tau <= 1:
            raise ValueError("Admixture weight must be between 0 and 1. Got %s" % tau)
        self.tau = tau

    def __repr__(self):
        return "%s(%s)" % (self.__class__.__name__, self.tau)

    def __call__(self, neff):
        return self.tau


class DivergenceDependentAdmixture(object):
    """Admixture weight depending on the effective number of sequences::

        tau = min(1, a * (b + 1) / (b + neff))

    Parameters
    ----------
    a : float
        Overall admixture (weight at `neff = 1`)

    b : float
        Admixture decay with increasing diversity
    """

    def __init__(self, a=1.0, b=10.0):
        if a < 0 or b < 0:
            raise ValueError("Admixture parameters must be non-negative. Got a=%s, b=%s" % (a, b))
        self.a = a
        self.b = b

    def __repr__(self):
        return "%s(%s, %s)" % (self.__class__.__name__, self.a, self.b)

    def __call__(self, neff):
        return min(1.0, self.a * (self.b + 1.0) / (self.b + neff))


#===============================================================================
# INDEX: pseudocount sources
#===============================================================================


def _admix(freqs, pc, taus):
    """Mix rows of `freqs` and `pc` with per-row weights `taus`, renormalizing
    each row
    """
    taus = numpy.asarray(taus)[:, None]
    mixed = (1.0 - taus) * freqs + taus * pc
    sums = mixed.sum(1)
    sums[sums == 0] = 1.0
    return mixed / sums[:, None]


class AbstractPseudocounts(object):
    """Base class for pseudocount sources. Subclasses implement
    :meth:`AbstractPseudocounts.get_pseudocounts`
    """

    @abstractmethod
    def get_pseudocounts(self, subject):
        """Return an `[N x alphabet_size]` array of pseudocount distributions,
        one per position of `subject`
        """

    def add_to_sequence(self, seq, admixture):
        """Create a frequency profile from `seq` with pseudocounts admixed

        Parameters
        ----------
        seq : :class:`~contexthmm.subjects.Sequence`

        admixture : callable
            Admixture policy, e.g. :class:`DivergenceDependentAdmixture`.
            Called with `neff = 1` for every position.

        Returns
        -------
        :class:`~contexthmm.subjects.CountProfile`
            Profile of frequencies with `neff = 1`
        """
        pc = self.get_pseudocounts(seq)
        freqs = seq.as_counts()
        taus = numpy.full(len(seq), admixture(1.0))

        # positions with unknown residues get pure pseudocounts
        taus[seq.codes >= seq.alphabet.any] = 1.0
        return CountProfile(_admix(freqs, pc, taus), seq.alphabet, neff=numpy.ones(len(seq)), header=seq.header)

    def add_to_profile(self, profile, admixture):
        """Create a new frequency profile from `profile` with pseudocounts
        admixed

        Parameters
        ----------
        profile : :class:`~contexthmm.subjects.CountProfile`

        admixture : callable
            Admixture policy, called with the `neff` of each column

        Returns
        -------
        :class:`~contexthmm.subjects.CountProfile`
            Profile of frequencies, with the `neff` of `profile`
        """
        pc = self.get_pseudocounts(profile)
        freqs = profile.as_counts()
        sums = freqs.sum(1)
        taus = numpy.array([admixture(X) for X in profile.neff])
        taus[sums == 0] = 1.0

        sums[sums == 0] = 1.0
        freqs = freqs / sums[:, None]
        return CountProfile(
            _admix(freqs, pc, taus), profile.alphabet, neff=profile.neff.copy(), header=profile.header
        )


class BackgroundPseudocounts(AbstractPseudocounts):
    """Pseudocounts from the background frequencies of an alphabet"""

    def __init__(self, alphabet):
        self.alphabet = alphabet

    def __repr__(self):
        return "<%s %s>" % (self.__class__.__name__, self.alphabet.name)

    def get_pseudocounts(self, subject):
        return numpy.tile(self.alphabet.background, (len(subject), 1))

    def add_to_profile(self, profile, admixture):
        """Admix background frequencies into `profile`

        Parameters
        ----------
        profile : :class:`~contexthmm.subjects.CountProfile` or :class:`~contexthmm.factors.ContextProfile`
            For a :class:`~contexthmm.factors.ContextProfile`, `admixture` is
            called with `neff = 1`

        admixture : callable
            Admixture policy

        Returns
        -------
        :class:`~contexthmm.subjects.CountProfile` or :class:`~contexthmm.factors.ContextProfile`
            New profile of the same type as `profile`. Context profiles are
            returned in the space (log or linear) of the input.
        """
        if not isinstance(profile, ContextProfile):
            return AbstractPseudocounts.add_to_profile(self, profile, admixture)

        pc = numpy.tile(self.alphabet.background, (profile.num_cols, 1))
        taus = numpy.full(profile.num_cols, admixture(1.0))
        new_profile = ContextProfile(
            _admix(profile.probs(), pc, taus), prior=profile.prior, index=profile.index
        )
        if profile.logspace:
            new_profile.transform_to_logspace()

        return new_profile


class HMMPseudocounts(AbstractPseudocounts):
    """Context-specific pseudocounts from a :class:`~contexthmm.hmm.ContextHMM`

    The pseudocount distribution at position `i` is the mixture of the
    central columns of all states, weighted by the posterior probability of
    each state at `i` computed by the forward-backward algorithm.

    Attributes
    ----------
    hmm : :class:`~contexthmm.hmm.ContextHMM`

    emission : :class:`~contexthmm.factors.MultinomialEmission`
    """

    def __init__(self, hmm, emission):
        if emission.num_cols != hmm.num_cols:
            raise ValueError(
                "Emission window length %s does not match model window length %s" %
                (emission.num_cols, hmm.num_cols)
            )
        self.hmm = hmm
        self.emission = emission

    def __repr__(self):
        return "<%s hmm=%s>" % (self.__class__.__name__, self.hmm)

    def get_pseudocounts(self, subject):
        if isinstance(subject, Sequence) or isinstance(subject, CountProfile):
            pp = forward_backward(self.hmm, subject, self.emission).posterior_probs()
        else:
            raise TypeError("Cannot compute pseudocounts for %s" % type(subject).__name__)

        center = (self.hmm.num_cols - 1) // 2
        centers = numpy.array([X.profile.probs()[center] for X in self.hmm.states])
        pc = pp.dot(centers)
        return pc / pc.sum(1)[:, None]


#===============================================================================
# INDEX: training data
#===============================================================================


def prepare_training_data(subjects, pseudocounts, admixture):
    """Admix pseudocounts into training subjects and convert them to count
    profiles

    Parameters
    ----------
    subjects : list of :class:`~contexthmm.subjects.Sequence` or :class:`~contexthmm.subjects.CountProfile`

    pseudocounts : :class:`AbstractPseudocounts`
        Pseudocount source

    admixture : callable
        Admixture policy, e.g. ``ConstantAdmixture(0.01)``

    Returns
    -------
    list of :class:`~contexthmm.subjects.CountProfile`
        New profiles holding counts (frequencies multiplied by `neff`)
    """
    prepared = []
    for subject in subjects:
        if isinstance(subject, Sequence):
            profile = pseudocounts.add_to_sequence(subject, admixture)
        else:
            profile = pseudocounts.add_to_profile(subject, admixture)

        profile.convert_to_counts()
        prepared.append(profile)

    return prepared
