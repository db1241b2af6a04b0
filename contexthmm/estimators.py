#!/usr/bin/env python
"""Estimator classes for Baum-Welch training of context-profile HMMs.
Estimators determine how HMM parameters are re-estimated from subjects during
each training cycle.

Estimators must be able to:

    1. Reduce the forward-backward tables of one subject to expected
       sufficient statistics (expectation step). This is implemented by the
       method ``reduce_data()``, which adds the contribution of the subject
       to a :class:`SufficientStatistics` accumulator.

    2. Estimate improved parameters for the model from accumulated statistics
       (maximization step). This is implemented by ``construct_factors()``.

Statistics from successive blocks of training data are merged into a global
accumulator as::

    global = gamma * global + block

with `gamma = 1 - epsilon` for learning rate `epsilon`, which allows online
training (see :mod:`contexthmm.training`).
"""
from abc import abstractmethod

import numpy

from contexthmm.factors import ContextProfile, normalize
from contexthmm.forward_backward import expected_transitions
from contexthmm.pseudocounts import BackgroundPseudocounts, ConstantAdmixture
from contexthmm.util import NormalizationError

#===============================================================================
# INDEX: sufficient statistics
#===============================================================================


class SufficientStatistics(object):
    """Expected counts collected during the expectation step

    Attributes
    ----------
    transitions : dict
        Dictionary mapping `(source, target)` state pairs to expected
        transition counts

    profiles : numpy.ndarray
        `[num_states x num_cols x alphabet_size]` expected residue counts at
        each window column of each state

    priors : numpy.ndarray
        `[num_states]` expected state occupancy
    """

    def __init__(self, num_states, num_cols, alphabet_size):
        self.num_states = num_states
        self.num_cols = num_cols
        self.alphabet_size = alphabet_size
        self.transitions = {}
        self.profiles = numpy.zeros((num_states, num_cols, alphabet_size))
        self.priors = numpy.zeros(num_states)

    @staticmethod
    def like(hmm):
        """Create an empty accumulator sized for `hmm`, with a zero entry for
        each of its transitions
        """
        stats = SufficientStatistics(hmm.num_states, hmm.num_cols, hmm.alphabet.size)
        stats.transitions = {(k, l): 0.0 for k, l, _ in hmm.transitions()}
        return stats

    def __repr__(self):
        return "<%s num_states=%s transitions=%s>" % (
            self.__class__.__name__, self.num_states, len(self.transitions)
        )

    def reset(self):
        """Zero all statistics, keeping transition keys"""
        for key in self.transitions:
            self.transitions[key] = 0.0
        self.profiles[:] = 0.0
        self.priors[:] = 0.0

    def add(self, other):
        """Add statistics from `other` to `self`"""
        self.scale_and_add(1.0, other)

    def scale_and_add(self, gamma, other):
        """Update `self` to `gamma * self + other`

        Parameters
        ----------
        gamma : float
            Decay applied to current statistics

        other : :class:`SufficientStatistics`
            Statistics to add
        """
        if gamma != 1.0:
            for key in self.transitions:
                self.transitions[key] *= gamma
            self.profiles *= gamma
            self.priors *= gamma

        for key, value in other.transitions.items():
            self.transitions[key] = self.transitions.get(key, 0.0) + value

        self.profiles += other.profiles
        self.priors += other.priors


#===============================================================================
# INDEX: helper functions
#===============================================================================


def prune_transitions(weights, max_connectivity):
    """Keep only the `max_connectivity` highest-weight entries of `weights`.
    Ties are broken in favor of lower target indices.

    Parameters
    ----------
    weights : dict
        Dictionary mapping target states to weights

    max_connectivity : int
        Maximum number of entries to keep. If 0, `weights` is returned
        unchanged.

    Returns
    -------
    dict
    """
    if max_connectivity <= 0 or len(weights) <= max_connectivity:
        return dict(weights)

    ranked = sorted(weights.items(), key=lambda x: (-x[1], x[0]))
    return dict(ranked[:max_connectivity])


#===============================================================================
# INDEX: estimators
#===============================================================================


class AbstractEstimator(object):
    """Helper class for re-estimation of HMM parameters in Baum-Welch
    training. Subclasses extract sufficient statistics from forward-backward
    tables (via :meth:`AbstractEstimator.reduce_data`), and create new
    parameters from those statistics (via
    :meth:`AbstractEstimator.construct_factors`)
    """

    @abstractmethod
    def reduce_data(self, hmm, subject, fbm, stats):
        """Add the contribution of one subject to `stats`

        Parameters
        ----------
        hmm : :class:`~contexthmm.hmm.ContextHMM`
            Model under which `fbm` was calculated

        subject : :class:`~contexthmm.subjects.Sequence` or :class:`~contexthmm.subjects.CountProfile`

        fbm : :class:`~contexthmm.forward_backward.ForwardBackwardMatrices`
            Forward-backward tables for `subject`

        stats : :class:`SufficientStatistics`
            Accumulator, updated in place
        """

    @abstractmethod
    def construct_factors(self, hmm, stats):
        """Estimate new parameters for `hmm` from `stats`"""


class TransitionEstimator(AbstractEstimator):
    """Estimate transition weights from expected transition counts, with
    additive pseudocounts and optional pruning to a maximum number of
    out-transitions per state

    Attributes
    ----------
    pseudocount : float
        Added to the expected count of every existing transition

    max_connectivity : int
        If positive, maximum number of out-transitions kept per state
    """

    def __init__(self, pseudocount=1.0, max_connectivity=0):
        if pseudocount < 0:
            raise ValueError("Transition pseudocount must be non-negative. Got %s" % pseudocount)
        if max_connectivity < 0:
            raise ValueError("max_connectivity must be non-negative. Got %s" % max_connectivity)

        self.pseudocount = pseudocount
        self.max_connectivity = max_connectivity

    def __repr__(self):
        return "<%s pseudocount=%s max_connectivity=%s>" % (
            self.__class__.__name__, self.pseudocount, self.max_connectivity
        )

    def reduce_data(self, hmm, subject, fbm, stats):
        sources, targets, counts = expected_transitions(hmm, fbm)
        for k, l, c in zip(sources, targets, counts):
            key = (int(k), int(l))
            stats.transitions[key] = stats.transitions.get(key, 0.0) + c

    def construct_factors(self, hmm, stats):
        """Compute new out-transitions for each state of `hmm`

        Only transitions currently defined in `hmm` are considered. For each,
        the new weight is the accumulated expected count plus
        `self.pseudocount`. Transitions with non-positive weight are dropped,
        the remainder optionally pruned to `self.max_connectivity`, and then
        normalized to sum to 1.

        Parameters
        ----------
        hmm : :class:`~contexthmm.hmm.ContextHMM`

        stats : :class:`SufficientStatistics`

        Returns
        -------
        list of dict
            For each state, a dictionary mapping target states to new weights

        Raises
        ------
        NormalizationError
            If a state that has out-transitions is left with no positive weight
        """
        new_transitions = []
        for state in hmm.states:
            k = state.index
            weights = {}
            for l in state.out_transitions:
                w = stats.transitions.get((k, l), 0.0) + self.pseudocount
                if w > 0:
                    weights[l] = w

            if len(state.out_transitions) > 0 and len(weights) == 0:
                raise NormalizationError(
                    "Out-transitions of state %s have no probability mass. "
                    "Consider adding transition pseudocounts" % k
                )

            weights = prune_transitions(weights, self.max_connectivity)
            total = sum(weights.values())
            new_transitions.append({l: w / total for l, w in weights.items()})

        return new_transitions


class StateEstimator(AbstractEstimator):
    """Estimate state priors and emission profiles from expected residue
    counts

    Attributes
    ----------
    state_pseudocount : float
        Admixture of pseudocounts into re-estimated profiles. If 0, no
        pseudocounts are added.

    pseudocounts : object
        Pseudocount source implementing ``add_to_profile(profile, admixture)``
        for :class:`~contexthmm.factors.ContextProfile` objects. Defaults to
        :class:`~contexthmm.pseudocounts.BackgroundPseudocounts` for the
        model's alphabet.
    """

    def __init__(self, state_pseudocount=0.0, pseudocounts=None):
        if not 0 <= state_pseudocount <= 1:
            raise ValueError("State pseudocount admixture must be between 0 and 1. Got %s" % state_pseudocount)

        self.state_pseudocount = state_pseudocount
        self.pseudocounts = pseudocounts

    def __repr__(self):
        return "<%s state_pseudocount=%s>" % (self.__class__.__name__, self.state_pseudocount)

    def reduce_data(self, hmm, subject, fbm, stats):
        pp = fbm.posterior_probs()
        counts = subject.as_counts()
        N = len(subject)
        center = (hmm.num_cols - 1) // 2

        stats.priors += pp.sum(0)

        # window column j of the state centered at i sees subject column i + j - c
        for j in range(hmm.num_cols):
            offset = j - center
            if abs(offset) >= N:
                continue

            pp_part = pp[max(0, -offset):N - max(0, offset)]
            counts_part = counts[max(0, offset):N + min(0, offset)]
            stats.profiles[:, j, :] += pp_part.T.dot(counts_part)

    def construct_factors(self, hmm, stats):
        """Compute new state priors and profiles

        Parameters
        ----------
        hmm : :class:`~contexthmm.hmm.ContextHMM`

        stats : :class:`SufficientStatistics`

        Returns
        -------
        numpy.ndarray
            New state priors

        list of :class:`~contexthmm.factors.ContextProfile`
            New state profiles, in log2 space

        Raises
        ------
        NormalizationError
            If the prior accumulator, or any column of any profile
            accumulator, sums to zero
        """
        total = stats.priors.sum()
        if not total > 0:
            raise NormalizationError("State prior statistics have no probability mass")

        priors = stats.priors / total

        pseudocounts = self.pseudocounts
        if self.state_pseudocount > 0 and pseudocounts is None:
            pseudocounts = BackgroundPseudocounts(hmm.alphabet)

        profiles = []
        for k in range(hmm.num_states):
            profile = ContextProfile(stats.profiles[k], prior=priors[k], index=k)
            normalize(profile)
            if self.state_pseudocount > 0:
                profile = pseudocounts.add_to_profile(profile, ConstantAdmixture(self.state_pseudocount))

            profile.transform_to_logspace()
            profiles.append(profile)

        return priors, profiles
