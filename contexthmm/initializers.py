#!/usr/bin/env python
"""Construction of starting models for training.

A fresh :class:`~contexthmm.hmm.ContextHMM` is built from a state initializer,
which supplies one :class:`~contexthmm.factors.ContextProfile` per state, and a
transition initializer, which connects the states::

    >>> state_init = SamplingStateInitializer(training_profiles, sample_rate=0.2, seed=5)
    >>> hmm = initialize_hmm(100, 13, AMINO_ACID, state_init, HomogeneousTransitionInitializer())
"""
import numpy

from contexthmm.factors import ContextProfile
from contexthmm.hmm import ContextHMM
from contexthmm.pseudocounts import BackgroundPseudocounts, ConstantAdmixture
from contexthmm.subjects import CountProfile
from contexthmm.util import ConfigurationError

#===============================================================================
# INDEX: state initializers
#===============================================================================


class SamplingStateInitializer(object):
    """Initialize state profiles with context windows sampled from training
    profiles

    Training profiles are visited in random order, and each of their windows
    of the requested length is taken with probability `sample_rate`, until
    enough windows have been collected. Pseudocounts are admixed into each
    sampled window.

    Attributes
    ----------
    data : list of :class:`~contexthmm.subjects.CountProfile` or :class:`~contexthmm.subjects.Sequence`
        Training subjects to sample from

    sample_rate : float
        Probability of taking any given window

    pseudocounts : object
        Pseudocount source implementing ``add_to_profile()``

    state_pseudocount : float
        Constant admixture of pseudocounts into sampled windows
    """

    def __init__(self, data, sample_rate=0.2, pseudocounts=None, state_pseudocount=0.5, seed=None):
        """Create a :class:`SamplingStateInitializer`

        Parameters
        ----------
        data : list
            Training subjects

        sample_rate : float, optional
            Probability of taking each window (Default: 0.2)

        pseudocounts : object or None, optional
            Pseudocount source. If `None`,
            :class:`~contexthmm.pseudocounts.BackgroundPseudocounts` for the
            alphabet of the training data is used.

        state_pseudocount : float, optional
            Admixture of pseudocounts into sampled windows (Default: 0.5)

        seed : int or None, optional
            Seed for random number generation
        """
        if len(data) == 0:
            raise ConfigurationError("Cannot sample states from empty training data")
        if not 0 < sample_rate <= 1:
            raise ConfigurationError("sample_rate must be in (0, 1]. Got %s" % sample_rate)

        self.data = data
        self.sample_rate = sample_rate
        self.pseudocounts = pseudocounts or BackgroundPseudocounts(data[0].alphabet)
        self.state_pseudocount = state_pseudocount
        self.random_state = numpy.random.RandomState(seed)

    def __call__(self, num_states, num_cols):
        """Sample `num_states` profiles of `num_cols` columns

        Returns
        -------
        list of :class:`~contexthmm.factors.ContextProfile`
            Linear-space profiles, with uniform priors

        Raises
        ------
        ConfigurationError
            If the training data yield fewer than `num_states` windows
        """
        order = self.random_state.permutation(len(self.data))
        admixture = ConstantAdmixture(self.state_pseudocount)
        profiles = []

        for n in order:
            subject = self.data[n]
            if not isinstance(subject, CountProfile):
                subject = CountProfile.from_sequence(subject)

            for start in range(len(subject) - num_cols + 1):
                if self.random_state.random_sample() >= self.sample_rate:
                    continue

                window = self.pseudocounts.add_to_profile(subject.subprofile(start, num_cols), admixture)
                profiles.append(ContextProfile(window.data, prior=1.0 / num_states))
                if len(profiles) == num_states:
                    return profiles

        raise ConfigurationError(
            "Could only sample %s of %s context windows of length %s from training data. "
            "Consider increasing sample_rate or adding training data" %
            (len(profiles), num_states, num_cols)
        )


#===============================================================================
# INDEX: transition initializers
#===============================================================================


class HomogeneousTransitionInitializer(object):
    """Connect every pair of states, including self-transitions, with equal
    weight `1 / num_states`
    """

    def __call__(self, hmm):
        K = hmm.num_states
        hmm.clear_transitions()
        for k in range(K):
            hmm.set_out_transitions(k, {l: 1.0 / K for l in range(K)})


#===============================================================================
# INDEX: model construction
#===============================================================================


def initialize_hmm(num_states, num_cols, alphabet, state_initializer, transition_initializer):
    """Build a new :class:`~contexthmm.hmm.ContextHMM`

    Parameters
    ----------
    num_states : int
        Number of states. Must be positive.

    num_cols : int
        Window length of state profiles. Must be odd.

    alphabet : :class:`~contexthmm.alphabet.Alphabet`

    state_initializer : callable
        Called as ``state_initializer(num_states, num_cols)``; must return
        `num_states` :class:`~contexthmm.factors.ContextProfile` objects

    transition_initializer : callable
        Called with the new model; must add its transitions

    Returns
    -------
    :class:`~contexthmm.hmm.ContextHMM`
        New model, with state profiles in log2 space and normalized priors
    """
    if num_states < 1:
        raise ConfigurationError("Number of states must be positive. Got %s" % num_states)
    if num_cols < 1 or num_cols % 2 == 0:
        raise ConfigurationError("Context window length must be odd and positive. Got %s" % num_cols)

    profiles = state_initializer(num_states, num_cols)
    hmm = ContextHMM(profiles, alphabet)

    priors = hmm.priors
    hmm.priors = priors / priors.sum()
    for profile in hmm.profiles:
        profile.transform_to_logspace()

    transition_initializer(hmm)
    return hmm
