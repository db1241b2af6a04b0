#!/usr/bin/env python
"""Expectation-maximization clustering of context windows into a library of
context profiles.

Each training subject is a window of exactly `W` columns. The posterior
probability that profile `k` generated window `n` is::

    p(k|n) = prior_k * 2**emission(profile_k, n) / sum_k' (...)

where the emission is evaluated at the central column of the window. Priors
and residue counts are accumulated with the same global/block decay as in
:mod:`contexthmm.training`, which provides the driver.
"""
from dataclasses import dataclass

import numpy
import jsonpickle
import jsonpickle.ext.numpy
jsonpickle.ext.numpy.register_handlers()

from contexthmm.estimators import SufficientStatistics
from contexthmm.factors import ContextProfile, MultinomialEmission, normalize
from contexthmm.subjects import CountProfile
from contexthmm.training import ExpectationMaximization, TrainingOptions
from contexthmm.util import ConfigurationError, NormalizationError

#===============================================================================
# INDEX: options
#===============================================================================


@dataclass(frozen=True)
class ClusteringOptions(TrainingOptions):
    """Options for :class:`ProfileLibraryClustering`. In addition to those
    of :class:`~contexthmm.training.TrainingOptions`:

    Attributes
    ----------
    weight_center : float
        Emission weight of central window column (Default: 1.6)

    weight_decay : float
        Emission weight decay away from center (Default: 0.85)
    """
    weight_center: float = 1.6
    weight_decay: float = 0.85

    def __post_init__(self):
        TrainingOptions.__post_init__(self)
        if self.weight_center <= 0 or self.weight_decay <= 0:
            raise ConfigurationError(
                "Emission weights must be positive. Got weight_center=%s, weight_decay=%s" %
                (self.weight_center, self.weight_decay)
            )


#===============================================================================
# INDEX: profile libraries
#===============================================================================


class ProfileLibrary(object):
    """Collection of context profiles with priors

    Attributes
    ----------
    profiles : list of :class:`~contexthmm.factors.ContextProfile`

    alphabet : :class:`~contexthmm.alphabet.Alphabet`

    iterations : int
        Number of completed maximization steps
    """

    def __init__(self, profiles, alphabet, iterations=0):
        if len(profiles) == 0:
            raise ConfigurationError("A ProfileLibrary requires at least one profile")

        shape = profiles[0].data.shape
        if any(X.data.shape != shape for X in profiles):
            raise ConfigurationError("All profiles in a library must have the same shape")
        if shape[1] != alphabet.size:
            raise ConfigurationError(
                "Profiles have %s columns per residue, but %s alphabet has %s residues" %
                (shape[1], alphabet.name, alphabet.size)
            )

        self.profiles = list(profiles)
        for n, profile in enumerate(self.profiles):
            profile.index = n

        self.alphabet = alphabet
        self.iterations = iterations

    def __repr__(self):
        return "<%s, %s profiles, %s columns>" % (
            self.__class__.__name__, self.num_profiles, self.num_cols
        )

    def __len__(self):
        return len(self.profiles)

    def __getitem__(self, k):
        return self.profiles[k]

    @property
    def num_profiles(self):
        return len(self.profiles)

    @property
    def num_cols(self):
        return self.profiles[0].num_cols

    @property
    def priors(self):
        return numpy.array([X.prior for X in self.profiles])

    @priors.setter
    def priors(self, values):
        for profile, value in zip(self.profiles, values):
            profile.prior = float(value)

    def increment_iterations(self):
        self.iterations += 1

    def get_header(self):
        """Return a list of parameter names corresponding to elements returned
        by :meth:`ProfileLibrary.get_row`
        """
        ltmp = []
        for n, profile in enumerate(self.profiles):
            ltmp += ["p%d_%s" % (n, X) for X in profile.get_header()]
        return ltmp

    def get_row(self):
        """Serialize parameters as a list"""
        ltmp = []
        for profile in self.profiles:
            ltmp += profile.get_row()
        return ltmp

    def to_json(self):
        """Return a string JSON blob encoding `self`"""
        return jsonpickle.encode(self)

    @staticmethod
    def from_json(stmp):
        """Revive a library from a JSON blob"""
        return jsonpickle.decode(stmp)


def context_windows(subjects, num_cols):
    """Cut subjects into all overlapping windows of `num_cols` columns

    Parameters
    ----------
    subjects : list of :class:`~contexthmm.subjects.CountProfile` or :class:`~contexthmm.subjects.Sequence`

    num_cols : int
        Window length

    Returns
    -------
    list of :class:`~contexthmm.subjects.CountProfile`
    """
    windows = []
    for subject in subjects:
        if not isinstance(subject, CountProfile):
            subject = CountProfile.from_sequence(subject)
        for start in range(len(subject) - num_cols + 1):
            windows.append(subject.subprofile(start, num_cols))

    return windows


#===============================================================================
# INDEX: clustering
#===============================================================================


class ProfileLibraryClustering(ExpectationMaximization):
    """Train a :class:`ProfileLibrary` by expectation-maximization clustering
    of context windows. The library is trained in place.

    Attributes
    ----------
    library : :class:`ProfileLibrary`

    emission : :class:`~contexthmm.factors.MultinomialEmission`

    num_eff_cols : float
        Effective number of training columns, used to scale log-likelihoods
    """

    def __init__(self, library, data, options=None, logfunc=None):
        """Create a clustering trainer

        Parameters
        ----------
        library : :class:`ProfileLibrary`
            Starting library

        data : list
            Training windows, each exactly `library.num_cols` long

        options : :class:`ClusteringOptions` or None, optional
            If `None`, default options are used

        logfunc : callable, optional
            Logging function, e.g. from
            :func:`~contexthmm.training.DefaultLoggerFactory`
        """
        if options is None:
            options = ClusteringOptions()
        ExpectationMaximization.__init__(self, data, options, logfunc=logfunc)

        for subject in self.data:
            if len(subject) != library.num_cols:
                raise ConfigurationError(
                    "Training windows must have %s columns. Found one with %s" %
                    (library.num_cols, len(subject))
                )

        self.library = library
        self.emission = MultinomialEmission(library.num_cols, options.weight_center, options.weight_decay)
        self.stats = None
        self.block_stats = None
        self.num_eff_cols = None

    @property
    def model(self):
        return self.library

    def init(self):
        K, W, A = self.library.num_profiles, self.library.num_cols, self.library.alphabet.size
        self.stats = SufficientStatistics(K, W, A)
        self.block_stats = SufficientStatistics(K, W, A)
        self.num_eff_cols = self.emission.sum_weights() * len(self.data)

    def expectation_step(self, block):
        center = self.emission.center
        with numpy.errstate(divide="ignore"):
            log_priors = numpy.log2(self.library.priors)

        for subject in block:
            log_weights = log_priors + numpy.array([
                self.emission.logprob(X, subject, center) for X in self.library.profiles
            ])
            top = log_weights.max()
            if not numpy.isfinite(top):
                raise NormalizationError("Window cannot be generated by any profile in library")

            # posterior p(k|n), computed relative to the largest term
            p_zn = numpy.exp2(log_weights - top)
            total = p_zn.sum()
            p_zn /= total

            self.block_stats.priors += p_zn
            self.block_stats.profiles += p_zn[:, None, None] * subject.as_counts()[None, :, :]
            self.log_likelihood += (top + numpy.log2(total)) / self.num_eff_cols

    def update_sufficient_statistics(self, gamma):
        self.stats.scale_and_add(gamma, self.block_stats)
        self.block_stats.reset()

    def maximization_step(self):
        total = self.stats.priors.sum()
        if not total > 0:
            raise NormalizationError("Profile prior statistics have no probability mass")

        self.library.priors = self.stats.priors / total
        for k, profile in enumerate(self.library.profiles):
            counts = self.stats.profiles[k]
            col_sums = counts.sum(1)

            # profiles without evidence keep their current emissions
            if (col_sums <= 0).any():
                continue

            new_profile = ContextProfile(counts, prior=profile.prior, index=k)
            normalize(new_profile)
            new_profile.transform_to_logspace()
            self.library.profiles[k] = new_profile

        self.library.increment_iterations()
