#!/usr/bin/env python
"""Context profiles and the emission model that scores them against
subjects.

A :class:`ContextProfile` is a `W x A` table of residue probabilities for a
window of `W` consecutive columns (`W` odd) over an alphabet of size `A`,
together with a scalar prior. Profiles are stored either in linear space or in
log2 space.

:class:`MultinomialEmission` computes the log2 probability that a profile
emitted the window of a subject centered at a given index, weighting each
window column by its distance from the central column::

    w[j] = weight_center * weight_decay ** |j - c|

where `c = (W - 1) / 2`. Windows are clipped at the ends of the subject; no
padding or wrap-around is applied.
"""
import warnings
import numpy

from contexthmm.subjects import Sequence
from contexthmm.util import ConfigurationError, NormalizationError

#===============================================================================
# INDEX: helper functions
#===============================================================================


def _log2(data):
    """Base-2 log of `data`, mapping zeros to `-inf` without warnings"""
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", "divide by zero encountered in log2", RuntimeWarning)
        return numpy.log2(data)


def normalize(profile):
    """Normalize each column of `profile` in place to sum to 1. Profiles in log
    space are normalized in linear space and transformed back.

    Parameters
    ----------
    profile : :class:`ContextProfile`

    Raises
    ------
    NormalizationError
        If any column sums to zero
    """
    was_log = profile.logspace
    if was_log:
        profile.transform_to_linspace()

    sums = profile.data.sum(1)
    if (sums <= 0).any() or not numpy.isfinite(sums).all():
        bad = numpy.flatnonzero((sums <= 0) | ~numpy.isfinite(sums))
        if was_log:
            profile.transform_to_logspace()
        raise NormalizationError(
            "Cannot normalize profile %s: columns %s have no probability mass" %
            (profile.index, list(bad))
        )

    profile.data = profile.data / sums[:, None]

    if was_log:
        profile.transform_to_logspace()


#===============================================================================
# INDEX: context profiles
#===============================================================================


class ContextProfile(object):
    """Window of residue probabilities, with a prior

    Attributes
    ----------
    data : numpy.ndarray
        `num_cols x alphabet_size` table of probabilities (linear space) or
        log2 probabilities (log space)

    logspace : bool
        Whether `data` is in log2 space

    prior : float
        Prior probability of profile

    index : int
        Position of profile in its library or HMM
    """

    def __init__(self, data, logspace=False, prior=1.0, index=0):
        """Create a ContextProfile

        Parameters
        ----------
        data : array-like
            `num_cols x alphabet_size` table

        logspace : bool, optional
            Whether `data` holds log2 probabilities (Default: `False`)

        prior : float, optional
            Prior probability (Default: 1.0)

        index : int, optional
            Index in library or HMM (Default: 0)
        """
        data = numpy.array(data, dtype=float)
        if data.ndim != 2:
            raise ValueError("ContextProfile data must be two-dimensional. Got shape %s" % (data.shape, ))

        self.data = data
        self.logspace = logspace
        self.prior = float(prior)
        self.index = index

    def __eq__(self, other):
        return isinstance(other, ContextProfile) \
               and self.logspace == other.logspace \
               and self.prior == other.prior \
               and self.data.shape == other.data.shape \
               and (self.data == other.data).all()

    def __repr__(self):
        return "<%s index=%s num_cols=%s logspace=%s>" % (
            self.__class__.__name__, self.index, self.num_cols, self.logspace
        )

    def __len__(self):
        return self.num_cols

    @property
    def num_cols(self):
        return self.data.shape[0]

    @property
    def alphabet_size(self):
        return self.data.shape[1]

    @property
    def center(self):
        """Index of central column"""
        return (self.num_cols - 1) // 2

    def transform_to_logspace(self):
        """Convert `data` to log2 space. Zero probabilities become `-inf`."""
        if not self.logspace:
            self.data = _log2(self.data)
            self.logspace = True

    def transform_to_linspace(self):
        """Convert `data` to linear space"""
        if self.logspace:
            self.data = numpy.exp2(self.data)
            self.logspace = False

    def log_probs(self):
        """Return a copy of `data` in log2 space, regardless of `self.logspace`"""
        return self.data.copy() if self.logspace else _log2(self.data)

    def probs(self):
        """Return a copy of `data` in linear space, regardless of `self.logspace`"""
        return numpy.exp2(self.data) if self.logspace else self.data.copy()

    def get_header(self):
        """Return a list of parameter names corresponding to elements returned
        by :meth:`ContextProfile.get_row`
        """
        return ["prior"] + [
            "%d,%d" % (X, Y) for X in range(self.num_cols) for Y in range(self.alphabet_size)
        ]

    def get_row(self):
        """Serialize parameters as a list of linear-space values"""
        return [self.prior] + list(self.probs().ravel())


#===============================================================================
# INDEX: emissions
#===============================================================================


class MultinomialEmission(object):
    """Window-weighted multinomial emission of a subject window by a
    :class:`ContextProfile`

    Attributes
    ----------
    num_cols : int
        Window length `W`. Must be odd.

    center : int
        Index of central window column

    weight_center : float
        Weight of central column

    weight_decay : float
        Multiplicative decay of weights per column away from center

    weights : numpy.ndarray
        Weight of each window column
    """

    def __init__(self, num_cols, weight_center=1.3, weight_decay=0.9):
        """Create an emission model

        Parameters
        ----------
        num_cols : int
            Window length. Must be odd and positive.

        weight_center : float, optional
            Weight of central column (Default: 1.3)

        weight_decay : float, optional
            Decay of weights away from center (Default: 0.9)

        Raises
        ------
        ConfigurationError
            If `num_cols` is not a positive odd number
        """
        if num_cols < 1 or num_cols % 2 == 0:
            raise ConfigurationError("Context window length must be odd and positive. Got %s" % num_cols)

        self.num_cols = int(num_cols)
        self.center = (self.num_cols - 1) // 2
        self.weight_center = weight_center
        self.weight_decay = weight_decay

        offsets = numpy.abs(numpy.arange(self.num_cols) - self.center)
        self.weights = weight_center * weight_decay**offsets

    def __repr__(self):
        return "<%s num_cols=%s weight_center=%s weight_decay=%s>" % (
            self.__class__.__name__, self.num_cols, self.weight_center, self.weight_decay
        )

    def sum_weights(self):
        """Return sum of column weights"""
        return self.weights.sum()

    def _check_profile(self, profile):
        if profile.num_cols != self.num_cols:
            raise ValueError(
                "Profile has %s columns, but emission expects %s" % (profile.num_cols, self.num_cols)
            )

    def logprob(self, profile, subject, index):
        """Return log2 probability that `profile` emitted the window of
        `subject` centered at `index`

        Parameters
        ----------
        profile : :class:`ContextProfile`
            Profile with `self.num_cols` columns, in linear or log space

        subject : :class:`~contexthmm.subjects.Sequence` or :class:`~contexthmm.subjects.CountProfile`

        index : int
            Central position of window in `subject`

        Returns
        -------
        float
            Window-weighted log2 probability
        """
        self._check_profile(profile)
        logp = profile.log_probs()
        N = len(subject)

        beg = max(0, index - self.center)
        end = min(N - 1, index + self.center)
        rval = 0.0

        if isinstance(subject, Sequence):
            any_ = subject.alphabet.any
            for i in range(beg, end + 1):
                code = subject.codes[i]
                if code < any_:
                    j = i - index + self.center
                    rval += self.weights[j] * logp[j, code]
        else:
            counts = subject.as_counts()
            for i in range(beg, end + 1):
                j = i - index + self.center
                nonzero = counts[i] > 0
                rval += self.weights[j] * (counts[i, nonzero] * logp[j, nonzero]).sum()

        return rval

    def log_emissions(self, profile, subject):
        """Vectorized :meth:`logprob` for every position of `subject`

        Parameters
        ----------
        profile : :class:`ContextProfile`

        subject : :class:`~contexthmm.subjects.Sequence` or :class:`~contexthmm.subjects.CountProfile`

        Returns
        -------
        numpy.ndarray
            Array of length `len(subject)`. Element `i` equals
            ``self.logprob(profile, subject, i)``
        """
        self._check_profile(profile)
        logp = profile.log_probs()
        counts = subject.as_counts()
        N = len(subject)
        out = numpy.zeros(N)

        nonzero = counts > 0
        for j in range(self.num_cols):
            offset = j - self.center
            if abs(offset) >= N:
                continue

            # 0 * -inf contributes nothing
            terms = numpy.zeros_like(counts)
            terms[nonzero] = counts[nonzero] * numpy.broadcast_to(logp[j], counts.shape)[nonzero]
            col_scores = terms.sum(1)

            out[max(0, -offset):N - max(0, offset)] += \
                self.weights[j] * col_scores[max(0, offset):N + min(0, offset)]

        return out
