#!/usr/bin/env python
"""Training data ("subjects") for context-profile HMMs.

Two kinds of subject are supported:

:class:`Sequence`
    A single sequence of residue codes

:class:`CountProfile`
    A profile of residue counts or frequencies per column, e.g. derived
    from a multiple sequence alignment, together with the effective number
    of sequences (`neff`) contributing to each column

Both expose ``len()``, ``alphabet``, and :meth:`as_counts`, which returns
an `N x alphabet.size` array of non-negative values. Subjects are read-only
during training.
"""
import numpy

#===============================================================================
# INDEX: subjects
#===============================================================================


class Sequence(object):
    """Sequence of residue codes

    Attributes
    ----------
    codes : numpy.ndarray
        Integer residue codes. Codes ``>= alphabet.any`` are non-informative.

    alphabet : :class:`~contexthmm.alphabet.Alphabet`
        Alphabet used to encode `codes`

    header : str
        Description of sequence
    """

    def __init__(self, codes, alphabet, header=""):
        codes = numpy.array(codes, dtype=int)
        if codes.ndim != 1:
            raise ValueError("Sequence codes must be one-dimensional. Got shape %s" % (codes.shape, ))
        if len(codes) > 0 and (codes.min() < 0 or codes.max() > alphabet.endgap):
            raise ValueError("Sequence contains codes outside of %s alphabet" % alphabet.name)

        self.codes = codes
        self.codes.setflags(write=False)
        self.alphabet = alphabet
        self.header = header

    @staticmethod
    def from_string(seq, alphabet, header=""):
        """Create a :class:`Sequence` from a string of residue characters

        Parameters
        ----------
        seq : str
            Residues. Case-insensitive.

        alphabet : :class:`~contexthmm.alphabet.Alphabet`

        header : str, optional
            Description of sequence

        Returns
        -------
        :class:`Sequence`
        """
        return Sequence(alphabet.encode(seq), alphabet, header=header)

    def __len__(self):
        return len(self.codes)

    @property
    def length(self):
        return len(self.codes)

    def __getitem__(self, i):
        return self.codes[i]

    def __repr__(self):
        return "<%s %s length=%s>" % (self.__class__.__name__, self.header, len(self))

    def __str__(self):
        return self.alphabet.decode(self.codes)

    def __eq__(self, other):
        return isinstance(other, Sequence) \
               and self.alphabet == other.alphabet \
               and len(self) == len(other) \
               and (self.codes == other.codes).all()

    def as_counts(self):
        """Return sequence as a one-hot count matrix

        Returns
        -------
        numpy.ndarray
            `N x alphabet.size` array. Rows at non-informative positions are
            all zero.
        """
        counts = numpy.zeros((len(self), self.alphabet.size))
        informative = self.codes < self.alphabet.any
        counts[numpy.flatnonzero(informative), self.codes[informative]] = 1.0
        return counts


class CountProfile(object):
    """Profile of residue counts or frequencies, one row per column of an
    alignment

    Attributes
    ----------
    data : numpy.ndarray
        `N x alphabet.size` array of residue frequencies, or, if `has_counts`
        is `True`, of residue counts

    neff : numpy.ndarray
        Effective number of sequences at each column

    has_counts : bool
        Whether `data` holds counts (`True`) or frequencies (`False`)

    alphabet : :class:`~contexthmm.alphabet.Alphabet`
    """

    def __init__(self, data, alphabet, neff=None, has_counts=False, header=""):
        """Create a :class:`CountProfile`

        Parameters
        ----------
        data : array-like
            `N x alphabet.size` array of non-negative frequencies or counts

        alphabet : :class:`~contexthmm.alphabet.Alphabet`

        neff : array-like or None, optional
            Effective number of sequences per column. If `None`, 1.0 is used
            for each column.

        has_counts : bool, optional
            Whether `data` holds counts (Default: `False`, frequencies)

        header : str, optional
            Description of profile
        """
        data = numpy.array(data, dtype=float)
        if data.ndim != 2 or data.shape[1] != alphabet.size:
            raise ValueError(
                "CountProfile data must have shape (N, %s). Got %s" % (alphabet.size, data.shape)
            )
        if (data < 0).any():
            raise ValueError("CountProfile data must be non-negative")

        if neff is None:
            neff = numpy.ones(len(data))
        neff = numpy.array(neff, dtype=float)
        if neff.shape != (len(data), ):
            raise ValueError("neff must have one entry per column (%s). Got %s" % (len(data), neff.shape))

        self.data = data
        self.neff = neff
        self.has_counts = has_counts
        self.alphabet = alphabet
        self.header = header

    @staticmethod
    def from_sequence(seq):
        """Create a frequency profile from a :class:`Sequence`, with
        `neff = 1` at every column

        Parameters
        ----------
        seq : :class:`Sequence`

        Returns
        -------
        :class:`CountProfile`
        """
        return CountProfile(seq.as_counts(), seq.alphabet, neff=numpy.ones(len(seq)), header=seq.header)

    def __len__(self):
        return len(self.data)

    @property
    def length(self):
        return len(self.data)

    @property
    def num_cols(self):
        return len(self.data)

    def __repr__(self):
        return "<%s %s length=%s has_counts=%s>" % (
            self.__class__.__name__, self.header, len(self), self.has_counts
        )

    def __eq__(self, other):
        return isinstance(other, CountProfile) \
               and self.alphabet == other.alphabet \
               and self.has_counts == other.has_counts \
               and self.data.shape == other.data.shape \
               and numpy.allclose(self.data, other.data) \
               and numpy.allclose(self.neff, other.neff)

    def as_counts(self):
        """Return the `N x alphabet.size` array of profile values used in
        emission calculations. These are counts if `has_counts` is `True`,
        otherwise frequencies.
        """
        return self.data

    def convert_to_counts(self):
        """Multiply frequencies in each column by the column's `neff`. Does
        nothing if profile already holds counts.
        """
        if not self.has_counts:
            self.data = self.data * self.neff[:, None]
            self.has_counts = True

    def convert_to_frequencies(self):
        """Normalize counts in each column to frequencies. Does nothing if
        profile already holds frequencies. All-zero columns stay zero.
        """
        if self.has_counts:
            sums = self.data.sum(1)
            sums[sums == 0] = 1.0
            self.data = self.data / sums[:, None]
            self.has_counts = False

    def subprofile(self, index, length):
        """Return a new :class:`CountProfile` of `length` columns starting at
        column `index`

        Raises
        ------
        IndexError
            If the requested window extends past either end of `self`
        """
        if index < 0 or length < 1 or index + length > len(self):
            raise IndexError(
                "Cannot take %s columns at %s from profile of length %s" % (length, index, len(self))
            )
        return CountProfile(
            self.data[index:index + length].copy(),
            self.alphabet,
            neff=self.neff[index:index + length].copy(),
            has_counts=self.has_counts,
            header=self.header,
        )
