#!/usr/bin/env python
"""Symbol alphabets for biological sequences.

Residues are encoded as integer codes `0 .. size - 1`. Three sentinel codes
follow the informative ones:

    ``any``
        Unknown residue (`size`)

    ``gap``
        Alignment gap (`size + 1`)

    ``endgap``
        Terminal alignment gap (`size + 2`)

Any code greater than or equal to ``any`` carries no information about the
residue distribution, and is skipped when computing emission probabilities or
collecting counts.

Alphabets are immutable and are passed explicitly to every object that needs
them. Two instances are provided: :data:`AMINO_ACID` and :data:`NUCLEOTIDE`.
"""
import numpy

#===============================================================================
# INDEX: helpers
#===============================================================================


def _get_alphabet_from_dict(dtmp):
    """Revive an :class:`Alphabet` from a dictionary made by
    :meth:`Alphabet._to_dict`
    """
    # code note: logic has to be in an independent function as opposed
    # to a static method in order to enable its use in __reduce__
    return Alphabet(
        dtmp["name"],
        dtmp["chars"],
        any_char=dtmp["any_char"],
        gap_char=dtmp["gap_char"],
        endgap_char=dtmp["endgap_char"],
        background=dtmp["background"],
    )


#===============================================================================
# INDEX: alphabets
#===============================================================================


class Alphabet(object):
    """Mapping between residue characters and integer codes

    Attributes
    ----------
    name : str
        Name of alphabet

    chars : str
        Informative characters, in code order

    size : int
        Number of informative characters

    any, gap, endgap : int
        Sentinel codes

    background : numpy.ndarray
        Background frequency of each informative character
    """

    def __init__(
            self,
            name,
            chars,
            any_char="X",
            gap_char="-",
            endgap_char=".",
            background=None,
    ):
        """Create an alphabet

        Parameters
        ----------
        name : str
            Name of alphabet

        chars : str
            Informative characters, in code order. Must be unique.

        any_char : str, optional
            Character representing an unknown residue (Default: 'X')

        gap_char : str, optional
            Gap character (Default: '-')

        endgap_char : str, optional
            Terminal gap character (Default: '.')

        background : list-like or None, optional
            Background frequencies of informative characters. If `None`, a
            uniform distribution is used.
        """
        chars = str(chars).upper()
        if len(set(chars)) != len(chars) or len(chars) == 0:
            raise ValueError("Alphabet characters must be unique and non-empty. Got '%s'" % chars)

        self.name = name
        self.chars = chars
        self.any_char = any_char
        self.gap_char = gap_char
        self.endgap_char = endgap_char

        self.size = len(chars)
        self.any = self.size
        self.gap = self.size + 1
        self.endgap = self.size + 2

        if background is None:
            background = numpy.ones(self.size) / self.size

        background = numpy.array(background, dtype=float)
        if background.shape != (self.size, ):
            raise ValueError(
                "Background frequencies must have length %s. Got %s" %
                (self.size, len(background))
            )
        self._background = background / background.sum()
        self._background.setflags(write=False)

        # lookups are case-insensitive
        self._ctoi = {}
        for n, c in enumerate(chars):
            self._ctoi[c] = n
            self._ctoi[c.lower()] = n

        for c, code in ((any_char, self.any), (gap_char, self.gap), (endgap_char, self.endgap)):
            self._ctoi[c] = code
            self._ctoi[c.lower()] = code

        self._itoc = chars + any_char + gap_char + endgap_char

    def __len__(self):
        return self.size

    def __repr__(self):
        return "<%s %s size=%s>" % (self.__class__.__name__, self.name, self.size)

    def __str__(self):
        return repr(self)

    def __eq__(self, other):
        return isinstance(other, Alphabet) \
               and self.name == other.name \
               and self.chars == other.chars \
               and self._itoc == other._itoc

    def __ne__(self, other):
        return not self == other

    def __hash__(self):
        return hash((self.name, self._itoc))

    def __reduce__(self):
        """Define pickling and unpickling methods for `self`"""
        return _get_alphabet_from_dict, (self._to_dict(), )

    def _to_dict(self):
        """Export minimal elements required for pickling

        Returns
        -------
        dict
            Dictionary representation of `self`
        """
        dtmp = {
            "name"        : self.name,
            "chars"       : self.chars,
            "any_char"    : self.any_char,
            "gap_char"    : self.gap_char,
            "endgap_char" : self.endgap_char,
            "background"  : [float(X) for X in self._background],
        } # yapf: disable
        return dtmp

    @property
    def background(self):
        """Read-only array of background frequencies"""
        return self._background

    def ctoi(self, char):
        """Return the integer code of `char`

        Parameters
        ----------
        char : str
            Single character. Case-insensitive.

        Returns
        -------
        int

        Raises
        ------
        KeyError
            If `char` is not in the alphabet
        """
        try:
            return self._ctoi[char]
        except KeyError:
            raise KeyError("Character '%s' not in %s alphabet" % (char, self.name))

    def itoc(self, code):
        """Return the character represented by integer `code`"""
        if code < 0 or code > self.endgap:
            raise KeyError("Code %s not in %s alphabet" % (code, self.name))
        return self._itoc[code]

    def encode(self, seq):
        """Convert a string to an array of integer codes

        Parameters
        ----------
        seq : str
            Sequence of characters

        Returns
        -------
        numpy.ndarray
            Integer codes, dtype `int`
        """
        return numpy.array([self.ctoi(X) for X in seq], dtype=int)

    def decode(self, codes):
        """Convert a sequence of integer codes back to a string"""
        return "".join(self.itoc(X) for X in codes)

    def is_informative(self, code):
        """Return `True` if `code` denotes an actual residue, `False` if it is
        one of the sentinels ``any``, ``gap``, or ``endgap``
        """
        return 0 <= code < self.any


#===============================================================================
# INDEX: instances
#===============================================================================

# Amino acid background frequencies, in the order of AMINO_ACID.chars
_AMINO_ACID_BACKGROUND = [
    0.076627178753322270, # A
    0.018866884241976509, # C
    0.053996136712517316, # D
    0.059788009880742142, # E
    0.034939432842683173, # F
    0.075415244982547675, # G
    0.036829356494115069, # H
    0.050485048600600511, # I
    0.059581159080509941, # K
    0.099925728794059046, # L
    0.021959667190729986, # M
    0.040107059298840765, # N
    0.045310838527464106, # P
    0.032644867589507229, # Q
    0.051296350550656143, # R
    0.046617000834108295, # S
    0.071051060827250878, # T
    0.072644631719882335, # V
    0.012473412286822654, # W
    0.039418044025976547, # Y
] # yapf: disable

AMINO_ACID = Alphabet(
    "AminoAcid",
    "ACDEFGHIKLMNPQRSTVWY",
    any_char="X",
    background=_AMINO_ACID_BACKGROUND,
)
"""Twenty standard amino acids"""

NUCLEOTIDE = Alphabet("Nucleotide", "ACGT", any_char="N")
"""DNA nucleotides, with uniform background frequencies"""
