#!/usr/bin/env python
"""Utilities used by multiple functions / across the library
"""
from scipy.sparse import coo_matrix

#===============================================================================
# Exceptions
#===============================================================================


class ConfigurationError(ValueError):
    """Raised when training options, emission parameters, or model dimensions
    are invalid. Always raised before any training takes place.
    """


class MalformedModelError(ValueError):
    """Raised when an HMM violates a structural invariant, e.g. a state with no
    outgoing transitions, asymmetric in/out transition tables, or a
    forward scale factor of zero.
    """


class NormalizationError(ArithmeticError):
    """Raised when a distribution cannot be normalized because its
    total mass is zero
    """


#===============================================================================
# Printing
#===============================================================================


class NullWriter(object):
    """File-like object that actually writes nothing, in the spirit of
    :obj:`os.devnull`
    """

    def write(self, inp):
        pass

    def __repr__(self):
        return "NullWriter()"

    def __str__(self):
        return "NullWriter()"

    def close(self):
        pass

    def flush(self):
        pass


#===============================================================================
# Serialization / deserialization of matrices
#===============================================================================


def matrix_to_dict(mat):
    """Convert a matrix or array `mat` to a sparse dictionary, e.g. for
    writing transition tables to JSON

    Parameters
    ----------
    mat : :class:`numpy.ndarray`, or something like it


    Returns
    -------
    dict
        Dictionary with the following properties:

        `shape`
            A tuple of matrix dimensions

        `row`
            A list of row coordinates

        `col`
            A list of column coordinates

        `data`
            A list of values

    See also
    --------
    matrix_from_dict
    """
    coomat = coo_matrix(mat)
    dout = {
        "shape": tuple(int(X) for X in coomat.shape),
        "row": [int(X) for X in coomat.row],
        "col": [int(X) for X in coomat.col],
        "data": [float(X) for X in coomat.data],
    }
    return dout


def matrix_from_dict(dtmp, dense=False):
    """Reconstruct a matrix from a dictionary made e.g. by :func:`matrix_to_dict`


    Parameters
    ----------
    dtmp : dict
        Dictionary with keys `shape`, `row`, `col`, and `data`

    dense : bool, optional
        Whether or not to return a dense array


    Returns
    -------
    :class:`scipy.sparse.coo_matrix` if `dense` is `False`, otherwise :class:`numpy.ndarray`


    See also
    --------
    matrix_to_dict
    """
    coomat = coo_matrix((dtmp["data"], (dtmp["row"], dtmp["col"])), shape=tuple(dtmp["shape"]))
    return coomat.toarray() if dense is True else coomat
