#!/usr/bin/env python
"""Context-profile hidden Markov models.

Each state of a :class:`ContextHMM` emits windows of a subject (sequence or
count profile) according to its :class:`~contexthmm.factors.ContextProfile`.
States are connected by a sparse set of weighted transitions. Each state keeps
both an out-transition table and a mirrored in-transition table, so that the
forward algorithm can iterate over predecessors and the backward algorithm
over successors. Both tables are only ever changed together, through
:meth:`ContextHMM.set_transition`, :meth:`ContextHMM.remove_transition`,
:meth:`ContextHMM.set_out_transitions`, and
:meth:`ContextHMM.clear_transitions`.

Transition weights are linear-space probabilities. In a well-formed model the
weights of each state's out-transitions sum to 1 (see :meth:`ContextHMM.check`).

Parameters of the model are estimated from data in :mod:`contexthmm.training`.


References
----------
[Biegert2009]
    Biegert A, Soding J (2009). Sequence context-specific profiles for
    homology searching. PNAS 106(10), pp 3770-3775

[Rabiner1989]
    Rabiner, LR (1989). A Tutorial on Hidden Markov Models and Selected
    Applications in Speech Recognition. Proceedings of the IEEE, 77(2), pp
    257-286
"""
import numpy
import jsonpickle
import jsonpickle.ext.numpy
jsonpickle.ext.numpy.register_handlers()

from scipy.sparse import csr_matrix

from contexthmm.alphabet import Alphabet
from contexthmm.factors import ContextProfile
from contexthmm.forward_backward import forward_backward
from contexthmm.util import (
    ConfigurationError,
    MalformedModelError,
    matrix_from_dict,
    matrix_to_dict,
)

#===============================================================================
# INDEX: helpers for unpickling / reviving from jsonpickle
#===============================================================================


def _get_contexthmm_from_dict(dtmp):
    """Revive a :class:`ContextHMM` from a dictionary made by
    :meth:`ContextHMM._to_dict`

    Parameters
    ----------
    dtmp : dict
        Dictionary exported by :meth:`ContextHMM._to_dict`

    Returns
    -------
    ContextHMM
        Revived model
    """
    # code note: logic has to be in an independent function as opposed
    # to a static method in order to enable its use in __reduce__
    alphabet = dtmp["alphabet"]
    if isinstance(alphabet, dict):
        alphabet = Alphabet(**alphabet)

    profiles = []
    for n, ptmp in enumerate(dtmp["profiles"]):
        profile = ContextProfile(ptmp["data"], logspace=False, prior=ptmp["prior"], index=n)
        if ptmp["logspace"]:
            profile.transform_to_logspace()
        profiles.append(profile)

    tmat = matrix_from_dict(dtmp["transitions"])
    transitions = {
        (int(k), int(l)): float(w)
        for k, l, w in zip(tmat.row, tmat.col, tmat.data)
    }
    return ContextHMM(profiles, alphabet, transitions=transitions, iterations=dtmp["iterations"])


#===============================================================================
# INDEX: states and models
#===============================================================================


class HMMState(object):
    """State of a :class:`ContextHMM`

    Attributes
    ----------
    index : int
        Index of state in model

    profile : :class:`~contexthmm.factors.ContextProfile`
        Emission profile of state. Also holds the state prior.

    out_transitions : dict
        Dictionary mapping target state indices to transition weights.
        Read-only; modify via the owning :class:`ContextHMM`

    in_transitions : dict
        Dictionary mapping source state indices to transition weights.
        Read-only; modify via the owning :class:`ContextHMM`
    """

    def __init__(self, index, profile):
        self.index = index
        self.profile = profile
        self.out_transitions = {}
        self.in_transitions = {}

    def __repr__(self):
        return "<%s index=%s prior=%s out=%s in=%s>" % (
            self.__class__.__name__,
            self.index,
            self.prior,
            len(self.out_transitions),
            len(self.in_transitions),
        )

    @property
    def prior(self):
        return self.profile.prior

    @prior.setter
    def prior(self, value):
        self.profile.prior = float(value)

    @property
    def num_out_transitions(self):
        return len(self.out_transitions)

    @property
    def num_in_transitions(self):
        return len(self.in_transitions)


class ContextHMM(object):
    """Hidden Markov model whose states emit context windows

    Attributes
    ----------
    states : list of :class:`HMMState`
        States of the model

    alphabet : :class:`~contexthmm.alphabet.Alphabet`
        Alphabet of subjects the model describes

    num_states : int
        Number of states

    num_cols : int
        Window length of every state profile

    iterations : int
        Number of completed maximization steps
    """

    def __init__(self, profiles, alphabet, transitions=None, iterations=0):
        """Create a :class:`ContextHMM`

        Parameters
        ----------
        profiles : list of :class:`~contexthmm.factors.ContextProfile`
            One profile per state. All must have the same shape, with one
            column per residue of `alphabet`. State priors are taken from
            the profiles.

        alphabet : :class:`~contexthmm.alphabet.Alphabet`

        transitions : dict, :class:`numpy.ndarray`, or sparse matrix, optional
            Initial transitions, either as a dictionary mapping `(k, l)`
            to weights, or as a `num_states x num_states` matrix in which
            zero entries denote absent transitions. If `None`, the model
            starts without transitions.

        iterations : int, optional
            Number of training iterations already performed (Default: 0)

        Raises
        ------
        ConfigurationError
            If there are no profiles, or profiles have mismatched shapes
        """
        if len(profiles) == 0:
            raise ConfigurationError("A ContextHMM requires at least one state")

        shape = profiles[0].data.shape
        for profile in profiles:
            if profile.data.shape != shape:
                raise ConfigurationError(
                    "All state profiles must have the same shape. Found %s and %s" %
                    (shape, profile.data.shape)
                )
        if shape[1] != alphabet.size:
            raise ConfigurationError(
                "Profiles have %s columns per residue, but %s alphabet has %s residues" %
                (shape[1], alphabet.name, alphabet.size)
            )
        if shape[0] % 2 == 0:
            raise ConfigurationError("Context window length must be odd. Got %s" % shape[0])

        self.alphabet = alphabet
        self.num_states = len(profiles)
        self.num_cols = shape[0]
        self.iterations = iterations
        self.states = []
        for n, profile in enumerate(profiles):
            profile.index = n
            self.states.append(HMMState(n, profile))

        self._num_transitions = 0
        self.__tmat = None

        if transitions is not None:
            if isinstance(transitions, dict):
                items = transitions.items()
            else:
                coomat = csr_matrix(transitions).tocoo()
                items = (((k, l), w) for k, l, w in zip(coomat.row, coomat.col, coomat.data))

            for (k, l), w in items:
                if w > 0:
                    self.set_transition(int(k), int(l), float(w))

    def __str__(self):
        return repr(self)

    def __repr__(self):
        return "<%s, %s states, %s columns, %s transitions>" % (
            self.__class__.__name__, self.num_states, self.num_cols, self.num_transitions
        )

    def __len__(self):
        return self.num_states

    def __getitem__(self, k):
        return self.states[k]

    def __iter__(self):
        return iter(self.states)

    def __eq__(self, other):
        if not isinstance(other, ContextHMM):
            return False

        if self.num_states != other.num_states \
           or self.num_cols != other.num_cols \
           or self.alphabet != other.alphabet:
            return False

        for mine, theirs in zip(self.states, other.states):
            if mine.out_transitions != theirs.out_transitions:
                return False
            if not numpy.allclose(mine.profile.probs(), theirs.profile.probs()) \
               or not numpy.isclose(mine.prior, theirs.prior):
                return False

        return True

    def __ne__(self, other):
        return not self == other

    # transitions --------------------------------------------------------------

    def _check_index(self, k):
        if not 0 <= k < self.num_states:
            raise IndexError("State index %s out of range for model with %s states" % (k, self.num_states))

    def set_transition(self, k, l, weight):
        """Create or overwrite the transition `k -> l`, updating both the
        out-transitions of `k` and the in-transitions of `l`

        Parameters
        ----------
        k, l : int
            Source and target state indices

        weight : float
            Positive transition weight
        """
        self._check_index(k)
        self._check_index(l)
        if not weight > 0 or not numpy.isfinite(weight):
            raise ValueError("Transition weights must be positive and finite. Got %s" % weight)

        if l not in self.states[k].out_transitions:
            self._num_transitions += 1

        self.states[k].out_transitions[l] = weight
        self.states[l].in_transitions[k] = weight
        self.__tmat = None

    def remove_transition(self, k, l):
        """Remove transition `k -> l` from both transition tables. Does
        nothing if the transition does not exist.
        """
        self._check_index(k)
        self._check_index(l)
        if l in self.states[k].out_transitions:
            del self.states[k].out_transitions[l]
            del self.states[l].in_transitions[k]
            self._num_transitions -= 1
            self.__tmat = None

    def set_out_transitions(self, k, weights):
        """Replace all out-transitions of state `k`

        Parameters
        ----------
        k : int
            Source state

        weights : dict
            Dictionary mapping target states to positive weights
        """
        for l in list(self.states[k].out_transitions):
            self.remove_transition(k, l)
        for l, w in sorted(weights.items()):
            self.set_transition(k, l, w)

    def clear_transitions(self):
        """Remove all transitions from the model"""
        for state in self.states:
            state.out_transitions.clear()
            state.in_transitions.clear()

        self._num_transitions = 0
        self.__tmat = None

    def transition(self, k, l):
        """Return weight of transition `k -> l`, or 0.0 if it does not exist"""
        return self.states[k].out_transitions.get(l, 0.0)

    def transitions(self):
        """Iterate over all transitions as `(source, target, weight)` tuples,
        ordered by source, then target
        """
        for state in self.states:
            for l in sorted(state.out_transitions):
                yield state.index, l, state.out_transitions[l]

    @property
    def num_transitions(self):
        return self._num_transitions

    @property
    def connectivity(self):
        """Average number of out-transitions per state"""
        return float(self._num_transitions) / self.num_states

    @property
    def transition_matrix(self):
        """Sparse `num_states x num_states` matrix of transition weights, as a
        :class:`scipy.sparse.csr_matrix`. Rebuilt after any change in
        transitions.
        """
        # lazily rebuild on first use after a change in transitions
        if self.__tmat is None:
            rows, cols, data = [], [], []
            for k, l, w in self.transitions():
                rows.append(k)
                cols.append(l)
                data.append(w)

            self.__tmat = csr_matrix(
                (data, (rows, cols)), shape=(self.num_states, self.num_states), dtype=float
            )

        return self.__tmat

    # priors and profiles ------------------------------------------------------

    @property
    def priors(self):
        """Array of state priors"""
        return numpy.array([X.prior for X in self.states])

    @priors.setter
    def priors(self, values):
        if len(values) != self.num_states:
            raise ValueError("Expected %s priors. Got %s" % (self.num_states, len(values)))
        for state, value in zip(self.states, values):
            state.prior = value

    @property
    def profiles(self):
        """List of state profiles"""
        return [X.profile for X in self.states]

    def set_profile(self, k, profile):
        """Replace the emission profile of state `k`, keeping its prior"""
        if profile.data.shape != self.states[k].profile.data.shape:
            raise ValueError(
                "Replacement profile has shape %s, expected %s" %
                (profile.data.shape, self.states[k].profile.data.shape)
            )
        profile.index = k
        profile.prior = self.states[k].prior
        self.states[k].profile = profile

    def increment_iterations(self):
        self.iterations += 1

    def check(self, tol=1e-6):
        """Verify structural invariants of the model

        Parameters
        ----------
        tol : float, optional
            Tolerance for sums of probabilities (Default: 1e-6)

        Raises
        ------
        MalformedModelError
            If in- and out-transition tables disagree, if any state has no
            out-transitions or out-transitions that do not sum to 1, or if
            state priors do not sum to 1
        """
        for state in self.states:
            k = state.index
            for l, w in state.out_transitions.items():
                if self.states[l].in_transitions.get(k) != w:
                    raise MalformedModelError(
                        "Transition %s -> %s missing from in-transitions of state %s" % (k, l, l)
                    )
            for j, w in state.in_transitions.items():
                if self.states[j].out_transitions.get(k) != w:
                    raise MalformedModelError(
                        "In-transition %s -> %s has no matching out-transition" % (j, k)
                    )
            if len(state.out_transitions) == 0:
                raise MalformedModelError("State %s has no out-transitions" % k)

            total = sum(state.out_transitions.values())
            if abs(total - 1.0) > tol:
                raise MalformedModelError(
                    "Out-transitions of state %s sum to %s instead of 1" % (k, total)
                )

        if abs(self.priors.sum() - 1.0) > tol:
            raise MalformedModelError("State priors sum to %s instead of 1" % self.priors.sum())

    # inference ----------------------------------------------------------------

    def forward_backward(self, subject, emission):
        """Run the scaled forward-backward algorithm on `subject`

        Parameters
        ----------
        subject : :class:`~contexthmm.subjects.Sequence` or :class:`~contexthmm.subjects.CountProfile`

        emission : :class:`~contexthmm.factors.MultinomialEmission`

        Returns
        -------
        :class:`~contexthmm.forward_backward.ForwardBackwardMatrices`
        """
        return forward_backward(self, subject, emission)

    def logprob(self, subject, emission):
        """Return log2 likelihood of `subject` under the model"""
        return self.forward_backward(subject, emission).log_likelihood

    def posterior_decode(self, subject, emission):
        """Find the most probable state at each position of `subject`

        Parameters
        ----------
        subject : :class:`~contexthmm.subjects.Sequence` or :class:`~contexthmm.subjects.CountProfile`

        emission : :class:`~contexthmm.factors.MultinomialEmission`

        Returns
        -------
        numpy.ndarray
            Most likely state at each position

        numpy.ndarray
            `[N x num_states]` array of posterior state probabilities
        """
        posterior_probs = self.forward_backward(subject, emission).posterior_probs()
        return posterior_probs.argmax(1), posterior_probs

    # logging and serialization ------------------------------------------------

    def get_header(self):
        """Return a list of parameter names corresponding to elements returned
        by :meth:`ContextHMM.get_row`

        Returns
        -------
        list
            List of parameter names
        """
        K = self.num_states
        ltmp = ["sp_%d" % X for X in range(K)]
        ltmp += ["t_%d,%d" % (X, Y) for X in range(K) for Y in range(K)]
        for n, state in enumerate(self.states):
            ltmp += ["e%d_%s" % (n, X) for X in state.profile.get_header()[1:]]

        return ltmp

    def get_row(self):
        """Serialize parameters as a list, e.g. for a row of a log file

        Returns
        -------
        list
            List of parameter values
        """
        ltmp = list(self.priors)
        ltmp += list(self.transition_matrix.toarray().ravel())
        for state in self.states:
            ltmp += state.profile.get_row()[1:]

        return ltmp

    def __reduce__(self):
        """Define pickling and unpickling methods for `self`"""
        return _get_contexthmm_from_dict, (self._to_dict(), )

    def _to_dict(self):
        """Export minimal elements required for pickling

        Returns
        -------
        dict
            Dictionary representation of `self`
        """
        dtmp = {
            "alphabet"    : self.alphabet._to_dict(),
            "iterations"  : self.iterations,
            "transitions" : matrix_to_dict(self.transition_matrix),
            "profiles"    : [
                {
                    "prior"    : X.prior,
                    "logspace" : X.profile.logspace,
                    "data"     : X.profile.probs().tolist(),
                } for X in self.states
            ],
        } # yapf: disable
        return dtmp

    def to_json(self):
        """Return a string JSON blob encoding `self`"""
        return jsonpickle.encode(self)

    @staticmethod
    def from_json(stmp):
        """Revive a model from a JSON blob

        Parameters
        ----------
        stmp : str
            JSON blob encoding a :class:`ContextHMM`

        Returns
        -------
        :class:`ContextHMM`
        """
        return jsonpickle.decode(stmp)

    def write(self, fh):
        """Write `self` as JSON to open file-like object `fh`"""
        fh.write(self.to_json())

    @staticmethod
    def read(fh):
        """Read a :class:`ContextHMM` from an open file-like object written by
        :meth:`ContextHMM.write`
        """
        return ContextHMM.from_json(fh.read())
