#!/usr/bin/env python
"""A generalized, optionally online, expectation-maximization driver, and
Baum-Welch training of context-profile HMMs built on top of it.

Training proceeds in *scans* over the training data. In each scan the data
are partitioned into blocks. For each block, the trainer collects expected
sufficient statistics (E step), merges them into its global statistics as::

    global = gamma * global + block

and, in online mode, re-estimates model parameters (M step) right away. The
decay `gamma = 1 - epsilon` is governed by a learning rate `epsilon` that
decreases from scan to scan according to an *epsilon schedule*. In batch mode,
statistics of all blocks are summed and parameters are re-estimated once per
scan.

Training stops once `max_scans` scans have run, or once at least `min_scans`
scans have run and the log-likelihood per effective column changes by less
than a threshold.

Also includes schedules for decaying learning rates, and helpers to log and
plot training progress.
"""
import datetime
import functools
import multiprocessing
import warnings
from dataclasses import dataclass
from typing import Callable, Optional

import numpy

from contexthmm.estimators import (
    StateEstimator,
    SufficientStatistics,
    TransitionEstimator,
)
from contexthmm.factors import MultinomialEmission
from contexthmm.util import ConfigurationError, NullWriter

#===============================================================================
# INDEX: options
#===============================================================================


@dataclass(frozen=True)
class TrainingOptions:
    """Options shared by all expectation-maximization trainers

    Attributes
    ----------
    min_scans : int
        Minimum number of scans before convergence is tested (Default: 10)

    max_scans : int
        Maximum number of scans (Default: 100)

    log_likelihood_change : float
        Training converges when the absolute change in log-likelihood per
        effective column between scans falls below this value. Must be
        positive (Default: 2e-4)

    num_blocks : int
        Number of blocks per scan. If 0, derived from the number of training
        subjects `N` as `max(1, round(N ** (3/8)))` (Default: 0)

    epsilon0 : float
        Initial learning rate of the default schedule (Default: 0.5)

    beta : float
        Decay of the default learning rate schedule (Default: 0.2)

    online : bool
        If `True`, re-estimate parameters after every block. If `False`,
        re-estimate once per scan (Default: `True`)

    epsilon_schedule : callable or None
        Called with no arguments at the start of training; must return an
        iterator yielding one learning rate in `[0, 1]` per scan. If `None`,
        ``hyperbolic_decay_gen(epsilon0, beta)`` is used.

    shuffle : bool
        Shuffle training subjects before partitioning them into blocks in
        each scan (Default: `True`)

    seed : int or None
        Seed for shuffling

    processes : int
        Number of processes used in the E step (Default: 1)
    """
    min_scans: int = 10
    max_scans: int = 100
    log_likelihood_change: float = 2e-4
    num_blocks: int = 0
    epsilon0: float = 0.5
    beta: float = 0.2
    online: bool = True
    epsilon_schedule: Optional[Callable] = None
    shuffle: bool = True
    seed: Optional[int] = None
    processes: int = 1

    def __post_init__(self):
        if self.max_scans < 1:
            raise ConfigurationError("max_scans must be at least 1. Got %s" % self.max_scans)
        if self.min_scans < 0 or self.min_scans > self.max_scans:
            raise ConfigurationError(
                "min_scans must be between 0 and max_scans (%s). Got %s" % (self.max_scans, self.min_scans)
            )
        if self.log_likelihood_change <= 0:
            raise ConfigurationError(
                "log_likelihood_change must be positive. Got %s" % self.log_likelihood_change
            )
        if self.num_blocks < 0:
            raise ConfigurationError("num_blocks must be non-negative. Got %s" % self.num_blocks)
        if not 0 < self.epsilon0 <= 1:
            raise ConfigurationError("epsilon0 must be in (0, 1]. Got %s" % self.epsilon0)
        if self.beta < 0:
            raise ConfigurationError("beta must be non-negative. Got %s" % self.beta)
        if self.processes < 1:
            raise ConfigurationError("processes must be at least 1. Got %s" % self.processes)
        if self.epsilon_schedule is not None and not callable(self.epsilon_schedule):
            raise ConfigurationError("epsilon_schedule must be callable")


@dataclass(frozen=True)
class BaumWelchOptions(TrainingOptions):
    """Options for :class:`BaumWelchTraining`. In addition to those of
    :class:`TrainingOptions`:

    Attributes
    ----------
    transition_pseudocount : float
        Pseudocount added to the expected count of every transition in the
        M step (Default: 1.0)

    max_connectivity : int
        If positive, maximum number of out-transitions kept per state. Also
        required of the average connectivity before training converges
        (Default: 0, no pruning)

    weight_center : float
        Emission weight of central window column (Default: 1.3)

    weight_decay : float
        Emission weight decay away from center (Default: 0.9)

    state_pseudocount : float
        Admixture of background pseudocounts into re-estimated state
        profiles (Default: 0.0)
    """
    transition_pseudocount: float = 1.0
    max_connectivity: int = 0
    weight_center: float = 1.3
    weight_decay: float = 0.9
    state_pseudocount: float = 0.0

    def __post_init__(self):
        TrainingOptions.__post_init__(self)
        if self.transition_pseudocount < 0:
            raise ConfigurationError(
                "transition_pseudocount must be non-negative. Got %s" % self.transition_pseudocount
            )
        if self.max_connectivity < 0:
            raise ConfigurationError("max_connectivity must be non-negative. Got %s" % self.max_connectivity)
        if self.weight_center <= 0 or self.weight_decay <= 0:
            raise ConfigurationError(
                "Emission weights must be positive. Got weight_center=%s, weight_decay=%s" %
                (self.weight_center, self.weight_decay)
            )
        if not 0 <= self.state_pseudocount <= 1:
            raise ConfigurationError(
                "state_pseudocount must be between 0 and 1. Got %s" % self.state_pseudocount
            )


#===============================================================================
# INDEX: learning rate schedules
#===============================================================================


def hyperbolic_decay_gen(epsilon0=0.5, beta=0.2, offset=0):
    """Generate learning rates following `y = epsilon0 / (1 + beta * x)`,
    for `x = 0, 1, 2, ...`

    Parameters
    ----------
    epsilon0 : float, optional
        Initial (maximum) value (Default: 0.5)

    beta : float, optional
        Decay constant (Default: 0.2)

    offset : int, optional
        Starting offset in time (in case of training restart)

    Yields
    ------
    float
        Next learning rate
    """
    offset -= 1
    while True:
        offset += 1
        yield epsilon0 / (1.0 + beta * offset)


def neg_exp_decay_gen(a=0.5, b=0.1, offset=0):
    """Generate exponentially decaying learning rates following `y = ae**-bx`

    Parameters
    ----------
    a : float, optional
        Initial (maximum) value (Default: 0.5)

    b : float, optional
        Decay constant (Default: 0.1)

    offset : int, optional
        Starting offset in time (in case of training restart)

    Yields
    ------
    float
        Next learning rate
    """
    offset -= 1
    while True:
        offset += 1
        yield a * numpy.exp(-offset * b)


def linear_decay_gen(m=-0.05, b=0.5, floor=0.01, offset=0):
    """Generate linearly decaying learning rates following
    `y = max(m*x + b, floor)`

    Parameters
    ----------
    m : float, optional
        Slope of line (Default: -0.05)

    b : float, optional
        Y-intercept of line (Default: 0.5)

    floor : float, optional
        Minimum learning rate (Default: 0.01)

    offset : int, optional
        Starting offset in time (in case of training restart)

    Yields
    ------
    float
        Next learning rate
    """
    offset -= 1
    while True:
        offset += 1
        yield max(m * offset + b, floor)


#===============================================================================
# INDEX: logging and plotting
#===============================================================================


def _format_helper(x):
    """Format input for logging, depending on type"""
    if isinstance(x, (int, numpy.integer)):
        return "%d" % x
    elif isinstance(x, (float, numpy.floating)):
        return "%.16e" % x
    else:
        return str(x)


_PROGRESS_HEADER = "%-4s %4s %4s %7s %9s %9s\n" % ("Scan", "Itrs", "Blks", "Epsilon", "log(L)", "+/-")


def DefaultLoggerFactory(fh, model=None, maxcols=None, printer=None):
    """Factory function to record likelihood and parameter changes during training

    Parameters
    ----------
    fh : file-like
        Something implementing a ``write()`` method, to which tab-delimited
        rows will be written, one per scan

    model : :class:`~contexthmm.hmm.ContextHMM` or None, optional
        If not `None`, model parameters are appended to each row

    maxcols : int or None, optional
        If not `None`, only output the first `maxcols` columns of output to `fh`

    printer : file-like or None, optional
        File-like object (e.g. :obj:`sys.stdout`) to which a human-readable
        progress table will be written. If `None`, the table is discarded.


    Returns
    -------
    function
        Logging function for use with :class:`ExpectationMaximization`
    """
    header = [
        "time",
        "scan",
        "iterations",
        "num_blocks",
        "epsilon",
        "log_likelihood",
        "log_likelihood_change",
    ]
    if model is not None:
        header += model.get_header()

    if printer is None:
        printer = NullWriter()

    printer.write(_PROGRESS_HEADER)
    printer.write("-" * (len(_PROGRESS_HEADER) - 1) + "\n")

    fh.write("\t".join(header[:maxcols]) + "\n")

    # yapf: disable
    def logfunc(
            trainer,
            scan=None,
            iterations=None,
            num_blocks=None,
            epsilon=None,
            log_likelihood=None,
            log_likelihood_change=None,
    ):
        ltmp = [
            datetime.datetime.now(),
            scan,
            iterations,
            num_blocks,
            epsilon,
            log_likelihood,
            log_likelihood_change,
        ]
        # yapf: enable
        if model is not None:
            ltmp += trainer.model.get_row()

        ltmp = [_format_helper(X) for X in ltmp]
        fh.write("\t".join(ltmp[:maxcols]) + "\n")

        change = "" if numpy.isinf(log_likelihood_change) else "%+9.5f" % log_likelihood_change
        printer.write(
            "%-4d %4d %4d %7.4f %9.5f %9s\n" %
            (scan, iterations, num_blocks, epsilon, log_likelihood, change)
        )

    return logfunc


def plot_log_likelihoods(results, ax=None):
    """Plot log-likelihood per effective column against scan number

    Parameters
    ----------
    results : dict
        Output of :meth:`ExpectationMaximization.run`

    ax : :class:`matplotlib.axes.Axes` or None, optional
        Axes in which to plot. If `None`, a new figure is created.

    Returns
    -------
    :class:`matplotlib.figure.Figure`

    :class:`matplotlib.axes.Axes`
    """
    import matplotlib.pyplot as plt

    if ax is None:
        fig, ax = plt.subplots()
    else:
        fig = ax.figure

    log_likelihoods = results["log_likelihoods"]
    ax.plot(numpy.arange(1, len(log_likelihoods) + 1), log_likelihoods, marker="o")
    ax.set_xlabel("Scan")
    ax.set_ylabel("log2 likelihood per column")
    ax.set_title("Training stopped: %s" % results["reason"])
    return fig, ax


#===============================================================================
# INDEX: generalized expectation-maximization
#===============================================================================


class ExpectationMaximization(object):
    """Generalized online expectation-maximization

    Subclasses implement the hooks :meth:`init`, :meth:`expectation_step`,
    :meth:`update_sufficient_statistics`, and :meth:`maximization_step`, and
    expose the model being trained as `model`. They may extend
    :meth:`is_done`.

    Attributes
    ----------
    data : list
        Training subjects

    options : :class:`TrainingOptions`

    status : str
        One of ``NOT_STARTED``, ``SCANNING``, ``CONVERGED``, or ``MAX_SCANS``

    scan : int
        Number of scans started

    epsilon : float
        Learning rate of current scan

    num_blocks : int
        Number of blocks per scan

    log_likelihood : float
        Log-likelihood per effective column accumulated during current scan

    log_likelihood_change : float
        Change in log-likelihood between the last two scans. Infinite after
        the first scan.
    """

    NOT_STARTED = "NOT_STARTED"
    SCANNING = "SCANNING"
    CONVERGED = "CONVERGED"
    MAX_SCANS = "MAX_SCANS"

    def __init__(self, data, options, logfunc=None):
        """Create a trainer

        Parameters
        ----------
        data : list
            Training subjects. Must be non-empty.

        options : :class:`TrainingOptions`

        logfunc : callable, optional
            Logging function, e.g. from :func:`DefaultLoggerFactory`. Called
            after every scan with the trainer as first argument, and keywords
            `scan`, `iterations`, `num_blocks`, `epsilon`, `log_likelihood`, and
            `log_likelihood_change`.
        """
        if len(data) == 0:
            raise ConfigurationError("Cannot train on empty data")

        self.data = list(data)
        self.options = options
        self.logfunc = logfunc
        self.status = self.NOT_STARTED

        self.scan = 0
        self.epsilon = 1.0
        self.log_likelihood = 0.0
        self.log_likelihood_prev = -numpy.inf
        self.log_likelihood_change = numpy.inf

        if options.num_blocks > 0:
            self.num_blocks = min(options.num_blocks, len(self.data))
        else:
            self.num_blocks = max(1, int(round(len(self.data)**0.375)))

        self.random_state = numpy.random.RandomState(options.seed)
        self.history = {
            "log_likelihoods": [],
            "log_likelihood_changes": [],
            "epsilons": [],
        }

    def __repr__(self):
        return "<%s status=%s scan=%s>" % (self.__class__.__name__, self.status, self.scan)

    # hooks --------------------------------------------------------------------

    def init(self):
        """Allocate sufficient statistics before the first scan"""
        raise NotImplementedError()

    def expectation_step(self, block):
        """Collect sufficient statistics from subjects in `block` into block
        statistics, and add their log-likelihood per effective column to
        `self.log_likelihood`
        """
        raise NotImplementedError()

    def update_sufficient_statistics(self, gamma):
        """Set global statistics to `gamma * global + block`, and zero block
        statistics
        """
        raise NotImplementedError()

    def maximization_step(self):
        """Re-estimate model parameters from global statistics"""
        raise NotImplementedError()

    def is_done(self):
        """Return `True` if training should stop after the current scan"""
        return self.scan >= self.options.max_scans or self._converged()

    def _converged(self):
        return self.scan >= self.options.min_scans \
               and abs(self.log_likelihood_change) < self.options.log_likelihood_change

    # driver -------------------------------------------------------------------

    def get_blocks(self):
        """Partition training data into `self.num_blocks` blocks of nearly
        equal size, shuffling first if `options.shuffle` is `True`

        Returns
        -------
        list of list
        """
        if self.options.shuffle:
            order = self.random_state.permutation(len(self.data))
        else:
            order = numpy.arange(len(self.data))

        return [[self.data[X] for X in part] for part in numpy.array_split(order, self.num_blocks)]

    def get_epsilon_schedule(self):
        """Return a fresh iterator of learning rates, one per scan"""
        if self.options.epsilon_schedule is not None:
            return iter(self.options.epsilon_schedule())

        return hyperbolic_decay_gen(self.options.epsilon0, self.options.beta)

    def run(self):
        """Train the model until convergence or until `max_scans` is reached

        Returns
        -------
        dict
            Results of training, with the following keys:

            `reason`
                ``CONVERGED`` or ``MAX_SCANS``

            `scans`
                Number of scans performed

            `iterations`
                Number of maximization steps performed on the model so far

            `log_likelihoods`
                :class:`numpy.ndarray` of log-likelihood per effective column
                in each scan

            `log_likelihood_changes`
                :class:`numpy.ndarray` of change in log-likelihood after each
                scan

            `epsilons`
                :class:`numpy.ndarray` of learning rate in each scan

            `num_blocks`
                Number of blocks per scan

            `model`
                Trained model
        """
        self.init()
        self.status = self.SCANNING
        schedule = self.get_epsilon_schedule()

        while True:
            self.scan += 1
            epsilon = 1.0 if self.num_blocks == 1 else next(schedule)
            if not 0 <= epsilon <= 1:
                raise ConfigurationError("Learning rate must be in [0, 1]. Got %s" % epsilon)

            self.epsilon = epsilon
            self.log_likelihood = 0.0

            for n, block in enumerate(self.get_blocks()):
                self.expectation_step(block)
                if self.options.online:
                    self.update_sufficient_statistics(1.0 - epsilon)
                    self.maximization_step()
                else:
                    # batch: statistics of a scan replace those of the previous one
                    self.update_sufficient_statistics(0.0 if n == 0 else 1.0)

            if not self.options.online:
                self.maximization_step()

            if self.scan > 1:
                self.log_likelihood_change = self.log_likelihood - self.log_likelihood_prev
            self.log_likelihood_prev = self.log_likelihood

            self.history["log_likelihoods"].append(self.log_likelihood)
            self.history["log_likelihood_changes"].append(self.log_likelihood_change)
            self.history["epsilons"].append(self.epsilon)

            if self.logfunc is not None:
                self.logfunc(self,
                             scan                  = self.scan,
                             iterations            = self.model.iterations,
                             num_blocks            = self.num_blocks,
                             epsilon               = self.epsilon,
                             log_likelihood        = self.log_likelihood,
                             log_likelihood_change = self.log_likelihood_change) # yapf: disable

            if self.is_done():
                break

        self.status = self.CONVERGED if self._converged() else self.MAX_SCANS

        dtmp = {
            "reason"                 : self.status,
            "scans"                  : self.scan,
            "iterations"             : self.model.iterations,
            "log_likelihoods"        : numpy.array(self.history["log_likelihoods"]),
            "log_likelihood_changes" : numpy.array(self.history["log_likelihood_changes"]),
            "epsilons"               : numpy.array(self.history["epsilons"]),
            "num_blocks"             : self.num_blocks,
            "model"                  : self.model,
        } # yapf: disable
        return dtmp


#===============================================================================
# INDEX: Baum-Welch training
#===============================================================================


def bw_worker(hmm, subjects, emission, transition_estimator, state_estimator):
    """Collect sufficient statistics from subjects for Baum-Welch training.
    In an expectation-maximization context, :func:`bw_worker` is used in the
    E step.

    Parameters
    ----------
    hmm : :class:`~contexthmm.hmm.ContextHMM`
        Model under which subjects are evaluated

    subjects : list
        :class:`~contexthmm.subjects.Sequence` or
        :class:`~contexthmm.subjects.CountProfile` objects

    emission : :class:`~contexthmm.factors.MultinomialEmission`

    transition_estimator : :class:`~contexthmm.estimators.TransitionEstimator`

    state_estimator : :class:`~contexthmm.estimators.StateEstimator`


    Returns
    -------
    float
        Summed log2 likelihood of `subjects` under `hmm`

    :class:`~contexthmm.estimators.SufficientStatistics`
        Contribution of `subjects` to sufficient statistics
    """
    stats = SufficientStatistics.like(hmm)
    log_likelihood = 0.0
    for subject in subjects:
        fbm = hmm.forward_backward(subject, emission)
        transition_estimator.reduce_data(hmm, subject, fbm, stats)
        state_estimator.reduce_data(hmm, subject, fbm, stats)
        log_likelihood += fbm.log_likelihood

    return log_likelihood, stats


class BaumWelchTraining(ExpectationMaximization):
    """Online Baum-Welch training of a :class:`~contexthmm.hmm.ContextHMM`.
    The model is trained in place.

    Attributes
    ----------
    hmm : :class:`~contexthmm.hmm.ContextHMM`
        Model being trained

    emission : :class:`~contexthmm.factors.MultinomialEmission`

    transition_estimator : :class:`~contexthmm.estimators.TransitionEstimator`

    state_estimator : :class:`~contexthmm.estimators.StateEstimator`

    stats : :class:`~contexthmm.estimators.SufficientStatistics`
        Global sufficient statistics

    block_stats : :class:`~contexthmm.estimators.SufficientStatistics`
        Sufficient statistics of current block

    num_eff_cols : float
        Effective number of training columns, used to scale log-likelihoods
    """

    def __init__(self, hmm, data, options=None, logfunc=None, state_pseudocounts=None):
        """Create a Baum-Welch trainer

        Parameters
        ----------
        hmm : :class:`~contexthmm.hmm.ContextHMM`
            Starting model

        data : list
            Training subjects, in the alphabet of `hmm`

        options : :class:`BaumWelchOptions` or None, optional
            If `None`, default options are used

        logfunc : callable, optional
            Logging function, e.g. from :func:`DefaultLoggerFactory`

        state_pseudocounts : object, optional
            Pseudocount source for re-estimated state profiles. Only used if
            ``options.state_pseudocount > 0``. Defaults to background
            pseudocounts.
        """
        if options is None:
            options = BaumWelchOptions()
        ExpectationMaximization.__init__(self, data, options, logfunc=logfunc)

        for subject in self.data:
            if subject.alphabet != hmm.alphabet:
                raise ConfigurationError(
                    "Training subject '%s' uses %s alphabet, but model uses %s" %
                    (getattr(subject, "header", ""), subject.alphabet.name, hmm.alphabet.name)
                )

        if options.max_connectivity > hmm.num_states:
            warnings.warn(
                "max_connectivity (%s) exceeds number of states (%s) and will never prune" %
                (options.max_connectivity, hmm.num_states),
                UserWarning
            )

        self.hmm = hmm
        self.emission = MultinomialEmission(hmm.num_cols, options.weight_center, options.weight_decay)
        self.transition_estimator = TransitionEstimator(
            options.transition_pseudocount, options.max_connectivity
        )
        self.state_estimator = StateEstimator(options.state_pseudocount, pseudocounts=state_pseudocounts)
        self.stats = None
        self.block_stats = None
        self.num_eff_cols = None

    @property
    def model(self):
        return self.hmm

    def init(self):
        """Allocate sufficient statistics

        Raises
        ------
        MalformedModelError
            If the starting model fails :meth:`~contexthmm.hmm.ContextHMM.check`
        """
        self.hmm.check()
        self.stats = SufficientStatistics.like(self.hmm)
        self.block_stats = SufficientStatistics.like(self.hmm)
        self.num_eff_cols = self.emission.sum_weights() * sum(len(X) for X in self.data)

    def expectation_step(self, block):
        worker = functools.partial(
            bw_worker,
            self.hmm,
            emission=self.emission,
            transition_estimator=self.transition_estimator,
            state_estimator=self.state_estimator,
        )

        processes = min(self.options.processes, len(block))
        if processes == 1:
            pool_results = [worker(block)]
        else:
            shards = [
                [block[X] for X in part]
                for part in numpy.array_split(numpy.arange(len(block)), processes)
            ]
            with multiprocessing.Pool(processes=processes) as pool:
                pool_results = pool.map(worker, shards)

        for log_likelihood, stats in pool_results:
            self.block_stats.add(stats)
            self.log_likelihood += log_likelihood / self.num_eff_cols

    def update_sufficient_statistics(self, gamma):
        self.stats.scale_and_add(gamma, self.block_stats)
        self.block_stats.reset()

    def maximization_step(self):
        priors, profiles = self.state_estimator.construct_factors(self.hmm, self.stats)
        new_transitions = self.transition_estimator.construct_factors(self.hmm, self.stats)

        for k, profile in enumerate(profiles):
            self.hmm.set_profile(k, profile)
        self.hmm.priors = priors

        for k, weights in enumerate(new_transitions):
            self.hmm.set_out_transitions(k, weights)

        self.hmm.increment_iterations()

    def _converged(self):
        converged = ExpectationMaximization._converged(self)
        if self.options.max_connectivity > 0:
            converged = converged and self.hmm.connectivity <= self.options.max_connectivity

        return converged
