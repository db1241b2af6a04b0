"""Training and application of context-profile hidden Markov models.

Context-profile HMMs model the local sequence context around each position of
a protein or nucleotide sequence (or sequence profile). Trained models are used
to compute context-specific pseudocounts for sensitive homology search.

Modules
-------
:mod:`contexthmm.alphabet`
    Symbol alphabets and background frequencies

:mod:`contexthmm.subjects`
    Training data: sequences and count profiles

:mod:`contexthmm.factors`
    Context profiles and the window-weighted multinomial emission

:mod:`contexthmm.hmm`
    The context-profile HMM and its sparse transition graph

:mod:`contexthmm.forward_backward`
    Scaled forward-backward algorithm

:mod:`contexthmm.estimators`
    Sufficient statistics and parameter re-estimation

:mod:`contexthmm.training`
    Generalized (online) expectation-maximization, and Baum-Welch training

:mod:`contexthmm.clustering`
    Expectation-maximization clustering of context profile libraries

:mod:`contexthmm.initializers`
    Construction of starting models

:mod:`contexthmm.pseudocounts`
    Background and context-specific pseudocounts
"""
__version__ = "0.1.0"
