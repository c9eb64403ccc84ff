# src/ebci_tools/__init__.py

"""
ebci_tools
==========

Empirical Bayes confidence intervals for a collection of noisy estimates
Y_i ~ N(theta_i, sigma_i^2) with known sigma_i. Features:

- Shrinkage toward a weighted least-squares regression prior mean
- Deconvolved moment estimates with PMT / FPLIB finite-sample corrections
- Parametric EBCIs and robust EBCIs valid under moment (and kurtosis) bounds
- MSE-optimal or length-optimal shrinkage, moment independence or t-statistic shrinkage
- JAX array kernels, SciPy root-finding, optional multiprocess dispatch

Reference: Armstrong, Kolesár and Plagborg-Møller (2022),
"Robust Empirical Bayes Confidence Intervals", Econometrica.
"""

__version__ = "0.1.0"

# High-level API
from .api import ebci, ebci_dataframe, select_path, ExecutionPath

# Result classes, options and diagnostics
from .results import EBCIResult
from .core._options import SolverConfig, EBCIInputError, RankDeficientWarning, ConvergenceWarning

__all__ = [
    "ebci",
    "ebci_dataframe",
    "select_path",
    "ExecutionPath",
    "EBCIResult",
    "SolverConfig",
    "EBCIInputError",
    "RankDeficientWarning",
    "ConvergenceWarning",
]
