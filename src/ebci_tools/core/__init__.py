"""
ebci_tools.core
---------------
Numerical kernels for empirical Bayes confidence intervals.

Submodules:
  - _options     : solver options, exception and warning classes
  - _data_prep   : input validation, DataFrame → array conversion
  - _regression  : weighted least-squares shrinkage direction
  - _moments     : deconvolved second moment and kurtosis, finite-sample corrections
  - _parametric  : parametric (normal prior) shrinkage factor and half-length
  - _robust      : worst-case non-coverage, robust critical values, length-optimal shrinkage
  - _dispatch    : order-preserving parallel map over observations
"""

import jax
jax.config.update("jax_enable_x64", True)

__all__ = [
    "_options",
    "_data_prep",
    "_regression",
    "_moments",
    "_parametric",
    "_robust",
    "_dispatch",
]

from ._options     import SolverConfig, EBCIInputError, RankDeficientWarning, ConvergenceWarning
from ._data_prep   import _prepare_inputs, _check_moments, _normalize_correction, _df_to_arrays
from ._regression  import shrinkage_direction
from ._moments     import moment_conv
from ._parametric  import parametric_ebci
from ._robust      import RobustEBCI, rho0, rho, cva, robust_ebci
from ._dispatch    import parallel_map
