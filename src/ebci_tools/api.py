# src/ebci_tools/api.py

from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union
import math
import warnings

import numpy as np
import pandas as pd
import jax.numpy as jnp
from jax import device_get

from .core._data_prep import (
    _prepare_inputs,
    _check_moments,
    _normalize_correction,
    _df_to_arrays,
)
from .core._regression import shrinkage_direction
from .core._moments import moment_conv
from .core._parametric import parametric_ebci
from .core._robust import robust_ebci, RobustEBCI
from .core._dispatch import parallel_map
from .core._options import SolverConfig, EBCIInputError, ConvergenceWarning
from .results import EBCIResult


_EPS = float(np.finfo(float).eps)


class ExecutionPath(Enum):
    DEGENERATE = "degenerate"
    PARAMETRIC = "parametric"
    ROBUST_PER_OBSERVATION = "robust"
    ROBUST_SHARED = "robust_shared"


# (mu2 <= eps, param, tstat) -> path
_PATHS: Dict[Tuple[bool, bool, bool], ExecutionPath] = {
    (True, False, False): ExecutionPath.DEGENERATE,
    (True, False, True): ExecutionPath.DEGENERATE,
    (True, True, False): ExecutionPath.DEGENERATE,
    (True, True, True): ExecutionPath.DEGENERATE,
    (False, True, False): ExecutionPath.PARAMETRIC,
    (False, True, True): ExecutionPath.PARAMETRIC,
    (False, False, False): ExecutionPath.ROBUST_PER_OBSERVATION,
    (False, False, True): ExecutionPath.ROBUST_SHARED,
}


def select_path(mu2: float, param: bool, tstat: bool) -> ExecutionPath:
    """
    Pick the execution path for the given moment estimate and flags.
    """
    return _PATHS[(bool(mu2 <= _EPS), bool(param), bool(tstat))]


def _solve_observation(
    task: Tuple[Optional[float], float, Optional[float], float, SolverConfig]
) -> RobustEBCI:
    # module level so worker processes can unpickle it
    w, ratio, kappa, alpha, config = task
    return robust_ebci(w, ratio, kappa, alpha, config)


def _resolve_config(
    opt_struct: Union[SolverConfig, Mapping[str, Any], None]
) -> SolverConfig:
    if opt_struct is None:
        return SolverConfig.default()
    if isinstance(opt_struct, Mapping):
        try:
            config = SolverConfig(**opt_struct)
        except TypeError as exc:
            raise EBCIInputError(f"Invalid solver options: {exc}") from None
    elif isinstance(opt_struct, SolverConfig):
        config = opt_struct
    else:
        raise EBCIInputError(f"opt_struct must be a SolverConfig or a mapping, got {type(opt_struct)}")
    config.validate()
    return config


def ebci(
    Y: Any,
    X: Any,
    sigma: Any,
    alpha: float,
    mu2: Optional[float] = None,
    kappa: Optional[float] = None,
    weights: Optional[Any] = None,
    param: bool = False,
    tstat: bool = False,
    w_opt: bool = False,
    use_kappa: bool = True,
    fs_correction: str = "PMT",
    verbose: bool = False,
    opt_struct: Union[SolverConfig, Mapping[str, Any], None] = None,
    n_jobs: Optional[int] = 1,
) -> EBCIResult:
    """
    Empirical Bayes confidence intervals, parametric or robust.

    Shrinks Y_i toward X_i'delta (or Y_i/sigma_i toward X_i'delta under
    t-statistic shrinkage). The shrinkage factor and the robust critical value
    are driven by the second moment and kurtosis of
    epsilon_i = theta_i - X_i'delta (theta_i/sigma_i - X_i'delta for t-statistic
    shrinkage).

    :param Y: preliminary estimates of theta_i, length n.
    :param X: regressors (n, k), possibly with a constant column; None or an
      empty array shrinks toward zero.
    :param sigma: standard deviations of Y_i given theta_i, length n.
    :param alpha: significance level.
    :param mu2: value for the second moment of epsilon_i; estimated if None.
    :param kappa: value for the kurtosis of epsilon_i (requires mu2); if mu2 is
      given without kappa, no kurtosis bound is used.
    :param weights: weights for estimating delta, mu2 and kappa; None for equal weights.
    :param param: True for the parametric EBCI, False for the robust EBCI.
    :param tstat: True for t-statistic shrinkage, False for shrinkage under
      moment independence.
    :param w_opt: True for length-optimal shrinkage, False for MSE-optimal (w_EB).
    :param use_kappa: impose the kurtosis bound when computing the critical value.
    :param fs_correction: 'none' (not recommended), 'PMT' or 'FPLIB'.
    :param verbose: show progress while computing per-observation robust EBCIs.
    :param opt_struct: numerical options for the robust solver.
    :param n_jobs: worker processes for the per-observation robust solves;
      None or -1 uses every core.
    :return: EBCIResult with thetahat, ci, w_estim, normlng, mu2, kappa, delta.
    :raises EBCIInputError: if inputs are invalid.
    """
    # 1. validate everything up front
    Y_arr, X_arr, sigma_arr, w_arr = _prepare_inputs(Y, X, sigma, alpha, weights)
    _check_moments(mu2, kappa)
    correction = _normalize_correction(fs_correction) if mu2 is None else None
    config = _resolve_config(opt_struct)

    # 2. outcome scale
    Y_norm = Y_arr / sigma_arr if tstat else Y_arr

    # 3. shrinkage direction
    delta, mu1, rank_deficient = shrinkage_direction(Y_norm, X_arr, w_arr)

    # 4. moments of epsilon_i
    if mu2 is None:
        noise_sd = 1.0 if tstat else sigma_arr
        mu2, kappa = moment_conv(Y_norm - mu1, noise_sd, w_arr, correction)
    else:
        mu2 = float(mu2)
        kappa = math.inf if kappa is None else float(kappa)

    # 5. parametric shrinkage factor and length
    ratio = jnp.asarray(mu2) if tstat else mu2 / sigma_arr ** 2
    w_eb, lngth_param = parametric_ebci(ratio, alpha)

    # 6. dispatch on the decision table
    path = select_path(mu2, param, tstat)
    n = Y_arr.shape[0]
    converged = np.ones(n, dtype=bool)

    if path is ExecutionPath.DEGENERATE:
        w_estim = w_eb
        normlng = jnp.zeros_like(w_eb)
    elif path is ExecutionPath.PARAMETRIC:
        w_estim = w_eb
        normlng = lngth_param
    else:
        kappa_cv = kappa if use_kappa else None
        if path is ExecutionPath.ROBUST_PER_OBSERVATION:
            ratios = np.asarray(device_get(ratio), dtype=float)
            w_host = np.asarray(device_get(w_eb), dtype=float)
            tasks = [
                (None if w_opt else float(w_host[i]), float(ratios[i]), kappa_cv, float(alpha), config)
                for i in range(n)
            ]
            solved = parallel_map(_solve_observation, tasks, n_jobs=n_jobs, verbose=verbose)
        else:
            w_single = None if w_opt else float(w_eb)
            solved = [_solve_observation((w_single, float(mu2), kappa_cv, float(alpha), config))]
        w_estim = jnp.asarray([s.w_estim for s in solved])
        normlng = jnp.asarray([s.normlng for s in solved])
        converged = np.broadcast_to(np.array([s.converged for s in solved]), (n,)).copy()

    # 7. assemble
    w_estim = jnp.broadcast_to(w_estim, (n,))
    normlng = jnp.broadcast_to(normlng, (n,))
    thetahat = mu1 + w_estim * (Y_norm - mu1)
    if tstat:
        thetahat = thetahat * sigma_arr
    half = normlng * sigma_arr
    ci = jnp.stack([thetahat - half, thetahat + half], axis=1)

    if not converged.all():
        warnings.warn(
            f"Robust critical value did not converge for {int((~converged).sum())} "
            f"of {n} observations; best iterates returned",
            ConvergenceWarning,
        )

    thetahat, ci, w_estim, normlng, mu1 = device_get((thetahat, ci, w_estim, normlng, mu1))
    return EBCIResult(
        thetahat=np.asarray(thetahat),
        ci=np.asarray(ci),
        w_estim=np.asarray(w_estim),
        normlng=np.asarray(normlng),
        mu2=float(mu2),
        kappa=float(kappa),
        delta=np.asarray(delta),
        mu1=np.asarray(mu1),
        method=path.value if path is not ExecutionPath.ROBUST_SHARED else "robust",
        alpha=float(alpha),
        tstat=bool(tstat),
        w_opt=bool(w_opt),
        fs_correction=correction,
        rank_deficient=rank_deficient,
        converged=converged,
    )


def ebci_dataframe(
    df: pd.DataFrame,
    estimate: str,
    se: str,
    regressors: Sequence[str] = (),
    weights: Optional[str] = None,
    alpha: float = 0.05,
    **kwargs: Any,
) -> EBCIResult:
    """
    Run :func:`ebci` on the columns of a DataFrame with one row per observation.

    Rows with a missing value in any used column are dropped with a warning.
    ``EBCIResult.to_dataframe()`` keeps the index of the retained rows.

    :param df: input DataFrame.
    :param estimate: column of preliminary estimates Y_i.
    :param se: column of standard deviations sigma_i.
    :param regressors: columns of X; empty for shrinkage toward zero.
    :param weights: optional column of weights.
    :param alpha: significance level.
    :param kwargs: further keyword arguments for :func:`ebci`.
    """
    Y, X, sigma, w, metadata = _df_to_arrays(df, estimate, se, regressors, weights)
    result = ebci(Y, X, sigma, alpha, weights=w, **kwargs)
    result.metadata = {**metadata, "estimate": estimate, "se": se}
    return result
