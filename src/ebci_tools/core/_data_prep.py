import numbers
import warnings
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import jax.numpy as jnp

from ._options import EBCIInputError

_CORRECTIONS = {"none": "none", "pmt": "PMT", "fplib": "FPLIB"}


def _validate_and_dropna(
    df: pd.DataFrame,
    columns: List[str]
) -> Tuple[pd.DataFrame, int]:
    """
    Check that ``columns`` exist and drop rows with a missing value in any of them.

    :param df: input DataFrame, one row per observation.
    :param columns: columns used by the computation.
    :return: (cleaned DataFrame, number of rows dropped)
    :raises EBCIInputError: if a column is missing.
    """
    missing = [col for col in columns if col not in df.columns]
    if missing:
        raise EBCIInputError(f"Column(s) {missing} not found")

    initial_n = len(df)
    df_clean = df.dropna(subset=columns)
    n_dropped = initial_n - len(df_clean)
    if n_dropped > 0:
        warnings.warn(
            f"{n_dropped} rows removed due to missing values in columns {columns}",
            UserWarning
        )
    return df_clean, n_dropped


def _as_vector(name: str, values: Any) -> jnp.ndarray:
    """
    Convert ``values`` to a finite 1D float64 JAX array.
    """
    arr = np.asarray(values, dtype=float)
    if arr.ndim == 2 and 1 in arr.shape:
        arr = arr.reshape(-1)
    if arr.ndim != 1:
        raise EBCIInputError(f"'{name}' must be one-dimensional, got shape {arr.shape}")
    if arr.size == 0:
        raise EBCIInputError(f"'{name}' is empty")
    if not np.all(np.isfinite(arr)):
        raise EBCIInputError(f"'{name}' contains non-finite values")
    return jnp.asarray(arr)


def _as_design(X: Any, n: int) -> jnp.ndarray:
    """
    Convert the regressors to an (n, k) array; ``None`` or an empty array gives k = 0.
    """
    if X is None:
        return jnp.zeros((n, 0))
    arr = np.asarray(X, dtype=float)
    if arr.size == 0:
        return jnp.zeros((n, 0))
    if arr.ndim == 1:
        arr = arr.reshape(-1, 1)
    if arr.ndim != 2 or arr.shape[0] != n:
        raise EBCIInputError(f"'X' must have {n} rows, got shape {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise EBCIInputError("'X' contains non-finite values")
    return jnp.asarray(arr)


def _prepare_inputs(
    Y: Any,
    X: Any,
    sigma: Any,
    alpha: float,
    weights: Optional[Any] = None,
) -> Tuple[jnp.ndarray, jnp.ndarray, jnp.ndarray, jnp.ndarray]:
    """
    Validate the observation set and return it as JAX arrays.

    :param Y: preliminary estimates, length n.
    :param X: regressors (n, k), or None/empty for shrinkage toward zero.
    :param sigma: standard deviations of Y, length n, strictly positive.
    :param alpha: significance level in (0, 1).
    :param weights: nonnegative weights, length n; None means equal weights.
    :return: (Y, X, sigma, weights)
    :raises EBCIInputError: on any malformed input.
    """
    Y_arr = _as_vector("Y", Y)
    n = Y_arr.shape[0]
    sigma_arr = _as_vector("sigma", sigma)
    if sigma_arr.shape[0] != n:
        raise EBCIInputError(f"'sigma' has length {sigma_arr.shape[0]}, expected {n}")
    if bool(jnp.any(sigma_arr <= 0)):
        raise EBCIInputError("'sigma' must be strictly positive")

    if not (isinstance(alpha, numbers.Real) and 0.0 < float(alpha) < 1.0):
        raise EBCIInputError(f"alpha must lie in (0, 1), got {alpha}")

    X_arr = _as_design(X, n)

    if weights is None:
        w_arr = jnp.ones(n)
    else:
        w_arr = _as_vector("weights", weights)
        if w_arr.shape[0] != n:
            raise EBCIInputError(f"'weights' has length {w_arr.shape[0]}, expected {n}")
        if bool(jnp.any(w_arr < 0)):
            raise EBCIInputError("'weights' must be nonnegative")
        if not bool(jnp.any(w_arr > 0)):
            raise EBCIInputError("at least one weight must be positive")

    return Y_arr, X_arr, sigma_arr, w_arr


def _check_moments(
    mu2: Optional[float],
    kappa: Optional[float]
) -> None:
    """
    :raises EBCIInputError: if kappa is given without mu2, mu2 < 0, or kappa < 1.
    """
    if kappa is not None and mu2 is None:
        raise EBCIInputError("kappa can only be supplied together with mu2")
    if mu2 is not None and not (np.isfinite(mu2) and mu2 >= 0):
        raise EBCIInputError(f"mu2 must be finite and nonnegative, got {mu2}")
    if kappa is not None and not kappa >= 1:
        raise EBCIInputError(f"kappa must be at least 1, got {kappa}")


def _normalize_correction(fs_correction: str) -> str:
    """
    Map a correction name to one of 'none', 'PMT', 'FPLIB' (case-insensitive).
    """
    try:
        return _CORRECTIONS[str(fs_correction).lower()]
    except KeyError:
        raise EBCIInputError(
            f"Unknown fs_correction: {fs_correction!r}; expected 'none', 'PMT' or 'FPLIB'"
        ) from None


def _df_to_arrays(
    df: pd.DataFrame,
    estimate: str,
    se: str,
    regressors: Sequence[str] = (),
    weights: Optional[str] = None,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, Optional[np.ndarray], Dict[str, Any]]:
    """
    Pull the EBCI inputs out of a DataFrame with one row per observation.

    :return: (Y, X, sigma, weights, metadata) where metadata holds the kept index
      and the regressor names.
    """
    cols = [estimate, se, *regressors] + ([weights] if weights else [])
    df_clean, n_dropped = _validate_and_dropna(df, cols)

    Y = df_clean[estimate].astype(float).to_numpy()
    sigma = df_clean[se].astype(float).to_numpy()
    X = df_clean[list(regressors)].astype(float).to_numpy() if regressors else None
    w = df_clean[weights].astype(float).to_numpy() if weights else None
    metadata = {
        "index": df_clean.index,
        "regressors": list(regressors),
        "n_dropped": n_dropped,
    }
    return Y, X, sigma, w, metadata
