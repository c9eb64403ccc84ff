# src/ebci_tools/core/_regression.py

import warnings
from typing import Tuple

import jax
import jax.numpy as jnp
import numpy as np
from jax import device_get

from ._options import RankDeficientWarning


@jax.jit
def _wls_kernel(
    X: jnp.ndarray,
    y: jnp.ndarray,
    weights: jnp.ndarray
) -> Tuple[jnp.ndarray, jnp.ndarray]:
    """
    Weighted least squares via the rescaled design sqrt(w)·X.

    :param X: design matrix (n_samples, n_features), rows with positive weight only.
    :param y: outcome vector (n_samples,).
    :param weights: strictly positive weights (n_samples,).
    :return: (delta, rank) where delta is the minimum-norm least-squares solution
      and rank is the numerical rank of the weighted design.
    """
    root_w = jnp.sqrt(weights)
    Xw = root_w[:, None] * X
    yw = root_w * y
    # lstsq returns the minimum-norm solution when Xw is rank deficient
    delta = jnp.linalg.lstsq(Xw, yw, rcond=None)[0]
    rank = jnp.linalg.matrix_rank(Xw)
    return delta, rank


def _weighted_least_squares(
    X: jnp.ndarray,
    y: jnp.ndarray,
    weights: jnp.ndarray
) -> Tuple[np.ndarray, bool]:
    """
    Host-side wrapper: drop zero-weight rows, fit, and flag rank deficiency.

    :return: (delta as NumPy array, rank_deficient)
    """
    keep = np.asarray(weights) > 0
    X_fit = X[keep]
    delta, rank = device_get(_wls_kernel(X_fit, y[keep], weights[keep]))
    rank_deficient = int(rank) < X.shape[1]
    if rank_deficient:
        warnings.warn(
            f"Weighted regressor matrix has rank {int(rank)} < {X.shape[1]} columns; "
            "using the minimum-norm solution for delta",
            RankDeficientWarning,
        )
    return np.asarray(delta), rank_deficient


def shrinkage_direction(
    Y_norm: jnp.ndarray,
    X: jnp.ndarray,
    weights: jnp.ndarray
) -> Tuple[np.ndarray, jnp.ndarray, bool]:
    """
    Estimate the prior means mu1 = X·delta that the estimates are shrunk toward.

    Observations with zero weight are excluded from the fit but still receive
    a prior mean. With no regressors the estimates are shrunk toward zero.

    :param Y_norm: outcomes (Y, or Y/sigma for t-statistic shrinkage).
    :param X: regressors (n, k); k may be 0.
    :param weights: nonnegative weights (n,).
    :return: (delta, mu1, rank_deficient)
    """
    n, k = X.shape
    if k == 0:
        return np.zeros(0), jnp.zeros(n), False
    delta, rank_deficient = _weighted_least_squares(X, Y_norm, weights)
    mu1 = X @ jnp.asarray(delta)
    return delta, mu1, rank_deficient
