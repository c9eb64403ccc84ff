from typing import Tuple, Union

import jax
import jax.numpy as jnp
import jax.scipy.special as spec


@jax.jit
def _normal_critical_value(alpha: float) -> jnp.ndarray:
    """
    Two-sided standard normal critical value z_{1-alpha/2}.
    """
    return jnp.sqrt(2.0) * spec.erfinv(1.0 - alpha)


@jax.jit
def _parametric_kernel(
    ratio: jnp.ndarray,
    alpha: float
) -> Tuple[jnp.ndarray, jnp.ndarray]:
    # a negative moment estimate (no finite-sample correction) means full shrinkage
    ratio = jnp.maximum(ratio, 0.0)
    w_eb = ratio / (1.0 + ratio)
    lngth = _normal_critical_value(alpha) * jnp.sqrt(w_eb)
    return w_eb, lngth


def parametric_ebci(
    ratio: Union[float, jnp.ndarray],
    alpha: float
) -> Tuple[jnp.ndarray, jnp.ndarray]:
    """
    Parametric EBCI under normally distributed epsilon_i.

    :param ratio: mu2 / sigma_i^2, scalar or per-observation array.
    :param alpha: significance level.
    :return: (w_eb, lngth): the normal-normal shrinkage factor
      ratio / (1 + ratio) and the half-length z_{1-alpha/2} * sqrt(w_eb),
      in units of sigma_i.
    """
    return _parametric_kernel(jnp.asarray(ratio, dtype=jnp.float64), alpha)
