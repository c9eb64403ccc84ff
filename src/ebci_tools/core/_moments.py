# src/ebci_tools/core/_moments.py

from functools import partial
from typing import Tuple, Union

import jax
import jax.numpy as jnp
from jax.scipy.stats import norm

# ───────────────────────────────────────────────────────────────────────────────
# Helpers
# ───────────────────────────────────────────────────────────────────────────────

def _inverse_mills(x: jnp.ndarray) -> jnp.ndarray:
    """
    phi(x) / Phi(x), evaluated on the log scale so it stays finite for x << 0.
    """
    return jnp.exp(norm.logpdf(x) - norm.logcdf(x))


def _flat_prior_mean(estimate: jnp.ndarray, scale: jnp.ndarray) -> jnp.ndarray:
    """
    Posterior mean of a nonnegative moment under a flat prior on [0, inf),
    given a normal estimate with standard deviation ``scale``.
    """
    return estimate + scale * _inverse_mills(estimate / scale)


# ───────────────────────────────────────────────────────────────────────────────
# Moment estimator
# ───────────────────────────────────────────────────────────────────────────────

@partial(jax.jit, static_argnums=(3,))
def _moment_kernel(
    resid: jnp.ndarray,
    sigma: jnp.ndarray,
    weights: jnp.ndarray,
    fs_correction: str
) -> Tuple[jnp.ndarray, jnp.ndarray]:
    W = jnp.sum(weights)
    s2 = sigma ** 2
    r2 = resid ** 2

    # E[r^2 - s^2] = E[eps^2] and E[r^4 - 6 s^2 r^2 + 3 s^4] = E[eps^4] when r = eps + s*Z
    m2 = jnp.sum(weights * (r2 - s2)) / W
    m4 = jnp.sum(weights * (r2 ** 2 - 6.0 * s2 * r2 + 3.0 * s2 ** 2)) / W

    if fs_correction == "PMT":
        # truncate at zero; E[eps^4] >= E[eps^2]^2 keeps kappa >= 1, and no bound when mu2 = 0
        mu2 = jnp.maximum(m2, 0.0)
        mu4 = jnp.maximum(m4, mu2 ** 2)
        safe = jnp.where(mu2 > 0.0, mu2, 1.0)
        kappa = jnp.where(mu2 > 0.0, mu4 / safe ** 2, jnp.inf)
    elif fs_correction == "FPLIB":
        # Var(Z^2 - 1) = 2 and Var(Z^4 - 6 Z^2 + 3) = 4! = 24 for the Hermite-corrected moments
        mu2 = _flat_prior_mean(m2, jnp.sqrt(2.0 * jnp.sum(weights ** 2 * s2 ** 2)) / W)
        mu4 = _flat_prior_mean(m4, jnp.sqrt(24.0 * jnp.sum(weights ** 2 * s2 ** 4)) / W)
        kappa = jnp.maximum(mu4 / mu2 ** 2, 1.0)
    else:
        mu2 = m2
        kappa = m4 / m2 ** 2
    return mu2, kappa


def moment_conv(
    resid: jnp.ndarray,
    sigma: Union[jnp.ndarray, float],
    weights: jnp.ndarray,
    fs_correction: str = "PMT"
) -> Tuple[float, float]:
    """
    Estimate the second moment and kurtosis of epsilon_i, net of sampling noise.

    The residuals r_i = Y_i - mu1_i equal epsilon_i plus N(0, sigma_i^2) noise,
    so the raw moments of r are deconvolved before the finite-sample correction.

    :param resid: residuals from the shrinkage-direction fit (n,).
    :param sigma: standard deviations (n,), or 1.0 for t-statistic shrinkage.
    :param weights: nonnegative weights (n,); zero weights contribute nothing.
    :param fs_correction: 'none' (uncorrected, may give mu2 < 0), 'PMT'
      (posterior mean truncation: mu2 clipped at 0, kappa at least 1, and
      kappa = inf when mu2 = 0; default) or 'FPLIB' (flat prior limited
      information Bayes).
    :return: (mu2, kappa) as Python floats.
    """
    resid = jnp.asarray(resid)
    sigma = jnp.broadcast_to(jnp.asarray(sigma, dtype=resid.dtype), resid.shape)
    mu2, kappa = _moment_kernel(resid, sigma, jnp.asarray(weights), fs_correction)
    return float(mu2), float(kappa)
