import numpy as np
import pytest
import jax.numpy as jnp

from ebci_tools.core._moments import moment_conv


def _alternating():
    resid = jnp.array([5.0, -5.0, 5.0, -5.0])
    return resid, jnp.ones(4), jnp.ones(4)


def test_no_correction_subtracts_noise():
    resid, sigma, weights = _alternating()
    mu2, kappa = moment_conv(resid, sigma, weights, "none")
    # mean(25 - 1) and mean(625 - 6*25 + 3)
    assert mu2 == pytest.approx(24.0)
    assert kappa == pytest.approx(478.0 / 576.0)


def test_pmt_keeps_positive_moment_and_floors_kurtosis():
    resid, sigma, weights = _alternating()
    mu2, kappa = moment_conv(resid, sigma, weights, "PMT")
    assert mu2 == pytest.approx(24.0)
    # raw 478 / 576 is below one, so the fourth moment is raised to mu2^2
    assert kappa == pytest.approx(1.0)


def test_pmt_truncates_negative_moment():
    resid = jnp.zeros(4)
    mu2_raw, kappa_raw = moment_conv(resid, 1.0, jnp.ones(4), "none")
    assert mu2_raw == pytest.approx(-1.0)
    assert kappa_raw == pytest.approx(3.0)

    mu2, kappa = moment_conv(resid, 1.0, jnp.ones(4), "PMT")
    assert mu2 == 0.0
    assert np.isinf(kappa)


def test_pmt_leaves_valid_moments_alone():
    resid = jnp.array([3.0, -1.0, 0.0, 1.0, -3.0])
    raw = moment_conv(resid, 0.5, jnp.ones(5), "none")
    assert raw[0] > 0 and raw[1] >= 1.0
    assert moment_conv(resid, 0.5, jnp.ones(5), "PMT") == pytest.approx(raw, rel=1e-12)


def test_fplib_is_positive_and_smooth():
    resid = jnp.zeros(4)
    mu2, kappa = moment_conv(resid, 1.0, jnp.ones(4), "FPLIB")
    assert 0.0 < mu2 < 0.5
    assert kappa >= 1.0
    # far in the tail the inverse Mills ratio must stay finite
    n = 20000
    mu2_tail, kappa_tail = moment_conv(jnp.zeros(n), 1.0, jnp.ones(n), "FPLIB")
    assert np.isfinite(mu2_tail) and 0.0 < mu2_tail < 1e-3
    assert np.isfinite(kappa_tail) and kappa_tail >= 1.0


def test_corrections_agree_in_large_samples():
    rng = np.random.RandomState(0)
    n = 20000
    eps = rng.normal(0, 2, size=n)
    sigma = np.ones(n)
    resid = jnp.array(eps + rng.normal(0, 1, size=n))
    weights = jnp.ones(n)
    results = [moment_conv(resid, jnp.array(sigma), weights, c) for c in ("none", "PMT", "FPLIB")]
    for mu2, kappa in results[1:]:
        assert mu2 == pytest.approx(results[0][0], rel=1e-8)
        assert kappa == pytest.approx(results[0][1], rel=1e-8)


def test_deconvolution_recovers_signal_moments():
    rng = np.random.RandomState(1)
    n = 200000
    eps = rng.normal(0, 1, size=n)
    sigma = np.full(n, 0.5)
    resid = jnp.array(eps + sigma * rng.normal(size=n))
    mu2, kappa = moment_conv(resid, jnp.array(sigma), jnp.ones(n), "PMT")
    assert mu2 == pytest.approx(1.0, abs=0.03)
    assert kappa == pytest.approx(3.0, abs=0.3)


def test_zero_weights_contribute_nothing():
    resid, sigma, weights = _alternating()
    base = moment_conv(resid, sigma, weights, "PMT")

    resid_ext = jnp.concatenate([resid, jnp.array([1000.0])])
    sigma_ext = jnp.concatenate([sigma, jnp.array([3.0])])
    weights_ext = jnp.concatenate([weights, jnp.array([0.0])])
    extended = moment_conv(resid_ext, sigma_ext, weights_ext, "PMT")
    assert extended[0] == pytest.approx(base[0], rel=1e-12)
    assert extended[1] == pytest.approx(base[1], rel=1e-12)


def test_weights_scale_invariant():
    rng = np.random.RandomState(2)
    resid = jnp.array(rng.normal(0, 3, size=50))
    sigma = jnp.array(rng.uniform(0.5, 1.5, size=50))
    w = jnp.array(rng.uniform(0.1, 2.0, size=50))
    a = moment_conv(resid, sigma, w, "PMT")
    b = moment_conv(resid, sigma, 7.0 * w, "PMT")
    assert a[0] == pytest.approx(b[0], rel=1e-10)
    assert a[1] == pytest.approx(b[1], rel=1e-10)
