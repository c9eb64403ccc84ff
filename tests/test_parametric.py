import numpy as np
import pytest
import jax.numpy as jnp
from scipy.stats import norm

from ebci_tools.core._parametric import parametric_ebci, _normal_critical_value


def test_normal_critical_value_against_scipy():
    for alpha in (0.01, 0.05, 0.1, 0.5):
        z = float(_normal_critical_value(alpha))
        assert z == pytest.approx(norm.ppf(1 - alpha / 2), rel=1e-10)


def test_parametric_scalar_ratio():
    # mu2 / sigma^2 = 25 => w_eb = 25/26
    w_eb, lngth = parametric_ebci(25.0, 0.05)
    assert float(w_eb) == pytest.approx(25.0 / 26.0, rel=1e-12)
    assert float(lngth) == pytest.approx(norm.ppf(0.975) * np.sqrt(25.0 / 26.0), rel=1e-10)


def test_parametric_vector_ratio():
    ratio = jnp.array([0.0, 1.0, 3.0, 99.0])
    w_eb, lngth = parametric_ebci(ratio, 0.1)
    expected_w = np.array([0.0, 0.5, 0.75, 0.99])
    assert np.allclose(np.asarray(w_eb), expected_w, atol=1e-12)
    assert np.allclose(np.asarray(lngth), norm.ppf(0.95) * np.sqrt(expected_w), rtol=1e-10)


def test_parametric_negative_ratio_means_full_shrinkage():
    # an uncorrected moment estimate can be negative
    w_eb, lngth = parametric_ebci(-0.4, 0.05)
    assert float(w_eb) == 0.0
    assert float(lngth) == 0.0


def test_parametric_weight_in_unit_interval():
    ratio = jnp.logspace(-8, 8, 33)
    w_eb, lngth = parametric_ebci(ratio, 0.05)
    w = np.asarray(w_eb)
    assert np.all((w >= 0) & (w <= 1))
    # monotone in the moment ratio
    assert np.all(np.diff(w) > 0)
    # never longer than the unshrunk interval
    assert np.all(np.asarray(lngth) <= norm.ppf(0.975) + 1e-12)
