import numpy as np
import pandas as pd
import pytest

from ebci_tools.core._data_prep import (
    _validate_and_dropna,
    _prepare_inputs,
    _check_moments,
    _normalize_correction,
    _df_to_arrays,
)
from ebci_tools.core._options import EBCIInputError


def test_validate_and_dropna_warns_and_drops():
    df = pd.DataFrame({
        "y": [1.0, np.nan, 3.0, 4.0],
        "se": [1.0, 1.0, 1.0, None],
    })
    with pytest.warns(UserWarning) as record:
        df_clean, n_dropped = _validate_and_dropna(df, ["y", "se"])
    assert n_dropped == 2
    assert "2 rows removed" in str(record[0].message)
    assert not df_clean.isnull().any().any()


def test_validate_and_dropna_missing_column():
    df = pd.DataFrame({"y": [1, 2, 3]})
    with pytest.raises(EBCIInputError):
        _validate_and_dropna(df, ["y", "se"])


def test_prepare_inputs_defaults():
    Y, X, sigma, w = _prepare_inputs([1, 2, 3], None, [1, 1, 2], 0.05)
    assert X.shape == (3, 0)
    assert np.allclose(np.asarray(w), 1.0)
    assert Y.dtype == np.float64


def test_prepare_inputs_column_vectors():
    Y, X, sigma, w = _prepare_inputs(
        np.ones((4, 1)), np.arange(4.0), np.ones((4, 1)), 0.1, weights=[1, 0, 2, 1]
    )
    assert Y.shape == (4,)
    assert X.shape == (4, 1)
    assert np.allclose(np.asarray(w), [1, 0, 2, 1])


def test_prepare_inputs_empty_regressors():
    _, X, _, _ = _prepare_inputs([1.0, 2.0], np.empty((0,)), [1.0, 1.0], 0.05)
    assert X.shape == (2, 0)


@pytest.mark.parametrize("alpha", [0.0, 1.0, -0.2, "0.05"])
def test_prepare_inputs_bad_alpha(alpha):
    with pytest.raises(EBCIInputError):
        _prepare_inputs([1.0, 2.0], None, [1.0, 1.0], alpha)


def test_check_moments():
    _check_moments(None, None)
    _check_moments(1.0, None)
    _check_moments(1.0, 1.0)
    with pytest.raises(EBCIInputError):
        _check_moments(None, 2.0)
    with pytest.raises(EBCIInputError):
        _check_moments(1.0, 0.5)


def test_normalize_correction_case_insensitive():
    assert _normalize_correction("pmt") == "PMT"
    assert _normalize_correction("FpLiB") == "FPLIB"
    assert _normalize_correction("None") == "none"
    with pytest.raises(EBCIInputError):
        _normalize_correction("james-stein")


def test_df_to_arrays():
    df = pd.DataFrame({"y": [0.1, 0.2, 0.3], "s": [1.0, 2.0, 3.0], "x": [1.0, 0.0, 1.0]})
    Y, X, sigma, w, meta = _df_to_arrays(df, "y", "s", regressors=["x"])
    assert np.allclose(Y, [0.1, 0.2, 0.3])
    assert X.shape == (3, 1)
    assert w is None
    assert meta["regressors"] == ["x"]
    assert meta["n_dropped"] == 0
