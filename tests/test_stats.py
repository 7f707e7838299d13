import numpy as np
import pandas as pd
import pytest

from scenic_downstream.utils.stats import (
    compute_zscore_matrix,
    connection_specificity_index,
    divergence_to_specificity,
    jensen_shannon_divergence,
    regulon_specificity_score,
)


def test_jsd_identical_and_disjoint():
    p = np.array([1.0, 1.0, 0.0, 0.0])
    q = np.array([0.0, 0.0, 1.0, 1.0])
    assert jensen_shannon_divergence(p, p) == pytest.approx(0.0, abs=1e-12)
    assert jensen_shannon_divergence(p, q) == pytest.approx(1.0)


def test_jsd_is_symmetric_and_normalizes_inputs():
    p = np.array([3.0, 1.0, 0.0, 2.0])
    q = np.array([1.0, 1.0, 1.0, 1.0])
    assert jensen_shannon_divergence(p, q) == pytest.approx(jensen_shannon_divergence(q, p))
    assert jensen_shannon_divergence(p, q) == pytest.approx(jensen_shannon_divergence(p / 6, q * 4))
    assert 0.0 < jensen_shannon_divergence(p, q) < 1.0


def test_divergence_to_specificity():
    assert divergence_to_specificity(0.0) == 1.0
    assert divergence_to_specificity(1.0) == 0.0
    assert divergence_to_specificity(0.25) == pytest.approx(0.5)
    # rounding noise outside [0, 1] is clipped
    assert divergence_to_specificity(-1e-17) == 1.0


def test_regulon_specificity_score_bounds():
    membership = np.array([1, 1, 1, 0, 0, 0])
    assert regulon_specificity_score(np.array([1, 1, 1, 0, 0, 0]), membership) == pytest.approx(1.0)
    assert regulon_specificity_score(np.array([0, 0, 0, 1, 1, 1]), membership) == pytest.approx(0.0, abs=1e-7)
    partial = regulon_specificity_score(np.array([1, 0, 1, 0, 1, 0]), membership)
    assert 0.0 < partial < 1.0


def test_regulon_specificity_score_silent_regulon():
    assert regulon_specificity_score(np.zeros(6), np.array([1, 1, 1, 0, 0, 0])) == 0.0


def test_csi_hand_computed():
    corr = np.array([
        [1.0, 0.9, 0.1, 0.2],
        [0.9, 1.0, 0.3, 0.0],
        [0.1, 0.3, 1.0, 0.8],
        [0.2, 0.0, 0.8, 1.0],
    ])
    csi = connection_specificity_index(corr, offset=0.05)
    expected = np.array([
        [1.0, 1.0, 0.0, 0.0],
        [1.0, 1.0, 0.0, 0.0],
        [0.0, 0.0, 1.0, 1.0],
        [0.0, 0.0, 1.0, 1.0],
    ])
    np.testing.assert_allclose(csi, expected)


def test_csi_symmetric_and_bounded():
    rng = np.random.default_rng(1)
    corr = np.corrcoef(rng.normal(size=(8, 50)))
    csi = connection_specificity_index(corr)
    np.testing.assert_array_equal(csi, csi.T)
    assert np.all((csi >= 0.0) & (csi <= 1.0))
    np.testing.assert_array_equal(np.diag(csi), np.ones(8))


def test_csi_rejects_small_or_non_square():
    with pytest.raises(ValueError):
        connection_specificity_index(np.eye(2))
    with pytest.raises(ValueError):
        connection_specificity_index(np.ones((3, 4)))


def test_compute_zscore_matrix():
    auc = pd.DataFrame({"R1": [1.0, 1.0, 0.0, 0.0], "R2": [0.5, 0.5, 0.5, 0.5]},
                       index=["a", "b", "c", "d"])
    obs = pd.DataFrame({"celltype": ["X", "X", "Y", "Y"]}, index=auc.index)
    z = compute_zscore_matrix(auc, "celltype", obs_df=obs)
    assert list(z.index) == ["X", "Y"]
    assert z.loc["X", "R1"] > 0 > z.loc["Y", "R1"]
    assert z.loc["X", "R1"] == pytest.approx(-z.loc["Y", "R1"])
    # constant regulon has no defined z-score
    assert z["R2"].isna().all()


def test_jsd_known_value():
    # m = (0.75, 0.25): 0.5 * (log2(4/3) + 0.5 * (log2(2/3) + 1))
    assert jensen_shannon_divergence([1.0, 0.0], [0.5, 0.5]) == pytest.approx(0.3112781, abs=1e-6)
