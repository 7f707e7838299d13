import numpy as np
import pandas as pd
import pytest

from scenic_downstream.regulon_modules import (
    cluster_modules,
    compute_csi,
    csi_to_long,
    main,
    module_activity,
    module_activity_by_celltype,
    regulon_correlation,
    run_regulon_modules,
)


def test_correlation_is_regulon_by_regulon(grouped_auc):
    auc, _ = grouped_auc
    corr = regulon_correlation(auc)
    assert corr.shape == (9, 9)
    assert corr.loc["TF00(+)", "TF01(+)"] > 0.9
    assert corr.loc["TF00(+)", "TF10(+)"] < 0


def test_csi_symmetric_and_specific(grouped_auc):
    auc, _ = grouped_auc
    csi = compute_csi(auc)
    np.testing.assert_array_equal(csi.to_numpy(), csi.to_numpy().T)
    assert list(csi.index) == list(auc.columns)
    # co-active regulons only compete with each other
    assert csi.loc["TF00(+)", "TF01(+)"] == pytest.approx(6 / 7)
    assert csi.loc["TF00(+)", "TF10(+)"] < 0.5


def test_csi_long_excludes_self_pairs(grouped_auc):
    auc, _ = grouped_auc
    long = csi_to_long(compute_csi(auc))
    assert len(long) == 9 * 8 // 2
    assert not (long["regulon_a"] == long["regulon_b"]).any()
    pairs = {frozenset(p) for p in zip(long["regulon_a"], long["regulon_b"])}
    assert len(pairs) == len(long)
    assert long["csi"].between(0.0, 1.0).all()


def test_cluster_modules_recovers_groups(grouped_auc):
    auc, _ = grouped_auc
    modules = cluster_modules(compute_csi(auc), n_modules=3)
    assert modules.nunique() == 3
    for g in range(3):
        assert modules[[f"TF{g}{k}(+)" for k in range(3)]].nunique() == 1


@pytest.mark.parametrize("k", [1, 2, 5, 8])
def test_cluster_modules_exact_count(grouped_auc, k):
    auc, _ = grouped_auc
    modules = cluster_modules(compute_csi(auc), n_modules=k)
    assert sorted(modules.unique()) == list(range(1, k + 1))
    assert len(modules) == 9


def test_cluster_modules_by_height(grouped_auc):
    auc, _ = grouped_auc
    modules = cluster_modules(compute_csi(auc), height=1e6)
    assert modules.nunique() == 1


def test_cluster_modules_requires_one_cut(grouped_auc):
    csi = compute_csi(grouped_auc[0])
    with pytest.raises(ValueError):
        cluster_modules(csi)
    with pytest.raises(ValueError):
        cluster_modules(csi, n_modules=2, height=1.0)


def test_module_activity_is_member_mean(toy_auc):
    modules = pd.Series({"R1(+)": 1, "R2(+)": 2, "R3(+)": 1})
    activity = module_activity(toy_auc, modules)
    assert list(activity.columns) == [1, 2]
    np.testing.assert_allclose(activity[1], (toy_auc["R1(+)"] + toy_auc["R3(+)"]) / 2)
    np.testing.assert_allclose(activity[2], toy_auc["R2(+)"])


def test_module_activity_by_celltype(toy_auc, toy_labels):
    modules = pd.Series({"R1(+)": 1, "R2(+)": 2, "R3(+)": 1})
    summary = module_activity_by_celltype(toy_auc, modules, toy_labels)
    assert summary.shape == (2, 2)
    expected = toy_auc.loc[["c1", "c2", "c3"], ["R1(+)", "R3(+)"]].mean(axis=1).mean()
    assert summary.loc["A", 1] == pytest.approx(expected)
    assert summary.loc["B", 2] > summary.loc["A", 2]


def test_run_regulon_modules(grouped_auc, tmp_path):
    auc, labels = grouped_auc
    result = run_regulon_modules(auc, labels, tmp_path, n_modules=3, plot=True)
    for name in ["regulon_correlation.csv", "csi_matrix.csv", "csi_long.csv",
                 "regulon_modules.csv", "module_activity.csv",
                 "module_activity_by_celltype.csv", "csi_clustermap.png",
                 "module_activity_heatmap.png"]:
        assert (tmp_path / name).exists(), name
    by_ct = result["module_activity_by_celltype"]
    astro_module = result["modules"]["TF00(+)"]
    assert by_ct[astro_module].idxmax() == "Astro"


def test_cli_with_config(grouped_auc, tmp_path):
    auc, labels = grouped_auc
    auc.to_csv(tmp_path / "aucell.csv")
    labels.rename_axis("cell").reset_index().to_csv(tmp_path / "meta.csv", index=False)
    cfg = tmp_path / "config.yaml"
    cfg.write_text("regulon_modules:\n  n_modules: 3\n  csi_offset: 0.05\n")
    out = tmp_path / "out"
    main([
        "--config", str(cfg),
        "--aucell-file", str(tmp_path / "aucell.csv"),
        "--metadata-file", str(tmp_path / "meta.csv"),
        "--output-dir", str(out),
    ])
    modules = pd.read_csv(out / "regulon_modules.csv", index_col=0)
    assert modules["module"].nunique() == 3


@pytest.mark.parametrize("method", ["centroid", "median", "nonsense"])
def test_cluster_modules_rejects_non_monotonic_methods(grouped_auc, method):
    csi = compute_csi(grouped_auc[0])
    with pytest.raises(ValueError, match="Unsupported linkage method"):
        cluster_modules(csi, n_modules=3, method=method)


@pytest.mark.parametrize("method", ["average", "complete", "weighted"])
def test_cluster_modules_other_methods_exact_count(grouped_auc, method):
    modules = cluster_modules(compute_csi(grouped_auc[0]), n_modules=3, method=method)
    assert sorted(modules.unique()) == [1, 2, 3]
