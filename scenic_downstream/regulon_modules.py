"""Regulon connectivity: connection specificity index (CSI) and regulon modules.

Regulons that are co-active across cells often belong to the same regulatory
program. Raw correlation alone overstates this for "hub" regulons that
correlate with everything, so pairwise similarity is measured with the
connection specificity index (Fuxman Bass et al. 2013, as used in the SCENIC
protocol): a pair of regulons scores high when few other regulons are as
correlated with either of them as they are with each other.

Pipeline:
  1. Pearson correlation of AUCell activity between every pair of regulons.
  2. CSI from the correlation matrix (symmetric, values in [0, 1]).
  3. Agglomerative clustering (Ward by default) of the CSI rows on Euclidean
     distance, cut at a fixed number of modules or at a height.
  4. Module activity: mean AUCell score of each module's regulons per cell,
     then averaged per cell type for visualization.

Usage:
    python -m scenic_downstream.regulon_modules --config configs/default_config.yaml \\
        --aucell-file results/aucell/aucell.csv \\
        --metadata-file data/cell_metadata.csv \\
        --n-modules 6 \\
        --output-dir results/regulon_modules/
"""

import argparse
import logging
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd
from scipy.cluster.hierarchy import cut_tree, fcluster, linkage

from .utils.io import align_cells, load_aucell, load_cell_metadata, load_config, save_table
from .utils.stats import compute_zscore_matrix, connection_specificity_index
from .utils.plotting import plot_csi_clustermap, plot_zscore_heatmap

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
log = logging.getLogger(__name__)

# Methods whose merge heights never decrease; cut_tree is only valid for these.
LINKAGE_METHODS = ("ward", "average", "complete", "single", "weighted")


# ── Correlation and CSI ───────────────────────────────────────────────────────

def regulon_correlation(auc_mtx: pd.DataFrame) -> pd.DataFrame:
    """Pearson correlation between regulons across cells.

    Args:
        auc_mtx: AUCell matrix of shape (n_cells × n_regulons).

    Returns:
        Correlation matrix of shape (n_regulons × n_regulons).
    """
    return auc_mtx.corr(method="pearson")


def compute_csi(auc_mtx: pd.DataFrame, offset: float = 0.05) -> pd.DataFrame:
    """Compute the regulon × regulon connection specificity index.

    Args:
        auc_mtx: AUCell matrix of shape (n_cells × n_regulons).
        offset: Correlation tolerance used when counting competing regulons.

    Returns:
        Symmetric CSI DataFrame (n_regulons × n_regulons) with a diagonal of 1.
    """
    corr = regulon_correlation(auc_mtx)
    csi = connection_specificity_index(corr.to_numpy(), offset=offset)
    return pd.DataFrame(csi, index=corr.index, columns=corr.columns)


def csi_to_long(csi: pd.DataFrame) -> pd.DataFrame:
    """List each unordered regulon pair once, without self-pairs.

    Returns:
        DataFrame with columns ['regulon_a', 'regulon_b', 'csi'], sorted by
        csi descending.
    """
    rows, cols = np.triu_indices(len(csi), k=1)
    return (
        pd.DataFrame({
            "regulon_a": csi.index[rows],
            "regulon_b": csi.columns[cols],
            "csi": csi.to_numpy()[rows, cols],
        })
        .sort_values("csi", ascending=False)
        .reset_index(drop=True)
    )


# ── Module calling ────────────────────────────────────────────────────────────

def cluster_modules(
    csi: pd.DataFrame,
    n_modules: Optional[int] = None,
    height: Optional[float] = None,
    method: str = "ward",
) -> pd.Series:
    """Group regulons into modules by hierarchical clustering of CSI profiles.

    Each regulon is represented by its row of the CSI matrix; rows are
    clustered on Euclidean distance. Pass exactly one of n_modules (exact
    number of modules) or height (cut the dendrogram at this distance).

    Args:
        csi: Square CSI DataFrame from compute_csi().
        n_modules: Number of modules to cut the tree into.
        height: Dendrogram height at which to cut.
        method: scipy linkage method, one of LINKAGE_METHODS.

    Returns:
        Series mapping regulon → module id (1-based), named 'module'.

    Raises:
        ValueError: If neither or both of n_modules and height are given,
            or method is not in LINKAGE_METHODS.
    """
    if (n_modules is None) == (height is None):
        raise ValueError("Pass exactly one of n_modules or height.")
    if method not in LINKAGE_METHODS:
        raise ValueError(
            f"Unsupported linkage method '{method}'. Choose: {', '.join(LINKAGE_METHODS)}."
        )

    linked = linkage(csi.to_numpy(), method=method, metric="euclidean")
    if n_modules is not None:
        labels = cut_tree(linked, n_clusters=n_modules).ravel() + 1
    else:
        labels = fcluster(linked, t=height, criterion="distance")

    modules = pd.Series(labels.astype(int), index=csi.index, name="module")
    modules.index.name = "regulon"
    log.info("%d regulons grouped into %d modules", len(modules), modules.nunique())
    return modules


# ── Module activity ───────────────────────────────────────────────────────────

def module_activity(auc_mtx: pd.DataFrame, modules: pd.Series) -> pd.DataFrame:
    """Mean AUCell activity of each module's regulons, per cell.

    Args:
        auc_mtx: AUCell matrix of shape (n_cells × n_regulons).
        modules: Series mapping regulon → module id.

    Returns:
        DataFrame of shape (n_cells × n_modules); columns are module ids.
    """
    members = modules[modules.index.isin(auc_mtx.columns)]
    activity = auc_mtx[members.index].T.groupby(members.values).mean().T
    activity.columns.name = "module"
    return activity


def module_activity_by_celltype(
    auc_mtx: pd.DataFrame,
    modules: pd.Series,
    cell_labels: pd.Series,
) -> pd.DataFrame:
    """Average module activity within each cell type.

    Args:
        auc_mtx: AUCell matrix of shape (n_cells × n_regulons).
        modules: Series mapping regulon → module id.
        cell_labels: Series mapping cell IDs → cell type labels.

    Returns:
        DataFrame of shape (n_celltypes × n_modules).
    """
    auc_mtx, cell_labels = align_cells(auc_mtx, cell_labels)
    activity = module_activity(auc_mtx, modules)
    summary = activity.groupby(cell_labels.to_numpy()).mean()
    summary.index.name = cell_labels.name or "celltype"
    return summary


# ── Full pipeline ─────────────────────────────────────────────────────────────

def run_regulon_modules(
    auc_mtx: pd.DataFrame,
    cell_labels: pd.Series,
    output_dir: str | Path,
    n_modules: Optional[int] = None,
    cut_height: Optional[float] = None,
    csi_offset: float = 0.05,
    linkage_method: str = "ward",
    plot: bool = False,
) -> dict:
    """Compute CSI, call regulon modules, and summarize module activity.

    Args:
        auc_mtx: AUCell matrix (n_cells × n_regulons).
        cell_labels: Series mapping cell IDs → cell type labels.
        output_dir: Directory for output files.
        n_modules: Number of modules (exclusive with cut_height).
        cut_height: Dendrogram cut height (exclusive with n_modules).
        csi_offset: Correlation tolerance for the CSI.
        linkage_method: scipy linkage method.
        plot: Whether to generate the CSI clustermap and module heatmap.

    Returns:
        Dict with keys: 'correlation', 'csi', 'csi_long', 'modules',
        'module_activity', 'module_activity_by_celltype'.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    corr = regulon_correlation(auc_mtx)
    save_table(corr, output_dir / "regulon_correlation.csv")

    csi = compute_csi(auc_mtx, offset=csi_offset)
    csi_long = csi_to_long(csi)
    save_table(csi, output_dir / "csi_matrix.csv")
    save_table(csi_long, output_dir / "csi_long.csv", index=False)
    log.info("CSI matrix saved (%d regulons, %d pairs)", len(csi), len(csi_long))

    modules = cluster_modules(csi, n_modules=n_modules, height=cut_height, method=linkage_method)
    save_table(modules.to_frame(), output_dir / "regulon_modules.csv")

    activity = module_activity(auc_mtx, modules)
    by_celltype = module_activity_by_celltype(auc_mtx, modules, cell_labels)
    save_table(activity, output_dir / "module_activity.csv")
    save_table(by_celltype, output_dir / "module_activity_by_celltype.csv")
    log.info("Module activity saved (%d celltypes × %d modules)", *by_celltype.shape)

    if plot:
        plot_csi_clustermap(csi, modules, output_dir / "csi_clustermap.png", method=linkage_method)
        aligned, labels = align_cells(activity.rename(columns=lambda m: f"M{m}"), cell_labels)
        module_z = compute_zscore_matrix(aligned, "celltype", obs_df=labels.to_frame("celltype"))
        plot_zscore_heatmap(
            module_z,
            output_dir / "module_activity_heatmap.png",
            title="Regulon Module Activity (Z-score)",
            xlabel="Module",
            figsize=(max(4, module_z.shape[1]), max(4, 0.5 * module_z.shape[0])),
        )

    return {
        "correlation": corr,
        "csi": csi,
        "csi_long": csi_long,
        "modules": modules,
        "module_activity": activity,
        "module_activity_by_celltype": by_celltype,
    }


# ── CLI ───────────────────────────────────────────────────────────────────────

def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        description="Compute regulon CSI, call regulon modules, and summarize module activity."
    )
    parser.add_argument("--config", help="Path to YAML config file.")
    parser.add_argument("--aucell-file", required=True, help="AUCell CSV (cells × regulons).")
    parser.add_argument("--metadata-file", required=True,
                        help="Cell metadata CSV/TSV or h5ad with cell type labels.")
    parser.add_argument("--output-dir", required=True, help="Output directory.")
    parser.add_argument("--celltype-col", default="celltype")
    cut = parser.add_mutually_exclusive_group()
    cut.add_argument("--n-modules", type=int, help="Number of regulon modules.")
    cut.add_argument("--cut-height", type=float, help="Dendrogram cut height.")
    parser.add_argument("--csi-offset", type=float, default=0.05)
    parser.add_argument("--linkage-method", default="ward",
                        choices=list(LINKAGE_METHODS))
    parser.add_argument("--plot", action="store_true", help="Generate figures.")
    args = parser.parse_args(argv)

    cfg = load_config(args.config) if args.config else {}
    mod_cfg = cfg.get("regulon_modules", {})

    n_modules = args.n_modules
    cut_height = args.cut_height
    if n_modules is None and cut_height is None:
        n_modules = mod_cfg.get("n_modules")
        cut_height = mod_cfg.get("cut_height") if n_modules is None else None

    cell_labels = load_cell_metadata(
        args.metadata_file, celltype_col=mod_cfg.get("celltype_col", args.celltype_col)
    )
    run_regulon_modules(
        auc_mtx=load_aucell(args.aucell_file),
        cell_labels=cell_labels,
        output_dir=args.output_dir,
        n_modules=n_modules,
        cut_height=cut_height,
        csi_offset=mod_cfg.get("csi_offset", args.csi_offset),
        linkage_method=mod_cfg.get("linkage_method", args.linkage_method),
        plot=args.plot or mod_cfg.get("plot", False),
    )


if __name__ == "__main__":
    main()
