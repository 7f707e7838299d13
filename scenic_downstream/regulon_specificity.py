"""Regulon Specificity Score (RSS) per regulon × cell type.

RSS measures how exclusively a regulon is active in one cell type compared
with all other cells. For a regulon r and a cell type t, two distributions
over cells are compared:
  (a) r's activity, normalized to sum to 1 (binary calls by default, or raw
      AUCell scores);
  (b) t's membership indicator, normalized to sum to 1.
The Jensen-Shannon divergence (base 2) between them is turned into a
similarity with RSS = 1 - sqrt(JSD). A score of 1 means r is active in
exactly the cells of t; 0 means r is never active in t.

Alongside RSS, per-cell-type AUCell z-scores are computed so the top
specific regulons can be shown as a heatmap.

Usage:
    python -m scenic_downstream.regulon_specificity --config configs/default_config.yaml \\
        --activity-file results/binarization/binary_activity.csv \\
        --aucell-file results/aucell/aucell.csv \\
        --metadata-file data/cell_metadata.csv \\
        --output-dir results/regulon_specificity/
"""

import argparse
import logging
from pathlib import Path
from typing import Optional

import pandas as pd

from .utils.io import align_cells, load_aucell, load_cell_metadata, load_config, save_table
from .utils.stats import compute_zscore_matrix, regulon_specificity_score
from .utils.plotting import plot_rss_panel, plot_zscore_heatmap

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
log = logging.getLogger(__name__)


# ── RSS computation ───────────────────────────────────────────────────────────

def compute_rss(
    activity_df: pd.DataFrame,
    cell_labels: pd.Series,
) -> pd.DataFrame:
    """Compute Regulon Specificity Scores (RSS) for each regulon × cell type.

    Every (regulon, cell type) pair is scored independently with
    regulon_specificity_score().

    Args:
        activity_df: Activity matrix of shape (n_cells × n_regulons), either
            binary calls from binarization.binarize() or raw AUCell scores.
            Index must overlap cell_labels.index.
        cell_labels: Series mapping cell IDs → cell type labels.

    Returns:
        RSS matrix of shape (n_celltypes × n_regulons), values in [0, 1].
    """
    activity_df, cell_labels = align_cells(activity_df, cell_labels)
    celltypes = sorted(pd.unique(cell_labels), key=str)
    labels = cell_labels.to_numpy()

    silent = activity_df.columns[activity_df.sum(axis=0) <= 0].tolist()
    if silent:
        log.warning(
            "%d regulons are not active in any cell and score 0: %s",
            len(silent), ", ".join(map(str, silent)),
        )

    rss = pd.DataFrame(index=celltypes, columns=activity_df.columns, dtype=float)
    for ct in celltypes:
        membership = (labels == ct).astype(float)
        for regulon in activity_df.columns:
            rss.loc[ct, regulon] = regulon_specificity_score(
                activity_df[regulon].to_numpy(dtype=float), membership
            )
    rss.index.name = cell_labels.name or "celltype"
    return rss


def rss_to_long(rss_matrix: pd.DataFrame) -> pd.DataFrame:
    """Reshape an RSS matrix into one row per (regulon, cell type) pair.

    Returns:
        DataFrame with columns ['regulon', 'celltype', 'rss'], sorted by
        cell type and then by rss descending.
    """
    long = rss_matrix.rename_axis(index="celltype", columns="regulon").stack().rename("rss")
    return (
        long.reset_index()[["regulon", "celltype", "rss"]]
        .sort_values(["celltype", "rss"], ascending=[True, False])
        .reset_index(drop=True)
    )


def top_regulons_by_rss(rss_matrix: pd.DataFrame, n: int = 5) -> dict[str, list]:
    """Select the top-n regulons per cell type ranked by RSS score.

    Args:
        rss_matrix: RSS matrix from compute_rss() (n_celltypes × n_regulons).
        n: Number of top regulons to select per cell type.

    Returns:
        Dict mapping cell type → list of top-n regulon names.
    """
    return {
        ct: rss_matrix.loc[ct].sort_values(ascending=False).head(n).index.tolist()
        for ct in rss_matrix.index
    }


# ── Full pipeline ─────────────────────────────────────────────────────────────

def run_regulon_specificity(
    activity_df: pd.DataFrame,
    cell_labels: pd.Series,
    output_dir: str | Path,
    aucell_df: Optional[pd.DataFrame] = None,
    top_n: int = 5,
    plot: bool = False,
) -> dict:
    """Compute RSS per cell type and the matching AUCell z-scores.

    Args:
        activity_df: Binary (or raw AUCell) activity matrix (n_cells × n_regulons).
        cell_labels: Series mapping cell IDs → cell type labels.
        output_dir: Directory for output files.
        aucell_df: Raw AUCell matrix used for the z-score table. Defaults to
            activity_df.
        top_n: Top regulons to report per cell type.
        plot: Whether to generate RSS panels and a z-score heatmap.

    Returns:
        Dict with keys: 'rss' (DataFrame), 'rss_long' (DataFrame),
        'zscore' (DataFrame), 'top_regulons' (dict).
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    rss = compute_rss(activity_df, cell_labels)
    save_table(rss, output_dir / "rss_matrix.csv")
    rss_long = rss_to_long(rss)
    save_table(rss_long, output_dir / "rss_long.csv", index=False)
    log.info("RSS matrix saved (%d celltypes × %d regulons)", *rss.shape)

    auc, labels = align_cells(activity_df if aucell_df is None else aucell_df, cell_labels)
    celltype_col = labels.name or "celltype"
    auc_zscores = compute_zscore_matrix(auc, celltype_col, obs_df=labels.to_frame(celltype_col))
    save_table(auc_zscores, output_dir / "aucell_zscore.csv")

    top = top_regulons_by_rss(rss, n=top_n)
    top_df = pd.DataFrame(
        [(ct, rank, reg) for ct, regs in top.items() for rank, reg in enumerate(regs, start=1)],
        columns=["celltype", "rank", "regulon"],
    )
    save_table(top_df, output_dir / "top_regulons.csv", index=False)
    log.info("Top %d regulons per cell type saved for %d cell types", top_n, len(top))

    if plot:
        top_regs = list(dict.fromkeys(
            r for regs in top.values() for r in regs if r in auc_zscores.columns
        ))
        if top_regs:
            plot_zscore_heatmap(
                auc_zscores[top_regs],
                output_dir / "aucell_zscore_heatmap.png",
                title="Top Regulons by RSS (AUCell Z-score)",
            )
        plot_rss_panel(rss, output_dir / "rss_panel.png", top_n=top_n)

    return {"rss": rss, "rss_long": rss_long, "zscore": auc_zscores, "top_regulons": top}


# ── CLI ───────────────────────────────────────────────────────────────────────

def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        description="Compute Regulon Specificity Scores (RSS) per cell type."
    )
    parser.add_argument("--config", help="Path to YAML config file.")
    parser.add_argument("--activity-file", required=True,
                        help="Binary (or AUCell) activity CSV (cells × regulons).")
    parser.add_argument("--aucell-file", help="Raw AUCell CSV used for z-scores.")
    parser.add_argument("--metadata-file", required=True,
                        help="Cell metadata CSV/TSV or h5ad with cell type labels.")
    parser.add_argument("--output-dir", required=True, help="Output directory.")
    parser.add_argument("--celltype-col", default="celltype")
    parser.add_argument("--top-n", type=int, default=5)
    parser.add_argument("--plot", action="store_true", help="Generate figures.")
    args = parser.parse_args(argv)

    cfg = load_config(args.config) if args.config else {}
    rss_cfg = cfg.get("regulon_specificity", {})

    cell_labels = load_cell_metadata(
        args.metadata_file, celltype_col=rss_cfg.get("celltype_col", args.celltype_col)
    )
    run_regulon_specificity(
        activity_df=load_aucell(args.activity_file),
        cell_labels=cell_labels,
        output_dir=args.output_dir,
        aucell_df=load_aucell(args.aucell_file) if args.aucell_file else None,
        top_n=rss_cfg.get("top_n", args.top_n),
        plot=args.plot or rss_cfg.get("plot", False),
    )


if __name__ == "__main__":
    main()
