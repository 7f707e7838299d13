"""Binarization of regulon activity into active/inactive calls per cell.

AUCell scores quantify how active each regulon is in each cell, but many
downstream summaries (regulon specificity, on/off heatmaps) need a yes/no
call. For every regulon the distribution of AUC values across cells is split
into two groups with one-dimensional k-means (k = 2); the threshold is the
midpoint between the two centroids and cells scoring at or above it are
called active.

Pipeline:
  1. Load the AUCell matrix (cells × regulons) from CSV or a SCENIC loom.
  2. Fit one threshold per regulon (Threshold Map).
  3. Compare every score with its regulon's threshold (Binary Activity Matrix).
  4. Optionally plot per-regulon histograms with their thresholds.

Regulons with a unimodal or near-constant distribution get a threshold at
the edge of their range. These are logged, not corrected; inspect the
histograms before trusting their calls.

Usage:
    python -m scenic_downstream.binarization --config configs/default_config.yaml \\
        --aucell-file results/aucell/aucell.csv \\
        --output-dir results/binarization/
"""

import argparse
import logging
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd
from scipy.cluster.vq import kmeans2

from .utils.io import load_aucell, load_aucell_from_loom, load_config, save_table
from .utils.plotting import plot_threshold_histograms

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
log = logging.getLogger(__name__)


# ── Thresholds ────────────────────────────────────────────────────────────────

def kmeans_threshold(values: np.ndarray) -> float:
    """Find the cut point splitting one regulon's scores into two clusters.

    Runs 1-D k-means with k = 2, seeding the centroids at the observed
    minimum and maximum so the fit is deterministic. The threshold is the
    midpoint of the two fitted centroids and therefore always lies inside
    the observed range.

    Args:
        values: AUC scores of one regulon across cells.

    Returns:
        Threshold value.
    """
    x = np.asarray(values, dtype=float)
    x = x[np.isfinite(x)].reshape(-1, 1)
    lo, hi = x.min(), x.max()
    if lo == hi:
        return float(lo)
    centroids, _ = kmeans2(x, np.array([[lo], [hi]]), minit="matrix", missing="warn")
    return float(np.clip(centroids.mean(), lo, hi))


def compute_thresholds(auc_mtx: pd.DataFrame) -> pd.Series:
    """Compute the binarization threshold of every regulon.

    Args:
        auc_mtx: AUCell matrix of shape (n_cells × n_regulons).

    Returns:
        Series mapping regulon → threshold (the Threshold Map).
    """
    thresholds = pd.Series(
        {regulon: kmeans_threshold(auc_mtx[regulon].values) for regulon in auc_mtx.columns},
        name="threshold",
        dtype=float,
    )
    thresholds.index.name = "regulon"

    # A threshold at the range edge calls every cell active (or none).
    n_active = auc_mtx.ge(thresholds, axis=1).sum()
    degenerate = n_active[(n_active == 0) | (n_active == len(auc_mtx))].index.tolist()
    if degenerate:
        log.warning(
            "Degenerate threshold (unimodal or constant AUC) for %d regulons: %s",
            len(degenerate), ", ".join(map(str, degenerate)),
        )
    return thresholds


# ── Binarization ──────────────────────────────────────────────────────────────

def binarize(
    auc_mtx: pd.DataFrame,
    thresholds: Optional[pd.Series | dict] = None,
    threshold_overrides: Optional[dict] = None,
) -> tuple[pd.DataFrame, pd.Series]:
    """Convert continuous AUC scores into binary regulon activity.

    A cell is active for a regulon when its score is greater than or equal
    to the regulon's threshold.

    Args:
        auc_mtx: AUCell matrix of shape (n_cells × n_regulons).
        thresholds: Optional precomputed Threshold Map. Computed with
            compute_thresholds() when omitted; regulons it does not cover
            are filled in the same way.
        threshold_overrides: Optional regulon → threshold mapping applied on
            top of the computed (or supplied) thresholds, e.g. for regulons
            whose automatic cut was judged wrong after inspection.

    Returns:
        Tuple of (binary_mtx, thresholds). binary_mtx has the same shape and
        labels as auc_mtx with 0/1 integer values.
    """
    if thresholds is None:
        thresholds = compute_thresholds(auc_mtx)
    thresholds = pd.Series(thresholds, dtype=float).reindex(auc_mtx.columns.copy())
    missing = thresholds.index[thresholds.isna()]
    if len(missing):
        log.info("Computing thresholds for %d regulons without one", len(missing))
        thresholds.update(compute_thresholds(auc_mtx[missing]))
    if threshold_overrides:
        unknown = set(threshold_overrides) - set(auc_mtx.columns)
        if unknown:
            raise ValueError(f"Threshold overrides for unknown regulons: {sorted(unknown)}")
        thresholds.update(pd.Series(threshold_overrides, dtype=float))
    thresholds = thresholds.rename("threshold").rename_axis("regulon")

    binary_mtx = auc_mtx.ge(thresholds, axis=1).astype(int)
    return binary_mtx, thresholds


def binarization_summary(binary_mtx: pd.DataFrame) -> pd.DataFrame:
    """Summarize how many cells each regulon is active in.

    Args:
        binary_mtx: Binary activity matrix (n_cells × n_regulons).

    Returns:
        DataFrame indexed by regulon with columns ['n_active', 'frac_active'],
        sorted by frac_active descending.
    """
    n_active = binary_mtx.sum(axis=0)
    summary = pd.DataFrame({
        "n_active": n_active.astype(int),
        "frac_active": n_active / len(binary_mtx),
    })
    summary.index.name = "regulon"
    return summary.sort_values("frac_active", ascending=False)


# ── Full pipeline ─────────────────────────────────────────────────────────────

def run_binarization(
    auc_mtx: pd.DataFrame,
    output_dir: str | Path,
    threshold_overrides: Optional[dict] = None,
    plot: bool = False,
) -> dict:
    """Binarize an AUCell matrix and save thresholds and binary calls.

    Args:
        auc_mtx: AUCell matrix (n_cells × n_regulons).
        output_dir: Directory for output files.
        threshold_overrides: Optional manual thresholds per regulon.
        plot: Whether to plot per-regulon AUC histograms with thresholds.

    Returns:
        Dict with keys: 'thresholds' (Series), 'binary' (DataFrame),
        'summary' (DataFrame).
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    binary_mtx, thresholds = binarize(auc_mtx, threshold_overrides=threshold_overrides)
    summary = binarization_summary(binary_mtx)

    save_table(thresholds.to_frame(), output_dir / "thresholds.csv")
    save_table(binary_mtx, output_dir / "binary_activity.csv")
    save_table(summary, output_dir / "binarization_summary.csv")
    log.info("Binary activity saved (%d cells × %d regulons)", *binary_mtx.shape)

    if plot:
        plot_threshold_histograms(auc_mtx, thresholds, output_dir / "threshold_histograms.png")

    return {"thresholds": thresholds, "binary": binary_mtx, "summary": summary}


def load_activity(path: str | Path) -> pd.DataFrame:
    """Load an AUCell matrix from either a CSV/TSV table or a SCENIC loom."""
    if Path(path).suffix == ".loom":
        return load_aucell_from_loom(path)
    return load_aucell(path)


# ── CLI ───────────────────────────────────────────────────────────────────────

def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        description="Binarize regulon AUCell scores with per-regulon k-means thresholds."
    )
    parser.add_argument("--config", help="Path to YAML config file.")
    parser.add_argument("--aucell-file", help="AUCell CSV (cells × regulons) or SCENIC loom.")
    parser.add_argument("--output-dir", required=True, help="Output directory.")
    parser.add_argument("--plot", action="store_true", help="Generate threshold histograms.")
    args = parser.parse_args(argv)

    cfg = load_config(args.config) if args.config else {}
    bin_cfg = cfg.get("binarization", {})
    paths_cfg = cfg.get("paths", {})

    aucell_file = args.aucell_file or paths_cfg.get("aucell_file")
    if not aucell_file:
        parser.error("--aucell-file is required (or paths.aucell_file in the config)")

    run_binarization(
        auc_mtx=load_activity(aucell_file),
        output_dir=args.output_dir,
        threshold_overrides=bin_cfg.get("threshold_overrides"),
        plot=args.plot or bin_cfg.get("plot", False),
    )


if __name__ == "__main__":
    main()
