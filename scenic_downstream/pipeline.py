"""End-to-end SCENIC downstream analysis for one dataset.

Runs the three stages in order, each in its own output subdirectory:
  1. binarization         — per-regulon thresholds and binary activity
  2. regulon_specificity  — RSS of the binary activity per cell type
  3. regulon_modules      — CSI, regulon modules, module activity per cell type

Usage:
    python -m scenic_downstream.pipeline --config configs/default_config.yaml \\
        --aucell-file results/aucell/aucell.csv \\
        --metadata-file data/cell_metadata.csv \\
        --output-dir results/scenic_downstream/
"""

import argparse
import logging
from pathlib import Path
from typing import Optional

import pandas as pd

from .binarization import load_activity, run_binarization
from .regulon_modules import run_regulon_modules
from .regulon_specificity import run_regulon_specificity
from .utils.io import align_cells, load_cell_metadata, load_config
from .utils.plotting import plot_binary_heatmap

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
log = logging.getLogger(__name__)

DEFAULT_N_MODULES = 5


def run_pipeline(
    auc_mtx: pd.DataFrame,
    cell_labels: pd.Series,
    output_dir: str | Path,
    cfg: Optional[dict] = None,
    plot: bool = False,
) -> dict:
    """Run binarization, regulon specificity and regulon modules in sequence.

    Args:
        auc_mtx: AUCell matrix (n_cells × n_regulons).
        cell_labels: Series mapping cell IDs → cell type labels.
        output_dir: Root directory; each stage writes to its own subdirectory.
        cfg: Parsed config dict with optional 'binarization',
            'regulon_specificity' and 'regulon_modules' sections.
        plot: Whether every stage should generate its figures.

    Returns:
        Dict with one entry per stage holding that stage's results.
    """
    cfg = cfg or {}
    bin_cfg = cfg.get("binarization", {})
    rss_cfg = cfg.get("regulon_specificity", {})
    mod_cfg = cfg.get("regulon_modules", {})
    output_dir = Path(output_dir)

    auc_mtx, cell_labels = align_cells(auc_mtx, cell_labels)
    log.info("Running on %d cells × %d regulons, %d cell types",
             *auc_mtx.shape, cell_labels.nunique())

    binarization = run_binarization(
        auc_mtx,
        output_dir / "binarization",
        threshold_overrides=bin_cfg.get("threshold_overrides"),
        plot=plot or bin_cfg.get("plot", False),
    )
    if plot or bin_cfg.get("plot", False):
        plot_binary_heatmap(
            binarization["binary"], cell_labels,
            output_dir / "binarization" / "binary_heatmap.png",
        )

    specificity = run_regulon_specificity(
        binarization["binary"],
        cell_labels,
        output_dir / "regulon_specificity",
        aucell_df=auc_mtx,
        top_n=rss_cfg.get("top_n", 5),
        plot=plot or rss_cfg.get("plot", False),
    )

    n_modules = mod_cfg.get("n_modules")
    cut_height = mod_cfg.get("cut_height") if n_modules is None else None
    if n_modules is None and cut_height is None:
        n_modules = min(DEFAULT_N_MODULES, auc_mtx.shape[1] - 1)
    modules = run_regulon_modules(
        auc_mtx,
        cell_labels,
        output_dir / "regulon_modules",
        n_modules=n_modules,
        cut_height=cut_height,
        csi_offset=mod_cfg.get("csi_offset", 0.05),
        linkage_method=mod_cfg.get("linkage_method", "ward"),
        plot=plot or mod_cfg.get("plot", False),
    )

    return {
        "binarization": binarization,
        "regulon_specificity": specificity,
        "regulon_modules": modules,
    }


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        description="Binarize regulon activity, score cell-type specificity, and call regulon modules."
    )
    parser.add_argument("--config", help="Path to YAML config file.")
    parser.add_argument("--aucell-file", help="AUCell CSV (cells × regulons) or SCENIC loom.")
    parser.add_argument("--metadata-file", help="Cell metadata CSV/TSV or h5ad.")
    parser.add_argument("--output-dir", required=True, help="Output directory.")
    parser.add_argument("--celltype-col", default="celltype")
    parser.add_argument("--plot", action="store_true", help="Generate figures.")
    args = parser.parse_args(argv)

    cfg = load_config(args.config) if args.config else {}
    paths_cfg = cfg.get("paths", {})

    aucell_file = args.aucell_file or paths_cfg.get("aucell_file")
    metadata_file = args.metadata_file or paths_cfg.get("metadata_file")
    if not aucell_file or not metadata_file:
        parser.error("--aucell-file and --metadata-file are required "
                     "(or paths.aucell_file / paths.metadata_file in the config)")

    celltype_col = cfg.get("regulon_specificity", {}).get("celltype_col", args.celltype_col)
    run_pipeline(
        auc_mtx=load_activity(aucell_file),
        cell_labels=load_cell_metadata(metadata_file, celltype_col=celltype_col),
        output_dir=args.output_dir,
        cfg=cfg,
        plot=args.plot,
    )


if __name__ == "__main__":
    main()
