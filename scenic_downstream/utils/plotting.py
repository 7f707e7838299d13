"""Shared visualization functions used across analysis modules.

All plot functions accept an output_path argument and save to disk.
They do not call plt.show() — call that explicitly if running interactively.
"""

from pathlib import Path
from typing import Optional
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from adjustText import adjust_text


def _save_figure(fig, output_path: str | Path) -> None:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=150, bbox_inches="tight")
    fig.savefig(output_path.with_suffix(".svg"), bbox_inches="tight")
    plt.close(fig)


def _category_colors(labels: pd.Series, palette: str = "tab20") -> pd.Series:
    """Map each label in a Series to a color, for clustermap color bars."""
    categories = sorted(pd.unique(labels.astype(str)))
    lut = dict(zip(categories, sns.color_palette(palette, len(categories))))
    return labels.astype(str).map(lut)


def plot_zscore_heatmap(
    z_df: pd.DataFrame,
    output_path: str | Path,
    cmap: str = "vlag",
    vmin: float = -2.0,
    vmax: float = 2.0,
    title: str = "",
    xlabel: str = "Regulon",
    figsize: tuple = (25, 10),
) -> None:
    """Plot a heatmap of per-cell-type regulon (or module) z-scores.

    Rows are cell types; columns are regulons or modules. Color encodes the
    z-score of activity relative to the global mean across all cells.

    Args:
        z_df: DataFrame of shape (n_celltypes × n_features) with z-scores.
        output_path: Path to save the figure (PNG and SVG).
        cmap: Colormap name (default 'vlag' — blue/white/red diverging).
        vmin: Color scale minimum.
        vmax: Color scale maximum.
        title: Figure title.
        xlabel: Label for the column axis.
        figsize: Figure width × height in inches.
    """
    fig, ax = plt.subplots(figsize=figsize)
    sns.heatmap(
        z_df,
        ax=ax,
        cmap=cmap,
        center=0,
        vmin=vmin,
        vmax=vmax,
        square=True,
        cbar_kws={"shrink": 0.5, "aspect": 20},
    )
    ax.set_title(title)
    ax.set_xlabel(xlabel)
    ax.set_ylabel("Cell Type")
    plt.tight_layout()
    _save_figure(fig, output_path)


def plot_rss_panel(
    rss_matrix: pd.DataFrame,
    output_path: str | Path,
    top_n: int = 5,
    ncols: int = 5,
    figsize: Optional[tuple] = None,
) -> None:
    """Plot per-cell-type Regulon Specificity Score (RSS) ranking panels.

    One subplot per cell type. Regulons are sorted by RSS in descending
    order; x-axis is the rank, y-axis is the RSS score. The top_n regulons
    are highlighted and labeled.

    Args:
        rss_matrix: DataFrame of shape (n_celltypes × n_regulons) with RSS scores.
        output_path: Path to save the figure.
        top_n: Number of top regulons to label per cell type.
        ncols: Number of subplot columns.
        figsize: Overall figure dimensions. Defaults to 3 inches per panel.
    """
    celltypes = sorted(rss_matrix.index.astype(str).tolist())
    ncols = max(1, min(ncols, len(celltypes)))
    nrows = int(np.ceil(len(celltypes) / ncols))
    if figsize is None:
        figsize = (3 * ncols, 3 * nrows)
    fig = plt.figure(figsize=figsize)
    rss_matrix = rss_matrix.set_axis(rss_matrix.index.astype(str), axis=0)

    for i, ct in enumerate(celltypes, start=1):
        ax = fig.add_subplot(nrows, ncols, i)
        x = rss_matrix.loc[ct].sort_values(ascending=False)
        ranks = np.arange(1, len(x) + 1)
        ax.plot(ranks, x.values, ".", color="lightgrey")
        ax.plot(ranks[:top_n], x.values[:top_n], "o", color="firebrick", markersize=4)
        texts = [
            ax.text(rank, score, name, fontsize=9)
            for rank, score, name in zip(ranks[:top_n], x.values[:top_n], x.index[:top_n])
        ]
        span = x.max() - x.min()
        ax.set_ylim(x.min() - span * 0.05, x.max() + span * 0.05)
        ax.set_title(ct)
        if texts:
            adjust_text(
                texts,
                ax=ax,
                arrowprops=dict(arrowstyle="-", color="lightgrey"),
            )

    fig.text(0.5, 0.0, "Regulon rank", ha="center", size="large")
    fig.text(0.0, 0.5, "RSS", ha="center", rotation="vertical", size="large")
    plt.tight_layout()
    _save_figure(fig, output_path)


def plot_threshold_histograms(
    auc_mtx: pd.DataFrame,
    thresholds: pd.Series,
    output_path: str | Path,
    ncols: int = 4,
    bins: int = 50,
) -> None:
    """Plot each regulon's AUC distribution with its binarization threshold.

    Used to sanity-check thresholds by eye; unimodal regulons show the
    threshold sitting at the edge of the data.

    Args:
        auc_mtx: AUCell matrix (n_cells × n_regulons).
        thresholds: Series mapping regulon → threshold.
        output_path: Path to save the figure.
        ncols: Number of subplot columns.
        bins: Histogram bin count.
    """
    regulons = [r for r in auc_mtx.columns if r in thresholds.index]
    ncols = max(1, min(ncols, len(regulons)))
    nrows = int(np.ceil(len(regulons) / ncols))
    fig, axes = plt.subplots(nrows, ncols, figsize=(3 * ncols, 2.5 * nrows), squeeze=False)

    for ax, regulon in zip(axes.flat, regulons):
        ax.hist(auc_mtx[regulon].values, bins=bins, color="steelblue")
        ax.axvline(thresholds[regulon], color="firebrick", linestyle="--")
        ax.set_title(regulon, fontsize=9)
    for ax in list(axes.flat)[len(regulons):]:
        ax.set_axis_off()

    fig.text(0.5, 0.0, "AUC", ha="center", size="large")
    fig.text(0.0, 0.5, "Cells", ha="center", rotation="vertical", size="large")
    plt.tight_layout()
    _save_figure(fig, output_path)


def plot_binary_heatmap(
    binary_mtx: pd.DataFrame,
    cell_labels: pd.Series,
    output_path: str | Path,
    figsize: tuple = (12, 10),
) -> None:
    """Plot binarized regulon activity, cells grouped by cell type.

    Args:
        binary_mtx: Binary activity matrix (n_cells × n_regulons).
        cell_labels: Series mapping cell IDs → cell type labels.
        output_path: Path to save the figure.
        figsize: Figure dimensions.
    """
    order = cell_labels.loc[binary_mtx.index].astype(str).sort_values(kind="stable").index
    data = binary_mtx.loc[order].T
    col_colors = _category_colors(cell_labels.loc[order])

    g = sns.clustermap(
        data,
        col_cluster=False,
        row_cluster=data.shape[0] > 1,
        col_colors=col_colors,
        cmap="Greys",
        vmin=0,
        vmax=1,
        xticklabels=False,
        figsize=figsize,
        cbar_pos=None,
    )
    g.ax_heatmap.set_xlabel("Cell")
    g.ax_heatmap.set_ylabel("Regulon")
    _save_figure(g.figure, output_path)


def plot_csi_clustermap(
    csi: pd.DataFrame,
    modules: pd.Series,
    output_path: str | Path,
    method: str = "ward",
    cmap: str = "Reds",
    figsize: tuple = (12, 12),
) -> None:
    """Plot the regulon CSI matrix clustered hierarchically, colored by module.

    Args:
        csi: Square CSI DataFrame (n_regulons × n_regulons).
        modules: Series mapping regulon → module id.
        output_path: Path to save the figure.
        method: Linkage method, matching the one used to call modules.
        cmap: Colormap name.
        figsize: Figure dimensions.
    """
    colors = _category_colors(modules.loc[csi.index].astype(str), palette="tab10")
    g = sns.clustermap(
        csi,
        method=method,
        metric="euclidean",
        row_colors=colors,
        col_colors=colors,
        cmap=cmap,
        vmin=0,
        vmax=1,
        figsize=figsize,
        xticklabels=True,
        yticklabels=True,
    )
    g.ax_heatmap.set_xlabel("Regulon")
    g.ax_heatmap.set_ylabel("Regulon")
    _save_figure(g.figure, output_path)
