"""Shared statistical functions used across analysis modules.

The specificity and connection-specificity scores take plain numpy arrays
so they can be reused outside of the DataFrame-based pipeline.
"""

from typing import Optional
import numpy as np
import pandas as pd
from scipy.spatial.distance import jensenshannon


def compute_zscore_matrix(
    aucell_df: pd.DataFrame,
    celltype_col: str,
    obs_df: Optional[pd.DataFrame] = None,
) -> pd.DataFrame:
    """Compute per-cell-type z-scored AUCell activity.

    For each regulon, calculates the mean AUCell score within each cell type,
    then normalizes relative to the global mean and standard deviation across
    all cells.

    Formula: z = (celltype_mean - global_mean) / global_std

    Args:
        aucell_df: DataFrame of shape (n_cells × n_regulons). Index must be
            cell IDs matching obs_df if provided.
        celltype_col: Column name in obs_df containing cell type labels. If
            obs_df is None, aucell_df must already contain this column.
        obs_df: Optional metadata DataFrame with cell type annotations.
            If provided, the celltype_col is joined onto aucell_df by index.

    Returns:
        DataFrame of shape (n_celltypes × n_regulons) with z-scores.
        Regulons with zero variance get NaN.
    """
    df = aucell_df.copy()
    if obs_df is not None:
        df[celltype_col] = df.index.map(obs_df[celltype_col])

    regulon_cols = [c for c in df.columns if c != celltype_col]
    global_mean = df[regulon_cols].mean()
    global_std = df[regulon_cols].std().replace(0.0, np.nan)

    grouped = df.groupby(celltype_col, observed=True)[regulon_cols].mean()
    return (grouped - global_mean) / global_std


# ── Regulon specificity ───────────────────────────────────────────────────────

def jensen_shannon_divergence(
    p: np.ndarray,
    q: np.ndarray,
    base: float = 2.0,
) -> float:
    """Jensen-Shannon divergence between two discrete distributions.

    Both inputs are normalized to sum to 1. With base 2 the divergence is
    bounded in [0, 1].

    Args:
        p: Non-negative weights of the first distribution.
        q: Non-negative weights of the second distribution.
        base: Logarithm base.

    Returns:
        JS divergence (not its square root).
    """
    # jensenshannon returns the distance, the square root of the divergence
    return float(jensenshannon(np.asarray(p, dtype=float), np.asarray(q, dtype=float), base=base) ** 2)


def divergence_to_specificity(divergence: float) -> float:
    """Convert a base-2 JS divergence into a similarity: 1 - sqrt(d)."""
    return float(1.0 - np.sqrt(np.clip(divergence, 0.0, 1.0)))


def regulon_specificity_score(
    activity: np.ndarray,
    membership: np.ndarray,
) -> float:
    """Regulon Specificity Score for one regulon and one cell type.

    Compares the regulon's activity distribution over cells with the ideal
    distribution in which all activity falls inside the cell type.

    Args:
        activity: Per-cell activity (binary calls or AUC scores), >= 0.
        membership: Per-cell 0/1 indicator for the cell type.

    Returns:
        Score in [0, 1]. 1 means the regulon is active in exactly the cells
        of the type; 0 means the two have no overlap. A regulon with no
        activity at all scores 0.
    """
    activity = np.asarray(activity, dtype=float)
    membership = np.asarray(membership, dtype=float)
    if activity.sum() <= 0 or membership.sum() <= 0:
        return 0.0
    return divergence_to_specificity(jensen_shannon_divergence(activity, membership))


# ── Connection specificity index ──────────────────────────────────────────────

def connection_specificity_index(
    corr: np.ndarray,
    offset: float = 0.05,
) -> np.ndarray:
    """Connection Specificity Index (CSI) from a correlation matrix.

    For a pair (A, B) with correlation r, every third regulon C is checked
    against the threshold r - offset. C counts against the pair when either
    corr(A, C) or corr(B, C) reaches the threshold, i.e. when C is as close a
    neighbour to A or B as they are to each other. The CSI is the fraction
    of third regulons that do not count against the pair:

        CSI(A, B) = 1 - #{C : corr(A,C) >= r - offset or corr(B,C) >= r - offset} / (n - 2)

    Args:
        corr: Symmetric (n × n) correlation matrix, n >= 3.
        offset: Tolerance subtracted from the pair's correlation.

    Returns:
        Symmetric (n × n) array in [0, 1] with a diagonal of 1.

    Raises:
        ValueError: If corr is not square or n < 3.
    """
    corr = np.asarray(corr, dtype=float)
    if corr.ndim != 2 or corr.shape[0] != corr.shape[1]:
        raise ValueError(f"Correlation matrix must be square, got shape {corr.shape}")
    n = corr.shape[0]
    if n < 3:
        raise ValueError(f"CSI needs at least 3 regulons, got {n}")

    # Undefined correlations (constant regulons) never reach a threshold.
    corr = np.nan_to_num(corr, nan=-np.inf)
    csi = np.ones((n, n))
    third_party = ~np.eye(n, dtype=bool)
    for a in range(n):
        thresholds = corr[a][:, None] - offset           # row b: r(a, b) - offset
        hits = (corr[a][None, :] >= thresholds) | (corr >= thresholds)
        hits &= third_party                               # drop C == b
        hits[:, a] = False                                # drop C == a
        counts = hits.sum(axis=1)
        csi[a] = 1.0 - counts / (n - 2)
    np.fill_diagonal(csi, 1.0)
    return csi
