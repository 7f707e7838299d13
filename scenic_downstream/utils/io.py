"""I/O helpers for loading SCENIC outputs and saving analysis tables."""

import logging
from pathlib import Path
from typing import Optional

import loompy as lp
import pandas as pd
import scanpy as sc
import yaml

log = logging.getLogger(__name__)


def _read_table(path: str | Path, **kwargs) -> pd.DataFrame:
    """Read a CSV or TSV file, picking the separator from the file suffix."""
    path = Path(path)
    sep = "\t" if path.suffix in {".tsv", ".txt"} else ","
    return pd.read_csv(path, sep=sep, **kwargs)


def load_aucell(path: str | Path) -> pd.DataFrame:
    """Load an AUCell output table (cells × regulons).

    Args:
        path: Path to the AUCell .csv/.tsv file produced by pySCENIC.

    Returns:
        DataFrame with cell IDs as the index and regulon names as columns.
    """
    df = _read_table(path, index_col=0)
    df.index = df.index.astype(str)
    return df


def load_aucell_from_loom(path: str | Path) -> pd.DataFrame:
    """Load the regulon AUC matrix stored in a pySCENIC output loom.

    pySCENIC writes AUCell scores as the structured column attribute
    'RegulonsAUC', one field per regulon, alongside 'CellID'.

    Args:
        path: Path to the SCENIC output .loom file.

    Returns:
        DataFrame of shape (n_cells × n_regulons).

    Raises:
        ValueError: If the loom has no 'RegulonsAUC' column attribute.
    """
    with lp.connect(str(path), mode="r", validate=False) as ds:
        if "RegulonsAUC" not in ds.ca.keys():
            raise ValueError(f"Loom file has no 'RegulonsAUC' attribute: {path}")
        auc = pd.DataFrame(ds.ca.RegulonsAUC, index=ds.ca.CellID.astype(str))
    auc.columns = [c.replace("_(", "(") for c in auc.columns]
    return auc


def load_cell_metadata(
    path: str | Path,
    celltype_col: str = "celltype",
    cell_id_col: Optional[str] = None,
) -> pd.Series:
    """Load cell type labels from a metadata table or an h5ad file.

    Args:
        path: A .csv/.tsv metadata table or an .h5ad file (labels read
            from adata.obs).
        celltype_col: Column holding the cell type labels.
        cell_id_col: Column holding cell IDs in a metadata table. Defaults
            to the first column, which is used as the index.

    Returns:
        Categorical Series mapping cell IDs → cell type labels.

    Raises:
        ValueError: If celltype_col (or cell_id_col) is missing.
    """
    path = Path(path)
    if path.suffix == ".h5ad":
        adata = sc.read_h5ad(str(path), backed="r")
        obs = adata.obs.copy()
        adata.file.close()
    elif cell_id_col is None:
        obs = _read_table(path, index_col=0)
    else:
        obs = _read_table(path)
        if cell_id_col not in obs.columns:
            raise ValueError(f"Metadata file missing cell ID column: {cell_id_col}")
        obs = obs.set_index(cell_id_col)

    if celltype_col not in obs.columns:
        raise ValueError(f"Metadata file missing cell type column: {celltype_col}")

    labels = obs[celltype_col].astype("category")
    labels.index = labels.index.astype(str)
    labels.name = celltype_col
    return labels


def align_cells(
    activity: pd.DataFrame,
    cell_labels: pd.Series,
) -> tuple[pd.DataFrame, pd.Series]:
    """Restrict an activity matrix and its cell labels to shared cell IDs.

    Args:
        activity: Matrix of shape (n_cells × n_regulons).
        cell_labels: Series mapping cell IDs → cell type labels.

    Returns:
        Tuple of (activity, cell_labels), both indexed by the shared cells
        in the order of the activity matrix.

    Raises:
        ValueError: If the two inputs share no cell IDs.
    """
    shared_idx = activity.index.intersection(cell_labels.index)
    if len(shared_idx) == 0:
        raise ValueError("No shared cell IDs between activity matrix and cell labels.")
    n_dropped = len(activity.index) - len(shared_idx)
    if n_dropped:
        log.warning("%d cells without a cell type label were dropped", n_dropped)
    labels = cell_labels.loc[shared_idx]
    if isinstance(labels.dtype, pd.CategoricalDtype):
        labels = labels.cat.remove_unused_categories()
    return activity.loc[shared_idx], labels


def save_table(df: pd.DataFrame, path: str | Path, index: bool = True) -> Path:
    """Save a DataFrame to CSV, creating parent directories.

    Args:
        df: Table to save.
        path: Output path for the CSV file.
        index: Whether to write the index column.

    Returns:
        The output path.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=index)
    return path


def load_config(path: str | Path) -> dict:
    """Load a YAML configuration file.

    Args:
        path: Path to a YAML config file.

    Returns:
        Dictionary of configuration parameters (empty for an empty file).

    Raises:
        FileNotFoundError: If the config file does not exist.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with open(path) as f:
        return yaml.safe_load(f) or {}
