import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest


@pytest.fixture
def toy_auc():
    """3 regulons × 6 cells with two clearly separated score groups per regulon."""
    cells = [f"c{i}" for i in range(1, 7)]
    return pd.DataFrame(
        {
            "R1(+)": [0.90, 0.80, 0.85, 0.10, 0.05, 0.12],
            "R2(+)": [0.10, 0.12, 0.08, 0.70, 0.75, 0.80],
            "R3(+)": [0.50, 0.05, 0.52, 0.06, 0.55, 0.04],
        },
        index=cells,
    )


@pytest.fixture
def toy_labels():
    cells = [f"c{i}" for i in range(1, 7)]
    return pd.Series(["A", "A", "A", "B", "B", "B"], index=cells, name="celltype", dtype="category")


@pytest.fixture
def grouped_auc():
    """Three cell types, nine regulons in three co-active groups of three."""
    rng = np.random.default_rng(0)
    celltypes = np.repeat(["Astro", "Micro", "Neuron"], 40)
    cells = [f"cell{i}" for i in range(len(celltypes))]
    data = {}
    for g, ct in enumerate(["Astro", "Micro", "Neuron"]):
        program = (celltypes == ct) * 0.5 + rng.uniform(0, 0.1, len(cells))
        for k in range(3):
            data[f"TF{g}{k}(+)"] = program + rng.uniform(0, 0.01, len(cells))
    auc = pd.DataFrame(data, index=cells)
    labels = pd.Series(celltypes, index=cells, name="celltype", dtype="category")
    return auc, labels
