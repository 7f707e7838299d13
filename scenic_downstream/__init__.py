"""
scenic_downstream: analysis and visualization helpers for the output of a
SCENIC regulatory network inference run.

Analyses:
    1. binarization        — k-means thresholds and binary regulon activity
    2. regulon_specificity — RSS (Jensen-Shannon) per regulon × cell type
    3. regulon_modules     — CSI, regulon modules, module activity per cell type
    4. pipeline            — all three stages for one dataset
"""

__version__ = "0.1.0"
