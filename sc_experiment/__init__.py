"""
Top-level package for sc_experiment.

Synchronized multi-table containers for single-cell data. Most code should
import from the package root or from submodules such as:
    sc_experiment.core
    sc_experiment.persistence
    sc_experiment.config
"""

from .core import (
    ExperimentSettings,
    GenomicRanges,
    SingleCellExperiment,
    SummarizedExperiment,
    combine_columns,
    split_alt_exps,
    swap_alt_exp,
)
from .core.exceptions import (
    ColumnMisalignment,
    CyclicReference,
    DimensionMismatch,
    DuplicateIdentifier,
    DuplicateName,
    NotFound,
    ScExperimentError,
    SelectorError,
    UnknownIdentifier,
)

__all__: list[str] = [
    "ExperimentSettings",
    "GenomicRanges",
    "SingleCellExperiment",
    "SummarizedExperiment",
    "combine_columns",
    "split_alt_exps",
    "swap_alt_exp",
    "ScExperimentError",
    "DimensionMismatch",
    "NotFound",
    "UnknownIdentifier",
    "DuplicateName",
    "DuplicateIdentifier",
    "ColumnMisalignment",
    "CyclicReference",
    "SelectorError",
]
