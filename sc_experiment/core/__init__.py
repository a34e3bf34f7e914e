"""
Core domain layer: the synchronized experiment containers, selectors,
row ranges and the alternative-experiment utilities
"""

from .settings import DEFAULT_SETTINGS, ExperimentSettings
from .ranges import GenomicRanges
from .summarized_experiment import SummarizedExperiment
from .single_cell_experiment import SingleCellExperiment
from .alt_exps import split_alt_exps, swap_alt_exp
from .combine import combine_columns

__all__ = [
    "DEFAULT_SETTINGS",
    "ExperimentSettings",
    "GenomicRanges",
    "SummarizedExperiment",
    "SingleCellExperiment",
    "split_alt_exps",
    "swap_alt_exp",
    "combine_columns",
]
