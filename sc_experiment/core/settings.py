from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ExperimentSettings:
    """
    Names of the reserved column-data columns behind the size factor and
    column label projections of a SingleCellExperiment.
    """

    size_factor_column: str = "sizeFactor"
    label_column: str = "label"


DEFAULT_SETTINGS = ExperimentSettings()
