from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

import anndata as ad

from sc_experiment.core.settings import ExperimentSettings
from sc_experiment.core.single_cell_experiment import SingleCellExperiment
from sc_experiment.core.summarized_experiment import SummarizedExperiment
from sc_experiment.persistence.anndata_convert import from_anndata, to_anndata

logger = logging.getLogger(__name__)


def write_h5ad(
    exp: Union[SummarizedExperiment, SingleCellExperiment],
    path: Union[str, Path],
    x_assay: Optional[str] = None,
) -> Path:
    """Write an experiment to an .h5ad file through AnnData."""
    path = Path(path)
    adata = to_anndata(exp, x_assay=x_assay)
    adata.write_h5ad(path)
    logger.info("Wrote experiment", extra={"path": str(path), "shape": list(exp.shape)})
    return path


def read_h5ad(
    path: Union[str, Path],
    settings: Optional[ExperimentSettings] = None,
) -> SingleCellExperiment:
    """Read an .h5ad file into a SingleCellExperiment."""
    path = Path(path)
    adata = ad.read_h5ad(path)
    logger.info("Read AnnData file", extra={"path": str(path), "n_obs": adata.n_obs, "n_vars": adata.n_vars})
    return from_anndata(adata, settings=settings)
