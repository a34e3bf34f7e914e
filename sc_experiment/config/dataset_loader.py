from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import anndata as ad

from sc_experiment.config.model import DatasetConfig
from sc_experiment.core.alt_exps import split_alt_exps
from sc_experiment.core.settings import ExperimentSettings
from sc_experiment.core.single_cell_experiment import SingleCellExperiment
from sc_experiment.persistence.anndata_convert import from_anndata

logger = logging.getLogger(__name__)

DATA_ROOT_ENV = "SC_EXPERIMENT_DATA_ROOT"


class DatasetConfigError(ValueError):
    """
    Raised when a dataset config is structurally invalid for loading.
    """
    pass


def _ensure_unique_names(adata: ad.AnnData, cfg: DatasetConfig, path: Path) -> ad.AnnData:
    """
    Ensure obs_names and var_names are unique, logging what we do.
    """
    if not adata.obs_names.is_unique:
        logger.warning(
            "Observation names are not unique for dataset '%s' (%s); "
            "calling .obs_names_make_unique() (in-memory fix)",
            cfg.name,
            path,
        )
        adata.obs_names_make_unique()

    if not adata.var_names.is_unique:
        logger.warning(
            "Variable names are not unique for dataset '%s' (%s); "
            "calling .var_names_make_unique() (in-memory fix)",
            cfg.name,
            path,
        )
        adata.var_names_make_unique()

    return adata


def resolve_dataset_path(cfg: DatasetConfig, data_root: Optional[Path] = None) -> Path:
    """
    Resolve a relative dataset path against SC_EXPERIMENT_DATA_ROOT, falling
    back to the configured data_root.
    """
    path: Path = cfg.path
    if path.is_absolute():
        return path

    root = os.environ.get(DATA_ROOT_ENV) or data_root
    if not root:
        return path

    root_path = Path(root)
    resolved_path = root_path / path

    # Fallback for redundant 'data/' prefix
    if not resolved_path.is_file() and path.parts and path.parts[0] == "data":
        alt_path = root_path / Path(*path.parts[1:])
        if alt_path.is_file():
            resolved_path = alt_path
    return resolved_path


def from_config(
    cfg: DatasetConfig,
    settings: Optional[ExperimentSettings] = None,
    data_root: Optional[Path] = None,
) -> SingleCellExperiment:
    """
    Materialise a SingleCellExperiment from a DatasetConfig.
    """
    path = resolve_dataset_path(cfg, data_root)

    if not path.is_file():
        raise DatasetConfigError(f"AnnData file not found at {path}.")

    adata = ad.read_h5ad(path)
    adata = _ensure_unique_names(adata, cfg, path)

    exp = from_anndata(adata, settings=settings)

    if cfg.alt_exp_key is not None:
        row_data = exp.row_data
        if cfg.alt_exp_key not in row_data.columns:
            msg = (
                f"Dataset '{cfg.name}': alt_exp_key='{cfg.alt_exp_key}' "
                f"not found in row data"
            )
            logger.error(msg, extra={"dataset": cfg.name, "path": str(path), "alt_exp_key": cfg.alt_exp_key})
            raise DatasetConfigError(msg)
        exp = split_alt_exps(exp, row_data[cfg.alt_exp_key], ref=cfg.alt_exp_ref)

    if cfg.main_exp_name is not None:
        exp.main_exp_name = cfg.main_exp_name

    logger.info(
        "Loaded dataset",
        extra={"dataset": cfg.name, "path": str(path), "shape": list(exp.shape), "alt_exps": exp.alt_exp_names},
    )
    return exp
