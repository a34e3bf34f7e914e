"""
Bridge to AnnData-based analysis routines (scanpy and friends).

Routines are black boxes: the experiment is converted to AnnData, the
routine runs on it, and whatever it added (obsm, obs/var columns, layers,
uns keys) is copied onto a new experiment that the caller rebinds.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

import anndata as ad
import numpy as np

from sc_experiment.core.single_cell_experiment import SingleCellExperiment
from sc_experiment.persistence.anndata_convert import BOOKKEEPING_KEY, to_anndata

logger = logging.getLogger(__name__)

Routine = Callable[..., Optional[ad.AnnData]]


def apply_anndata_routine(
    exp: SingleCellExperiment,
    routine: Routine,
    *,
    assay: Optional[str] = None,
    **kwargs: Any,
) -> SingleCellExperiment:
    """
    Run `routine(adata, **kwargs)` on an AnnData view of `exp`.

    :param assay: assay handed to the routine as X (default: first assay)
    :return: a copy of `exp` with the routine's additions attached;
             `exp` itself is left untouched
    """
    adata = to_anndata(exp, x_assay=assay)
    before_obsm = set(adata.obsm.keys())
    before_obs = set(adata.obs.columns)
    before_var = set(adata.var.columns)
    before_layers = set(adata.layers.keys())
    before_uns = set(adata.uns.keys())

    returned = routine(adata, **kwargs)
    result = returned if isinstance(returned, ad.AnnData) else adata

    if result.n_obs != exp.n_cols or result.n_vars != exp.n_rows:
        raise ValueError(
            f"Routine changed the data shape to {result.n_vars} x {result.n_obs}; "
            "subsetting routines cannot be bridged"
        )

    out = exp.copy()
    for key in result.obsm.keys():
        if key not in before_obsm:
            value = result.obsm[key]
            out.set_reduced_dim(key, value.to_numpy() if hasattr(value, "to_numpy") else np.asarray(value))
    for column in result.obs.columns:
        if column not in before_obs:
            out.set_col_data_column(column, result.obs[column])
    for column in result.var.columns:
        if column not in before_var:
            out.set_row_data_column(column, result.var[column])
    for key in result.layers.keys():
        if key not in before_layers:
            layer = result.layers[key]
            out.set_assay(key, layer.T)
    for key in result.uns.keys():
        if key not in before_uns and key != BOOKKEEPING_KEY:
            out.set_metadata(key, result.uns[key])

    logger.debug(
        "Applied AnnData routine",
        extra={
            "routine": getattr(routine, "__name__", repr(routine)),
            "reduced_dims": out.reduced_dim_names,
        },
    )
    return out


def run_pca(
    exp: SingleCellExperiment,
    *,
    assay: str = "logcounts",
    n_comps: int = 50,
    name: str = "PCA",
) -> SingleCellExperiment:
    """
    PCA via scanpy.pp.pca, stored as reduced dim `name`.

    Requires the optional `analysis` extra (scanpy).
    """
    import scanpy as sc

    n_comps = min(n_comps, exp.n_rows - 1, exp.n_cols - 1)
    out = apply_anndata_routine(exp, sc.pp.pca, assay=assay, n_comps=n_comps)
    out.set_reduced_dim(name, out.reduced_dim("X_pca"))
    out.remove_reduced_dim("X_pca")
    return out
