"""
Conversion between experiments and AnnData.

AnnData is oriented cells x genes, the transpose of an experiment, so every
assay is transposed on the way in and out. Slots AnnData has no place for
(alternative experiments, row ranges, which assay went to X, whether an axis
had identifiers) are kept under `uns["sc_experiment"]`.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Union

import anndata as ad
import numpy as np
import pandas as pd
import scipy.sparse as sp

from sc_experiment.core.exceptions import DimensionMismatch, DuplicateName, NotFound
from sc_experiment.core.ranges import GenomicRanges
from sc_experiment.core.selectors import has_identifiers
from sc_experiment.core.settings import ExperimentSettings
from sc_experiment.core.single_cell_experiment import Experiment, SingleCellExperiment
from sc_experiment.core.summarized_experiment import SummarizedExperiment

logger = logging.getLogger(__name__)

BOOKKEEPING_KEY = "sc_experiment"


def _transpose(matrix: Any) -> Any:
    if sp.issparse(matrix):
        return sp.csr_matrix(matrix.T)
    return np.asarray(matrix).T.copy()


def _str_index(table: pd.DataFrame) -> pd.DataFrame:
    out = table.copy()
    out.index = out.index.astype(str)
    return out


def _restore_index(table: pd.DataFrame, had_names: bool) -> pd.DataFrame:
    out = table.copy()
    if not had_names:
        out = out.reset_index(drop=True)
    return out


def _as_bool(value: Any, default: bool = True) -> bool:
    if value is None:
        return default
    return bool(value)


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    return [str(v) for v in np.asarray(value, dtype=object).ravel().tolist()]


def _as_matrix(value: Any) -> Any:
    if sp.issparse(value):
        return sp.csr_matrix(value)
    return np.asarray(value)


# -------------------------------------------------------------------------
# Nested experiments (alternative experiments) <-> plain dicts
# -------------------------------------------------------------------------
def _encode_experiment(exp: Experiment) -> Dict[str, Any]:
    se = exp._se if isinstance(exp, SingleCellExperiment) else exp
    entry: Dict[str, Any] = {
        "kind": type(exp).__name__,
        "assays": {name: m.copy() for name, m in se._assays.items()},
        "assay_order": list(se.assay_names),
        "row_data": _str_index(se._row_data),
        "has_row_names": has_identifiers(se._row_data.index),
    }
    col_names = se.col_names
    if col_names is not None:
        entry["col_names"] = np.asarray(col_names.astype(str), dtype=object)
    if se._row_ranges is not None:
        entry["row_ranges"] = se._row_ranges.intervals
    if se._metadata:
        entry["metadata"] = dict(se._metadata)
    if isinstance(exp, SingleCellExperiment):
        entry["reduced_dims"] = {k: v.copy() for k, v in exp._reduced_dims.items()}
        entry["alt_exps"] = {k: _encode_experiment(v) for k, v in exp._alt_exps.items()}
        if exp.main_exp_name is not None:
            entry["main_exp_name"] = exp.main_exp_name
    return entry


def _decode_experiment(entry: Mapping[str, Any], settings: Optional[ExperimentSettings]) -> Experiment:
    order = _as_str_list(entry.get("assay_order")) or list(entry["assays"])
    assays = [(name, _as_matrix(entry["assays"][name])) for name in order]
    n_rows, n_cols = assays[0][1].shape

    row_data = _restore_index(entry["row_data"], _as_bool(entry.get("has_row_names")))
    if "col_names" in entry:
        col_data = pd.DataFrame(index=pd.Index(_as_str_list(entry["col_names"])))
    else:
        col_data = pd.DataFrame(index=pd.RangeIndex(n_cols))

    row_ranges = None
    if "row_ranges" in entry:
        row_ranges = GenomicRanges(entry["row_ranges"], n_rows=n_rows)
    metadata = dict(entry.get("metadata", {}))

    if str(entry.get("kind")) != "SingleCellExperiment":
        return SummarizedExperiment(assays, row_data, col_data, row_ranges, metadata)

    main_exp_name = entry.get("main_exp_name")
    return SingleCellExperiment(
        assays,
        row_data,
        col_data,
        row_ranges,
        metadata,
        reduced_dims={k: np.asarray(v) for k, v in dict(entry.get("reduced_dims", {})).items()},
        alt_exps={
            k: _decode_experiment(v, settings)
            for k, v in dict(entry.get("alt_exps", {})).items()
        },
        main_exp_name=str(main_exp_name) if main_exp_name is not None else None,
        settings=settings,
    )


# -------------------------------------------------------------------------
# Public API
# -------------------------------------------------------------------------
def to_anndata(
    exp: Union[SummarizedExperiment, SingleCellExperiment],
    x_assay: Optional[str] = None,
) -> ad.AnnData:
    """
    Build an AnnData (cells x genes) from an experiment.

    :param x_assay: assay stored as X; defaults to the first assay. Every other
                    assay becomes a layer.
    """
    se = exp._se if isinstance(exp, SingleCellExperiment) else exp
    if not se.assay_names:
        raise NotFound("Cannot convert an experiment without assays to AnnData")
    x_assay = x_assay or se.assay_names[0]
    if x_assay not in se.assay_names:
        raise NotFound(f"Assay '{x_assay}' not found. Available: {se.assay_names}")
    if BOOKKEEPING_KEY in se._metadata:
        raise DuplicateName(f"Metadata key '{BOOKKEEPING_KEY}' is reserved for conversion bookkeeping")

    bookkeeping: Dict[str, Any] = {
        "x_assay": x_assay,
        "has_row_names": has_identifiers(se._row_data.index),
        "has_col_names": has_identifiers(se._col_data.index),
    }
    if se._row_ranges is not None:
        bookkeeping["row_ranges"] = se._row_ranges.intervals

    obsm: Dict[str, np.ndarray] = {}
    if isinstance(exp, SingleCellExperiment):
        obsm = {k: v.copy() for k, v in exp._reduced_dims.items()}
        bookkeeping["alt_exps"] = {k: _encode_experiment(v) for k, v in exp._alt_exps.items()}
        if exp.main_exp_name is not None:
            bookkeeping["main_exp_name"] = exp.main_exp_name

    uns = dict(se._metadata)
    uns[BOOKKEEPING_KEY] = bookkeeping

    adata = ad.AnnData(
        X=_transpose(se._assays[x_assay]),
        obs=_str_index(se._col_data),
        var=_str_index(se._row_data),
        layers={k: _transpose(v) for k, v in se._assays.items() if k != x_assay},
        obsm=obsm,
        uns=uns,
    )
    logger.debug(
        "Converted experiment to AnnData",
        extra={"n_obs": adata.n_obs, "n_vars": adata.n_vars, "x_assay": x_assay},
    )
    return adata


def from_anndata(
    adata: ad.AnnData,
    settings: Optional[ExperimentSettings] = None,
) -> SingleCellExperiment:
    """
    Build a SingleCellExperiment from an AnnData.

    AnnData objects written by `to_anndata` come back with their original
    assay names, identifiers and alternative experiments. For any other
    AnnData, X becomes the assay "X" and every layer an assay of the same name,
    so a layer that is itself called "X" is rejected.
    """
    bookkeeping = dict(adata.uns.get(BOOKKEEPING_KEY, {}))
    x_name = str(bookkeeping.get("x_assay", "X"))

    assays = []
    if adata.X is not None:
        assays.append((x_name, _transpose(adata.X)))
    for name in adata.layers.keys():
        if adata.X is not None and name == x_name:
            raise DuplicateName(
                f"AnnData has both X and a layer named '{x_name}'; rename the layer before converting"
            )
        assays.append((name, _transpose(adata.layers[name])))
    if not assays:
        raise DimensionMismatch("AnnData has neither X nor layers; no assay to build from")

    row_data = _restore_index(adata.var, _as_bool(bookkeeping.get("has_row_names")))
    col_data = _restore_index(adata.obs, _as_bool(bookkeeping.get("has_col_names")))

    row_ranges = None
    if "row_ranges" in bookkeeping:
        row_ranges = GenomicRanges(bookkeeping["row_ranges"], n_rows=adata.n_vars)

    reduced_dims = {
        k: v.to_numpy() if isinstance(v, pd.DataFrame) else np.asarray(v)
        for k, v in adata.obsm.items()
    }
    alt_exps = {
        k: _decode_experiment(v, settings)
        for k, v in dict(bookkeeping.get("alt_exps", {})).items()
    }
    metadata = {k: v for k, v in adata.uns.items() if k != BOOKKEEPING_KEY}
    main_exp_name = bookkeeping.get("main_exp_name")

    exp = SingleCellExperiment(
        assays,
        row_data=row_data,
        col_data=col_data,
        row_ranges=row_ranges,
        metadata=metadata,
        reduced_dims=reduced_dims,
        alt_exps=alt_exps,
        main_exp_name=str(main_exp_name) if main_exp_name is not None else None,
        settings=settings,
    )
    logger.debug(
        "Built experiment from AnnData",
        extra={"shape": exp.shape, "assays": exp.assay_names, "alt_exps": exp.alt_exp_names},
    )
    return exp
