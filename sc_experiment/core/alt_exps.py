"""Utilities that move rows between the main and alternative experiments."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from sc_experiment.core.exceptions import DuplicateName, NotFound
from sc_experiment.core.single_cell_experiment import Experiment, SingleCellExperiment
from sc_experiment.core.summarized_experiment import SummarizedExperiment
from sc_experiment.validation import shapes

logger = logging.getLogger(__name__)


def _names_only_col_data(col_data: pd.DataFrame) -> pd.DataFrame:
    return pd.DataFrame(index=col_data.index.copy())


def _rows_as_experiment(se: SummarizedExperiment, row_pos: np.ndarray) -> SummarizedExperiment:
    """Rows of `se` as a standalone experiment without column data or metadata."""
    part = se._take(row_pos, np.arange(se.n_cols, dtype=np.intp))
    return SummarizedExperiment._from_parts(
        assays=part._assays,
        row_data=part._row_data,
        col_data=_names_only_col_data(part._col_data),
        row_ranges=part._row_ranges,
        metadata={},
    )


def _default_reference(labels: List[str]) -> str:
    counts: Dict[str, int] = {}
    for label in labels:
        counts[label] = counts.get(label, 0) + 1
    # max() keeps the first label seen on ties
    return max(counts, key=lambda k: counts[k])


def split_alt_exps(
    exp: SingleCellExperiment,
    feature_types: Any,
    ref: Optional[str] = None,
) -> SingleCellExperiment:
    """
    Split rows into alternative experiments by feature type.

    :param exp: experiment to split (left untouched)
    :param feature_types: one label per row (e.g. "Gene Expression", "ERCC")
    :param ref: label that stays in the main experiment; defaults to the most
                frequent label
    :return: new experiment holding the `ref` rows, with one alternative
             experiment per other label (assays, row data and row ranges of
             those rows; column identifiers only)
    :raises NotFound: `ref` is not one of the labels
    :raises DuplicateName: a label clashes with an existing alternative experiment
    """
    values = shapes.check_vector(feature_types, exp.n_rows, "feature types")
    labels = [str(v) for v in values]
    if ref is None:
        ref = _default_reference(labels)
    elif ref not in labels:
        raise NotFound(f"Reference feature type '{ref}' does not occur in the labels")

    label_arr = np.asarray(labels, dtype=object)
    others = [label for label in pd.unique(label_arr) if label != ref]
    for label in others:
        if label in exp.alt_exp_names:
            raise DuplicateName(f"Alternative experiment '{label}' already exists")

    main = exp._take(
        np.flatnonzero(label_arr == ref).astype(np.intp),
        np.arange(exp.n_cols, dtype=np.intp),
    )
    for label in others:
        row_pos = np.flatnonzero(label_arr == label).astype(np.intp)
        main._alt_exps[label] = _rows_as_experiment(exp._se, row_pos)

    logger.debug(
        "Split alternative experiments",
        extra={"ref": ref, "alt_exps": others, "n_rows_main": main.n_rows},
    )
    return main


def swap_alt_exp(
    exp: SingleCellExperiment,
    name: str,
    saved: Optional[str] = None,
) -> SingleCellExperiment:
    """
    Promote alternative experiment `name` to the main experiment.

    The old main experiment (assays, row data, row ranges) is kept as an
    alternative experiment called `saved`, defaulting to the old
    `main_exp_name` or "main". Column data, reduced dims, metadata and
    settings stay with the new main experiment.
    """
    if name not in exp.alt_exp_names:
        raise NotFound(
            f"Alternative experiment '{name}' not found. Available: {exp.alt_exp_names}"
        )
    saved_name = saved or exp.main_exp_name or "main"
    if saved_name != name and saved_name in exp.alt_exp_names:
        raise DuplicateName(f"Alternative experiment '{saved_name}' already exists")

    promoted = exp._alt_exps[name]
    base = promoted._se if isinstance(promoted, SingleCellExperiment) else promoted
    base = base.copy()

    new_se = SummarizedExperiment._from_parts(
        assays=base._assays,
        row_data=base._row_data,
        col_data=exp._se._col_data.copy(),
        row_ranges=base._row_ranges,
        metadata=dict(exp._se._metadata),
    )

    alts: Dict[str, Experiment] = {
        k: v.copy() for k, v in exp._alt_exps.items() if k != name
    }
    alts[saved_name] = _rows_as_experiment(exp._se, np.arange(exp.n_rows, dtype=np.intp))

    return SingleCellExperiment._from_parts(
        new_se,
        {k: v.copy() for k, v in exp._reduced_dims.items()},
        alts,
        name,
        exp.settings,
    )
