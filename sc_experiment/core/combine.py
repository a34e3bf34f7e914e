"""Column-wise combination of experiments (cbind)."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence

import numpy as np
import pandas as pd
import scipy.sparse as sp

from sc_experiment.core.exceptions import ColumnMisalignment, DimensionMismatch, NotFound
from sc_experiment.core.selectors import has_identifiers
from sc_experiment.core.single_cell_experiment import Experiment, SingleCellExperiment
from sc_experiment.core.summarized_experiment import SummarizedExperiment
from sc_experiment.validation import shapes

logger = logging.getLogger(__name__)


def _hstack(matrices: Sequence[Any]) -> Any:
    if any(sp.issparse(m) for m in matrices):
        return sp.hstack([sp.csr_matrix(m) for m in matrices], format="csr")
    return np.hstack(matrices)


def _check_rows(experiments: Sequence[Experiment]) -> None:
    first = experiments[0]
    for i, exp in enumerate(experiments[1:], start=1):
        if exp.n_rows != first.n_rows:
            raise DimensionMismatch(
                f"Experiment {i} has {exp.n_rows} rows, expected {first.n_rows}"
            )
        a, b = first.row_names, exp.row_names
        if (a is None) != (b is None) or (a is not None and not a.equals(b)):
            raise DimensionMismatch(f"Experiment {i} row identifiers differ from experiment 0")


def _check_same_names(kind: str, name_lists: List[List[str]]) -> None:
    expected = set(name_lists[0])
    for i, names in enumerate(name_lists[1:], start=1):
        if set(names) != expected:
            missing = sorted(expected.symmetric_difference(names))
            raise NotFound(f"{kind} names differ in experiment {i}: {missing[:5]}")


def _combine_col_data(tables: List[pd.DataFrame]) -> pd.DataFrame:
    named = [has_identifiers(t.index) for t in tables]
    if all(named):
        combined = pd.concat(tables, axis=0)
        shapes.check_unique_identifiers(combined.index, "column")
        return combined
    if any(named):
        raise ColumnMisalignment(
            "Cannot combine experiments where only some have column identifiers"
        )
    return pd.concat(tables, axis=0, ignore_index=True)


def _combine_summarized(parts: List[SummarizedExperiment]) -> SummarizedExperiment:
    _check_rows(parts)
    _check_same_names("Assay", [p.assay_names for p in parts])
    first = parts[0]

    metadata: Dict[str, Any] = {}
    for part in parts:
        metadata.update(part._metadata)

    return SummarizedExperiment._from_parts(
        assays={
            name: _hstack([p._assays[name] for p in parts]) for name in first.assay_names
        },
        row_data=first._row_data.copy(),
        col_data=_combine_col_data([p._col_data for p in parts]),
        row_ranges=first.row_ranges,
        metadata=metadata,
    )


def combine_columns(*experiments: Experiment) -> Experiment:
    """
    Concatenate experiments column-wise.

    All inputs must be of the same kind and share assay names and row
    identifiers. For SingleCellExperiments, reduced dims (same names, same
    widths) are stacked and alternative experiments are combined
    recursively. Row data, row ranges, main experiment name and settings come
    from the first experiment; metadata is merged with later keys winning.
    """
    if not experiments:
        raise ValueError("combine_columns() needs at least one experiment")
    if len({type(e) for e in experiments}) != 1:
        raise TypeError("Cannot combine SummarizedExperiment with SingleCellExperiment")

    first = experiments[0]
    if isinstance(first, SummarizedExperiment):
        return _combine_summarized(list(experiments))

    sces: List[SingleCellExperiment] = list(experiments)
    se = _combine_summarized([e._se for e in sces])

    _check_same_names("Reduced dim", [e.reduced_dim_names for e in sces])
    reduced: Dict[str, np.ndarray] = {}
    for name in first.reduced_dim_names:
        blocks = [e._reduced_dims[name] for e in sces]
        widths = {b.shape[1] for b in blocks}
        if len(widths) != 1:
            raise DimensionMismatch(f"Reduced dim '{name}' has differing widths: {sorted(widths)}")
        reduced[name] = np.vstack(blocks)

    _check_same_names("Alternative experiment", [e.alt_exp_names for e in sces])
    alts: Dict[str, Experiment] = {
        name: combine_columns(*[e._alt_exps[name] for e in sces])
        for name in first.alt_exp_names
    }

    logger.debug(
        "Combined experiments column-wise",
        extra={"n_experiments": len(sces), "n_cols": se.n_cols},
    )
    return SingleCellExperiment._from_parts(
        se, reduced, alts, first.main_exp_name, first.settings
    )
