"""
Shape checks shared by every mutator.

Each function validates one kind of value against the container's current
dimensions and returns the normalised value to store. Nothing here touches
container state, so a failing check leaves the caller's experiment as it
was.
"""

from __future__ import annotations

from typing import Any, Optional, Tuple

import numpy as np
import pandas as pd
import scipy.sparse as sp

from sc_experiment.core.exceptions import (
    ColumnMisalignment,
    DimensionMismatch,
    DuplicateIdentifier,
)
from sc_experiment.core.ranges import GenomicRanges


def coerce_matrix(value: Any, what: str) -> Any:
    """
    Normalise an assay value: sparse -> CSR, DataFrame -> ndarray,
    anything else -> ndarray. Must be 2-D.

    The result never shares memory with `value`, so later writes to the
    caller's array cannot reach the stored assay.
    """
    if sp.issparse(value):
        return sp.csr_matrix(value, copy=True)
    if isinstance(value, pd.DataFrame):
        arr = value.to_numpy(copy=True)
    else:
        arr = np.array(value)
    if arr.ndim != 2:
        raise DimensionMismatch(f"{what} must be 2-D, got {arr.ndim} dimension(s)")
    return arr


def check_assay(name: str, value: Any, shape: Tuple[int, int]) -> Any:
    """Invariant: every assay has shape (n_rows, n_cols)."""
    matrix = coerce_matrix(value, f"Assay '{name}'")
    if tuple(matrix.shape) != tuple(shape):
        raise DimensionMismatch(
            f"Assay '{name}' has shape {tuple(matrix.shape)}, expected {tuple(shape)}"
        )
    return matrix


def check_table(table: Optional[pd.DataFrame], n: int, axis: str) -> pd.DataFrame:
    """
    Invariant: row data has n_rows records, column data has n_cols records,
    and identifiers (the index) are unique.

    None yields an empty table with the default index. The returned table is
    a copy, so later edits to the caller's DataFrame do not leak in.
    """
    if table is None:
        return pd.DataFrame(index=pd.RangeIndex(n))
    if not isinstance(table, pd.DataFrame):
        raise TypeError(
            f"{axis} data must be a pandas DataFrame, got {type(table).__name__}."
        )
    if len(table) != n:
        raise DimensionMismatch(
            f"{axis} data has {len(table)} records, expected {n}"
        )
    check_unique_identifiers(table.index, axis)
    return table.copy()


def check_unique_identifiers(index: pd.Index, axis: str) -> None:
    if index.has_duplicates:
        dupes = index[index.duplicated()].unique().tolist()
        raise DuplicateIdentifier(
            f"{axis} identifiers must be unique. Found duplicates: {dupes[:5]}"
            + (f" (and {len(dupes) - 5} more)" if len(dupes) > 5 else "")
        )


def check_identifiers(names: Any, n: int, axis: str) -> pd.Index:
    """Validate a replacement set of identifiers for one axis."""
    if names is None:
        return pd.RangeIndex(n)
    index = pd.Index(names)
    if len(index) != n:
        raise DimensionMismatch(f"Got {len(index)} {axis} identifiers, expected {n}")
    check_unique_identifiers(index, axis)
    return index


def check_vector(values: Any, n: int, what: str) -> Any:
    """
    Per-column (or per-row) vector of exactly n entries. pandas Series keep
    their dtype but lose their index (values are positional).
    """
    if isinstance(values, pd.Series):
        arr = values.array
    else:
        arr = np.asarray(values)
        if arr.ndim != 1:
            raise DimensionMismatch(f"{what} must be 1-D, got shape {arr.shape}")
    if len(arr) != n:
        raise DimensionMismatch(f"{what} has {len(arr)} entries, expected {n}")
    return arr


def check_reduced_dim(name: str, value: Any, n_cols: int) -> np.ndarray:
    """Invariant: every reduced dim has exactly n_cols rows. Stores a copy."""
    arr = value.to_numpy(copy=True) if isinstance(value, pd.DataFrame) else np.array(value)
    if arr.ndim != 2:
        raise DimensionMismatch(
            f"Reduced dim '{name}' must be 2-D, got {arr.ndim} dimension(s)"
        )
    if arr.shape[0] != n_cols:
        raise DimensionMismatch(
            f"Reduced dim '{name}' has {arr.shape[0]} rows, expected {n_cols} (one per column)"
        )
    return arr


def check_row_ranges(ranges: Optional[GenomicRanges], n_rows: int) -> Optional[GenomicRanges]:
    if ranges is None:
        return None
    if not isinstance(ranges, GenomicRanges):
        raise TypeError(
            f"row ranges must be GenomicRanges, got {type(ranges).__name__}."
        )
    if len(ranges) != n_rows:
        raise DimensionMismatch(
            f"row ranges describe {len(ranges)} rows, expected {n_rows}"
        )
    return ranges.copy()


def check_alt_exp(name: str, exp: Any, n_cols: int, col_names: Optional[pd.Index]) -> None:
    """
    Invariant: an alternative experiment has the parent's column count and,
    when both carry identifiers, the same identifiers in the same order.
    """
    if not hasattr(exp, "n_cols") or not hasattr(exp, "col_names"):
        raise TypeError(
            f"Alternative experiment '{name}' must be an experiment, got {type(exp).__name__}."
        )
    if exp.n_cols != n_cols:
        raise DimensionMismatch(
            f"Alternative experiment '{name}' has {exp.n_cols} columns, expected {n_cols}"
        )
    child_names = exp.col_names
    if col_names is not None and child_names is not None:
        if not child_names.equals(col_names):
            raise ColumnMisalignment(
                f"Alternative experiment '{name}' column identifiers do not match the parent's"
            )
