"""
Row / column selector resolution.

A selector is turned into an ordered array of integer positions along one
axis. Accepted forms:

- None: every position, in order
- slice: ordinary Python slicing over the axis
- integer or sequence of integers: positions (negative counts from the end)
- boolean mask (list, ndarray or pandas Series) of exactly the axis length
- identifier or sequence of identifiers: looked up in the axis index

Masks are applied positionally; a boolean Series is not re-aligned on its
index. Selecting the same position twice is rejected.
"""

from __future__ import annotations

from typing import Any

import numpy as np
import pandas as pd

from sc_experiment.core.exceptions import (
    DimensionMismatch,
    DuplicateIdentifier,
    SelectorError,
    UnknownIdentifier,
)


def has_identifiers(index: pd.Index) -> bool:
    """
    True unless `index` is the default RangeIndex(0..n) that pandas assigns
    to a table built without labels.
    """
    if isinstance(index, pd.RangeIndex):
        return not (index.start == 0 and index.step == 1)
    return True


def _is_integer_scalar(value: Any) -> bool:
    return isinstance(value, (int, np.integer)) and not isinstance(value, (bool, np.bool_))


def _as_array(selector: Any) -> np.ndarray:
    if isinstance(selector, (pd.Series, pd.Index)):
        return selector.to_numpy()
    if isinstance(selector, (list, tuple, range, np.ndarray)):
        return np.asarray(selector)
    # Any other iterable (sets are rejected: they have no order)
    if isinstance(selector, (set, frozenset)):
        raise TypeError("Selectors must be ordered; got a set.")
    return np.asarray(list(selector))


def resolve_selector(selector: Any, index: pd.Index, axis: str = "row") -> np.ndarray:
    """
    Resolve `selector` against an axis described by `index`.

    :param selector: see module docstring
    :param index: the axis index (length = axis size)
    :param axis: "row" or "column", used in error messages
    :return: int array of positions, selection order preserved
    :raises DimensionMismatch: boolean mask of the wrong length
    :raises SelectorError: position outside the axis
    :raises UnknownIdentifier: identifier not present on the axis
    :raises DuplicateIdentifier: a position is selected more than once
    """
    n = len(index)

    if selector is None:
        return np.arange(n, dtype=np.intp)

    if isinstance(selector, slice):
        return np.arange(n, dtype=np.intp)[selector]

    if _is_integer_scalar(selector):
        positions = _check_positions(np.asarray([selector], dtype=np.intp), n, axis)
        return positions

    if isinstance(selector, (str, bytes)) or np.isscalar(selector):
        return _lookup_identifiers(np.asarray([selector], dtype=object), index, axis)

    arr = _as_array(selector)

    if arr.ndim != 1:
        raise DimensionMismatch(f"{axis} selector must be one-dimensional, got shape {arr.shape}")

    if arr.dtype == bool:
        if len(arr) != n:
            raise DimensionMismatch(
                f"Boolean {axis} mask has length {len(arr)}, expected {n}"
            )
        return np.flatnonzero(arr).astype(np.intp)

    if arr.size == 0:
        return np.empty(0, dtype=np.intp)

    if np.issubdtype(arr.dtype, np.integer):
        positions = _check_positions(arr.astype(np.intp), n, axis)
    else:
        positions = _lookup_identifiers(arr, index, axis)

    _check_no_duplicates(positions, index, axis)
    return positions


def _check_positions(positions: np.ndarray, n: int, axis: str) -> np.ndarray:
    bad = positions[(positions < -n) | (positions >= n)]
    if len(bad) > 0:
        raise SelectorError(
            f"{axis} positions out of range for axis of length {n}: {bad.tolist()[:5]}"
        )
    return np.where(positions < 0, positions + n, positions).astype(np.intp)


def _lookup_identifiers(labels: np.ndarray, index: pd.Index, axis: str) -> np.ndarray:
    if not has_identifiers(index):
        raise UnknownIdentifier(
            f"Cannot select {axis}s by identifier: this axis has no identifiers"
        )
    positions = index.get_indexer(labels)
    missing = labels[positions < 0]
    if len(missing) > 0:
        raise UnknownIdentifier(
            f"Unknown {axis} identifiers: {missing.tolist()[:5]}"
            + (f" (and {len(missing) - 5} more)" if len(missing) > 5 else "")
        )
    return positions.astype(np.intp)


def _check_no_duplicates(positions: np.ndarray, index: pd.Index, axis: str) -> None:
    uniq, counts = np.unique(positions, return_counts=True)
    if len(uniq) == len(positions):
        return
    repeated = uniq[counts > 1]
    if has_identifiers(index):
        shown = index[repeated].tolist()[:5]
    else:
        shown = repeated.tolist()[:5]
    raise DuplicateIdentifier(
        f"{axis} selector picks the same {axis} more than once: {shown}"
    )
