from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd
import scipy.sparse as sp

from sc_experiment.core.exceptions import CyclicReference, NotFound
from sc_experiment.core.ranges import GenomicRanges
from sc_experiment.core.selectors import has_identifiers, resolve_selector
from sc_experiment.core.settings import DEFAULT_SETTINGS, ExperimentSettings
from sc_experiment.core.summarized_experiment import (
    AssaysInput,
    SummarizedExperiment,
    format_names,
    matrices_equal,
    readonly_view,
)
from sc_experiment.validation import shapes

logger = logging.getLogger(__name__)

Experiment = Union[SummarizedExperiment, "SingleCellExperiment"]


def _contains(tree: Any, target: Any) -> bool:
    """True if `target` is `tree` or sits anywhere in its alternative experiments."""
    if tree is target:
        return True
    if isinstance(tree, SingleCellExperiment):
        return any(_contains(child, target) for child in tree._alt_exps.values())
    return False


def _as_alt_exp(value: Any) -> Any:
    """Bare matrices become a SummarizedExperiment with a single "counts" assay."""
    if sp.issparse(value) or isinstance(value, (np.ndarray, pd.DataFrame)):
        return SummarizedExperiment({"counts": value})
    return value


class SingleCellExperiment:
    """
    Single-cell container: a SummarizedExperiment (features x cells) plus

    - reduced dimensions: per-cell matrices of shape (n_cols, k)
    - alternative experiments: nested experiments sharing the columns but
      with their own rows (spike-ins, antibody tags, ...)
    - size factors and column labels, stored as reserved column-data columns
    - an optional main experiment name

    The general slots are held by a wrapped SummarizedExperiment and exposed
    here under the same names. Subsetting columns subsets every reduced dim
    and every alternative experiment with the same column positions.

    Not safe for concurrent mutation: guard shared instances with a lock or
    work on `copy()`s.
    """

    # -------------------------------------------------------------------------
    # Constructor
    # -------------------------------------------------------------------------
    def __init__(
        self,
        assays: AssaysInput,
        row_data: Optional[pd.DataFrame] = None,
        col_data: Optional[pd.DataFrame] = None,
        row_ranges: Optional[GenomicRanges] = None,
        metadata: Optional[Mapping[str, Any]] = None,
        *,
        reduced_dims: Optional[Mapping[str, Any]] = None,
        alt_exps: Optional[Mapping[str, Experiment]] = None,
        main_exp_name: Optional[str] = None,
        settings: Optional[ExperimentSettings] = None,
    ) -> None:
        se = SummarizedExperiment(
            assays,
            row_data=row_data,
            col_data=col_data,
            row_ranges=row_ranges,
            metadata=metadata,
        )
        reduced = {
            name: shapes.check_reduced_dim(name, value, se.n_cols)
            for name, value in (reduced_dims or {}).items()
        }
        alts: Dict[str, Experiment] = {}
        for name, exp in (alt_exps or {}).items():
            exp = _as_alt_exp(exp)
            shapes.check_alt_exp(name, exp, se.n_cols, se.col_names)
            alts[name] = exp.copy()

        self._se = se
        self._reduced_dims: Dict[str, np.ndarray] = reduced
        self._alt_exps: Dict[str, Experiment] = alts
        self._main_exp_name: Optional[str] = _check_main_exp_name(main_exp_name)
        self._settings: ExperimentSettings = settings or DEFAULT_SETTINGS

    @classmethod
    def _from_parts(
        cls,
        se: SummarizedExperiment,
        reduced_dims: Dict[str, np.ndarray],
        alt_exps: Dict[str, Experiment],
        main_exp_name: Optional[str],
        settings: ExperimentSettings,
    ) -> SingleCellExperiment:
        """Assemble from already-validated parts (bypasses validation)."""
        obj = object.__new__(cls)
        obj._se = se
        obj._reduced_dims = reduced_dims
        obj._alt_exps = alt_exps
        obj._main_exp_name = main_exp_name
        obj._settings = settings
        return obj

    @classmethod
    def from_summarized_experiment(
        cls,
        se: SummarizedExperiment,
        settings: Optional[ExperimentSettings] = None,
    ) -> SingleCellExperiment:
        """Promote a SummarizedExperiment (copied) with empty single-cell slots."""
        return cls._from_parts(se.copy(), {}, {}, None, settings or DEFAULT_SETTINGS)

    def to_summarized_experiment(self) -> SummarizedExperiment:
        """Copy of the general slots only."""
        return self._se.copy()

    @property
    def settings(self) -> ExperimentSettings:
        return self._settings

    # -------------------------------------------------------------------------
    # General slots (forwarded)
    # -------------------------------------------------------------------------
    @property
    def shape(self):
        return self._se.shape

    @property
    def n_rows(self) -> int:
        return self._se.n_rows

    @property
    def n_cols(self) -> int:
        return self._se.n_cols

    @property
    def row_names(self) -> Optional[pd.Index]:
        return self._se.row_names

    @property
    def col_names(self) -> Optional[pd.Index]:
        return self._se.col_names

    def set_row_names(self, names: Optional[Sequence[Any]]) -> None:
        self._se.set_row_names(names)

    def set_col_names(self, names: Optional[Sequence[Any]]) -> None:
        """Rename the columns here and in every alternative experiment."""
        index = shapes.check_identifiers(names, self.n_cols, "column")
        self._commit_col_data(self._se._col_data.set_axis(index, axis=0))

    @property
    def assay_names(self) -> List[str]:
        return self._se.assay_names

    @property
    def assays(self) -> Mapping[str, Any]:
        return self._se.assays

    def assay(self, name: str) -> Any:
        return self._se.assay(name)

    def set_assay(self, name: str, value: Any) -> None:
        self._se.set_assay(name, value)

    def remove_assay(self, name: str) -> None:
        self._se.remove_assay(name)

    @property
    def counts(self) -> Any:
        return self._se.assay("counts")

    @property
    def logcounts(self) -> Any:
        return self._se.assay("logcounts")

    @property
    def row_data(self) -> pd.DataFrame:
        return self._se.row_data

    @property
    def col_data(self) -> pd.DataFrame:
        return self._se.col_data

    def set_row_data(self, table: Optional[pd.DataFrame]) -> None:
        self._se.set_row_data(table)

    def set_col_data(self, table: Optional[pd.DataFrame]) -> None:
        """
        Replace the column data. New column identifiers are pushed down to
        every alternative experiment in the same step.
        """
        self._commit_col_data(shapes.check_table(table, self.n_cols, "column"))

    def set_row_data_column(self, name: str, values: Any) -> None:
        self._se.set_row_data_column(name, values)

    def set_col_data_column(self, name: str, values: Any) -> None:
        self._se.set_col_data_column(name, values)

    def remove_row_data_column(self, name: str) -> None:
        self._se.remove_row_data_column(name)

    def remove_col_data_column(self, name: str) -> None:
        self._se.remove_col_data_column(name)

    @property
    def row_ranges(self) -> Optional[GenomicRanges]:
        return self._se.row_ranges

    def set_row_ranges(self, ranges: Optional[GenomicRanges]) -> None:
        self._se.set_row_ranges(ranges)

    @property
    def metadata(self) -> Mapping[str, Any]:
        return self._se.metadata

    def get_metadata(self, key: str) -> Any:
        return self._se.get_metadata(key)

    def set_metadata(self, key: str, value: Any) -> None:
        self._se.set_metadata(key, value)

    def remove_metadata(self, key: str) -> None:
        self._se.remove_metadata(key)

    def _commit_col_data(self, table: pd.DataFrame) -> None:
        # Rename alt exp columns first; nothing is committed if any rename fails
        new_names = table.index
        renamed: Dict[str, Experiment] = {}
        if has_identifiers(new_names):
            for name, child in self._alt_exps.items():
                child_copy = child.copy()
                child_copy.set_col_names(new_names)
                renamed[name] = child_copy
        self._se._col_data = table
        if renamed:
            self._alt_exps = renamed

    # -------------------------------------------------------------------------
    # Reduced dimensions
    # -------------------------------------------------------------------------
    @property
    def reduced_dim_names(self) -> List[str]:
        return list(self._reduced_dims)

    @property
    def reduced_dims(self) -> Mapping[str, np.ndarray]:
        return MappingProxyType({k: readonly_view(v) for k, v in self._reduced_dims.items()})

    def reduced_dim(self, name: str) -> np.ndarray:
        if name not in self._reduced_dims:
            raise NotFound(
                f"Reduced dim '{name}' not found. Available: {self.reduced_dim_names}"
            )
        return readonly_view(self._reduced_dims[name])

    def set_reduced_dim(self, name: str, value: Any) -> None:
        """Add or replace a reduced dim; it must have exactly n_cols rows."""
        self._reduced_dims[name] = shapes.check_reduced_dim(name, value, self.n_cols)

    def remove_reduced_dim(self, name: str) -> None:
        if name not in self._reduced_dims:
            raise NotFound(
                f"Reduced dim '{name}' not found. Available: {self.reduced_dim_names}"
            )
        del self._reduced_dims[name]

    # -------------------------------------------------------------------------
    # Alternative experiments
    # -------------------------------------------------------------------------
    @property
    def alt_exp_names(self) -> List[str]:
        return list(self._alt_exps)

    @property
    def alt_exps(self) -> Mapping[str, Experiment]:
        return MappingProxyType({k: v.copy() for k, v in self._alt_exps.items()})

    def alt_exp(self, name: str) -> Experiment:
        if name not in self._alt_exps:
            raise NotFound(
                f"Alternative experiment '{name}' not found. Available: {self.alt_exp_names}"
            )
        return self._alt_exps[name].copy()

    def set_alt_exp(self, name: str, exp: Experiment) -> None:
        """
        Attach an experiment sharing this experiment's columns. Column count
        and identifiers are checked now; a copy is stored. A bare matrix
        (ndarray, sparse matrix or DataFrame) is wrapped as a one-assay
        SummarizedExperiment.
        """
        exp = _as_alt_exp(exp)
        if _contains(exp, self):
            raise CyclicReference(
                f"Alternative experiment '{name}' would contain its own parent"
            )
        shapes.check_alt_exp(name, exp, self.n_cols, self.col_names)
        self._alt_exps[name] = exp.copy()
        logger.debug(
            "Attached alternative experiment",
            extra={"alt_exp": name, "n_rows": exp.n_rows, "n_cols": exp.n_cols},
        )

    def remove_alt_exp(self, name: str) -> None:
        if name not in self._alt_exps:
            raise NotFound(
                f"Alternative experiment '{name}' not found. Available: {self.alt_exp_names}"
            )
        del self._alt_exps[name]

    # -------------------------------------------------------------------------
    # Main experiment name
    # -------------------------------------------------------------------------
    @property
    def main_exp_name(self) -> Optional[str]:
        return self._main_exp_name

    @main_exp_name.setter
    def main_exp_name(self, value: Optional[str]) -> None:
        self._main_exp_name = _check_main_exp_name(value)

    # -------------------------------------------------------------------------
    # Size factors & column labels
    # -------------------------------------------------------------------------
    @property
    def size_factors(self) -> Optional[np.ndarray]:
        """Per-column size factors, or None when unset."""
        return self._reserved_column(self._settings.size_factor_column)

    def set_size_factors(self, values: Optional[Any]) -> None:
        """Set (or clear with None) the size factors; n_cols numeric values."""
        column = self._settings.size_factor_column
        if values is None:
            self._drop_reserved_column(column)
            return
        checked = shapes.check_vector(values, self.n_cols, "size factors")
        self._se.set_col_data_column(column, np.asarray(checked, dtype=np.float64))

    @property
    def col_labels(self) -> Optional[np.ndarray]:
        """Per-column labels (e.g. cluster identities), or None when unset."""
        return self._reserved_column(self._settings.label_column)

    def set_col_labels(self, values: Optional[Any]) -> None:
        column = self._settings.label_column
        if values is None:
            self._drop_reserved_column(column)
            return
        self._se.set_col_data_column(column, values)

    def _reserved_column(self, column: str) -> Optional[np.ndarray]:
        col_data = self._se._col_data
        if column not in col_data.columns:
            return None
        return col_data[column].to_numpy()

    def _drop_reserved_column(self, column: str) -> None:
        if column in self._se._col_data.columns:
            self._se.remove_col_data_column(column)

    # -------------------------------------------------------------------------
    # Subsetting
    # -------------------------------------------------------------------------
    def subset(self, rows: Any = None, cols: Any = None) -> SingleCellExperiment:
        """
        Return a new experiment restricted to the selected rows and columns.

        Reduced dims are cut by the column selection only. Alternative
        experiments keep all of their own rows and are cut by the same
        column positions, recursively.
        """
        row_pos = resolve_selector(rows, self._se._row_data.index, "row")
        col_pos = resolve_selector(cols, self._se._col_data.index, "column")
        return self._take(row_pos, col_pos)

    def __getitem__(self, key: Any) -> SingleCellExperiment:
        if isinstance(key, tuple) and len(key) == 2:
            return self.subset(key[0], key[1])
        return self.subset(key)

    def _take(self, row_pos: np.ndarray, col_pos: np.ndarray) -> SingleCellExperiment:
        se = self._se._take(row_pos, col_pos)
        reduced = {k: v[col_pos] for k, v in self._reduced_dims.items()}
        alts = {
            name: child._take(np.arange(child.n_rows, dtype=np.intp), col_pos)
            for name, child in self._alt_exps.items()
        }
        return SingleCellExperiment._from_parts(
            se, reduced, alts, self._main_exp_name, self._settings
        )

    # -------------------------------------------------------------------------
    # Copy / comparison / display
    # -------------------------------------------------------------------------
    def copy(self) -> SingleCellExperiment:
        return SingleCellExperiment._from_parts(
            self._se.copy(),
            {k: v.copy() for k, v in self._reduced_dims.items()},
            {k: v.copy() for k, v in self._alt_exps.items()},
            self._main_exp_name,
            self._settings,
        )

    def equals(self, other: object) -> bool:
        """True if every slot, nested alternative experiments included, is equal."""
        if not isinstance(other, SingleCellExperiment):
            return False
        if not self._se.equals(other._se):
            return False
        if self._main_exp_name != other._main_exp_name or self._settings != other._settings:
            return False
        if set(self._reduced_dims) != set(other._reduced_dims):
            return False
        for name, value in self._reduced_dims.items():
            if not matrices_equal(value, other._reduced_dims[name]):
                return False
        if set(self._alt_exps) != set(other._alt_exps):
            return False
        return all(child.equals(other._alt_exps[name]) for name, child in self._alt_exps.items())

    def __repr__(self) -> str:
        lines = self._se._summary_lines()
        lines[0] = f"class: {type(self).__name__}"
        lines.append(format_names("reducedDimNames", self.reduced_dim_names))
        lines.append(f"mainExpName: {self._main_exp_name if self._main_exp_name is not None else 'NULL'}")
        lines.append(format_names("altExpNames", self.alt_exp_names))
        return "\n".join(lines)


def _check_main_exp_name(value: Optional[str]) -> Optional[str]:
    if value is not None and not isinstance(value, str):
        raise TypeError(f"main_exp_name must be a string or None, got {type(value).__name__}.")
    return value
