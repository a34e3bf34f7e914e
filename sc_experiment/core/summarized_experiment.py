from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
import scipy.sparse as sp

from sc_experiment.core.exceptions import DuplicateName, DimensionMismatch, NotFound
from sc_experiment.core.ranges import GenomicRanges
from sc_experiment.core.selectors import has_identifiers, resolve_selector
from sc_experiment.validation import shapes

logger = logging.getLogger(__name__)

AssaysInput = Union[Mapping[str, Any], Sequence[Tuple[str, Any]]]


# -------------------------------------------------------------------------
# Matrix helpers shared with SingleCellExperiment
# -------------------------------------------------------------------------
def readonly_view(matrix: Any) -> Any:
    """
    Hand out stored matrices without letting callers write into them:
    ndarrays as read-only views, sparse matrices as copies.
    """
    if sp.issparse(matrix):
        return matrix.copy()
    view = matrix.view()
    view.flags.writeable = False
    return view


def take_matrix(matrix: Any, row_pos: np.ndarray, col_pos: np.ndarray) -> Any:
    """Index both axes of an assay. Always returns new storage."""
    if sp.issparse(matrix):
        return sp.csr_matrix(matrix[row_pos, :][:, col_pos])
    return matrix[np.ix_(row_pos, col_pos)]


def take_table(table: pd.DataFrame, positions: np.ndarray) -> pd.DataFrame:
    """Select records by position; tables without identifiers get a fresh default index."""
    out = table.iloc[positions].copy()
    if not has_identifiers(table.index):
        out = out.reset_index(drop=True)
    return out


def copy_matrix(matrix: Any) -> Any:
    return matrix.copy()


def matrices_equal(a: Any, b: Any) -> bool:
    if a.shape != b.shape:
        return False
    if sp.issparse(a) or sp.issparse(b):
        a_dense = a.toarray() if sp.issparse(a) else np.asarray(a)
        b_dense = b.toarray() if sp.issparse(b) else np.asarray(b)
        return matrices_equal(a_dense, b_dense)
    floating = np.issubdtype(a.dtype, np.floating) and np.issubdtype(b.dtype, np.floating)
    return bool(np.array_equal(a, b, equal_nan=floating))


def values_equal(a: Any, b: Any) -> bool:
    """Structural equality for metadata values (dicts, arrays, frames, scalars)."""
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        if set(a) != set(b):
            return False
        return all(values_equal(a[k], b[k]) for k in a)
    if isinstance(a, (pd.DataFrame, pd.Series)) or isinstance(b, (pd.DataFrame, pd.Series)):
        return type(a) is type(b) and a.equals(b)
    if isinstance(a, np.ndarray) or isinstance(b, np.ndarray) or sp.issparse(a) or sp.issparse(b):
        try:
            a_arr = a if sp.issparse(a) else np.asarray(a)
            b_arr = b if sp.issparse(b) else np.asarray(b)
            return matrices_equal(a_arr, b_arr) if a_arr.ndim == b_arr.ndim else False
        except (TypeError, ValueError):
            return False
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b))
    return bool(a == b)


def format_names(label: str, names: Sequence[Any]) -> str:
    """One summary line: `label(n): a b ... y z`, long lists shortened to 2+2."""
    names = [str(n) for n in names]
    if len(names) > 4:
        shown = names[:2] + ["..."] + names[-2:]
    else:
        shown = names
    return f"{label}({len(names)}): {' '.join(shown)}".rstrip()


def _assay_pairs(assays: AssaysInput) -> List[Tuple[str, Any]]:
    if isinstance(assays, Mapping):
        pairs = list(assays.items())
    else:
        pairs = [tuple(item) for item in assays]
    seen: set[str] = set()
    for name, _ in pairs:
        if not isinstance(name, str):
            raise TypeError(f"Assay names must be strings, got {type(name).__name__}.")
        if name in seen:
            raise DuplicateName(f"Assay name '{name}' given more than once")
        seen.add(name)
    return pairs


class SummarizedExperiment:
    """
    Synchronized multi-table container.

    Holds equally-shaped assay matrices (rows = features, columns = samples
    or cells) together with row data, column data, optional row ranges and
    free-form metadata. Every mutator validates against the current shape
    before committing anything, so a failed call leaves the experiment as
    it was.

    Identifiers live in the index of `row_data` / `col_data`. An axis whose
    index is the default RangeIndex has no identifiers.

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
    ) -> None:
        pairs = _assay_pairs(assays)
        if not pairs:
            raise DimensionMismatch("At least one assay is required to infer dimensions")

        first_name, first = pairs[0]
        shape = tuple(shapes.coerce_matrix(first, f"Assay '{first_name}'").shape)

        # Labelled matrices carry identifiers when no tables are given
        if isinstance(first, pd.DataFrame):
            if row_data is None:
                row_data = pd.DataFrame(index=first.index)
            if col_data is None:
                col_data = pd.DataFrame(index=first.columns)

        if metadata is not None and not isinstance(metadata, Mapping):
            raise TypeError(f"metadata must be a mapping, got {type(metadata).__name__}.")

        self._assays: Dict[str, Any] = {
            name: shapes.check_assay(name, value, shape) for name, value in pairs
        }
        self._row_data: pd.DataFrame = shapes.check_table(row_data, shape[0], "row")
        self._col_data: pd.DataFrame = shapes.check_table(col_data, shape[1], "column")
        self._row_ranges: Optional[GenomicRanges] = shapes.check_row_ranges(row_ranges, shape[0])
        self._metadata: Dict[str, Any] = dict(metadata) if metadata else {}
        self._shape: Tuple[int, int] = (int(shape[0]), int(shape[1]))

    @classmethod
    def _from_parts(
        cls,
        assays: Dict[str, Any],
        row_data: pd.DataFrame,
        col_data: pd.DataFrame,
        row_ranges: Optional[GenomicRanges],
        metadata: Dict[str, Any],
    ) -> SummarizedExperiment:
        """Assemble from already-validated parts (bypasses validation)."""
        obj = object.__new__(cls)
        obj._assays = assays
        obj._row_data = row_data
        obj._col_data = col_data
        obj._row_ranges = row_ranges
        obj._metadata = metadata
        obj._shape = (len(row_data), len(col_data))
        return obj

    # -------------------------------------------------------------------------
    # Dimensions & identifiers
    # -------------------------------------------------------------------------
    @property
    def shape(self) -> Tuple[int, int]:
        return self._shape

    @property
    def n_rows(self) -> int:
        return self._shape[0]

    @property
    def n_cols(self) -> int:
        return self._shape[1]

    @property
    def row_names(self) -> Optional[pd.Index]:
        """Row identifiers, or None when the rows are unnamed."""
        index = self._row_data.index
        return index.copy() if has_identifiers(index) else None

    @property
    def col_names(self) -> Optional[pd.Index]:
        """Column identifiers, or None when the columns are unnamed."""
        index = self._col_data.index
        return index.copy() if has_identifiers(index) else None

    def set_row_names(self, names: Optional[Sequence[Any]]) -> None:
        index = shapes.check_identifiers(names, self.n_rows, "row")
        table = self._row_data.copy()
        table.index = index
        self._row_data = table

    def set_col_names(self, names: Optional[Sequence[Any]]) -> None:
        index = shapes.check_identifiers(names, self.n_cols, "column")
        table = self._col_data.copy()
        table.index = index
        self._col_data = table

    # -------------------------------------------------------------------------
    # Assays
    # -------------------------------------------------------------------------
    @property
    def assay_names(self) -> List[str]:
        return list(self._assays)

    @property
    def assays(self) -> Mapping[str, Any]:
        """Read-only name -> matrix mapping."""
        return MappingProxyType({k: readonly_view(v) for k, v in self._assays.items()})

    def assay(self, name: str) -> Any:
        if name not in self._assays:
            raise NotFound(f"Assay '{name}' not found. Available: {self.assay_names}")
        return readonly_view(self._assays[name])

    def set_assay(self, name: str, value: Any) -> None:
        """Add or replace an assay; its shape must equal (n_rows, n_cols)."""
        matrix = shapes.check_assay(name, value, self._shape)
        self._assays[name] = matrix

    def remove_assay(self, name: str) -> None:
        if name not in self._assays:
            raise NotFound(f"Assay '{name}' not found. Available: {self.assay_names}")
        del self._assays[name]

    # -------------------------------------------------------------------------
    # Row / column data
    # -------------------------------------------------------------------------
    @property
    def row_data(self) -> pd.DataFrame:
        return self._row_data.copy()

    @property
    def col_data(self) -> pd.DataFrame:
        return self._col_data.copy()

    def set_row_data(self, table: Optional[pd.DataFrame]) -> None:
        """Replace the whole row data table (n_rows records)."""
        self._row_data = shapes.check_table(table, self.n_rows, "row")

    def set_col_data(self, table: Optional[pd.DataFrame]) -> None:
        """Replace the whole column data table (n_cols records)."""
        self._col_data = shapes.check_table(table, self.n_cols, "column")

    def set_row_data_column(self, name: str, values: Any) -> None:
        values = shapes.check_vector(values, self.n_rows, f"row data column '{name}'")
        table = self._row_data.copy()
        table[name] = values
        self._row_data = table

    def set_col_data_column(self, name: str, values: Any) -> None:
        values = shapes.check_vector(values, self.n_cols, f"column data column '{name}'")
        table = self._col_data.copy()
        table[name] = values
        self._col_data = table

    def remove_row_data_column(self, name: str) -> None:
        if name not in self._row_data.columns:
            raise NotFound(f"Row data column '{name}' not found")
        self._row_data = self._row_data.drop(columns=[name])

    def remove_col_data_column(self, name: str) -> None:
        if name not in self._col_data.columns:
            raise NotFound(f"Column data column '{name}' not found")
        self._col_data = self._col_data.drop(columns=[name])

    # -------------------------------------------------------------------------
    # Row ranges
    # -------------------------------------------------------------------------
    @property
    def row_ranges(self) -> Optional[GenomicRanges]:
        return self._row_ranges.copy() if self._row_ranges is not None else None

    def set_row_ranges(self, ranges: Optional[GenomicRanges]) -> None:
        self._row_ranges = shapes.check_row_ranges(ranges, self.n_rows)

    # -------------------------------------------------------------------------
    # Metadata (unconstrained)
    # -------------------------------------------------------------------------
    @property
    def metadata(self) -> Mapping[str, Any]:
        return MappingProxyType(dict(self._metadata))

    def get_metadata(self, key: str) -> Any:
        if key not in self._metadata:
            raise NotFound(f"Metadata key '{key}' not found")
        return self._metadata[key]

    def set_metadata(self, key: str, value: Any) -> None:
        self._metadata[key] = value

    def remove_metadata(self, key: str) -> None:
        if key not in self._metadata:
            raise NotFound(f"Metadata key '{key}' not found")
        del self._metadata[key]

    # -------------------------------------------------------------------------
    # Subsetting
    # -------------------------------------------------------------------------
    def subset(self, rows: Any = None, cols: Any = None) -> SummarizedExperiment:
        """
        Return a new experiment restricted to the selected rows and columns.

        Selectors may be None (everything), a slice, positions, a boolean mask
        or identifiers; see `sc_experiment.core.selectors`. Selection order is
        kept. The result shares no arrays or tables with this
        experiment; metadata values are shared, the mapping is not.
        """
        row_pos = resolve_selector(rows, self._row_data.index, "row")
        col_pos = resolve_selector(cols, self._col_data.index, "column")
        return self._take(row_pos, col_pos)

    def __getitem__(self, key: Any) -> SummarizedExperiment:
        if isinstance(key, tuple) and len(key) == 2:
            return self.subset(key[0], key[1])
        return self.subset(key)

    def _take(self, row_pos: np.ndarray, col_pos: np.ndarray) -> SummarizedExperiment:
        logger.debug(
            "Subsetting experiment",
            extra={"shape": self._shape, "n_rows": len(row_pos), "n_cols": len(col_pos)},
        )
        return SummarizedExperiment._from_parts(
            assays={k: take_matrix(v, row_pos, col_pos) for k, v in self._assays.items()},
            row_data=take_table(self._row_data, row_pos),
            col_data=take_table(self._col_data, col_pos),
            row_ranges=self._row_ranges.take(row_pos) if self._row_ranges is not None else None,
            metadata=dict(self._metadata),
        )

    # -------------------------------------------------------------------------
    # Copy / comparison / display
    # -------------------------------------------------------------------------
    def copy(self) -> SummarizedExperiment:
        return SummarizedExperiment._from_parts(
            assays={k: copy_matrix(v) for k, v in self._assays.items()},
            row_data=self._row_data.copy(),
            col_data=self._col_data.copy(),
            row_ranges=self.row_ranges,
            metadata=dict(self._metadata),
        )

    def equals(self, other: object) -> bool:
        """True if every slot of `other` holds equal content."""
        if not isinstance(other, SummarizedExperiment):
            return False
        if self._shape != other._shape or set(self._assays) != set(other._assays):
            return False
        for name, matrix in self._assays.items():
            if not matrices_equal(matrix, other._assays[name]):
                return False
        if not self._row_data.equals(other._row_data) or not self._col_data.equals(other._col_data):
            return False
        if not self._row_data.index.equals(other._row_data.index):
            return False
        if not self._col_data.index.equals(other._col_data.index):
            return False
        if (self._row_ranges is None) != (other._row_ranges is None):
            return False
        if self._row_ranges is not None and not self._row_ranges.equals(other._row_ranges):
            return False
        return values_equal(self._metadata, other._metadata)

    def _summary_lines(self) -> List[str]:
        row_names = self.row_names
        col_names = self.col_names
        return [
            f"class: {type(self).__name__}",
            f"dim: {self.n_rows} {self.n_cols}",
            format_names("metadata", list(self._metadata)),
            format_names("assays", self.assay_names),
            format_names("rownames", list(row_names)) if row_names is not None else "rownames: NULL",
            format_names("rowData names", list(self._row_data.columns)),
            format_names("colnames", list(col_names)) if col_names is not None else "colnames: NULL",
            format_names("colData names", list(self._col_data.columns)),
        ]

    def __repr__(self) -> str:
        return "\n".join(self._summary_lines())
