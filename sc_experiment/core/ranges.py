"""GenomicRanges: per-row genomic interval annotation (row ranges)."""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

import numpy as np
import pandas as pd

from sc_experiment.core.exceptions import DimensionMismatch

_STRANDS = {"+", "-", "*"}


class GenomicRanges:
    """
    A set of genomic intervals attached to the rows of an experiment.

    Each row owns zero or more intervals. Intervals are kept in one long
    table with a `row` column pointing at the owning row; coordinates are
    1-based and closed, so `width = end - start + 1` (zero-width allowed).
    """

    __slots__ = ("_intervals", "_n_rows")

    COLUMNS = ("row", "seqname", "start", "end", "strand")

    def __init__(self, intervals: pd.DataFrame, n_rows: int) -> None:
        missing = [c for c in self.COLUMNS if c not in intervals.columns]
        if missing:
            raise ValueError(f"Interval table is missing columns: {missing}")
        if n_rows < 0:
            raise ValueError("n_rows must be non-negative")

        df = intervals.loc[:, list(self.COLUMNS)].reset_index(drop=True).copy()
        df["row"] = df["row"].astype(np.int64)
        df["seqname"] = df["seqname"].astype(str)
        df["start"] = df["start"].astype(np.int64)
        df["end"] = df["end"].astype(np.int64)
        df["strand"] = df["strand"].astype(str)

        bad_rows = df.loc[(df["row"] < 0) | (df["row"] >= n_rows), "row"]
        if len(bad_rows) > 0:
            raise DimensionMismatch(
                f"Intervals reference rows outside [0, {n_rows}): {bad_rows.tolist()[:5]}"
            )
        if (df["end"] < df["start"] - 1).any():
            raise ValueError("Interval end must be >= start - 1")
        bad_strands = set(df["strand"]) - _STRANDS
        if bad_strands:
            raise ValueError(f"Invalid strand values: {sorted(bad_strands)}")

        self._intervals = df
        self._n_rows = int(n_rows)

    # -------------------------------------------------------------------------
    # Constructors
    # -------------------------------------------------------------------------
    @classmethod
    def from_intervals(
        cls,
        seqnames: Sequence[str],
        starts: Sequence[int],
        ends: Sequence[int],
        strands: Optional[Sequence[str]] = None,
    ) -> GenomicRanges:
        """One interval per row, rows in the given order."""
        n = len(seqnames)
        if len(starts) != n or len(ends) != n or (strands is not None and len(strands) != n):
            raise DimensionMismatch("seqnames, starts, ends and strands must have equal length")
        df = pd.DataFrame(
            {
                "row": np.arange(n),
                "seqname": list(seqnames),
                "start": list(starts),
                "end": list(ends),
                "strand": list(strands) if strands is not None else ["*"] * n,
            }
        )
        return cls(df, n_rows=n)

    @classmethod
    def empty(cls, n_rows: int) -> GenomicRanges:
        """n_rows rows, none of which has an interval."""
        df = pd.DataFrame({c: [] for c in cls.COLUMNS})
        return cls(df, n_rows=n_rows)

    @classmethod
    def concat(cls, parts: Iterable[GenomicRanges]) -> GenomicRanges:
        """Stack row sets: rows of later parts follow rows of earlier ones."""
        frames = []
        offset = 0
        for part in parts:
            df = part._intervals.copy()
            df["row"] = df["row"] + offset
            frames.append(df)
            offset += part._n_rows
        if not frames:
            return cls.empty(0)
        return cls(pd.concat(frames, ignore_index=True), n_rows=offset)

    # -------------------------------------------------------------------------
    # Access
    # -------------------------------------------------------------------------
    def __len__(self) -> int:
        return self._n_rows

    @property
    def n_intervals(self) -> int:
        return len(self._intervals)

    @property
    def intervals(self) -> pd.DataFrame:
        """Copy of the long interval table (row, seqname, start, end, strand)."""
        return self._intervals.copy()

    def intervals_for(self, row: int) -> pd.DataFrame:
        """Intervals owned by one row (possibly none)."""
        if not 0 <= row < self._n_rows:
            raise IndexError(f"Row {row} out of range for {self._n_rows} rows")
        df = self._intervals
        return df.loc[df["row"] == row, ["seqname", "start", "end", "strand"]].reset_index(drop=True)

    def widths(self) -> np.ndarray:
        return (self._intervals["end"] - self._intervals["start"] + 1).to_numpy()

    # -------------------------------------------------------------------------
    # Derivation
    # -------------------------------------------------------------------------
    def take(self, positions: np.ndarray) -> GenomicRanges:
        """
        Keep the rows at `positions`, in that order. Row pointers are
        renumbered to the new positions.
        """
        positions = np.asarray(positions, dtype=np.int64)
        remap = {int(old): new for new, old in enumerate(positions)}
        df = self._intervals
        kept = df[df["row"].isin(list(remap))].copy()
        kept["row"] = kept["row"].map(remap)
        kept = kept.sort_values("row", kind="stable")
        return GenomicRanges(kept, n_rows=len(positions))

    def copy(self) -> GenomicRanges:
        return GenomicRanges(self._intervals, n_rows=self._n_rows)

    def equals(self, other: object) -> bool:
        if not isinstance(other, GenomicRanges):
            return False
        return self._n_rows == other._n_rows and self._intervals.equals(other._intervals)

    def __repr__(self) -> str:
        return f"GenomicRanges with {self._n_rows} rows and {self.n_intervals} intervals"
