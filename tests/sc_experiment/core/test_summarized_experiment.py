import threading

import numpy as np
import pandas as pd
import pytest
import scipy.sparse as sp

from sc_experiment.core.exceptions import (
    DimensionMismatch,
    DuplicateIdentifier,
    DuplicateName,
    NotFound,
)
from sc_experiment.core.ranges import GenomicRanges
from sc_experiment.core.summarized_experiment import SummarizedExperiment


def _make_se() -> SummarizedExperiment:
    counts = np.arange(12).reshape(4, 3)
    row_data = pd.DataFrame(
        {"symbol": ["A", "B", "C", "D"]}, index=["g1", "g2", "g3", "g4"]
    )
    col_data = pd.DataFrame({"batch": [1, 1, 2]}, index=["c1", "c2", "c3"])
    return SummarizedExperiment(
        {"counts": counts},
        row_data=row_data,
        col_data=col_data,
        metadata={"source": "unit"},
    )


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------
def test_construction_infers_dimensions():
    se = _make_se()

    assert se.shape == (4, 3)
    assert se.n_rows == 4
    assert se.n_cols == 3
    assert se.assay_names == ["counts"]
    assert se.row_names.tolist() == ["g1", "g2", "g3", "g4"]
    assert se.col_names.tolist() == ["c1", "c2", "c3"]


def test_construction_without_tables_has_no_identifiers():
    se = SummarizedExperiment({"counts": np.zeros((2, 3))})

    assert se.row_names is None
    assert se.col_names is None
    assert se.row_data.shape == (2, 0)
    assert se.col_data.shape == (3, 0)


def test_dataframe_assay_supplies_identifiers():
    df = pd.DataFrame(np.ones((2, 2)), index=["g1", "g2"], columns=["c1", "c2"])
    se = SummarizedExperiment({"counts": df})

    assert se.row_names.tolist() == ["g1", "g2"]
    assert se.col_names.tolist() == ["c1", "c2"]
    assert isinstance(se.assay("counts"), np.ndarray)


def test_construction_requires_an_assay():
    with pytest.raises(DimensionMismatch, match="At least one assay"):
        SummarizedExperiment({})


def test_construction_rejects_mismatched_assays():
    with pytest.raises(DimensionMismatch, match="'b'"):
        SummarizedExperiment({"a": np.zeros((4, 3)), "b": np.zeros((4, 2))})


def test_construction_rejects_one_dimensional_assay():
    with pytest.raises(DimensionMismatch, match="2-D"):
        SummarizedExperiment({"a": np.zeros(3)})


def test_construction_rejects_wrong_table_lengths():
    with pytest.raises(DimensionMismatch, match="row data"):
        SummarizedExperiment(
            {"counts": np.zeros((4, 3))}, row_data=pd.DataFrame(index=["g1", "g2"])
        )


def test_construction_rejects_repeated_assay_names():
    m = np.zeros((2, 2))
    with pytest.raises(DuplicateName, match="'a'"):
        SummarizedExperiment([("a", m), ("a", m)])


def test_construction_rejects_duplicate_identifiers():
    with pytest.raises(DuplicateIdentifier, match="c1"):
        SummarizedExperiment(
            {"counts": np.zeros((2, 3))},
            col_data=pd.DataFrame(index=["c1", "c1", "c3"]),
        )


def test_sparse_assay_is_stored_as_csr():
    counts = sp.random(4, 3, density=0.5, format="coo", random_state=0)
    se = SummarizedExperiment({"counts": counts})

    stored = se.assay("counts")
    assert sp.issparse(stored)
    assert stored.format == "csr"
    assert np.allclose(stored.toarray(), counts.toarray())


# ---------------------------------------------------------------------------
# Assays
# ---------------------------------------------------------------------------
def test_set_assay_round_trip():
    se = _make_se()
    logcounts = np.log1p(np.arange(12).reshape(4, 3))

    se.set_assay("logcounts", logcounts)

    assert se.assay_names == ["counts", "logcounts"]
    assert np.array_equal(se.assay("logcounts"), logcounts)


def test_stored_assays_do_not_alias_caller_buffers():
    dense = np.arange(12).reshape(4, 3)
    sparse = sp.csr_matrix(np.arange(12).reshape(4, 3))
    frame = pd.DataFrame(np.arange(12).reshape(4, 3))
    se = SummarizedExperiment({"counts": dense})
    se.set_assay("sparse", sparse)
    se.set_assay("frame", frame)
    before = se.copy()

    # Act: write into every buffer the caller still holds
    dense[0, 0] = 99
    sparse.data[:] = 99
    frame.iloc[0, 0] = 99

    assert se.equals(before)
    assert se.assay("counts")[0, 0] == 0
    assert se.assay("sparse").toarray()[3, 2] == 11


def test_set_assay_wrong_shape_leaves_state_unchanged():
    se = _make_se()
    before = se.copy()

    with pytest.raises(DimensionMismatch):
        se.set_assay("bad", np.zeros((3, 4)))

    assert se.equals(before)
    assert "bad" not in se.assay_names


def test_missing_assay():
    se = _make_se()
    with pytest.raises(NotFound, match="logcounts"):
        se.assay("logcounts")
    # NotFound is still a KeyError for dict-style callers
    with pytest.raises(KeyError):
        se.remove_assay("logcounts")


def test_remove_assay():
    se = _make_se()
    se.set_assay("logcounts", np.zeros((4, 3)))
    se.remove_assay("counts")
    assert se.assay_names == ["logcounts"]


def test_assay_getter_cannot_write_through():
    se = _make_se()
    got = se.assay("counts")

    with pytest.raises(ValueError):
        got[0, 0] = 100

    assert se.assay("counts")[0, 0] == 0


def test_assays_mapping_is_read_only_and_stable():
    se = _make_se()
    first = se.assays
    second = se.assays

    with pytest.raises(TypeError):
        first["other"] = np.zeros((4, 3))

    assert list(first) == list(second)
    assert np.array_equal(first["counts"], second["counts"])


# ---------------------------------------------------------------------------
# Row / column data
# ---------------------------------------------------------------------------
def test_tables_are_returned_as_copies():
    se = _make_se()
    rd = se.row_data
    rd["extra"] = 1

    assert "extra" not in se.row_data.columns


def test_set_col_data_replaces_table():
    se = _make_se()
    table = pd.DataFrame({"treated": [True, False, True]}, index=["x", "y", "z"])

    se.set_col_data(table)

    assert se.col_names.tolist() == ["x", "y", "z"]
    assert se.col_data["treated"].tolist() == [True, False, True]


def test_set_col_data_wrong_length_leaves_state_unchanged():
    se = _make_se()
    before = se.copy()

    with pytest.raises(DimensionMismatch):
        se.set_col_data(pd.DataFrame({"batch": [1, 2]}))

    assert se.equals(before)


def test_set_and_remove_data_columns():
    se = _make_se()

    se.set_col_data_column("qc", [True, False, True])
    se.set_row_data_column("length", np.array([10, 20, 30, 40]))

    assert se.col_data["qc"].tolist() == [True, False, True]
    assert se.row_data["length"].tolist() == [10, 20, 30, 40]

    with pytest.raises(DimensionMismatch):
        se.set_col_data_column("qc", [True])

    se.remove_col_data_column("qc")
    assert "qc" not in se.col_data.columns
    with pytest.raises(NotFound):
        se.remove_row_data_column("missing")


def test_set_col_names():
    se = _make_se()

    se.set_col_names(["a", "b", "c"])
    assert se.col_names.tolist() == ["a", "b", "c"]
    assert se.col_data["batch"].tolist() == [1, 1, 2]

    with pytest.raises(DuplicateIdentifier):
        se.set_col_names(["a", "a", "c"])
    with pytest.raises(DimensionMismatch):
        se.set_col_names(["a", "b"])

    se.set_col_names(None)
    assert se.col_names is None


# ---------------------------------------------------------------------------
# Row ranges & metadata
# ---------------------------------------------------------------------------
def test_row_ranges():
    se = _make_se()
    ranges = GenomicRanges.from_intervals(
        ["chr1", "chr1", "chr2", "chr3"], [1, 10, 20, 30], [5, 15, 25, 35]
    )

    se.set_row_ranges(ranges)
    assert se.row_ranges.equals(ranges)

    with pytest.raises(DimensionMismatch):
        se.set_row_ranges(GenomicRanges.empty(2))

    se.set_row_ranges(None)
    assert se.row_ranges is None


def test_metadata_is_unconstrained():
    se = _make_se()

    se.set_metadata("params", {"k": 10})
    assert se.get_metadata("params") == {"k": 10}
    assert set(se.metadata) == {"source", "params"}

    with pytest.raises(TypeError):
        se.metadata["other"] = 1

    se.remove_metadata("params")
    with pytest.raises(NotFound):
        se.get_metadata("params")


# ---------------------------------------------------------------------------
# Copy / equality / display
# ---------------------------------------------------------------------------
def test_copy_is_independent():
    se = _make_se()
    clone = se.copy()

    clone.set_col_data_column("batch", [5, 5, 5])
    clone.set_metadata("source", "changed")

    assert se.col_data["batch"].tolist() == [1, 1, 2]
    assert se.get_metadata("source") == "unit"
    assert not se.equals(clone)


def test_copy_keeps_metadata_values_that_cannot_be_copied():
    se = _make_se()
    lock = threading.Lock()
    se.set_metadata("lock", lock)

    clone = se.copy()

    assert clone.get_metadata("lock") is lock
    clone.remove_metadata("lock")
    assert se.get_metadata("lock") is lock


def test_repr_summarises_slots():
    text = repr(_make_se())

    assert "class: SummarizedExperiment" in text
    assert "dim: 4 3" in text
    assert "assays(1): counts" in text
    assert "colnames(3): c1 c2 c3" in text
    assert "rowData names(1): symbol" in text
    assert "metadata(1): source" in text


def test_repr_shortens_long_name_lists():
    se = SummarizedExperiment(
        {"counts": np.zeros((10, 1))},
        row_data=pd.DataFrame(index=[f"g{i}" for i in range(10)]),
    )
    text = repr(se)

    assert "rownames(10): g0 g1 ... g8 g9" in text
    assert "colnames: NULL" in text
