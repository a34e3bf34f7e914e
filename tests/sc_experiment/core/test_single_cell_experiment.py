import numpy as np
import pandas as pd
import pytest

from sc_experiment.core.exceptions import (
    ColumnMisalignment,
    CyclicReference,
    DimensionMismatch,
    NotFound,
)
from sc_experiment.core.settings import ExperimentSettings
from sc_experiment.core.single_cell_experiment import SingleCellExperiment
from sc_experiment.core.summarized_experiment import SummarizedExperiment

CELLS = ["c1", "c2", "c3"]


def _make_sce(**kwargs) -> SingleCellExperiment:
    counts = np.arange(30).reshape(10, 3)
    row_data = pd.DataFrame(index=[f"g{i}" for i in range(10)])
    col_data = pd.DataFrame({"batch": [1, 1, 2]}, index=CELLS)
    return SingleCellExperiment(
        {"counts": counts}, row_data=row_data, col_data=col_data, **kwargs
    )


def _make_spike(names=CELLS) -> SummarizedExperiment:
    n_cols = len(names)
    return SummarizedExperiment(
        {"counts": np.arange(5 * n_cols).reshape(5, n_cols)},
        row_data=pd.DataFrame(index=[f"ERCC-{i}" for i in range(5)]),
        col_data=pd.DataFrame(index=list(names)),
    )


# ---------------------------------------------------------------------------
# General slots
# ---------------------------------------------------------------------------
def test_general_slots_are_forwarded():
    sce = _make_sce()

    assert sce.shape == (10, 3)
    assert sce.col_names.tolist() == CELLS
    assert np.array_equal(sce.counts, np.arange(30).reshape(10, 3))
    with pytest.raises(NotFound):
        sce.logcounts

    sce.set_assay("logcounts", np.log1p(sce.counts))
    assert sce.assay_names == ["counts", "logcounts"]


def test_round_trip_through_summarized_experiment():
    sce = _make_sce()
    se = sce.to_summarized_experiment()

    assert isinstance(se, SummarizedExperiment)
    back = SingleCellExperiment.from_summarized_experiment(se)
    assert back.equals(sce)
    assert back.reduced_dim_names == []
    assert back.alt_exp_names == []


# ---------------------------------------------------------------------------
# Reduced dims
# ---------------------------------------------------------------------------
def test_reduced_dim_round_trip():
    sce = _make_sce()
    pca = np.random.default_rng(0).normal(size=(3, 2))

    sce.set_reduced_dim("PCA", pca)

    assert sce.reduced_dim_names == ["PCA"]
    assert np.array_equal(sce.reduced_dim("PCA"), pca)


def test_reduced_dim_accepts_dataframe():
    sce = _make_sce()
    sce.set_reduced_dim("UMAP", pd.DataFrame({"x": [0.0, 1.0, 2.0], "y": [1.0, 1.0, 1.0]}))
    assert sce.reduced_dim("UMAP").shape == (3, 2)


def test_reduced_dim_does_not_alias_caller_array():
    sce = _make_sce()
    pca = np.zeros((3, 2))
    sce.set_reduced_dim("PCA", pca)

    pca[0, 0] = 99.0

    assert sce.reduced_dim("PCA")[0, 0] == 0.0
    assert not np.shares_memory(sce.reduced_dim("PCA"), pca)


def test_reduced_dim_wrong_rows_leaves_state_unchanged():
    sce = _make_sce()
    before = sce.copy()

    with pytest.raises(DimensionMismatch, match="one per column"):
        sce.set_reduced_dim("PCA", np.zeros((4, 2)))
    with pytest.raises(DimensionMismatch):
        sce.set_reduced_dim("PCA", np.zeros(3))

    assert sce.equals(before)


def test_missing_reduced_dim():
    sce = _make_sce()
    with pytest.raises(NotFound, match="TSNE"):
        sce.reduced_dim("TSNE")
    with pytest.raises(NotFound):
        sce.remove_reduced_dim("TSNE")


def test_reduced_dims_mapping_is_read_only():
    sce = _make_sce(reduced_dims={"PCA": np.zeros((3, 2))})
    dims = sce.reduced_dims

    with pytest.raises(TypeError):
        dims["UMAP"] = np.zeros((3, 2))
    with pytest.raises(ValueError):
        dims["PCA"][0, 0] = 1.0


def test_constructor_validates_reduced_dims():
    with pytest.raises(DimensionMismatch):
        _make_sce(reduced_dims={"PCA": np.zeros((5, 2))})


# ---------------------------------------------------------------------------
# Alternative experiments
# ---------------------------------------------------------------------------
def test_alt_exp_round_trip():
    sce = _make_sce()
    spike = _make_spike()

    sce.set_alt_exp("spike", spike)

    assert sce.alt_exp_names == ["spike"]
    assert sce.alt_exp("spike").equals(spike)


def test_alt_exp_is_stored_and_returned_as_copy():
    sce = _make_sce()
    spike = _make_spike()
    sce.set_alt_exp("spike", spike)

    spike.set_assay("extra", np.zeros((5, 3)))
    got = sce.alt_exp("spike")
    got.set_assay("other", np.zeros((5, 3)))

    assert sce.alt_exp("spike").assay_names == ["counts"]


def test_alt_exp_column_count_must_match():
    sce = _make_sce()
    with pytest.raises(DimensionMismatch, match="'spike'"):
        sce.set_alt_exp("spike", _make_spike(names=["c1", "c2"]))
    assert sce.alt_exp_names == []


def test_alt_exp_identifiers_must_align():
    sce = _make_sce()
    with pytest.raises(ColumnMisalignment):
        sce.set_alt_exp("spike", _make_spike(names=["c3", "c2", "c1"]))


def test_alt_exp_without_identifiers_is_accepted():
    sce = _make_sce()
    sce.set_alt_exp("spike", SummarizedExperiment({"counts": np.ones((5, 3))}))
    assert sce.alt_exp("spike").n_rows == 5


def test_alt_exp_cannot_contain_itself():
    sce = _make_sce()
    with pytest.raises(CyclicReference):
        sce.set_alt_exp("self", sce)


def test_attaching_parent_to_child_stores_snapshot():
    parent = _make_sce()
    child = _make_sce()
    parent.set_alt_exp("child", child)

    child.set_alt_exp("parent", parent)

    assert parent.alt_exp("child").alt_exp_names == []
    assert child.alt_exp("parent").alt_exp("child").alt_exp_names == []


def test_missing_alt_exp():
    sce = _make_sce()
    with pytest.raises(NotFound, match="spike"):
        sce.alt_exp("spike")


def test_renaming_columns_propagates_to_alt_exps():
    sce = _make_sce()
    sce.set_alt_exp("spike", _make_spike())

    sce.set_col_names(["x", "y", "z"])
    assert sce.alt_exp("spike").col_names.tolist() == ["x", "y", "z"]

    sce.set_col_data(pd.DataFrame({"batch": [3, 3, 3]}, index=["p", "q", "r"]))
    assert sce.alt_exp("spike").col_names.tolist() == ["p", "q", "r"]
    assert sce.col_data["batch"].tolist() == [3, 3, 3]


# ---------------------------------------------------------------------------
# Size factors, labels, main experiment name
# ---------------------------------------------------------------------------
def test_size_factors():
    sce = _make_sce()
    assert sce.size_factors is None

    sce.set_size_factors([1, 2, 0.5])
    assert sce.size_factors.tolist() == [1.0, 2.0, 0.5]
    assert sce.size_factors.dtype == np.float64
    assert sce.col_data["sizeFactor"].tolist() == [1.0, 2.0, 0.5]

    with pytest.raises(DimensionMismatch):
        sce.set_size_factors([1.0])

    sce.set_size_factors(None)
    assert sce.size_factors is None


def test_size_factors_follow_column_data():
    sce = _make_sce()
    sce.set_col_data(pd.DataFrame({"sizeFactor": [3.0, 3.0, 3.0]}, index=CELLS))
    assert sce.size_factors.tolist() == [3.0, 3.0, 3.0]


def test_labels_use_configured_column():
    sce = _make_sce(settings=ExperimentSettings(label_column="cluster"))

    sce.set_col_labels(["T", "B", "T"])

    assert sce.col_labels.tolist() == ["T", "B", "T"]
    assert sce.col_data["cluster"].tolist() == ["T", "B", "T"]
    assert "label" not in sce.col_data.columns

    sce.set_col_labels(None)
    assert sce.col_labels is None


def test_main_exp_name():
    sce = _make_sce(main_exp_name="gene")
    assert sce.main_exp_name == "gene"

    sce.main_exp_name = None
    assert sce.main_exp_name is None

    with pytest.raises(TypeError):
        sce.main_exp_name = 3


# ---------------------------------------------------------------------------
# Copy / equality / display
# ---------------------------------------------------------------------------
def test_equality_covers_single_cell_slots():
    sce = _make_sce(reduced_dims={"PCA": np.zeros((3, 2))})
    other = sce.copy()
    assert sce.equals(other)

    other.set_reduced_dim("PCA", np.ones((3, 2)))
    assert not sce.equals(other)
    assert not sce.equals(sce.to_summarized_experiment())


def test_repr_lists_single_cell_slots():
    sce = _make_sce(reduced_dims={"PCA": np.zeros((3, 2))})
    sce.set_alt_exp("spike", _make_spike())
    text = repr(sce)

    assert "class: SingleCellExperiment" in text
    assert "reducedDimNames(1): PCA" in text
    assert "mainExpName: NULL" in text
    assert "altExpNames(1): spike" in text


def test_bare_matrix_alt_exp_is_wrapped():
    sce = _make_sce()

    sce.set_alt_exp("adt", np.ones((2, 3)))

    adt = sce.alt_exp("adt")
    assert isinstance(adt, SummarizedExperiment)
    assert adt.assay_names == ["counts"]
    assert adt.shape == (2, 3)

    with pytest.raises(DimensionMismatch):
        sce.set_alt_exp("bad", np.ones((2, 4)))
