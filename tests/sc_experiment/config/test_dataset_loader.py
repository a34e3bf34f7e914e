from pathlib import Path

import anndata as ad
import numpy as np
import pandas as pd
import pytest

from sc_experiment.config.dataset_loader import (
    DATA_ROOT_ENV,
    DatasetConfigError,
    from_config,
    resolve_dataset_path,
)
from sc_experiment.config.model import DatasetConfig


def _make_h5ad_with_dupes(tmp_path: Path) -> Path:
    """Helper to create a small .h5ad with duplicate obs/var names."""
    obs = pd.DataFrame(
        {"cluster": ["A", "A", "B"]},
        index=pd.Index(["c1", "c1", "c2"]),  # duplicate obs_names on purpose
    )
    var = pd.DataFrame(
        index=pd.Index(["g1", "g1", "g2"]),  # duplicate var_names on purpose
    )
    X = np.arange(9).reshape(3, 3)

    adata = ad.AnnData(X=X, obs=obs, var=var)
    h5_path = tmp_path / "dupe_test.h5ad"
    adata.write_h5ad(h5_path)
    return h5_path


def _make_h5ad_with_feature_types(tmp_path: Path, name: str = "mixed.h5ad") -> Path:
    obs = pd.DataFrame(index=["c1", "c2"])
    var = pd.DataFrame(
        {"feature_type": ["Gene Expression", "Gene Expression", "ERCC"]},
        index=["g1", "g2", "ERCC-1"],
    )
    adata = ad.AnnData(X=np.arange(6).reshape(2, 3), obs=obs, var=var)
    h5_path = tmp_path / name
    adata.write_h5ad(h5_path)
    return h5_path


def _cfg(raw, index=0) -> DatasetConfig:
    return DatasetConfig.from_raw(raw, source_path=Path("datasets/test.json"), index=index)


def test_from_config_normalises_obs_and_var_names(tmp_path):
    h5_path = _make_h5ad_with_dupes(tmp_path)

    exp = from_config(_cfg({"name": "TestDataset", "path": str(h5_path)}))

    # rows are features (var), columns are cells (obs)
    assert exp.shape == (3, 3)
    assert exp.row_names.is_unique
    assert exp.col_names.is_unique
    assert exp.assay_names == ["X"]
    assert list(exp.col_data["cluster"].astype(str)) == ["A", "A", "B"]


def test_from_config_splits_alt_exps(tmp_path):
    h5_path = _make_h5ad_with_feature_types(tmp_path)

    exp = from_config(
        _cfg(
            {
                "name": "Mixed",
                "path": str(h5_path),
                "alt_exp_key": "feature_type",
                "main_exp_name": "Gene Expression",
            }
        )
    )

    assert exp.row_names.tolist() == ["g1", "g2"]
    assert exp.alt_exp_names == ["ERCC"]
    assert exp.alt_exp("ERCC").row_names.tolist() == ["ERCC-1"]
    assert exp.main_exp_name == "Gene Expression"


def test_from_config_unknown_alt_exp_key(tmp_path):
    h5_path = _make_h5ad_with_feature_types(tmp_path)

    with pytest.raises(DatasetConfigError, match="feature_types"):
        from_config(_cfg({"name": "Mixed", "path": str(h5_path), "alt_exp_key": "feature_types"}))


def test_from_config_missing_file(tmp_path):
    with pytest.raises(DatasetConfigError, match="not found"):
        from_config(_cfg({"name": "Missing", "path": str(tmp_path / "nope.h5ad")}))


def test_relative_path_uses_data_root(tmp_path, monkeypatch):
    monkeypatch.delenv(DATA_ROOT_ENV, raising=False)
    _make_h5ad_with_feature_types(tmp_path, "rel.h5ad")

    exp = from_config(_cfg({"name": "Rel", "path": "rel.h5ad"}), data_root=tmp_path)

    assert exp.shape == (3, 2)


def test_env_data_root_wins_and_redundant_data_prefix_is_dropped(tmp_path, monkeypatch):
    env_root = tmp_path / "env"
    env_root.mkdir()
    _make_h5ad_with_feature_types(env_root, "pbmc.h5ad")
    monkeypatch.setenv(DATA_ROOT_ENV, str(env_root))

    resolved = resolve_dataset_path(_cfg({"path": "data/pbmc.h5ad"}), data_root=tmp_path / "other")

    assert resolved == env_root / "pbmc.h5ad"


def test_absolute_path_is_kept(tmp_path, monkeypatch):
    monkeypatch.setenv(DATA_ROOT_ENV, str(tmp_path / "elsewhere"))
    target = tmp_path / "abs.h5ad"

    assert resolve_dataset_path(_cfg({"path": str(target)})) == target
