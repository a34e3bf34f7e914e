from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from sc_experiment.core.settings import DEFAULT_SETTINGS, ExperimentSettings


@dataclass
class DatasetConfig:
    """
    Parsed config entry for a single dataset.
    """

    raw: Dict[str, Any]
    source_path: Path
    index: int

    @property
    def name(self) -> str:
        return self.raw.get("name", f"Dataset {self.index}")

    @property
    def path(self) -> Path:
        """
        Return the .h5ad path for this dataset.

        Supports both:
        - current schema:  "path": "data/foo.h5ad"
        - legacy:          "file": "data/foo.h5ad" or "file_path": "data/foo.h5ad"
        """
        raw_path = (
            self.raw.get("path") or self.raw.get("file") or self.raw.get("file_path")
        )
        if raw_path is None:
            raise KeyError(
                f"No 'path', 'file', or 'file_path' in dataset config: {self.raw}"
            )
        return Path(raw_path)

    @property
    def main_exp_name(self) -> Optional[str]:
        return self.raw.get("main_exp_name")

    @property
    def alt_exp_key(self) -> Optional[str]:
        """Row-data column whose values split rows into alternative experiments."""
        return self.raw.get("alt_exp_key")

    @property
    def alt_exp_ref(self) -> Optional[str]:
        """Value of `alt_exp_key` that stays in the main experiment."""
        return self.raw.get("alt_exp_ref")

    @classmethod
    def from_raw(
        cls, raw: Dict[str, Any], source_path: Path, index: int
    ) -> DatasetConfig:
        return cls(raw=raw, source_path=source_path, index=index)


@dataclass
class GlobalConfig:
    datasets: List[DatasetConfig] = field(default_factory=list)
    data_root: Optional[Path] = None
    settings: ExperimentSettings = DEFAULT_SETTINGS
