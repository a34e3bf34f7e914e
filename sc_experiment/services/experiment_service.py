from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterator, Mapping, Optional

from sc_experiment.config.dataset_loader import DatasetConfigError, from_config
from sc_experiment.config.model import DatasetConfig
from sc_experiment.core.settings import ExperimentSettings
from sc_experiment.core.single_cell_experiment import SingleCellExperiment
from sc_experiment.validation.errors import ValidationError
from sc_experiment.validation.experiment_validation import validate_experiment

logger = logging.getLogger(__name__)


class ExperimentManager(Mapping[str, SingleCellExperiment]):
    """
    Name-keyed, lazily loaded access to configured experiments.

    Implements the Mapping interface; an experiment is read from disk the
    first time its name is looked up and cached afterwards. Returned
    experiments are the cached instances: copy before mutating if other
    callers share the manager.
    """

    def __init__(
        self,
        cfg_by_name: Dict[str, DatasetConfig],
        settings: Optional[ExperimentSettings] = None,
        data_root: Optional[Path] = None,
    ):
        self._cfg_by_name = cfg_by_name
        self._settings = settings
        self._data_root = data_root
        self._loaded: Dict[str, SingleCellExperiment] = {}

    def __getitem__(self, name: str) -> SingleCellExperiment:
        # 1. Fast path: already materialised
        if name in self._loaded:
            return self._loaded[name]

        # 2. Check config existence
        cfg = self._cfg_by_name.get(name)
        if cfg is None:
            raise KeyError(f"Unknown dataset '{name}'")

        # 3. Lazy load
        try:
            logger.info("Lazy-loading dataset", extra={"dataset": cfg.name})
            exp = from_config(cfg, settings=self._settings, data_root=self._data_root)
        except DatasetConfigError as e:
            logger.error(
                "Dataset config error on load",
                extra={"dataset": cfg.name, "error": str(e)},
            )
            raise
        except Exception:
            logger.exception(
                "Unexpected error while loading dataset",
                extra={"dataset": cfg.name},
            )
            raise

        warn_on_invalid_experiment(name, exp)
        self._loaded[name] = exp
        return exp

    def __iter__(self) -> Iterator[str]:
        return iter(self._cfg_by_name)

    def __len__(self) -> int:
        return len(self._cfg_by_name)

    def is_loaded(self, name: str) -> bool:
        return name in self._loaded

    def evict(self, name: str) -> None:
        """Drop a cached experiment; the next lookup reloads it."""
        self._loaded.pop(name, None)


def warn_on_invalid_experiment(name: str, exp: SingleCellExperiment) -> None:
    """
    Audit a freshly loaded experiment and log a warning listing any broken
    invariants. Loading still succeeds.
    """
    try:
        validate_experiment(exp)
    except ValidationError as e:
        logger.warning(
            "Experiment %r validation failed: %s",
            name,
            "; ".join(str(issue) for issue in e.issues),
        )
