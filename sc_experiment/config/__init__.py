"""
Config package for sc_experiment.

Responsible for:
- config models (GlobalConfig, DatasetConfig)
- config I/O helpers (load_global_config / load_dataset_registry)
- config-driven loading of experiments (from_config)
"""

from .model import GlobalConfig, DatasetConfig
from .loader import load_global_config, load_dataset_registry
from .dataset_loader import DatasetConfigError, from_config

__all__ = [
    "GlobalConfig",
    "DatasetConfig",
    "load_global_config",
    "load_dataset_registry",
    "DatasetConfigError",
    "from_config",
]
