from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List, Tuple

from sc_experiment.config.model import DatasetConfig, GlobalConfig
from sc_experiment.core.settings import DEFAULT_SETTINGS, ExperimentSettings

logger = logging.getLogger(__name__)


def _settings_from_raw(raw_global: Dict) -> ExperimentSettings:
    return ExperimentSettings(
        size_factor_column=raw_global.get("size_factor_column", DEFAULT_SETTINGS.size_factor_column),
        label_column=raw_global.get("label_column", DEFAULT_SETTINGS.label_column),
    )


def load_global_config(root: Path) -> GlobalConfig:
    """
    Load configuration from a directory using the multi-file layout:

        <root>/global.json        (optional)
        <root>/datasets/*.json    (one dataset entry per file)
    """
    root = Path(root)
    logger.info("Loading global config", extra={"config_root": str(root)})

    global_path = root / "global.json"
    if not global_path.is_file():
        # Fallback to defaults if global.json is missing
        raw_global = {}
    else:
        with global_path.open() as f:
            raw_global = json.load(f)

    datasets_dir = root / "datasets"
    datasets: List[DatasetConfig] = []

    if datasets_dir.is_dir():
        logger.info("Scanning for dataset configurations", extra={"datasets_dir": str(datasets_dir)})
        # Sort files for deterministic loading
        files = sorted(datasets_dir.glob("*.json"))

        for idx, config_file in enumerate(files):
            # macOS AppleDouble files (._*) are not JSON
            if config_file.name.startswith("._"):
                continue

            logger.info("Loading dataset config", extra={"config_file": config_file.name})
            try:
                with config_file.open() as f:
                    raw = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.error(
                    "Failed to load dataset config",
                    extra={"config_file": config_file.name, "error": str(e)},
                )
                continue
            if not isinstance(raw, dict):
                logger.error(
                    "Dataset config is not a JSON object",
                    extra={"config_file": config_file.name},
                )
                continue
            datasets.append(DatasetConfig.from_raw(raw, source_path=config_file, index=idx))
    else:
        logger.warning("Datasets directory not found", extra={"datasets_dir": str(datasets_dir)})

    data_root_raw = raw_global.get("data_root")
    data_root = Path(data_root_raw) if data_root_raw else None
    if data_root and not data_root.is_absolute():
        data_root = (root / data_root).resolve()

    return GlobalConfig(
        datasets=datasets,
        data_root=data_root,
        settings=_settings_from_raw(raw_global),
    )


def load_dataset_registry(path: Path) -> Tuple[GlobalConfig, Dict[str, DatasetConfig]]:
    """
    Load global config + a name -> DatasetConfig mapping.
    The first entry wins when two datasets share a name.
    """
    global_config = load_global_config(path)

    cfg_by_name: Dict[str, DatasetConfig] = {}
    for ds_cfg in global_config.datasets:
        if ds_cfg.name in cfg_by_name:
            logger.warning("Duplicate dataset name ignored", extra={"dataset": ds_cfg.name})
            continue
        cfg_by_name[ds_cfg.name] = ds_cfg

    return global_config, cfg_by_name
