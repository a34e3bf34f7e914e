"""
Service layer: lazy access to configured experiments and the bridge to
AnnData-based analysis routines.
"""

from .experiment_service import ExperimentManager
from .analysis_service import apply_anndata_routine, run_pca

__all__ = ["ExperimentManager", "apply_anndata_routine", "run_pca"]
