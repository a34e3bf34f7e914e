from __future__ import annotations

from typing import Any, List, Optional

import pandas as pd

from sc_experiment.core.selectors import has_identifiers
from sc_experiment.validation.errors import ValidationIssue, ValidationError


def collect_issues(exp: Any, path: str = "main") -> List[ValidationIssue]:
    """
    Audit every invariant of an experiment (and, recursively, of its
    alternative experiments) without raising. Issues found in nested
    experiments carry paths such as "main/altExp[spike]".
    """
    issues: List[ValidationIssue] = []

    def report(code: str, message: str, where: str = path) -> None:
        issues.append(ValidationIssue(code, message, where))

    n_rows, n_cols = exp.n_rows, exp.n_cols

    for name, matrix in exp.assays.items():
        if tuple(matrix.shape) != (n_rows, n_cols):
            report("ASSAY_SHAPE", f"assay '{name}' has shape {tuple(matrix.shape)}, expected {(n_rows, n_cols)}.")

    row_data = exp.row_data
    col_data = exp.col_data
    if len(row_data) != n_rows:
        report("ROW_DATA_LENGTH", f"row data has {len(row_data)} records, expected {n_rows}.")
    if len(col_data) != n_cols:
        report("COL_DATA_LENGTH", f"column data has {len(col_data)} records, expected {n_cols}.")
    if row_data.index.has_duplicates:
        report("ROW_NAMES_UNIQUE", "row identifiers are not unique.")
    if col_data.index.has_duplicates:
        report("COL_NAMES_UNIQUE", "column identifiers are not unique.")

    ranges = exp.row_ranges
    if ranges is not None and len(ranges) != n_rows:
        report("ROW_RANGES_LENGTH", f"row ranges describe {len(ranges)} rows, expected {n_rows}.")

    # Single-cell slots
    for name, dim in getattr(exp, "reduced_dims", {}).items():
        if dim.ndim != 2 or dim.shape[0] != n_cols:
            report("REDUCED_DIM_ROWS", f"reduced dim '{name}' has shape {dim.shape}, expected ({n_cols}, k).")

    settings = getattr(exp, "settings", None)
    if settings is not None and settings.size_factor_column in col_data.columns:
        if not pd.api.types.is_numeric_dtype(col_data[settings.size_factor_column]):
            report("SIZE_FACTORS_NUMERIC", f"size factors ('{settings.size_factor_column}') must be numeric.")

    parent_names: Optional[pd.Index] = col_data.index if has_identifiers(col_data.index) else None
    for name, child in getattr(exp, "alt_exps", {}).items():
        child_path = f"{path}/altExp[{name}]"
        if child.n_cols != n_cols:
            report("ALT_EXP_COLUMNS", f"has {child.n_cols} columns, expected {n_cols}.", child_path)
        child_names = child.col_names
        if parent_names is not None and child_names is not None and not child_names.equals(parent_names):
            report("ALT_EXP_ALIGNMENT", "column identifiers differ from the parent's.", child_path)
        issues.extend(collect_issues(child, child_path))

    return issues


def validate_experiment(exp: Any) -> None:
    """Raise ValidationError listing every broken invariant, if any."""
    issues = collect_issues(exp)
    if issues:
        raise ValidationError(issues)
