from __future__ import annotations

from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class ValidationIssue:
    """
    One broken invariant. `path` locates the experiment it was found in,
    e.g. "main" or "main/altExp[spike]".
    """

    code: str
    message: str
    path: str = "main"

    def __str__(self) -> str:
        return f"{self.code} at {self.path}: {self.message}"


class ValidationError(Exception):
    def __init__(self, issues: List[ValidationIssue]):
        self.issues = issues
        super().__init__("\n".join(str(i) for i in issues))

    @property
    def codes(self) -> List[str]:
        return [i.code for i in self.issues]
