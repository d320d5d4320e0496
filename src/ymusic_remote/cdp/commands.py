"""Command payloads sent through Runtime.evaluate."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Command:
    """An expression to evaluate in the page, plus evaluation flags."""

    expression: str
    await_promise: bool = False
    return_by_value: bool = True
    name: str = "evaluate"

    def to_params(self) -> dict[str, Any]:
        return {
            "expression": self.expression,
            "awaitPromise": self.await_promise,
            "returnByValue": self.return_by_value,
        }
