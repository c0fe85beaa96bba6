"""Shared fixtures for the minipy test suite."""
import sys
from pathlib import Path
from typing import List

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from interpreter import Interpreter
from values import TYPE_NONE, Value, to_repr


class Session:
    """An interpreter plus the reprs of every value it displayed."""

    def __init__(self) -> None:
        self.displayed: List[str] = []
        self.interpreter = Interpreter(display_hook=self._display)

    def _display(self, value: Value) -> None:
        if value.type != TYPE_NONE:
            self.displayed.append(to_repr(value))

    def run(self, source: str) -> List[str]:
        start = len(self.displayed)
        self.interpreter.execute(source)
        return self.displayed[start:]

    def eval(self, expression: str) -> str:
        shown = self.run(expression)
        assert len(shown) == 1, f"expected one displayed value for {expression!r}, got {shown!r}"
        return shown[0]

    def get(self, name: str) -> str:
        return to_repr(self.interpreter.environment.get(name))


@pytest.fixture
def session() -> Session:
    return Session()


@pytest.fixture
def project_dir() -> Path:
    return project_root
