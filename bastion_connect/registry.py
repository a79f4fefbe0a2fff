"""
Variable registry: the parameters handed to the infrastructure engine.

The engine only reads the file, so memory and file are kept in lockstep:
every set_all() appends `name = "value"` lines in call order.
"""

from pathlib import Path
from typing import Sequence

from .errors import PersistenceFailure


class VariableRegistry:
    """Ordered name/value store backed by a tfvars file."""

    def __init__(self, path: Path):
        self.path = path
        self._values: dict[str, str] = {}

    def clear(self):
        """Truncate the backing file and forget every in-memory value."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text('')
        except OSError as e:
            raise PersistenceFailure(f"Cannot reset {self.path}: {e}") from e
        self._values = {}

    def set_all(self, names: Sequence[str], values: Sequence[str]):
        """Register values pairwise by index, persisting before updating memory."""
        if len(names) != len(values):
            raise ValueError(f"{len(names)} names but {len(values)} values")

        lines = [f'{name} = "{_escape(str(value))}"\n' for name, value in zip(names, values)]
        try:
            with self.path.open('a') as f:
                f.writelines(lines)
        except OSError as e:
            raise PersistenceFailure(f"Cannot write {self.path}: {e}") from e

        for name, value in zip(names, values):
            self._values[name] = str(value)

    def get(self, name: str) -> str | None:
        return self._values.get(name)

    def items(self) -> list[tuple[str, str]]:
        return list(self._values.items())

    def __contains__(self, name: str) -> bool:
        return name in self._values

    def __len__(self) -> int:
        return len(self._values)


def _escape(value: str) -> str:
    return value.replace('\\', '\\\\').replace('"', '\\"').replace('${', '$${').replace('%{', '%%{')
