from __future__ import annotations

import re
import tomllib
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from mpca.config import toml_value
from mpca.errors import CorruptedState, StateMissing

if TYPE_CHECKING:
    from mpca.tools.base import FilesystemAdapter

Scalar = str | int | float | bool

KEY_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")


def utcnow_iso() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat()


@dataclass(slots=True)
class _Line:
    text: str
    key: str | None = None
    value: Scalar | None = None


def render_assignment(key: str, value: Scalar) -> str:
    if not KEY_PATTERN.match(key):
        raise ValueError(f"invalid state key: {key!r}")
    if not isinstance(value, (str, int, float, bool)):
        raise TypeError(f"unsupported state value for '{key}': {type(value).__name__}")
    return f"{key} = {toml_value(value)}"


def _parse_line(text: str, *, source: str, lineno: int) -> _Line:
    stripped = text.strip()
    if not stripped or stripped.startswith("#"):
        return _Line(text)
    key, sep, _ = stripped.partition("=")
    key = key.strip()
    if not sep or not KEY_PATTERN.match(key):
        raise CorruptedState(source, f"line {lineno}: expected 'key = value', got {stripped!r}")
    try:
        parsed = tomllib.loads(stripped)
    except tomllib.TOMLDecodeError as exc:
        raise CorruptedState(source, f"line {lineno}: {exc}") from exc
    value = parsed.get(key)
    if not isinstance(value, (str, int, float, bool)):
        raise CorruptedState(source, f"line {lineno}: '{key}' must be a string, number or boolean")
    return _Line(text, key, value)


@dataclass(slots=True)
class StateRecord:
    """Ordered, open record of ``key = value`` lines.

    Comments, blank lines and keys nobody asked about survive a load/save cycle
    untouched. A key may legitimately appear more than once; readers see the
    last occurrence.
    """

    lines: list[_Line] = field(default_factory=list)
    source: str = "<state>"

    @classmethod
    def loads(cls, text: str, *, source: Path | str = "<state>") -> StateRecord:
        name = str(source)
        return cls(
            [_parse_line(line, source=name, lineno=n) for n, line in enumerate(text.splitlines(), 1)],
            source=name,
        )

    @classmethod
    def load(cls, fs: FilesystemAdapter, path: Path) -> StateRecord:
        if not fs.is_file(path):
            raise StateMissing(path)
        return cls.loads(fs.read_text(path), source=path)

    def save(self, fs: FilesystemAdapter, path: Path) -> None:
        fs.write(path, self.dumps())
        self.source = str(path)

    def dumps(self) -> str:
        return "\n".join(line.text for line in self.lines) + "\n"

    def comment(self, text: str) -> None:
        self.lines.append(_Line(f"# {text}"))

    def get(self, key: str, default: Scalar | None = None) -> Scalar | None:
        for line in reversed(self.lines):
            if line.key == key:
                return line.value
        return default

    def get_all(self, key: str) -> list[Scalar]:
        return [line.value for line in self.lines if line.key == key]

    def count(self, key: str) -> int:
        return sum(1 for line in self.lines if line.key == key)

    def keys(self) -> Iterator[str]:
        seen: set[str] = set()
        for line in self.lines:
            if line.key is not None and line.key not in seen:
                seen.add(line.key)
                yield line.key

    def set(self, key: str, value: Scalar) -> None:
        rendered = render_assignment(key, value)
        replaced = False
        for line in self.lines:
            if line.key == key:
                line.text = rendered
                line.value = value
                replaced = True
        if not replaced:
            self.lines.append(_Line(rendered, key, value))

    def append(self, key: str, value: Scalar) -> None:
        self.lines.append(_Line(render_assignment(key, value), key, value))
