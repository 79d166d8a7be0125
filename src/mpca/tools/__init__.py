from __future__ import annotations

from dataclasses import dataclass

from mpca.tools.base import (
    CommandOutput,
    FilesystemAdapter,
    ShellAdapter,
    StatusEntry,
    VersionControlAdapter,
)
from mpca.tools.fakes import FakeShell, FakeVersionControl, InMemoryFilesystem
from mpca.tools.fs import LocalFilesystem
from mpca.tools.git import GitAdapter
from mpca.tools.shell import SubprocessShell


@dataclass(slots=True)
class ToolRegistry:
    fs: FilesystemAdapter
    vcs: VersionControlAdapter
    shell: ShellAdapter

    @classmethod
    def local(cls) -> ToolRegistry:
        return cls(fs=LocalFilesystem(), vcs=GitAdapter(), shell=SubprocessShell())

    @classmethod
    def in_memory(cls) -> ToolRegistry:
        return cls(fs=InMemoryFilesystem(), vcs=FakeVersionControl(), shell=FakeShell())


__all__ = [
    "CommandOutput",
    "FakeShell",
    "FakeVersionControl",
    "FilesystemAdapter",
    "GitAdapter",
    "InMemoryFilesystem",
    "LocalFilesystem",
    "ShellAdapter",
    "StatusEntry",
    "SubprocessShell",
    "ToolRegistry",
    "VersionControlAdapter",
]
