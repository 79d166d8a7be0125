from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path

from mpca.errors import InvalidPath, PathNotFound, PermissionDenied, ReadFailure, WriteFailure
from mpca.tools.base import FilesystemAdapter

logger = logging.getLogger(__name__)


class LocalFilesystem(FilesystemAdapter):
    """Filesystem adapter backed by the real disk.

    Writes are atomic: content lands in a temporary file next to the target and
    is renamed over it, so a killed process never leaves a truncated file.
    """

    def read_text(self, path: Path) -> str:
        try:
            return Path(path).read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise PathNotFound(path) from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise ReadFailure(path, str(exc)) from exc

    def write(self, path: Path, content: str) -> None:
        target = Path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except PermissionError as exc:
            raise PermissionDenied(target.parent) from exc
        except OSError as exc:
            raise WriteFailure(target, str(exc)) from exc

        tmp_name: str | None = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=target.parent,
                prefix=f".{target.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
            if target.exists():
                shutil.copymode(target, tmp_name)
            else:
                os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, target)
            tmp_name = None
        except PermissionError as exc:
            raise PermissionDenied(target) from exc
        except OSError as exc:
            raise WriteFailure(target, str(exc)) from exc
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
        logger.debug("wrote %s (%d bytes)", target, len(content))

    def list_entries(self, path: Path) -> list[str]:
        directory = Path(path)
        if not directory.exists():
            raise PathNotFound(directory)
        if not directory.is_dir():
            raise InvalidPath(directory)
        try:
            return sorted(entry.name for entry in directory.iterdir())
        except PermissionError as exc:
            raise PermissionDenied(directory) from exc
        except OSError as exc:
            raise ReadFailure(directory, str(exc)) from exc

    def exists(self, path: Path) -> bool:
        return Path(path).exists()

    def create_dir_all(self, path: Path) -> None:
        directory = Path(path)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except FileExistsError as exc:
            raise InvalidPath(directory, "exists and is not a directory") from exc
        except PermissionError as exc:
            raise PermissionDenied(directory) from exc
        except OSError as exc:
            raise WriteFailure(directory, str(exc)) from exc

    def is_dir(self, path: Path) -> bool:
        return Path(path).is_dir()

    def is_file(self, path: Path) -> bool:
        return Path(path).is_file()
