from __future__ import annotations

import logging
import os
import re
import shlex
import signal
import subprocess
import sys
import threading
from pathlib import Path
from typing import IO

from mpca.errors import ShellCommandFailed
from mpca.tools.base import CommandOutput, ShellAdapter

logger = logging.getLogger(__name__)

SHELL_REQUIRED_PATTERN = re.compile(r"(?:\|\||&&|[|;<>`]|[$]\()")


def _command_payload(command: str) -> tuple[str | list[str], bool]:
    command_text = command.strip()
    if not command_text:
        raise ShellCommandFailed("command is empty", command=command)
    if SHELL_REQUIRED_PATTERN.search(command_text):
        return command_text, True
    try:
        return shlex.split(command_text), False
    except ValueError:
        return command_text, True


def _pump(stream: IO[str], sink: IO[str], buffer: list[str]) -> None:
    for chunk in iter(stream.readline, ""):
        buffer.append(chunk)
        sink.write(chunk)
        sink.flush()
    stream.close()


def _kill_group(proc: subprocess.Popen[str]) -> None:
    # The child leads its own session, so its pid is the process group id.
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


def _timed_out(command: str, timeout: float | None) -> ShellCommandFailed:
    return ShellCommandFailed(
        f"{command!r} timed out after {timeout:g}s",
        command=command,
        timed_out=True,
        timeout_seconds=timeout,
    )


class SubprocessShell(ShellAdapter):
    """Runs commands in their own process group so a timeout reaps every descendant."""

    def _spawn(self, command: str, cwd: Path | None) -> subprocess.Popen[str]:
        payload, used_shell = _command_payload(command)
        logger.debug("running %r in %s (shell=%s)", command, cwd or ".", used_shell)
        try:
            return subprocess.Popen(
                payload,
                cwd=cwd,
                shell=used_shell,
                text=True,
                errors="replace",
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as exc:
            raise ShellCommandFailed(f"could not start {command!r}: {exc}", command=command) from exc

    def run(
        self, command: str, cwd: Path | None = None, *, timeout: float | None = None
    ) -> CommandOutput:
        proc = self._spawn(command, cwd)
        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired as exc:
            _kill_group(proc)
            proc.communicate()
            raise _timed_out(command, timeout) from exc
        return CommandOutput(exit_code=proc.returncode, stdout=stdout, stderr=stderr)

    def run_streaming(
        self, command: str, cwd: Path | None = None, *, timeout: float | None = None
    ) -> CommandOutput:
        proc = self._spawn(command, cwd)
        stdout: list[str] = []
        stderr: list[str] = []
        pumps = [
            threading.Thread(target=_pump, args=(proc.stdout, sys.stdout, stdout), daemon=True),
            threading.Thread(target=_pump, args=(proc.stderr, sys.stderr, stderr), daemon=True),
        ]
        for pump in pumps:
            pump.start()
        try:
            exit_code = proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired as exc:
            _kill_group(proc)
            proc.wait()
            raise _timed_out(command, timeout) from exc
        finally:
            for pump in pumps:
                pump.join()
        return CommandOutput(exit_code=exit_code, stdout="".join(stdout), stderr="".join(stderr))
