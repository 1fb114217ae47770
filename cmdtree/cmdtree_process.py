"""
Runs `exec` lines through the shell and captures their output.
"""
from __future__ import annotations

import subprocess
from dataclasses import dataclass
from typing import Optional

from cmdtree.cmdtree_datatypes import ExecFailure


@dataclass
class CommandResult:
    """Captured outcome of one shell command."""
    returncode: int
    stdout: bytes = b""
    stderr: bytes = b""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def status_text(self) -> str:
        if self.returncode < 0:
            return f"signal: {-self.returncode}"
        return f"exit status: {self.returncode}"


def decode_output(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


class ShellProcess:
    """Runs command strings through `<shell> -c`, blocking until they finish.

    Any object with a compatible `run(command) -> CommandResult` method can
    stand in for this one when handed to the ScriptRunner.
    """

    def __init__(self, shell: str = "sh", cwd: Optional[str] = None):
        self.shell = shell
        self.cwd = cwd

    def run(self, command: str) -> CommandResult:
        try:
            proc = subprocess.run(
                [self.shell, "-c", command],
                capture_output=True,
                cwd=self.cwd,
            )
        except OSError as e:
            raise ExecFailure(command, str(e)) from e
        return CommandResult(proc.returncode, proc.stdout or b"", proc.stderr or b"")
