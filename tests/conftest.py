"""
Shared test fixtures for the cmdtree test suite.
"""

import pytest

from cmdtree.cmdtree_datatypes import ExecFailure
from cmdtree.cmdtree_process import CommandResult


class RecordingProcess:
    """Stands in for ShellProcess: records commands, replays canned results."""

    def __init__(self, results=None):
        self.commands = []
        self.results = dict(results or {})

    def run(self, command):
        self.commands.append(command)
        result = self.results.get(command)
        if isinstance(result, Exception):
            raise result
        if result is None:
            return CommandResult(0, b"", b"")
        return result


@pytest.fixture
def process():
    return RecordingProcess()


@pytest.fixture
def failing_spawn():
    return ExecFailure("missing-tool", "No such file or directory")
