"""
The `cmdtree` command: loads Make.cmd and runs the requested path.
"""
import sys
from typing import List, Optional

from cmdtree.cmdtree_config import RunnerConfig
from cmdtree.cmdtree_datatypes import ParseError, ScriptLoadError
from cmdtree.cmdtree_printer import Printer
from cmdtree.cmdtree_process import ShellProcess
from cmdtree.cmdtree_runtime import ScriptRunner

_COLORS = {
    "exec": "\x1b[36m",
    "set": "\x1b[33m",
    "param": "\x1b[32m",
    "depends": "\x1b[35m",
    "error": "\x1b[31m",
}
_RESET = "\x1b[0m"


class ConsoleSink:
    """Prints side-effect events as they happen: tagged ones as `[tag] message`."""

    def __init__(self, color: bool = False, out=None, err=None):
        self.color = color
        self.out = out or sys.stdout
        self.err = err or sys.stderr

    def _prefix(self, tag: str) -> str:
        if self.color and tag in _COLORS:
            return f"{_COLORS[tag]}[{tag}]{_RESET}"
        return f"[{tag}]"

    def __call__(self, event: dict):
        topics = event.get('topics') or ['stdout']
        stream = self.err if topics[0] == 'stderr' else self.out
        message = event.get('message', '')
        if len(topics) > 1:
            stream.write(f"{self._prefix(topics[1])} {message}\n")
        else:
            # Raw process output keeps its own line endings
            stream.write(message if message.endswith("\n") else message + "\n")
        stream.flush()


def main(argv: Optional[List[str]] = None) -> int:
    """Run `cmdtree [segment ...] [--value ...]` against the configured script."""
    tokens = list(sys.argv[1:] if argv is None else argv)
    try:
        config = RunnerConfig.load()
    except ScriptLoadError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    sink = ConsoleSink(color=config.color)
    runner = ScriptRunner(process=ShellProcess(shell=config.shell), sink=sink, debug=config.debug)
    try:
        runner.load_file(config.script)
    except ParseError as e:
        print(e.message, file=sys.stderr)
        return 1
    except ScriptLoadError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    result = runner.invoke(tokens)
    if result.status == 'error':
        if not any(not t.startswith("--") for t in tokens) and runner.nodes:
            print("Available commands:", file=sys.stderr)
            print(Printer().outline(runner.nodes), file=sys.stderr)
        return 1
    return 0


def run():
    try:
        raise SystemExit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        raise SystemExit(130)
