"""
Loading scripts and running invocations against them.
"""
from __future__ import annotations

import collections.abc
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Literal, Optional, Sequence, Tuple

from lark import Lark
from lark.exceptions import UnexpectedCharacters, UnexpectedEOF, UnexpectedInput, UnexpectedToken

from cmdtree.cmdtree_datatypes import Node, ScriptLoadError, ParseError, InvocationError
from cmdtree.cmdtree_interpreter import Environment, Evaluator
from cmdtree.cmdtree_transformer import CmdTreeTransformer

GRAMMAR_PATH = Path(__file__).parent / "grammar" / "cmdtree.lark"

# ===================================================================
# 1. Registry & Invocation
# ===================================================================


class NodeRegistry(collections.abc.Mapping):
    """Name -> Node lookup over the top-level declarations.

    The namespace is flat; a later declaration replaces an earlier one
    with the same name.
    """

    def __init__(self, nodes: Iterable[Node] = ()):
        self._nodes: Dict[str, Node] = {}
        for node in nodes:
            self._nodes[node.name] = node

    def __getitem__(self, name: str) -> Node:
        return self._nodes[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        return f"<NodeRegistry [{', '.join(self._nodes)}]>"


@dataclass
class Invocation:
    path: List[str]
    args: List[str]

    @property
    def root(self) -> str:
        return self.path[0]

    @property
    def subpath(self) -> Optional[List[str]]:
        # A bare root runs its whole subtree
        return None if len(self.path) == 1 else self.path[1:]


def resolve_invocation(tokens: Sequence[str]) -> Invocation:
    """Splits command-line tokens into the command path and `--` flag values."""
    if not tokens:
        raise InvocationError("No command specified")
    path: List[str] = []
    args: List[str] = []
    for tok in tokens:
        if tok.startswith("--"):
            while tok.startswith("--"):
                tok = tok[2:]
            args.append(tok)
        else:
            path.append(tok)
    if not path:
        raise InvocationError("No command specified")
    return Invocation(path, args)


# ===================================================================
# 2. Script Execution
# ===================================================================

Token = Dict[str, Any]


@dataclass
class ExecutionResult:
    """The structured result of loading and running an invocation."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_token: Optional[Token] = None
    side_effects: List[Dict] = field(default_factory=list)

    def format_error(self) -> str:
        """Formats an error message with line and column if available."""
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if self.error_token and self.error_token.get('line') is not None:
            line = self.error_token.get('line')
            col = self.error_token.get('col')
            if not msg.startswith("Error on line "):
                col_info = f", col {col}" if col is not None else ""
                return f"Error on line {line}{col_info}: {msg}"
        return msg


class ScriptRunner:
    """Parses cmdtree scripts and runs invocations against them."""

    _parser: Optional[Lark] = None
    _transformer: Optional[CmdTreeTransformer] = None

    def __init__(self, process: Optional[Any] = None,
                 sink: Optional[Callable[[dict], None]] = None,
                 debug: Optional[bool] = None):
        if ScriptRunner._parser is None:
            ScriptRunner._parser = Lark(GRAMMAR_PATH.read_text(encoding="utf-8"),
                                        start="start", parser="lalr",
                                        propagate_positions=True)
        if ScriptRunner._transformer is None:
            ScriptRunner._transformer = CmdTreeTransformer()

        self.parser = ScriptRunner._parser
        self.transformer = ScriptRunner._transformer
        self.evaluator = Evaluator(process=process, sink=sink, debug=debug)

        self.nodes: Tuple[Node, ...] = ()
        self.registry = NodeRegistry()
        self.source: Optional[str] = None
        self.source_path: Optional[str] = None

    # --- Loading ---

    def _source_context(self, source: str, line: int, col: Optional[int], radius: int = 2) -> str:
        lines = source.splitlines()
        if not line or line < 1 or line > len(lines):
            return ""
        start = max(1, line - radius)
        end = min(len(lines), line + radius)
        width = len(str(end))
        out = []
        for i in range(start, end + 1):
            prefix = ">" if i == line else " "
            ln = str(i).rjust(width)
            out.append(f"{prefix} {ln} | {lines[i - 1]}")
            if i == line and col is not None:
                caret = " " * max(col - 1, 0)
                out.append(f"  {' ' * width} | {caret}^")
        return "\n".join(out)

    def _parse_error(self, e: UnexpectedInput, source: str) -> ParseError:
        match e:
            case UnexpectedEOF():
                base = "unexpected end of input"
            case UnexpectedToken(token=tok):
                expected = ", ".join(sorted(e.expected)) if e.expected else ""
                if tok.type == "$END":
                    base = "unexpected end of input"
                else:
                    base = f"unexpected {tok.type} {str(tok)!r}"
                if expected:
                    base += f"; expected one of: {expected}"
            case UnexpectedCharacters(char=ch):
                base = f"unexpected character {ch!r}"
            case _:
                base = str(e)
        line = e.line if isinstance(e.line, int) and e.line > 0 else None
        col = e.column if isinstance(e.column, int) and e.column > 0 else None
        if line is not None:
            message = f"ParseError: {base} (line {line}, col {col})"
            context = self._source_context(source, line, col)
            if context:
                message += "\n" + context
        else:
            message = f"ParseError: {base}"
        return ParseError(message, line, col)

    def parse(self, source: str) -> Tuple[Node, ...]:
        """Parses script text into its top-level nodes; raises ParseError."""
        try:
            tree = self.parser.parse(source)
        except UnexpectedInput as e:
            raise self._parse_error(e, source) from None
        return self.transformer.transform(tree)

    def load(self, source: str) -> Tuple[Node, ...]:
        nodes = self.parse(source)
        self.source = source
        self.nodes = nodes
        self.registry = NodeRegistry(nodes)
        return nodes

    def load_file(self, file_path: str) -> Tuple[Node, ...]:
        p = Path(file_path)
        try:
            source = p.read_text(encoding="utf-8")
        except OSError as e:
            raise ScriptLoadError(f"Cannot read script '{file_path}': {e.strerror or e}") from e
        nodes = self.load(source)
        self.source_path = str(p)
        return nodes

    # --- Running ---

    def _error_result(self, msg: str, token: Optional[Token] = None) -> ExecutionResult:
        self.evaluator._emit("stderr", "error", msg)
        return ExecutionResult(status='error', error_message=msg, error_token=token,
                               side_effects=list(self.evaluator.side_effects))

    def invoke(self, tokens: Sequence[str], env: Optional[Environment] = None) -> ExecutionResult:
        """Resolves `tokens` against the loaded script and runs the target node."""
        self.evaluator.side_effects.clear()
        try:
            invocation = resolve_invocation(tokens)
            root = self.registry.get(invocation.root)
            if root is None:
                raise InvocationError(f"Command '{invocation.root}' not found")
        except InvocationError as e:
            return self._error_result(str(e))

        env = env if env is not None else Environment()
        try:
            self.evaluator.execute_node(root, [], env, self.registry,
                                        invocation.args, invocation.subpath)
        except RecursionError:
            # No cycle guard: a cyclic `depends` recurses until Python gives up
            return self._error_result(
                f"RecursionError: maximum recursion depth exceeded while running '{root.name}'"
                " (cyclic depends?)")
        return ExecutionResult(status='success', value=env.bindings,
                               side_effects=list(self.evaluator.side_effects))

    def handle_script(self, source_code: str, tokens: Sequence[str]) -> ExecutionResult:
        """Loads `source_code` and runs one invocation against it."""
        self.evaluator.side_effects.clear()
        try:
            self.load(source_code)
        except ParseError as e:
            token = {'line': e.line, 'col': e.col} if e.line is not None else None
            return self._error_result(e.message, token)
        return self.invoke(tokens)
