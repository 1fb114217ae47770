"""
The cmdtree execution engine.

`Environment` is the single variable store of an invocation. `Evaluator`
runs statement sequences against it and walks the node tree: a node's own
statements always run, then either one named sub-node (path mode) or every
direct sub-node (no-path mode) follows.
"""

from __future__ import annotations

import operator
import os
import re
import sys
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from cmdtree.cmdtree_datatypes import (
    Node, Statement, Command, Exec, Assignment, Depends, If, For, Condition,
    SubcommandNotFound, ExecFailure
)
from cmdtree.cmdtree_process import ShellProcess, decode_output


_COMPARATORS: Dict[str, Callable[[str, str], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    "<": operator.lt,
}


class Environment:
    """Flat string-to-string variable store, shared by reference for a whole run."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None):
        self.vars: Dict[str, str] = {}
        self._pattern: Optional[re.Pattern] = None
        for k, v in (initial or {}).items():
            self.set(k, v)

    def set(self, name: str, value: str):
        if name not in self.vars:
            self._pattern = None
        self.vars[name] = value

    def get(self, name: str, default: Any = None) -> Any:
        return self.vars.get(name, default)

    def __getitem__(self, name: str) -> str:
        return self.vars[name]

    def __contains__(self, name: str) -> bool:
        return name in self.vars

    def __len__(self) -> int:
        return len(self.vars)

    @property
    def bindings(self) -> Dict[str, str]:
        return dict(self.vars)

    def _substitution_pattern(self) -> Optional[re.Pattern]:
        if self._pattern is None:
            names = sorted((n for n in self.vars if n), key=len, reverse=True)
            if not names:
                return None
            # Longest name first, so `$ab` prefers `ab` over `a`
            self._pattern = re.compile(r"\$(" + "|".join(re.escape(n) for n in names) + ")")
        return self._pattern

    def expand(self, text: str) -> str:
        """Replaces `$name` for every bound name; unbound references stay literal.

        Single left-to-right pass: substituted values are not scanned again.
        """
        if "$" not in text:
            return text
        pattern = self._substitution_pattern()
        if pattern is None:
            return text
        return pattern.sub(lambda m: self.vars[m.group(1)], text)

    def eval_condition(self, cond: Condition) -> bool:
        compare = _COMPARATORS.get(cond.op)
        if compare is None:
            return False
        return compare(self.expand(cond.left), self.expand(cond.right))

    def __repr__(self) -> str:
        keys = ', '.join(self.vars.keys())
        return f"<Environment bindings=[{keys}]>"


class Evaluator:
    """The cmdtree execution engine."""

    def __init__(self, process: Optional[Any] = None,
                 sink: Optional[Callable[[dict], None]] = None,
                 debug: Optional[bool] = None):
        self.process = process or ShellProcess()
        # Every diagnostic is recorded here; `sink` additionally sees each one as it happens
        self.side_effects: List[dict] = []
        self.sink = sink
        self.debug = bool(os.environ.get("CMDTREE_DEBUG")) if debug is None else debug

    def _dbg(self, *parts):
        if self.debug:
            print("[DBG]", *parts, file=sys.stderr)

    def _emit(self, stream: str, tag: Optional[str], message: str):
        topics = [stream, tag] if tag else [stream]
        event = {"topics": topics, "message": message}
        self.side_effects.append(event)
        if self.sink is not None:
            self.sink(event)

    # --- Statements ---

    def execute_statements(self, statements: Sequence[Statement], path: List[str],
                           env: Environment, registry: Mapping[str, Node]):
        for stmt in statements:
            match stmt:
                case Command():
                    # Declaring a sub-command does not run it
                    continue
                case Exec(command=command):
                    self._run_exec(command, env)
                case Assignment(name=name, value=value):
                    expanded = env.expand(value)
                    env.set(name, expanded)
                    self._emit("stdout", "set", f"{name} = {expanded}")
                case Depends(names=names):
                    for dep in names:
                        dep_node = registry.get(dep)
                        if dep_node is None:
                            self._dbg("depends: skipping unknown", dep)
                            continue
                        self._emit("stdout", "depends", dep)
                        self.execute_node(dep_node, [], env, registry, (), None)
                case If(condition=condition, then_block=then_block, else_block=else_block):
                    if env.eval_condition(condition):
                        self.execute_statements(then_block, path, env, registry)
                    elif else_block is not None:
                        self.execute_statements(else_block, path, env, registry)
                case For(var=var, items=items, body=body):
                    for item in items:
                        env.set(var, env.expand(item))
                        self.execute_statements(body, path, env, registry)
                case _:
                    raise TypeError(f"Unsupported statement: {type(stmt).__name__}")

    def _run_exec(self, command: str, env: Environment):
        expanded = env.expand(command)
        self._emit("stdout", "exec", expanded.strip())
        try:
            result = self.process.run(expanded)
        except ExecFailure as e:
            self._emit("stderr", "error", str(e))
            return
        if result.stdout:
            self._emit("stdout", None, decode_output(result.stdout))
        if not result.ok:
            self._emit("stderr", "error", f"Command failed with status: {result.status_text()}")
            if result.stderr:
                self._emit("stderr", None, decode_output(result.stderr))

    # --- Nodes ---

    def execute_node(self, node: Node, path: List[str], env: Environment,
                     registry: Mapping[str, Node], args: Sequence[str] = (),
                     subpath: Optional[Sequence[str]] = None):
        """Runs `node` and then descends according to `subpath`.

        subpath None runs every direct sub-node; an empty subpath stops at
        this node; otherwise the head names the sub-node to descend into.
        """
        path.append(node.name)
        self._dbg("enter", "/".join(path), "subpath", subpath)
        try:
            for param, arg in zip(node.params, args):
                env.set(param, arg)
                self._emit("stdout", "param", f"{param} = {arg}")

            self.execute_statements(node.statements, path, env, registry)

            if subpath is None:
                for child in node.subnodes():
                    self.execute_node(child, path, env, registry, (), None)
            elif subpath:
                head, tail = subpath[0], subpath[1:]
                try:
                    child = self._find_subnode(node, head)
                except SubcommandNotFound as e:
                    self._emit("stderr", "error", str(e))
                else:
                    self.execute_node(child, path, env, registry, (), tail)
        finally:
            path.pop()
            self._dbg("leave", node.name)

    def _find_subnode(self, node: Node, name: str) -> Node:
        child = node.find_subnode(name)
        if child is None:
            raise SubcommandNotFound(name, node.name)
        return child
