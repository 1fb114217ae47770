"""
Defines the core data types for the cmdtree runtime.

This module provides the immutable AST produced by the parser (nodes,
statements and conditions) and the exception types shared by the
parser, the interpreter and the runtime.
"""

from __future__ import annotations

from abc import ABC
from dataclasses import dataclass, field
from typing import Optional, Tuple


# =================================================================
# Exceptions
# =================================================================

class ScriptLoadError(Exception):
    """The script file could not be read (or configured)."""


class ParseError(ScriptLoadError):
    def __init__(self, message: str, line: Optional[int] = None, col: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.line = line
        self.col = col


class InvocationError(Exception):
    """The command line did not name a runnable node."""


class SubcommandNotFound(Exception):
    def __init__(self, key: str, parent: str):
        super().__init__(f"Subcommand '{key}' not found in '{parent}'")
        self.key = key
        self.parent = parent


class ExecFailure(Exception):
    """A shell command could not be spawned."""
    def __init__(self, command: str, reason: str):
        super().__init__(f"Failed to execute command: {reason}")
        self.command = command
        self.reason = reason


# =================================================================
# AST
# =================================================================

class Statement(ABC):
    """Abstract base class for every element of a node body."""
    pass


@dataclass(frozen=True)
class Condition:
    """A string comparison; both operands are expanded before comparing."""
    left: str
    op: str
    right: str


@dataclass(frozen=True)
class Node:
    """A named command.

    `statements` is the node body. Sub-commands are declared inside the
    body as `Command` statements, so the tree is navigated through it.
    """
    name: str
    params: Tuple[str, ...] = ()
    statements: Tuple[Statement, ...] = ()
    doc: Optional[str] = field(default=None, compare=False)
    line: Optional[int] = field(default=None, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "params", tuple(self.params))
        object.__setattr__(self, "statements", tuple(self.statements))

    def subnodes(self) -> Tuple['Node', ...]:
        """Direct sub-commands, in declaration order."""
        return tuple(s.node for s in self.statements if isinstance(s, Command))

    def find_subnode(self, name: str) -> Optional['Node']:
        for child in self.subnodes():
            if child.name == name:
                return child
        return None


@dataclass(frozen=True)
class Command(Statement):
    node: Node


@dataclass(frozen=True)
class Exec(Statement):
    command: str


@dataclass(frozen=True)
class Assignment(Statement):
    name: str
    value: str


@dataclass(frozen=True)
class Depends(Statement):
    names: Tuple[str, ...]

    def __post_init__(self):
        object.__setattr__(self, "names", tuple(self.names))


@dataclass(frozen=True)
class If(Statement):
    condition: Condition
    then_block: Tuple[Statement, ...]
    else_block: Optional[Tuple[Statement, ...]] = None

    def __post_init__(self):
        object.__setattr__(self, "then_block", tuple(self.then_block))
        if self.else_block is not None:
            object.__setattr__(self, "else_block", tuple(self.else_block))


@dataclass(frozen=True)
class For(Statement):
    var: str
    items: Tuple[str, ...]
    body: Tuple[Statement, ...]

    def __post_init__(self):
        object.__setattr__(self, "items", tuple(self.items))
        object.__setattr__(self, "body", tuple(self.body))
