"""
A pretty-printer for cmdtree ASTs.
"""
import re

from cmdtree.cmdtree_datatypes import (
    Node, Command, Exec, Assignment, Depends, If, For, Condition
)

_BARE_VALUE = re.compile(r'[^\s"{}\[\](),=!<>#]+')


class Printer:
    """Formats cmdtree AST objects into readable, valid script source."""

    def __init__(self, indent_width=4):
        self._indent_char = " " * indent_width
        self._handlers = self._create_handlers()

    def pformat(self, obj, level=0):
        """Public entry point to format an object."""
        handler = self._get_handler(obj)
        return handler(obj, level)

    def _get_handler(self, obj):
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        # A whole program is a sequence of top-level nodes
        if isinstance(obj, (tuple, list)):
            return self._pformat_program
        return lambda o, l: repr(o)

    def _create_handlers(self):
        return {
            Node: self._pformat_node,
            Command: self._pformat_command,
            Exec: self._pformat_exec,
            Assignment: self._pformat_assignment,
            Depends: self._pformat_depends,
            If: self._pformat_if,
            For: self._pformat_for,
            Condition: self._pformat_condition,
            str: self._pformat_value,
        }

    def _pformat_value(self, obj, level):
        if _BARE_VALUE.fullmatch(obj):
            return obj
        escaped = obj.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'

    def _pformat_program(self, obj, level):
        return "\n\n".join(self.pformat(n, level) for n in obj)

    def _pformat_block(self, statements, level):
        if not statements:
            return "{ }"
        indent = self._indent_char * (level + 1)
        lines = [f"{indent}{self.pformat(s, level + 1)}" for s in statements]
        closing = self._indent_char * level
        return "{\n" + "\n".join(lines) + f"\n{closing}}}"

    def _pformat_node(self, obj, level):
        params = f"({', '.join(obj.params)})" if obj.params else ""
        lines = [f"/// {line}".rstrip() for line in (obj.doc or "").splitlines()]
        lines.append(f"{obj.name}{params} {self._pformat_block(obj.statements, level)}")
        # The caller indents the first line only
        indent = self._indent_char * level
        return f"\n{indent}".join(lines)

    def _pformat_command(self, obj, level):
        return self._pformat_node(obj.node, level)

    def _pformat_exec(self, obj, level):
        return f"exec {obj.command}"

    def _pformat_assignment(self, obj, level):
        return f"{obj.name} = {self._pformat_value(obj.value, level)}"

    def _pformat_depends(self, obj, level):
        return f"depends {', '.join(obj.names)}"

    def _pformat_condition(self, obj, level):
        left = self._pformat_value(obj.left, level)
        right = self._pformat_value(obj.right, level)
        return f"{left} {obj.op} {right}"

    def _pformat_if(self, obj, level):
        out = f"if {self._pformat_condition(obj.condition, level)} {self._pformat_block(obj.then_block, level)}"
        else_block = obj.else_block
        if else_block is None:
            return out
        if len(else_block) == 1 and isinstance(else_block[0], If):
            return f"{out} else {self._pformat_if(else_block[0], level)}"
        return f"{out} else {self._pformat_block(else_block, level)}"

    def _pformat_for(self, obj, level):
        items = ", ".join(self._pformat_value(i, level) for i in obj.items)
        return f"for {obj.var} in [{items}] {self._pformat_block(obj.body, level)}"

    # --- Listings ---

    def outline(self, nodes, level=0):
        """A command listing: one line per node, sub-commands indented."""
        lines = []
        for node in nodes:
            sig = node.name + (f"({', '.join(node.params)})" if node.params else "")
            line = f"{'  ' * level}{sig}"
            if node.doc:
                line = f"{line.ljust(24)}  {node.doc.splitlines()[0]}"
            lines.append(line.rstrip())
            sub = self.outline(node.subnodes(), level + 1)
            if sub:
                lines.append(sub)
        return "\n".join(lines)
