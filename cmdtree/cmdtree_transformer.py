"""
Transforms the raw lark parse tree into the cmdtree AST (cmdtree_datatypes).
"""

from __future__ import annotations

from lark import Token, Transformer, v_args

from cmdtree.cmdtree_datatypes import (
    Node, Command, Exec, Assignment, Depends, If, For, Condition
)


def _unquote(text: str) -> str:
    body = text[1:-1]
    out = []
    i = 0
    while i < len(body):
        ch = body[i]
        # Only \" and \\ are escapes; anything else is kept as written
        if ch == "\\" and i + 1 < len(body) and body[i + 1] in ('"', "\\"):
            out.append(body[i + 1])
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


class _Params(tuple):
    """Marks the parameter list among a node's children."""


@v_args(inline=True)
class CmdTreeTransformer(Transformer):

    # --- Terminals ---

    def STRING(self, tok):
        return _unquote(str(tok))

    def BARE(self, tok):
        return str(tok)

    # --- Structure ---

    def start(self, *nodes):
        return tuple(nodes)

    def node(self, *children):
        doc_lines = []
        name = None
        line = None
        params = ()
        body = []
        for ch in children:
            if isinstance(ch, Token) and ch.type == "DOC_COMMENT":
                doc_lines.append(str(ch)[3:].strip())
            elif isinstance(ch, Token) and ch.type == "NAME":
                name = str(ch)
                line = ch.line
            elif isinstance(ch, _Params):
                params = tuple(ch)
            elif isinstance(ch, list):
                body = ch
        doc = "\n".join(doc_lines) if doc_lines else None
        return Node(name, params, tuple(body), doc=doc, line=line)

    def params(self, *names):
        return _Params(str(n) for n in names)

    def block(self, *statements):
        out = []
        for stmt in statements:
            # Nested declarations arrive as bare Nodes
            if isinstance(stmt, Node):
                stmt = Command(stmt)
            out.append(stmt)
        return out

    # --- Statements ---

    def exec(self, line):
        return Exec(str(line).strip())

    def assignment(self, name, value):
        return Assignment(str(name), value)

    def depends(self, *names):
        return Depends(tuple(str(n) for n in names))

    def if_stmt(self, condition, then_block, else_part=None):
        if isinstance(else_part, If):
            # `else if` chains nest as a single-statement else block
            else_part = [else_part]
        return If(condition, tuple(then_block),
                  tuple(else_part) if else_part is not None else None)

    def condition(self, left, op, right):
        return Condition(left, str(op), right)

    def for_stmt(self, var, items, body):
        return For(str(var), items, tuple(body))

    def items(self, *values):
        return tuple(values)
