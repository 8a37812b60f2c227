"""Lark-based parser for static checks of equations.

Evaluation never goes through this tree; it is used to list the names an
equation refers to and to order formula variables before rendering.

Grammar mirrors the evaluator:
- Operators ``^`` then ``* // / %`` then ``+ -``, all left-associative
- Signed decimal literals, identifiers, parentheses
- A sign applies to one literal, name or group; ``--2`` is rejected
- Optional leading ``=``, then an optional ``+`` (also allowed after ``(``)
"""

from __future__ import annotations

from typing import Any, Mapping

from lark import Lark, Token, Tree, Visitor

from psvg.equations.errors import CyclicDependencyError, EquationSyntaxError
from psvg.equations.variables import as_variable

GRAMMAR = r"""
start: "="? "+"? expr

?expr: sum

?sum: product
    | sum "+" product   -> add
    | sum "-" product   -> sub

?product: power
    | product "*" power    -> mul
    | product "//" power   -> floordiv
    | product "/" power    -> div
    | product "%" power    -> mod

?power: atom
    | power "^" atom    -> pow

?atom: SIGNED_DECIMAL   -> number
    | operand
    | "-" operand       -> neg

?operand: NAME          -> ref
    | "(" "+"? expr ")"

SIGNED_DECIMAL: /-?\d+(\.\d+)?/
NAME: /[a-zA-Z_][a-zA-Z0-9_]*/

%import common.WS
%ignore WS
"""

_parser = Lark(GRAMMAR, parser="lalr", start="start")


def parse_equation(text: Any) -> Tree:
    """Parse equation text into a Lark tree.

    Args:
        text: Equation such as ``"=(w - 2*pad) / 3"``; numbers are accepted.

    Raises:
        EquationSyntaxError: If the text is not a well-formed equation.
    """
    try:
        return _parser.parse(str(text))
    except Exception as exc:
        pos = getattr(exc, "column", None)
        message = str(exc).strip().splitlines()
        raise EquationSyntaxError(message[0] if message else "Invalid equation", position=pos) from exc


class _RefCollector(Visitor):
    def __init__(self) -> None:
        self.refs: set[str] = set()

    def ref(self, tree: Tree) -> None:
        token = tree.children[0]
        if isinstance(token, Token):
            self.refs.add(str(token))


def extract_refs(tree: Tree) -> set[str]:
    """Return the identifiers referenced by a parsed equation."""
    collector = _RefCollector()
    collector.visit(tree)
    return collector.refs


def variable_refs(variables: Mapping[str, Any]) -> dict[str, set[str]]:
    """Map each formula-valued variable to the names its formula uses.

    Numeric and valueless variables map to an empty set.

    Raises:
        EquationSyntaxError: If a formula does not parse.
    """
    out: dict[str, set[str]] = {}
    for name, raw in variables.items():
        var = as_variable(name, raw)
        if isinstance(var.value, str):
            out[name] = extract_refs(parse_equation(var.value))
        else:
            out[name] = set()
    return out


def dependency_order(variables: Mapping[str, Any]) -> list[str]:
    """Order variables so each comes after every variable it uses.

    References to undefined names are ignored here; evaluation reports them.

    Raises:
        CyclicDependencyError: With the cycle path if formulas refer to each
            other in a loop.
        EquationSyntaxError: If a formula does not parse.
    """
    refs = variable_refs(variables)
    order: list[str] = []
    done: set[str] = set()
    stack: list[str] = []

    def visit(name: str) -> None:
        if name in done:
            return
        if name in stack:
            raise CyclicDependencyError(stack[stack.index(name):] + [name])
        stack.append(name)
        for dep in sorted(refs[name]):
            if dep in refs:
                visit(dep)
        stack.pop()
        done.add(name)
        order.append(name)

    for name in refs:
        visit(name)
    return order
