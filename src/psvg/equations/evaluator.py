"""String-rewriting evaluator for equations.

An equation is reduced in four stages, each of which rewrites the text and
hands it on:

1. variable substitution -- identifiers are replaced by their numbers,
   resolving formula-valued variables recursively;
2. parenthesis resolution -- the first ``(`` is resolved by recursing on the
   text after it, splicing the number back in;
3. operator evaluation -- the leftmost match of the highest tier is reduced
   and the scan restarts from the top tier;
4. value parsing -- the residual text becomes a number.

Supports:
- Operators ``^`` (tier 1), ``* // / %`` (tier 2), ``+ -`` (tier 3),
  all left-associative
- Optionally signed decimal literals (``-2``, ``3.5``)
- A single leading ``=`` as a formula marker
"""

from __future__ import annotations

import math
import re
from decimal import Decimal
from typing import Any, Callable, Mapping, NamedTuple, Sequence

from psvg.equations.errors import (
    CyclicDependencyError,
    DepthExceededError,
    DisabledVariableError,
    EmptyExpressionError,
    InvalidValueError,
    OperationFailureError,
    ParenthesisMismatchError,
    ParseFailureError,
    UndefinedVariableError,
)
from psvg.equations.variables import Number, as_variable

DEFAULT_MAX_DEPTH = 100

TraceFn = Callable[[int, str, str], None]

_VARIABLE_RE = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*")

# Right operand may carry a sign.  A left operand's "-" counts as a sign
# only when it does not directly follow a digit or a decimal point.
_LEFT_OPERAND = r"(?:(?<![\d.])-)?\d+(?:\.\d+)?"
_RIGHT_OPERAND = r"-?\d+(?:\.\d+)?"

_INT_RE = re.compile(r"[+-]?\d+")
_FLOAT_RE = re.compile(r"[+-]?\d+(?:\.\d*)?(?:[eE][+-]?\d+)?")

# Integer powers are computed exactly up to this exponent, as floats beyond.
_MAX_EXACT_EXPONENT = 64

# Exact integers wider than this are past float range and are rejected.
_MAX_INT_BITS = 1024


# ---------------------------------------------------------------------------
# Number helpers
# ---------------------------------------------------------------------------


def format_number(value: Number) -> str:
    """Render a number as plain positional text (never exponent notation).

    Integral floats drop their fractional part: ``2.0`` -> ``"2"``.
    """
    if isinstance(value, bool):
        value = int(value)
    if isinstance(value, int):
        return str(value)
    if value.is_integer():
        return str(int(value))
    text = repr(value)
    if "e" in text or "E" in text:
        text = format(Decimal(text), "f")
    return text


def parse_value(text: str) -> Number:
    """Convert residual equation text to a number.

    Args:
        text: Text left after all reductions, e.g. ``" 14 "``.

    Returns:
        ``int`` for integer text, ``float`` otherwise.

    Raises:
        EmptyExpressionError: If *text* is blank.
        ParseFailureError: If *text* is not a finite number.
    """
    stripped = text.strip()
    if not stripped:
        raise EmptyExpressionError(text)
    if _INT_RE.fullmatch(stripped):
        try:
            value = int(stripped)
        except ValueError as exc:
            raise ParseFailureError(text) from exc
        if value.bit_length() > _MAX_INT_BITS:
            raise ParseFailureError(text)
        return value
    if not _FLOAT_RE.fullmatch(stripped):
        raise ParseFailureError(text)
    value = float(stripped)
    if not math.isfinite(value):
        raise ParseFailureError(text)
    return value


def _check_number(value: Number, name: str | None = None) -> None:
    """Raise if *value* cannot be written back into equation text."""
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidValueError(f"non-finite number {value!r}", name)
    if isinstance(value, int) and value.bit_length() > _MAX_INT_BITS:
        raise InvalidValueError("integer too large", name)


def check_parentheses(equation: str) -> None:
    """Raise if *equation* has unequal counts of ``(`` and ``)``."""
    opening = equation.count("(")
    closing = equation.count(")")
    if opening > closing:
        raise ParenthesisMismatchError("More opening parentheses than closing", equation)
    if closing > opening:
        raise ParenthesisMismatchError("More closing parentheses than opening", equation)


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------


def _power(a: Number, b: Number) -> Number:
    if isinstance(a, int) and isinstance(b, int) and 0 <= b <= _MAX_EXACT_EXPONENT:
        return a ** b
    return math.pow(a, b)


def _floor_divide(a: Number, b: Number) -> Number:
    if isinstance(a, int) and isinstance(b, int):
        return a // b
    if b == 0:
        raise ZeroDivisionError("float floor division by zero")
    return math.floor(a / b)


def _remainder(a: Number, b: Number) -> Number:
    # Sign follows the dividend.
    if isinstance(a, int) and isinstance(b, int):
        r = abs(a) % abs(b)
        return -r if a < 0 else r
    return math.fmod(a, b)


class Operator(NamedTuple):
    symbol: str
    func: Callable[[Number, Number], Number]
    pattern: re.Pattern[str]


def _operator(symbol: str, func: Callable[[Number, Number], Number]) -> Operator:
    pattern = re.compile(
        rf"(?:^\+)?(?P<a>{_LEFT_OPERAND})\s*{re.escape(symbol)}\s*(?P<b>{_RIGHT_OPERAND})"
    )
    return Operator(symbol, func, pattern)


# Highest priority first; within a tier, declaration order breaks ties.
OPERATOR_TIERS: tuple[tuple[Operator, ...], ...] = (
    (_operator("^", _power),),
    (
        _operator("*", lambda a, b: a * b),
        _operator("//", _floor_divide),
        _operator("/", lambda a, b: a / b),
        _operator("%", _remainder),
    ),
    (
        _operator("+", lambda a, b: a + b),
        _operator("-", lambda a, b: a - b),
    ),
)


def _find_reduction(equation: str) -> tuple[re.Match[str], Operator] | None:
    """Return the leftmost match in the highest tier that has one."""
    for tier in OPERATOR_TIERS:
        best: tuple[re.Match[str], Operator] | None = None
        for op in tier:
            m = op.pattern.search(equation)
            if m is None:
                continue
            if best is None or m.start() < best[0].start():
                best = (m, op)
        if best is not None:
            return best
    return None


def _apply(op: Operator, a: Number, b: Number, equation: str) -> Number:
    try:
        result = op.func(a, b)
    except (ArithmeticError, ValueError) as exc:
        raise OperationFailureError(
            f"Failed to evaluate {format_number(a)} {op.symbol} {format_number(b)}",
            equation,
        ) from exc
    if isinstance(result, float) and not math.isfinite(result):
        raise OperationFailureError(
            f"Non-finite result for {format_number(a)} {op.symbol} {format_number(b)}",
            equation,
        )
    if isinstance(result, int) and result.bit_length() > _MAX_INT_BITS:
        raise OperationFailureError(
            f"Result too large for {format_number(a)} {op.symbol} {format_number(b)}",
            equation,
        )
    return result


# ---------------------------------------------------------------------------
# Evaluation state
# ---------------------------------------------------------------------------


class _Evaluation:
    """Holds what one top-level call threads through the stages."""

    def __init__(
        self,
        variables: Mapping[str, Any] | None,
        cache: dict[str, Number] | None,
        max_depth: int,
        trace: TraceFn | None,
    ) -> None:
        self.variables = variables if variables is not None else {}
        self.cache = cache if cache is not None else {}
        self.max_depth = max_depth
        self.trace = trace

    def _emit(self, depth: int, stage: str, text: str) -> None:
        if self.trace is not None:
            self.trace(depth, stage, text)

    def _check_depth(self, depth: int, equation: str) -> None:
        if depth > self.max_depth:
            raise DepthExceededError(self.max_depth, equation)

    def run(self, equation: Any, dependencies: Sequence[str], depth: int) -> Number:
        if isinstance(equation, (int, float)) and not isinstance(equation, bool):
            _check_number(equation)
            text = format_number(equation)
        else:
            text = str(equation)
        self._check_depth(depth, text)
        self._emit(depth, "evaluate", text)
        if text.startswith("="):
            text = text[1:]
        text = self.substitute(text, dependencies, depth)
        result = self.resolve(text, depth)
        if isinstance(result, str):
            raise ParenthesisMismatchError("Unexpected closing parenthesis", text)
        return result

    # -- stage 1 -----------------------------------------------------------

    def substitute(self, equation: str, dependencies: Sequence[str], depth: int) -> str:
        self._emit(depth, "substitute", equation)
        while True:
            match = _VARIABLE_RE.search(equation)
            if match is None:
                break
            name = match.group(0)
            value = self.lookup(name, equation, dependencies, depth)
            updated = equation[: match.start()] + format_number(value) + equation[match.end():]
            if updated == equation:
                raise UndefinedVariableError(name, equation)
            equation = updated
        check_parentheses(equation)
        return equation

    def lookup(
        self, name: str, equation: str, dependencies: Sequence[str], depth: int
    ) -> Number:
        raw = self.variables.get(name)
        if raw is None:
            raise UndefinedVariableError(name, equation)
        var = as_variable(name, raw)
        if var.value is None:
            raise UndefinedVariableError(name, equation)
        if var.disabled:
            raise DisabledVariableError(name, equation)
        if name in dependencies:
            start = list(dependencies).index(name)
            raise CyclicDependencyError([*dependencies[start:], name])
        if name in self.cache:
            return self.cache[name]
        if isinstance(var.value, str):
            value = self.run(var.value, [*dependencies, name], depth + 1)
        else:
            _check_number(var.value, name)
            value = var.value
        self.cache[name] = value
        return value

    # -- stage 2 -----------------------------------------------------------

    def resolve(self, equation: str, depth: int) -> Number | str:
        """Resolve parentheses in *equation*.

        Returns a number once no parentheses remain.  When a ``)`` comes
        before any ``(``, it closes a group opened by the caller: the text
        up to it is reduced and returned, as text, joined to whatever
        follows it.
        """
        while True:
            self._emit(depth, "parentheses", equation)
            opening = equation.find("(")
            closing = equation.find(")")
            if opening < 0 and closing < 0:
                return self.reduce(equation, depth)
            if opening >= 0 and closing < 0:
                raise ParenthesisMismatchError("Missing closing parenthesis", equation)
            if opening < 0 or closing < opening:
                value = self.reduce(equation[:closing], depth)
                return format_number(value) + equation[closing + 1:]

            self._check_depth(depth + 1, equation)
            inner = self.resolve(equation[opening + 1:], depth + 1)
            if not isinstance(inner, str):
                inner = format_number(inner)
            updated = equation[:opening] + inner
            if updated == equation:
                raise ParenthesisMismatchError("Failed to resolve parentheses", equation)
            equation = updated

    # -- stage 3 -----------------------------------------------------------

    def reduce(self, equation: str, depth: int) -> Number:
        while True:
            self._emit(depth, "operators", equation)
            found = _find_reduction(equation)
            if found is None:
                self._emit(depth, "value", equation)
                return parse_value(equation)
            m, op = found
            result = _apply(op, parse_value(m.group("a")), parse_value(m.group("b")), equation)
            updated = equation[: m.start()] + format_number(result) + equation[m.end():]
            if updated == equation:
                raise OperationFailureError("Failed to evaluate operation", equation)
            equation = updated


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def evaluate(
    equation: Any,
    variables: Mapping[str, Any] | None = None,
    dependencies: Sequence[str] | None = None,
    *,
    cache: dict[str, Number] | None = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
    trace: TraceFn | None = None,
) -> Number:
    """Evaluate an equation, substituting variables first.

    Args:
        equation: Equation text such as ``"=width / 2 + margin"``.  Numbers
            are accepted and rendered to text first.
        variables: Mapping of names to :class:`Variable` objects or plain
            dicts (``{"value": ..., "disabled": ...}``).  Never mutated.
        dependencies: Names already being resolved by the caller.
        cache: Resolved numbers by name.  Filled in as formula variables
            are resolved; pass the same dict to share results across calls.
        max_depth: Limit on nested substitutions plus nested parentheses.
        trace: Called as ``trace(depth, stage, text)`` at each stage.

    Returns:
        The resulting number.

    Raises:
        EquationError: A subclass describing the first failure.
    """
    state = _Evaluation(variables, cache, max_depth, trace)
    return state.run(equation, list(dependencies or []), 0)


def substitute_variables(
    equation: str,
    variables: Mapping[str, Any] | None = None,
    dependencies: Sequence[str] | None = None,
    *,
    cache: dict[str, Number] | None = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> str:
    """Replace every identifier in *equation* with its number.

    The returned text has balanced parentheses and no identifiers.
    """
    state = _Evaluation(variables, cache, max_depth, None)
    return state.substitute(equation, list(dependencies or []), 0)


def resolve_parentheses(equation: str, *, max_depth: int = DEFAULT_MAX_DEPTH) -> Number:
    """Evaluate an identifier-free equation, parentheses included."""
    check_parentheses(equation)
    result = _Evaluation(None, None, max_depth, None).resolve(equation, 0)
    if isinstance(result, str):
        raise ParenthesisMismatchError("Unexpected closing parenthesis", equation)
    return result


def evaluate_operators(equation: str) -> Number:
    """Evaluate a flat (parenthesis-free, identifier-free) equation."""
    return _Evaluation(None, None, DEFAULT_MAX_DEPTH, None).reduce(equation, 0)
