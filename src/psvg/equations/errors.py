"""Error types for equation substitution and evaluation.

Every error carries a stable ``code`` and a message that depends only on
the failing input, so identical failures produce identical messages.
"""

from __future__ import annotations


class EquationError(Exception):
    """Base class for all equation-related errors."""

    code = "equation_error"


class UndefinedVariableError(EquationError):
    """Reference to a name with no entry or no value.

    Attributes:
        name: The unresolved identifier.
        equation: The equation text being substituted.
    """

    code = "undefined_variable"

    def __init__(self, name: str, equation: str | None = None) -> None:
        self.name = name
        self.equation = equation
        msg = f"Undefined variable: {name!r}"
        if equation is not None:
            msg += f" in {equation!r}"
        super().__init__(msg)


class DisabledVariableError(EquationError):
    """Reference to a variable flagged as disabled."""

    code = "disabled_variable"

    def __init__(self, name: str, equation: str | None = None) -> None:
        self.name = name
        self.equation = equation
        msg = f"Variable is disabled: {name!r}"
        if equation is not None:
            msg += f" in {equation!r}"
        super().__init__(msg)


class CyclicDependencyError(EquationError):
    """Raised when a variable is reached again while it is being resolved.

    Attributes:
        cycle_path: Names along the cycle, ending with the repeated name.
    """

    code = "cyclic_dependency"

    def __init__(self, cycle_path: list[str]) -> None:
        self.cycle_path = cycle_path
        super().__init__(f"Cyclic dependency: {' -> '.join(cycle_path)}")


class ParenthesisMismatchError(EquationError):
    """Unbalanced, unclosed or misordered parentheses."""

    code = "parenthesis_mismatch"

    def __init__(self, message: str, equation: str) -> None:
        self.equation = equation
        super().__init__(f"{message}: {equation!r}")


class OperationFailureError(EquationError):
    """A binary operation could not be reduced to a finite number."""

    code = "operation_failure"

    def __init__(self, message: str, equation: str) -> None:
        self.equation = equation
        super().__init__(f"{message}: {equation!r}")


class EmptyExpressionError(EquationError):
    """Nothing left to parse after all reductions."""

    code = "empty_expression"

    def __init__(self, text: str) -> None:
        self.text = text
        super().__init__(f"Empty expression: {text!r}")


class ParseFailureError(EquationError):
    """Residual text is not a number."""

    code = "parse_failure"

    def __init__(self, text: str) -> None:
        self.text = text
        super().__init__(f"Failed to parse equation: {text!r}")


class InvalidValueError(EquationError):
    """A variable or input holds a number the evaluator cannot splice into text."""

    code = "invalid_value"

    def __init__(self, reason: str, name: str | None = None) -> None:
        self.name = name
        if name is not None:
            super().__init__(f"Invalid value for variable {name!r}: {reason}")
        else:
            super().__init__(f"Invalid value: {reason}")


class DepthExceededError(EquationError):
    """Nesting of substitutions and parentheses went past the limit."""

    code = "depth_exceeded"

    def __init__(self, max_depth: int, equation: str) -> None:
        self.max_depth = max_depth
        self.equation = equation
        super().__init__(
            f"Maximum nesting depth of {max_depth} exceeded in {equation!r}"
        )


class EquationSyntaxError(EquationError):
    """Syntax error reported by the static equation parser.

    Attributes:
        position: Column where the error was detected, if known.
    """

    code = "syntax_error"

    def __init__(self, message: str, position: int | None = None) -> None:
        self.position = position
        full = f"Equation syntax error: {message}"
        if position is not None:
            full += f" (at position {position})"
        super().__init__(full)


EQUATION_ERRORS: tuple[type[EquationError], ...] = (
    UndefinedVariableError,
    DisabledVariableError,
    CyclicDependencyError,
    ParenthesisMismatchError,
    OperationFailureError,
    EmptyExpressionError,
    ParseFailureError,
    InvalidValueError,
    DepthExceededError,
    EquationSyntaxError,
)
