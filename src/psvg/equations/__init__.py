"""Equation substitution and evaluation.

Public API::

    from psvg.equations import evaluate, EquationScope, Variable
"""

from psvg.equations.errors import (
    EQUATION_ERRORS,
    CyclicDependencyError,
    DepthExceededError,
    DisabledVariableError,
    EmptyExpressionError,
    EquationError,
    EquationSyntaxError,
    InvalidValueError,
    OperationFailureError,
    ParenthesisMismatchError,
    ParseFailureError,
    UndefinedVariableError,
)
from psvg.equations.evaluator import (
    DEFAULT_MAX_DEPTH,
    check_parentheses,
    evaluate,
    evaluate_operators,
    format_number,
    parse_value,
    resolve_parentheses,
    substitute_variables,
)
from psvg.equations.parser import (
    dependency_order,
    extract_refs,
    parse_equation,
    variable_refs,
)
from psvg.equations.variables import EquationScope, Variable, as_variable, load_variables

__all__ = [
    "DEFAULT_MAX_DEPTH",
    "EQUATION_ERRORS",
    "CyclicDependencyError",
    "DepthExceededError",
    "DisabledVariableError",
    "EmptyExpressionError",
    "EquationError",
    "EquationScope",
    "EquationSyntaxError",
    "InvalidValueError",
    "OperationFailureError",
    "ParenthesisMismatchError",
    "ParseFailureError",
    "UndefinedVariableError",
    "Variable",
    "as_variable",
    "check_parentheses",
    "dependency_order",
    "evaluate",
    "evaluate_operators",
    "extract_refs",
    "format_number",
    "load_variables",
    "parse_equation",
    "parse_value",
    "resolve_parentheses",
    "substitute_variables",
    "variable_refs",
]
