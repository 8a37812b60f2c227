"""Variable model and shared evaluation scope."""

from __future__ import annotations

import threading
from typing import Any, Callable, Mapping

from pydantic import BaseModel, ConfigDict

Number = int | float


class Variable(BaseModel):
    """A named quantity usable inside equations.

    ``value`` is either formula text (possibly with a leading ``=``) or a
    number already known to the caller.
    """

    model_config = ConfigDict(frozen=True)

    name: str | None = None
    value: int | float | str | None = None
    disabled: bool = False
    comment: str | None = None


def as_variable(name: str, raw: Any) -> Variable:
    """Coerce a mapping entry into a :class:`Variable`.

    Accepts a ``Variable``, a dict with ``value``/``disabled``/``comment``
    keys, or a bare number or string used directly as the value.
    """
    if isinstance(raw, Variable):
        return raw
    if isinstance(raw, Mapping):
        data = dict(raw)
        data.setdefault("name", name)
        return Variable.model_validate(data)
    return Variable(name=name, value=raw)


def load_variables(raw: Mapping[str, Any] | None) -> dict[str, Variable]:
    """Build a variables mapping from a description's ``equations`` section."""
    if not raw:
        return {}
    return {name: as_variable(name, entry) for name, entry in raw.items()}


class EquationScope:
    """Variables plus one resolution cache shared by sibling evaluations.

    Every evaluation made through the scope reuses numbers resolved by
    earlier ones.  The lock serialises evaluations so the cache is never
    written by two calls at once.
    """

    def __init__(
        self,
        variables: Mapping[str, Any] | None = None,
        *,
        max_depth: int | None = None,
        trace: Callable[[int, str, str], None] | None = None,
    ) -> None:
        self.variables: dict[str, Variable] = load_variables(variables)
        self.cache: dict[str, Number] = {}
        self.max_depth = max_depth
        self.trace = trace
        self._lock = threading.Lock()

    def evaluate(self, equation: Any) -> Number:
        """Evaluate *equation* against the scope's variables and cache."""
        from psvg.equations.evaluator import DEFAULT_MAX_DEPTH, evaluate

        max_depth = self.max_depth if self.max_depth is not None else DEFAULT_MAX_DEPTH
        with self._lock:
            return evaluate(
                equation,
                self.variables,
                cache=self.cache,
                max_depth=max_depth,
                trace=self.trace,
            )

    def resolve_all(self) -> dict[str, Number]:
        """Resolve every enabled variable, returning the cache afterwards.

        Stops at the first failure.
        """
        for name, var in self.variables.items():
            if var.disabled or name in self.cache:
                continue
            self.evaluate(name)
        return dict(self.cache)
