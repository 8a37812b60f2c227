"""Loading and preparing JSON/YAML SVG descriptions.

A description looks like::

    {
      "equations": {"w": {"value": "vbw / 2"}, "r": {"value": "=w/4"}},
      "attributes": {"viewBox": "0 0 100 100"},
      "svgcomponents": [{"type": "circle", "cx": "w", "cy": "w", "r": "r"}]
    }
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from psvg.equations.errors import EquationError
from psvg.equations.parser import dependency_order, parse_equation
from psvg.equations.variables import EquationScope, load_variables


class DescriptionError(Exception):
    """A description is malformed or uses an unsupported feature."""

    code = "description_error"


def load_description(path: Path) -> dict[str, Any]:
    """Read a description from a ``.json``, ``.yaml`` or ``.yml`` file.

    Raises:
        DescriptionError: If the file cannot be parsed or is not an object.
    """
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() in (".yaml", ".yml"):
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise DescriptionError(f"Could not parse {path.name}: {exc}") from exc
    if not isinstance(data, dict):
        raise DescriptionError(f"{path.name} must contain an object at the top level")
    return data


def reject_scripts(description: dict[str, Any]) -> None:
    """Refuse any description whose serialised form contains ``script``."""
    if "script" in json.dumps(description, default=str):
        raise DescriptionError(
            "Descriptions may not contain script elements or the string 'script'"
        )


def viewbox_variables(description: dict[str, Any]) -> dict[str, Any]:
    """Return the description's equations with ``vbw``/``vbh`` filled in.

    The width and height of the root ``viewBox`` become ``vbw`` and
    ``vbh`` unless the description already defines them.  The description
    itself is left untouched.
    """
    equations = dict(description.get("equations") or {})
    viewbox = (description.get("attributes") or {}).get("viewBox")
    if isinstance(viewbox, str):
        parts = viewbox.replace(",", " ").split()
        if len(parts) == 4:
            _, _, width, height = parts
            if not equations.get("vbw"):
                equations["vbw"] = {"value": width}
            if not equations.get("vbh"):
                equations["vbh"] = {"value": height}
    return equations


def make_scope(description: dict[str, Any], *, max_depth: int | None = None) -> EquationScope:
    """Build the evaluation scope shared by every element of a description."""
    return EquationScope(viewbox_variables(description), max_depth=max_depth)


def check_description(
    description: dict[str, Any], *, max_depth: int | None = None
) -> dict[str, Any]:
    """Statically check and resolve a description's equations.

    Returns:
        ``{"order": [...], "values": {...}, "errors": {name: message}}``
        where ``order`` is a dependency-respecting order of the variables,
        ``values`` holds every variable that resolved and ``errors`` every
        one that did not.

    Raises:
        DescriptionError: If the description contains ``script``.
        EquationError: If formulas do not parse or refer to each other in
            a cycle.
    """
    reject_scripts(description)
    variables = load_variables(viewbox_variables(description))
    for var in variables.values():
        if isinstance(var.value, str):
            parse_equation(var.value)
    order = dependency_order(variables)

    scope = EquationScope(variables, max_depth=max_depth)
    values: dict[str, Any] = {}
    errors: dict[str, str] = {}
    for name in order:
        if variables[name].disabled:
            continue
        try:
            values[name] = scope.evaluate(name)
        except EquationError as exc:
            errors[name] = str(exc)
    return {"order": order, "values": values, "errors": errors}
