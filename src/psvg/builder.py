"""Build SVG markup from a description, evaluating equations per attribute.

Each component type copies a fixed set of top-level keys into its
attributes, optionally checking them against allowed values.  Attribute
values that evaluate become numbers; values that do not (colours, ids,
transforms) are kept as written.  Point and path coordinates must
evaluate.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Mapping, NamedTuple

from psvg.description import DescriptionError, load_description, make_scope, reject_scripts
from psvg.equations.errors import EquationError
from psvg.equations.evaluator import format_number
from psvg.equations.variables import EquationScope

SVG_NS = "http://www.w3.org/2000/svg"
XLINK_NS = "http://www.w3.org/1999/xlink"

XML_DECLARATION: dict[str, str] = {"version": "1.0", "encoding": "UTF-8"}

ET.register_namespace("xlink", XLINK_NS)


def format_declaration(attributes: Mapping[str, str] | None = None) -> str:
    """Return the XML declaration, e.g. ``<?xml version="1.0" encoding="UTF-8"?>``."""
    attrs = XML_DECLARATION if attributes is None else attributes
    body = " ".join(f'{k}="{v}"' for k, v in attrs.items())
    return f"<?xml {body}?>"


# ---------------------------------------------------------------------------
# Per-type key tables
# ---------------------------------------------------------------------------


class _Key(NamedTuple):
    attr: str
    key: str
    allowed: tuple[str, ...] | None = None


def _keys(*names: str) -> tuple[_Key, ...]:
    return tuple(_Key(n, n) for n in names)


_UNITS = ("userSpaceOnUse", "objectBoundingBox")
_SPREAD = ("pad", "reflect", "repeat")
_LENGTH_ADJUST = ("spacing", "spacingAndGlyphs")
_REFERRER_POLICY = (
    "no-referrer", "no-referrer-when-downgrade", "origin", "origin-when-cross-origin",
    "same-origin", "strict-origin", "strict-origin-when-cross-origin", "unsafe-url",
)
_ALIGN = (
    "none", "xMinYMin", "xMidYMin", "xMaxYMin", "xMinYMid", "xMidYMid",
    "xMaxYMid", "xMinYMax", "xMidYMax", "xMaxYMax",
)
_MEET_OR_SLICE = ("meet", "slice")

_BOX = _keys("x", "y", "width", "height")
_TEXT = _keys("x", "y", "dx", "dy", "rotate", "textLength") + (
    _Key("lengthAdjust", "lengthAdjust", _LENGTH_ADJUST),
)
_GRADIENT = (
    _Key("gradientUnits", "gradientUnits", _UNITS),
    _Key("gradientTransform", "gradientTransform"),
    _Key("spreadMethod", "spreadMethod", _SPREAD),
)

ELEMENT_KEYS: dict[str, tuple[_Key, ...]] = {
    "circle": _keys("cx", "cy", "r"),
    "ellipse": _keys("cx", "cy", "rx", "ry"),
    "line": _keys("x1", "y1", "x2", "y2"),
    "rect": _BOX + _keys("rx", "ry"),
    "polygon": (),
    "polyline": (),
    "path": (),
    "a": _keys("target", "hreflang", "ping", "rel") + (
        _Key("referrerpolicy", "referrerpolicy", _REFERRER_POLICY),
        _Key("type", "a.type"),
    ),
    "clipPath": (_Key("clipPathUnits", "clipPathUnits", _UNITS),),
    "foreignObject": _BOX,
    "image": _BOX + (
        _Key("crossOrigin", "crossOrigin"),
        _Key("decoding", "decoding", ("auto", "sync", "async")),
    ),
    "linearGradient": _keys("x1", "y1", "x2", "y2") + _GRADIENT,
    "marker": _keys("refX", "refY", "markerWidth", "markerHeight", "orient", "viewBox") + (
        _Key("markerUnits", "markerUnits", _UNITS),
    ),
    "mask": _BOX + (
        _Key("maskContentUnits", "maskContentUnits", _UNITS),
        _Key("maskUnits", "maskUnits", _UNITS),
    ),
    "pattern": _BOX + _keys("viewBox", "patternTransform") + (
        _Key("patternUnits", "patternUnits", _UNITS),
        _Key("patternContentUnits", "patternContentUnits", _UNITS),
    ),
    "radialGradient": _keys("cx", "cy", "r", "fr", "fx", "fy") + _GRADIENT,
    "stop": (
        _Key("offset", "offset"),
        _Key("stop-color", "stopColor"),
        _Key("stop-opacity", "stopOpacity"),
    ),
    "style": (_Key("type", "style.type"), _Key("media", "media"), _Key("title", "title")),
    "symbol": _BOX + _keys("viewBox", "refX", "refY"),
    "text": _TEXT,
    "textPath": _keys("href", "startOffset", "textLength") + (
        _Key("lengthAdjust", "lengthAdjust", _LENGTH_ADJUST),
        _Key("method", "method", ("align", "stretch")),
        _Key("spacing", "spacing", ("auto", "exact")),
        _Key("side", "side", ("left", "right")),
    ),
    "tspan": _TEXT,
    "use": _BOX,
    "view": _keys("viewBox"),
    "defs": (),
    "g": (),
    "switch": (),
    "title": (),
}

# Types whose ``href`` falls back to ``xlink:href``.
_HREF_TYPES = {"a", "image", "linearGradient", "pattern", "radialGradient", "use"}
_ASPECT_RATIO_TYPES = {"image", "marker", "pattern", "symbol", "view"}

_SEGMENT_ALIASES = {
    "m": "move",
    "l": "line",
    "h": "horizontal",
    "v": "vertical",
    "z": "close",
    "c": "cubic",
    "s": "shortcubic",
    "q": "quadratic",
    "t": "shortquadratic",
    "a": "arc",
}


def _checked(value: Any, allowed: tuple[str, ...] | None, key: str) -> Any:
    if allowed is not None and value not in allowed:
        raise DescriptionError(f"Invalid value for {key}: {value!r}")
    return value


def _aspect_ratio(value: Any) -> Any:
    """Render a ``{align, meetOrSlice}`` object as ``"align meetOrSlice"``."""
    if not isinstance(value, Mapping):
        return value
    parts = []
    if value.get("align") is not None:
        parts.append(_checked(value["align"], _ALIGN, "preserveAspectRatio.align"))
    if value.get("meetOrSlice") is not None:
        parts.append(_checked(value["meetOrSlice"], _MEET_OR_SLICE, "preserveAspectRatio.meetOrSlice"))
    return " ".join(parts)


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class SvgBuilder:
    """Turns one description into an ``<svg>`` element tree.

    Attributes:
        scope: Variables and resolution cache shared by every evaluation.
        warnings: Formula-looking attribute values (leading ``=``) that
            failed to evaluate and were kept as written.
    """

    def __init__(
        self,
        description: dict[str, Any],
        *,
        scope: EquationScope | None = None,
        max_depth: int | None = None,
    ) -> None:
        reject_scripts(description)
        self.description = description
        self.scope = scope if scope is not None else make_scope(description, max_depth=max_depth)
        self.warnings: list[str] = []

    # -- evaluation --------------------------------------------------------

    def number(self, value: Any) -> str:
        """Evaluate a coordinate; failures propagate."""
        return format_number(self.scope.evaluate(value))

    def attribute_text(self, attr: str, value: Any) -> str:
        """Evaluate an attribute value, keeping the literal text on failure."""
        try:
            return format_number(self.scope.evaluate(value))
        except EquationError as exc:
            if isinstance(value, str) and value.lstrip().startswith("="):
                self.warnings.append(f"{attr}: {exc}")
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    def set_attributes(self, element: ET.Element, attributes: Mapping[str, Any]) -> None:
        for attr, value in attributes.items():
            if isinstance(value, list):
                value = "".join(self.attribute_text(attr, piece) for piece in value)
            if value is None or value == "":
                continue
            element.set(attr, self.attribute_text(attr, value))

    # -- tree --------------------------------------------------------------

    def build(self) -> ET.Element:
        svg = ET.Element("svg")
        svg.set("xmlns", SVG_NS)
        self.set_attributes(svg, self.description.get("attributes") or {})
        self._append_children(svg, self.description.get("svgcomponents") or [])
        return svg

    def render(self, declaration: Mapping[str, str] | None = None) -> str:
        """Return the XML declaration followed by the serialised ``<svg>``."""
        markup = ET.tostring(self.build(), encoding="unicode")
        return f"{format_declaration(declaration)}\n{markup}"

    def _append_children(self, parent: ET.Element, components: Any) -> None:
        if not isinstance(components, list):
            raise DescriptionError(f"Expected a list of components, got {type(components).__name__}")
        for component in components:
            if not isinstance(component, Mapping):
                raise DescriptionError(f"Component must be an object, got {component!r}")
            if component.get("type") == "raw":
                _append_raw(parent, str(component.get("content", "")))
                continue
            parent.append(self.component(component))

    def component(self, component: Mapping[str, Any]) -> ET.Element:
        """Build the element for one component object, children included."""
        kind = component.get("type")
        if kind not in ELEMENT_KEYS:
            raise DescriptionError(f"Invalid type {kind!r}")

        attributes = dict(component.get("attributes") or {})
        for entry in ELEMENT_KEYS[kind]:
            if component.get(entry.key) is not None:
                attributes[entry.attr] = _checked(component[entry.key], entry.allowed, entry.key)
        if kind in _HREF_TYPES:
            href = component.get("href") or component.get("xlink:href")
            if href:
                attributes["href"] = href
        if kind in _ASPECT_RATIO_TYPES and component.get("preserveAspectRatio"):
            attributes["preserveAspectRatio"] = _aspect_ratio(component["preserveAspectRatio"])

        if kind in ("polygon", "polyline"):
            attributes["points"] = self.points(component.get("points") or [])
        elif kind == "path":
            attributes["d"] = self.path_data(_path_segments(component))
        elif kind == "textPath" and component.get("path") is not None:
            path = component["path"]
            attributes["path"] = self.path_data(path) if isinstance(path, list) else path

        element = ET.Element(kind)
        self.set_attributes(element, attributes)
        if kind == "style":
            element.text = str(component.get("children") or "")

        if component.get("id"):
            element.set("id", str(component["id"]))
        if component.get("desc"):
            desc = ET.SubElement(element, "desc")
            desc.text = str(component["desc"])
        if kind != "style" and component.get("children") is not None:
            self._append_children(element, component["children"])
        return element

    # -- geometry ----------------------------------------------------------

    def points(self, points: Any) -> str:
        out = []
        for point in points:
            if not isinstance(point, (list, tuple)) or len(point) != 2:
                raise DescriptionError(f"Point must be an [x, y] pair, got {point!r}")
            x, y = point
            out.append(f"{self.number(x)},{self.number(y)}")
        return " ".join(out)

    def path_data(self, segments: Any) -> str:
        if not isinstance(segments, list):
            raise DescriptionError(f"Path must be a list of segments, got {segments!r}")
        return " ".join(self.segment(s) for s in segments)

    def segment(self, segment: Mapping[str, Any]) -> str:
        """Render one path segment such as ``{"type": "line", "x": 1, "y": 2}``."""
        raw_type = str(segment.get("type", "")).lower()
        kind = _SEGMENT_ALIASES.get(raw_type, raw_type)

        def n(key: str) -> str:
            return self.number(segment.get(key, 0))

        if kind == "close":
            text = "Z"
        elif kind == "move":
            text = f"M {n('x')} {n('y')}"
        elif kind == "line":
            text = f"L {n('x')} {n('y')}"
        elif kind == "horizontal":
            text = f"H {n('x')}"
        elif kind == "vertical":
            text = f"V {n('y')}"
        elif kind == "cubic":
            text = f"C {n('x1')} {n('y1')},{n('x2')} {n('y2')},{n('x')} {n('y')}"
        elif kind == "shortcubic":
            text = f"S {n('x2')} {n('y2')},{n('x')} {n('y')}"
        elif kind == "quadratic":
            text = f"Q {n('x1')} {n('y1')},{n('x')} {n('y')}"
        elif kind == "shortquadratic":
            text = f"T {n('x')} {n('y')}"
        elif kind == "arc":
            large = 1 if segment.get("largeArcFlag") else 0
            sweep = 1 if segment.get("sweepFlag") else 0
            text = (
                f"A {n('rx')} {n('ry')} {n('xRotation')} {large} {sweep} {n('x')} {n('y')}"
            )
        else:
            raise DescriptionError(f"Unknown path command: {segment.get('type')!r}")

        if segment.get("relative"):
            text = text.lower()
        return text


def _path_segments(component: Mapping[str, Any]) -> Any:
    # "path" is an alias for "d"
    d = component.get("d")
    path = component.get("path")
    if d is not None and path is not None:
        raise DescriptionError("Cannot specify both d and path")
    return d if d is not None else (path or [])


def _append_raw(parent: ET.Element, content: str) -> None:
    """Append verbatim markup (elements and text) to *parent*."""
    try:
        wrapper = ET.fromstring(f'<raw xmlns:xlink="{XLINK_NS}">{content}</raw>')
    except ET.ParseError as exc:
        raise DescriptionError(f"Invalid raw content: {exc}") from exc

    if wrapper.text:
        children = list(parent)
        if children:
            children[-1].tail = (children[-1].tail or "") + wrapper.text
        else:
            parent.text = (parent.text or "") + wrapper.text
    for child in wrapper:
        parent.append(child)


# ---------------------------------------------------------------------------
# Convenience
# ---------------------------------------------------------------------------


def build_svg(description: dict[str, Any], *, max_depth: int | None = None) -> ET.Element:
    """Build the ``<svg>`` element for *description*."""
    return SvgBuilder(description, max_depth=max_depth).build()


def render_svg(
    description: dict[str, Any],
    *,
    max_depth: int | None = None,
    declaration: Mapping[str, str] | None = None,
) -> str:
    """Render *description* to an SVG document string."""
    return SvgBuilder(description, max_depth=max_depth).render(declaration)


def render_file(path: Path, *, max_depth: int | None = None,
                declaration: Mapping[str, str] | None = None) -> tuple[str, list[str]]:
    """Load and render a description file.

    Returns:
        Tuple of (svg_text, warnings).
    """
    builder = SvgBuilder(load_description(path), max_depth=max_depth)
    return builder.render(declaration), builder.warnings
