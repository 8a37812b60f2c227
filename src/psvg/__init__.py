"""psvg -- parametric SVG descriptions with an embedded equation language."""

__version__ = "0.3.0"
