"""DOT rendering and Graphviz image conversion."""

from callvis.render.converter import DotConverter
from callvis.render.dot import render

__all__ = ["DotConverter", "render"]
