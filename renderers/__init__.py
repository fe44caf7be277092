"""
Template Renderers Package

IR -> concrete template syntax, one module per target grammar:
    renderers/
    ├── __init__.py      # RENDERERS registry (this file)
    ├── core.py          # Node dispatch and delimiter markup
    ├── liquid.py        # Liquid
    └── nunjucks.py      # Nunjucks
"""

from renderers.liquid import LiquidRenderer, render as render_liquid
from renderers.nunjucks import NunjucksRenderer, render as render_nunjucks

RENDERERS = {
    "liquid": render_liquid,
    "nunjucks": render_nunjucks,
}

__all__ = ['LiquidRenderer', 'NunjucksRenderer', 'RENDERERS', 'render_liquid', 'render_nunjucks']
