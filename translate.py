"""
Template Translator

Looks up a parser and a renderer by language name and runs
source -> IR -> target. The built-in registry holds liquid and nunjucks;
callers may add or override entries per call.
"""

import logging
from typing import Callable, Dict, List, Optional

import liquid_builder
import nunjucks_builder
from ir_nodes import IrNode
from renderers import RENDERERS
from errors import TranslationError, ValidationError


logger = logging.getLogger(__name__)

Parser = Callable[[str], List[IrNode]]
Renderer = Callable[[List[IrNode]], str]

PARSERS: Dict[str, Parser] = {
    "liquid": liquid_builder.parse,
    "nunjucks": nunjucks_builder.parse,
}

LANGUAGES = tuple(PARSERS)


def _merged(builtin: Dict[str, Callable], custom: Optional[Dict[str, Callable]]) -> Dict[str, Callable]:
    registry = dict(builtin)
    registry.update(custom or {})
    return registry


def validate(from_, to, input, parsers: Dict[str, Parser], renderers: Dict[str, Renderer]) -> List[str]:
    """Every violation in the call arguments, in a fixed order."""
    errors = []
    if not from_:
        errors.append("'from' is required")
    if not to:
        errors.append("'to' is required")
    if not isinstance(input, str):
        errors.append(f"'input' must be a string, got {type(input).__name__}")
    if from_ and from_ not in parsers:
        errors.append(f"No parser registered for language '{from_}'")
    elif from_ and not callable(parsers[from_]):
        errors.append(f"Parser for language '{from_}' is not callable")
    if to and to not in renderers:
        errors.append(f"No renderer registered for language '{to}'")
    elif to and not callable(renderers[to]):
        errors.append(f"Renderer for language '{to}' is not callable")
    return errors


def translate(from_: Optional[str] = None, to: Optional[str] = None, input: Optional[str] = None,
              custom_parsers: Optional[Dict[str, Parser]] = None,
              custom_renderers: Optional[Dict[str, Renderer]] = None) -> str:
    """
    Translate template source from one language to another.

    Args:
        from_: Source language name
        to: Target language name
        input: Template source text
        custom_parsers: Extra or overriding parsers, text -> IR nodes
        custom_renderers: Extra or overriding renderers, IR nodes -> text

    Raises:
        ValidationError: with every argument problem at once, before parsing
        ParseError / RenderError: when the template cannot be translated
    """
    parsers = _merged(PARSERS, custom_parsers)
    renderers = _merged(RENDERERS, custom_renderers)

    errors = validate(from_, to, input, parsers, renderers)
    if errors:
        raise ValidationError(errors)

    logger.debug("translating %d characters from %s to %s", len(input), from_, to)
    nodes = parsers[from_](input)
    return renderers[to](nodes)


def parse(language: str, text: str) -> List[IrNode]:
    """Parse text with a built-in parser."""
    if language not in PARSERS:
        raise ValidationError([f"No parser registered for language '{language}'"])
    return list(PARSERS[language](text))


def render(language: str, nodes: List[IrNode]) -> str:
    """Render IR nodes with a built-in renderer."""
    if language not in RENDERERS:
        raise ValidationError([f"No renderer registered for language '{language}'"])
    return RENDERERS[language](nodes)


__all__ = ['translate', 'parse', 'render', 'validate', 'LANGUAGES', 'PARSERS', 'TranslationError']
