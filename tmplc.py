#!/usr/bin/env python3
"""
Template Translator

Usage:
    python tmplc.py <source_file> [--from LANG] [--to LANG] [-o output] [--emit-ir]

Examples:
    python tmplc.py page.liquid --to nunjucks            # Print page as Nunjucks
    python tmplc.py page.njk --to liquid -o page.liquid  # Write page.liquid
    python tmplc.py page.liquid --emit-ir                # Print the IR tree
"""

import sys
import os
import argparse
import logging

from translate import translate, parse, LANGUAGES
from ir_nodes import Assignment, Conditional, Loop
from errors import TranslationError


EXTENSIONS = {
    ".liquid": "liquid",
    ".njk": "nunjucks",
    ".nunjucks": "nunjucks",
    ".jinja": "nunjucks",
    ".j2": "nunjucks",
}


def infer_language(source_path: str):
    """Source language from the file extension, None when unknown."""
    return EXTENSIONS.get(os.path.splitext(source_path)[1].lower())


def print_ir(nodes, indent=0):
    """Pretty print IR (for debugging)"""
    def p(msg):
        print("  " * indent + msg)

    for node in nodes:
        if isinstance(node, Conditional):
            p(f"Conditional {node.variant.value}")
            for branch in node.branches:
                p(f"  Branch {branch.condition}")
                print_ir(branch.children, indent + 2)
        elif isinstance(node, Loop):
            p(f"Loop {node.variable} in {node.collection}")
            print_ir(node.children, indent + 1)
            if node.else_children is not None:
                p("Else")
                print_ir(node.else_children, indent + 1)
        elif isinstance(node, Assignment) and node.expression is None:
            p(f"Assignment {node.target} (block)")
            print_ir(node.children, indent + 1)
        else:
            p(f"{type(node).__name__}: {node}")


def translate_file(source_path: str, source_language: str, target_language: str = None,
                   output_path: str = None, emit_ir: bool = False):
    """
    Translate a template file.

    Args:
        source_path: Path to the template
        source_language: Language to parse the template as
        target_language: Language to render (required unless emit_ir)
        output_path: Write here instead of stdout
        emit_ir: Print the IR tree instead of rendering
    """
    with open(source_path, 'r') as f:
        source = f.read()

    if emit_ir:
        print_ir(parse(source_language, source))
        return

    result = translate(from_=source_language, to=target_language, input=source)

    if output_path is None:
        sys.stdout.write(result)
        return
    with open(output_path, 'w') as f:
        f.write(result)
    print(f"Translated {source_path} ({source_language}) to {output_path} ({target_language})",
          file=sys.stderr)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Template Translator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s page.liquid --to nunjucks            Print page as Nunjucks
  %(prog)s page.njk --to liquid -o page.liquid  Write page.liquid
  %(prog)s page.liquid --emit-ir                Print the IR tree
        """
    )

    parser.add_argument("source", help="Template file (.liquid, .njk, .nunjucks, .jinja, .j2)")
    parser.add_argument("--from", dest="from_", choices=LANGUAGES,
                        help="Source language (default: from the file extension)")
    parser.add_argument("--to", choices=LANGUAGES, help="Target language")
    parser.add_argument("-o", "--output", help="Output file (default: stdout)")
    parser.add_argument("--emit-ir", action="store_true",
                        help="Print the IR tree to stdout")
    parser.add_argument("--verbose", action="store_true",
                        help="Log translation details to stderr")

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    source_language = args.from_ or infer_language(args.source)
    if source_language is None:
        parser.error(f"cannot infer the language of {args.source}; pass --from")
    if args.to is None and not args.emit_ir:
        parser.error("--to is required unless --emit-ir is given")

    try:
        translate_file(args.source, source_language, args.to, args.output, args.emit_ir)
    except TranslationError as e:
        print(f"Translation failed: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Internal translator error: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        sys.exit(2)


if __name__ == "__main__":
    main()
