"""Formatter library: turns row templates into geocoding query expressions.

Public API:
    - compile_formatter: Compile a template into a FormatterExpression
    - FormatterExpression: Compiled template (``str()`` / ``fields`` / ``render()``)
    - Literal / Field: Template tokens
    - tokenize: Split a template into tokens
"""

from geocoding_jobs.lib.formatter.compiler import (
    Field,
    FormatterExpression,
    Literal,
    compile_formatter,
    tokenize,
)

__all__ = [
    "Field",
    "FormatterExpression",
    "Literal",
    "compile_formatter",
    "tokenize",
]
