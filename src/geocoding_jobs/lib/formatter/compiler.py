"""Compile row-formatting templates into backend query expressions.

A template mixes literal text with ``{column}`` placeholders. The compiled
expression lists each piece in order, literals single-quoted and columns
bare, separated by ``", "``::

    "{a}, b, {c}"  ->  a, ', b, ', c
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from geocoding_jobs.lib.jobs.errors import GeocodingValidationError

_PLACEHOLDER_RE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


@dataclass(frozen=True)
class Literal:
    """Literal text copied verbatim into the query."""

    text: str

    def to_expression(self) -> str:
        escaped = self.text.replace("'", "''")
        return f"'{escaped}'"


@dataclass(frozen=True)
class Field:
    """Reference to a column of the row being geocoded."""

    name: str

    def to_expression(self) -> str:
        return self.name


Token = Literal | Field


@dataclass(frozen=True)
class FormatterExpression:
    """A compiled formatter template."""

    template: str
    tokens: tuple[Token, ...]

    def __str__(self) -> str:
        return ", ".join(token.to_expression() for token in self.tokens)

    @property
    def fields(self) -> tuple[str, ...]:
        """Column names referenced by the template, in first-use order."""
        seen: dict[str, None] = {}
        for token in self.tokens:
            if isinstance(token, Field):
                seen.setdefault(token.name, None)
        return tuple(seen)

    def render(self, row: Mapping[str, Any]) -> str:
        """Build the geocoding query for one row.

        Args:
            row: Column values keyed by column name.

        Returns:
            Literal text and column values concatenated in template order.
            Missing or null columns contribute an empty string.
        """
        parts: list[str] = []
        for token in self.tokens:
            if isinstance(token, Literal):
                parts.append(token.text)
            else:
                value = row.get(token.name)
                parts.append("" if value is None else str(value))
        return "".join(parts)


def tokenize(template: str) -> tuple[Token, ...]:
    """Split a template into literal and field tokens, merging adjacent literals."""
    tokens: list[Token] = []
    position = 0

    def add_literal(text: str) -> None:
        if not text:
            return
        if tokens and isinstance(tokens[-1], Literal):
            tokens[-1] = Literal(tokens[-1].text + text)
        else:
            tokens.append(Literal(text))

    for match in _PLACEHOLDER_RE.finditer(template):
        add_literal(template[position : match.start()])
        tokens.append(Field(match.group(1)))
        position = match.end()
    add_literal(template[position:])
    return tuple(tokens)


def compile_formatter(template: str) -> FormatterExpression:
    """Compile a formatter template into a backend expression.

    Args:
        template: Row template such as ``"{street}, {city}, Spain"``.

    Returns:
        The compiled FormatterExpression; ``str()`` gives the expression text.

    Raises:
        GeocodingValidationError: If the template is blank.
    """
    if template is None or not template.strip():
        raise GeocodingValidationError({"formatter": ["is not present"]})
    return FormatterExpression(template=template, tokens=tokenize(template))
