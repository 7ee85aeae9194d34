"""Unit tests for formatter template compilation."""

import pytest

from geocoding_jobs.lib.formatter import Field, Literal, compile_formatter, tokenize
from geocoding_jobs.lib.jobs.errors import GeocodingValidationError


class TestCompileFormatter:
    """Tests for compile_formatter() expression output."""

    def test_two_fields_with_separator(self) -> None:
        assert str(compile_formatter("{a}, {b}")) == "a, ', ', b"

    def test_literal_only(self) -> None:
        assert str(compile_formatter("c")) == "'c'"

    def test_field_literal_field(self) -> None:
        assert str(compile_formatter("{a}, b, {c}")) == "a, ', b, ', c"

    def test_single_field(self) -> None:
        assert str(compile_formatter("{address}")) == "address"

    def test_embedded_quote_is_doubled(self) -> None:
        assert str(compile_formatter("{street}, L'Hospitalet")) == "street, ', L''Hospitalet'"

    def test_compilation_is_deterministic(self) -> None:
        template = "{street} {number}, {city}, Spain"
        assert str(compile_formatter(template)) == str(compile_formatter(template))

    @pytest.mark.parametrize("template", ["", "   ", "\n"])
    def test_blank_template_raises(self, template: str) -> None:
        with pytest.raises(GeocodingValidationError) as exc_info:
            compile_formatter(template)
        assert "formatter" in exc_info.value.errors

    def test_keeps_template(self) -> None:
        expression = compile_formatter("{a}, b")
        assert expression.template == "{a}, b"


class TestTokenize:
    """Tests for tokenize()."""

    def test_adjacent_fields(self) -> None:
        assert tokenize("{a}{b}") == (Field("a"), Field("b"))

    def test_invalid_placeholder_is_literal(self) -> None:
        assert tokenize("{1st} street") == (Literal("{1st} street"),)

    def test_unbalanced_brace_is_literal(self) -> None:
        assert tokenize("{city, {country}") == (Literal("{city, "), Field("country"))

    def test_trailing_literal(self) -> None:
        assert tokenize("{city}, Spain") == (Field("city"), Literal(", Spain"))


class TestFormatterExpression:
    """Tests for FormatterExpression fields and row rendering."""

    def test_fields_are_ordered_and_unique(self) -> None:
        expression = compile_formatter("{city} ({country}), {city}")
        assert expression.fields == ("city", "country")

    def test_literal_only_has_no_fields(self) -> None:
        assert compile_formatter("Madrid").fields == ()

    def test_render_row(self) -> None:
        expression = compile_formatter("{street} {number}, {city}")
        row = {"street": "Gran Via", "number": 1, "city": "Madrid"}
        assert expression.render(row) == "Gran Via 1, Madrid"

    def test_render_missing_and_null_values_as_empty(self) -> None:
        expression = compile_formatter("{street}, {city}")
        assert expression.render({"street": None}) == ", "
