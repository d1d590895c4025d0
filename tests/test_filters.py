"""Tests for subscriber filter evaluation."""

from __future__ import annotations

import pytest

from courier.exceptions import FilterEvaluationError
from courier.models import Event, FilterCondition, FilterSpec
from courier.webhooks.filters import evaluate_condition, matches_filter, resolve_path


def _spec(*conditions: tuple[str, str, str], logic: str = "AND") -> FilterSpec:
    return FilterSpec(
        conditions=[FilterCondition(field=f, operator=op, value=v) for f, op, v in conditions],
        logic=logic,
    )


class TestResolvePath:
    """Tests for dot-path resolution."""

    def test_nested_dict(self) -> None:
        assert resolve_path({"a": {"b": {"c": 3}}}, "a.b.c") == 3

    def test_list_index(self) -> None:
        assert resolve_path({"items": [{"n": "x"}, {"n": "y"}]}, "items.1.n") == "y"

    def test_missing_segment_raises(self) -> None:
        with pytest.raises(FilterEvaluationError):
            resolve_path({"a": {}}, "a.b")

    def test_none_value_counts_as_missing(self) -> None:
        with pytest.raises(FilterEvaluationError):
            resolve_path({"a": None}, "a")

    def test_index_out_of_range_raises(self) -> None:
        with pytest.raises(FilterEvaluationError):
            resolve_path({"items": [1]}, "items.5")


class TestEvaluateCondition:
    """Tests for single-condition operators."""

    payload = {"type": "Document.Processed", "data": {"fileName": "Report.PDF", "ok": True}}

    @pytest.mark.parametrize(
        ("operator", "value", "expected"),
        [
            ("equals", "document.processed", True),
            ("equals", "document", False),
            ("contains", "PROCESS", True),
            ("startsWith", "document.", True),
            ("endsWith", ".processed", True),
            ("endsWith", ".shared", False),
            ("regex", r"^document\.(processed|shared)$", True),
            ("regex", r"^error\.", False),
        ],
    )
    def test_operators_case_insensitive(self, operator: str, value: str, expected: bool) -> None:
        condition = FilterCondition(field="type", operator=operator, value=value)
        assert evaluate_condition(self.payload, condition) is expected

    def test_bool_stringifies_lowercase(self) -> None:
        condition = FilterCondition(field="data.ok", operator="equals", value="true")
        assert evaluate_condition(self.payload, condition)

    def test_malformed_regex_raises(self) -> None:
        condition = FilterCondition(field="type", operator="regex", value="([unclosed")
        with pytest.raises(FilterEvaluationError):
            evaluate_condition(self.payload, condition)


class TestMatchesFilter:
    """Tests for combining conditions against an event."""

    def test_no_filter_matches(self, sample_event: Event) -> None:
        assert matches_filter(sample_event, None)
        assert matches_filter(sample_event, FilterSpec())

    def test_or_logic(self) -> None:
        """Event of type X matches X-or-Y; type Z does not."""
        spec = _spec(("type", "equals", "X"), ("type", "equals", "Y"), logic="OR")
        assert matches_filter(Event(type="X"), spec)
        assert not matches_filter(Event(type="Z"), spec)

    def test_and_logic_mutually_exclusive(self) -> None:
        spec = _spec(("type", "equals", "X"), ("type", "equals", "Y"))
        assert not matches_filter(Event(type="X"), spec)
        assert not matches_filter(Event(type="Y"), spec)

    def test_default_logic_is_and(self) -> None:
        assert FilterSpec().logic == "AND"

    def test_data_and_camelcase_fields(self, sample_event: Event) -> None:
        """Paths address the wire payload, including userId and data."""
        spec = _spec(
            ("data.fileName", "endsWith", ".pdf"),
            ("userId", "equals", "USER_1"),
            ("source", "equals", "ocr"),
        )
        assert matches_filter(sample_event, spec)

    def test_missing_field_is_false_not_error(self, sample_event: Event) -> None:
        spec = _spec(("data.nope.deeper", "equals", "x"))
        assert not matches_filter(sample_event, spec)

    def test_missing_field_in_or_does_not_block_match(self, sample_event: Event) -> None:
        spec = _spec(("sessionId", "equals", "s1"), ("type", "contains", "processed"), logic="OR")
        assert matches_filter(sample_event, spec)

    def test_malformed_regex_is_non_match(self, sample_event: Event) -> None:
        spec = _spec(("type", "regex", "(*bad"))
        assert not matches_filter(sample_event, spec)

    def test_numeric_field_compared_as_string(self, sample_event: Event) -> None:
        assert matches_filter(sample_event, _spec(("data.pages", "equals", "12")))
