"""Tests for pass/fail classification and aggregation."""

import pytest

from models import FieldDefinition, OverallResult, Verdict
from services.evaluation import aggregate, classify, classify_answers, parse_number


@pytest.fixture
def banded():
    return FieldDefinition(id="airflow", type="number", pass_threshold=10, fail_threshold=20)


class TestPassFailFields:

    field = FieldDefinition(id="check", type="pass_fail")

    def test_true_passes(self):
        assert classify(self.field, True) == Verdict.PASS

    def test_false_fails(self):
        assert classify(self.field, False) == Verdict.FAIL

    def test_none_is_na(self):
        assert classify(self.field, None) == Verdict.NA

    @pytest.mark.parametrize("value,expected", [
        ("pass", Verdict.PASS),
        ("fail", Verdict.FAIL),
        ("PASS", Verdict.PASS),
        ("na", Verdict.NA),
        ("maybe", Verdict.NA),
        ("", Verdict.NA),
        (1, Verdict.NA),
    ])
    def test_string_tokens(self, value, expected):
        assert classify(self.field, value) == expected


class TestNumberFields:

    @pytest.mark.parametrize("value,expected", [
        (10, Verdict.PASS),
        (20, Verdict.PASS),
        (15, Verdict.PASS),
        (21, Verdict.FAIL),
        (9, Verdict.FAIL),
        (9.999, Verdict.FAIL),
        (20.001, Verdict.FAIL),
        ("15", Verdict.PASS),
        (" 20 ", Verdict.PASS),
        ("25", Verdict.FAIL),
    ])
    def test_band_boundaries(self, banded, value, expected):
        assert classify(banded, value) == expected

    @pytest.mark.parametrize("value", [float("nan"), "NaN", "abc", "12abc", True, [], None, ""])
    def test_unparseable_is_na(self, banded, value):
        assert classify(banded, value) == Verdict.NA

    def test_only_lower_bound(self):
        field = FieldDefinition(id="x", type="number", pass_threshold=5)
        assert classify(field, 5) == Verdict.PASS
        assert classify(field, 1000) == Verdict.PASS
        assert classify(field, 4) == Verdict.FAIL

    def test_only_upper_bound(self):
        field = FieldDefinition(id="x", type="number", fail_threshold=60)
        assert classify(field, -3) == Verdict.PASS
        assert classify(field, 60) == Verdict.PASS
        assert classify(field, 61) == Verdict.FAIL

    def test_no_bounds_passes_any_number(self):
        field = FieldDefinition(id="x", type="number")
        assert classify(field, -1e9) == Verdict.PASS

    def test_verdict_follows_current_thresholds(self, banded):
        assert classify(banded, 18) == Verdict.PASS
        tightened = banded.model_copy(update={"fail_threshold": 17})
        assert classify(tightened, 18) == Verdict.FAIL


class TestPresenceFields:

    @pytest.mark.parametrize("field", [
        FieldDefinition(id="t", type="text"),
        FieldDefinition(id="b", type="boolean"),
        FieldDefinition(id="s", type="select", options=["a", "b"]),
    ])
    def test_present_value_passes(self, field):
        assert classify(field, "a") == Verdict.PASS

    def test_boolean_false_is_still_present(self):
        assert classify(FieldDefinition(id="b", type="boolean"), False) == Verdict.PASS

    def test_blank_text_is_na(self):
        assert classify(FieldDefinition(id="t", type="text"), "   ") == Verdict.NA


def test_parse_number_rejects_infinity():
    assert parse_number("inf") is None
    assert parse_number(3) == 3.0


def test_classify_answers_covers_every_field(banded):
    fields = [banded, FieldDefinition(id="ok", type="pass_fail")]
    assert classify_answers(fields, {"airflow": 25}) == {
        "airflow": Verdict.FAIL,
        "ok": Verdict.NA,
    }


class TestAggregate:

    def test_any_fail_is_fail(self):
        result = aggregate([Verdict.PASS, Verdict.PASS, Verdict.FAIL])
        assert result.overall_result == OverallResult.FAIL
        assert (result.pass_count, result.fail_count, result.na_count) == (2, 1, 0)

    def test_pass_with_na_is_pass(self):
        result = aggregate([Verdict.PASS, Verdict.NA])
        assert result.overall_result == OverallResult.PASS
        assert result.na_count == 1

    def test_empty_is_incomplete(self):
        assert aggregate([]).overall_result == OverallResult.INCOMPLETE

    def test_only_na_is_incomplete(self):
        result = aggregate([Verdict.NA, Verdict.NA])
        assert result.overall_result == OverallResult.INCOMPLETE
        assert result.na_count == 2
