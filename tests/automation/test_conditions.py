"""Tests for cadence.automation.conditions — trigger condition evaluation."""

from __future__ import annotations

import pytest

from cadence.automation.conditions import evaluate, unmet_conditions


class TestEmptyConditions:
    @pytest.mark.parametrize("conditions", [None, {}])
    @pytest.mark.parametrize("payload", [{}, {"a": 1}, {"new_status": "off_track", "x": None}])
    def test_always_match(self, conditions, payload):
        assert evaluate(conditions, payload) is True


class TestEquality:
    def test_literal_match(self):
        assert evaluate({"new_status": "off_track"}, {"new_status": "off_track"})

    def test_literal_mismatch(self):
        assert not evaluate({"new_status": "off_track"}, {"new_status": "on_track"})

    def test_missing_field_never_equals(self):
        assert not evaluate({"new_status": "off_track"}, {})
        assert not evaluate({"owner_id": None}, {})

    def test_bool_is_not_int(self):
        assert not evaluate({"flag": 1}, {"flag": True})
        assert evaluate({"flag": True}, {"flag": True})

    def test_entries_are_anded(self):
        conditions = {"new_status": "off_track", "rock_level": "company"}
        assert evaluate(conditions, {"new_status": "off_track", "rock_level": "company"})
        assert not evaluate(conditions, {"new_status": "off_track", "rock_level": "individual"})


class TestOperators:
    def test_eq_and_ne(self):
        assert evaluate({"title": {"$eq": "A"}}, {"title": "A"})
        assert evaluate({"title": {"$ne": "Draft"}}, {"title": "Final"})
        assert not evaluate({"title": {"$ne": "Draft"}}, {"title": "Draft"})

    def test_ne_against_missing_field_holds(self):
        assert evaluate({"title": {"$ne": "Draft"}}, {})

    def test_in(self):
        conditions = {"rock_level": {"$in": ["company", "pillar"]}}
        assert evaluate(conditions, {"rock_level": "pillar"})
        assert not evaluate(conditions, {"rock_level": "individual"})
        assert not evaluate(conditions, {})

    def test_numeric_range(self):
        conditions = {"priority": {"$gt": 1, "$lt": 5}}
        assert evaluate(conditions, {"priority": 3})
        assert evaluate(conditions, {"priority": 2.5})
        assert not evaluate(conditions, {"priority": 1})
        assert not evaluate(conditions, {"priority": 5})

    @pytest.mark.parametrize("value", ["3", None, True, [3], {"n": 3}])
    def test_gt_lt_false_for_non_numbers(self, value):
        assert not evaluate({"priority": {"$gt": 0}}, {"priority": value})
        assert not evaluate({"priority": {"$lt": 10}}, {"priority": value})

    def test_gt_lt_false_for_missing_field(self):
        assert not evaluate({"priority": {"$gt": 0}}, {})
        assert not evaluate({"priority": {"$lt": 10}}, {})

    def test_non_numeric_operand(self):
        assert not evaluate({"priority": {"$gt": "1"}}, {"priority": 3})

    def test_exists(self):
        assert evaluate({"owner_id": {"$exists": True}}, {"owner_id": "p1"})
        assert not evaluate({"owner_id": {"$exists": True}}, {})
        assert not evaluate({"owner_id": {"$exists": True}}, {"owner_id": None})
        assert evaluate({"owner_id": {"$exists": False}}, {})
        assert evaluate({"owner_id": {"$exists": False}}, {"owner_id": None})
        assert not evaluate({"owner_id": {"$exists": False}}, {"owner_id": "p1"})

    def test_unknown_operators_are_ignored(self):
        assert evaluate({"title": {"$regex": "^A"}}, {"title": "Banana"})
        assert evaluate({"title": {"$regex": "^A", "$eq": "Banana"}}, {"title": "Banana"})


class TestUnmetConditions:
    def test_lists_failing_keys(self):
        conditions = {"new_status": "off_track", "priority": {"$gt": 2}, "owner_id": {"$exists": True}}
        assert unmet_conditions(conditions, {"new_status": "off_track", "priority": 1}) == [
            "priority",
            "owner_id",
        ]

    def test_empty(self):
        assert unmet_conditions({}, {"a": 1}) == []
