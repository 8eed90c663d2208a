from datetime import datetime, timezone

import pytest

from helpers import (calculate_letter_grade, calculate_priority, calculate_rubric_total, chunked, days_until,
                     get_pagination_params, is_overdue, paginate, sanitize_string, serialize_doc)

NOW = datetime(2024, 5, 10, 15, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "due, expected",
    [
        ("2024-05-10T09:00:00Z", "high"),
        ("2024-05-09T23:00:00Z", "high"),
        ("2024-05-11T00:00:00Z", "high"),
        ("2024-05-12T23:59:00Z", "high"),
        ("2024-05-13T08:00:00Z", "medium"),
        ("2024-05-15T18:00:00Z", "medium"),
        ("2024-05-16T00:00:00Z", "low"),
        ("2024-06-30T12:00:00Z", "low"),
    ],
)
def test_priority_uses_whole_calendar_days(due, expected):
    assert calculate_priority(due, now=NOW) == expected


def test_same_day_deadline_is_day_zero():
    assert days_until("2024-05-10T16:00:00Z", now=NOW) == 0
    assert days_until("2024-05-10T01:00:00Z", now=NOW) == 0
    assert days_until("2024-05-11T01:00:00Z", now=NOW) == 1


def test_overdue_only_after_end_of_due_day():
    assert not is_overdue("2024-05-10T08:00:00Z", now=NOW)
    assert is_overdue("2024-05-09T23:59:00Z", now=NOW)
    assert not is_overdue("2024-05-11T00:00:00Z", now=NOW)


@pytest.mark.parametrize(
    "score, letter",
    [(95, "A"), (90, "A"), (89, "B"), (85, "B"), (80, "B"), (79.9, "C"), (72, "C"), (70, "C"),
     (69, "D"), (65, "D"), (60, "D"), (59, "F"), (40, "F"), (0, "F")],
)
def test_letter_grade_thresholds(score, letter):
    assert calculate_letter_grade(score) == letter


def test_rubric_total_skips_unscored_criteria():
    criteria = [{"weight": 40, "score": 90}, {"weight": 30, "score": 80}, {"weight": 30}]
    assert calculate_rubric_total(criteria) == 86


def test_rubric_total_without_scores_is_zero():
    assert calculate_rubric_total([{"weight": 50}, {"weight": 50, "score": None}]) == 0
    assert calculate_rubric_total([]) == 0


def test_rubric_total_counts_a_zero_score():
    assert calculate_rubric_total([{"weight": 50, "score": 0}, {"weight": 50, "score": 100}]) == 50


def test_pagination_params_clamp_and_default():
    assert get_pagination_params() == {"page": 1, "limit": 20, "offset": 0}
    assert get_pagination_params("0", "500") == {"page": 1, "limit": 100, "offset": 0}
    assert get_pagination_params("3", "0") == {"page": 3, "limit": 1, "offset": 2}
    assert get_pagination_params("abc", "x") == {"page": 1, "limit": 20, "offset": 0}


def test_paginate_25_items_by_10():
    items = list(range(25))
    first = paginate(items, 1, 10)
    assert first["data"] == list(range(10))
    assert first["total"] == 25
    assert first["totalPages"] == 3
    last = paginate(items, 3, 10)
    assert last["data"] == [20, 21, 22, 23, 24]
    assert paginate(items, 4, 10)["data"] == []


def test_chunked_groups_of_ten():
    assert [len(c) for c in chunked(list(range(23)), 10)] == [10, 10, 3]
    assert chunked([], 10) == []


def test_serialize_doc_camel_cases_nested_keys():
    doc = {
        "_id": "abc",
        "teacher_id": "t1",
        "attempt_history": [{"attempt_number": 1, "submitted_at": "2024-05-10T00:00:00.000+00:00"}],
        "grade": None,
    }
    assert serialize_doc(doc) == {
        "id": "abc",
        "teacherId": "t1",
        "attemptHistory": [{"attemptNumber": 1, "submittedAt": "2024-05-10T00:00:00.000+00:00"}],
        "grade": None,
    }


def test_sanitize_string_strips_tags():
    assert sanitize_string("  <b>Read</b> chapter 3<script>x</script> ") == "Read chapter 3x"
