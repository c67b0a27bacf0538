import re
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from learnpro.domain.certificates import generate_certificate_number, to_base36
from learnpro.domain.grading import grade_exam, is_answer_correct, percentage_of
from learnpro.domain.progress import as_utc, compute_progress_percentage, is_course_complete
from learnpro.domain.tiers import can_access, normalize_tier, required_tier, tier_rank

CERT_PATTERN = re.compile(r"^CERT-[0-9A-Z]+-[0-9A-Z]{6}$")


# --- progress

@pytest.mark.parametrize("completed,total,expected", [
    (0, 3, 0), (1, 3, 33), (2, 3, 67), (3, 3, 100),
    (1, 8, 13), (5, 3, 100), (-1, 3, 0), (0, 0, 0), (2, 0, 0),
])
def test_compute_progress_percentage(completed, total, expected):
    """Half-up rounding, clamped to [0, 100], zero lessons -> 0"""
    assert compute_progress_percentage(completed, total) == expected

def test_progress_never_decreases_while_completing():
    values = [compute_progress_percentage(done, 7) for done in range(8)]
    assert values == sorted(values)
    assert values[-1] == 100

def test_is_course_complete():
    assert is_course_complete(100)
    assert not is_course_complete(99)

def test_as_utc_normalizes_naive_and_aware():
    naive = datetime(2024, 1, 1, 12, 0)
    assert as_utc(naive).tzinfo == timezone.utc
    plus_two = datetime(2024, 1, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
    assert as_utc(plus_two) == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    assert as_utc(None) is None


# --- tiers

def test_tier_ordering():
    assert tier_rank("free") < tier_rank("basic") < tier_rank("premium")
    assert normalize_tier(" Premium ") == "premium"
    assert normalize_tier("gold") is None

@pytest.mark.parametrize("user_tier,allowed", [("free", False), ("basic", False), ("premium", True)])
def test_premium_course_gating(user_tier, allowed):
    assert can_access(user_tier, "premium") is allowed

def test_unknown_tiers():
    # unknown learner tier behaves as free, unknown course tier as premium
    assert can_access("gold", "free")
    assert not can_access("gold", "basic")
    assert not can_access("premium-ish", "mystery")
    assert can_access("premium", "mystery")
    assert can_access(None, None)

def test_required_tier_for_priced_free_course():
    assert required_tier("free", 0) == "free"
    assert required_tier("free", 19.0) == "basic"
    assert required_tier("premium", 19.0) == "premium"
    assert required_tier(None) == "free"


# --- certificates

def test_to_base36():
    assert to_base36(0) == "0"
    assert to_base36(35) == "Z"
    assert to_base36(36) == "10"
    with pytest.raises(ValueError):
        to_base36(-1)

def test_certificate_number_format():
    number = generate_certificate_number()
    assert CERT_PATTERN.match(number)

def test_certificate_number_encodes_timestamp():
    number = generate_certificate_number(now_ms=36 ** 3)
    assert number.startswith("CERT-1000-")

def test_certificate_numbers_differ():
    numbers = {generate_certificate_number(now_ms=1) for _ in range(20)}
    assert len(numbers) > 1


# --- grading

def _q(id, question_type, correct_answer, points=1):
    return SimpleNamespace(id=id, question_type=question_type, correct_answer=correct_answer, points=points)

def test_is_answer_correct_by_type():
    assert is_answer_correct("single_choice", "Paris", " paris ")
    assert not is_answer_correct("single_choice", "Paris", "Lyon")
    assert is_answer_correct("true_false", True, "true")
    assert is_answer_correct("true_false", "false", False)
    assert not is_answer_correct("true_false", True, "maybe")
    assert is_answer_correct("multiple_select", ["a", "c"], ["c", "a"])
    assert not is_answer_correct("multiple_select", ["a", "c"], ["a"])
    assert is_answer_correct("short_text", "List Comprehension", "list   comprehension")
    assert not is_answer_correct("single_choice", "a", None)

def test_percentage_of():
    assert percentage_of(2, 3) == 67
    assert percentage_of(1, 0) == 0

def test_grade_exam_pass_and_fail():
    questions = [
        _q(1, "single_choice", "b", points=2),
        _q(2, "true_false", True),
        _q(3, "multiple_select", ["x", "y"]),
    ]
    grade = grade_exam(questions, {1: "b", 2: True, 3: ["x"]}, passing_score=70)
    assert (grade.score, grade.max_score, grade.percentage) == (3, 4, 75)
    assert grade.passed
    assert [r.correct for r in grade.results] == [True, True, False]

    failed = grade_exam(questions, {1: "a"}, passing_score=70)
    assert failed.score == 0
    assert not failed.passed

def test_grade_exam_without_points_never_passes():
    grade = grade_exam([_q(1, "single_choice", "a", points=0)], {1: "a"}, passing_score=0)
    assert grade.max_score == 0
    assert not grade.passed
