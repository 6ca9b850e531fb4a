from datetime import datetime

import pytest

from errors import Conflict, NotFound, ValidationError
from grading import DEFAULT_GRADING_SCALES, PRIMARY, annotate_result, scales_for
from submission import submit_result, validate_scores
from tests.conftest import make_result, make_student

NOW = datetime(2025, 3, 14, 10, 30)


def score(subject, ca1, ca2, exam):
    return {"subject": subject, "assessments": {"ca1": ca1, "ca2": ca2, "exam": exam}}


@pytest.fixture
def student_repo(repo):
    repo.students["STU001"] = make_student()
    return repo


def test_valid_submission_stores_total(student_repo):
    result = submit_result(student_repo, "STU001", "1st", 2025, [score("Math", 18, 19, 60)],
                           "Good effort", "teacher-1", now=NOW)
    assert result["scores"][0]["total_score"] == 97
    stored = student_repo.students["STU001"]["results"][0]
    assert stored["scores"][0]["total_score"] == 97
    assert stored["updated_by"] == "teacher-1"
    assert stored["updated_at"] == NOW
    assert stored["version"] == 1


def test_exam_over_sixty_rejected_by_field(student_repo):
    with pytest.raises(ValidationError) as exc:
        submit_result(student_repo, "STU001", "1st", 2025, [score("Math", 20, 20, 61)], "", "teacher-1")
    assert exc.value.reason == "score_out_of_range"
    assert "exam" in exc.value.message
    assert student_repo.students["STU001"]["results"] == []


@pytest.mark.parametrize("ca1, ca2, exam, field", [(21, 0, 0, "ca1"), (0, -1, 0, "ca2"), (5, 5, -2, "exam")])
def test_component_bounds(ca1, ca2, exam, field):
    with pytest.raises(ValidationError) as exc:
        validate_scores([score("Math", ca1, ca2, exam)])
    assert exc.value.message.startswith(field)


@pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_components_rejected(student_repo, bad):
    with pytest.raises(ValidationError) as exc:
        submit_result(student_repo, "STU001", "1st", 2025, [score("Math", bad, 10, 40)], "", "teacher-1")
    assert exc.value.reason == "score_out_of_range"
    assert exc.value.message.startswith("ca1")
    assert student_repo.students["STU001"]["results"] == []


def test_fractional_total_is_graded(student_repo):
    result = submit_result(student_repo, "STU001", "1st", 2025, [score("Math", 19.5, 20, 30)], "", "teacher-1")
    assert result["scores"][0]["total_score"] == 69.5
    annotated = annotate_result(result, scales_for(DEFAULT_GRADING_SCALES, PRIMARY))
    assert annotated["scores"][0]["grade"] == "B"


def test_one_bad_subject_rejects_whole_submission(student_repo):
    with pytest.raises(ValidationError):
        submit_result(student_repo, "STU001", "1st", 2025,
                      [score("Math", 10, 10, 50), score("English", 10, 25, 50)], "", "teacher-1")
    assert student_repo.students["STU001"]["results"] == []
    assert student_repo.audit == []


def test_all_zero_submission_rejected(student_repo):
    with pytest.raises(ValidationError) as exc:
        submit_result(student_repo, "STU001", "1st", 2025,
                      [score("Math", 0, 0, 0), score("English", 0, 0, 0)], "", "teacher-1")
    assert exc.value.reason == "no_scores_entered"


def test_one_non_zero_component_is_enough(student_repo):
    result = submit_result(student_repo, "STU001", "1st", 2025,
                           [score("Math", 0, 0, 0), score("English", 0, 1, 0)], "", "teacher-1")
    assert [s["total_score"] for s in result["scores"]] == [0, 1]


def test_invalid_term_and_duplicates(student_repo):
    with pytest.raises(ValidationError) as exc:
        submit_result(student_repo, "STU001", "4th", 2025, [score("Math", 1, 1, 1)], "", "teacher-1")
    assert exc.value.reason == "invalid_term"

    with pytest.raises(ValidationError) as exc:
        validate_scores([score("Math", 1, 1, 1), score("math", 2, 2, 2)])
    assert exc.value.reason == "duplicate_subject"


def test_unknown_student(repo):
    with pytest.raises(NotFound):
        submit_result(repo, "GHOST", "1st", 2025, [score("Math", 1, 1, 1)], "", "teacher-1")


def test_resubmission_replaces_whole_result(student_repo):
    submit_result(student_repo, "STU001", "1st", 2025,
                  [score("Math", 10, 10, 40), score("English", 12, 12, 40)], "first", "teacher-1")
    second = submit_result(student_repo, "STU001", "1st", 2025,
                           [score("Math", 15, 15, 50)], "second", "teacher-2")

    results = student_repo.students["STU001"]["results"]
    assert len(results) == 1
    assert [s["subject"] for s in results[0]["scores"]] == ["Math"]
    assert results[0]["comment"] == "second"
    assert results[0]["updated_by"] == "teacher-2"
    assert second["version"] == 2
    assert [a["action"] for a in student_repo.audit] == ["RESULT_CREATE", "RESULT_UPDATE"]


def test_other_terms_are_untouched(repo):
    repo.students["STU001"] = make_student(results=[make_result(term="2nd")])
    submit_result(repo, "STU001", "1st", 2025, [score("Math", 10, 10, 40)], "", "teacher-1")
    assert sorted(r["term"] for r in repo.students["STU001"]["results"]) == ["1st", "2nd"]


def test_without_version_last_writer_wins(student_repo):
    submit_result(student_repo, "STU001", "1st", 2025, [score("Math", 10, 10, 40)], "a", "teacher-1")
    submit_result(student_repo, "STU001", "1st", 2025, [score("Math", 11, 10, 40)], "b", "teacher-2")
    assert student_repo.students["STU001"]["results"][0]["comment"] == "b"


def test_stale_version_is_a_conflict(student_repo):
    first = submit_result(student_repo, "STU001", "1st", 2025, [score("Math", 10, 10, 40)], "a", "teacher-1",
                          expected_version=0)
    submit_result(student_repo, "STU001", "1st", 2025, [score("Math", 12, 10, 40)], "b", "teacher-2",
                  expected_version=first["version"])

    with pytest.raises(Conflict):
        submit_result(student_repo, "STU001", "1st", 2025, [score("Math", 13, 10, 40)], "c", "teacher-1",
                      expected_version=first["version"])
    assert student_repo.students["STU001"]["results"][0]["comment"] == "b"


def test_lost_write_race_is_a_conflict(student_repo, monkeypatch):
    monkeypatch.setattr(student_repo, "save_result", lambda *args: False)
    with pytest.raises(Conflict):
        submit_result(student_repo, "STU001", "1st", 2025, [score("Math", 10, 10, 40)], "", "teacher-1",
                      expected_version=0)
