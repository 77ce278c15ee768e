"""
Tests for the typed records: Question, Exam, AnswerSheet, AttemptRecord.
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from cbt_exam.errors import InvalidInput
from cbt_exam.models.answer_sheet import AnswerSheet
from cbt_exam.models.attempt_model import AttemptRecord, GradeResult
from cbt_exam.models.exam_model import Exam
from cbt_exam.models.question_model import Question, options_from_list, validate_bank


def _question(index=0, **overrides):
    data = dict(index=index, prompt="2 + 2 = ?", options={"A": "3", "B": "4"}, correct_answer="B")
    data.update(overrides)
    return Question(**data)


class TestQuestion:

    def test_valid_question(self):
        q = _question()
        assert q.correct_answer == "B"
        assert "correct_answer" not in q.public_dict()

    def test_answer_is_normalized(self):
        assert _question(correct_answer=" b ").correct_answer == "B"

    def test_answer_must_be_an_option(self):
        with pytest.raises(ValidationError):
            _question(correct_answer="C")

    def test_option_labels_limited_to_a_to_d(self):
        with pytest.raises(ValidationError):
            _question(options={"A": "1", "E": "2"}, correct_answer="A")

    def test_at_least_two_options(self):
        with pytest.raises(ValidationError):
            _question(options={"A": "only"}, correct_answer="A")

    def test_frozen(self):
        q = _question()
        with pytest.raises(ValidationError):
            q.correct_answer = "A"

    def test_options_from_list(self):
        assert options_from_list(["x", "y", "z"]) == {"A": "x", "B": "y", "C": "z"}
        with pytest.raises(ValueError):
            options_from_list(["1", "2", "3", "4", "5"])

    def test_validate_bank(self):
        assert validate_bank([]) is not None
        assert validate_bank([_question(0), _question(1)]) is None
        assert validate_bank([_question(1), _question(0)]) is not None


class TestExam:

    def test_missing_duration_defaults_to_ten_minutes(self):
        assert Exam(id="e", title="t", duration_minutes=None).duration_minutes == 10
        assert Exam(id="e", title="t", duration_minutes=0).duration_minutes == 10
        assert Exam(id="e", title="t").duration_seconds == 600

    def test_question_bank_ref_prefers_course(self):
        assert Exam(id="e", title="t", course_id="c").question_bank_ref == "c"
        assert Exam(id="e", title="t").question_bank_ref == "e"

    def test_pass_percentage_range(self):
        with pytest.raises(ValidationError):
            Exam(id="e", title="t", pass_percentage=101)


class TestAnswerSheet:

    def test_select_and_overwrite(self):
        sheet = AnswerSheet(question_count=3)
        sheet.select(1, "A")
        sheet.select(1, "C")

        assert sheet.answers == {1: "C"}
        assert sheet.answered_count == 1

    def test_clear(self):
        sheet = AnswerSheet(question_count=3, answers={0: "A"})
        sheet.clear(0)

        assert not sheet.is_answered(0)
        assert sheet.unanswered_indexes() == [0, 1, 2]

    @pytest.mark.parametrize("index,option", [(-1, "A"), (3, "A"), (0, "E"), (0, "a"), (0, "")])
    def test_invalid_input_rejected(self, index, option):
        sheet = AnswerSheet(question_count=3, answers={0: "B"})
        with pytest.raises(InvalidInput):
            sheet.select(index, option)
        assert sheet.answers == {0: "B"}

    def test_construction_validates_keys(self):
        with pytest.raises(ValidationError):
            AnswerSheet(question_count=2, answers={2: "A"})

    def test_snapshot_is_a_copy(self):
        sheet = AnswerSheet(question_count=2, answers={1: "A", 0: "B"})
        snap = sheet.snapshot()
        sheet.select(0, "C")

        assert snap == {0: "B", 1: "A"}


class TestAttemptRecord:

    def _record(self, **overrides):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        data = dict(
            exam_id="e", student_id="s", course_id="c", answers={0: "A"},
            score=1, total_questions=2, percentage=50, passed=False,
            started_at=start, completed_at=start + timedelta(minutes=5),
        )
        data.update(overrides)
        return AttemptRecord(**data)

    def test_valid(self):
        assert self._record().trigger == "submit"

    def test_score_cannot_exceed_total(self):
        with pytest.raises(ValidationError):
            self._record(score=3)

    def test_answers_in_range(self):
        with pytest.raises(ValidationError):
            self._record(answers={5: "A"})

    def test_completed_after_started(self):
        with pytest.raises(ValidationError):
            self._record(completed_at=datetime(2023, 1, 1, tzinfo=timezone.utc))

    def test_unknown_trigger(self):
        with pytest.raises(ValidationError):
            self._record(trigger="crash")

    def test_grade_result_bounds(self):
        with pytest.raises(ValidationError):
            GradeResult(score=5, total_questions=4, percentage=100, passed=True)
