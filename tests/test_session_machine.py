"""
Tests for the exam session state machine.

Covers:
- Phase transitions and precondition failures
- Timer acquisition/release on every exit from IN_PROGRESS
- Monotonic countdown and automatic submission at zero
- Termination arbitration between submit and timer expiry (including threads)
- Answer validation and navigation clamping
"""

import threading

import pytest

from cbt_exam.errors import InvalidInput, LoadError, PreconditionFailure
from cbt_exam.models.session_state import SessionPhase
from cbt_exam.services.session_machine import ExamSession


class TestLifecycle:

    def test_initial_phase_is_idle(self, session):
        assert session.phase is SessionPhase.IDLE
        assert session.view().phase is SessionPhase.IDLE

    def test_student_required(self, timer_factory):
        with pytest.raises(PreconditionFailure):
            ExamSession("", timer_factory=timer_factory)

    def test_select_then_cancel_returns_to_idle(self, session, exam):
        session.select_exam(exam)
        assert session.phase is SessionPhase.INSTRUCTIONS

        session.cancel()

        assert session.phase is SessionPhase.IDLE
        assert session.exam is None

    def test_begin_initializes_session(self, session, exam, questions, timers):
        session.select_exam(exam)
        session.begin(questions)

        assert session.phase is SessionPhase.IN_PROGRESS
        assert session.time_remaining == 600
        assert session.current_index == 0
        assert session.sheet.answers == {}
        assert session.started_at is not None
        assert len(timers) == 1 and timers[0].armed

    def test_begin_outside_instructions_fails(self, session, questions, timers):
        with pytest.raises(PreconditionFailure):
            session.begin(questions)
        assert timers == []

    def test_begin_with_empty_bank_stays_in_instructions(self, session, exam, timers):
        session.select_exam(exam)

        with pytest.raises(LoadError) as exc_info:
            session.begin([])

        assert session.phase is SessionPhase.INSTRUCTIONS
        assert exc_info.value.exam_id == exam.id
        assert timers == []

    def test_begin_can_be_retried_after_load_error(self, session, exam, questions):
        session.select_exam(exam)
        with pytest.raises(LoadError):
            session.begin([])

        session.begin(questions)

        assert session.phase is SessionPhase.IN_PROGRESS

    def test_cancel_in_progress_abandons_and_releases_timer(self, started_session, timers):
        started_session.cancel()

        assert started_session.phase is SessionPhase.ABANDONED
        assert timers[0].cancelled
        assert started_session.record is None

    def test_cancel_after_submission_fails(self, started_session):
        started_session.submit()

        with pytest.raises(PreconditionFailure):
            started_session.cancel()

    def test_cancel_when_idle_is_noop(self, session):
        session.cancel()
        assert session.phase is SessionPhase.IDLE

    def test_cancel_when_abandoned_is_noop(self, started_session):
        started_session.cancel()
        started_session.cancel()
        assert started_session.phase is SessionPhase.ABANDONED

    def test_select_exam_while_in_progress_fails(self, started_session, exam):
        with pytest.raises(PreconditionFailure):
            started_session.select_exam(exam)

    def test_submit_before_begin_fails(self, session, exam):
        with pytest.raises(PreconditionFailure):
            session.submit()
        session.select_exam(exam)
        with pytest.raises(PreconditionFailure):
            session.submit()

    def test_mark_persisted_completes(self, started_session):
        started_session.submit()
        started_session.mark_persisted("attempt-1")

        assert started_session.phase is SessionPhase.COMPLETED
        assert started_session.attempt_id == "attempt-1"

    def test_mark_persisted_requires_submitting(self, started_session):
        with pytest.raises(PreconditionFailure):
            started_session.mark_persisted("attempt-1")


class TestAnswering:

    def test_answer_overwrite(self, started_session):
        started_session.select_answer(0, "A")
        started_session.select_answer(0, "C")

        assert started_session.sheet.answers == {0: "C"}

    @pytest.mark.parametrize("index,option", [(-1, "A"), (4, "A"), (0, "E")])
    def test_invalid_answer_rejected_without_change(self, started_session, index, option):
        started_session.select_answer(1, "B")

        with pytest.raises(InvalidInput) as exc_info:
            started_session.select_answer(index, option)

        assert started_session.sheet.answers == {1: "B"}
        assert exc_info.value.phase == "in_progress"

    def test_answer_before_begin_fails(self, session):
        with pytest.raises(PreconditionFailure):
            session.select_answer(0, "A")

    def test_answer_after_submit_fails(self, started_session):
        started_session.submit()
        with pytest.raises(PreconditionFailure):
            started_session.select_answer(0, "A")

    def test_clear_answer(self, started_session):
        started_session.select_answer(2, "D")
        started_session.clear_answer(2)

        assert started_session.view().answered == [False, False, False, False]

    def test_navigation_is_clamped(self, started_session):
        assert started_session.navigate(-1) == 0
        assert started_session.navigate(1) == 1
        for _ in range(10):
            started_session.navigate(1)
        assert started_session.current_index == 3

    def test_navigation_does_not_touch_timer_or_answers(self, started_session, timers):
        started_session.select_answer(0, "A")
        started_session.navigate(1)

        assert started_session.time_remaining == 600
        assert started_session.sheet.answers == {0: "A"}
        assert timers[0].armed

    @pytest.mark.parametrize("direction", [0, 2, -2, True])
    def test_invalid_direction(self, started_session, direction):
        with pytest.raises(InvalidInput):
            started_session.navigate(direction)

    def test_go_to_is_clamped(self, started_session):
        assert started_session.go_to(2) == 2
        assert started_session.go_to(99) == 3
        assert started_session.go_to(-5) == 0

    def test_view_hides_correct_answer(self, started_session):
        view = started_session.view()

        assert view.current_question["index"] == 0
        assert "correct_answer" not in view.current_question

    def test_question_lookup(self, started_session):
        started_session.select_answer(1, "B")

        q = started_session.question(1)

        assert q["saved_answer"] == "B"
        assert q["total"] == 4
        with pytest.raises(InvalidInput):
            started_session.question(4)


class TestCountdown:

    def test_each_tick_decrements_by_one(self, started_session, timers):
        previous = started_session.time_remaining
        for _ in range(10):
            timers[0].fire()
            assert started_session.time_remaining == previous - 1
            previous = started_session.time_remaining

    def test_timer_expiry_submits_automatically(self, started_session, timers):
        timers[0].fire(600)

        assert started_session.phase is SessionPhase.SUBMITTING
        assert started_session.time_remaining == 0
        assert started_session.trigger == "timeout"
        assert started_session.result.score == 0
        assert started_session.result.percentage == 0
        assert started_session.record.trigger == "timeout"
        assert timers[0].cancelled

    def test_ticks_after_expiry_are_ignored(self, started_session, timers):
        timers[0].fire(600)

        assert timers[0].fire_stale() is None
        assert started_session.tick() is None
        assert started_session.time_remaining == 0
        assert started_session.phase is SessionPhase.SUBMITTING

    def test_599_ticks_keep_session_running(self, started_session, timers):
        timers[0].fire(599)

        assert started_session.phase is SessionPhase.IN_PROGRESS
        assert started_session.time_remaining == 1

    def test_tick_outside_progress_is_noop(self, session):
        assert session.tick() is None
        assert session.time_remaining == 0

    def test_stale_tick_after_abandon_is_noop(self, started_session, timers):
        started_session.cancel()

        assert timers[0].fire_stale() is None
        assert started_session.phase is SessionPhase.ABANDONED
        assert started_session.time_remaining == 600


class TestSubmission:

    def test_explicit_submit_scores_three_of_four(self, started_session, timers):
        for i, option in enumerate(["A", "B", "C"]):
            started_session.select_answer(i, option)

        record = started_session.submit()

        assert timers[0].cancelled
        assert started_session.phase is SessionPhase.SUBMITTING
        assert record.score == 3
        assert record.total_questions == 4
        assert record.percentage == 75
        assert record.passed is True
        assert record.answers == {0: "A", 1: "B", 2: "C"}
        assert record.exam_id == "exam-1"
        assert record.course_id == "course-1"
        assert record.student_id == "student-1"
        assert record.trigger == "submit"
        assert record.completed_at >= record.started_at

    def test_second_submit_is_noop(self, started_session):
        assert started_session.submit() is not None
        assert started_session.submit() is None

    def test_submit_after_timeout_is_noop(self, started_session, timers):
        timers[0].fire(600)

        assert started_session.submit() is None
        assert started_session.trigger == "timeout"

    def test_tick_after_submit_is_noop(self, started_session, timers):
        started_session.submit()

        assert timers[0].fire_stale() is None
        assert started_session.time_remaining == 600

    def test_listener_called_exactly_once(self, timer_factory, exam, questions):
        records = []
        session = ExamSession("student-1", timer_factory=timer_factory, on_terminate=records.append)
        session.select_exam(exam)
        session.begin(questions)

        session.submit()
        session.submit()
        session.tick()

        assert len(records) == 1


class TestTerminationRace:

    def _race(self, timer_factory, exam, questions):
        records = []
        lock = threading.Lock()

        def on_terminate(record):
            with lock:
                records.append(record)

        session = ExamSession("student-1", timer_factory=timer_factory, on_terminate=on_terminate)
        session.select_exam(exam)
        session.begin(questions)
        for _ in range(599):
            session.tick()

        barrier = threading.Barrier(2)

        def fire(fn):
            barrier.wait()
            fn()

        threads = [
            threading.Thread(target=fire, args=(session.tick,)),
            threading.Thread(target=fire, args=(session.submit,)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return session, records

    def test_concurrent_submit_and_final_tick_produce_one_record(self, timer_factory, exam, questions):
        for _ in range(50):
            session, records = self._race(timer_factory, exam, questions)

            assert len(records) == 1
            assert session.phase is SessionPhase.SUBMITTING
            assert records[0].trigger in ("submit", "timeout")
            assert session.trigger == records[0].trigger

    def test_same_instant_ordering_submit_first(self, started_session, timers):
        for _ in range(599):
            started_session.tick()

        first = started_session.submit()
        second = started_session.tick()

        assert first is not None and second is None
        assert started_session.trigger == "submit"
        assert started_session.time_remaining == 1

    def test_same_instant_ordering_tick_first(self, started_session):
        for _ in range(599):
            started_session.tick()

        first = started_session.tick()
        second = started_session.submit()

        assert first is not None and second is None
        assert started_session.trigger == "timeout"
