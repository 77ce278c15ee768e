"""
Shared fixtures for the CBT session tests.

ManualTimer replaces CountdownTimer so state-machine tests can drive ticks
synchronously and inspect arm/cancel pairing.
"""

import pytest

from cbt_exam.models.exam_model import Exam
from cbt_exam.models.question_model import Question
from cbt_exam.services.memory_store import InMemoryCatalogStore, InMemoryHistoryStore
from cbt_exam.services.session_controller import SessionController
from cbt_exam.services.session_machine import ExamSession


class ManualTimer:
    """Timer double: entering arms, exiting cancels, fire() delivers ticks."""

    def __init__(self, on_tick):
        self.on_tick = on_tick
        self.armed = False
        self.cancelled = False
        self.arm_count = 0

    def __enter__(self):
        assert not self.armed, "timer armed twice"
        self.armed = True
        self.arm_count += 1
        return self

    def __exit__(self, exc_type, exc, tb):
        self.armed = False
        self.cancelled = True

    def fire(self, n=1):
        """Deliver up to n ticks; stops as soon as the timer is cancelled."""
        for _ in range(n):
            if not self.armed:
                break
            self.on_tick()

    def fire_stale(self):
        """Deliver a tick even after cancellation (simulates a late wake-up)."""
        return self.on_tick()


@pytest.fixture
def timers():
    return []


@pytest.fixture
def timer_factory(timers):
    def factory(on_tick):
        t = ManualTimer(on_tick)
        timers.append(t)
        return t
    return factory


@pytest.fixture
def exam():
    return Exam(
        id="exam-1",
        title="Unit Test Exam",
        course_id="course-1",
        duration_minutes=10,
        question_count=4,
        pass_percentage=60,
    )


@pytest.fixture
def questions():
    answers = ["A", "B", "C", "D"]
    return [
        Question(
            index=i,
            prompt=f"Question {i + 1}",
            options={"A": "one", "B": "two", "C": "three", "D": "four"},
            correct_answer=answers[i],
        )
        for i in range(4)
    ]


@pytest.fixture
def catalog(exam, questions):
    store = InMemoryCatalogStore()
    store.add_exam(exam, questions)
    return store


@pytest.fixture
def history():
    return InMemoryHistoryStore()


@pytest.fixture
def session(timer_factory):
    return ExamSession("student-1", timer_factory=timer_factory)


@pytest.fixture
def started_session(session, exam, questions):
    session.select_exam(exam)
    session.begin(questions)
    return session


@pytest.fixture
def controller(catalog, history, timer_factory):
    return SessionController(
        "student-1", catalog, history,
        timer_factory=timer_factory, save_retries=3, retry_delay=0,
    )
