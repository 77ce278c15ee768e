"""
api/sample_exams.py — MongoDB 없이 실행할 때 사용하는 데모 시험 카탈로그
"""

from cbt_exam.models.exam_model import Exam
from cbt_exam.models.question_model import Question
from cbt_exam.services.memory_store import InMemoryCatalogStore

SAMPLE_EXAM = Exam(
    id="sample-python-basics",
    title="Python Basics - Sample CBT",
    course_id="course-python-101",
    duration_minutes=10,
    question_count=4,
    pass_percentage=60,
)

SAMPLE_QUESTIONS = [
    Question(
        index=0,
        prompt="Which keyword defines a function in Python?",
        options={"A": "func", "B": "def", "C": "lambda", "D": "function"},
        correct_answer="B",
    ),
    Question(
        index=1,
        prompt="What is the result of len([1, 2, 3])?",
        options={"A": "2", "B": "3", "C": "4", "D": "Error"},
        correct_answer="B",
    ),
    Question(
        index=2,
        prompt="Which type is immutable?",
        options={"A": "list", "B": "dict", "C": "set", "D": "tuple"},
        correct_answer="D",
    ),
    Question(
        index=3,
        prompt="What does PEP 8 describe?",
        options={"A": "Style guide", "B": "Packaging format", "C": "Release schedule", "D": "Bytecode"},
        correct_answer="A",
    ),
]


def build_sample_catalog() -> InMemoryCatalogStore:
    catalog = InMemoryCatalogStore()
    catalog.add_exam(SAMPLE_EXAM, SAMPLE_QUESTIONS)
    return catalog
