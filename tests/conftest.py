import random

import pytest

from nihongo_quiz.config import settings
from nihongo_quiz.pool import QuestionPoolLoader
from nihongo_quiz.store import MemoryDocumentStore

CATEGORIES = [
    {"id": "kotoba", "name": "Kotoba", "slug": "kotoba"},
    {"id": "bunpo", "name": "Bunpo", "slug": "bunpo"},
    {"id": "kanji", "name": "Kanji", "slug": "kanji"},
]

CHAPTERS = [
    {"id": "bunpo-2", "categoryId": "bunpo", "title": "Bab 2", "chapterNumber": 2},
    {"id": "bunpo-1", "categoryId": "bunpo", "title": "Bab 1", "chapterNumber": 1},
]


def mc_record(qid, category="kotoba", chapter=None, correct="a", **extra):
    record = {
        "id": qid,
        "categoryId": category,
        "chapterId": chapter,
        "questionText": f"Question {qid}",
        "questionType": "multiple-choice",
        "optionA": "A",
        "optionB": "B",
        "optionC": "C",
        "optionD": "D",
        "correctAnswer": correct,
    }
    record.update(extra)
    return record


def text_record(qid, answer, category="kotoba", chapter=None, **extra):
    record = {
        "id": qid,
        "categoryId": category,
        "chapterId": chapter,
        "questionText": f"Question {qid}",
        "questionType": "input",
        "correctAnswer": answer,
    }
    record.update(extra)
    return record


def make_store(questions=()):
    return MemoryDocumentStore(categories=CATEGORIES, chapters=CHAPTERS, questions=questions)


@pytest.fixture(autouse=True)
def log_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "LOG_DIR", str(tmp_path / "log"))


@pytest.fixture
def store():
    return make_store(
        [mc_record(f"k{i}") for i in range(15)]
        + [mc_record(f"b1-{i}", category="bunpo", chapter="bunpo-1") for i in range(4)]
        + [text_record("kanji-1", "yama", category="kanji")]
    )


@pytest.fixture
def loader(store):
    return QuestionPoolLoader(store, rng=random.Random(1234))
