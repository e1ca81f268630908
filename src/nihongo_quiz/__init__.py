"""Japanese vocabulary, grammar and kanji quizzes served over FastAPI."""

__version__ = "0.2.0"
