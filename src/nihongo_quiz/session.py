"""
Quiz session state machine.

A session is always in exactly one of four states::

    Loading -> Empty
    Loading -> Active -> Active ... -> Completed

``Empty`` and ``Completed`` are terminal until ``restart()`` goes back to
``Loading``. Every operation checks the current state first and raises a
``QuizStateError`` when it does not apply, leaving the score untouched.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import List, Optional, Union

from .config import settings
from .errors import InvalidAnswer, InvalidTransition, WrongQuestionType
from .models import (
    OPTION_KEYS,
    AnswerRecord,
    FreeTextQuestion,
    MultipleChoiceQuestion,
    Question,
    QuestionView,
    QuizView,
    Summary,
)
from .pool import QuestionPoolLoader

logger = logging.getLogger(__name__)


# --- States ---
@dataclass(frozen=True)
class Loading:
    generation: int


@dataclass(frozen=True)
class Empty:
    load_failed: bool = False


@dataclass(frozen=True)
class Active:
    index: int
    score: int
    revealed: bool = False
    response: Optional[str] = None
    correct: Optional[bool] = None


@dataclass(frozen=True)
class Completed:
    score: int
    total: int


SessionState = Union[Loading, Empty, Active, Completed]


def build_summary(score: int, total: int) -> Summary:
    percentage = 100 * score / total
    return Summary(
        score=score,
        total=total,
        percentage=percentage,
        passed=percentage >= settings.PASS_PERCENTAGE,
    )


class QuizSession:
    """One learner's run through a question pool."""

    def __init__(
        self,
        loader: QuestionPoolLoader,
        category_id: str,
        chapter_id: Optional[str] = None,
    ):
        self.loader = loader
        self.category_id = category_id
        self.chapter_id = chapter_id
        self.created_at = datetime.now()
        self.questions: List[Question] = []
        self.answers: List[AnswerRecord] = []
        self._generation = 0
        self.state: SessionState = Loading(self._generation)

    # --- Lifecycle ---
    async def start(self) -> SessionState:
        self._generation += 1
        generation = self._generation
        self.state = Loading(generation)
        self.questions = []
        self.answers = []

        result = await self.loader.load(self.category_id, self.chapter_id)

        if generation != self._generation:
            logger.info(f"Dropping stale load for {self.category_id}/{self.chapter_id}")
            return self.state

        self.questions = list(result.questions)
        if not self.questions:
            self.state = Empty(load_failed=result.failed)
        else:
            self.state = Active(index=0, score=0)
        return self.state

    async def restart(self) -> SessionState:
        return await self.start()

    def discard(self) -> None:
        """Invalidates any load still in flight."""
        self._generation += 1

    # --- Queries ---
    @property
    def total(self) -> int:
        return len(self.questions)

    @property
    def score(self) -> int:
        if isinstance(self.state, (Active, Completed)):
            return self.state.score
        return 0

    def _active(self) -> Active:
        if not isinstance(self.state, Active):
            raise InvalidTransition(f"No question to answer in state {type(self.state).__name__}")
        return self.state

    def current_question(self) -> Question:
        return self.questions[self._active().index]

    # --- Answers ---
    def submit_multiple_choice(self, option_key: str) -> AnswerRecord:
        state = self._active()
        if state.revealed:
            return self.answers[-1]
        question = self.questions[state.index]
        if not isinstance(question, MultipleChoiceQuestion):
            raise WrongQuestionType("Current question expects a typed answer")

        option_key = (option_key or "").strip().lower()
        if option_key not in OPTION_KEYS:
            raise InvalidAnswer(f"Unknown option {option_key!r}")
        return self._reveal(state, question, option_key, question.is_correct(option_key))

    def submit_free_text(self, text: str) -> AnswerRecord:
        state = self._active()
        if state.revealed:
            return self.answers[-1]
        question = self.questions[state.index]
        if not isinstance(question, FreeTextQuestion):
            raise WrongQuestionType("Current question expects one of the options")

        text = (text or "").strip()
        if not text:
            raise InvalidAnswer("Answer must not be blank")
        return self._reveal(state, question, text, question.is_correct(text))

    def _reveal(self, state: Active, question: Question, response: str, correct: bool) -> AnswerRecord:
        record = AnswerRecord(
            question_id=question.id,
            question_text=question.question_text,
            user_answer=response,
            correct_answer=question.correct_answer,
            is_correct=correct,
        )
        self.answers.append(record)
        self.state = replace(
            state,
            revealed=True,
            response=response,
            correct=correct,
            score=state.score + 1 if correct else state.score,
        )
        return record

    def advance(self) -> SessionState:
        state = self._active()
        if not state.revealed:
            raise InvalidTransition("Answer the current question before moving on")
        if state.index == self.total - 1:
            self.state = Completed(score=state.score, total=self.total)
        else:
            self.state = Active(index=state.index + 1, score=state.score)
        return self.state

    def summary(self) -> Summary:
        if not isinstance(self.state, Completed):
            raise InvalidTransition("The quiz is not finished")
        return build_summary(self.state.score, self.state.total)

    # --- Presentation ---
    def view(self) -> QuizView:
        state = self.state
        view = QuizView(
            state=type(state).__name__.lower(),
            category_id=self.category_id,
            chapter_id=self.chapter_id,
            total_questions=self.total,
            score=self.score,
            answered=len(self.answers),
            answers=list(self.answers),
        )
        if isinstance(state, Empty):
            view.load_failed = state.load_failed
        elif isinstance(state, Active):
            question = self.questions[state.index]
            view.current_index = state.index
            view.question = QuestionView(
                id=question.id,
                question_text=question.question_text,
                question_type=question.question_type,
                image_url=question.image_url,
                options=question.options if isinstance(question, MultipleChoiceQuestion) else None,
            )
            if state.revealed:
                view.answer_record = self.answers[-1]
        return view
