"""
Tests for the quiz session state machine.
"""

import asyncio
import random

import pytest

from nihongo_quiz.errors import InvalidAnswer, InvalidTransition, WrongQuestionType
from nihongo_quiz.pool import PoolResult, QuestionPoolLoader
from nihongo_quiz.session import Active, Completed, Empty, Loading, QuizSession

from conftest import make_store, mc_record, text_record


async def started(questions, category="kotoba", chapter=None, seed=0):
    loader = QuestionPoolLoader(make_store(questions), rng=random.Random(seed))
    session = QuizSession(loader, category, chapter)
    await session.start()
    return session


def answer_correctly(session):
    question = session.current_question()
    if question.question_type == "multiple-choice":
        session.submit_multiple_choice(question.correct_key)
    else:
        session.submit_free_text(question.correct_text)


class BlockingLoader:
    """Loader whose first load waits until released."""

    def __init__(self, questions):
        self.questions = questions
        self.release = asyncio.Event()
        self.calls = 0

    async def load(self, category_id, chapter_id=None):
        self.calls += 1
        if self.calls == 1:
            await self.release.wait()
        return PoolResult(questions=list(self.questions))


class TestStart:
    def test_new_session_is_loading(self, loader):
        session = QuizSession(loader, "kotoba")
        assert isinstance(session.state, Loading)
        with pytest.raises(InvalidTransition):
            session.current_question()
        with pytest.raises(InvalidTransition):
            session.submit_multiple_choice("a")

    @pytest.mark.asyncio
    async def test_start_with_questions_is_active(self):
        session = await started([mc_record("q1"), mc_record("q2")])
        assert session.state == Active(index=0, score=0)
        assert session.total == 2

    @pytest.mark.asyncio
    async def test_empty_pool_for_chapter(self):
        """Empty chapter: the session never becomes active and has no summary."""
        session = await started([mc_record("q1", category="bunpo", chapter="bunpo-1")], "bunpo", "bunpo-2")
        assert session.state == Empty(load_failed=False)
        with pytest.raises(InvalidTransition):
            session.summary()
        with pytest.raises(InvalidTransition):
            session.advance()

    @pytest.mark.asyncio
    async def test_total_is_min_of_ten_and_pool(self):
        session = await started([mc_record(f"q{i}") for i in range(25)])
        assert session.total == 10


class TestMultipleChoice:
    @pytest.mark.asyncio
    async def test_all_correct_gives_full_marks(self):
        session = await started([mc_record("q1", correct="a"), mc_record("q2", correct="b"), mc_record("q3", correct="d")])
        for _ in range(3):
            answer_correctly(session)
            session.advance()
        summary = session.summary()
        assert (summary.score, summary.total, summary.percentage) == (3, 3, 100)
        assert summary.passed

    @pytest.mark.asyncio
    async def test_double_submit_does_not_rescore(self):
        session = await started([mc_record("q1", correct="a"), mc_record("q2")])
        first = session.submit_multiple_choice("a")
        second = session.submit_multiple_choice("a")
        third = session.submit_multiple_choice("b")
        assert session.score == 1
        assert first == second == third
        assert len(session.answers) == 1

    @pytest.mark.asyncio
    async def test_wrong_option_scores_nothing(self):
        session = await started([mc_record("q1", correct="c")])
        record = session.submit_multiple_choice("a")
        assert not record.is_correct
        assert record.correct_answer == "c"
        assert session.score == 0
        assert session.state.revealed

    @pytest.mark.asyncio
    async def test_option_key_case_is_normalized(self):
        session = await started([mc_record("q1", correct="c")])
        assert session.submit_multiple_choice("C").is_correct

    @pytest.mark.asyncio
    async def test_unknown_option_rejected(self):
        session = await started([mc_record("q1")])
        with pytest.raises(InvalidAnswer):
            session.submit_multiple_choice("e")
        assert not session.state.revealed

    @pytest.mark.asyncio
    async def test_free_text_to_multiple_choice_rejected(self):
        session = await started([mc_record("q1", correct="a")])
        with pytest.raises(WrongQuestionType):
            session.submit_free_text("a")
        assert session.score == 0
        assert not session.state.revealed


class TestFreeText:
    @pytest.mark.asyncio
    async def test_trailing_space_and_case_still_correct(self):
        session = await started([text_record("q1", "arigatou")])
        assert session.submit_free_text("Arigatou ").is_correct
        assert session.score == 1

    @pytest.mark.asyncio
    async def test_misspelling_is_incorrect(self):
        session = await started([text_record("q1", "arigatou")])
        assert not session.submit_free_text("arigato").is_correct
        assert session.score == 0

    @pytest.mark.asyncio
    async def test_blank_answer_rejected(self):
        session = await started([text_record("q1", "neko")])
        with pytest.raises(InvalidAnswer):
            session.submit_free_text("   ")
        assert not session.state.revealed

    @pytest.mark.asyncio
    async def test_option_to_free_text_rejected(self):
        session = await started([text_record("q1", "a")])
        with pytest.raises(WrongQuestionType):
            session.submit_multiple_choice("a")


class TestAdvance:
    @pytest.mark.asyncio
    async def test_advance_before_reveal_rejected(self):
        session = await started([mc_record("q1"), mc_record("q2")])
        with pytest.raises(InvalidTransition):
            session.advance()
        assert session.state.index == 0

    @pytest.mark.asyncio
    async def test_advance_clears_response(self):
        session = await started([mc_record("q1"), mc_record("q2")])
        session.submit_multiple_choice("b")
        state = session.advance()
        assert state == Active(index=1, score=session.score)
        assert state.response is None

    @pytest.mark.asyncio
    async def test_last_question_completes_with_true_total(self):
        session = await started([mc_record("q1", correct="a"), text_record("q2", "neko"), mc_record("q3", correct="a")])
        answer_correctly(session)
        session.advance()
        if session.current_question().question_type == "input":
            session.submit_free_text("inu")
        else:
            session.submit_multiple_choice("d")
        session.advance()
        answer_correctly(session)
        state = session.advance()
        assert state == Completed(score=2, total=3)
        summary = session.summary()
        assert summary.percentage == pytest.approx(200 / 3)
        assert not summary.passed

    @pytest.mark.asyncio
    async def test_completed_rejects_answers(self):
        session = await started([mc_record("q1")])
        session.submit_multiple_choice("a")
        session.advance()
        with pytest.raises(InvalidTransition):
            session.submit_multiple_choice("a")


class TestScoring:
    @pytest.mark.asyncio
    async def test_score_bounded_and_non_decreasing(self):
        rng = random.Random(99)
        session = await started(
            [mc_record(f"m{i}", correct=rng.choice("abcd")) for i in range(8)]
            + [text_record(f"t{i}", "neko") for i in range(8)],
            seed=3,
        )
        previous = 0
        while isinstance(session.state, Active):
            question = session.current_question()
            if question.question_type == "multiple-choice":
                session.submit_multiple_choice(rng.choice("abcd"))
            else:
                session.submit_free_text(rng.choice(["neko", "inu"]))
            assert previous <= session.score <= session.total
            previous = session.score
            session.advance()
        assert 0 <= session.summary().score <= session.total == 10

    @pytest.mark.asyncio
    @pytest.mark.parametrize("correct,passed", [(7, True), (6, False)])
    async def test_pass_threshold_is_seventy_percent(self, correct, passed):
        session = await started([mc_record(f"q{i}", correct="a") for i in range(10)])
        for i in range(10):
            session.submit_multiple_choice("a" if i < correct else "b")
            session.advance()
        assert session.summary().passed is passed


class TestRestart:
    @pytest.mark.asyncio
    async def test_restart_resets_score_and_reshuffles(self, loader):
        session = QuizSession(loader, "kotoba")
        await session.start()
        answer_correctly(session)
        first_order = [q.id for q in session.questions]

        await session.restart()
        assert session.state == Active(index=0, score=0)
        assert session.answers == []
        assert [q.id for q in session.questions] != first_order

    @pytest.mark.asyncio
    async def test_restart_from_empty_stays_empty(self):
        session = await started([], "kanji")
        await session.restart()
        assert isinstance(session.state, Empty)

    @pytest.mark.asyncio
    async def test_stale_load_is_ignored(self, store):
        blocking = BlockingLoader(questions=[])
        session = QuizSession(blocking, "kotoba")
        pending = asyncio.create_task(session.start())
        await asyncio.sleep(0)

        session.discard()
        blocking.questions = [q for q in (await QuestionPoolLoader(store).load("kotoba")).questions]
        blocking.release.set()
        await pending

        assert isinstance(session.state, Loading)
        assert session.questions == []

    @pytest.mark.asyncio
    async def test_restart_wins_over_earlier_load(self, store):
        pool = (await QuestionPoolLoader(store).load("kotoba")).questions
        blocking = BlockingLoader(questions=pool)
        session = QuizSession(blocking, "kotoba")
        first = asyncio.create_task(session.start())
        await asyncio.sleep(0)

        await session.restart()
        session.submit_multiple_choice("a")
        blocking.release.set()
        await first

        assert isinstance(session.state, Active)
        assert session.state.revealed
