import logging
import random
from dataclasses import dataclass, field
from typing import List, Optional

from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError

from .config import settings
from .errors import StoreError
from .models import Category, Question, question_from_record
from .store import DocumentStore, Record

logger = logging.getLogger(__name__)


@dataclass
class PoolResult:
    questions: List[Question] = field(default_factory=list)
    failed: bool = False


def category_has_chapters(category: Category) -> bool:
    return category.slug in settings.CHAPTERED_SLUGS


class QuestionPoolLoader:
    """
    Builds the working set of one quiz session: every eligible question of a
    category (and chapter), shuffled, cut down to ``size``.

    A category with chapters only yields questions for an explicit chapter;
    asked without one it returns an empty pool. Other categories yield their
    questions that have no chapter.
    """

    def __init__(
        self,
        store: DocumentStore,
        size: int = settings.QUIZ_SIZE,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.size = size
        self.rng = rng or random.Random()

    async def load(self, category_id: str, chapter_id: Optional[str] = None) -> PoolResult:
        try:
            records = await run_in_threadpool(self._fetch, category_id, chapter_id)
        except StoreError as e:
            logger.error(f"Could not load questions for {category_id}/{chapter_id}: {e}")
            return PoolResult(failed=True)

        pool = self._normalize(records)
        # random.shuffle is Fisher-Yates: every ordering equally likely
        self.rng.shuffle(pool)
        return PoolResult(questions=pool[: self.size])

    def _fetch(self, category_id: str, chapter_id: Optional[str]) -> List[Record]:
        record = self.store.get_category(category_id)
        if record is None:
            logger.warning(f"Unknown category {category_id}")
            return []
        if chapter_id is None and category_has_chapters(Category.from_record(record)):
            logger.info(f"Category {category_id} requires a chapter; pool is empty")
            return []
        return self.store.find_questions(category_id, chapter_id)

    def _normalize(self, records: List[Record]) -> List[Question]:
        questions = []
        for record in records:
            try:
                questions.append(question_from_record(record))
            except ValidationError as e:
                logger.warning(f"Skipping question {record.get('id')}: {e.error_count()} invalid field(s)")
        return questions
