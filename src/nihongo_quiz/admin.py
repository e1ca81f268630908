import logging
from typing import List, Optional, Union

from pydantic import ValidationError

from .errors import ContentValidationError, NotFoundError, StoreError
from .models import (
    Chapter,
    FreeTextQuestion,
    MultipleChoiceQuestion,
    Question,
    QuestionDraft,
    parse_timestamp,
    question_from_record,
)
from .store import DocumentStore, new_id
from .uploads import ImageFile, ImageUploader

logger = logging.getLogger(__name__)


def parse_chapter_number(value: Union[str, int, None]) -> int:
    try:
        number = int(str(value).strip())
    except ValueError:
        raise ContentValidationError("Chapter number must be a positive integer")
    if number < 1:
        raise ContentValidationError("Chapter number must be a positive integer")
    return number


class AdminService:
    """Content authoring: every write is validated before it reaches the store."""

    def __init__(self, store: DocumentStore, uploader: ImageUploader):
        self.store = store
        self.uploader = uploader

    def _require_category(self, category_id: str) -> None:
        if self.store.get_category(category_id) is None:
            raise NotFoundError(f"Category {category_id} not found")

    def _check_chapter(self, draft: QuestionDraft) -> None:
        if draft.chapter_id is None:
            return
        chapter = self.store.get_chapter(draft.chapter_id)
        if chapter is None or chapter.get("categoryId") != draft.category_id:
            raise ContentValidationError("Chapter does not belong to the selected category")

    # --- Chapters ---
    def create_chapter(self, category_id: str, title: str, chapter_number) -> Chapter:
        self._require_category(category_id)
        title = (title or "").strip()
        if not title:
            raise ContentValidationError("Chapter title must not be blank")
        number = parse_chapter_number(chapter_number)

        chapter = Chapter(id=new_id(), category_id=category_id, title=title, chapter_number=number)
        self.store.add_chapter(chapter.to_record())
        logger.info(f"Created chapter {number} '{title}' in {category_id}")
        return chapter

    # --- Questions ---
    def list_questions(self, category_id: str, chapter_id: Optional[str] = None) -> List[Question]:
        try:
            records = self.store.find_questions(category_id, chapter_id, any_chapter=chapter_id is None)
        except StoreError as e:
            logger.error(f"Could not list questions for {category_id}/{chapter_id}: {e}")
            return []
        questions = []
        for record in records:
            try:
                questions.append(question_from_record(record))
            except ValidationError:
                logger.warning(f"Unreadable question record {record.get('id')}")
        questions.sort(key=lambda q: q.created_at, reverse=True)
        return questions

    async def create_question(
        self, draft: QuestionDraft, image: Optional[ImageFile] = None
    ) -> Union[MultipleChoiceQuestion, FreeTextQuestion]:
        self._require_category(draft.category_id)
        self._check_chapter(draft)

        image_url = await self.uploader.upload(image) if image else None
        question = draft.build(new_id(), image_url)
        self.store.add_question(question.to_record())
        logger.info(f"Created {question.question_type} question {question.id}")
        return question

    async def update_question(
        self, question_id: str, draft: QuestionDraft, image: Optional[ImageFile] = None
    ) -> Union[MultipleChoiceQuestion, FreeTextQuestion]:
        existing = self.store.get_question(question_id)
        if existing is None:
            raise NotFoundError(f"Question {question_id} not found")
        self._require_category(draft.category_id)
        self._check_chapter(draft)

        image_url = existing.get("imageUrl") or None
        if image:
            image_url = await self.uploader.upload(image)

        created_at = parse_timestamp(existing.get("createdAt"))
        question = draft.build(question_id, image_url, created_at)
        self.store.update_question(question_id, question.to_record())
        logger.info(f"Updated question {question_id}")
        return question

    def delete_question(self, question_id: str) -> None:
        self.store.delete_question(question_id)
        logger.info(f"Deleted question {question_id}")
