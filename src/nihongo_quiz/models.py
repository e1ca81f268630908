from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator

OPTION_KEYS = ("a", "b", "c", "d")

MULTIPLE_CHOICE = "multiple-choice"
FREE_TEXT = "input"


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def parse_timestamp(value: Any) -> datetime:
    """Store timestamps may be missing, ISO strings or datetimes."""
    value = _blank_to_none(value)
    if value is None:
        return datetime.now()
    if not isinstance(value, datetime):
        try:
            value = datetime.fromisoformat(str(value))
        except ValueError:
            return datetime.now()
    if value.tzinfo is not None:
        # local naive time, comparable with datetime.now()
        value = value.astimezone().replace(tzinfo=None)
    return value


# --- Content ---
class Category(BaseModel):
    id: str
    name: str
    slug: str
    created_at: datetime = Field(default_factory=datetime.now)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Category":
        return cls(
            id=str(record["id"]),
            name=record.get("name") or "",
            slug=record.get("slug") or "",
            created_at=parse_timestamp(record.get("createdAt")),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "createdAt": self.created_at.isoformat(),
        }


class Chapter(BaseModel):
    id: str
    category_id: str
    title: str
    chapter_number: int = Field(gt=0)
    created_at: datetime = Field(default_factory=datetime.now)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Chapter":
        return cls(
            id=str(record["id"]),
            category_id=str(record.get("categoryId")),
            title=record.get("title") or "",
            chapter_number=int(record.get("chapterNumber")),
            created_at=parse_timestamp(record.get("createdAt")),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "categoryId": self.category_id,
            "title": self.title,
            "chapterNumber": self.chapter_number,
            "createdAt": self.created_at.isoformat(),
        }


class _QuestionBase(BaseModel):
    id: str
    category_id: str
    chapter_id: Optional[str] = None
    question_text: str
    image_url: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)

    def _base_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "categoryId": self.category_id,
            "chapterId": self.chapter_id,
            "questionText": self.question_text,
            "imageUrl": self.image_url,
            "questionType": self.question_type,
            "createdAt": self.created_at.isoformat(),
        }


class MultipleChoiceQuestion(_QuestionBase):
    question_type: Literal["multiple-choice"] = MULTIPLE_CHOICE
    options: Dict[str, str]
    correct_key: Literal["a", "b", "c", "d"]

    @field_validator("options")
    @classmethod
    def _all_four_options(cls, options: Dict[str, str]) -> Dict[str, str]:
        missing = [key for key in OPTION_KEYS if not (options.get(key) or "").strip()]
        if missing:
            raise ValueError(f"missing options: {', '.join(missing)}")
        return {key: options[key] for key in OPTION_KEYS}

    def is_correct(self, option_key: str) -> bool:
        return option_key == self.correct_key

    @property
    def correct_answer(self) -> str:
        return self.correct_key

    def to_record(self) -> Dict[str, Any]:
        record = self._base_record()
        for key in OPTION_KEYS:
            record[f"option{key.upper()}"] = self.options[key]
        record["correctAnswer"] = self.correct_key
        return record


class FreeTextQuestion(_QuestionBase):
    question_type: Literal["input"] = FREE_TEXT
    correct_text: str = Field(min_length=1)

    def is_correct(self, text: str) -> bool:
        return text.strip().lower() == self.correct_text.strip().lower()

    @property
    def correct_answer(self) -> str:
        return self.correct_text

    def to_record(self) -> Dict[str, Any]:
        record = self._base_record()
        for key in OPTION_KEYS:
            record[f"option{key.upper()}"] = None
        record["correctAnswer"] = self.correct_text
        return record


Question = Annotated[
    Union[MultipleChoiceQuestion, FreeTextQuestion],
    Field(discriminator="question_type"),
]
_question_adapter = TypeAdapter(Question)


def question_from_record(record: Mapping[str, Any]) -> Union[MultipleChoiceQuestion, FreeTextQuestion]:
    """
    Builds a typed question from a raw store record.

    Records written before free-text questions existed carry no
    ``questionType`` and are read as multiple-choice. Raises
    ``pydantic.ValidationError`` when the record cannot form a question.
    """
    question_type = _blank_to_none(record.get("questionType")) or MULTIPLE_CHOICE
    data: Dict[str, Any] = {
        "id": str(record.get("id")),
        "category_id": str(record.get("categoryId")),
        "chapter_id": _blank_to_none(record.get("chapterId")),
        "question_text": record.get("questionText") or "",
        "image_url": _blank_to_none(record.get("imageUrl")),
        "question_type": question_type,
        "created_at": parse_timestamp(record.get("createdAt")),
    }
    correct = record.get("correctAnswer") or ""
    if question_type == MULTIPLE_CHOICE:
        data["options"] = {
            key: _blank_to_none(record.get(f"option{key.upper()}")) or ""
            for key in OPTION_KEYS
        }
        data["correct_key"] = str(correct).strip().lower()
    else:
        data["correct_text"] = str(correct)
    return _question_adapter.validate_python(data)


# --- Admin input ---
class QuestionDraft(BaseModel):
    """Question fields as submitted by a content author."""

    category_id: str = Field(min_length=1)
    chapter_id: Optional[str] = None
    question_text: str
    question_type: Literal["multiple-choice", "input"] = MULTIPLE_CHOICE
    option_a: Optional[str] = None
    option_b: Optional[str] = None
    option_c: Optional[str] = None
    option_d: Optional[str] = None
    correct_answer: str

    @field_validator("chapter_id", "option_a", "option_b", "option_c", "option_d", mode="before")
    @classmethod
    def _empty_is_none(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("question_text", "correct_answer")
    @classmethod
    def _required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()

    @model_validator(mode="after")
    def _check_type_fields(self) -> "QuestionDraft":
        if self.question_type == MULTIPLE_CHOICE:
            if not all((self.option_a, self.option_b, self.option_c, self.option_d)):
                raise ValueError("multiple-choice questions need all four options")
            self.correct_answer = self.correct_answer.lower()
            if self.correct_answer not in OPTION_KEYS:
                raise ValueError("correct_answer must be one of a, b, c, d")
        return self

    def build(
        self, question_id: str, image_url: Optional[str], created_at: Optional[datetime] = None
    ) -> Union[MultipleChoiceQuestion, FreeTextQuestion]:
        common = dict(
            id=question_id,
            category_id=self.category_id,
            chapter_id=self.chapter_id,
            question_text=self.question_text,
            image_url=image_url,
            created_at=created_at or datetime.now(),
        )
        if self.question_type == MULTIPLE_CHOICE:
            return MultipleChoiceQuestion(
                options={
                    "a": self.option_a,
                    "b": self.option_b,
                    "c": self.option_c,
                    "d": self.option_d,
                },
                correct_key=self.correct_answer,
                **common,
            )
        return FreeTextQuestion(correct_text=self.correct_answer, **common)


# --- Session views ---
class AnswerRecord(BaseModel):
    question_id: str
    question_text: str
    user_answer: str
    correct_answer: str
    is_correct: bool


class Summary(BaseModel):
    score: int
    total: int
    percentage: float
    passed: bool


class QuestionView(BaseModel):
    """A question as shown to the learner, without its answer."""

    id: str
    question_text: str
    question_type: str
    image_url: Optional[str] = None
    options: Optional[Dict[str, str]] = None


class QuizView(BaseModel):
    state: str
    category_id: str
    chapter_id: Optional[str] = None
    current_index: Optional[int] = None
    total_questions: int = 0
    score: int = 0
    answered: int = 0
    load_failed: bool = False
    question: Optional[QuestionView] = None
    answer_record: Optional[AnswerRecord] = None
    answers: List[AnswerRecord] = Field(default_factory=list)
