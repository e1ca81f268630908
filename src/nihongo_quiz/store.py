import logging
import os
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from .errors import NotFoundError, StoreError

logger = logging.getLogger(__name__)

Record = Dict[str, Any]

COLLECTIONS = ("categories", "chapters", "questions")

COLUMNS = {
    "categories": ["id", "name", "slug", "createdAt"],
    "chapters": ["id", "categoryId", "title", "chapterNumber", "createdAt"],
    "questions": [
        "id",
        "categoryId",
        "chapterId",
        "questionText",
        "imageUrl",
        "questionType",
        "optionA",
        "optionB",
        "optionC",
        "optionD",
        "correctAnswer",
        "createdAt",
    ],
}


def _is_null(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _chapter_order(record: Record) -> int:
    try:
        return int(record.get("chapterNumber") or 0)
    except (TypeError, ValueError):
        return 0


def new_id() -> str:
    return uuid.uuid4().hex


class DocumentStore(ABC):
    """
    Read and write access to the ``categories``, ``chapters`` and
    ``questions`` collections. Records are plain dicts with camelCase
    fields; turning them into models is left to the caller.
    """

    def load_all(self) -> None:
        """Hook run once at application startup."""

    @abstractmethod
    def list_categories(self) -> List[Record]:
        pass

    @abstractmethod
    def get_category(self, category_id: str) -> Optional[Record]:
        pass

    @abstractmethod
    def list_chapters(self, category_id: str) -> List[Record]:
        pass

    @abstractmethod
    def get_chapter(self, chapter_id: str) -> Optional[Record]:
        pass

    @abstractmethod
    def find_questions(
        self,
        category_id: str,
        chapter_id: Optional[str] = None,
        any_chapter: bool = False,
    ) -> List[Record]:
        """
        Questions of a category. ``chapter_id=None`` matches questions with
        no chapter, unless ``any_chapter`` drops the chapter filter.
        """

    @abstractmethod
    def get_question(self, question_id: str) -> Optional[Record]:
        pass

    @abstractmethod
    def add_chapter(self, record: Record) -> Record:
        pass

    @abstractmethod
    def add_question(self, record: Record) -> Record:
        pass

    @abstractmethod
    def update_question(self, question_id: str, fields: Record) -> Record:
        pass

    @abstractmethod
    def delete_question(self, question_id: str) -> None:
        pass


class MemoryDocumentStore(DocumentStore):
    """Keeps every collection in process memory."""

    def __init__(
        self,
        categories: Iterable[Record] = (),
        chapters: Iterable[Record] = (),
        questions: Iterable[Record] = (),
    ):
        self.collections: Dict[str, List[Record]] = {
            "categories": [dict(r) for r in categories],
            "chapters": [dict(r) for r in chapters],
            "questions": [dict(r) for r in questions],
        }

    def _find(self, collection: str, record_id: str) -> Optional[Record]:
        for record in self.collections[collection]:
            if str(record.get("id")) == record_id:
                return record
        return None

    # --- Reads ---
    def list_categories(self) -> List[Record]:
        records = [dict(r) for r in self.collections["categories"]]
        records.sort(key=lambda r: r.get("name") or "")
        return records

    def get_category(self, category_id: str) -> Optional[Record]:
        record = self._find("categories", category_id)
        return dict(record) if record else None

    def list_chapters(self, category_id: str) -> List[Record]:
        records = [
            dict(r)
            for r in self.collections["chapters"]
            if r.get("categoryId") == category_id
        ]
        records.sort(key=_chapter_order)
        return records

    def get_chapter(self, chapter_id: str) -> Optional[Record]:
        record = self._find("chapters", chapter_id)
        return dict(record) if record else None

    def find_questions(
        self,
        category_id: str,
        chapter_id: Optional[str] = None,
        any_chapter: bool = False,
    ) -> List[Record]:
        matches = []
        for record in self.collections["questions"]:
            if record.get("categoryId") != category_id:
                continue
            if not any_chapter:
                stored = record.get("chapterId")
                if chapter_id is None and not _is_null(stored):
                    continue
                if chapter_id is not None and stored != chapter_id:
                    continue
            matches.append(dict(record))
        return matches

    def get_question(self, question_id: str) -> Optional[Record]:
        record = self._find("questions", question_id)
        return dict(record) if record else None

    # --- Writes ---
    def add_chapter(self, record: Record) -> Record:
        return self._insert("chapters", record)

    def add_question(self, record: Record) -> Record:
        return self._insert("questions", record)

    def update_question(self, question_id: str, fields: Record) -> Record:
        record = self._find("questions", question_id)
        if record is None:
            raise NotFoundError(f"Question {question_id} not found")
        record.update({k: v for k, v in fields.items() if k != "id"})
        self._persist("questions")
        return dict(record)

    def delete_question(self, question_id: str) -> None:
        record = self._find("questions", question_id)
        if record is None:
            raise NotFoundError(f"Question {question_id} not found")
        self.collections["questions"].remove(record)
        self._persist("questions")

    def _insert(self, collection: str, record: Record) -> Record:
        record = dict(record)
        record.setdefault("id", new_id())
        record.setdefault("createdAt", datetime.now().isoformat())
        self.collections[collection].append(record)
        self._persist(collection)
        return dict(record)

    def _persist(self, collection: str) -> None:
        """Called after every write; nothing to do in memory."""


class CsvDocumentStore(MemoryDocumentStore):
    """
    One CSV file per collection inside ``directory``. Files are read with
    pandas at startup and rewritten after every write.
    """

    def __init__(self, directory: str):
        super().__init__()
        self.directory = directory

    def _path(self, collection: str) -> str:
        return os.path.join(self.directory, f"{collection}.csv")

    def load_all(self):
        if not os.path.exists(self.directory):
            os.makedirs(self.directory, exist_ok=True)
            logger.warning(f"Created directory {self.directory}.")

        found = False
        for collection in COLLECTIONS:
            path = self._path(collection)
            if not os.path.exists(path):
                self.collections[collection] = []
                continue
            found = True
            try:
                df = pd.read_csv(path, encoding="utf-8", dtype=str, keep_default_na=False)
            except (OSError, ValueError) as e:
                raise StoreError(f"Failed to read {path}: {e}") from e
            records = df.to_dict("records")
            self.collections[collection] = [
                {k: (None if v == "" else v) for k, v in r.items()} for r in records
            ]
            logger.info(f"Loaded {len(records)} {collection} from {path}")

        if not found:
            logger.warning("No CSV files found. Seeding sample content.")
            for collection, records in sample_content().items():
                columns = COLUMNS[collection]
                self.collections[collection] = [{c: r.get(c) for c in columns} for r in records]
                self._persist(collection)

    def _persist(self, collection: str) -> None:
        df = pd.DataFrame(self.collections[collection], columns=COLUMNS[collection])
        try:
            df.to_csv(self._path(collection), index=False, encoding="utf-8")
        except OSError as e:
            raise StoreError(f"Failed to write {collection}: {e}") from e


def sample_content() -> Dict[str, List[Record]]:
    now = datetime.now().isoformat()
    categories = [
        {"id": "kotoba", "name": "Kotoba", "slug": "kotoba", "createdAt": now},
        {"id": "bunpo", "name": "Bunpo", "slug": "bunpo", "createdAt": now},
        {"id": "kanji", "name": "Kanji", "slug": "kanji", "createdAt": now},
    ]
    chapters = [
        {"id": "bunpo-1", "categoryId": "bunpo", "title": "Bab 1", "chapterNumber": "1", "createdAt": now},
        {"id": "bunpo-2", "categoryId": "bunpo", "title": "Bab 2", "chapterNumber": "2", "createdAt": now},
    ]
    questions = [
        {
            "id": "kotoba-1",
            "categoryId": "kotoba",
            "questionText": "ねこ",
            "questionType": "multiple-choice",
            "optionA": "dog",
            "optionB": "cat",
            "optionC": "bird",
            "optionD": "fish",
            "correctAnswer": "b",
        },
        {
            "id": "kotoba-2",
            "categoryId": "kotoba",
            "questionText": "Thank you (romaji)",
            "questionType": "input",
            "correctAnswer": "arigatou",
        },
        {
            "id": "bunpo-1-1",
            "categoryId": "bunpo",
            "chapterId": "bunpo-1",
            "questionText": "わたし＿がくせいです。",
            "questionType": "multiple-choice",
            "optionA": "は",
            "optionB": "を",
            "optionC": "に",
            "optionD": "で",
            "correctAnswer": "a",
        },
        {
            "id": "kanji-1",
            "categoryId": "kanji",
            "questionText": "山",
            "questionType": "input",
            "correctAnswer": "yama",
        },
    ]
    for record in questions:
        record.setdefault("createdAt", now)
    return {
        "categories": categories,
        "chapters": chapters,
        "questions": questions,
    }
