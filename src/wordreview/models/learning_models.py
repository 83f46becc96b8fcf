"""Models for learning-related data structures."""
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from wordreview.exceptions import ValidationError
from wordreview.models.codec import decode_definitions, decode_pronunciation
from wordreview.models.models import LEGACY_OWNER_KEY, Vocabulary

DEFAULT_HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 500


@dataclass(frozen=True)
class Scope:
    """Whose data a call may see and touch.

    `owner_id=None` is the shared anonymous scope, only valid in legacy mode.
    """
    owner_id: Optional[int] = None
    legacy_mode: bool = True

    @classmethod
    def for_owner(cls, owner_id: Optional[int], legacy_mode: bool) -> "Scope":
        if owner_id is None:
            if not legacy_mode:
                raise ValidationError("An authenticated user is required")
            return cls(None, legacy_mode)
        if isinstance(owner_id, bool) or not isinstance(owner_id, int) or owner_id < 1:
            raise ValidationError(f"Invalid user id: {owner_id!r}")
        return cls(owner_id, legacy_mode)

    @property
    def owner_key(self) -> int:
        return LEGACY_OWNER_KEY if self.owner_id is None else self.owner_id

    def matches(self, column):
        """SQL clause restricting an owner column to this scope."""
        if self.owner_id is None:
            return column.is_(None)
        return column == self.owner_id


class WordType(Enum):
    """Derived classification of a reviewed word."""
    NEW = "new"  # exactly one review
    REVIEWING = "reviewing"  # several reviews, not mastered
    MASTERED = "mastered"
    WRONG = "wrong"  # at least one wrong answer, not mastered


@dataclass
class WordEntry:
    """A vocabulary entry as handed to callers."""
    word: str
    definitions: List[Dict[str, str]]
    pronunciation: Dict[str, str]
    memory_method: Optional[str]
    mastered: bool
    created_at: int
    audio_url: Optional[str] = None
    is_new: bool = False
    review_count: int = 0
    last_reviewed_at: Optional[int] = None

    @classmethod
    def from_vocabulary(
        cls,
        vocab: Vocabulary,
        is_new: bool = False,
        review_count: int = 0,
        last_reviewed_at: Optional[int] = None,
    ) -> "WordEntry":
        return cls(
            word=vocab.word,
            definitions=decode_definitions(vocab.definitions),
            pronunciation=decode_pronunciation(vocab.pronunciation),
            memory_method=vocab.memory_method,
            mastered=bool(vocab.mastered),
            created_at=vocab.created_at,
            audio_url=vocab.audio_url,
            is_new=is_new,
            review_count=review_count or 0,
            last_reviewed_at=last_reviewed_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ReviewOutcome:
    """Result of recording one answer."""
    word: str
    result: bool
    mastered: bool  # True only when this answer made the word mastered

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class QuizOption:
    definition: str
    pos: str


@dataclass
class Quiz:
    """A multiple choice question for one word."""
    word: str
    phonetic: Optional[str]
    audio: Optional[str]
    definitions: List[Dict[str, str]]
    memory_method: str
    correct_answer: str
    options: List[QuizOption] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _parse_millis(name: str, value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a timestamp in milliseconds")
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        raise ValidationError(f"{name} must be a timestamp in milliseconds") from None


def _parse_int(name: str, value: Any, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer") from None
    if parsed < 0:
        raise ValidationError(f"{name} cannot be negative")
    return parsed


@dataclass
class HistoryFilters:
    """Filters of the learning history listing."""
    start_date: Optional[int] = None  # epoch millis, inclusive
    end_date: Optional[int] = None  # epoch millis, inclusive
    word_type: Optional[WordType] = None
    limit: int = DEFAULT_HISTORY_LIMIT
    offset: int = 0

    @classmethod
    def from_params(cls, params: Optional[Mapping[str, Any]]) -> "HistoryFilters":
        """Build filters from loosely typed request parameters."""
        params = params or {}
        start_date = _parse_millis("start_date", params.get("start_date"))
        end_date = _parse_millis("end_date", params.get("end_date"))
        if start_date is not None and end_date is not None and start_date > end_date:
            raise ValidationError("start_date cannot be after end_date")

        word_type = params.get("word_type") or None
        if word_type is not None and not isinstance(word_type, WordType):
            try:
                word_type = WordType(str(word_type).lower())
            except ValueError:
                allowed = ", ".join(t.value for t in WordType)
                raise ValidationError(f"word_type must be one of: {allowed}") from None

        limit = _parse_int("limit", params.get("limit"), DEFAULT_HISTORY_LIMIT)
        if limit == 0 or limit > MAX_HISTORY_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_HISTORY_LIMIT}")

        return cls(
            start_date=start_date,
            end_date=end_date,
            word_type=word_type,
            limit=limit,
            offset=_parse_int("offset", params.get("offset"), 0),
        )


@dataclass
class HistoryEntry:
    entry: WordEntry
    review_count: int
    correct_count: int
    last_review_date: int

    def to_dict(self) -> Dict[str, Any]:
        data = self.entry.to_dict()
        data.update(
            review_count=self.review_count,
            correct_count=self.correct_count,
            last_review_date=self.last_review_date,
        )
        return data


@dataclass
class HistoryPage:
    total: int
    data: List[HistoryEntry]
    limit: int
    offset: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "data": [item.to_dict() for item in self.data],
            "limit": self.limit,
            "offset": self.offset,
        }


@dataclass
class Stats:
    """Real time totals for one scope."""
    total_words: int
    new_words_count: int
    review_words_count: int
    mastered_words_count: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DailyStat:
    date: str
    total_words: int = 0
    completed: int = 0
    correct: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
