"""Service for managing vocabulary entries."""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from wordreview.config import LearningSettings, settings
from wordreview.exceptions import NotFoundError, QuotaExceededError, ValidationError
from wordreview.models.base import transaction
from wordreview.models.codec import decode_definitions, decode_pronunciation, encode_json
from wordreview.models.learning_models import Scope
from wordreview.models.models import ProgressSnapshot, ReviewRecord, User, Vocabulary
from wordreview.monitoring import words_added
from wordreview.timeutils import day_bounds_ms, local_date, to_millis, utc_now

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("definitions", "pronunciation", "memory_method", "mastered", "audio_url")


def clean_word(word: Any) -> str:
    """Return the word stripped of surrounding whitespace, rejecting empty input."""
    if not isinstance(word, str) or not word.strip():
        raise ValidationError("Invalid word parameter")
    return word.strip()


def _validated_definitions(raw: Any) -> List[Dict[str, str]]:
    definitions = decode_definitions(raw)
    definitions = [d for d in definitions if d["meaning"].strip()]
    if not definitions:
        raise ValidationError("At least one definition with a meaning is required")
    return definitions


def _validated_pronunciation(raw: Any) -> Dict[str, str]:
    if raw is not None and not isinstance(raw, (dict, str)):
        raise ValidationError("Pronunciation must be a mapping of accent to phonetic")
    return decode_pronunciation(raw)


class VocabularyStore:
    """CRUD over vocabulary entries of one scope."""

    def __init__(
        self,
        db: Session,
        learning: Optional[LearningSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the store with a database session."""
        self.db = db
        self.learning = learning or settings.learning
        self.clock = clock or utc_now

    def _query(self, scope: Scope):
        return self.db.query(Vocabulary).filter(scope.matches(Vocabulary.owner_id))

    def get(self, word: str, scope: Scope) -> Optional[Vocabulary]:
        """Get a vocabulary entry by its word."""
        return self._query(scope).filter(Vocabulary.word == clean_word(word)).first()

    def get_case_insensitive(self, word: str, scope: Scope) -> Optional[Vocabulary]:
        """Get a vocabulary entry ignoring case, preferring the exact spelling."""
        word = clean_word(word)
        return (
            self._query(scope)
            .filter(func.lower(Vocabulary.word) == word.lower())
            .order_by(case((Vocabulary.word == word, 0), else_=1), Vocabulary.id)
            .first()
        )

    def require(self, word: str, scope: Scope) -> Vocabulary:
        vocab = self.get(word, scope)
        if vocab is None:
            raise NotFoundError(f'Word "{word}" not found in vocabulary')
        return vocab

    def list_vocabularies(self, scope: Scope) -> List[Vocabulary]:
        """Get all entries of the scope, newest first."""
        return self._query(scope).order_by(Vocabulary.created_at.desc(), Vocabulary.id.desc()).all()

    def today_bounds(self) -> Tuple[int, int]:
        today = local_date(self.clock(), self.learning.tzinfo)
        return day_bounds_ms(today, self.learning.tzinfo)

    def count_added_today(self, scope: Scope) -> int:
        start, end = self.today_bounds()
        return (
            self._query(scope)
            .filter(Vocabulary.created_at >= start, Vocabulary.created_at < end)
            .count()
        )

    def remaining_new_words(self, scope: Scope) -> int:
        """How many more words may be added today."""
        return max(self.learning.daily_new_words - self.count_added_today(scope), 0)

    def add(self, data: Mapping[str, Any], scope: Scope) -> Dict[str, Any]:
        """Add a new word, enforcing the daily new word limit."""
        word = clean_word(data.get("word"))
        definitions = _validated_definitions(data.get("definitions"))
        pronunciation = _validated_pronunciation(data.get("pronunciation"))

        with transaction(self.db):
            remaining = self.remaining_new_words(scope)
            if remaining <= 0:
                raise QuotaExceededError(
                    f"Daily new words limit ({self.learning.daily_new_words}) reached"
                )

            if self.get(word, scope) is not None:
                raise ValidationError(f'Word "{word}" already exists')

            vocab = Vocabulary(
                word=word,
                definitions=encode_json(definitions),
                pronunciation=encode_json(pronunciation),
                memory_method=data.get("memory_method"),
                audio_url=data.get("audio_url"),
                mastered=False,
                created_at=to_millis(self.clock()),
                owner_id=scope.owner_id,
                owner_key=scope.owner_key,
            )
            self.db.add(vocab)
            try:
                self.db.flush()
            except IntegrityError:
                # Added by a concurrent request after the check above
                raise ValidationError(f'Word "{word}" already exists') from None
            vocab_id = vocab.id

        words_added.inc()
        logger.info("Added word %r for owner %s", word, scope.owner_id)
        return {
            "success": True,
            "word": word,
            "id": vocab_id,
            "remaining_today": remaining - 1,
        }

    def update(self, word: str, changes: Mapping[str, Any], scope: Scope) -> Vocabulary:
        """Update a word's attributes."""
        unknown = sorted(set(changes) - set(UPDATABLE_FIELDS))
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(unknown)}")

        with transaction(self.db):
            vocab = self.require(word, scope)
            for key, value in changes.items():
                if key == "definitions":
                    value = encode_json(_validated_definitions(value))
                elif key == "pronunciation":
                    value = encode_json(_validated_pronunciation(value))
                elif key == "mastered":
                    value = bool(value)
                setattr(vocab, key, value)

        self.db.refresh(vocab)
        logger.info("Updated word %r for owner %s: %s", vocab.word, scope.owner_id, sorted(changes))
        return vocab

    def delete(self, word: str, scope: Scope) -> bool:
        """Delete a word. Its review history is kept."""
        with transaction(self.db):
            vocab = self.require(word, scope)
            self.db.delete(vocab)
        logger.info("Deleted word %r for owner %s", word, scope.owner_id)
        return True

    def _import_records(
        self, vocabularies: Mapping[str, Any] | Iterable[Mapping[str, Any]]
    ) -> Iterable[Tuple[str, Mapping[str, Any]]]:
        if isinstance(vocabularies, Mapping):
            for key, record in vocabularies.items():
                if not isinstance(record, Mapping):
                    raise ValidationError(f"Vocabulary record for {key!r} must be an object")
                yield clean_word(record.get("word") or key), record
        else:
            for record in vocabularies:
                if not isinstance(record, Mapping):
                    raise ValidationError("Vocabulary records must be objects")
                yield clean_word(record.get("word")), record

    def import_vocabularies(
        self, vocabularies: Mapping[str, Any] | Iterable[Mapping[str, Any]], scope: Scope
    ) -> Dict[str, Any]:
        """Insert or replace words from an export. The daily limit does not apply."""
        if vocabularies is None:
            raise ValidationError("Vocabularies data is required")

        count = 0
        with transaction(self.db):
            for word, record in self._import_records(vocabularies):
                timestamp = record.get("timestamp")
                try:
                    created_at = int(timestamp) if timestamp else to_millis(self.clock())
                except (TypeError, ValueError):
                    raise ValidationError(f"Invalid timestamp for word {word!r}") from None
                fields = {
                    "definitions": encode_json(_validated_definitions(record.get("definitions"))),
                    "pronunciation": encode_json(_validated_pronunciation(record.get("pronunciation"))),
                    "memory_method": record.get("memory_method"),
                    "audio_url": record.get("audio_url"),
                    "mastered": bool(record.get("mastered", False)),
                    "created_at": created_at,
                }
                vocab = self.get(word, scope)
                if vocab is None:
                    vocab = Vocabulary(word=word, owner_id=scope.owner_id, owner_key=scope.owner_key)
                    self.db.add(vocab)
                for key, value in fields.items():
                    setattr(vocab, key, value)
                self.db.flush()
                count += 1

        logger.info("Imported %d words for owner %s", count, scope.owner_id)
        return {"success": True, "count": count}

    def export_vocabularies(self, scope: Scope) -> Dict[str, Dict[str, Any]]:
        """Export the scope's words keyed by word."""
        exported = {}
        for vocab in self._query(scope).order_by(Vocabulary.created_at, Vocabulary.id).all():
            exported[vocab.word] = {
                "word": vocab.word,
                "definitions": decode_definitions(vocab.definitions),
                "memory_method": vocab.memory_method,
                "pronunciation": decode_pronunciation(vocab.pronunciation),
                "mastered": bool(vocab.mastered),
                "timestamp": vocab.created_at,
            }
        return exported

    def vocab_stats(self, scope: Scope) -> Dict[str, int]:
        """Count all, mastered and still learning words of the scope."""
        total = self._query(scope).count()
        mastered = self._query(scope).filter(Vocabulary.mastered.is_(True)).count()
        return {"total": total, "mastered": mastered, "learning": total - mastered}

    def claim_legacy_data(self, owner_id: int) -> Dict[str, int]:
        """Move the shared anonymous scope's data to a user, in one transaction.

        Words the user already has and days the user already has progress
        for stay in the legacy scope, together with the answers of those words.
        """
        owner = Scope.for_owner(owner_id, legacy_mode=False)
        legacy = Scope(None)
        owned = {"owner_id": owner.owner_id, "owner_key": owner.owner_key}

        with transaction(self.db):
            if self.db.get(User, owner.owner_id) is None:
                raise NotFoundError(f"User {owner.owner_id} not found")

            owned_words = {
                word for (word,) in self.db.query(Vocabulary.word).filter(Vocabulary.owner_key == owner.owner_key)
            }
            owned_days = {
                day
                for (day,) in self.db.query(ProgressSnapshot.date).filter(
                    ProgressSnapshot.owner_key == owner.owner_key
                )
            }
            kept_words = sorted(
                word
                for (word,) in self.db.query(Vocabulary.word).filter(legacy.matches(Vocabulary.owner_id))
                if word in owned_words
            )
            kept_days = sorted(
                day
                for (day,) in self.db.query(ProgressSnapshot.date).filter(
                    legacy.matches(ProgressSnapshot.owner_id)
                )
                if day in owned_days
            )

            words = (
                self.db.query(Vocabulary)
                .filter(legacy.matches(Vocabulary.owner_id), Vocabulary.word.notin_(kept_words))
                .update(owned, synchronize_session=False)
            )
            reviews = (
                self.db.query(ReviewRecord)
                .filter(legacy.matches(ReviewRecord.owner_id), ReviewRecord.word.notin_(kept_words))
                .update({"owner_id": owner.owner_id}, synchronize_session=False)
            )
            days = (
                self.db.query(ProgressSnapshot)
                .filter(legacy.matches(ProgressSnapshot.owner_id), ProgressSnapshot.date.notin_(kept_days))
                .update(owned, synchronize_session=False)
            )
        self.db.expire_all()

        result = {
            "vocabularies": words,
            "reviews": reviews,
            "progress": days,
            "kept_words": len(kept_words),
            "kept_days": len(kept_days),
        }
        logger.info("Legacy data claimed by user %s: %s", owner.owner_id, result)
        return result
