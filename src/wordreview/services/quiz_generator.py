"""Multiple choice quiz generation."""
import logging
import random
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from wordreview.exceptions import InsufficientDataError, NotFoundError
from wordreview.models.codec import decode_definitions, decode_pronunciation, first_definition
from wordreview.models.learning_models import Quiz, QuizOption, Scope
from wordreview.models.models import Vocabulary
from wordreview.monitoring import quizzes_generated
from wordreview.services.vocabulary_service import VocabularyStore, clean_word

logger = logging.getLogger(__name__)

DISTRACTOR_COUNT = 3
CANDIDATE_BATCH = 20
PHONETIC_ACCENTS = ("American", "British")


class QuizGenerator:
    """Builds a four option question: the word's first meaning plus three others."""

    def __init__(self, db: Session, rng: Optional[random.Random] = None):
        """Initialize the generator with a database session."""
        self.db = db
        self.rng = rng or random.Random()
        self.store = VocabularyStore(db)

    def _distractors(self, target: Vocabulary, correct_answer: str, scope: Scope) -> List[QuizOption]:
        """Pick distinct other meanings in random order, without replacement.

        Rows are drawn in a random order chosen by the database and decoded
        only until enough distinct meanings are found.
        """
        candidates = self.db.execute(
            select(Vocabulary.definitions)
            .where(scope.matches(Vocabulary.owner_id), Vocabulary.id != target.id)
            .order_by(func.random())
            .execution_options(yield_per=CANDIDATE_BATCH)
        )
        options = {}
        try:
            for definitions in candidates.scalars():
                definition = first_definition(decode_definitions(definitions))
                meaning = definition["meaning"]
                # A distractor may not repeat the answer or another distractor
                if meaning and meaning != correct_answer and meaning not in options:
                    options[meaning] = QuizOption(definition=meaning, pos=definition["pos"])
                    if len(options) == DISTRACTOR_COUNT:
                        break
        finally:
            candidates.close()

        if len(options) < DISTRACTOR_COUNT:
            raise InsufficientDataError("Not enough vocabulary items for quiz generation")
        return list(options.values())

    @staticmethod
    def _phonetic(pronunciation: dict) -> Optional[str]:
        for accent in PHONETIC_ACCENTS:
            if pronunciation.get(accent):
                return pronunciation[accent]
        return None

    def generate(self, word: str, scope: Scope) -> Quiz:
        """Build a quiz for a word of the scope."""
        word = clean_word(word)
        target = self.store.get_case_insensitive(word, scope)
        if target is None:
            raise NotFoundError(f'Word "{word}" not found in vocabulary database')

        definitions = decode_definitions(target.definitions)
        answer = first_definition(definitions)
        options = self._distractors(target, answer["meaning"], scope)
        options.append(QuizOption(definition=answer["meaning"], pos=answer["pos"]))
        self.rng.shuffle(options)

        quizzes_generated.inc()
        logger.debug("Generated quiz for %r (owner %s)", target.word, scope.owner_id)
        return Quiz(
            word=target.word,
            phonetic=self._phonetic(decode_pronunciation(target.pronunciation)),
            audio=target.audio_url or None,
            definitions=definitions,
            memory_method=target.memory_method or "",
            correct_answer=answer["meaning"],
            options=options,
        )
