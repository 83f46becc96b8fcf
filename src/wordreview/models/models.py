"""Database models for the review service."""
from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from wordreview.models.base import Base, TimestampMixin

# owner_key value standing for the shared anonymous scope (owner_id IS NULL)
LEGACY_OWNER_KEY = 0


class User(Base, TimestampMixin):
    """User model. Rows are managed by the authentication layer."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    github_id = Column(Integer, unique=True, nullable=True)
    username = Column(String, nullable=True)
    email = Column(String, nullable=True, index=True)

    # Relationships
    vocabularies = relationship(
        "Vocabulary", back_populates="owner", cascade="all, delete-orphan", passive_deletes=True
    )


class Vocabulary(Base):
    """A word in one user's (or the shared legacy) vocabulary."""

    __tablename__ = "vocabularies"
    __table_args__ = (
        UniqueConstraint("word", "owner_key", name="uq_vocabularies_word_owner"),
    )

    id = Column(Integer, primary_key=True)
    word = Column(String, nullable=False, index=True)
    definitions = Column(Text, nullable=False, default="[]")  # JSON list of {pos, meaning}
    pronunciation = Column(Text, nullable=False, default="{}")  # JSON accent -> phonetic
    memory_method = Column(Text, nullable=True)
    audio_url = Column(String, nullable=True)
    mastered = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(BigInteger, nullable=False)  # epoch millis
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    owner_key = Column(Integer, nullable=False, default=LEGACY_OWNER_KEY)

    # Relationships
    owner = relationship("User", back_populates="vocabularies")

    def __repr__(self) -> str:
        return f"<Vocabulary {self.word!r} owner={self.owner_id}>"


class ReviewRecord(Base):
    """One review answer. Rows are never updated."""

    __tablename__ = "review_records"
    __table_args__ = (
        Index("ix_review_records_owner_word", "owner_id", "word"),
        Index("ix_review_records_word_reviewed_at", "word", "reviewed_at"),
    )

    id = Column(Integer, primary_key=True)
    # No foreign key to vocabularies: history outlives deleted words
    word = Column(String, nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    reviewed_at = Column(BigInteger, nullable=False, index=True)  # epoch millis
    was_correct = Column(Boolean, nullable=False)


class ProgressSnapshot(Base):
    """Per day counters of a user's pass through the day's word list."""

    __tablename__ = "progress_snapshots"
    __table_args__ = (
        UniqueConstraint("date", "owner_key", name="uq_progress_snapshots_date_owner"),
    )

    id = Column(Integer, primary_key=True)
    date = Column(String(10), nullable=False, index=True)  # YYYY-MM-DD
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    owner_key = Column(Integer, nullable=False, default=LEGACY_OWNER_KEY)
    total_words = Column(Integer, nullable=False, default=0)
    current_index = Column(Integer, nullable=False, default=0)
    completed = Column(Integer, nullable=False, default=0)
    correct = Column(Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "total_words": self.total_words,
            "current_index": self.current_index,
            "completed": self.completed,
            "correct": self.correct,
        }
