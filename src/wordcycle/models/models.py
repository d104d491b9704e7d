"""Database models for practice progress."""
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from wordcycle.models.base import Base, TimestampMixin


class WordProgressRecord(Base, TimestampMixin):
    """Scheduling state of one word in one language."""

    __tablename__ = "word_progress"
    __table_args__ = (UniqueConstraint("language", "vocabulary_id", name="uq_word_progress_language_vocabulary"),)

    id = Column(Integer, primary_key=True)
    language = Column(String, nullable=False, index=True)
    vocabulary_id = Column(String, nullable=False)
    word = Column(String, nullable=False)
    correct_count = Column(Integer, default=0, nullable=False)
    incorrect_count = Column(Integer, default=0, nullable=False)
    last_practiced = Column(DateTime(timezone=True))
    mastery_level = Column(Integer, default=0, nullable=False)  # 0-5
    next_review_date = Column(DateTime(timezone=True), nullable=False, index=True)
    interval_days = Column(Integer, default=0, nullable=False)
    last_interval_days = Column(Integer, default=0, nullable=False)
    easiness_factor = Column(Float, default=2.5, nullable=False)
    consecutive_correct_count = Column(Integer, default=0, nullable=False)
    leitner_box = Column(Integer, default=1, nullable=False)
    total_reviews = Column(Integer, default=0, nullable=False)

    # Relationships
    completed_modes = relationship(
        "WordProgressCompletedMode",
        back_populates="word_progress",
        cascade="all, delete-orphan",
    )


class WordProgressCompletedMode(Base):
    """A mode answered correctly in the open review cycle of a word."""

    __tablename__ = "word_progress_completed_modes"
    __table_args__ = (UniqueConstraint("word_progress_id", "mode", name="uq_completed_mode"),)

    id = Column(Integer, primary_key=True)
    word_progress_id = Column(Integer, ForeignKey("word_progress.id", ondelete="CASCADE"), nullable=False)
    mode = Column(String, nullable=False)  # flashcard, fillword, multiplechoice

    # Relationships
    word_progress = relationship("WordProgressRecord", back_populates="completed_modes")


class PracticeProgress(Base, TimestampMixin):
    """Aggregate practice statistics for one language."""

    __tablename__ = "practice_progress"

    id = Column(Integer, primary_key=True)
    language = Column(String, unique=True, nullable=False)
    total_sessions = Column(Integer, default=0, nullable=False)
    total_words_practiced = Column(Integer, default=0, nullable=False)
    current_streak = Column(Integer, default=0, nullable=False)
    longest_streak = Column(Integer, default=0, nullable=False)
    last_practice_date = Column(Date)


class PracticedWord(Base, TimestampMixin):
    """A word already counted in the total words practiced of a language."""

    __tablename__ = "practiced_words"
    __table_args__ = (UniqueConstraint("language", "vocabulary_id", name="uq_practiced_word"),)

    id = Column(Integer, primary_key=True)
    language = Column(String, nullable=False, index=True)
    vocabulary_id = Column(String, nullable=False)


class PracticeSessionRecord(Base, TimestampMixin):
    """A completed practice session."""

    __tablename__ = "practice_sessions"

    id = Column(String, primary_key=True)
    collection_id = Column(String, nullable=False)
    mode = Column(String, nullable=False)
    language = Column(String, nullable=False, index=True)
    topic = Column(String)
    level = Column(String)
    total_questions = Column(Integer, default=0, nullable=False)
    correct_answers = Column(Integer, default=0, nullable=False)
    duration_seconds = Column(Integer, default=0, nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=False)

    # Relationships
    results = relationship(
        "PracticeResultRecord",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="PracticeResultRecord.order_index",
    )


class PracticeResultRecord(Base):
    """One answer inside a practice session."""

    __tablename__ = "practice_results"

    id = Column(Integer, primary_key=True)
    session_id = Column(String, ForeignKey("practice_sessions.id", ondelete="CASCADE"), nullable=False)
    vocabulary_id = Column(String, nullable=False)
    word = Column(String, nullable=False)
    correct = Column(Boolean, nullable=False)
    mode = Column(String, nullable=False)
    time_spent_seconds = Column(Float, default=0.0, nullable=False)
    order_index = Column(Integer, nullable=False)

    # Relationships
    session = relationship("PracticeSessionRecord", back_populates="results")
