"""Service for reading and writing practice progress in the database."""
import logging
import uuid
from datetime import UTC, datetime
from typing import List, NoReturn, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wordcycle import monitoring
from wordcycle.errors import StoreUnavailable
from wordcycle.models.models import (
    PracticedWord,
    PracticeProgress,
    PracticeResultRecord,
    PracticeSessionRecord,
    WordProgressCompletedMode,
    WordProgressRecord,
)
from wordcycle.models.practice_models import (
    PracticeMode,
    PracticeResult,
    PracticeSession,
    UpdateProgressRequest,
    UserPracticeProgress,
    WordProgress,
    calculate_mastery_level,
    ensure_utc,
)
from wordcycle.services.mode_cycle import sanitize_modes


logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    return ensure_utc(value) if value is not None else None


def to_word_progress(record: WordProgressRecord) -> WordProgress:
    """Convert a database row to a WordProgress with cleared session flags."""
    return WordProgress(
        vocabulary_id=record.vocabulary_id,
        word=record.word,
        next_review_date=_as_utc(record.next_review_date),
        correct_count=record.correct_count,
        incorrect_count=record.incorrect_count,
        last_practiced=_as_utc(record.last_practiced),
        mastery_level=record.mastery_level,
        interval_days=record.interval_days,
        last_interval_days=record.last_interval_days,
        easiness_factor=record.easiness_factor,
        consecutive_correct_count=record.consecutive_correct_count,
        leitner_box=record.leitner_box,
        total_reviews=record.total_reviews,
        completed_modes_in_cycle=sanitize_modes(m.mode for m in record.completed_modes),
    )


def to_practice_session(record: PracticeSessionRecord) -> PracticeSession:
    """Convert a database row to a PracticeSession."""
    results = tuple(
        PracticeResult(
            vocabulary_id=r.vocabulary_id,
            word=r.word,
            correct=r.correct,
            mode=PracticeMode(r.mode),
            time_spent_seconds=r.time_spent_seconds,
        )
        for r in record.results
    )
    return PracticeSession(
        id=record.id,
        collection_id=record.collection_id,
        mode=PracticeMode(record.mode),
        language=record.language,
        results=results,
        started_at=_as_utc(record.started_at),
        completed_at=_as_utc(record.completed_at),
        duration_seconds=record.duration_seconds,
        topic=record.topic,
        level=record.level,
    )


class ProgressStore:
    """Durable store of word progress, language aggregates and sessions."""

    def __init__(self, db: Session):
        """Initialize the service with a database session."""
        self.db = db

    def get_word_progress(self, language: str, vocabulary_id: str) -> Optional[WordProgress]:
        """Get the progress of one word, or None if it was never practiced."""
        try:
            record = self._get_record(language, vocabulary_id)
        except SQLAlchemyError as e:
            self._fail("get_word_progress", e)
        return to_word_progress(record) if record else None

    def get_all_word_progress(self, language: str) -> List[WordProgress]:
        """Get the progress of every word in a language."""
        try:
            records = (
                self.db.query(WordProgressRecord)
                .filter(WordProgressRecord.language == language)
                .order_by(WordProgressRecord.vocabulary_id)
                .all()
            )
        except SQLAlchemyError as e:
            self._fail("get_all_word_progress", e)
        return [to_word_progress(record) for record in records]

    def update_word_progress(self, request: UpdateProgressRequest, practiced_at: Optional[datetime] = None) -> WordProgress:
        """Persist the engine output for one word, creating the row if needed."""
        practiced_at = ensure_utc(practiced_at) if practiced_at else datetime.now(UTC)
        try:
            record = self._get_record(request.language, request.vocabulary_id)
            if record is None:
                record = WordProgressRecord(language=request.language, vocabulary_id=request.vocabulary_id)
                self.db.add(record)

            record.word = request.word
            record.next_review_date = ensure_utc(request.next_review_date)
            record.interval_days = request.interval_days
            record.last_interval_days = request.last_interval_days
            record.easiness_factor = request.easiness_factor
            record.consecutive_correct_count = request.consecutive_correct_count
            record.leitner_box = request.leitner_box
            record.total_reviews = request.total_reviews
            record.correct_count = request.correct_count
            record.incorrect_count = request.incorrect_count
            record.mastery_level = calculate_mastery_level(request.correct_count, request.incorrect_count)
            record.last_practiced = practiced_at

            modes = sorted(m.value for m in sanitize_modes(request.completed_modes_in_cycle))
            existing = {m.mode: m for m in record.completed_modes}
            for mode, row in existing.items():
                if mode not in modes:
                    record.completed_modes.remove(row)
            for mode in modes:
                if mode not in existing:
                    record.completed_modes.append(WordProgressCompletedMode(mode=mode))

            self.db.commit()
            self.db.refresh(record)
        except SQLAlchemyError as e:
            self._fail("update_word_progress", e)

        logger.debug(
            f"Saved progress for {request.language}/{request.vocabulary_id}: box {record.leitner_box}, "
            f"next review {record.next_review_date}"
        )
        return to_word_progress(record)

    def get_practice_progress(self, language: str) -> UserPracticeProgress:
        """Get the aggregate for a language, with every word's progress attached."""
        words_progress = self.get_all_word_progress(language)
        try:
            record = self.db.query(PracticeProgress).filter(PracticeProgress.language == language).first()
            practiced_ids = {
                row.vocabulary_id
                for row in self.db.query(PracticedWord).filter(PracticedWord.language == language).all()
            }
        except SQLAlchemyError as e:
            self._fail("get_practice_progress", e)

        if record is None:
            return UserPracticeProgress(language=language, words_progress=words_progress, practiced_ids=practiced_ids)
        return UserPracticeProgress(
            language=language,
            words_progress=words_progress,
            total_sessions=record.total_sessions,
            total_words_practiced=record.total_words_practiced,
            current_streak=record.current_streak,
            longest_streak=record.longest_streak,
            last_practice_date=record.last_practice_date,
            practiced_ids=practiced_ids,
        )

    def save_practice_progress(self, progress: UserPracticeProgress) -> None:
        """Persist the aggregate counters and counted word ids of a language.

        Word records are written separately through update_word_progress.
        """
        try:
            record = self.db.query(PracticeProgress).filter(PracticeProgress.language == progress.language).first()
            if record is None:
                record = PracticeProgress(language=progress.language)
                self.db.add(record)
            record.total_sessions = progress.total_sessions
            record.total_words_practiced = progress.total_words_practiced
            record.current_streak = progress.current_streak
            record.longest_streak = progress.longest_streak
            record.last_practice_date = progress.last_practice_date
            stored_ids = {
                row.vocabulary_id
                for row in self.db.query(PracticedWord).filter(PracticedWord.language == progress.language).all()
            }
            for vocabulary_id in sorted(progress.practiced_ids - stored_ids):
                self.db.add(PracticedWord(language=progress.language, vocabulary_id=vocabulary_id))
            self.db.commit()
        except SQLAlchemyError as e:
            self._fail("save_practice_progress", e)
        logger.info(
            f"Saved practice progress for {progress.language}: {progress.total_sessions} sessions, "
            f"streak {progress.current_streak}"
        )

    def create_practice_session(self, session: PracticeSession) -> str:
        """Persist a completed session with its ordered results and return its id."""
        session_id = session.id or str(uuid.uuid4())
        try:
            record = PracticeSessionRecord(
                id=session_id,
                collection_id=session.collection_id,
                mode=session.mode.value,
                language=session.language,
                topic=session.topic,
                level=session.level,
                total_questions=session.total_questions,
                correct_answers=session.correct_answers,
                duration_seconds=session.duration_seconds,
                started_at=ensure_utc(session.started_at),
                completed_at=ensure_utc(session.completed_at),
            )
            for index, result in enumerate(session.results):
                record.results.append(
                    PracticeResultRecord(
                        vocabulary_id=result.vocabulary_id,
                        word=result.word,
                        correct=result.correct,
                        mode=PracticeMode(result.mode).value,
                        time_spent_seconds=result.time_spent_seconds,
                        order_index=index,
                    )
                )
            self.db.add(record)
            self.db.commit()
        except SQLAlchemyError as e:
            self._fail("create_practice_session", e)
        logger.info(f"Recorded practice session {session_id} ({session.total_questions} answers)")
        return session_id

    def get_practice_sessions(self, language: Optional[str] = None, limit: Optional[int] = None) -> List[PracticeSession]:
        """Get recorded sessions, newest first."""
        try:
            query = self.db.query(PracticeSessionRecord)
            if language is not None:
                query = query.filter(PracticeSessionRecord.language == language)
            query = query.order_by(PracticeSessionRecord.completed_at.desc())
            if limit is not None:
                query = query.limit(limit)
            records = query.all()
            return [to_practice_session(record) for record in records]
        except SQLAlchemyError as e:
            self._fail("get_practice_sessions", e)

    def _get_record(self, language: str, vocabulary_id: str) -> Optional[WordProgressRecord]:
        return (
            self.db.query(WordProgressRecord)
            .filter(
                WordProgressRecord.language == language,
                WordProgressRecord.vocabulary_id == vocabulary_id,
            )
            .first()
        )

    def _fail(self, operation: str, error: SQLAlchemyError) -> NoReturn:
        self.db.rollback()
        monitoring.store_errors.labels(operation=operation).inc()
        logger.error(f"Progress store failed during {operation}: {error}")
        raise StoreUnavailable(f"Progress store failed during {operation}") from error
