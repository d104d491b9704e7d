"""Service for running practice sessions end to end."""
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Dict, List, Mapping, Optional

from sqlalchemy.orm import Session

from wordcycle import monitoring
from wordcycle.errors import StoreUnavailable, ValidationError, WordcycleError
from wordcycle.models.practice_models import (
    CreatePracticeSessionRequest,
    FailedResult,
    PracticeMode,
    PracticeOutcome,
    PracticeResult,
    PracticeSession,
    ReviewResult,
    SessionReport,
    SessionStats,
    UserPracticeProgress,
    WordProgress,
    create_initial_word_progress,
    ensure_utc,
)
from wordcycle.services.mode_cycle import parse_mode
from wordcycle.services.progress_service import ProgressStore
from wordcycle.services.scheduling_algorithms import BaseSchedulingAlgorithm, get_algorithm
from wordcycle.services.session_queue import SessionQueue
from wordcycle.services.stats_service import LearningStats, StatsAggregator, get_learning_stats, local_today


logger = logging.getLogger(__name__)


@dataclass
class ActiveSession:
    """In-memory state of the session being practiced."""
    language: str
    collection_id: str
    mode: PracticeMode
    started_at: datetime
    queue: SessionQueue
    aggregate: UserPracticeProgress  # as loaded before the first answer
    progress: Dict[str, WordProgress]
    results: List[PracticeResult] = field(default_factory=list)
    updated_ids: List[str] = field(default_factory=list)
    topic: Optional[str] = None
    level: Optional[str] = None
    track_progress: bool = True  # False in study mode: answers never reach the store


class PracticeService:
    """Service wiring the scheduling engine, session queue, stats and store together."""

    def __init__(self, db: Session, algorithm: Optional[BaseSchedulingAlgorithm] = None):
        """Initialize the service with a database session."""
        self.store = ProgressStore(db)
        self.algorithm = algorithm or get_algorithm()
        self.stats = StatsAggregator()
        self.active: Optional[ActiveSession] = None

    def start_session(
        self,
        language: str,
        collection_id: str,
        vocabulary: Optional[Mapping[str, str]] = None,
        mode: PracticeMode = PracticeMode.FLASHCARD,
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
        topic: Optional[str] = None,
        level: Optional[str] = None,
        track_progress: bool = True,
    ) -> List[str]:
        """Start a session and return the ordered ids to practice.

        ``vocabulary`` maps the eligible vocabulary ids to their words; ids
        without stored progress start as new words. When omitted, every word
        with stored progress in the language is eligible. With
        ``track_progress`` off the session is a study run: answers move the
        queue along but nothing is scheduled or recorded.
        """
        _validate_language(language)
        now = ensure_utc(now) if now else datetime.now(UTC)
        aggregate = self.store.get_practice_progress(language)

        progress = {wp.vocabulary_id: wp.copy() for wp in aggregate.words_progress}
        if vocabulary is not None:
            progress = {
                vocabulary_id: progress.get(vocabulary_id) or create_initial_word_progress(vocabulary_id, word, now)
                for vocabulary_id, word in vocabulary.items()
            }
        # Flags left over from an interrupted session
        for wp in progress.values():
            wp.reset_session_flags()

        queue = SessionQueue.from_progress(progress.values(), now, limit=limit)
        self.active = ActiveSession(
            language=language,
            collection_id=collection_id,
            mode=parse_mode(mode),
            started_at=now,
            queue=queue,
            aggregate=aggregate,
            progress=progress,
            topic=topic,
            level=level,
            track_progress=track_progress,
        )
        kind = "practice" if track_progress else "study"
        logger.info(f"Started {language} {kind} session for collection {collection_id} with {len(queue.queue)} words")
        return list(queue.queue)

    def next_word(self) -> Optional[WordProgress]:
        """Get the next word to present, or None when the session is done."""
        active = self._require_active()
        vocabulary_id = active.queue.next_word()
        if vocabulary_id is None:
            return None
        return active.progress[vocabulary_id].copy()

    def submit_answer(
        self,
        vocabulary_id: str,
        correct: bool,
        mode: PracticeMode,
        time_spent_seconds: float = 0.0,
        now: Optional[datetime] = None,
    ) -> ReviewResult:
        """Schedule one answer, persist it and update the session queue.

        Raises ValidationError for an unknown word or mode; the stored
        progress is left untouched in that case.
        """
        active = self._require_active()
        now = ensure_utc(now) if now else datetime.now(UTC)
        if vocabulary_id not in active.progress:
            monitoring.validation_errors.labels(reason="unknown_word").inc()
            raise ValidationError(f"Word {vocabulary_id} is not part of this session", vocabulary_id)

        outcome = PracticeOutcome(correct=correct, mode=mode, time_spent_seconds=time_spent_seconds)
        if active.track_progress:
            review = self.algorithm.review(active.progress[vocabulary_id], outcome, now)
            updated = review.updated_progress
            self.store.update_word_progress(updated.to_update_request(active.language, correct), practiced_at=now)
            active.progress[vocabulary_id] = updated
            if vocabulary_id not in active.updated_ids:
                active.updated_ids.append(vocabulary_id)
        else:
            parse_mode(mode, vocabulary_id)
            updated = active.progress[vocabulary_id]
            review = ReviewResult(
                updated_progress=updated.copy(),
                previous_box=updated.leitner_box,
                new_box=updated.leitner_box,
                cycle_completed=False,
                next_review_date=updated.next_review_date,
                interval_days=updated.interval_days,
                message="Study mode, progress not tracked.",
            )

        active.results.append(
            PracticeResult(
                vocabulary_id=vocabulary_id,
                word=updated.word,
                correct=correct,
                mode=parse_mode(mode),
                time_spent_seconds=time_spent_seconds,
            )
        )
        active.queue.on_answer(vocabulary_id, outcome)
        return review

    def skip_word(self, vocabulary_id: str) -> List[str]:
        """Take a word out of the rest of the session without answering it."""
        active = self._require_active()
        if vocabulary_id not in active.progress:
            monitoring.validation_errors.labels(reason="unknown_word").inc()
            raise ValidationError(f"Word {vocabulary_id} is not part of this session", vocabulary_id)
        return active.queue.skip(vocabulary_id)

    def get_session_stats(self) -> SessionStats:
        """Running totals of the active session."""
        active = self._require_active()
        correct = sum(1 for result in active.results if result.correct)
        return SessionStats(
            total_questions=len(active.results),
            correct_answers=correct,
            incorrect_answers=len(active.results) - correct,
            words_completed=len(active.queue.completed_ids),
            words_deferred=len(active.queue.deferred_ids),
            progress_percentage=active.queue.progress_percentage(),
        )

    def finish_session(self, now: Optional[datetime] = None) -> SessionReport:
        """Close the active session: update statistics and record the session.

        A study session records nothing and returns the aggregate unchanged.
        """
        active = self._require_active()
        now = ensure_utc(now) if now else datetime.now(UTC)
        if not active.track_progress:
            logger.info(f"Study session for {active.language} finished with {len(active.results)} answers")
            self.active = None
            return SessionReport(session_id=None, progress=active.aggregate, scheduled_count=0)

        session = PracticeSession(
            collection_id=active.collection_id,
            mode=active.mode,
            language=active.language,
            results=tuple(active.results),
            started_at=active.started_at,
            completed_at=now,
            duration_seconds=max(0, int((now - active.started_at).total_seconds())),
            topic=active.topic,
            level=active.level,
        )
        updated = [active.progress[vid] for vid in active.updated_ids]
        report = self._complete(active.aggregate, session, updated, now, failed=[])
        if active.queue.deferred_ids:
            logger.info(f"Words deferred to their next due date: {active.queue.deferred_ids}")
        self.active = None
        return report

    def record_session(self, request: CreatePracticeSessionRequest, now: Optional[datetime] = None) -> SessionReport:
        """Schedule and record a session that was practiced elsewhere.

        Each result is scheduled on its own: a result that fails validation
        or cannot be stored is reported in ``failed`` and the rest of the
        session is still recorded. A malformed language or session mode
        rejects the whole request before anything is written.
        """
        _validate_language(request.language)
        try:
            session_mode = parse_mode(request.mode)
        except ValidationError:
            monitoring.validation_errors.labels(reason="unknown_mode").inc()
            raise

        now = ensure_utc(now) if now else datetime.now(UTC)
        aggregate = self.store.get_practice_progress(request.language)
        progress = {wp.vocabulary_id: wp.copy() for wp in aggregate.words_progress}
        for wp in progress.values():
            wp.reset_session_flags()

        succeeded: List[PracticeResult] = []
        updated_ids: List[str] = []
        failed: List[FailedResult] = []
        for index, result in enumerate(request.results):
            current = progress.get(result.vocabulary_id)
            if current is None and result.vocabulary_id:
                current = create_initial_word_progress(result.vocabulary_id, result.word, now)
            try:
                if current is None:
                    raise ValidationError("Result without a vocabulary id", result.vocabulary_id)
                updated = self.algorithm.advance(current, result.to_outcome(), now)
                self.store.update_word_progress(updated.to_update_request(request.language, result.correct), practiced_at=now)
            except (ValidationError, StoreUnavailable) as e:
                logger.warning(f"Skipping result for word {result.vocabulary_id}: {e}")
                failed.append(FailedResult(index=index, vocabulary_id=result.vocabulary_id, reason=str(e)))
                continue
            progress[result.vocabulary_id] = updated
            if result.vocabulary_id not in updated_ids:
                updated_ids.append(result.vocabulary_id)
            succeeded.append(result)

        session = PracticeSession(
            collection_id=request.collection_id,
            mode=session_mode,
            language=request.language,
            results=tuple(succeeded),
            started_at=now - timedelta(seconds=request.duration_seconds),
            completed_at=now,
            duration_seconds=request.duration_seconds,
            topic=request.topic,
            level=request.level,
        )
        return self._complete(aggregate, session, [progress[vid] for vid in updated_ids], now, failed)

    def get_statistics(self, language: str, now: Optional[datetime] = None) -> LearningStats:
        """Get the Leitner statistics of a language."""
        words_progress = self.store.get_all_word_progress(language)
        return get_learning_stats(words_progress, self.algorithm.max_boxes, now)

    def _complete(
        self,
        aggregate: UserPracticeProgress,
        session: PracticeSession,
        updated: List[WordProgress],
        now: datetime,
        failed: List[FailedResult],
    ) -> SessionReport:
        progress = self.stats.apply_session(aggregate, session, local_today(now), updated)
        self.store.save_practice_progress(progress)
        session_id = self.store.create_practice_session(session)

        monitoring.sessions_completed.labels(language=session.language).inc()
        monitoring.session_duration.observe(session.duration_seconds)
        if failed:
            logger.warning(f"Session {session_id} recorded partially, {len(failed)} results failed")
        else:
            logger.info(f"Session {session_id} recorded: {session.correct_answers}/{session.total_questions} correct")
        return SessionReport(
            session_id=session_id,
            progress=progress,
            scheduled_count=session.total_questions,
            failed=failed,
        )

    def _require_active(self) -> ActiveSession:
        if self.active is None:
            raise WordcycleError("No active practice session")
        return self.active


def _validate_language(language: str) -> None:
    if not isinstance(language, str) or not language.strip():
        monitoring.validation_errors.labels(reason="missing_language").inc()
        raise ValidationError(f"Invalid language: {language!r}")
