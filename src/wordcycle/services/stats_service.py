"""Aggregate practice statistics: streaks, totals and Leitner box summaries."""
import logging
from dataclasses import dataclass, replace
from datetime import UTC, date, datetime, timedelta
from typing import Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo

from wordcycle.config import settings
from wordcycle.models.practice_models import (
    PracticeSession,
    UserPracticeProgress,
    WordProgress,
    WordStatus,
    ensure_utc,
)
from wordcycle.services.scheduling_algorithms import get_box_interval


logger = logging.getLogger(__name__)


def local_today(now: Optional[datetime] = None, timezone: Optional[str] = None) -> date:
    """Calendar date used for streaks: STATS_TIMEZONE if set, else the local zone."""
    now = ensure_utc(now) if now else datetime.now(UTC)
    timezone = timezone or settings.learning.stats_timezone
    if timezone:
        return now.astimezone(ZoneInfo(timezone)).date()
    return now.astimezone().date()


class StatsAggregator:
    """Folds completed sessions into the per-language aggregate."""

    def apply_session(
        self,
        aggregate: UserPracticeProgress,
        session: PracticeSession,
        today: date,
        updated_progress: Iterable[WordProgress] = (),
    ) -> UserPracticeProgress:
        """Return a new aggregate with the session counted in.

        A word adds to ``total_words_practiced`` the first time it shows up
        in a recorded session, tracked through ``practiced_ids``.
        ``updated_progress`` is merged into ``words_progress``.
        """
        session_ids = {result.vocabulary_id for result in session.results if result.vocabulary_id}
        first_time = session_ids - aggregate.practiced_ids

        current_streak = self._next_streak(aggregate.current_streak, aggregate.last_practice_date, today)
        result = replace(
            aggregate,
            words_progress=self._merge(aggregate.words_progress, updated_progress),
            total_sessions=aggregate.total_sessions + 1,
            total_words_practiced=aggregate.total_words_practiced + len(first_time),
            current_streak=current_streak,
            longest_streak=max(aggregate.longest_streak, current_streak),
            last_practice_date=today,
            practiced_ids=aggregate.practiced_ids | session_ids,
        )
        logger.info(
            f"Session applied for {aggregate.language}: {len(session.results)} answers, "
            f"{len(first_time)} new words, streak {result.current_streak} (longest {result.longest_streak})"
        )
        return result

    @staticmethod
    def _next_streak(current_streak: int, last_practice_date: Optional[date], today: date) -> int:
        if last_practice_date is None:
            return 1
        if today == last_practice_date:
            return current_streak
        if today == last_practice_date + timedelta(days=1):
            return current_streak + 1
        return 1

    @staticmethod
    def _merge(existing: List[WordProgress], updated: Iterable[WordProgress]) -> List[WordProgress]:
        merged: Dict[str, WordProgress] = {wp.vocabulary_id: wp for wp in existing}
        for wp in updated:
            merged[wp.vocabulary_id] = wp
        return list(merged.values())


def determine_word_status(progress: Optional[WordProgress]) -> WordStatus:
    """Map box and streak to the status badge of a word."""
    if progress is None or progress.total_reviews <= 0:
        return WordStatus.NEW

    box = max(1, min(progress.leitner_box, 7))
    consecutive = max(0, min(progress.consecutive_correct_count, 100))

    if box >= 5 or (box == 3 and consecutive >= 2):
        return WordStatus.MASTERED
    if box >= 4 or (box == 3 and consecutive >= 1):
        return WordStatus.ALMOST_DONE
    return WordStatus.STILL_LEARNING


@dataclass
class BoxDistribution:
    """Number of words in one Leitner box."""
    box_number: int
    word_count: int
    percentage: int
    interval_days: int


@dataclass
class LearningStats:
    """Summary of a language's progress for dashboards."""
    total_words: int
    words_due_today: int
    mastered_words: int
    learning_words: int
    new_words: int
    average_box: float
    mastery_percentage: int


def get_box_distribution(words_progress: List[WordProgress], max_boxes: Optional[int] = None) -> List[BoxDistribution]:
    """Get distribution of words across boxes."""
    max_boxes = max_boxes or settings.learning.leitner_box_count
    total = len(words_progress)
    distribution = []
    for box_number in range(1, max_boxes + 1):
        word_count = sum(1 for wp in words_progress if wp.leitner_box == box_number)
        distribution.append(
            BoxDistribution(
                box_number=box_number,
                word_count=word_count,
                percentage=round(word_count / total * 100) if total else 0,
                interval_days=get_box_interval(box_number, max_boxes),
            )
        )
    return distribution


def calculate_mastery_percentage(words_progress: List[WordProgress], max_boxes: Optional[int] = None) -> int:
    """Sum of box levels relative to every word sitting in the last box."""
    max_boxes = max_boxes or settings.learning.leitner_box_count
    if not words_progress:
        return 0
    total_boxes = sum(wp.leitner_box for wp in words_progress)
    return round(total_boxes / (len(words_progress) * max_boxes) * 100)


def get_words_due_today(words_progress: List[WordProgress], today: date, timezone: Optional[str] = None) -> List[WordProgress]:
    """Words whose review date falls on or before ``today``."""
    return [wp for wp in words_progress if local_today(wp.next_review_date, timezone) <= today]


def get_learning_stats(
    words_progress: List[WordProgress],
    max_boxes: Optional[int] = None,
    now: Optional[datetime] = None,
    timezone: Optional[str] = None,
) -> LearningStats:
    """Get summary statistics for display."""
    max_boxes = max_boxes or settings.learning.leitner_box_count
    total_words = len(words_progress)
    mastered = sum(1 for wp in words_progress if wp.leitner_box >= max_boxes)
    new = sum(1 for wp in words_progress if wp.leitner_box == 1)
    average_box = sum(wp.leitner_box for wp in words_progress) / total_words if total_words else 0.0

    return LearningStats(
        total_words=total_words,
        words_due_today=len(get_words_due_today(words_progress, local_today(now, timezone), timezone)),
        mastered_words=mastered,
        learning_words=total_words - mastered - new,
        new_words=new,
        average_box=round(average_box, 1),
        mastery_percentage=calculate_mastery_percentage(words_progress, max_boxes),
    )
