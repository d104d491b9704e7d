"""Spaced repetition algorithms that schedule the next review of a word."""
import logging
import math
from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Tuple, final

from wordcycle import monitoring
from wordcycle.config import BOX_INTERVAL_PRESETS, settings
from wordcycle.errors import ValidationError
from wordcycle.models.practice_models import (
    MAX_EASINESS_FACTOR,
    MAX_INTERVAL_DAYS,
    MIN_EASINESS_FACTOR,
    DEFAULT_EASINESS_FACTOR,
    PracticeOutcome,
    ReviewResult,
    WordProgress,
    calculate_mastery_level,
    ensure_utc,
)
from wordcycle.services.mode_cycle import ModeCycleTracker, parse_mode, sanitize_modes


logger = logging.getLogger(__name__)


class AlgorithmType(Enum):
    """Available scheduling algorithms."""
    BASE = "base"
    SM2 = "sm2"  # Dynamic easiness factor
    MODIFIED_SM2 = "modifiedsm2"  # Fixed interval per Leitner box
    SIMPLE = "simple"  # Interval doubling


SIMPLE_MAX_INTERVAL = 120  # days


def get_all_subclasses(cls):
    """Get all subclasses of a class."""
    all_subclasses = []
    for subclass in cls.__subclasses__():
        all_subclasses.append(subclass)
        all_subclasses.extend(get_all_subclasses(subclass))
    return all_subclasses


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp(value, lower, upper):
    return max(lower, min(upper, value))


def quality_from_streak(consecutive_correct_count: int) -> int:
    """Map the correct-answer streak to an SM-2 quality grade (0-5).

    A cycle needs at least one correct answer per mode, so a clean first
    cycle maps to 4 and every further clean cycle to 5.
    """
    return min(5, 3 + max(0, consecutive_correct_count) // 3)


def calculate_easiness_factor(current: float, quality: int) -> float:
    """SM-2 update: EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))."""
    quality = clamp(quality, 0, 5)
    new_ef = current + (0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02))
    return round(clamp(new_ef, MIN_EASINESS_FACTOR, MAX_EASINESS_FACTOR), 2)


def get_box_interval(box: int, max_boxes: int) -> int:
    """Fixed review interval (in days) of a Leitner box."""
    presets = BOX_INTERVAL_PRESETS.get(max_boxes, BOX_INTERVAL_PRESETS[5])
    index = clamp(box, 1, len(presets)) - 1
    return presets[index]


class BaseSchedulingAlgorithm(ABC):
    """Base class for all scheduling algorithms."""

    """Fields and methods that must be implemented by subclasses."""
    type: AlgorithmType = AlgorithmType.BASE
    name: str = "Base"
    failure_quality: int = 0

    @abstractmethod
    def _next_interval(self, progress: WordProgress) -> int:
        """Interval (in days) after a completed cycle.

        ``progress`` already holds the new box and easiness factor, and
        ``last_interval_days`` holds the interval before the cycle closed.
        """
        raise NotImplementedError("Subclasses must implement this method")

    def _easiness_on_success(self, progress: WordProgress) -> float:
        return calculate_easiness_factor(progress.easiness_factor, quality_from_streak(progress.consecutive_correct_count))

    def _easiness_on_failure(self, progress: WordProgress) -> float:
        return calculate_easiness_factor(progress.easiness_factor, self.failure_quality)

    """Fields and methods that must not be overridden by subclasses."""

    @final
    def __init__(self, max_boxes: Optional[int] = None):
        self.max_boxes = max_boxes or settings.learning.leitner_box_count

    @final
    def advance(self, progress: WordProgress, outcome: PracticeOutcome, now: Optional[datetime] = None) -> WordProgress:
        """Compute the next progress record for one answer.

        The given record is left untouched. Raises ValidationError when the
        word has no identifier or the mode is not recognized.
        """
        updated, _ = self._schedule(progress, outcome, now)
        return updated

    @final
    def _schedule(self, progress: WordProgress, outcome: PracticeOutcome, now: Optional[datetime]) -> Tuple[WordProgress, bool]:
        if progress.vocabulary_id is None or not str(progress.vocabulary_id).strip():
            monitoring.validation_errors.labels(reason="missing_vocabulary_id").inc()
            raise ValidationError("Cannot schedule a word without a vocabulary id")
        try:
            mode = parse_mode(outcome.mode, progress.vocabulary_id)
        except ValidationError:
            monitoring.validation_errors.labels(reason="unknown_mode").inc()
            raise

        now = ensure_utc(now) if now else datetime.now(UTC)
        updated = self._normalize(progress, now)
        previous_box = updated.leitner_box

        updated.total_reviews += 1
        updated.last_practiced = now

        tracker = ModeCycleTracker(updated.completed_modes_in_cycle)
        cycle_completed = tracker.record(outcome.correct, mode)

        if outcome.correct:
            updated.correct_count += 1
            updated.consecutive_correct_count += 1
            if cycle_completed:
                self._close_cycle(updated, now)
                monitoring.cycles_completed.labels(algorithm=self.type.value).inc()
        else:
            self._apply_failure(updated, now)

        updated.completed_modes_in_cycle = set(tracker.completed_modes)
        updated.mastery_level = calculate_mastery_level(updated.correct_count, updated.incorrect_count)

        monitoring.answers_processed.labels(mode=mode.value, result="correct" if outcome.correct else "incorrect").inc()
        if updated.leitner_box > previous_box:
            monitoring.box_changes.labels(direction="promotion").inc()
        elif updated.leitner_box < previous_box:
            monitoring.box_changes.labels(direction="demotion").inc()

        logger.debug(
            f"{self.type.value}: word {updated.vocabulary_id} {mode.value} "
            f"{'correct' if outcome.correct else 'incorrect'}, box {previous_box}->{updated.leitner_box}, "
            f"interval {updated.interval_days}d, EF {updated.easiness_factor}, next {updated.next_review_date.isoformat()}"
        )
        return updated, cycle_completed

    @final
    def review(self, progress: WordProgress, outcome: PracticeOutcome, now: Optional[datetime] = None) -> ReviewResult:
        """Schedule one answer and describe the change for the learner."""
        previous_box = clamp(int(progress.leitner_box or 1), 1, self.max_boxes)
        updated, cycle_completed = self._schedule(progress, outcome, now)

        interval = updated.interval_days
        days = f"{interval} day{'s' if interval != 1 else ''}"
        if not outcome.correct:
            message = f"Incorrect. Moved to box {updated.leitner_box}. Review again in {days}."
        elif cycle_completed and updated.leitner_box != previous_box:
            message = f"Excellent! Advanced to box {updated.leitner_box}! Next review in {days}."
        elif cycle_completed:
            message = f"Cycle complete! Next review in {days}."
        else:
            remaining = len(ModeCycleTracker(updated.completed_modes_in_cycle).remaining_modes())
            message = f"Mode completed! {remaining} more mode(s) to advance."

        return ReviewResult(
            updated_progress=updated,
            previous_box=previous_box,
            new_box=updated.leitner_box,
            cycle_completed=cycle_completed,
            next_review_date=updated.next_review_date,
            interval_days=interval,
            message=message,
        )

    @final
    def _close_cycle(self, updated: WordProgress, now: datetime) -> None:
        updated.leitner_box = min(updated.leitner_box + 1, self.max_boxes)
        updated.easiness_factor = self._easiness_on_success(updated)
        updated.last_interval_days = updated.interval_days
        updated.interval_days = clamp(self._next_interval(updated), 1, MAX_INTERVAL_DAYS)
        updated.next_review_date = now + timedelta(days=updated.interval_days)

    @final
    def _apply_failure(self, updated: WordProgress, now: datetime) -> None:
        updated.incorrect_count += 1
        updated.consecutive_correct_count = 0
        updated.leitner_box = max(updated.leitner_box - 1, 1)
        updated.easiness_factor = self._easiness_on_failure(updated)
        updated.last_interval_days = updated.interval_days
        updated.interval_days = clamp(updated.interval_days // 2, 1, MAX_INTERVAL_DAYS)
        updated.next_review_date = now + timedelta(days=updated.interval_days)
        updated.failed_in_session = True
        updated.retry_count += 1

    @final
    def _normalize(self, progress: WordProgress, now: datetime) -> WordProgress:
        """Copy the record, clamping values written by older or divergent clients."""
        updated = progress.copy()
        violations: List[Tuple[str, object]] = []

        def fix(name: str, value):
            if value != getattr(updated, name):
                violations.append((name, getattr(updated, name)))
                setattr(updated, name, value)

        ef = updated.easiness_factor
        if ef is None or ef == 0:
            ef = DEFAULT_EASINESS_FACTOR
        fix("easiness_factor", clamp(ef, MIN_EASINESS_FACTOR, MAX_EASINESS_FACTOR))
        fix("leitner_box", clamp(int(updated.leitner_box or 1), 1, self.max_boxes))
        for name in ("interval_days", "last_interval_days"):
            fix(name, clamp(int(getattr(updated, name) or 0), 0, MAX_INTERVAL_DAYS))
        for name in (
            "consecutive_correct_count",
            "correct_count",
            "incorrect_count",
            "total_reviews",
            "retry_count",
        ):
            fix(name, max(0, int(getattr(updated, name) or 0)))

        modes = sanitize_modes(updated.completed_modes_in_cycle)
        if modes != updated.completed_modes_in_cycle:
            violations.append(("completed_modes_in_cycle", updated.completed_modes_in_cycle))
            updated.completed_modes_in_cycle = modes
        if updated.next_review_date is None:
            violations.append(("next_review_date", None))
            updated.next_review_date = now
        else:
            updated.next_review_date = ensure_utc(updated.next_review_date)

        if violations:
            logger.warning(f"Clamped out-of-range values for word {updated.vocabulary_id}: {violations}")
        return updated


class SM2Algorithm(BaseSchedulingAlgorithm):
    """Classic SM-2: intervals grow by the easiness factor."""
    type: AlgorithmType = AlgorithmType.SM2
    name: str = "SM-2 (SuperMemo 2)"
    failure_quality: int = 0

    def _next_interval(self, progress: WordProgress) -> int:
        return round_half_up(progress.last_interval_days * progress.easiness_factor)


class ModifiedSM2Algorithm(BaseSchedulingAlgorithm):
    """SM-2 with a fixed interval per Leitner box."""
    type: AlgorithmType = AlgorithmType.MODIFIED_SM2
    name: str = "Modified SM-2"
    failure_quality: int = 2

    def _next_interval(self, progress: WordProgress) -> int:
        return get_box_interval(progress.leitner_box, self.max_boxes)


class SimpleAlgorithm(BaseSchedulingAlgorithm):
    """Each completed cycle doubles the interval."""
    type: AlgorithmType = AlgorithmType.SIMPLE
    name: str = "Simple Doubling"

    def _next_interval(self, progress: WordProgress) -> int:
        if progress.last_interval_days == 0:
            return 1
        return min(progress.last_interval_days * 2, SIMPLE_MAX_INTERVAL)

    def _easiness_on_success(self, progress: WordProgress) -> float:
        return progress.easiness_factor

    def _easiness_on_failure(self, progress: WordProgress) -> float:
        return progress.easiness_factor


_instances: Dict[Tuple[AlgorithmType, int], BaseSchedulingAlgorithm] = {}


def get_algorithm(name: Optional[str] = None, max_boxes: Optional[int] = None) -> BaseSchedulingAlgorithm:
    """Get the algorithm selected by name (or by settings), one instance per box count."""
    name = name or settings.learning.algorithm
    max_boxes = max_boxes or settings.learning.leitner_box_count
    try:
        algorithm_type = AlgorithmType(name)
    except ValueError:
        logger.warning(f"Unknown algorithm: {name}, defaulting to {AlgorithmType.MODIFIED_SM2.value}")
        algorithm_type = AlgorithmType.MODIFIED_SM2

    key = (algorithm_type, max_boxes)
    if key not in _instances:
        classes = {cls.type: cls for cls in get_all_subclasses(BaseSchedulingAlgorithm)}
        if algorithm_type not in classes:
            logger.warning(f"No implementation for {algorithm_type.value}, defaulting to {AlgorithmType.MODIFIED_SM2.value}")
            algorithm_type = AlgorithmType.MODIFIED_SM2
        _instances[key] = classes[algorithm_type](max_boxes)
    return _instances[key]


def reset_algorithm_instances() -> None:
    """Drop cached algorithm instances."""
    _instances.clear()
