"""Selection, ordering and in-session requeueing of words to practice."""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from wordcycle import monitoring
from wordcycle.config import settings
from wordcycle.models.practice_models import PracticeOutcome, WordProgress, ensure_utc


logger = logging.getLogger(__name__)


@dataclass
class SessionWordState:
    """Session-scoped state of one word; never persisted."""
    retry_count: int = 0
    presentations: int = 0
    answered_correctly: bool = False
    deferred: bool = False
    skipped: bool = False


def _overdue_order(progress: WordProgress, now: datetime):
    """Most overdue first, then ascending vocabulary id."""
    overdue = (now - ensure_utc(progress.next_review_date)).total_seconds()
    return (-overdue, str(progress.vocabulary_id))


def interleave_new_words(reviews: List[WordProgress], new_words: List[WordProgress], ratio: float) -> List[WordProgress]:
    """Merge new words into the review list so they make up about ``ratio`` of it."""
    merged = []
    review_index = new_index = 0
    while review_index < len(reviews) or new_index < len(new_words):
        take_new = new_index < len(new_words) and (
            review_index >= len(reviews) or new_index + 1 <= ratio * (len(merged) + 1)
        )
        if take_new:
            merged.append(new_words[new_index])
            new_index += 1
        else:
            merged.append(reviews[review_index])
            review_index += 1
    return merged


def build_queue(
    all_progress: Iterable[WordProgress],
    now: datetime,
    limit: Optional[int] = None,
    new_words_limit: Optional[int] = None,
    new_words_ratio: Optional[float] = None,
) -> List[str]:
    """Build the ordered list of vocabulary ids to practice.

    A word is eligible when it is due or already failed earlier in the same
    session. Never-practiced words are capped at ``new_words_limit`` and
    spread among the reviews. The result only depends on the arguments.
    """
    now = ensure_utc(now)
    limit = settings.learning.words_per_session if limit is None else limit
    new_words_limit = settings.learning.new_words_per_session if new_words_limit is None else new_words_limit
    new_words_ratio = settings.learning.new_words_ratio if new_words_ratio is None else new_words_ratio
    if limit <= 0:
        return []

    seen: Set[str] = set()
    reviews: List[WordProgress] = []
    new_words: List[WordProgress] = []
    for progress in all_progress:
        if not progress.vocabulary_id or progress.vocabulary_id in seen:
            continue
        if not (progress.failed_in_session or progress.is_due(now)):
            continue
        seen.add(progress.vocabulary_id)
        if progress.is_new():
            new_words.append(progress)
        else:
            reviews.append(progress)

    reviews.sort(key=lambda wp: _overdue_order(wp, now))
    new_words.sort(key=lambda wp: _overdue_order(wp, now))
    new_words = new_words[:max(0, new_words_limit)]

    ordered = interleave_new_words(reviews, new_words, new_words_ratio)[:limit]
    logger.debug(f"Built queue with {len(ordered)} words ({len(reviews)} due reviews, {len(new_words)} new words)")
    return [wp.vocabulary_id for wp in ordered]


class SessionQueue:
    """Presentation order of one practice session, with retry of missed words."""

    def __init__(
        self,
        vocabulary_ids: Iterable[str],
        max_retries: Optional[int] = None,
        spacing: Optional[int] = None,
    ):
        self.queue: List[str] = list(dict.fromkeys(vocabulary_ids))
        self.max_retries = max_retries or settings.learning.max_retries_per_session
        self.spacing = spacing or settings.learning.requeue_spacing
        self.context: Dict[str, SessionWordState] = {vid: SessionWordState() for vid in self.queue}
        self.current: Optional[str] = None

    @classmethod
    def from_progress(
        cls,
        all_progress: Iterable[WordProgress],
        now: datetime,
        limit: Optional[int] = None,
        new_words_limit: Optional[int] = None,
        new_words_ratio: Optional[float] = None,
        max_retries: Optional[int] = None,
        spacing: Optional[int] = None,
    ) -> "SessionQueue":
        """Create a session queue from the due words."""
        ids = build_queue(all_progress, now, limit, new_words_limit, new_words_ratio)
        return cls(ids, max_retries=max_retries, spacing=spacing)

    def next_word(self) -> Optional[str]:
        """Take the next word to present, or None when the session is over."""
        if not self.queue:
            self.current = None
            return None
        self.current = self.queue.pop(0)
        self._state(self.current).presentations += 1
        return self.current

    def on_answer(self, vocabulary_id: str, outcome: PracticeOutcome) -> List[str]:
        """Apply an answer to the queue and return the updated order."""
        state = self._state(vocabulary_id)
        if self.current == vocabulary_id:
            self.current = None
        elif vocabulary_id in self.queue:
            # Answered without being taken from the queue
            self.queue.remove(vocabulary_id)
            state.presentations += 1

        if outcome.correct:
            state.answered_correctly = True
            self._discard(vocabulary_id)
            logger.debug(f"Word {vocabulary_id} answered correctly, {len(self.queue)} words left")
            return list(self.queue)

        state.retry_count += 1
        self._discard(vocabulary_id)
        if state.retry_count < self.max_retries:
            position = min(state.retry_count * self.spacing, len(self.queue))
            self.queue.insert(position, vocabulary_id)
            monitoring.words_requeued.inc()
            logger.debug(f"Word {vocabulary_id} failed ({state.retry_count}/{self.max_retries}), requeued at position {position}")
        else:
            state.deferred = True
            monitoring.words_deferred.inc()
            logger.info(f"Word {vocabulary_id} failed {state.retry_count} times, deferred to its next due date")
        return list(self.queue)

    def skip(self, vocabulary_id: str) -> List[str]:
        """Drop a word from the rest of the session, counting it as deferred."""
        state = self._state(vocabulary_id)
        if self.current == vocabulary_id:
            self.current = None
        self._discard(vocabulary_id)
        if not state.deferred:
            state.deferred = True
            state.skipped = True
            monitoring.words_deferred.inc()
            logger.info(f"Word {vocabulary_id} skipped, deferred to its next due date")
        return list(self.queue)

    def refresh(
        self,
        all_progress: Iterable[WordProgress],
        now: datetime,
        limit: Optional[int] = None,
        new_words_limit: Optional[int] = None,
        new_words_ratio: Optional[float] = None,
    ) -> List[str]:
        """Append newly eligible words, skipping words already finished in this session."""
        for vocabulary_id in build_queue(all_progress, now, limit, new_words_limit, new_words_ratio):
            state = self.context.get(vocabulary_id)
            if state and (state.answered_correctly or state.deferred):
                continue
            if vocabulary_id in self.queue or vocabulary_id == self.current:
                continue
            self._state(vocabulary_id)
            self.queue.append(vocabulary_id)
        return list(self.queue)

    def is_complete(self) -> bool:
        """Check if every word is answered correctly or deferred."""
        return not self.queue and self.current is None

    @property
    def remaining_count(self) -> int:
        return len(self.queue) + (1 if self.current else 0)

    def progress_percentage(self) -> int:
        """Share of the session's words that are finished, as a whole percentage."""
        if not self.context:
            return 100
        finished = sum(1 for state in self.context.values() if state.answered_correctly or state.deferred)
        return round(finished / len(self.context) * 100)

    @property
    def deferred_ids(self) -> List[str]:
        return [vid for vid, state in self.context.items() if state.deferred]

    @property
    def completed_ids(self) -> List[str]:
        return [vid for vid, state in self.context.items() if state.answered_correctly]

    def _state(self, vocabulary_id: str) -> SessionWordState:
        if vocabulary_id not in self.context:
            logger.debug(f"Tracking word {vocabulary_id} that was not in the initial queue")
            self.context[vocabulary_id] = SessionWordState()
        return self.context[vocabulary_id]

    def _discard(self, vocabulary_id: str) -> None:
        self.queue = [vid for vid in self.queue if vid != vocabulary_id]
