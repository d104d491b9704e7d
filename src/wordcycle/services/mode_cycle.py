"""Tracking of practice modes completed within a review cycle."""
import logging
from typing import FrozenSet, Iterable, Optional, Set, Union

from wordcycle.errors import ValidationError
from wordcycle.models.practice_models import ALL_MODES, PracticeMode


logger = logging.getLogger(__name__)


def parse_mode(mode: Union[PracticeMode, str], vocabulary_id: Optional[str] = None) -> PracticeMode:
    """Convert a mode tag to a PracticeMode, rejecting unknown tags."""
    if isinstance(mode, PracticeMode):
        return mode
    try:
        return PracticeMode(mode)
    except ValueError as e:
        raise ValidationError(f"Unknown practice mode: {mode!r}", vocabulary_id) from e


def sanitize_modes(modes: Iterable[Union[PracticeMode, str]]) -> Set[PracticeMode]:
    """Keep only recognized mode tags, dropping anything else."""
    cleaned = set()
    for mode in modes or ():
        try:
            cleaned.add(parse_mode(mode))
        except ValidationError:
            logger.warning(f"Dropping unknown mode {mode!r} from completed modes")
    return cleaned


class ModeCycleTracker:
    """Tracks which modes of a word have been answered correctly in the current cycle.

    The cycle is open until every required mode has been answered correctly.
    Closing it resets the set so a new cycle starts right away. Any incorrect
    answer forfeits the whole cycle.
    """

    def __init__(
        self,
        completed_modes: Iterable[Union[PracticeMode, str]] = (),
        required_modes: FrozenSet[PracticeMode] = ALL_MODES,
    ):
        self.required_modes = frozenset(required_modes)
        self.completed_modes: Set[PracticeMode] = sanitize_modes(completed_modes) & self.required_modes

    def is_complete(self) -> bool:
        """Check if all required modes are completed."""
        return self.completed_modes >= self.required_modes

    def remaining_modes(self) -> Set[PracticeMode]:
        """Modes still needed to close the cycle."""
        return set(self.required_modes - self.completed_modes)

    def reset(self) -> None:
        """Start a new, empty cycle."""
        self.completed_modes = set()

    def record(self, correct: bool, mode: Union[PracticeMode, str]) -> bool:
        """Record an answer and return True if it closed the cycle."""
        mode = parse_mode(mode)
        if not correct:
            if self.completed_modes:
                logger.debug(f"Cycle forfeited after incorrect {mode.value}, lost {sorted(m.value for m in self.completed_modes)}")
            self.reset()
            return False

        if mode in self.required_modes:
            self.completed_modes.add(mode)
        if self.is_complete():
            logger.debug("All modes completed, closing cycle")
            self.reset()
            return True

        logger.debug(f"Cycle still open, remaining modes: {sorted(m.value for m in self.remaining_modes())}")
        return False
