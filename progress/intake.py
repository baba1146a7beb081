# progress/intake.py
from __future__ import annotations

import dataclasses
import logging
import math
from numbers import Real
from typing import TYPE_CHECKING, Optional

from django.db import models

from .exceptions import ValidationError

if TYPE_CHECKING:
    from .completion import CompletionAggregator, CompletionOutcome

logger = logging.getLogger(__name__)


class ScoreSource(models.TextChoices):
    QUIZ = "quiz", "Quiz"
    READING = "reading", "Reading test"
    LISTENING = "listening", "Listening test"
    VOCABULARY_MASTERY = "vocabulary_mastery", "Vocabulary mastery"

    @property
    def is_graded_attempt(self) -> bool:
        """Quiz/reading/listening submissions are attempts; mastery recomputes are not."""
        return self is not ScoreSource.VOCABULARY_MASTERY


# sources a caller may submit a score for
GRADED_SOURCES = [s.value for s in ScoreSource if s.is_graded_attempt]


@dataclasses.dataclass(frozen=True)
class ScoreEvent:
    user_id: str
    task_id: str
    raw_score: float
    max_score: float
    source: ScoreSource
    course_id: Optional[str] = None

    @property
    def percentage(self) -> float:
        return 100.0 * self.raw_score / self.max_score

    @property
    def fraction(self) -> float:
        return self.raw_score / self.max_score


def _number(name: str, value) -> float:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ValidationError(f"{name} must be a number.")
    value = float(value)
    if not math.isfinite(value):
        raise ValidationError(f"{name} must be finite.")
    return value


def validate_event(event: ScoreEvent) -> ScoreEvent:
    """Return a normalized copy of `event`, or raise ValidationError."""
    if not event.user_id or not event.task_id:
        raise ValidationError("user_id and task_id are required.")
    try:
        source = ScoreSource(event.source)
    except ValueError:
        raise ValidationError(
            f"source must be one of {', '.join(ScoreSource.values)}."
        ) from None
    raw = _number("raw_score", event.raw_score)
    mx = _number("max_score", event.max_score)
    if mx <= 0:
        raise ValidationError("max_score must be > 0.")
    if raw < 0 or raw > mx:
        raise ValidationError("raw_score must be between 0 and max_score.")
    return dataclasses.replace(event, raw_score=raw, max_score=mx, source=source)


class ScoreEventIntake:
    """
    Validation boundary in front of the completion aggregator. Holds no state.

    Only graded sources come in here. Vocabulary mastery is derived from the
    task's learning items by CompletionAggregator.recompute_mastery and is
    never taken from a caller-supplied score.
    """

    def __init__(self, aggregator: "CompletionAggregator"):
        self.aggregator = aggregator

    def submit(self, event: ScoreEvent) -> "CompletionOutcome":
        try:
            event = validate_event(event)
            if not event.source.is_graded_attempt:
                raise ValidationError(
                    f"source must be one of {', '.join(GRADED_SOURCES)}."
                )
        except ValidationError as e:
            logger.debug("rejected score event for %s/%s: %s", event.user_id, event.task_id, e.detail)
            raise
        return self.aggregator.record(event)
