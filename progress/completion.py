# progress/completion.py
from __future__ import annotations

import dataclasses
import datetime as dt
import logging
from typing import Any, Dict, List, Optional, Tuple

from django.db import DatabaseError, transaction
from django.db.models import F
from django.utils import timezone

from .config import ProgressConfig
from .exceptions import NotFoundError, PersistenceError, ValidationError
from .intake import ScoreEvent, ScoreSource, validate_event
from .items import ItemStore, MasteryProgress
from .models import CompletionRecord
from .upsert import upsert_with_conflict_recovery

logger = logging.getLogger(__name__)


class CompletionStore:
    """Row access for CompletionRecord. Every write is a single conditional UPDATE."""

    def __init__(self, using: str = "default"):
        self.using = using

    def _qs(self):
        return CompletionRecord.objects.using(self.using)

    def get(self, user_id: str, task_id: str) -> Optional[CompletionRecord]:
        return self._qs().filter(user_id=user_id, task_id=task_id).first()

    def create(self, **fields) -> CompletionRecord:
        return self._qs().create(**fields)

    def apply(
        self,
        pk: int,
        percentage: float,
        meets_threshold: bool,
        count_attempt: bool,
        now: dt.datetime,
    ) -> Tuple[bool, bool]:
        """
        Apply one event to an existing record. Returns (score_written, newly_completed).

        - the event that completes the record stores its own score, even
          when it is lower than the in-progress score it replaces.
        - after that the score only moves up (strictly greater wins), so
          concurrent events converge to the maximum whatever order they
          commit in.
        - completed_at is only written while it is still NULL (set-once).
        """
        qs = self._qs().filter(pk=pk)
        with transaction.atomic(using=self.using):
            completed = 0
            if meets_threshold:
                completed = qs.filter(completed_at__isnull=True).update(
                    completed_at=now, score=percentage, updated_at=now
                )
            raised = qs.filter(score__lt=percentage).update(score=percentage, updated_at=now)
            if count_attempt:
                qs.update(attempts=F("attempts") + 1, updated_at=now)
        return bool(raised or completed), bool(completed)

    def mark_completed(self, pk: int, now: dt.datetime) -> bool:
        """Complete an existing record without a score. Counts as an attempt; the score is kept."""
        qs = self._qs().filter(pk=pk)
        with transaction.atomic(using=self.using):
            completed = qs.filter(completed_at__isnull=True).update(completed_at=now, updated_at=now)
            qs.update(attempts=F("attempts") + 1, updated_at=now)
        return bool(completed)

    def refresh(self, record: CompletionRecord) -> CompletionRecord:
        record.refresh_from_db(using=self.using)
        return record

    def for_course(self, user_id: str, course_id: str) -> List[CompletionRecord]:
        return list(
            self._qs().filter(user_id=user_id, course_id=course_id).order_by("-updated_at", "-id")
        )

    def completed_between(
        self, user_id: str, from_utc: dt.datetime, to_utc: dt.datetime, course_id: Optional[str] = None
    ) -> List[CompletionRecord]:
        qs = self._qs().filter(
            user_id=user_id,
            completed_at__gte=from_utc,
            completed_at__lt=to_utc,
        )
        if course_id:
            qs = qs.filter(course_id=course_id)
        return list(qs.only("score", "completed_at"))


@dataclasses.dataclass(frozen=True)
class CompletionOutcome:
    record: CompletionRecord
    created: bool
    newly_completed: bool
    percentage: float
    progress: Optional[MasteryProgress] = None

    @property
    def accepted(self) -> bool:
        # A rejected event never produces an outcome: validation failures
        # raise ValidationError before anything is written.
        return True


class CompletionAggregator:
    """
    Turns score events into one CompletionRecord per (user, task).

    Record states: absent -> in progress (completed_at NULL) -> completed.
    Completed is terminal; only the score can still rise.

    Quiz, reading and listening events complete the task at
    score_threshold percent. Vocabulary mastery completes it when the
    fraction of mastered items reaches mastery_threshold.
    """

    def __init__(self, store: CompletionStore, items: ItemStore, config: ProgressConfig):
        self.store = store
        self.items = items
        self.config = config

    def meets_threshold(self, event: ScoreEvent) -> bool:
        if event.source is ScoreSource.VOCABULARY_MASTERY:
            return event.fraction >= self.config.mastery_threshold
        return event.percentage >= self.config.score_threshold

    def record(self, event: ScoreEvent) -> CompletionOutcome:
        percentage = event.percentage
        meets = self.meets_threshold(event)
        count_attempt = event.source.is_graded_attempt
        course_id = event.course_id or self.config.default_course_id
        now = timezone.now()
        flags = {"score_written": False, "newly_completed": False}

        def fetch() -> Optional[CompletionRecord]:
            return self.store.get(event.user_id, event.task_id)

        def create() -> CompletionRecord:
            return self.store.create(
                user_id=event.user_id,
                task_id=event.task_id,
                course_id=course_id,
                score=percentage,
                attempts=1,
                completed_at=now if meets else None,
            )

        def update(record: CompletionRecord) -> CompletionRecord:
            flags["score_written"], flags["newly_completed"] = self.store.apply(
                record.pk, percentage, meets, count_attempt, now
            )
            return self.store.refresh(record)

        record, created = upsert_with_conflict_recovery(
            fetch,
            create,
            update,
            using=self.store.using,
            retries=self.config.conflict_retries,
            label=f"completion {event.user_id}/{event.task_id}",
        )
        newly_completed = (created and record.completed_at is not None) or flags["newly_completed"]

        if created:
            logger.info(
                "completion created for %s/%s from %s: %.2f%% (%s)",
                event.user_id, event.task_id, event.source.value, percentage,
                "completed" if newly_completed else "in progress",
            )
        else:
            if flags["score_written"]:
                logger.info("completion score for %s/%s set to %.2f%%",
                            event.user_id, event.task_id, percentage)
            if newly_completed:
                logger.info("task %s completed by %s", event.task_id, event.user_id)
        return CompletionOutcome(
            record=record,
            created=created,
            newly_completed=newly_completed,
            percentage=percentage,
        )

    def mark_complete(
        self, user_id: str, task_id: str, course_id: Optional[str] = None
    ) -> CompletionOutcome:
        """
        Complete a task that has no score of its own (a lesson the learner
        finished reading, say). Counts as an attempt like a graded event.
        A new record starts at score 0; an existing score is left as it is.
        """
        if not user_id or not task_id:
            raise ValidationError("user_id and task_id are required.")
        course_id = course_id or self.config.default_course_id
        now = timezone.now()
        flags = {"newly_completed": False}

        def fetch() -> Optional[CompletionRecord]:
            return self.store.get(user_id, task_id)

        def create() -> CompletionRecord:
            return self.store.create(
                user_id=user_id,
                task_id=task_id,
                course_id=course_id,
                score=0.0,
                attempts=1,
                completed_at=now,
            )

        def update(record: CompletionRecord) -> CompletionRecord:
            flags["newly_completed"] = self.store.mark_completed(record.pk, now)
            return self.store.refresh(record)

        record, created = upsert_with_conflict_recovery(
            fetch,
            create,
            update,
            using=self.store.using,
            retries=self.config.conflict_retries,
            label=f"completion {user_id}/{task_id}",
        )
        newly_completed = created or flags["newly_completed"]
        if newly_completed:
            logger.info("task %s marked complete by %s", task_id, user_id)
        return CompletionOutcome(
            record=record,
            created=created,
            newly_completed=newly_completed,
            percentage=record.score,
        )

    def mastery_progress(self, user_id: str, task_id: str) -> MasteryProgress:
        try:
            statuses = self.items.statuses(user_id, task_id)
        except DatabaseError as e:
            raise PersistenceError(f"read items of {user_id}/{task_id}: {e}") from e
        return MasteryProgress.from_statuses(statuses, self.config)

    def recompute_mastery(
        self, user_id: str, task_id: str, course_id: Optional[str] = None
    ) -> CompletionOutcome:
        progress = self.mastery_progress(user_id, task_id)
        if progress.total_words == 0:
            raise NotFoundError(f"no learning items for task {task_id}.")
        event = validate_event(ScoreEvent(
            user_id=user_id,
            task_id=task_id,
            raw_score=progress.mastered_words,
            max_score=progress.total_words,
            source=ScoreSource.VOCABULARY_MASTERY,
            course_id=course_id,
        ))
        outcome = self.record(event)
        return dataclasses.replace(outcome, progress=progress)

    def get(self, user_id: str, task_id: str) -> Optional[CompletionRecord]:
        try:
            return self.store.get(user_id, task_id)
        except DatabaseError as e:
            raise PersistenceError(f"read completion {user_id}/{task_id}: {e}") from e

    def course_completions(self, user_id: str, course_id: Optional[str] = None) -> Dict[str, Any]:
        course_id = course_id or self.config.default_course_id
        try:
            rows = self.store.for_course(user_id, course_id)
        except DatabaseError as e:
            raise PersistenceError(f"read completions of {user_id}: {e}") from e
        completions = {
            r.task_id: {
                "is_completed": r.is_completed,
                "completed_at": r.completed_at,
                "attempts": r.attempts,
                "score": r.score,
            }
            for r in rows
        }
        return {
            "course_id": course_id,
            "completions": completions,
            "total_completed": sum(1 for r in rows if r.is_completed),
        }
