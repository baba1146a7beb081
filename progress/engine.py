# progress/engine.py
from __future__ import annotations

import dataclasses
import datetime as dt
import logging
from typing import Any, Dict, List, Optional

from django.db import DatabaseError

from .completion import CompletionAggregator, CompletionOutcome, CompletionStore
from .config import ProgressConfig
from .content import ContentStore, DatabaseContentStore
from .exceptions import PersistenceError
from .intake import ScoreEvent, ScoreEventIntake
from .items import (
    InitializationResult,
    InitializationService,
    ItemStore,
    MasteryProgress,
    StatusChange,
    StatusTransitionEngine,
)
from .models import CompletionRecord, LearningItem
from .services import summarize_completions

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class StatusUpdateResult:
    change: StatusChange
    completion: Optional[CompletionOutcome] = None


class ProgressEngine:
    """
    Entry point for every progress/completion operation.

    The database alias and the content store are fixed at construction;
    nothing here reaches for module-level clients. All coordination between
    concurrent callers goes through the database's unique constraints.
    """

    def __init__(
        self,
        config: Optional[ProgressConfig] = None,
        content: Optional[ContentStore] = None,
        using: Optional[str] = None,
    ):
        self.config = config or ProgressConfig.from_settings()
        self.using = using or self.config.database_alias
        self.content = content or DatabaseContentStore(self.using)
        self.items = ItemStore(self.using)
        self.completions = CompletionStore(self.using)
        self.initializer = InitializationService(self.items, self.content, self.config)
        self.transitions = StatusTransitionEngine(self.items)
        self.aggregator = CompletionAggregator(self.completions, self.items, self.config)
        self.intake = ScoreEventIntake(self.aggregator)

    # Items
    def initialize(self, user_id: str, task_id: str) -> InitializationResult:
        return self.initializer.initialize(user_id, task_id)

    def list_items(self, user_id: str, task_id: str) -> List[LearningItem]:
        try:
            return self.items.for_task(user_id, task_id)
        except DatabaseError as e:
            raise PersistenceError(f"list items of {user_id}/{task_id}: {e}") from e

    def update_item_status(
        self,
        item_id: int,
        user_id: str,
        new_status: Any,
        *,
        course_id: Optional[str] = None,
        recompute: bool = True,
    ) -> StatusUpdateResult:
        """
        Change one item's status. When `recompute` is set and the change moves
        the item across the mastered boundary, the task's mastery completion is
        recomputed as well.
        """
        change = self.transitions.update_status(item_id, user_id, new_status)
        completion = None
        if recompute and change.crosses(self.config.mastered_status):
            completion = self.aggregator.recompute_mastery(user_id, change.item.task_id, course_id)
        return StatusUpdateResult(change=change, completion=completion)

    def set_definition(self, item_id: int, user_id: str, definition: str) -> LearningItem:
        return self.transitions.set_definition(item_id, user_id, definition)

    def mastery_progress(self, user_id: str, task_id: str) -> MasteryProgress:
        return self.aggregator.mastery_progress(user_id, task_id)

    # Completion
    def submit_score(self, event: ScoreEvent) -> CompletionOutcome:
        return self.intake.submit(event)

    def recompute_mastery(
        self, user_id: str, task_id: str, course_id: Optional[str] = None
    ) -> CompletionOutcome:
        return self.aggregator.recompute_mastery(user_id, task_id, course_id)

    def mark_complete(
        self, user_id: str, task_id: str, course_id: Optional[str] = None
    ) -> CompletionOutcome:
        return self.aggregator.mark_complete(user_id, task_id, course_id)

    def get_completion(self, user_id: str, task_id: str) -> Optional[CompletionRecord]:
        return self.aggregator.get(user_id, task_id)

    def course_completions(self, user_id: str, course_id: Optional[str] = None) -> Dict[str, Any]:
        return self.aggregator.course_completions(user_id, course_id)

    def completion_summary(
        self,
        user_id: str,
        dt_from: str | dt.datetime,
        dt_to: str | dt.datetime,
        *,
        granularity: str = "day",
        tz: str = "UTC",
        course_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        try:
            return summarize_completions(
                self.completions, user_id, dt_from, dt_to,
                granularity=granularity, tz=tz, course_id=course_id,
            )
        except DatabaseError as e:
            raise PersistenceError(f"summarize completions of {user_id}: {e}") from e
