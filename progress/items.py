# progress/items.py
from __future__ import annotations

import dataclasses
import logging
from typing import Any, Dict, List, Optional, Sequence

from django.db import DatabaseError

from .config import ProgressConfig
from .content import ContentStore
from .exceptions import NotFoundError, PersistenceError, ValidationError
from .models import LearningItem, MasteryStatus
from .upsert import upsert_with_conflict_recovery

logger = logging.getLogger(__name__)


def coerce_status(value: Any) -> int:
    """Accept 0..5 as int or digit string ("5"); anything else is a ValidationError."""
    if isinstance(value, bool):
        raise ValidationError("status must be an integer 0-5.")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or value not in MasteryStatus.values:
        raise ValidationError("status must be an integer 0-5.")
    return value


class ItemStore:
    """Row access for LearningItem on one database alias."""

    def __init__(self, using: str = "default"):
        self.using = using

    def _qs(self):
        return LearningItem.objects.using(self.using)

    def for_task(self, user_id: str, task_id: str) -> List[LearningItem]:
        return list(self._qs().filter(user_id=user_id, task_id=task_id).order_by("created_at", "id"))

    def statuses(self, user_id: str, task_id: str) -> List[int]:
        return list(
            self._qs().filter(user_id=user_id, task_id=task_id).values_list("status", flat=True)
        )

    def bulk_insert(self, user_id: str, task_id: str, terms: Sequence[str]) -> None:
        self._qs().bulk_create([
            LearningItem(user_id=user_id, task_id=task_id, term=t, status=MasteryStatus.NOT_STARTED)
            for t in terms
        ])

    def get_owned(self, item_id: int, user_id: str) -> LearningItem:
        # A missing row and another user's row look the same to the caller.
        item = self._qs().filter(pk=item_id, user_id=user_id).first()
        if item is None:
            raise NotFoundError("learning item not found.")
        return item

    def write_fields(self, item: LearningItem, **fields) -> LearningItem:
        updated = self._qs().filter(pk=item.pk, user_id=item.user_id).update(**fields)
        if updated != 1:
            raise NotFoundError("learning item not found.")
        for k, v in fields.items():
            setattr(item, k, v)
        return item


@dataclasses.dataclass(frozen=True)
class InitializationResult:
    items: List[LearningItem]
    created: bool


class InitializationService:
    """Creates the full item set for a (user, task) exactly once."""

    def __init__(self, store: ItemStore, content: ContentStore, config: ProgressConfig):
        self.store = store
        self.content = content
        self.config = config

    def initialize(self, user_id: str, task_id: str) -> InitializationResult:
        if not user_id or not task_id:
            raise ValidationError("user_id and task_id are required.")

        def fetch() -> Optional[List[LearningItem]]:
            return self.store.for_task(user_id, task_id) or None

        def create() -> List[LearningItem]:
            words = self.content.get_canonical_word_list(task_id)
            if not words:
                raise NotFoundError(f"no vocabulary found for task {task_id}.")
            self.store.bulk_insert(user_id, task_id, words)
            return self.store.for_task(user_id, task_id)

        items, created = upsert_with_conflict_recovery(
            fetch,
            create,
            using=self.store.using,
            retries=self.config.conflict_retries,
            label=f"initialize {user_id}/{task_id}",
        )
        if created:
            logger.info("initialized %d items for %s/%s", len(items), user_id, task_id)
        else:
            logger.info("items already present for %s/%s (%d)", user_id, task_id, len(items))
        return InitializationResult(items=items, created=created)


@dataclasses.dataclass(frozen=True)
class StatusChange:
    item: LearningItem
    previous_status: int

    @property
    def new_status(self) -> int:
        return self.item.status

    def crosses(self, boundary: int) -> bool:
        """True when the change moves the item across `boundary` in either direction."""
        return (self.previous_status >= boundary) != (self.new_status >= boundary)


class StatusTransitionEngine:
    """
    Applies mastery-status changes to a single item.
    Any status may replace any other, backward moves included.
    """

    def __init__(self, store: ItemStore):
        self.store = store

    def update_status(self, item_id: int, user_id: str, new_status: Any) -> StatusChange:
        status = coerce_status(new_status)
        try:
            item = self.store.get_owned(item_id, user_id)
            previous = item.status
            self.store.write_fields(item, status=status)
        except DatabaseError as e:
            raise PersistenceError(f"update status of item {item_id}: {e}") from e
        logger.info("item %s (%s) status %s -> %s", item.pk, item.term, previous, status)
        return StatusChange(item=item, previous_status=previous)

    def set_definition(self, item_id: int, user_id: str, definition: str) -> LearningItem:
        if not isinstance(definition, str):
            raise ValidationError("definition must be a string.")
        try:
            item = self.store.get_owned(item_id, user_id)
            return self.store.write_fields(item, definition=definition.strip())
        except DatabaseError as e:
            raise PersistenceError(f"set definition of item {item_id}: {e}") from e


@dataclasses.dataclass(frozen=True)
class MasteryProgress:
    total_words: int
    mastered_words: int
    well_practiced_words: int
    threshold: float

    @classmethod
    def from_statuses(cls, statuses: Sequence[int], config: ProgressConfig) -> "MasteryProgress":
        return cls(
            total_words=len(statuses),
            mastered_words=sum(1 for s in statuses if s >= config.mastered_status),
            well_practiced_words=sum(1 for s in statuses if s >= config.practiced_status),
            threshold=config.mastery_threshold,
        )

    @property
    def mastery_fraction(self) -> float:
        return self.mastered_words / self.total_words if self.total_words else 0.0

    @property
    def mastery_percentage(self) -> float:
        return 100.0 * self.mastered_words / self.total_words if self.total_words else 0.0

    @property
    def practice_percentage(self) -> float:
        return 100.0 * self.well_practiced_words / self.total_words if self.total_words else 0.0

    @property
    def is_completed(self) -> bool:
        return self.total_words > 0 and self.mastery_fraction >= self.threshold

    def as_dict(self) -> Dict[str, Any]:
        return {
            "total_words": self.total_words,
            "mastered_words": self.mastered_words,
            "well_practiced_words": self.well_practiced_words,
            "mastery_percentage": self.mastery_percentage,
            "practice_percentage": self.practice_percentage,
            "is_completed": self.is_completed,
        }
