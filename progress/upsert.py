# progress/upsert.py
from __future__ import annotations

import logging
from typing import Callable, Optional, Tuple, TypeVar

from django.db import DatabaseError, IntegrityError, transaction

from .exceptions import ConflictRecoveredError, PersistenceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _create_once(create: Callable[[], T], using: str, label: str) -> T:
    """Run the create inside a savepoint; a unique-constraint hit becomes ConflictRecoveredError."""
    try:
        with transaction.atomic(using=using):
            return create()
    except IntegrityError as e:
        raise ConflictRecoveredError(f"{label}: lost create race") from e


def upsert_with_conflict_recovery(
    fetch: Callable[[], Optional[T]],
    create: Callable[[], T],
    update: Optional[Callable[[T], T]] = None,
    *,
    using: str = "default",
    retries: int = 2,
    label: str = "upsert",
) -> Tuple[T, bool]:
    """
    Read the row(s) for one logical key; create them if absent.

    Sequence:
      1) fetch() -> existing value, or None when the key is absent.
      2) existing -> update(existing) (or existing as-is) and created=False.
      3) absent -> create() in a savepoint -> created=True.
      4) create() hit a unique constraint: a concurrent caller won. The
         conflict is absorbed and we go back to 1), so the winner's row is
         returned (and updated) with created=False.

    Any other database failure is raised as PersistenceError. A winner that
    cannot be re-read after `retries` extra rounds is a PersistenceError too.
    """
    lost_races = 0
    while True:
        try:
            existing = fetch()
            if existing is not None:
                return (update(existing) if update is not None else existing), False
            try:
                return _create_once(create, using, label), True
            except ConflictRecoveredError as conflict:
                lost_races += 1
                logger.warning("%s (round %d); re-reading winner", conflict.detail, lost_races)
                if lost_races > retries:
                    raise PersistenceError(
                        f"{label}: key still absent after {lost_races} conflicting creates"
                    ) from conflict
        except DatabaseError as e:
            logger.error("%s: database failure", label, exc_info=True)
            raise PersistenceError(f"{label}: {e}") from e
