# progress/content.py
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Protocol

from .models import VocabularyTask

logger = logging.getLogger(__name__)


class ContentStore(Protocol):
    def get_canonical_word_list(self, task_id: str) -> List[str]:
        ...


def normalize_words(words: Iterable) -> List[str]:
    """Strip blanks and drop repeated terms, keeping first-seen order."""
    seen: Dict[str, None] = {}
    for w in words:
        if not isinstance(w, str):
            continue
        w = w.strip()
        if w and w not in seen:
            seen[w] = None
    return list(seen)


class DatabaseContentStore:
    """Reads canonical word lists from the VocabularyTask table."""

    def __init__(self, using: str = "default"):
        self.using = using

    def get_canonical_word_list(self, task_id: str) -> List[str]:
        row = (
            VocabularyTask.objects.using(self.using)
            .filter(task_id=task_id)
            .only("content")
            .first()
        )
        if row is None:
            return []
        content = row.content if isinstance(row.content, dict) else {}
        words = (content.get("vocabulary_data") or {}).get("words") or []
        if not isinstance(words, list):
            logger.warning("vocabulary task %s has malformed word list", task_id)
            return []
        return normalize_words(words)


class StaticContentStore:
    """In-memory content, keyed by task_id."""

    def __init__(self, word_lists: Dict[str, Iterable[str]]):
        self._lists = {k: normalize_words(v) for k, v in word_lists.items()}

    def get_canonical_word_list(self, task_id: str) -> List[str]:
        return list(self._lists.get(task_id, []))
