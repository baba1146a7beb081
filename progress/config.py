# progress/config.py
from __future__ import annotations

import dataclasses
from typing import Any, Dict, Mapping, Optional

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

DEFAULTS: Dict[str, Any] = {
    "SCORE_COMPLETION_THRESHOLD": 70.0,
    "MASTERY_COMPLETION_THRESHOLD": 0.80,
    "MASTERED_STATUS": 5,
    "PRACTICED_STATUS": 3,
    "DEFAULT_COURSE_ID": "goethe-a1",
    "DATABASE_ALIAS": "default",
    "CONFLICT_RETRIES": 2,
}


@dataclasses.dataclass(frozen=True)
class ProgressConfig:
    """
    Engine knobs, read from settings.PROGRESS_TRACKING.

    The two thresholds are deliberately separate values:
      - score_threshold is a percentage (0-100) for quiz/reading/listening results.
      - mastery_threshold is a fraction (0-1) of items at the mastered status.
    """
    score_threshold: float = DEFAULTS["SCORE_COMPLETION_THRESHOLD"]
    mastery_threshold: float = DEFAULTS["MASTERY_COMPLETION_THRESHOLD"]
    mastered_status: int = DEFAULTS["MASTERED_STATUS"]
    practiced_status: int = DEFAULTS["PRACTICED_STATUS"]
    default_course_id: str = DEFAULTS["DEFAULT_COURSE_ID"]
    database_alias: str = DEFAULTS["DATABASE_ALIAS"]
    conflict_retries: int = DEFAULTS["CONFLICT_RETRIES"]

    def __post_init__(self):
        if not 0.0 <= float(self.score_threshold) <= 100.0:
            raise ImproperlyConfigured("SCORE_COMPLETION_THRESHOLD must be within 0..100.")
        if not 0.0 <= float(self.mastery_threshold) <= 1.0:
            raise ImproperlyConfigured("MASTERY_COMPLETION_THRESHOLD must be within 0..1.")
        if not 0 <= self.practiced_status <= self.mastered_status <= 5:
            raise ImproperlyConfigured("PRACTICED_STATUS <= MASTERED_STATUS must be within 0..5.")
        if self.conflict_retries < 0:
            raise ImproperlyConfigured("CONFLICT_RETRIES must be >= 0.")
        if not self.default_course_id:
            raise ImproperlyConfigured("DEFAULT_COURSE_ID is required.")

    @classmethod
    def from_mapping(cls, values: Optional[Mapping[str, Any]]) -> "ProgressConfig":
        merged = dict(DEFAULTS)
        merged.update({k: v for k, v in (values or {}).items() if k in DEFAULTS})
        try:
            return cls(
                score_threshold=float(merged["SCORE_COMPLETION_THRESHOLD"]),
                mastery_threshold=float(merged["MASTERY_COMPLETION_THRESHOLD"]),
                mastered_status=int(merged["MASTERED_STATUS"]),
                practiced_status=int(merged["PRACTICED_STATUS"]),
                default_course_id=str(merged["DEFAULT_COURSE_ID"]),
                database_alias=str(merged["DATABASE_ALIAS"]),
                conflict_retries=int(merged["CONFLICT_RETRIES"]),
            )
        except (TypeError, ValueError) as e:
            raise ImproperlyConfigured(f"PROGRESS_TRACKING: {e}") from e

    @classmethod
    def from_settings(cls) -> "ProgressConfig":
        return cls.from_mapping(getattr(settings, "PROGRESS_TRACKING", None))
