# progress/models.py
from django.db import models


class MasteryStatus(models.IntegerChoices):
    NOT_STARTED = 0, "Not started"
    INTRODUCED = 1, "Introduced"
    PARTIALLY_LEARNED = 2, "Partially learned"
    SECOND_CHANCE = 3, "Second chance"
    REVIEWING = 4, "Reviewing"
    MASTERED = 5, "Mastered"


class VocabularyTask(models.Model):
    """Canonical lesson content; words live under content["vocabulary_data"]["words"]."""
    task_id = models.CharField(max_length=128, unique=True)
    content = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.task_id


class LearningItem(models.Model):
    user_id = models.CharField(max_length=64)                          # Owner (trusted caller identity)
    task_id = models.CharField(max_length=128)                         # Lesson/task the word belongs to
    term = models.CharField(max_length=255)                            # Canonical word
    status = models.PositiveSmallIntegerField(
        choices=MasteryStatus.choices, default=MasteryStatus.NOT_STARTED
    )
    definition = models.TextField(blank=True, default="")              # Filled in later
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["user_id", "task_id", "term"],
                                    name="uq_item_user_task_term"),
        ]
        indexes = [
            models.Index(fields=["user_id", "task_id"], name="idx_item_user_task"),
        ]
        ordering = ("created_at", "id")

    def __str__(self):
        return f"{self.term} [{self.user_id}/{self.task_id}] status={self.status}"


class CompletionRecord(models.Model):
    user_id = models.CharField(max_length=64)
    task_id = models.CharField(max_length=128)
    course_id = models.CharField(max_length=64)
    score = models.FloatField(default=0.0)                             # Best percentage, 0-100
    attempts = models.PositiveIntegerField(default=1)
    completed_at = models.DateTimeField(null=True, blank=True, db_index=True)  # Set once
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["user_id", "task_id"],
                                    name="uq_completion_user_task"),
        ]
        indexes = [
            models.Index(fields=["user_id", "course_id"], name="idx_completion_user_course"),
        ]

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    def __str__(self):
        state = "completed" if self.is_completed else "in progress"
        return f"{self.user_id}/{self.task_id} {self.score:.1f}% ({state})"
