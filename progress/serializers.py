# progress/serializers.py
import datetime as dt

from django.utils import timezone
from rest_framework import serializers

from .intake import GRADED_SOURCES
from .models import CompletionRecord, LearningItem


class AwareDateTimeField(serializers.DateTimeField):
    """
    Datetime field that ensures tz-aware UTC datetimes.
    - Accepts ISO strings with/without timezone; if naive → assume UTC.
    - Always outputs ISO in UTC.
    """
    def to_internal_value(self, value):
        d = super().to_internal_value(value)
        if d is None:
            return None
        if timezone.is_naive(d):
            d = timezone.make_aware(d, dt.timezone.utc)
        return d.astimezone(dt.timezone.utc)

    def to_representation(self, value):
        if value is None:
            return None
        if timezone.is_naive(value):
            value = timezone.make_aware(value, dt.timezone.utc)
        return super().to_representation(value.astimezone(dt.timezone.utc))


class LearningItemSerializer(serializers.ModelSerializer):
    created_at = AwareDateTimeField(read_only=True)

    class Meta:
        model = LearningItem
        fields = ("id", "user_id", "task_id", "term", "definition", "status", "created_at")
        read_only_fields = fields


class CompletionRecordSerializer(serializers.ModelSerializer):
    """Read-only snapshot of a completion record plus the derived is_completed flag."""
    completed_at = AwareDateTimeField(read_only=True)
    created_at = AwareDateTimeField(read_only=True)
    updated_at = AwareDateTimeField(read_only=True)
    is_completed = serializers.BooleanField(read_only=True)

    class Meta:
        model = CompletionRecord
        fields = (
            "id",
            "user_id",
            "task_id",
            "course_id",
            "score",
            "attempts",
            "is_completed",
            "completed_at",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class InitializeSerializer(serializers.Serializer):
    user_id = serializers.CharField(max_length=64)
    task_id = serializers.CharField(max_length=128)


class StatusUpdateSerializer(serializers.Serializer):
    """
    Range checking of new_status is left to the engine so the API and
    direct callers reject the same values with the same message.
    """
    user_id = serializers.CharField(max_length=64)
    new_status = serializers.IntegerField()
    course_id = serializers.CharField(max_length=64, required=False, allow_blank=False)


class DefinitionSerializer(serializers.Serializer):
    user_id = serializers.CharField(max_length=64)
    definition = serializers.CharField(allow_blank=True, trim_whitespace=True)


class TaskRefSerializer(serializers.Serializer):
    """Body of the per-task actions (lesson-progress, mark complete)."""
    user_id = serializers.CharField(max_length=64)
    task_id = serializers.CharField(max_length=128)
    course_id = serializers.CharField(max_length=64, required=False, allow_blank=False)


class ScoreSubmitSerializer(serializers.Serializer):
    user_id = serializers.CharField(max_length=64)
    task_id = serializers.CharField(max_length=128)
    course_id = serializers.CharField(max_length=64, required=False, allow_blank=False)
    raw_score = serializers.FloatField()
    max_score = serializers.FloatField()
    source = serializers.ChoiceField(choices=GRADED_SOURCES)
