# progress/views.py
from __future__ import annotations

import logging

import pytz
from django.apps import apps
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from . import exceptions
from .intake import ScoreEvent
from .serializers import (
    CompletionRecordSerializer,
    DefinitionSerializer,
    InitializeSerializer,
    LearningItemSerializer,
    ScoreSubmitSerializer,
    StatusUpdateSerializer,
    TaskRefSerializer,
)
from .services import GRANULARITIES

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = (
    (exceptions.ValidationError, status.HTTP_400_BAD_REQUEST),
    (exceptions.NotFoundError, status.HTTP_404_NOT_FOUND),
    (exceptions.PersistenceError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def get_engine():
    return apps.get_app_config("progress").engine


def _error_response(err: exceptions.ProgressError) -> Response:
    for cls, code in _STATUS_BY_ERROR:
        if isinstance(err, cls):
            return Response({'detail': err.detail}, status=code)
    logger.error("unmapped progress error: %r", err)
    return Response({'detail': err.detail}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


def _outcome_payload(outcome) -> dict:
    body = {
        'completion': CompletionRecordSerializer(outcome.record).data,
        'newly_completed': outcome.newly_completed,
        'percentage': outcome.percentage,
    }
    if outcome.progress is not None:
        body['progress'] = outcome.progress.as_dict()
    return body


class InitializeView(APIView):
    """POST /api/vocabulary/initialize (201 when created, 200 when already present)."""
    def post(self, request):
        s = InitializeSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        user_id, task_id = s.validated_data['user_id'], s.validated_data['task_id']
        try:
            result = get_engine().initialize(user_id, task_id)
        except exceptions.ProgressError as e:
            return _error_response(e)
        return Response({
            'task_id': task_id,
            'initialized': result.created,
            'item_count': len(result.items),
            'items': LearningItemSerializer(result.items, many=True).data,
        }, status=status.HTTP_201_CREATED if result.created else status.HTTP_200_OK)


class ItemStatusView(APIView):
    """POST /api/vocabulary/items/{item_id}/status"""
    def post(self, request, item_id: int):
        s = StatusUpdateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data
        try:
            result = get_engine().update_item_status(
                item_id, data['user_id'], data['new_status'], course_id=data.get('course_id'),
            )
        except exceptions.ProgressError as e:
            return _error_response(e)
        body = {
            'item': LearningItemSerializer(result.change.item).data,
            'previous_status': result.change.previous_status,
            'new_status': result.change.new_status,
            'completion': None,
        }
        if result.completion is not None:
            body.update(_outcome_payload(result.completion))
        return Response(body, status=status.HTTP_200_OK)


class ItemDefinitionView(APIView):
    """PATCH /api/vocabulary/items/{item_id}/definition"""
    def patch(self, request, item_id: int):
        s = DefinitionSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        try:
            item = get_engine().set_definition(
                item_id, s.validated_data['user_id'], s.validated_data['definition'],
            )
        except exceptions.ProgressError as e:
            return _error_response(e)
        return Response(LearningItemSerializer(item).data, status=status.HTTP_200_OK)


class LessonProgressView(APIView):
    """POST /api/vocabulary/lesson-progress (recompute vocabulary mastery completion)."""
    def post(self, request):
        s = TaskRefSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data
        try:
            outcome = get_engine().recompute_mastery(data['user_id'], data['task_id'], data.get('course_id'))
        except exceptions.ProgressError as e:
            return _error_response(e)
        return Response(_outcome_payload(outcome), status=status.HTTP_200_OK)


class TaskItemsView(APIView):
    """GET /api/users/{user_id}/tasks/{task_id}/items"""
    def get(self, request, user_id: str, task_id: str):
        engine = get_engine()
        try:
            items = engine.list_items(user_id, task_id)
            progress = engine.mastery_progress(user_id, task_id)
        except exceptions.ProgressError as e:
            return _error_response(e)
        return Response({
            'task_id': task_id,
            'items': LearningItemSerializer(items, many=True).data,
            'progress': progress.as_dict(),
        }, status=status.HTTP_200_OK)


class ScoreSubmitView(APIView):
    """POST /api/scores (quiz / reading / listening results)."""
    def post(self, request):
        s = ScoreSubmitSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data
        event = ScoreEvent(
            user_id=data['user_id'],
            task_id=data['task_id'],
            raw_score=data['raw_score'],
            max_score=data['max_score'],
            source=data['source'],
            course_id=data.get('course_id'),
        )
        try:
            outcome = get_engine().submit_score(event)
        except exceptions.ProgressError as e:
            return _error_response(e)
        return Response(_outcome_payload(outcome), status=status.HTTP_200_OK)


class TaskCompleteView(APIView):
    """POST /api/tasks/complete (complete a task that carries no score)."""
    def post(self, request):
        s = TaskRefSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data
        try:
            outcome = get_engine().mark_complete(data['user_id'], data['task_id'], data.get('course_id'))
        except exceptions.ProgressError as e:
            return _error_response(e)
        return Response(_outcome_payload(outcome), status=status.HTTP_200_OK)


class TaskCompletionView(APIView):
    """GET /api/users/{user_id}/tasks/{task_id}/completion (404 while absent)."""
    def get(self, request, user_id: str, task_id: str):
        try:
            record = get_engine().get_completion(user_id, task_id)
        except exceptions.ProgressError as e:
            return _error_response(e)
        if record is None:
            return Response({'detail': 'no completion record.'}, status=status.HTTP_404_NOT_FOUND)
        return Response(CompletionRecordSerializer(record).data, status=status.HTTP_200_OK)


class CourseCompletionsView(APIView):
    """GET /api/users/{user_id}/completions?course_id=..."""
    def get(self, request, user_id: str):
        course_id = request.query_params.get('course_id') or None
        try:
            result = get_engine().course_completions(user_id, course_id)
        except exceptions.ProgressError as e:
            return _error_response(e)
        return Response(result, status=status.HTTP_200_OK)


class CompletionSummaryView(APIView):
    """
    GET /api/users/{user_id}/completions/summary
      ?from=ISO
      &to=ISO
      &granularity=hour|day|month
      &tz=Asia/Tokyo
      &course_id=...
    """
    def get(self, request, user_id: str):
        dt_from = request.query_params.get('from')
        dt_to = request.query_params.get('to')
        gran = request.query_params.get('granularity', 'day')
        tzname = request.query_params.get('tz', 'UTC')
        course_id = request.query_params.get('course_id') or None

        if not dt_from or not dt_to:
            return Response({'detail': 'from and to are required (ISO-8601).'}, status=400)

        # Tolerate a space where '+' should be (query string not URL-encoded).
        if ' ' in dt_from and ('Z' not in dt_from):
            dt_from = dt_from.replace(' ', '+', 1)
        if ' ' in dt_to and ('Z' not in dt_to):
            dt_to = dt_to.replace(' ', '+', 1)

        if gran not in GRANULARITIES:
            return Response({'detail': 'granularity must be hour|day|month.'}, status=400)
        try:
            pytz.timezone(tzname)
        except pytz.UnknownTimeZoneError:
            return Response({'detail': 'invalid tz.'}, status=400)

        try:
            summary = get_engine().completion_summary(
                user_id, dt_from, dt_to, granularity=gran, tz=tzname, course_id=course_id,
            )
        except ValueError as e:
            return Response({'detail': str(e)}, status=400)
        except exceptions.ProgressError as e:
            return _error_response(e)

        return Response({
            'user_id': user_id,
            'from': dt_from,
            'to': dt_to,
            'granularity': gran,
            'tz': tzname,
            'course_id': course_id,
            **summary,
        }, status=status.HTTP_200_OK)
