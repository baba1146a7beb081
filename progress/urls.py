from django.urls import path
from .views import (
    CompletionSummaryView,
    CourseCompletionsView,
    InitializeView,
    ItemDefinitionView,
    ItemStatusView,
    LessonProgressView,
    ScoreSubmitView,
    TaskCompleteView,
    TaskCompletionView,
    TaskItemsView,
)

urlpatterns = [
    path("vocabulary/initialize", InitializeView.as_view(), name="vocabulary-initialize"),
    path("vocabulary/items/<int:item_id>/status", ItemStatusView.as_view(), name="item-status"),
    path("vocabulary/items/<int:item_id>/definition", ItemDefinitionView.as_view(), name="item-definition"),
    path("vocabulary/lesson-progress", LessonProgressView.as_view(), name="lesson-progress"),
    path("scores", ScoreSubmitView.as_view(), name="score-submit"),
    path("tasks/complete", TaskCompleteView.as_view(), name="task-complete"),
    path("users/<str:user_id>/tasks/<str:task_id>/items", TaskItemsView.as_view(), name="task-items"),
    path("users/<str:user_id>/tasks/<str:task_id>/completion", TaskCompletionView.as_view(), name="task-completion"),
    path("users/<str:user_id>/completions", CourseCompletionsView.as_view(), name="course-completions"),
    path("users/<str:user_id>/completions/summary", CompletionSummaryView.as_view(), name="completion-summary"),
]
