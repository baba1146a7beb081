# progress/tests/test_completion.py
import datetime as dt
from unittest import mock

import pytest
from django.core.exceptions import ImproperlyConfigured
from django.utils import timezone

from progress.config import ProgressConfig
from progress.content import StaticContentStore
from progress.engine import ProgressEngine
from progress.exceptions import NotFoundError, ValidationError
from progress.intake import ScoreEvent, ScoreSource
from progress.models import CompletionRecord


def _score(user_id, task_id, raw, mx, source=ScoreSource.QUIZ, course_id=None):
    return ScoreEvent(user_id=user_id, task_id=task_id, raw_score=raw, max_score=mx,
                      source=source, course_id=course_id)


@pytest.mark.django_db
def test_passing_quiz_creates_completed_record(engine):
    outcome = engine.submit_score(_score("u1", "t2", 8, 10, course_id="goethe-a1"))

    rec = outcome.record
    assert outcome.accepted is True
    assert outcome.created is True
    assert outcome.newly_completed is True
    assert rec.score == 80.0
    assert rec.attempts == 1
    assert rec.course_id == "goethe-a1"
    assert rec.completed_at is not None


@pytest.mark.django_db
def test_failing_quiz_records_in_progress(engine):
    outcome = engine.submit_score(_score("u1", "t2", 5, 10))

    assert outcome.newly_completed is False
    assert outcome.record.score == 50.0
    assert outcome.record.completed_at is None
    assert outcome.record.course_id == "goethe-a1"  # default course


@pytest.mark.django_db
def test_in_progress_then_passing_completes(engine):
    engine.submit_score(_score("u1", "t2", 5, 10))
    outcome = engine.submit_score(_score("u1", "t2", 9, 10, source=ScoreSource.READING))

    assert outcome.created is False
    assert outcome.newly_completed is True
    assert outcome.record.score == 90.0
    assert outcome.record.completed_at is not None


@pytest.mark.django_db
@pytest.mark.parametrize("p1,p2", [(60, 90), (90, 60), (40, 50), (50, 40), (75, 75), (100, 0)])
def test_final_score_is_max_whatever_the_order(engine, p1, p2):
    engine.submit_score(_score("u1", "t2", p1, 100))
    engine.submit_score(_score("u1", "t2", p2, 100))

    rec = CompletionRecord.objects.get(user_id="u1", task_id="t2")
    assert rec.score == max(p1, p2)
    assert (rec.completed_at is not None) == (max(p1, p2) >= 70)
    assert CompletionRecord.objects.filter(user_id="u1", task_id="t2").count() == 1


@pytest.mark.django_db
def test_completed_at_is_set_once(engine):
    first = engine.submit_score(_score("u1", "t2", 8, 10)).record.completed_at

    engine.submit_score(_score("u1", "t2", 10, 10))
    engine.submit_score(_score("u1", "t2", 1, 10))

    rec = CompletionRecord.objects.get(user_id="u1", task_id="t2")
    assert rec.completed_at == first
    assert rec.score == 100.0


@pytest.mark.django_db
def test_graded_attempts_are_counted(engine):
    for raw in (3, 6, 9):
        engine.submit_score(_score("u1", "t2", raw, 10))

    assert CompletionRecord.objects.get(user_id="u1", task_id="t2").attempts == 3


@pytest.mark.django_db
@pytest.mark.parametrize("raw,mx,completes", [(70, 100, True), (69.999, 100, False), (7, 10, True)])
def test_score_threshold_boundary(engine, raw, mx, completes):
    outcome = engine.submit_score(_score("u1", "t2", raw, mx))

    assert (outcome.record.completed_at is not None) is completes


def _master(engine, user_id, task_id, count):
    items = engine.initialize(user_id, task_id).items
    for item in items[:count]:
        engine.update_item_status(item.pk, user_id, 5, recompute=False)
    return items


@pytest.mark.django_db
@pytest.mark.parametrize("mastered,completes", [(80, True), (79, False)])
def test_mastery_threshold_boundary(engine, mastered, completes):
    _master(engine, "u1", "t100", mastered)

    outcome = engine.recompute_mastery("u1", "t100")

    assert (outcome.record.completed_at is not None) is completes


@pytest.mark.django_db
def test_mastery_recomputes_do_not_count_as_attempts(engine):
    items = _master(engine, "u1", "t5", 1)
    engine.recompute_mastery("u1", "t5")
    engine.update_item_status(items[1].pk, "u1", 5, recompute=False)
    engine.recompute_mastery("u1", "t5")

    rec = CompletionRecord.objects.get(user_id="u1", task_id="t5")
    assert rec.attempts == 1
    assert rec.score == 40.0


@pytest.mark.django_db
def test_mastery_score_cannot_be_submitted(engine):
    with pytest.raises(ValidationError):
        engine.submit_score(_score("u1", "t100", 100, 100, source=ScoreSource.VOCABULARY_MASTERY))
    assert not CompletionRecord.objects.exists()


@pytest.mark.django_db
def test_completing_event_stores_its_own_score(engine):
    # 75% mastery leaves the record in progress; a 72% quiz then completes it.
    _master(engine, "u1", "t100", 75)
    engine.recompute_mastery("u1", "t100")

    outcome = engine.submit_score(_score("u1", "t100", 72, 100))

    assert outcome.newly_completed is True
    assert outcome.record.score == 72.0
    assert outcome.record.attempts == 2

    later = engine.submit_score(_score("u1", "t100", 95, 100))
    assert later.record.score == 95.0
    assert later.record.completed_at == outcome.record.completed_at


@pytest.mark.django_db
@pytest.mark.parametrize("raw,mx", [(-1, 10), (11, 10), (0, 0), (5, -5), (float("nan"), 10), ("8", 10)])
def test_invalid_scores_are_rejected_without_writing(engine, raw, mx):
    with pytest.raises(ValidationError):
        engine.submit_score(_score("u1", "t2", raw, mx))
    assert not CompletionRecord.objects.exists()


@pytest.mark.django_db
def test_unknown_source_is_rejected(engine):
    with pytest.raises(ValidationError):
        engine.submit_score(_score("u1", "t2", 8, 10, source="writing"))


@pytest.mark.django_db
def test_lost_create_race_converges_to_max(engine):
    # A concurrent 9/10 committed first; our 6/10 saw the key as absent.
    winner = engine.submit_score(_score("u1", "t2", 9, 10)).record
    real_get = engine.completions.get
    calls = []

    def stale_first_read(user_id, task_id):
        calls.append(task_id)
        return None if len(calls) == 1 else real_get(user_id, task_id)

    with mock.patch.object(engine.completions, "get", side_effect=stale_first_read):
        outcome = engine.submit_score(_score("u1", "t2", 6, 10))

    assert outcome.created is False
    assert outcome.newly_completed is False
    assert outcome.record.pk == winner.pk
    assert outcome.record.score == 90.0
    assert outcome.record.completed_at == winner.completed_at
    assert outcome.record.attempts == 2
    assert CompletionRecord.objects.filter(user_id="u1", task_id="t2").count() == 1


@pytest.mark.django_db
def test_lost_create_race_can_still_complete(engine):
    engine.submit_score(_score("u1", "t2", 6, 10))
    real_get = engine.completions.get
    calls = []

    def stale_first_read(user_id, task_id):
        calls.append(task_id)
        return None if len(calls) == 1 else real_get(user_id, task_id)

    with mock.patch.object(engine.completions, "get", side_effect=stale_first_read):
        outcome = engine.submit_score(_score("u1", "t2", 9, 10))

    assert outcome.newly_completed is True
    assert outcome.record.score == 90.0
    assert outcome.record.completed_at is not None


@pytest.mark.django_db
def test_recompute_mastery_completes_at_eighty_percent(engine):
    items = engine.initialize("u1", "t5").items
    for item in items[:4]:
        engine.update_item_status(item.pk, "u1", 5, recompute=False)

    outcome = engine.recompute_mastery("u1", "t5")

    assert outcome.progress.mastered_words == 4
    assert outcome.progress.is_completed is True
    assert outcome.newly_completed is True
    assert outcome.record.score == 80.0
    assert outcome.record.completed_at is not None


@pytest.mark.django_db
def test_recompute_mastery_below_threshold(engine):
    items = engine.initialize("u1", "t100").items
    for item in items[:79]:
        engine.update_item_status(item.pk, "u1", 5, recompute=False)

    outcome = engine.recompute_mastery("u1", "t100")

    assert outcome.progress.mastery_fraction == pytest.approx(0.79)
    assert outcome.record.completed_at is None


@pytest.mark.django_db
def test_mastery_regression_keeps_best_score_and_completion(engine):
    items = engine.initialize("u1", "t5").items
    for item in items[:4]:
        engine.update_item_status(item.pk, "u1", 5)
    completed = CompletionRecord.objects.get(user_id="u1", task_id="t5")
    assert completed.completed_at is not None

    result = engine.update_item_status(items[0].pk, "u1", 2)

    assert result.completion.progress.mastered_words == 3
    rec = result.completion.record
    assert rec.score == 80.0
    assert rec.completed_at == completed.completed_at


@pytest.mark.django_db
def test_practice_metrics(engine):
    items = engine.initialize("u1", "t5").items
    engine.update_item_status(items[0].pk, "u1", 5, recompute=False)
    engine.update_item_status(items[1].pk, "u1", 3, recompute=False)
    engine.update_item_status(items[2].pk, "u1", 4, recompute=False)

    progress = engine.mastery_progress("u1", "t5").as_dict()

    assert progress == {
        "total_words": 5,
        "mastered_words": 1,
        "well_practiced_words": 3,
        "mastery_percentage": 20.0,
        "practice_percentage": 60.0,
        "is_completed": False,
    }


@pytest.mark.django_db
def test_recompute_without_items_is_not_found(engine):
    with pytest.raises(NotFoundError):
        engine.recompute_mastery("u1", "t5")
    assert not CompletionRecord.objects.exists()


@pytest.mark.django_db
def test_thresholds_come_from_config():
    strict = ProgressEngine(
        config=ProgressConfig(score_threshold=90.0, mastery_threshold=1.0),
        content=StaticContentStore({}),
    )
    outcome = strict.submit_score(_score("u1", "t2", 8, 10))
    assert outcome.record.completed_at is None


def test_invalid_config_is_rejected():
    with pytest.raises(ImproperlyConfigured):
        ProgressConfig(score_threshold=120.0)
    with pytest.raises(ImproperlyConfigured):
        ProgressConfig.from_mapping({"MASTERY_COMPLETION_THRESHOLD": "lots"})


def test_config_from_mapping_ignores_unknown_keys():
    cfg = ProgressConfig.from_mapping({"SCORE_COMPLETION_THRESHOLD": "65", "UNRELATED": 1})
    assert cfg.score_threshold == 65.0
    assert cfg.mastery_threshold == 0.80


@pytest.mark.django_db
def test_course_completions_map(engine):
    engine.submit_score(_score("u1", "t2", 9, 10, course_id="goethe-a1"))
    engine.submit_score(_score("u1", "t3", 2, 10, course_id="goethe-a1"))
    engine.submit_score(_score("u1", "t4", 9, 10, course_id="telc-a2"))

    result = engine.course_completions("u1", "goethe-a1")

    assert set(result["completions"]) == {"t2", "t3"}
    assert result["completions"]["t2"]["is_completed"] is True
    assert result["completions"]["t3"]["is_completed"] is False
    assert result["total_completed"] == 1


@pytest.mark.django_db
def test_completion_summary_buckets_by_completed_day(engine):
    day = dt.datetime(2025, 10, 27, 10, 0, tzinfo=dt.timezone.utc)
    CompletionRecord.objects.create(user_id="u1", task_id="a", course_id="c", score=80, completed_at=day)
    CompletionRecord.objects.create(user_id="u1", task_id="b", course_id="c", score=100,
                                    completed_at=day + dt.timedelta(hours=3))
    CompletionRecord.objects.create(user_id="u1", task_id="c", course_id="c", score=90,
                                    completed_at=day + dt.timedelta(days=2))
    CompletionRecord.objects.create(user_id="u1", task_id="d", course_id="c", score=40, completed_at=None)

    summary = engine.completion_summary(
        "u1", "2025-10-27T00:00:00Z", "2025-10-30T00:00:00Z", granularity="day", tz="UTC",
    )

    assert [b["completed"] for b in summary["buckets"]] == [2, 0, 1]
    assert summary["buckets"][0]["mean_score"] == 90.0
    assert summary["buckets"][1]["mean_score"] is None
    assert summary["totals"] == {"completed": 3, "mean_score": 90.0}


@pytest.mark.django_db
def test_completion_summary_uses_local_day(engine):
    # 16:00Z on the 27th is 01:00 on the 28th in Tokyo.
    done = dt.datetime(2025, 10, 27, 16, 0, tzinfo=dt.timezone.utc)
    CompletionRecord.objects.create(user_id="u1", task_id="a", course_id="c", score=75, completed_at=done)

    summary = engine.completion_summary(
        "u1", "2025-10-26T15:00:00Z", "2025-10-28T15:00:00Z", granularity="day", tz="Asia/Tokyo",
    )

    assert [b["completed"] for b in summary["buckets"]] == [0, 1]
    assert summary["buckets"][1]["bucket_start"].startswith("2025-10-28T00:00:00")


@pytest.mark.django_db
def test_completion_summary_empty_window(engine):
    now = timezone.now()
    summary = engine.completion_summary("u1", now, now, granularity="hour", tz="UTC")
    assert summary["buckets"] == []


@pytest.mark.django_db
def test_mark_complete_creates_completed_record(engine):
    outcome = engine.mark_complete("u1", "reading-1", course_id="goethe-a1")

    assert outcome.created is True
    assert outcome.newly_completed is True
    assert outcome.record.score == 0.0
    assert outcome.record.attempts == 1
    assert outcome.record.completed_at is not None


@pytest.mark.django_db
def test_mark_complete_again_counts_attempt_and_keeps_completion(engine):
    first = engine.mark_complete("u1", "reading-1").record

    again = engine.mark_complete("u1", "reading-1")

    assert again.created is False
    assert again.newly_completed is False
    assert again.record.attempts == 2
    assert again.record.completed_at == first.completed_at


@pytest.mark.django_db
def test_mark_complete_keeps_existing_score(engine):
    engine.submit_score(_score("u1", "t2", 5, 10))

    outcome = engine.mark_complete("u1", "t2")

    assert outcome.newly_completed is True
    assert outcome.record.score == 50.0
    assert outcome.record.attempts == 2
    assert CompletionRecord.objects.filter(user_id="u1", task_id="t2").count() == 1


@pytest.mark.django_db
def test_mark_complete_requires_ids(engine):
    with pytest.raises(ValidationError):
        engine.mark_complete("u1", "")
    assert not CompletionRecord.objects.exists()
