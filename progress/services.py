# progress/services.py
from __future__ import annotations

import datetime as dt
from typing import Dict, List, Optional

import pytz
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from .completion import CompletionStore

GRANULARITIES = ("hour", "day", "month")


def to_aware_utc(x: str | dt.datetime) -> dt.datetime:
    """Parse an ISO string or datetime into a tz-aware datetime in UTC."""
    if isinstance(x, str):
        d = parse_datetime(x)
        if d is None:
            raise ValueError("from/to must be ISO-8601")
    elif isinstance(x, dt.datetime):
        d = x
    else:
        raise TypeError("datetime must be str or datetime")
    if timezone.is_naive(d):
        d = timezone.make_aware(d, dt.timezone.utc)
    return d.astimezone(dt.timezone.utc)


def _localize(naive: dt.datetime, tz: dt.tzinfo) -> dt.datetime:
    # pytz zones need localize() to pick the right DST offset for a wall-clock time.
    if hasattr(tz, "localize"):
        return tz.localize(naive)
    return naive.replace(tzinfo=tz)


def _floor_local(d: dt.datetime, granularity: str, tz: dt.tzinfo) -> dt.datetime:
    """Floor a datetime to its bucket start in the local timezone (tz-aware local time)."""
    ld = d.astimezone(tz).replace(tzinfo=None)
    if granularity == "hour":
        ld = ld.replace(minute=0, second=0, microsecond=0)
    elif granularity == "day":
        ld = ld.replace(hour=0, minute=0, second=0, microsecond=0)
    elif granularity == "month":
        ld = ld.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    else:
        raise ValueError("granularity must be hour|day|month")
    return _localize(ld, tz)


def _step_local(d: dt.datetime, granularity: str, tz: dt.tzinfo) -> dt.datetime:
    """Advance by one bucket in the local timezone."""
    if granularity == "hour":
        return (d + dt.timedelta(hours=1)).astimezone(tz)
    if granularity == "day":
        nxt = d.replace(tzinfo=None) + dt.timedelta(days=1)
    elif granularity == "month":
        year = d.year + (1 if d.month == 12 else 0)
        month = 1 if d.month == 12 else d.month + 1
        nxt = d.replace(tzinfo=None, year=year, month=month, day=1)
    else:
        raise ValueError("granularity must be hour|day|month")
    return _localize(nxt, tz)


def _iter_bucket_starts(
    from_utc: dt.datetime, to_utc: dt.datetime, granularity: str, tz: dt.tzinfo
) -> List[dt.datetime]:
    """Local bucket starts covering [from, to) (right-open)."""
    start_local = _floor_local(from_utc, granularity, tz)
    end_local = _floor_local(to_utc, granularity, tz)
    if end_local < to_utc:
        end_local = _step_local(end_local, granularity, tz)
    out: List[dt.datetime] = []
    cur = start_local
    while cur < end_local:
        out.append(cur)
        cur = _step_local(cur, granularity, tz)
    return out


def summarize_completions(
    store: CompletionStore,
    user_id: str,
    dt_from: str | dt.datetime,
    dt_to: str | dt.datetime,
    *,
    granularity: str,
    tz: str,
    course_id: Optional[str] = None,
) -> Dict:
    """
    Count a user's task completions over [from, to) per local bucket.

    Rules:
      1) A record belongs to the bucket holding its local-time completed_at.
      2) In-progress records (completed_at NULL) are never counted.
      3) All buckets are returned, empty ones included.
    """
    if granularity not in GRANULARITIES:
        raise ValueError("granularity must be hour|day|month")

    tzinfo = pytz.timezone(tz)
    f_utc = to_aware_utc(dt_from)
    t_utc = to_aware_utc(dt_to)
    if f_utc >= t_utc:
        return {"buckets": [], "totals": {"completed": 0, "mean_score": None}}

    bucket_starts_local = _iter_bucket_starts(f_utc, t_utc, granularity, tzinfo)
    idx: Dict[dt.datetime, int] = {bs: i for i, bs in enumerate(bucket_starts_local)}
    counts = [0 for _ in bucket_starts_local]
    scores = [0.0 for _ in bucket_starts_local]

    records = store.completed_between(user_id, f_utc, t_utc, course_id)
    for rec in records:
        bucket_key = _floor_local(rec.completed_at, granularity, tzinfo)
        bi = idx.get(bucket_key)
        if bi is None:
            continue
        counts[bi] += 1
        scores[bi] += float(rec.score or 0.0)

    buckets = []
    for i, bs_local in enumerate(bucket_starts_local):
        buckets.append({
            "bucket_start": bs_local.isoformat(),  # local timezone ISO
            "completed": counts[i],
            "mean_score": (scores[i] / counts[i]) if counts[i] else None,
        })

    total = sum(counts)
    return {
        "buckets": buckets,
        "totals": {
            "completed": total,
            "mean_score": (sum(scores) / total) if total else None,
        },
    }
