"""Folding of per-student progress into class-level aggregates."""

from __future__ import annotations

from statistics import fmean
from typing import Dict, List, Sequence

from . import models


def student_summary(records: Sequence[models.ProgressRecord]) -> dict:
    """Collapse one student's subject records into the figures a class averages."""
    rates = [
        min(1.0, r.activities_completed / r.total_activities)
        for r in records
        if r.total_activities > 0
    ]
    return {
        'points': sum(r.points for r in records),
        'level': max((r.current_level for r in records), default=1),
        'completion_rates': rates,
    }


def summarize_class(classroom: models.Classroom, student_count: int,
                    summaries: Dict[int, dict]) -> dict:
    """Aggregate the students that reported.

    Students missing from `summaries` (failed lookups) are counted in
    `student_count` but excluded from every average.
    """
    rates: List[float] = [rate for s in summaries.values() for rate in s['completion_rates']]
    return {
        'classroom_id': classroom.id,
        'name': classroom.name,
        'student_count': student_count,
        'reporting_students': len(summaries),
        'average_points': round(fmean(s['points'] for s in summaries.values()), 2) if summaries else 0.0,
        'average_level': round(fmean(s['level'] for s in summaries.values()), 2) if summaries else 0.0,
        'completion_rate': round(fmean(rates), 4) if rates else 0.0,
    }
