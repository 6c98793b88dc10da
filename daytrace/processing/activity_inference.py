"""
Activity inference
Rule-based labelling of a time block from workouts, place category and app usage
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from daytrace.core.timeutils import is_work_hours, overlap_seconds
from daytrace.models.evidence import HealthWorkout, ScreenSession
from daytrace.models.segments import (
    PLACE_COMMUTE,
    PLACE_HOME,
    PLACE_WORK,
    AppCategory,
    AppUsage,
    InferredActivity,
)

from .app_categories import AppCategoryResolver

# Thresholds in minutes of screen time
WORK_MIN_MINUTES = 30
MEETING_MIN_MINUTES = 20
EXTENDED_SOCIAL_MIN_MINUTES = 30
OFFLINE_MAX_MINUTES = 5
COLLABORATIVE_COMMS_SHARE = 0.4

# Tie-break order when two categories have the same screen time
_CATEGORY_ORDER = [
    AppCategory.WORK,
    AppCategory.COMMS,
    AppCategory.ENTERTAINMENT,
    AppCategory.SOCIAL,
    AppCategory.UTILITY,
]


@dataclass
class AppUsageBreakdown:
    """Screen time inside one block, ignore-category apps excluded"""

    apps: List[AppUsage] = field(default_factory=list)
    session_count: int = 0
    session_ids: List[str] = field(default_factory=list)

    @property
    def total_seconds(self) -> int:
        return sum(app.seconds for app in self.apps)

    @property
    def total_minutes(self) -> int:
        """Whole minutes, halves rounded up"""
        return math.floor(self.total_seconds / 60 + 0.5)

    def category_seconds(self) -> Dict[AppCategory, int]:
        totals: Dict[AppCategory, int] = {}
        for app in self.apps:
            totals[app.category] = totals.get(app.category, 0) + app.seconds
        return totals

    def dominant_category(self) -> Tuple[Optional[AppCategory], float]:
        """Category with the most seconds and its share of the total"""
        totals = self.category_seconds()
        total = self.total_seconds
        if total <= 0:
            return None, 0.0
        best = max(
            totals.items(),
            key=lambda item: (item[1], -_CATEGORY_ORDER.index(item[0])),
        )
        return best[0], best[1] / total

    def share_of(self, category: AppCategory) -> float:
        total = self.total_seconds
        if total <= 0:
            return 0.0
        return self.category_seconds().get(category, 0) / total


def compute_app_usage(
    start: datetime,
    end: datetime,
    sessions: Sequence[ScreenSession],
    resolver: AppCategoryResolver,
) -> AppUsageBreakdown:
    """Per-app seconds of overlap between ``[start, end)`` and the sessions

    Only the overlapping part of a session counts; apps in the ``ignore``
    category are skipped entirely.
    """
    seconds: Dict[str, int] = {}
    names: Dict[str, str] = {}
    categories: Dict[str, AppCategory] = {}
    session_ids: List[str] = []

    for session in sessions:
        overlap = round(overlap_seconds(start, end, session.start, session.end))
        if overlap <= 0:
            continue
        category = categories.get(session.app_id)
        if category is None:
            category = resolver.resolve(session.app_id, session.display_name)
            categories[session.app_id] = category
        if category == AppCategory.IGNORE:
            continue
        session_ids.append(session.session_id)
        seconds[session.app_id] = seconds.get(session.app_id, 0) + overlap
        names.setdefault(session.app_id, session.display_name)

    apps = [
        AppUsage(
            app_id=app_id,
            display_name=names[app_id],
            category=categories[app_id],
            seconds=total,
        )
        for app_id, total in seconds.items()
    ]
    apps.sort(key=lambda a: (-a.seconds, a.app_id))
    return AppUsageBreakdown(
        apps=apps, session_count=len(session_ids), session_ids=session_ids
    )


def find_overlapping_workouts(
    start: datetime, end: datetime, workouts: Sequence[HealthWorkout]
) -> List[HealthWorkout]:
    return [w for w in workouts if overlap_seconds(start, end, w.start, w.end) > 0]


@dataclass
class InferenceContext:
    """Everything the rule chain looks at for one block"""

    start: datetime
    usage: AppUsageBreakdown
    place_category: Optional[str] = None
    has_workout: bool = False
    is_sleeping: bool = False
    timezone: Optional[str] = None


def infer_activity(ctx: InferenceContext) -> InferredActivity:
    """Apply the priority chain; the first matching rule wins"""
    if ctx.has_workout:
        return InferredActivity.WORKOUT
    if ctx.is_sleeping:
        return InferredActivity.SLEEP

    place_category = (ctx.place_category or "").strip().lower()
    if place_category == PLACE_COMMUTE:
        return InferredActivity.COMMUTE

    minutes = ctx.usage.total_minutes
    dominant, _ = ctx.usage.dominant_category()

    if dominant == AppCategory.WORK and minutes > WORK_MIN_MINUTES:
        if ctx.usage.share_of(AppCategory.COMMS) > COLLABORATIVE_COMMS_SHARE:
            return InferredActivity.COLLABORATIVE_WORK
        return InferredActivity.DEEP_WORK

    if dominant == AppCategory.COMMS and minutes > MEETING_MIN_MINUTES:
        return InferredActivity.MEETING

    if dominant == AppCategory.ENTERTAINMENT:
        if is_work_hours(ctx.start, ctx.timezone):
            return InferredActivity.DISTRACTED_TIME
        return InferredActivity.LEISURE

    if dominant == AppCategory.SOCIAL:
        if minutes > EXTENDED_SOCIAL_MIN_MINUTES:
            return InferredActivity.EXTENDED_SOCIAL
        return InferredActivity.SOCIAL_BREAK

    if minutes < OFFLINE_MAX_MINUTES:
        if place_category == PLACE_HOME:
            return InferredActivity.PERSONAL_TIME
        if place_category == PLACE_WORK:
            return InferredActivity.AWAY_FROM_DESK
        return InferredActivity.OFFLINE_ACTIVITY

    return InferredActivity.MIXED_ACTIVITY


def compute_confidence(
    location_samples: int,
    screen_sessions: int,
    place_match_ratio: float,
    consensus: float,
) -> float:
    """Evidence-density confidence in [0, 1]

    location (0-0.4) + screen (0-0.3) + app-category consensus (0-0.3)
    """
    ratio = min(1.0, max(0.0, place_match_ratio))
    if location_samples >= 10:
        location_term = 0.4 * ratio
    elif location_samples >= 5:
        location_term = 0.2 * ratio
    else:
        location_term = 0.0

    if screen_sessions >= 5:
        screen_term = 0.3
    elif screen_sessions >= 2:
        screen_term = 0.15
    else:
        screen_term = 0.0

    consensus_term = 0.3 * min(1.0, max(0.0, consensus))
    score = location_term + screen_term + consensus_term
    return round(min(1.0, max(0.0, score)), 4)
