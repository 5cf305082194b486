"""
Kudoer pattern aggregation.

Turns the newest-first list of recent activities (each with its kudoers) into
the dashboard summary:

1. Totals over every fetched activity.
2. A "most active recent kudoers" ranking. Membership is decided by the recent
   window (people who gave kudos on the newest activities), the score is the
   number of activities in the total window they gave kudos on.
3. A fingerprint per ranked kudoer: activity types, distance range, and the
   distance thresholds most of their kudos clear.

Pure functions only, no I/O. The same input always yields the same summary.
"""
from statistics import fmean
from typing import Dict, Iterable, List, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .models import ActivityWithKudoers

DEFAULT_RECENT_WINDOW = 5
DEFAULT_TOTAL_WINDOW = 10
DEFAULT_TOP_N = 10

# Distance preference heuristic: a threshold is reported when at least
# PREFERENCE_RATIO of a kudoer's activities are at or above it.
DISTANCE_THRESHOLDS_KM = (1, 5, 10, 20, 50)
PREFERENCE_RATIO = 0.80
TOP_TYPES_LIMIT = 3


class KudoerPattern(BaseModel):
    """Fingerprint of one kudoer over the total window. Distances are in km."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    rank: int
    total_count: int = Field(alias="count")
    activity_names: List[str] = Field(alias="activities")
    type_counts: Dict[str, int] = Field(alias="types")
    distances_km: List[float] = Field(alias="distances")
    min_distance_km: float = Field(alias="minDistance")
    max_distance_km: float = Field(alias="maxDistance")
    avg_distance_km: float = Field(alias="avgDistance")
    distance_preferences: List[str] = Field(alias="distancePreferences")
    top_types: List[Tuple[str, int]] = Field(alias="topTypes")

    @property
    def top_types_label(self) -> str:
        return format_top_types(self.top_types)


class DashboardSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    activities: List[ActivityWithKudoers]
    patterns: List[KudoerPattern]
    total_kudoers: int = Field(alias="totalKudoers")
    unique_people: int = Field(alias="uniquePeople")
    recent_window: int = Field(alias="recentWindow")
    total_window: int = Field(alias="totalWindow")


def count_total_kudoers(activities: Iterable[ActivityWithKudoers]) -> int:
    return sum(len(a.kudoers) for a in activities)


def unique_kudoer_keys(activities: Iterable[ActivityWithKudoers]) -> List[str]:
    """Distinct kudoer keys in first-seen order."""
    seen: Dict[str, None] = {}
    for activity in activities:
        for kudoer in activity.kudoers:
            seen.setdefault(kudoer.key, None)
    return list(seen)


def rank_recent_kudoers(
    activities: Sequence[ActivityWithKudoers],
    recent_window: int = DEFAULT_RECENT_WINDOW,
    total_window: int = DEFAULT_TOTAL_WINDOW,
    top_n: int = DEFAULT_TOP_N,
) -> List[Tuple[str, int]]:
    """
    Rank people who gave kudos on the newest `recent_window` activities by how
    many of the newest `total_window` activities they gave kudos on.

    Ties keep the order in which people were first counted (newest activity
    first), which relies on `sorted` being stable.
    """
    recent = activities[:max(recent_window, 0)]
    window = activities[:max(total_window, 0)]

    eligible = set(unique_kudoer_keys(recent))

    counts: Dict[str, int] = {}
    for activity in window:
        for kudoer in activity.kudoers:
            key = kudoer.key
            if key in eligible:
                counts[key] = counts.get(key, 0) + 1

    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return ranked[:max(top_n, 0)]


def distance_preferences(distances_km: Sequence[float]) -> List[str]:
    """
    Thresholds (ascending) that at least 80% of the distances reach, labelled
    like "≥10km".

    This is a display heuristic, not a statistical test: a single activity
    satisfies every threshold up to its own distance.
    """
    if not distances_km:
        return []
    total = len(distances_km)
    preferences = []
    for threshold in DISTANCE_THRESHOLDS_KM:
        reached = sum(1 for d in distances_km if d >= threshold)
        if reached / total >= PREFERENCE_RATIO:
            preferences.append(f"≥{threshold}km")
    return preferences


def top_activity_types(type_counts: Dict[str, int], limit: int = TOP_TYPES_LIMIT) -> List[Tuple[str, int]]:
    ranked = sorted(type_counts.items(), key=lambda item: item[1], reverse=True)
    return ranked[:limit]


def format_top_types(top_types: Iterable[Tuple[str, int]]) -> str:
    return ", ".join(f"{activity_type}({count})" for activity_type, count in top_types)


def build_pattern(name: str, rank: int, activities: Sequence[ActivityWithKudoers]) -> KudoerPattern:
    """Fingerprint `name` over every activity in `activities` they gave kudos on."""
    activity_names: List[str] = []
    type_counts: Dict[str, int] = {}
    distances_km: List[float] = []

    for activity in activities:
        for kudoer in activity.kudoers:
            if kudoer.key != name:
                continue
            activity_names.append(activity.name)
            type_counts[activity.type] = type_counts.get(activity.type, 0) + 1
            distances_km.append(activity.distance_km)

    if distances_km:
        low, high = min(distances_km), max(distances_km)
        # clamp float rounding drift so low <= avg <= high always holds
        avg = min(max(fmean(distances_km), low), high)
    else:
        low = high = avg = 0.0

    return KudoerPattern(
        name=name,
        rank=rank,
        total_count=len(activity_names),
        activity_names=activity_names,
        type_counts=type_counts,
        distances_km=distances_km,
        min_distance_km=low,
        max_distance_km=high,
        avg_distance_km=avg,
        distance_preferences=distance_preferences(distances_km),
        top_types=top_activity_types(type_counts),
    )


def aggregate(
    activities: Sequence[ActivityWithKudoers],
    recent_window: int = DEFAULT_RECENT_WINDOW,
    total_window: int = DEFAULT_TOTAL_WINDOW,
    top_n: int = DEFAULT_TOP_N,
) -> DashboardSummary:
    """
    Build the dashboard summary for a newest-first list of activities.

    Totals cover every activity passed in. Ranking and fingerprints cover the
    newest `total_window` of them. Accepts any length, including zero.
    """
    activities = list(activities)
    window = activities[:max(total_window, 0)]

    ranking = rank_recent_kudoers(activities, recent_window, total_window, top_n)
    patterns = [
        build_pattern(name, rank, window)
        for rank, (name, _count) in enumerate(ranking, start=1)
    ]

    return DashboardSummary(
        activities=activities,
        patterns=patterns,
        total_kudoers=count_total_kudoers(activities),
        unique_people=len(unique_kudoer_keys(activities)),
        recent_window=recent_window,
        total_window=total_window,
    )
