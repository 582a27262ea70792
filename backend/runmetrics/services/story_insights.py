"""Story stats and the insights that single a story out among all stories.

A story earns an insight when it holds the best value of all stories for
that measure (ties all earn it). Stories without any existing runs earn none.
"""
import math
from typing import Optional, Sequence

from runmetrics.core.constants import MILE_M
from runmetrics.schemas.run import RunRecord
from runmetrics.schemas.story import Story, StoryInsight, StoryInsightType, StoryStats
from runmetrics.services.geo import average_pace

# Lower number wins when picking the headline insight
INSIGHT_PRIORITY = {
    StoryInsightType.longest_distance: 1,
    StoryInsightType.biggest_elevation: 2,
    StoryInsightType.fastest_pace: 3,
    StoryInsightType.strongest_emotional: 4,
    StoryInsightType.most_consistent_pace: 5,
    StoryInsightType.most_runs: 6,
    StoryInsightType.longest_span: 7,
    StoryInsightType.longest_duration: 8,
}


def story_runs(story: Story, runs: Sequence[RunRecord]) -> list[RunRecord]:
    """Runs referenced by the story; keys of deleted runs are ignored."""
    wanted = set(story.run_ids)
    return [r for r in runs if r.key in wanted]


def calculate_story_stats(story: Story, runs: Sequence[RunRecord]) -> StoryStats:
    selected = story_runs(story, runs)
    if not selected:
        return StoryStats(
            mood_tag_count=len(story.mood_tags),
            start_date=story.created_at,
            end_date=story.created_at,
        )

    distance = sum(r.total_distance_m for r in selected)
    duration = sum(r.total_duration_s for r in selected)
    pace = average_pace(duration, distance)

    paces = [r.average_pace for r in selected if r.average_pace > 0]
    variance = 0.0
    if len(paces) > 1:
        variance = sum((p - pace) ** 2 for p in paces) / len(paces)

    starts = sorted(r.start_time for r in selected)
    span_days = math.ceil((starts[-1] - starts[0]).total_seconds() / 86400)

    return StoryStats(
        total_distance_m=distance,
        total_duration_s=duration,
        total_elevation_m=sum(r.elevation_gain_m for r in selected),
        average_pace=pace,
        run_count=len(selected),
        mood_tag_count=len(story.mood_tags),
        date_span_days=span_days,
        pace_variance=variance,
        start_date=starts[0],
        end_date=starts[-1],
    )


def generate_story_insights(
    story: Story, all_stories: Sequence[Story], runs: Sequence[RunRecord]
) -> list[StoryInsight]:
    stats = calculate_story_stats(story, runs)
    if stats.run_count == 0:
        return []
    others = [calculate_story_stats(s, runs) for s in all_stories]
    insights = []

    def add(kind: StoryInsightType, emoji: str, title: str, description: str, value: str):
        insights.append(StoryInsight(type=kind, emoji=emoji, title=title, description=description, value=value))

    longest = max((s.total_distance_m for s in others), default=0.0)
    if longest > 0 and stats.total_distance_m == longest:
        add(
            StoryInsightType.longest_distance, "🏆", "Longest Journey",
            "This is your longest story by total distance",
            f"{stats.total_distance_m / MILE_M:.1f} miles",
        )

    climb = max((s.total_elevation_m for s in others), default=0.0)
    if climb > 0 and stats.total_elevation_m == climb:
        add(
            StoryInsightType.biggest_elevation, "💪", "Biggest Elevation Challenge",
            "This story includes your most elevation gain",
            f"{stats.total_elevation_m:.0f}m",
        )

    variances = [s.pace_variance for s in others if s.run_count > 1 and s.pace_variance > 0]
    if variances and stats.run_count > 1 and stats.pace_variance == min(variances):
        add(
            StoryInsightType.most_consistent_pace, "📈", "Most Consistent Pace",
            "Your runs had the most consistent pacing",
            f"Variance: {stats.pace_variance:.2f} min/mi",
        )

    moods = max((s.mood_tag_count for s in others), default=0)
    if moods > 0 and stats.mood_tag_count == moods:
        add(
            StoryInsightType.strongest_emotional, "🎯", "Strongest Emotional Journey",
            "This story captures your most emotional running experience",
            f"{stats.mood_tag_count} mood tags",
        )

    paces = [s.average_pace for s in others if s.average_pace > 0]
    if paces and stats.average_pace > 0 and stats.average_pace == min(paces):
        add(
            StoryInsightType.fastest_pace, "🏃", "Fastest Story",
            "Your fastest average pace across all stories",
            f"{stats.average_pace:.2f} min/mi",
        )

    longest_time = max((s.total_duration_s for s in others), default=0.0)
    if longest_time > 0 and stats.total_duration_s == longest_time:
        add(
            StoryInsightType.longest_duration, "⏱️", "Longest Running Time",
            "Your longest total running time",
            f"{round(stats.total_duration_s / 60)} minutes",
        )

    most_runs = max((s.run_count for s in others), default=0)
    if most_runs > 1 and stats.run_count == most_runs:
        add(
            StoryInsightType.most_runs, "📚", "Most Runs Combined",
            "This story combines the most individual runs",
            f"{stats.run_count} runs",
        )

    span = max((s.date_span_days for s in others), default=0)
    if span > 0 and stats.date_span_days == span:
        add(
            StoryInsightType.longest_span, "📅", "Longest Time Span",
            "This story spans the longest period of time",
            f"{stats.date_span_days} days",
        )

    return insights


def top_insight(insights: Sequence[StoryInsight]) -> Optional[StoryInsight]:
    if not insights:
        return None
    return min(insights, key=lambda i: INSIGHT_PRIORITY.get(i.type, 99))
