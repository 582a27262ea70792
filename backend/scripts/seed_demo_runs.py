from datetime import datetime, time, timedelta, timezone
import math
import random

from runmetrics.core.constants import EARTH_RADIUS_M, MILE_M
from runmetrics.db import Base, SessionLocal, engine
from runmetrics.models.store_entry import StoreEntry  # noqa: F401
from runmetrics.schemas.run import GeoPoint, RunRecord, Track
from runmetrics.services.engine import RunMetricsEngine
from runmetrics.services.geo import summarize_tracks

# Loop start (a park in Boulder, CO)
START_LAT = 40.0150
START_LON = -105.2705
POINT_SPACING_M = 20.0


def loop_track(start: datetime, miles: float, pace_min_per_mile: float, name: str) -> Track:
    """A circular route of the given length with one point every ~20 m and gentle hills."""
    distance_m = miles * MILE_M
    n = max(int(distance_m / POINT_SPACING_M), 2)
    radius_m = distance_m / (2 * math.pi)
    seconds_per_point = pace_min_per_mile * 60 * miles / n
    points = []
    for i in range(n + 1):
        angle = 2 * math.pi * i / n
        d_north = radius_m * math.sin(angle)
        d_east = radius_m * (1 - math.cos(angle))
        lat = START_LAT + math.degrees(d_north / EARTH_RADIUS_M)
        lon = START_LON + math.degrees(d_east / (EARTH_RADIUS_M * math.cos(math.radians(START_LAT))))
        points.append(
            GeoPoint(
                latitude=lat,
                longitude=lon,
                elevation=1650 + 15 * math.sin(3 * angle),
                timestamp=start + timedelta(seconds=i * seconds_per_point),
            )
        )
    return Track(name=name, points=points)


def demo_run(day, title: str, miles: float, pace: float) -> RunRecord:
    start = datetime.combine(day, time(6, 30), tzinfo=timezone.utc)
    track = loop_track(start, miles, pace, title)
    summary = summarize_tracks([track])
    return RunRecord(
        source_file=f"{title.lower().replace(' ', '-')}-{day.isoformat()}.gpx",
        tracks=[track],
        total_distance_m=summary.total_distance_m,
        total_duration_s=summary.duration_s,
        elevation_gain_m=summary.elevation_gain_m,
        elevation_loss_m=summary.elevation_loss_m,
        start_time=summary.start_time,
        end_time=summary.end_time,
        average_pace=summary.average_pace,
        splits=summary.splits,
    )


def seed_demo_runs(metrics: RunMetricsEngine, weeks: int = 12) -> None:
    """Insert a block of demo runs (easy, workout, long) ending this week."""
    today = datetime.now(timezone.utc).date()
    # Go back (weeks - 1) full weeks + current week
    start_day = today - timedelta(weeks=weeks - 1)

    runs_to_add = []

    for week in range(weeks):
        week_start = start_day + timedelta(weeks=week)

        # Example: Tue easy, Thu workout/tempo, Sun long run
        tue = week_start + timedelta(days=1)
        thu = week_start + timedelta(days=3)
        sun = week_start + timedelta(days=6)

        for d, title, miles, pace in [
            (tue, "Easy run", round(random.uniform(4.0, 7.0), 1), random.uniform(8.8, 9.6)),
            (thu, "Workout", round(random.uniform(6.0, 10.0), 1), random.uniform(7.0, 7.8)),
            (sun, "Long run", round(random.uniform(10.0, 18.0), 1), random.uniform(8.5, 9.2)),
        ]:
            # Skip future days
            if d > today:
                continue
            runs_to_add.append(demo_run(d, title, miles, pace))

    result = metrics.insert_runs(runs_to_add)
    print(f"Seeded {result.inserted} demo runs")
    if result.unlocked_achievements:
        print(f"Unlocked: {', '.join(result.unlocked_achievements)}")


def main():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_demo_runs(RunMetricsEngine(db))
    finally:
        db.close()


if __name__ == "__main__":
    main()
