"""Personal records derived from run splits and totals."""
from typing import Iterable, Optional, Sequence

from runmetrics.core.constants import KM_10_M, KM_5_M, MILE_M
from runmetrics.schemas.run import RunRecord
from runmetrics.schemas.stats import BestEffort, PersonalRecords
from runmetrics.services.geo import average_pace

# Share of a unit a split must cover to count as a full mile
FULL_SPLIT_RATIO = 0.99
# Accepted window around a segment target distance
SEGMENT_TOLERANCE = 0.05
# Segment search from a start split stops once this far past the target
SEGMENT_OVERSHOOT = 1.10

PR_FASTEST_MILE = "Fastest Mile"
PR_FASTEST_5K = "Fastest 5K"
PR_FASTEST_10K = "Fastest 10K"
PR_LONGEST_DISTANCE = "Longest Run (Distance)"
PR_LONGEST_TIME = "Longest Run (Time)"


def _whole_run_effort(run: RunRecord) -> BestEffort:
    return BestEffort(
        run_key=run.key,
        source_file=run.source_file,
        time_s=run.total_duration_s,
        pace=run.average_pace,
        distance_m=run.total_distance_m,
        date=run.start_time,
        start_time=run.start_time,
    )


def fastest_mile(runs: Iterable[RunRecord]) -> Optional[BestEffort]:
    best: Optional[BestEffort] = None
    for run in runs:
        for split in run.splits:
            distance = split.end_distance - split.start_distance
            if distance < MILE_M * FULL_SPLIT_RATIO:
                continue
            if best is None or split.pace < best.pace:
                best = BestEffort(
                    run_key=run.key,
                    source_file=run.source_file,
                    time_s=split.duration_seconds,
                    pace=split.pace,
                    distance_m=distance,
                    date=run.start_time,
                    start_time=split.start_time,
                )
    return best


def fastest_segment(runs: Iterable[RunRecord], target_m: float) -> Optional[BestEffort]:
    """Fastest run of contiguous splits covering target_m within the tolerance."""
    low = target_m * (1 - SEGMENT_TOLERANCE)
    high = target_m * (1 + SEGMENT_TOLERANCE)
    best: Optional[BestEffort] = None

    for run in runs:
        if run.total_distance_m < low:
            continue
        splits = run.splits
        for i in range(len(splits)):
            distance = 0.0
            duration = 0.0
            for split in splits[i:]:
                distance += split.end_distance - split.start_distance
                duration += split.duration_seconds
                if low <= distance <= high:
                    pace = average_pace(duration, distance)
                    if best is None or pace < best.pace:
                        best = BestEffort(
                            run_key=run.key,
                            source_file=run.source_file,
                            time_s=duration,
                            pace=pace,
                            distance_m=distance,
                            date=run.start_time,
                            start_time=splits[i].start_time,
                        )
                    break
                if distance > target_m * SEGMENT_OVERSHOOT:
                    break
    return best


def calculate_best_efforts(runs: Sequence[RunRecord]) -> PersonalRecords:
    if not runs:
        return PersonalRecords()
    longest_distance = max(runs, key=lambda r: r.total_distance_m)
    longest_time = max(runs, key=lambda r: r.total_duration_s)
    return PersonalRecords(
        fastest_mile=fastest_mile(runs),
        fastest_5k=fastest_segment(runs, KM_5_M),
        fastest_10k=fastest_segment(runs, KM_10_M),
        longest_run_distance=_whole_run_effort(longest_distance),
        longest_run_time=_whole_run_effort(longest_time),
    )


def check_for_new_prs(current: PersonalRecords, run: RunRecord) -> list[str]:
    """Record types that `run` would improve over `current`."""
    improved = []

    mile = fastest_mile([run])
    if mile and (current.fastest_mile is None or mile.pace < current.fastest_mile.pace):
        improved.append(PR_FASTEST_MILE)

    for target, name, existing in (
        (KM_5_M, PR_FASTEST_5K, current.fastest_5k),
        (KM_10_M, PR_FASTEST_10K, current.fastest_10k),
    ):
        effort = fastest_segment([run], target)
        if effort and (existing is None or effort.pace < existing.pace):
            improved.append(name)

    if current.longest_run_distance is None or run.total_distance_m > current.longest_run_distance.distance_m:
        improved.append(PR_LONGEST_DISTANCE)
    if current.longest_run_time is None or run.total_duration_s > current.longest_run_time.time_s:
        improved.append(PR_LONGEST_TIME)
    return improved
