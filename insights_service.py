from __future__ import annotations
import datetime
from collections import Counter
from typing import TYPE_CHECKING, Iterable, Optional, Sequence
from zoneinfo import ZoneInfo

from loguru import logger

from algorithms.math_tools import MathTools
from insights_models import (
    Consistency,
    DurationChart,
    ExerciseProgress,
    ExerciseProgressMetric,
    ExerciseProgressSeries,
    ExerciseSessionSummary,
    PersonalRecords,
    PrEvent,
    PrType,
    RoutineUsage,
    RoutineUtilization,
    SessionComparison,
    SessionComparisonRow,
    SessionComputation,
    SessionSummary,
    WeeklyVolumeOverview,
    WeeklyVolumePoint,
    WorkoutInsightsState,
    WorkoutSession,
    WorkoutSetSample,
)

if TYPE_CHECKING:
    from db import SettingsRepository, WorkoutRepository

DEFAULT_BODY_WEIGHT = 80.0
WEEKLY_WINDOW = 12
ROLLING_WINDOW = 3
CONSISTENCY_WEEKS = 4
DURATION_WINDOW = 3


def _local_tz(tz: Optional[datetime.tzinfo]) -> datetime.tzinfo:
    if tz is not None:
        return tz
    local = datetime.datetime.now().astimezone().tzinfo
    return local or datetime.timezone.utc


def _aware(ts: datetime.datetime) -> datetime.datetime:
    """Return ``ts`` as timezone-aware, treating naive values as UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=datetime.timezone.utc)
    return ts


def week_key(day: datetime.date) -> str:
    year, week, _ = day.isocalendar()
    return f"{year}-W{week:02d}"


def _monday(day: datetime.date) -> datetime.date:
    return day - datetime.timedelta(days=day.weekday())


def compute_sessions(
    sessions: Iterable[WorkoutSession],
    tz: Optional[datetime.tzinfo] = None,
    body_weight: float = DEFAULT_BODY_WEIGHT,
) -> list[SessionComputation]:
    """Derive per-session totals and set samples, oldest session first."""
    zone = _local_tz(tz)
    ordered = sorted(sessions, key=lambda s: (_aware(s.start_time), s.workout_id))
    result: list[SessionComputation] = []
    for session in ordered:
        start = _aware(session.start_time)
        samples: list[WorkoutSetSample] = []
        totals: dict[int, dict] = {}
        for group in session.groups:
            acc = totals.setdefault(
                group.exercise_id,
                {
                    "name": group.exercise_name,
                    "volume": 0.0,
                    "reps": 0,
                    "loaded_reps": 0,
                    "best_load": None,
                    "best_est": None,
                },
            )
            for workout_set in group.sets:
                weight = MathTools.normalize_weight(workout_set.weight, body_weight)
                reps = workout_set.reps
                samples.append(
                    WorkoutSetSample(
                        exercise_id=group.exercise_id,
                        exercise_name=group.exercise_name,
                        set_index=len(samples),
                        reps=reps,
                        weight=weight,
                        occurred_at=start,
                    )
                )
                has_load = weight is not None and weight > 0
                if reps is not None and reps > 0:
                    acc["reps"] += reps
                    if has_load:
                        acc["volume"] += reps * weight
                        acc["loaded_reps"] += reps
                        est = MathTools.round_to(MathTools.epley_1rm(weight, reps))
                        if acc["best_est"] is None or est > acc["best_est"]:
                            acc["best_est"] = est
                if has_load and (reps is None or reps > 0):
                    if acc["best_load"] is None or weight > acc["best_load"]:
                        acc["best_load"] = weight

        summaries = tuple(
            ExerciseSessionSummary(
                exercise_id=exercise_id,
                exercise_name=acc["name"],
                total_volume=MathTools.round_to(acc["volume"]),
                total_reps=acc["reps"],
                average_load=(
                    MathTools.round_to(acc["volume"] / acc["loaded_reps"])
                    if acc["loaded_reps"]
                    else 0.0
                ),
                best_load=acc["best_load"],
                best_est=acc["best_est"],
            )
            for exercise_id, acc in totals.items()
        )
        total_volume = sum(acc["volume"] for acc in totals.values())
        total_reps = sum(acc["reps"] for acc in totals.values())
        duration = None
        if session.end_time is not None:
            seconds = (_aware(session.end_time) - start).total_seconds()
            if seconds >= 0:
                duration = seconds / 60.0
        result.append(
            SessionComputation(
                session=session,
                date=start.astimezone(zone).date(),
                duration_minutes=duration,
                total_volume=MathTools.round_to(total_volume),
                total_reps=total_reps,
                avg_load_per_rep=(
                    MathTools.round_to(total_volume / total_reps) if total_reps else 0.0
                ),
                exercise_summaries=summaries,
                samples=tuple(samples),
            )
        )
    return result


def compute_personal_records(
    computations: Sequence[SessionComputation],
) -> PersonalRecords:
    """Replay every set in order and record each time a running best is beaten.

    Load and estimated 1RM report the first valid set of an exercise.
    Reps-at-load only fires once a load has been seen before.
    """
    best_load: dict[int, float] = {}
    best_reps: dict[tuple[int, float], int] = {}
    best_est: dict[int, float] = {}
    events: list[PrEvent] = []

    for computation in computations:
        for sample in computation.samples:
            weight, reps = sample.weight, sample.reps
            if weight is None or weight <= 0:
                continue
            if reps is not None and reps <= 0:
                continue
            load = MathTools.round_to(weight)
            exercise_id = sample.exercise_id

            def fire(pr_type: PrType, value: float) -> None:
                events.append(
                    PrEvent(
                        id=f"{computation.workout_id}-{sample.set_index}-{pr_type.value}",
                        workout_id=computation.workout_id,
                        set_index=sample.set_index,
                        exercise_id=exercise_id,
                        exercise_name=sample.exercise_name,
                        type=pr_type,
                        value=value,
                        reps=reps,
                        load=load,
                        occurred_at=sample.occurred_at,
                    )
                )

            previous_load = best_load.get(exercise_id)
            if previous_load is None or load > previous_load:
                best_load[exercise_id] = load
                fire(PrType.LOAD, load)

            if reps is None:
                continue

            key = (exercise_id, load)
            previous_reps = best_reps.get(key)
            if previous_reps is None:
                best_reps[key] = reps
            elif reps > previous_reps:
                best_reps[key] = reps
                fire(PrType.REPS_AT_LOAD, float(reps))

            est = MathTools.round_to(MathTools.epley_1rm(load, reps))
            previous_est = best_est.get(exercise_id)
            if previous_est is None or est > previous_est:
                best_est[exercise_id] = est
                fire(PrType.ESTIMATED_ONE_RM, est)

    by_workout: dict[int, list[PrEvent]] = {}
    for event in events:
        by_workout.setdefault(event.workout_id, []).append(event)
    return PersonalRecords(
        events=tuple(events),
        events_by_workout={k: tuple(v) for k, v in by_workout.items()},
    )


def _weekly_buckets(
    computations: Sequence[SessionComputation],
) -> list[tuple[datetime.date, float, int]]:
    """Return (monday, volume, workouts) for every week from first to last session."""
    if not computations:
        return []
    totals: dict[datetime.date, list[float]] = {}
    for computation in computations:
        bucket = totals.setdefault(_monday(computation.date), [0.0, 0])
        bucket[0] += computation.total_volume
        bucket[1] += 1
    first = min(totals)
    last = max(totals)
    weeks: list[tuple[datetime.date, float, int]] = []
    monday = first
    while monday <= last:
        volume, count = totals.get(monday, [0.0, 0])
        weeks.append((monday, MathTools.round_to(volume), int(count)))
        monday += datetime.timedelta(days=7)
    return weeks


def weekly_volume(
    computations: Sequence[SessionComputation],
) -> Optional[WeeklyVolumeOverview]:
    weeks = _weekly_buckets(computations)
    if not weeks:
        return None
    volumes = [volume for _, volume, _ in weeks]
    rolling = MathTools.rolling_mean(volumes, ROLLING_WINDOW)
    points = [
        WeeklyVolumePoint(
            week_key=week_key(monday),
            total_volume=volume,
            workouts_count=count,
            rolling_average=None if avg is None else MathTools.round_to(avg),
        )
        for (monday, volume, count), avg in zip(weeks, rolling)
    ][-WEEKLY_WINDOW:]
    comparison = None
    if len(points) >= 2:
        change = MathTools.percent_change(
            points[-2].total_volume, points[-1].total_volume
        )
        comparison = None if change is None else MathTools.round_to(change)
    return WeeklyVolumeOverview(points=tuple(points), comparison_percent=comparison)


def session_comparison(
    computations: Sequence[SessionComputation],
) -> Optional[SessionComparison]:
    """Compare the latest session with the previous one of the same routine."""
    if not computations:
        return None
    latest = computations[-1]
    routine_id = latest.session.routine_id
    prior: Optional[SessionComputation] = None
    if routine_id is not None:
        for candidate in reversed(computations[:-1]):
            if candidate.session.routine_id == routine_id:
                prior = candidate
                break
    if prior is None:
        return SessionComparison(
            latest_workout_id=latest.workout_id,
            routine_name=latest.session.routine_name,
            comparison_date=None,
            rows=(),
            session_volume_delta=0.0,
            is_first_time=True,
        )
    rows = []
    for summary in latest.exercise_summaries:
        previous = prior.summary_for(summary.exercise_id)
        if previous is None:
            continue
        rows.append(
            SessionComparisonRow(
                exercise_id=summary.exercise_id,
                exercise_name=summary.exercise_name,
                load_delta=MathTools.round_to(
                    summary.average_load - previous.average_load
                ),
                reps_delta=summary.total_reps - previous.total_reps,
                volume_delta=MathTools.round_to(
                    summary.total_volume - previous.total_volume
                ),
            )
        )
    return SessionComparison(
        latest_workout_id=latest.workout_id,
        routine_name=latest.session.routine_name,
        comparison_date=prior.date,
        rows=tuple(rows),
        session_volume_delta=MathTools.round_to(
            latest.total_volume - prior.total_volume
        ),
        is_first_time=False,
    )


def current_daily_streak(days: Iterable[datetime.date], today: datetime.date) -> int:
    """Count consecutive days with a session ending today; 0 without one today."""
    trained = {d for d in days if d <= today}
    streak = 0
    current = today
    while current in trained:
        streak += 1
        current -= datetime.timedelta(days=1)
    return streak


def consistency(
    computations: Sequence[SessionComputation],
    now: Optional[datetime.datetime] = None,
    tz: Optional[datetime.tzinfo] = None,
) -> Consistency:
    zone = _local_tz(tz)
    moment = _aware(now) if now is not None else datetime.datetime.now(zone)
    today = moment.astimezone(zone).date()
    days = [c.date for c in computations]
    past = [d for d in days if d <= today]
    days_since = (today - max(past)).days if past else None
    window_start = _monday(today) - datetime.timedelta(weeks=CONSISTENCY_WEEKS - 1)
    recent = sum(1 for d in past if d >= window_start)
    return Consistency(
        workouts_per_week_average=MathTools.round_to(recent / CONSISTENCY_WEEKS),
        days_since_last_workout=days_since,
        current_streak=current_daily_streak(days, today),
    )


def routine_utilization(
    computations: Sequence[SessionComputation],
) -> Optional[RoutineUtilization]:
    if not computations:
        return None
    by_routine: dict[str, list[datetime.date]] = {}
    exercise_counts: Counter[str] = Counter()
    for computation in computations:
        name = computation.session.routine_name.strip()
        if name:
            by_routine.setdefault(name, []).append(computation.date)
        exercise_counts.update(
            {summary.exercise_name for summary in computation.exercise_summaries}
        )
    usages = []
    for name, dates in by_routine.items():
        gap = MathTools.mean_gap([float(d.toordinal()) for d in dates])
        usages.append(
            RoutineUsage(
                routine_name=name,
                usage_count=len(dates),
                average_days_between=None if gap is None else MathTools.round_to(gap),
            )
        )
    usages.sort(key=lambda u: (-u.usage_count, u.routine_name.lower()))
    exercise_usage = sorted(exercise_counts.items(), key=lambda x: (-x[1], x[0].lower()))
    return RoutineUtilization(routines=tuple(usages), exercise_usage=tuple(exercise_usage))


def exercise_progress(
    computations: Sequence[SessionComputation],
    metric: ExerciseProgressMetric = ExerciseProgressMetric.ESTIMATED_ONE_RM,
) -> ExerciseProgress:
    """Return per-day best load and best estimated 1RM for each exercise."""
    loads: dict[int, dict[datetime.date, float]] = {}
    estimates: dict[int, dict[datetime.date, float]] = {}
    names: dict[int, str] = {}
    selected: Optional[int] = None
    for computation in computations:
        for summary in computation.exercise_summaries:
            if summary.best_load is None and summary.best_est is None:
                continue
            names[summary.exercise_id] = summary.exercise_name
            selected = summary.exercise_id if selected is None else selected
            if summary.best_load is not None:
                daily = loads.setdefault(summary.exercise_id, {})
                daily[computation.date] = max(
                    daily.get(computation.date, 0.0), summary.best_load
                )
            if summary.best_est is not None:
                daily = estimates.setdefault(summary.exercise_id, {})
                daily[computation.date] = max(
                    daily.get(computation.date, 0.0), summary.best_est
                )
    for computation in reversed(computations):
        trained = [s.exercise_id for s in computation.exercise_summaries if s.exercise_id in names]
        if trained:
            selected = trained[0]
            break
    series = tuple(
        ExerciseProgressSeries(
            exercise_id=exercise_id,
            exercise_name=name,
            samples=tuple(sorted(loads.get(exercise_id, {}).items())),
            secondary_samples=tuple(sorted(estimates.get(exercise_id, {}).items())),
        )
        for exercise_id, name in sorted(names.items(), key=lambda x: x[1].lower())
    )
    return ExerciseProgress(exercises=series, selected_exercise_id=selected, metric=metric)


def duration_chart(computations: Sequence[SessionComputation]) -> Optional[DurationChart]:
    durations = [c.duration_minutes for c in computations if c.duration_minutes is not None]
    if not durations:
        return None
    averaged = MathTools.moving_average(durations, DURATION_WINDOW)
    raw = tuple((float(i), MathTools.round_to(d)) for i, d in enumerate(durations))
    aggregated = tuple((float(i), MathTools.round_to(a)) for i, a in enumerate(averaged))
    return DurationChart(aggregated=aggregated, raw=raw)


def last_session_summary(
    computations: Sequence[SessionComputation], records: PersonalRecords
) -> Optional[SessionSummary]:
    if not computations:
        return None
    latest = computations[-1]
    return SessionSummary(
        workout_id=latest.workout_id,
        routine_name=latest.session.routine_name,
        date=latest.date,
        total_volume=latest.total_volume,
        total_reps=latest.total_reps,
        avg_load_per_rep=latest.avg_load_per_rep,
        duration_minutes=latest.duration_minutes,
        pr_count=len(records.for_workout(latest.workout_id)),
    )


def compute(
    sessions: Iterable[WorkoutSession],
    now: Optional[datetime.datetime] = None,
    tz: Optional[datetime.tzinfo] = None,
    body_weight: float = DEFAULT_BODY_WEIGHT,
    metric: ExerciseProgressMetric = ExerciseProgressMetric.ESTIMATED_ONE_RM,
) -> WorkoutInsightsState:
    """Build every insight view from ``sessions``."""
    computations = compute_sessions(sessions, tz=tz, body_weight=body_weight)
    if not computations:
        return WorkoutInsightsState(exercise_progress=ExerciseProgress(metric=metric))
    records = compute_personal_records(computations)
    logger.debug(
        "Computed insights for {} sessions with {} PR events",
        len(computations),
        len(records.events),
    )
    return WorkoutInsightsState(
        last_session_summary=last_session_summary(computations, records),
        weekly_volume=weekly_volume(computations),
        session_comparison=session_comparison(computations),
        prs=tuple(records.feed()),
        exercise_progress=exercise_progress(computations, metric),
        consistency=consistency(computations, now=now, tz=tz),
        routine_utilization=routine_utilization(computations),
        duration_chart=duration_chart(computations),
    )


class InsightsService:
    """Compute workout insights from stored sessions.

    Every query accepts already loaded ``sessions`` so async callers can
    read them with :class:`db.AsyncWorkoutRepository`; otherwise they are
    read from the synchronous repository.
    """

    def __init__(
        self,
        workout_repo: WorkoutRepository,
        settings_repo: Optional[SettingsRepository] = None,
    ) -> None:
        self.workouts = workout_repo
        self.settings = settings_repo

    def body_weight(self) -> float:
        if self.settings is not None:
            return self.settings.get_float("body_weight", DEFAULT_BODY_WEIGHT)
        return DEFAULT_BODY_WEIGHT

    def timezone(self) -> Optional[datetime.tzinfo]:
        if self.settings is None:
            return None
        name = self.settings.get_text("timezone", "")
        return ZoneInfo(name) if name else None

    def excluded_workout_id(self) -> Optional[int]:
        """Id of the workout in progress, which insights leave out."""
        if self.settings is None:
            return None
        current = self.settings.get_int("current_workout_id", 0)
        return current or None

    def sessions(self) -> list[WorkoutSession]:
        return self.workouts.fetch_sessions(
            exclude_workout_id=self.excluded_workout_id()
        )

    def computations(
        self, sessions: Optional[Iterable[WorkoutSession]] = None
    ) -> list[SessionComputation]:
        if sessions is None:
            sessions = self.sessions()
        return compute_sessions(
            sessions, tz=self.timezone(), body_weight=self.body_weight()
        )

    def state(
        self,
        now: Optional[datetime.datetime] = None,
        metric: ExerciseProgressMetric = ExerciseProgressMetric.ESTIMATED_ONE_RM,
        sessions: Optional[Iterable[WorkoutSession]] = None,
    ) -> WorkoutInsightsState:
        if sessions is None:
            sessions = self.sessions()
        return compute(
            sessions,
            now=now,
            tz=self.timezone(),
            body_weight=self.body_weight(),
            metric=metric,
        )

    def personal_records(
        self, sessions: Optional[Iterable[WorkoutSession]] = None
    ) -> PersonalRecords:
        return compute_personal_records(self.computations(sessions))

    def weekly_volume(
        self, sessions: Optional[Iterable[WorkoutSession]] = None
    ) -> Optional[WeeklyVolumeOverview]:
        return weekly_volume(self.computations(sessions))

    def consistency(
        self,
        now: Optional[datetime.datetime] = None,
        sessions: Optional[Iterable[WorkoutSession]] = None,
    ) -> Consistency:
        return consistency(self.computations(sessions), now=now, tz=self.timezone())
