from __future__ import annotations
import datetime
import enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# Records read from storage.


class WorkoutSet(_Frozen):
    reps: Optional[int] = None
    weight: Optional[float] = None


class SetGroup(_Frozen):
    exercise_id: int
    exercise_name: str
    sets: tuple[WorkoutSet, ...] = ()


class WorkoutSession(_Frozen):
    workout_id: int
    start_time: datetime.datetime
    end_time: Optional[datetime.datetime] = None
    routine_id: Optional[int] = None
    routine_name: str = ""
    groups: tuple[SetGroup, ...] = ()


# Derived per-session values.


class WorkoutSetSample(_Frozen):
    exercise_id: int
    exercise_name: str
    set_index: int
    reps: Optional[int]
    weight: Optional[float]
    occurred_at: datetime.datetime


class ExerciseSessionSummary(_Frozen):
    exercise_id: int
    exercise_name: str
    total_volume: float
    total_reps: int
    average_load: float
    best_load: Optional[float]
    best_est: Optional[float]


class SessionComputation(_Frozen):
    session: WorkoutSession
    date: datetime.date
    duration_minutes: Optional[float]
    total_volume: float
    total_reps: int
    avg_load_per_rep: float
    exercise_summaries: tuple[ExerciseSessionSummary, ...]
    samples: tuple[WorkoutSetSample, ...]

    @property
    def workout_id(self) -> int:
        return self.session.workout_id

    def summary_for(self, exercise_id: int) -> Optional[ExerciseSessionSummary]:
        for summary in self.exercise_summaries:
            if summary.exercise_id == exercise_id:
                return summary
        return None


class PrType(str, enum.Enum):
    LOAD = "Load"
    REPS_AT_LOAD = "RepsAtLoad"
    ESTIMATED_ONE_RM = "EstimatedOneRm"


class PrEvent(_Frozen):
    id: str
    workout_id: int
    set_index: int
    exercise_id: int
    exercise_name: str
    type: PrType
    value: float
    reps: Optional[int]
    load: Optional[float]
    occurred_at: datetime.datetime


class PersonalRecords(_Frozen):
    events: tuple[PrEvent, ...] = ()
    events_by_workout: dict[int, tuple[PrEvent, ...]] = {}

    def feed(self, limit: Optional[int] = None) -> list[PrEvent]:
        """Return events newest first."""
        newest = list(reversed(self.events))
        return newest if limit is None else newest[:limit]

    def for_workout(self, workout_id: int) -> list[PrEvent]:
        return list(self.events_by_workout.get(workout_id, ()))


# Views handed to callers.


class SessionSummary(_Frozen):
    workout_id: int
    routine_name: str
    date: datetime.date
    total_volume: float
    total_reps: int
    avg_load_per_rep: float
    duration_minutes: Optional[float]
    pr_count: int


class WeeklyVolumePoint(_Frozen):
    week_key: str
    total_volume: float
    workouts_count: int
    rolling_average: Optional[float]


class WeeklyVolumeOverview(_Frozen):
    points: tuple[WeeklyVolumePoint, ...]
    comparison_percent: Optional[float]


class SessionComparisonRow(_Frozen):
    exercise_id: int
    exercise_name: str
    load_delta: float
    reps_delta: int
    volume_delta: float


class SessionComparison(_Frozen):
    latest_workout_id: int
    routine_name: str
    comparison_date: Optional[datetime.date]
    rows: tuple[SessionComparisonRow, ...]
    session_volume_delta: float
    is_first_time: bool


class Consistency(_Frozen):
    workouts_per_week_average: float
    days_since_last_workout: Optional[int]
    current_streak: int


class RoutineUsage(_Frozen):
    routine_name: str
    usage_count: int
    average_days_between: Optional[float]


class RoutineUtilization(_Frozen):
    routines: tuple[RoutineUsage, ...]
    exercise_usage: tuple[tuple[str, int], ...]


class ExerciseProgressMetric(str, enum.Enum):
    LOAD = "Load"
    ESTIMATED_ONE_RM = "EstimatedOneRm"


class ExerciseProgressSeries(_Frozen):
    exercise_id: int
    exercise_name: str
    samples: tuple[tuple[datetime.date, float], ...]
    secondary_samples: tuple[tuple[datetime.date, float], ...]


class ExerciseProgress(_Frozen):
    exercises: tuple[ExerciseProgressSeries, ...] = ()
    selected_exercise_id: Optional[int] = None
    metric: ExerciseProgressMetric = ExerciseProgressMetric.ESTIMATED_ONE_RM

    def selected(self) -> Optional[ExerciseProgressSeries]:
        for series in self.exercises:
            if series.exercise_id == self.selected_exercise_id:
                return series
        return None


class DurationChart(_Frozen):
    aggregated: tuple[tuple[float, float], ...]
    raw: tuple[tuple[float, float], ...]


class WorkoutInsightsState(_Frozen):
    last_session_summary: Optional[SessionSummary] = None
    weekly_volume: Optional[WeeklyVolumeOverview] = None
    session_comparison: Optional[SessionComparison] = None
    prs: tuple[PrEvent, ...] = ()
    exercise_progress: ExerciseProgress = ExerciseProgress()
    consistency: Optional[Consistency] = None
    routine_utilization: Optional[RoutineUtilization] = None
    duration_chart: Optional[DurationChart] = None
