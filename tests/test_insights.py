import os
import sys
import datetime
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from insights_models import (
    ExerciseProgressMetric,
    PrType,
    SetGroup,
    WorkoutSession,
    WorkoutSet,
)
from insights_service import (
    compute,
    compute_personal_records,
    compute_sessions,
    consistency,
    current_daily_streak,
    duration_chart,
    exercise_progress,
    routine_utilization,
    session_comparison,
    weekly_volume,
)

UTC = datetime.timezone.utc


def make_session(
    workout_id: int,
    day: datetime.date,
    groups: list,
    routine_id: int | None = 1,
    routine_name: str = "Push",
    minutes: float = 60,
) -> WorkoutSession:
    start = datetime.datetime.combine(day, datetime.time(12, 0), UTC)
    return WorkoutSession(
        workout_id=workout_id,
        start_time=start,
        end_time=start + datetime.timedelta(minutes=minutes),
        routine_id=routine_id,
        routine_name=routine_name,
        groups=tuple(
            SetGroup(
                exercise_id=exercise_id,
                exercise_name=name,
                sets=tuple(WorkoutSet(reps=r, weight=w) for r, w in sets),
            )
            for exercise_id, name, sets in groups
        ),
    )


def bench(*sets) -> tuple:
    return (1, "Bench Press", list(sets))


def records_for(sessions, body_weight: float = 80.0):
    return compute_personal_records(
        compute_sessions(sessions, tz=UTC, body_weight=body_weight)
    )


D = datetime.date


class SessionComputationTestCase(unittest.TestCase):
    def test_totals(self) -> None:
        session = make_session(
            1,
            D(2024, 1, 2),
            [bench((5, 100.0), (5, None), (0, 50.0), (None, 60.0))],
            minutes=90,
        )
        (comp,) = compute_sessions([session], tz=UTC)
        self.assertEqual(comp.total_volume, 500.0)
        self.assertEqual(comp.total_reps, 10)
        self.assertEqual(comp.avg_load_per_rep, 50.0)
        self.assertEqual(comp.duration_minutes, 90.0)
        self.assertEqual(comp.date, D(2024, 1, 2))
        summary = comp.summary_for(1)
        self.assertEqual(summary.average_load, 100.0)
        self.assertEqual(summary.best_load, 100.0)
        self.assertEqual(summary.best_est, 116.67)
        self.assertEqual(len(comp.samples), 4)
        self.assertIsNone(comp.summary_for(99))

    def test_no_reps_means_zero_average(self) -> None:
        session = make_session(1, D(2024, 1, 2), [bench((None, 100.0))])
        (comp,) = compute_sessions([session], tz=UTC)
        self.assertEqual(comp.total_volume, 0.0)
        self.assertEqual(comp.avg_load_per_rep, 0.0)

    def test_sorted_by_start_time(self) -> None:
        later = make_session(1, D(2024, 1, 5), [bench((5, 100.0))])
        earlier = make_session(2, D(2024, 1, 3), [bench((5, 100.0))])
        comps = compute_sessions([later, earlier], tz=UTC)
        self.assertEqual([c.workout_id for c in comps], [2, 1])

    def test_local_date_uses_timezone(self) -> None:
        session = WorkoutSession(
            workout_id=1,
            start_time=datetime.datetime(2024, 1, 2, 23, 30, tzinfo=UTC),
        )
        tz = datetime.timezone(datetime.timedelta(hours=2))
        (comp,) = compute_sessions([session], tz=tz)
        self.assertEqual(comp.date, D(2024, 1, 3))
        self.assertIsNone(comp.duration_minutes)


class PersonalRecordTestCase(unittest.TestCase):
    def test_heavier_second_session(self) -> None:
        sessions = [
            make_session(1, D(2024, 1, 1), [bench((8, 15.0))]),
            make_session(2, D(2024, 1, 2), [bench((8, 20.0))]),
        ]
        records = records_for(sessions)
        second = records.for_workout(2)
        self.assertEqual(
            sorted(e.type for e in second),
            sorted([PrType.LOAD, PrType.ESTIMATED_ONE_RM]),
        )
        load = [e for e in second if e.type == PrType.LOAD][0]
        self.assertEqual(load.value, 20.0)
        self.assertEqual(load.load, 20.0)
        est = [e for e in second if e.type == PrType.ESTIMATED_ONE_RM][0]
        self.assertEqual(est.value, 25.33)
        self.assertEqual(len([e for e in records.events if e.type == PrType.LOAD]), 2)

    def test_float_noise_is_not_a_record(self) -> None:
        sessions = [
            make_session(1, D(2024, 1, 1), [bench((5, 20.0))]),
            make_session(2, D(2024, 1, 2), [bench((5, 20.0004))]),
            make_session(3, D(2024, 1, 3), [bench((5, 20.1))]),
        ]
        records = records_for(sessions)
        loads = [e for e in records.events if e.type == PrType.LOAD]
        self.assertEqual(len(loads), 2)
        self.assertEqual([e.workout_id for e in loads], [1, 3])
        self.assertEqual(records.for_workout(2), [])

    def test_zero_weight_never_fires(self) -> None:
        session = make_session(1, D(2024, 1, 1), [bench((5, 0.0), (8, 0.0))])
        records = records_for([session])
        self.assertEqual(records.events, ())
        (comp,) = compute_sessions([session], tz=UTC)
        self.assertEqual(comp.total_volume, 0.0)
        self.assertEqual(comp.total_reps, 13)

    def test_zero_reps_never_fire(self) -> None:
        records = records_for([make_session(1, D(2024, 1, 1), [bench((0, 100.0))])])
        self.assertEqual(records.events, ())

    def test_assisted_weight_uses_body_weight(self) -> None:
        sessions = [
            make_session(1, D(2024, 1, 1), [(5, "Pull Up", [(6, -20.0), (6, -90.0)])]),
        ]
        records = records_for(sessions, body_weight=80.0)
        loads = [e for e in records.events if e.type == PrType.LOAD]
        self.assertEqual([e.value for e in loads], [60.0])

    def test_reps_at_load(self) -> None:
        sessions = [
            make_session(1, D(2024, 1, 1), [bench((5, 100.0))]),
            make_session(2, D(2024, 1, 2), [bench((6, 100.0), (6, 100.0))]),
        ]
        records = records_for(sessions)
        second = records.for_workout(2)
        self.assertEqual(
            [(e.type, e.value) for e in second],
            [(PrType.REPS_AT_LOAD, 6.0), (PrType.ESTIMATED_ONE_RM, 120.0)],
        )
        self.assertEqual(second[0].set_index, 0)

    def test_feed_is_newest_first(self) -> None:
        sessions = [
            make_session(1, D(2024, 1, 1), [bench((5, 100.0))]),
            make_session(2, D(2024, 1, 2), [bench((5, 110.0))]),
        ]
        records = records_for(sessions)
        feed = records.feed()
        self.assertEqual(feed[0].workout_id, 2)
        self.assertEqual(feed[-1].workout_id, 1)
        self.assertEqual(len(records.feed(1)), 1)
        self.assertEqual(list(records.events_by_workout), [1, 2])


class WeeklyVolumeTestCase(unittest.TestCase):
    def test_gap_weeks_are_filled(self) -> None:
        comps = compute_sessions(
            [
                make_session(1, D(2024, 1, 2), [bench((10, 100.0))]),
                make_session(2, D(2024, 1, 16), [bench((10, 150.0))]),
            ],
            tz=UTC,
        )
        overview = weekly_volume(comps)
        self.assertEqual(
            [p.week_key for p in overview.points], ["2024-W01", "2024-W02", "2024-W03"]
        )
        self.assertEqual([p.total_volume for p in overview.points], [1000.0, 0.0, 1500.0])
        self.assertEqual([p.workouts_count for p in overview.points], [1, 0, 1])
        self.assertEqual(
            [p.rolling_average for p in overview.points], [None, None, 833.33]
        )
        self.assertIsNone(overview.comparison_percent)

    def test_week_over_week_change(self) -> None:
        comps = compute_sessions(
            [
                make_session(1, D(2024, 1, 2), [bench((10, 100.0))]),
                make_session(2, D(2024, 1, 9), [bench((10, 150.0))]),
            ],
            tz=UTC,
        )
        self.assertEqual(weekly_volume(comps).comparison_percent, 50.0)

    def test_single_week(self) -> None:
        comps = compute_sessions(
            [
                make_session(1, D(2024, 1, 2), [bench((10, 100.0))]),
                make_session(2, D(2024, 1, 4), [bench((10, 100.0))]),
            ],
            tz=UTC,
        )
        overview = weekly_volume(comps)
        self.assertEqual(len(overview.points), 1)
        self.assertEqual(overview.points[0].workouts_count, 2)
        self.assertIsNone(overview.comparison_percent)

    def test_trailing_twelve_weeks(self) -> None:
        sessions = [
            make_session(i + 1, D(2024, 1, 1) + datetime.timedelta(weeks=i), [bench((10, 100.0))])
            for i in range(14)
        ]
        overview = weekly_volume(compute_sessions(sessions, tz=UTC))
        self.assertEqual(len(overview.points), 12)
        self.assertEqual(overview.points[0].week_key, "2024-W03")
        self.assertEqual(overview.points[-1].week_key, "2024-W14")
        self.assertEqual(overview.points[0].rolling_average, 1000.0)
        self.assertEqual(overview.comparison_percent, 0.0)

    def test_empty(self) -> None:
        self.assertIsNone(weekly_volume([]))


def routine_sessions() -> list[WorkoutSession]:
    return [
        make_session(
            1,
            D(2024, 3, 1),
            [bench((5, 100.0)), (2, "Squat", [(5, 120.0)])],
            minutes=40,
        ),
        make_session(
            2,
            D(2024, 3, 2),
            [(3, "Row", [(8, 60.0)])],
            routine_id=2,
            routine_name="Pull",
            minutes=60,
        ),
        make_session(
            3,
            D(2024, 3, 3),
            [bench((5, 105.0), (5, 105.0)), (4, "Curl", [(10, 20.0)])],
            minutes=80,
        ),
    ]


class ComparisonTestCase(unittest.TestCase):
    def test_against_previous_session_of_routine(self) -> None:
        comparison = session_comparison(compute_sessions(routine_sessions(), tz=UTC))
        self.assertFalse(comparison.is_first_time)
        self.assertEqual(comparison.latest_workout_id, 3)
        self.assertEqual(comparison.routine_name, "Push")
        self.assertEqual(comparison.comparison_date, D(2024, 3, 1))
        self.assertEqual(len(comparison.rows), 1)
        row = comparison.rows[0]
        self.assertEqual(row.exercise_name, "Bench Press")
        self.assertEqual(row.load_delta, 5.0)
        self.assertEqual(row.reps_delta, 5)
        self.assertEqual(row.volume_delta, 550.0)
        self.assertEqual(comparison.session_volume_delta, 150.0)

    def test_first_time(self) -> None:
        comps = compute_sessions(routine_sessions()[:2], tz=UTC)
        comparison = session_comparison(comps)
        self.assertTrue(comparison.is_first_time)
        self.assertEqual(comparison.rows, ())
        self.assertIsNone(comparison.comparison_date)

    def test_no_routine_is_first_time(self) -> None:
        sessions = [
            make_session(1, D(2024, 3, 1), [bench((5, 100.0))], routine_id=None),
            make_session(2, D(2024, 3, 2), [bench((5, 100.0))], routine_id=None),
        ]
        self.assertTrue(session_comparison(compute_sessions(sessions, tz=UTC)).is_first_time)

    def test_empty(self) -> None:
        self.assertIsNone(session_comparison([]))


class ConsistencyTestCase(unittest.TestCase):
    def test_streak(self) -> None:
        today = D(2024, 3, 10)
        days = [D(2024, 3, 10), D(2024, 3, 9), D(2024, 3, 8), D(2024, 3, 6), D(2024, 3, 11)]
        self.assertEqual(current_daily_streak(days, today), 3)
        self.assertEqual(current_daily_streak([D(2024, 3, 9), D(2024, 3, 8)], today), 0)
        self.assertEqual(current_daily_streak([], today), 0)

    def test_consistency(self) -> None:
        days = [D(2024, 2, 5), D(2024, 2, 14), D(2024, 2, 28), D(2024, 3, 8), D(2024, 3, 10)]
        sessions = [make_session(i + 1, d, [bench((5, 100.0))]) for i, d in enumerate(days)]
        now = datetime.datetime(2024, 3, 10, 20, 0, tzinfo=UTC)
        result = consistency(compute_sessions(sessions, tz=UTC), now=now, tz=UTC)
        self.assertEqual(result.workouts_per_week_average, 1.0)
        self.assertEqual(result.days_since_last_workout, 0)
        self.assertEqual(result.current_streak, 1)

    def test_no_sessions(self) -> None:
        now = datetime.datetime(2024, 3, 10, tzinfo=UTC)
        result = consistency([], now=now, tz=UTC)
        self.assertIsNone(result.days_since_last_workout)
        self.assertEqual(result.current_streak, 0)
        self.assertEqual(result.workouts_per_week_average, 0.0)


class ExtraViewsTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.comps = compute_sessions(routine_sessions(), tz=UTC)

    def test_routine_utilization(self) -> None:
        usage = routine_utilization(self.comps)
        self.assertEqual(
            [(r.routine_name, r.usage_count, r.average_days_between) for r in usage.routines],
            [("Push", 2, 2.0), ("Pull", 1, None)],
        )
        self.assertEqual(
            list(usage.exercise_usage),
            [("Bench Press", 2), ("Curl", 1), ("Row", 1), ("Squat", 1)],
        )
        self.assertIsNone(routine_utilization([]))

    def test_exercise_progress(self) -> None:
        progress = exercise_progress(self.comps)
        self.assertEqual(progress.metric, ExerciseProgressMetric.ESTIMATED_ONE_RM)
        self.assertEqual(
            [s.exercise_name for s in progress.exercises],
            ["Bench Press", "Curl", "Row", "Squat"],
        )
        selected = progress.selected()
        self.assertEqual(selected.exercise_id, 1)
        self.assertEqual(
            list(selected.samples), [(D(2024, 3, 1), 100.0), (D(2024, 3, 3), 105.0)]
        )
        self.assertEqual(
            list(selected.secondary_samples),
            [(D(2024, 3, 1), 116.67), (D(2024, 3, 3), 122.5)],
        )

    def test_duration_chart(self) -> None:
        chart = duration_chart(self.comps)
        self.assertEqual(list(chart.raw), [(0.0, 40.0), (1.0, 60.0), (2.0, 80.0)])
        self.assertEqual(list(chart.aggregated), [(0.0, 40.0), (1.0, 50.0), (2.0, 60.0)])
        self.assertIsNone(duration_chart([]))


class ComputeTestCase(unittest.TestCase):
    def test_empty_state(self) -> None:
        state = compute([], tz=UTC)
        self.assertIsNone(state.last_session_summary)
        self.assertIsNone(state.weekly_volume)
        self.assertIsNone(state.session_comparison)
        self.assertIsNone(state.consistency)
        self.assertIsNone(state.routine_utilization)
        self.assertIsNone(state.duration_chart)
        self.assertEqual(state.prs, ())
        self.assertEqual(state.exercise_progress.exercises, ())

    def test_full_state(self) -> None:
        now = datetime.datetime(2024, 3, 3, 20, 0, tzinfo=UTC)
        state = compute(routine_sessions(), now=now, tz=UTC)
        summary = state.last_session_summary
        self.assertEqual(summary.workout_id, 3)
        self.assertEqual(summary.total_volume, 1250.0)
        self.assertEqual(summary.total_reps, 20)
        self.assertEqual(summary.duration_minutes, 80.0)
        self.assertEqual(summary.pr_count, 4)
        self.assertEqual(state.prs[0].exercise_name, "Curl")
        self.assertEqual(state.prs[0].type, PrType.ESTIMATED_ONE_RM)
        self.assertEqual(state.consistency.current_streak, 3)
        self.assertFalse(state.session_comparison.is_first_time)
        dumped = state.model_dump(mode="json")
        self.assertEqual(dumped["prs"][0]["type"], "EstimatedOneRm")


if __name__ == "__main__":
    unittest.main()
