import datetime
from typing import Optional

from loguru import logger

from db import ExerciseRepository, RoutineRepository, SetRepository, WorkoutRepository

# (exercise, [(reps, weight), ...]) per session, oldest first.
_PROGRAM = [
    [("Bench Press", [(5, 80.0), (5, 80.0)]), ("Squat", [(5, 100.0), (5, 100.0)])],
    [("Bench Press", [(5, 82.5), (6, 80.0)]), ("Squat", [(5, 102.5), (5, 102.5)])],
    [("Bench Press", [(5, 85.0), (5, 85.0)]), ("Pull Up", [(8, -10.0), (6, 0.0)])],
    [("Bench Press", [(6, 85.0), (5, 87.5)]), ("Squat", [(5, 105.0), (3, 110.0)])],
]


def seed(
    db_path: str = "workout.db", today: Optional[datetime.date] = None
) -> Optional[list[int]]:
    """Insert finished demo sessions, one every third day up to ``today``."""
    workouts = WorkoutRepository(db_path)
    if workouts.fetch_all_workouts():
        logger.info("Database already contains workouts")
        return None
    routines = RoutineRepository(db_path)
    exercises = ExerciseRepository(db_path)
    sets = SetRepository(db_path)

    today = today or datetime.date.today()
    routine_id = routines.create("Full Body")
    exercise_ids: dict[str, int] = {}
    workout_ids: list[int] = []
    for offset, session in enumerate(reversed(_PROGRAM)):
        day = today - datetime.timedelta(days=3 * offset)
        start = datetime.datetime.combine(day, datetime.time(18, 0), datetime.timezone.utc)
        wid = workouts.create(routine_id, start.isoformat())
        for name, entries in session:
            if name not in exercise_ids:
                exercise_ids[name] = exercises.add(name, log_weight=name != "Pull Up")
            gid = sets.add_group(wid, exercise_ids[name])
            sets.bulk_add(gid, entries)
        workouts.finish(wid, (start + datetime.timedelta(minutes=55 + 5 * offset)).isoformat())
        workout_ids.append(wid)
    logger.info("Seed data inserted: {} workouts", len(workout_ids))
    return workout_ids


if __name__ == "__main__":
    seed()
