import sqlite3
import aiosqlite
import datetime
from contextlib import contextmanager, asynccontextmanager
from typing import Iterable, List, Optional, Tuple

from loguru import logger

from catalog_models import CatalogEntry, to_exercise_record
from config import YamlConfig
from insights_models import SetGroup, WorkoutSession, WorkoutSet
from settings_schema import SettingsSchema, validate_settings


def _now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="seconds")


def _parse_timestamp(value: Optional[str]) -> Optional[datetime.datetime]:
    if not value:
        return None
    ts = datetime.datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=datetime.timezone.utc)
    return ts


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "routines": (
            """CREATE TABLE routines (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    created_at TEXT NOT NULL
                );""",
            ["id", "name", "created_at"],
        ),
        "exercises": (
            """CREATE TABLE exercises (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    notes TEXT NOT NULL DEFAULT '',
                    log_reps INTEGER NOT NULL DEFAULT 1,
                    log_weight INTEGER NOT NULL DEFAULT 1,
                    log_time INTEGER NOT NULL DEFAULT 0,
                    log_distance INTEGER NOT NULL DEFAULT 0,
                    hidden INTEGER NOT NULL DEFAULT 0,
                    is_custom INTEGER NOT NULL DEFAULT 1,
                    library_exercise_id TEXT UNIQUE,
                    tags TEXT NOT NULL DEFAULT ''
                );""",
            [
                "id",
                "name",
                "notes",
                "log_reps",
                "log_weight",
                "log_time",
                "log_distance",
                "hidden",
                "is_custom",
                "library_exercise_id",
                "tags",
            ],
        ),
        "workouts": (
            """CREATE TABLE workouts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    routine_id INTEGER,
                    start_time TEXT NOT NULL,
                    end_time TEXT,
                    notes TEXT,
                    FOREIGN KEY(routine_id) REFERENCES routines(id) ON DELETE SET NULL
                );""",
            ["id", "routine_id", "start_time", "end_time", "notes"],
        ),
        "set_groups": (
            """CREATE TABLE set_groups (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    workout_id INTEGER NOT NULL,
                    exercise_id INTEGER NOT NULL,
                    position INTEGER NOT NULL,
                    FOREIGN KEY(workout_id) REFERENCES workouts(id) ON DELETE CASCADE,
                    FOREIGN KEY(exercise_id) REFERENCES exercises(id)
                );""",
            ["id", "workout_id", "exercise_id", "position"],
        ),
        "sets": (
            """CREATE TABLE sets (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    group_id INTEGER NOT NULL,
                    reps INTEGER,
                    weight REAL,
                    distance REAL,
                    position INTEGER NOT NULL,
                    FOREIGN KEY(group_id) REFERENCES set_groups(id) ON DELETE CASCADE
                );""",
            ["id", "group_id", "reps", "weight", "distance", "position"],
        ),
        "settings": (
            """CREATE TABLE settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );""",
            ["key", "value"],
        ),
    }

    _COLUMN_DEFAULTS = {
        "notes": "''",
        "tags": "''",
        "log_reps": "1",
        "log_weight": "1",
        "log_time": "0",
        "log_distance": "0",
        "hidden": "0",
        "is_custom": "1",
        "position": "0",
    }

    def __init__(self, db_path: str = "workout.db") -> None:
        self._db_path = db_path
        self._ensure_schema()
        self._init_settings()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        connection.execute("PRAGMA foreign_keys=on;")
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            conn.execute("PRAGMA foreign_keys=off;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            conn.execute("PRAGMA foreign_keys=on;")

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        logger.info("Migrating table {} to {} columns", table, len(columns))
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            missing = [
                c for c in columns if c not in existing_cols and c in self._COLUMN_DEFAULTS
            ]
            if missing:
                defaults = ", ".join(self._COLUMN_DEFAULTS[c] for c in missing)
                conn.execute(
                    f"INSERT INTO {table} ({cols}, {', '.join(missing)}) SELECT {cols}, {defaults} FROM {table}_old;"
                )
            else:
                conn.execute(
                    f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
                )
        conn.execute(f"DROP TABLE {table}_old;")

    def _init_settings(self) -> None:
        defaults = {
            "body_weight": "80.0",
            "weight_unit": "kg",
            "suggestion_limit": "5",
            "log_level": "INFO",
            "current_workout_id": "0",
        }
        with self._connection() as conn:
            for key, value in defaults.items():
                conn.execute(
                    "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?);",
                    (key, value),
                )


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()

    def _exists(self, table: str, row_id: int) -> bool:
        return bool(self.fetch_all(f"SELECT 1 FROM {table} WHERE id = ?;", (row_id,)))


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        conn = await aiosqlite.connect(self._db_path)
        try:
            await conn.execute("PRAGMA foreign_keys=on;")
            yield conn
            await conn.commit()
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous variant of BaseRepository using aiosqlite."""

    async def execute(self, query: str, params: Tuple = ()) -> int:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.lastrowid

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return rows


_SESSION_QUERY = (
    "SELECT w.id, w.start_time, w.end_time, w.routine_id, COALESCE(r.name, '') "
    "FROM workouts w LEFT JOIN routines r ON w.routine_id = r.id "
    "WHERE w.end_time IS NOT NULL{exclude} "
    "ORDER BY w.start_time, w.id;"
)

_SESSION_SETS_QUERY = (
    "SELECT g.workout_id, g.id, e.id, e.name, s.reps, s.weight "
    "FROM set_groups g JOIN exercises e ON g.exercise_id = e.id "
    "LEFT JOIN sets s ON s.group_id = g.id "
    "JOIN workouts w ON g.workout_id = w.id "
    "WHERE w.end_time IS NOT NULL "
    "ORDER BY g.workout_id, g.position, g.id, s.position, s.id;"
)


def _session_query(exclude_workout_id: Optional[int]) -> Tuple[str, Tuple]:
    if exclude_workout_id is None:
        return _SESSION_QUERY.format(exclude=""), ()
    return _SESSION_QUERY.format(exclude=" AND w.id != ?"), (exclude_workout_id,)


def _build_sessions(
    workout_rows: Iterable[Tuple], set_rows: Iterable[Tuple]
) -> List[WorkoutSession]:
    """Assemble finished sessions from joined workout and set rows."""
    groups: dict[int, dict[int, dict]] = {}
    for workout_id, group_id, exercise_id, name, reps, weight in set_rows:
        group = groups.setdefault(workout_id, {}).setdefault(
            group_id, {"exercise_id": exercise_id, "name": name, "sets": []}
        )
        if reps is not None or weight is not None:
            group["sets"].append(WorkoutSet(reps=reps, weight=weight))
    sessions = []
    for workout_id, start, end, routine_id, routine_name in workout_rows:
        sessions.append(
            WorkoutSession(
                workout_id=workout_id,
                start_time=_parse_timestamp(start),
                end_time=_parse_timestamp(end),
                routine_id=routine_id,
                routine_name=routine_name,
                groups=tuple(
                    SetGroup(
                        exercise_id=g["exercise_id"],
                        exercise_name=g["name"],
                        sets=tuple(g["sets"]),
                    )
                    for g in groups.get(workout_id, {}).values()
                ),
            )
        )
    return sessions


class RoutineRepository(BaseRepository):
    """Repository for routine table operations."""

    def create(self, name: str) -> int:
        cleaned = name.strip()
        if not cleaned:
            raise ValueError("routine name required")
        try:
            return self.execute(
                "INSERT INTO routines (name, created_at) VALUES (?, ?);",
                (cleaned, _now()),
            )
        except sqlite3.IntegrityError:
            raise ValueError("routine already exists")

    def fetch_all_routines(self) -> List[Tuple[int, str]]:
        return self.fetch_all("SELECT id, name FROM routines ORDER BY name;")

    def fetch_detail(self, routine_id: int) -> Tuple[int, str, str]:
        rows = self.fetch_all(
            "SELECT id, name, created_at FROM routines WHERE id = ?;", (routine_id,)
        )
        if not rows:
            raise ValueError("routine not found")
        return rows[0]


class ExerciseRepository(BaseRepository):
    """Repository for exercise table operations."""

    _COLUMNS = (
        "id, name, notes, log_reps, log_weight, log_time, log_distance, "
        "hidden, is_custom, library_exercise_id, tags"
    )

    def add(
        self,
        name: str,
        notes: str = "",
        log_reps: bool = True,
        log_weight: bool = True,
        log_distance: bool = False,
    ) -> int:
        cleaned = name.strip()
        if not cleaned:
            raise ValueError("exercise name required")
        return self.execute(
            "INSERT INTO exercises (name, notes, log_reps, log_weight, log_distance, is_custom) "
            "VALUES (?, ?, ?, ?, ?, 1);",
            (cleaned, notes, int(log_reps), int(log_weight), int(log_distance)),
        )

    def add_from_library(self, entry: CatalogEntry) -> int:
        """Import ``entry`` once; later imports return the existing id."""
        existing = self.find_by_library_id(entry.id)
        if existing is not None:
            return existing
        record = to_exercise_record(entry)
        exercise_id = self.execute(
            "INSERT INTO exercises (name, notes, log_reps, log_weight, log_time, "
            "log_distance, hidden, is_custom, library_exercise_id, tags) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);",
            (
                record["name"],
                record["notes"],
                int(record["log_reps"]),
                int(record["log_weight"]),
                int(record["log_time"]),
                int(record["log_distance"]),
                int(record["hidden"]),
                int(record["is_custom"]),
                record["library_exercise_id"],
                record["tags"],
            ),
        )
        logger.debug("Imported library exercise {} as {}", entry.id, exercise_id)
        return exercise_id

    def find_by_library_id(self, library_id: str) -> Optional[int]:
        rows = self.fetch_all(
            "SELECT id FROM exercises WHERE library_exercise_id = ?;", (library_id,)
        )
        return rows[0][0] if rows else None

    @staticmethod
    def _to_dict(row: Tuple) -> dict:
        return {
            "id": row[0],
            "name": row[1],
            "notes": row[2],
            "log_reps": bool(row[3]),
            "log_weight": bool(row[4]),
            "log_time": bool(row[5]),
            "log_distance": bool(row[6]),
            "hidden": bool(row[7]),
            "is_custom": bool(row[8]),
            "library_exercise_id": row[9],
            "tags": row[10],
        }

    def fetch_detail(self, exercise_id: int) -> dict:
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM exercises WHERE id = ?;", (exercise_id,)
        )
        if not rows:
            raise ValueError("exercise not found")
        return self._to_dict(rows[0])

    def fetch_all_exercises(self) -> List[dict]:
        rows = self.fetch_all(f"SELECT {self._COLUMNS} FROM exercises ORDER BY name;")
        return [self._to_dict(r) for r in rows]


class WorkoutRepository(BaseRepository):
    """Repository for workout table operations."""

    def create(
        self,
        routine_id: Optional[int] = None,
        start_time: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> int:
        if routine_id is not None and not self._exists("routines", routine_id):
            raise ValueError("routine not found")
        return self.execute(
            "INSERT INTO workouts (routine_id, start_time, notes) VALUES (?, ?, ?);",
            (routine_id, start_time or _now(), notes),
        )

    def finish(self, workout_id: int, end_time: Optional[str] = None) -> None:
        start, _end = self.fetch_detail(workout_id)[2:4]
        end = end_time or _now()
        if _parse_timestamp(end) < _parse_timestamp(start):
            raise ValueError("end time before start time")
        self.execute(
            "UPDATE workouts SET end_time = ? WHERE id = ?;", (end, workout_id)
        )

    def delete(self, workout_id: int) -> None:
        if not self._exists("workouts", workout_id):
            raise ValueError("workout not found")
        self.execute("DELETE FROM workouts WHERE id = ?;", (workout_id,))

    def fetch_detail(
        self, workout_id: int
    ) -> Tuple[int, Optional[int], str, Optional[str], Optional[str]]:
        rows = self.fetch_all(
            "SELECT id, routine_id, start_time, end_time, notes FROM workouts WHERE id = ?;",
            (workout_id,),
        )
        if not rows:
            raise ValueError("workout not found")
        return rows[0]

    def fetch_all_workouts(
        self, descending: bool = True
    ) -> List[Tuple[int, Optional[int], str, Optional[str]]]:
        order = "DESC" if descending else "ASC"
        return self.fetch_all(
            f"SELECT id, routine_id, start_time, end_time FROM workouts ORDER BY start_time {order}, id {order};"
        )

    def fetch_sessions(
        self, exclude_workout_id: Optional[int] = None
    ) -> List[WorkoutSession]:
        """Return finished workouts with their set groups, oldest first."""
        query, params = _session_query(exclude_workout_id)
        return _build_sessions(
            self.fetch_all(query, params), self.fetch_all(_SESSION_SETS_QUERY)
        )


class AsyncWorkoutRepository(AsyncBaseRepository):
    """Async repository for reading stored sessions."""

    async def fetch_sessions(
        self, exclude_workout_id: Optional[int] = None
    ) -> List[WorkoutSession]:
        query, params = _session_query(exclude_workout_id)
        workout_rows = await self.fetch_all(query, params)
        set_rows = await self.fetch_all(_SESSION_SETS_QUERY)
        return _build_sessions(workout_rows, set_rows)


class SetRepository(BaseRepository):
    """Repository for set groups and sets."""

    def add_group(self, workout_id: int, exercise_id: int) -> int:
        if not self._exists("workouts", workout_id):
            raise ValueError("workout not found")
        if not self._exists("exercises", exercise_id):
            raise ValueError("exercise not found")
        rows = self.fetch_all(
            "SELECT COALESCE(MAX(position), 0) + 1 FROM set_groups WHERE workout_id = ?;",
            (workout_id,),
        )
        return self.execute(
            "INSERT INTO set_groups (workout_id, exercise_id, position) VALUES (?, ?, ?);",
            (workout_id, exercise_id, int(rows[0][0])),
        )

    def add(
        self,
        group_id: int,
        reps: Optional[int] = None,
        weight: Optional[float] = None,
        distance: Optional[float] = None,
    ) -> int:
        if reps is not None and reps < 0:
            raise ValueError("reps must be non-negative")
        if distance is not None and distance < 0:
            raise ValueError("distance must be non-negative")
        if not self._exists("set_groups", group_id):
            raise ValueError("group not found")
        rows = self.fetch_all(
            "SELECT COALESCE(MAX(position), 0) + 1 FROM sets WHERE group_id = ?;",
            (group_id,),
        )
        return self.execute(
            "INSERT INTO sets (group_id, reps, weight, distance, position) VALUES (?, ?, ?, ?, ?);",
            (group_id, reps, weight, distance, int(rows[0][0])),
        )

    def bulk_add(
        self, group_id: int, entries: Iterable[Tuple[Optional[int], Optional[float]]]
    ) -> List[int]:
        return [self.add(group_id, reps, weight) for reps, weight in entries]

    def fetch_for_group(
        self, group_id: int
    ) -> List[Tuple[int, Optional[int], Optional[float], Optional[float]]]:
        return self.fetch_all(
            "SELECT id, reps, weight, distance FROM sets WHERE group_id = ? ORDER BY position;",
            (group_id,),
        )

    def fetch_groups(self, workout_id: int) -> List[Tuple[int, int, str]]:
        return self.fetch_all(
            "SELECT g.id, e.id, e.name FROM set_groups g JOIN exercises e ON g.exercise_id = e.id "
            "WHERE g.workout_id = ? ORDER BY g.position;",
            (workout_id,),
        )


class SettingsRepository(BaseRepository):
    """Repository for general application settings synchronized with YAML."""

    def __init__(
        self, db_path: str = "workout.db", yaml_path: str = "settings.yaml"
    ) -> None:
        super().__init__(db_path)
        self._yaml = YamlConfig(yaml_path)
        self._sync_from_yaml()
        self._sync_to_yaml()

    def _raw_all_settings(self) -> dict:
        rows = self.fetch_all("SELECT key, value FROM settings ORDER BY key;")
        result: dict[str, float | str] = {}
        for k, v in rows:
            try:
                result[k] = float(v)
            except ValueError:
                result[k] = v
        return result

    def _sync_from_yaml(self) -> None:
        data = self._yaml.load()
        if not data:
            return
        validate_settings(data)
        with self._connection() as conn:
            for key, value in data.items():
                if value is None:
                    continue
                conn.execute(
                    "INSERT INTO settings (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
                    (key, str(value)),
                )

    def _sync_to_yaml(self) -> None:
        fields = SettingsSchema.model_fields
        data = {k: v for k, v in self._raw_all_settings().items() if k in fields}
        self._yaml.save(data)

    def get_float(self, key: str, default: float) -> float:
        self._sync_from_yaml()
        rows = self.fetch_all("SELECT value FROM settings WHERE key = ?;", (key,))
        return float(rows[0][0]) if rows else default

    def set_float(self, key: str, value: float) -> None:
        self.set_text(key, str(value))

    def get_text(self, key: str, default: str) -> str:
        self._sync_from_yaml()
        rows = self.fetch_all("SELECT value FROM settings WHERE key = ?;", (key,))
        return rows[0][0] if rows else default

    def get_int(self, key: str, default: int) -> int:
        try:
            return int(float(self.get_text(key, str(default))))
        except ValueError:
            return default

    def set_text(self, key: str, value: str) -> None:
        if key in SettingsSchema.model_fields:
            current = {
                k: v
                for k, v in self._raw_all_settings().items()
                if k in SettingsSchema.model_fields
            }
            current[key] = value
            validate_settings(current)
        self.execute(
            "INSERT INTO settings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (key, value),
        )
        self._sync_to_yaml()

    def set_int(self, key: str, value: int) -> None:
        self.set_text(key, str(value))

    def all_settings(self) -> dict:
        self._sync_from_yaml()
        return self._raw_all_settings()
