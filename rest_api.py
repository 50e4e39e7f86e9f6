import asyncio
import datetime
from typing import Optional

from fastapi import APIRouter, FastAPI, HTTPException
from loguru import logger

from catalog_models import CatalogEntry
from catalog_repository import CatalogLoadError, CatalogRepository
from config import APP_VERSION, YamlConfig, catalog_dir
from db import (
    AsyncWorkoutRepository,
    ExerciseRepository,
    RoutineRepository,
    SetRepository,
    SettingsRepository,
    WorkoutRepository,
)
from insights_models import ExerciseProgressMetric
from insights_service import InsightsService
from search_engine import SearchFilters, SortOption


def _split(values: Optional[str]) -> frozenset[str]:
    if not values:
        return frozenset()
    return frozenset(v for v in values.split("|") if v)


def _error_status(error: ValueError) -> int:
    return 404 if str(error).endswith("not found") else 400


def _entry_json(entry: CatalogEntry) -> dict:
    data = entry.model_dump(mode="json")
    data["display_name"] = entry.display_name
    return data


class LibraryAPI:
    """Provides REST endpoints for the exercise library and workout insights."""

    def __init__(
        self,
        db_path: str = "workout.db",
        yaml_path: str = "settings.yaml",
        catalog_path: str | None = None,
    ) -> None:
        self.db_path = db_path
        self.settings = SettingsRepository(db_path, yaml_path)
        config = YamlConfig(yaml_path).settings()
        self.routines = RoutineRepository(db_path)
        self.exercises = ExerciseRepository(db_path)
        self.workouts = WorkoutRepository(db_path)
        self.async_workouts = AsyncWorkoutRepository(db_path)
        self.sets = SetRepository(db_path)
        self.catalog = CatalogRepository(
            catalog_path or catalog_dir(config), config.suggestion_limit
        )
        self.insights = InsightsService(self.workouts, self.settings)
        self.app = FastAPI(
            title="LiftLog API",
            description="Exercise library search and workout insights",
            version=APP_VERSION,
        )
        self._setup_routes()

    async def _entry(self, exercise_id: str) -> CatalogEntry:
        try:
            entry = await self.catalog.get_exercise(exercise_id)
        except CatalogLoadError as e:
            raise HTTPException(status_code=503, detail=str(e))
        if entry is None:
            raise HTTPException(status_code=404, detail="exercise not found")
        return entry

    async def _sessions(self):
        exclude = await asyncio.to_thread(self.insights.excluded_workout_id)
        return await self.async_workouts.fetch_sessions(exclude_workout_id=exclude)

    def _setup_routes(self) -> None:
        library_router = APIRouter(prefix="/library", tags=["Library"])
        insights_router = APIRouter(prefix="/insights", tags=["Insights"])

        @self.app.get(
            "/health",
            summary="Health check",
            description="Verify API and database connectivity.",
        )
        def health():
            """Return API status and whether the catalog is loaded."""
            self.workouts.fetch_all_workouts()
            return {
                "status": "ok",
                "version": APP_VERSION,
                "catalog_loaded": self.catalog.current is not None,
            }

        @library_router.get("/search")
        async def search_library(
            query: str = "",
            sort: SortOption = SortOption.RELEVANCE,
            body_parts: str = None,
            equipments: str = None,
            primary_muscles: str = None,
            secondary_muscles: str = None,
            difficulty: str = None,
            mechanics: str = None,
        ):
            filters = SearchFilters(
                body_parts=_split(body_parts),
                equipments=_split(equipments),
                primary_muscles=_split(primary_muscles),
                secondary_muscles=_split(secondary_muscles),
                difficulty=_split(difficulty),
                mechanics=_split(mechanics),
            )
            try:
                result = await self.catalog.search(query, filters, sort)
            except CatalogLoadError as e:
                raise HTTPException(status_code=503, detail=str(e))
            return {
                "exercises": [_entry_json(e) for e in result.exercises],
                "suggestions": list(result.suggestions),
            }

        @library_router.get("/metadata")
        async def library_metadata():
            try:
                catalog = await self.catalog.ensure_loaded()
            except CatalogLoadError as e:
                raise HTTPException(status_code=503, detail=str(e))
            data = catalog.metadata.model_dump(mode="json")
            data.update(
                {
                    "body_parts": list(catalog.body_parts),
                    "equipments": list(catalog.equipments),
                    "muscles": list(catalog.muscles),
                }
            )
            return data

        @library_router.get("/exercises/{exercise_id}")
        async def get_library_exercise(exercise_id: str):
            return _entry_json(await self._entry(exercise_id))

        @library_router.get("/exercises/{exercise_id}/related")
        async def related_library_exercises(exercise_id: str, limit: int = 6):
            entry = await self._entry(exercise_id)
            related = await self.catalog.related_exercises(
                entry.target_muscles[0] if entry.target_muscles else None,
                entry.equipments[0] if entry.equipments else None,
                entry.id,
                limit,
            )
            return [_entry_json(e) for e in related]

        @library_router.post("/exercises/{exercise_id}/import")
        async def import_library_exercise(exercise_id: str):
            entry = await self._entry(exercise_id)
            eid = self.exercises.add_from_library(entry)
            return {"id": eid}

        @self.app.post("/routines")
        def create_routine(name: str):
            try:
                rid = self.routines.create(name)
                return {"id": rid}
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.get("/routines")
        def list_routines():
            return [{"id": rid, "name": name} for rid, name in self.routines.fetch_all_routines()]

        @self.app.post("/exercises")
        def create_exercise(name: str, log_weight: bool = True):
            try:
                eid = self.exercises.add(name, log_weight=log_weight)
                return {"id": eid}
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.get("/exercises/{exercise_id}")
        def get_exercise(exercise_id: int):
            try:
                return self.exercises.fetch_detail(exercise_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @self.app.post("/workouts")
        def start_workout(routine_id: int = None, start_time: str = None):
            try:
                if start_time:
                    datetime.datetime.fromisoformat(start_time)
                wid = self.workouts.create(routine_id, start_time)
            except ValueError as e:
                raise HTTPException(status_code=_error_status(e), detail=str(e))
            self.settings.set_int("current_workout_id", wid)
            return {"id": wid}

        @self.app.post("/workouts/{workout_id}/groups")
        def add_set_group(workout_id: int, exercise_id: int):
            try:
                gid = self.sets.add_group(workout_id, exercise_id)
                return {"id": gid}
            except ValueError as e:
                raise HTTPException(status_code=_error_status(e), detail=str(e))

        @self.app.post("/groups/{group_id}/sets")
        def add_set(
            group_id: int,
            reps: int = None,
            weight: float = None,
            distance: float = None,
        ):
            try:
                sid = self.sets.add(group_id, reps, weight, distance)
                return {"id": sid}
            except ValueError as e:
                raise HTTPException(status_code=_error_status(e), detail=str(e))

        @self.app.post("/workouts/{workout_id}/finish")
        def finish_workout(workout_id: int, end_time: str = None):
            try:
                self.workouts.finish(workout_id, end_time)
            except ValueError as e:
                raise HTTPException(status_code=_error_status(e), detail=str(e))
            if self.settings.get_int("current_workout_id", 0) == workout_id:
                self.settings.set_int("current_workout_id", 0)
            return {"status": "finished"}

        @self.app.delete("/workouts/{workout_id}")
        def delete_workout(workout_id: int):
            try:
                self.workouts.delete(workout_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            if self.settings.get_int("current_workout_id", 0) == workout_id:
                self.settings.set_int("current_workout_id", 0)
            return {"status": "deleted"}

        @insights_router.get("")
        async def insights(
            metric: ExerciseProgressMetric = ExerciseProgressMetric.ESTIMATED_ONE_RM,
        ):
            sessions = await self._sessions()
            state = await asyncio.to_thread(
                self.insights.state, metric=metric, sessions=sessions
            )
            logger.debug("Served insights for {} sessions", len(sessions))
            return state.model_dump(mode="json")

        @insights_router.get("/prs")
        async def personal_records(limit: int = 20):
            sessions = await self._sessions()
            records = await asyncio.to_thread(self.insights.personal_records, sessions)
            return [e.model_dump(mode="json") for e in records.feed(limit)]

        @insights_router.get("/prs/{workout_id}")
        async def workout_personal_records(workout_id: int):
            sessions = await self._sessions()
            records = await asyncio.to_thread(self.insights.personal_records, sessions)
            return [e.model_dump(mode="json") for e in records.for_workout(workout_id)]

        @insights_router.get("/weekly_volume")
        async def weekly_volume():
            sessions = await self._sessions()
            overview = await asyncio.to_thread(self.insights.weekly_volume, sessions)
            return None if overview is None else overview.model_dump(mode="json")

        @insights_router.get("/consistency")
        async def consistency():
            sessions = await self._sessions()
            summary = await asyncio.to_thread(self.insights.consistency, sessions=sessions)
            return summary.model_dump(mode="json")

        self.app.include_router(library_router)
        self.app.include_router(insights_router)


api = LibraryAPI()
app = api.app

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app)
