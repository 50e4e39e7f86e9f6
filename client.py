import requests
from typing import Optional

class LibraryClient:
    """Simple REST client for the library and insights API."""

    def __init__(self, base_url: str = "http://localhost:8000") -> None:
        self.base_url = base_url.rstrip("/")

    def search(self, query: str = "", sort: str = "relevance", **facets: list[str]) -> dict:
        params = {"query": query, "sort": sort}
        for name, values in facets.items():
            if values:
                params[name] = "|".join(values)
        resp = requests.get(f"{self.base_url}/library/search", params=params)
        resp.raise_for_status()
        return resp.json()

    def get_exercise(self, exercise_id: str) -> Optional[dict]:
        resp = requests.get(f"{self.base_url}/library/exercises/{exercise_id}")
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

    def import_exercise(self, exercise_id: str) -> int:
        resp = requests.post(f"{self.base_url}/library/exercises/{exercise_id}/import")
        resp.raise_for_status()
        return resp.json()["id"]

    def start_workout(self, routine_id: Optional[int] = None) -> int:
        params = {} if routine_id is None else {"routine_id": routine_id}
        resp = requests.post(f"{self.base_url}/workouts", params=params)
        resp.raise_for_status()
        return resp.json()["id"]

    def add_group(self, workout_id: int, exercise_id: int) -> int:
        resp = requests.post(
            f"{self.base_url}/workouts/{workout_id}/groups",
            params={"exercise_id": exercise_id},
        )
        resp.raise_for_status()
        return resp.json()["id"]

    def add_set(self, group_id: int, reps: int, weight: Optional[float] = None) -> int:
        params = {"reps": reps}
        if weight is not None:
            params["weight"] = weight
        resp = requests.post(f"{self.base_url}/groups/{group_id}/sets", params=params)
        resp.raise_for_status()
        return resp.json()["id"]

    def finish_workout(self, workout_id: int) -> None:
        resp = requests.post(f"{self.base_url}/workouts/{workout_id}/finish")
        resp.raise_for_status()

    def insights(self) -> dict:
        resp = requests.get(f"{self.base_url}/insights")
        resp.raise_for_status()
        return resp.json()

    def personal_records(self, limit: int = 20) -> list[dict]:
        resp = requests.get(f"{self.base_url}/insights/prs", params={"limit": limit})
        resp.raise_for_status()
        return resp.json()
