import argparse
import asyncio
import json
from typing import Optional

from catalog_repository import CatalogRepository
from config import YamlConfig, catalog_dir
from db import SettingsRepository, WorkoutRepository
from insights_service import InsightsService
from logging_config import configure_logging
from search_engine import SearchFilters, SortOption
from seed_sample_data import seed


def _filters(args: argparse.Namespace) -> SearchFilters:
    return SearchFilters(
        body_parts=frozenset(args.body_part or ()),
        equipments=frozenset(args.equipment or ()),
        primary_muscles=frozenset(args.muscle or ()),
        secondary_muscles=frozenset(args.secondary_muscle or ()),
        difficulty=frozenset(args.difficulty or ()),
        mechanics=frozenset(args.mechanic or ()),
    )


def search_library(
    repo: CatalogRepository,
    query: str,
    filters: Optional[SearchFilters] = None,
    sort: SortOption = SortOption.RELEVANCE,
) -> None:
    result = asyncio.run(repo.search(query, filters, sort))
    for entry in result.exercises:
        print(f"{entry.id}\t{entry.display_name}")
    if result.suggestions:
        print("Did you mean: " + ", ".join(result.suggestions))


def show_exercise(repo: CatalogRepository, exercise_id: str) -> bool:
    entry = asyncio.run(repo.get_exercise(exercise_id))
    if entry is None:
        print(f"Exercise {exercise_id} not found")
        return False
    print(entry.display_name)
    for label, values in (
        ("Body parts", entry.body_parts),
        ("Equipment", entry.equipments),
        ("Target", entry.target_muscles),
        ("Secondary", entry.secondary_muscles),
    ):
        if values:
            print(f"{label}: {', '.join(values)}")
    for number, step in enumerate(entry.instructions, start=1):
        print(f"{number}. {step}")
    return True


def show_insights(db_path: str, yaml_path: str) -> None:
    service = InsightsService(
        WorkoutRepository(db_path), SettingsRepository(db_path, yaml_path)
    )
    print(json.dumps(service.state().model_dump(mode="json"), indent=2))


def serve(db_path: str, yaml_path: str, host: str, port: int) -> None:
    import uvicorn
    from rest_api import LibraryAPI

    uvicorn.run(LibraryAPI(db_path, yaml_path).app, host=host, port=port)


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Exercise library and workout insights")
    parser.add_argument("--yaml", default="settings.yaml")
    sub = parser.add_subparsers(dest="cmd", required=True)

    srch = sub.add_parser("search")
    srch.add_argument("query", nargs="?", default="")
    srch.add_argument("--sort", choices=[o.value for o in SortOption], default="relevance")
    srch.add_argument("--body-part", action="append")
    srch.add_argument("--equipment", action="append")
    srch.add_argument("--muscle", action="append")
    srch.add_argument("--secondary-muscle", action="append")
    srch.add_argument("--difficulty", action="append")
    srch.add_argument("--mechanic", action="append")

    show = sub.add_parser("show")
    show.add_argument("exercise_id")

    ins = sub.add_parser("insights")
    ins.add_argument("--db", default="workout.db")

    demo = sub.add_parser("demo")
    demo.add_argument("--db", default="workout.db")

    srv = sub.add_parser("serve")
    srv.add_argument("--db", default="workout.db")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)
    settings = YamlConfig(args.yaml).settings()
    configure_logging(settings.log_level)
    repo = CatalogRepository(catalog_dir(settings), settings.suggestion_limit)

    if args.cmd == "search":
        search_library(repo, args.query, _filters(args), SortOption(args.sort))
    elif args.cmd == "show":
        show_exercise(repo, args.exercise_id)
    elif args.cmd == "insights":
        show_insights(args.db, args.yaml)
    elif args.cmd == "demo":
        if seed(args.db) is None:
            print("Database already contains workouts")
        else:
            print("Demo data inserted")
    elif args.cmd == "serve":
        serve(args.db, args.yaml, args.host, args.port)


if __name__ == "__main__":
    main()
