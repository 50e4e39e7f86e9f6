import json
import os
import sys
import datetime

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
import cli
from db import WorkoutRepository
from seed_sample_data import seed


@pytest.fixture(autouse=True)
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)
    return tmp_path


def test_search_command(capsys) -> None:
    cli.main(["--yaml", "cli.yaml", "search", "bench"])
    out = capsys.readouterr().out.splitlines()
    assert out == ["0001\tBench Press", "0002\tIncline Bench Press"]


def test_search_with_facets(capsys) -> None:
    cli.main(["--yaml", "cli.yaml", "search", "--body-part", "upper arms", "--sort", "name"])
    out = capsys.readouterr().out.splitlines()
    assert out == ["0006\tDumbbell Curl", "0007\tEZ-Bar Curl"]


def test_search_secondary_muscle_and_mechanic(capsys) -> None:
    cli.main(["--yaml", "cli.yaml", "search", "--secondary-muscle", "hamstrings", "--sort", "name"])
    assert capsys.readouterr().out.splitlines() == ["0005\tDeadlift", "0003\tSquat"]

    cli.main(["--yaml", "cli.yaml", "search", "--mechanic", "isolation", "--body-part", "upper arms"])
    out = capsys.readouterr().out.splitlines()
    assert sorted(out) == ["0006\tDumbbell Curl", "0007\tEZ-Bar Curl"]


def test_search_suggestions(capsys) -> None:
    cli.main(["--yaml", "cli.yaml", "search", "deadlfit"])
    out = capsys.readouterr().out
    assert out.startswith("Did you mean: ")
    assert "Deadlift" in out


def test_show_command(capsys) -> None:
    cli.main(["--yaml", "cli.yaml", "show", "0003"])
    out = capsys.readouterr().out.splitlines()
    assert out[0] == "Squat"
    assert "Equipment: barbell" in out

    cli.main(["--yaml", "cli.yaml", "show", "9999"])
    assert capsys.readouterr().out.strip() == "Exercise 9999 not found"


def test_demo_and_insights(capsys) -> None:
    cli.main(["--yaml", "cli.yaml", "demo", "--db", "cli.db"])
    assert capsys.readouterr().out.strip() == "Demo data inserted"
    cli.main(["--yaml", "cli.yaml", "demo", "--db", "cli.db"])
    assert capsys.readouterr().out.strip() == "Database already contains workouts"

    cli.main(["--yaml", "cli.yaml", "insights", "--db", "cli.db"])
    state = json.loads(capsys.readouterr().out)
    assert state["last_session_summary"]["routine_name"] == "Full Body"
    assert state["consistency"]["workouts_per_week_average"] > 0
    assert state["prs"]


def test_seed_spacing() -> None:
    today = datetime.date(2024, 3, 10)
    ids = seed("seed.db", today=today)
    assert len(ids) == 4
    sessions = WorkoutRepository("seed.db").fetch_sessions()
    dates = [s.start_time.date() for s in sessions]
    assert dates == [today - datetime.timedelta(days=d) for d in (9, 6, 3, 0)]
    assert seed("seed.db", today=today) is None
