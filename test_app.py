"""
Test suite for the Plan Tracker API.
Uses a throw-away SQLite file via aiosqlite.
"""
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Override env BEFORE importing app so it uses a temporary SQLite file
import os
import tempfile
os.environ.pop("CLOUD_SQL_CONNECTION_NAME", None)
_tmp_dir = tempfile.mkdtemp(prefix="plan-tracker-test-")
os.environ["PLAN_DB_URL"] = f"sqlite+aiosqlite:///{os.path.join(_tmp_dir, 'plan_test.db')}"
os.environ["RATE_LIMIT_REQUESTS"] = "10000"  # effectively disable for tests
os.environ.pop("APP_PASSCODE", None)

from plantracker import app as app_module  # noqa: E402
from plantracker.app import app, _rate_limit_store  # noqa: E402
from plantracker.db import Base  # noqa: E402
from plantracker.manager import WorkoutManager  # noqa: E402
from plantracker.plan_template import PLAN_START  # noqa: E402

transport = ASGITransport(app=app)


@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Fresh tables and a fresh manager for each test."""
    _rate_limit_store.clear()
    engine = app_module.backend.engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    app_module.manager = WorkoutManager(app_module.backend, plan_start=PLAN_START)
    app_module.APP_PASSCODE = ""
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def client():
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ─── Sample data ─────────────────────────────────────────────────────────────

VALID_WORKOUT = {
    "date": "2026-03-10",
    "title": "Easy run",
    "details": "Easy run 35 min\nKeep it conversational",
    "intensity": "Easy",
    "tags": ["easy"],
    "planned_duration_min": 35,
    "planned_distance_km": 5,
}

VALID_CHECKIN = {
    "date": "2026-03-10",
    "weight_kg": 82.4,
    "sleep_hours": 7.5,
    "steps": 9500,
    "energy_1_10": 7,
    "pain_0_10": 1,
    "notes": "legs a bit heavy",
}


async def _create(client, date, title="Easy run", intensity="Easy", **extra):
    r = await client.post("/workouts", json={**VALID_WORKOUT, "date": date, "title": title,
                                             "intensity": intensity, **extra})
    assert r.status_code == 200, r.text
    return r.json()


# ─── Health & Root ───────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_root(client):
    r = await client.get("/")
    assert r.status_code == 200
    assert "v1" in r.json()["message"]


@pytest.mark.asyncio
async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["ok"] is True
    assert data["db_connected"] is True
    assert "SQLite" in data["db_type"]


@pytest.mark.asyncio
async def test_rate_limit_headers(client):
    r = await client.get("/")
    assert r.headers["X-RateLimit-Limit"] == "10000"
    assert int(r.headers["X-RateLimit-Remaining"]) == 9999


# ─── Plan lifecycle ──────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_plan_info_before_initialize(client):
    r = await client.get("/plan", params={"today": "2026-01-02"})
    assert r.status_code == 200
    data = r.json()
    assert data["initialized"] is False
    assert data["start_date"] == "2026-01-02"
    assert data["end_date"] == "2026-05-02"
    assert data["total_weeks"] == 17
    assert data["current_week"] == 1
    assert data["days_until_race"] == 120


@pytest.mark.asyncio
async def test_initialize_plan(client):
    r = await client.post("/plan/initialize")
    assert r.status_code == 200
    data = r.json()
    assert data["created"] == 121
    assert data["first_date"] == "2026-01-02"
    assert data["last_date"] == "2026-05-02"

    r = await client.get("/workouts", params={"include_rest": True})
    assert len(r.json()) == 121
    r = await client.get("/workouts")
    visible = r.json()
    assert 0 < len(visible) < 121
    assert all(w["intensity"] != "Rest" for w in visible)


@pytest.mark.asyncio
async def test_initialize_twice_conflicts(client):
    assert (await client.post("/plan/initialize")).status_code == 200
    r = await client.post("/plan/initialize")
    assert r.status_code == 409
    r = await client.get("/workouts", params={"include_rest": True})
    assert len(r.json()) == 121


@pytest.mark.asyncio
async def test_reset_then_initialize(client):
    await client.post("/plan/initialize")
    r = await client.delete("/plan")
    assert r.status_code == 200
    r = await client.get("/workouts", params={"include_rest": True})
    assert r.json() == []
    r = await client.post("/plan/initialize")
    assert r.status_code == 200


# ─── Input Validation ────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_invalid_date_format(client):
    r = await client.post("/workouts", json={**VALID_WORKOUT, "date": "10-03-2026"})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_invalid_date_calendar(client):
    r = await client.post("/workouts", json={**VALID_WORKOUT, "date": "2026-02-30"})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_empty_title_rejected(client):
    r = await client.post("/workouts", json={**VALID_WORKOUT, "title": "   "})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_negative_distance_rejected(client):
    r = await client.post("/workouts", json={**VALID_WORKOUT, "planned_distance_km": -1})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_legacy_intensity_code_accepted(client):
    w = await _create(client, "2026-03-11", intensity="T")
    assert w["intensity"] == "Tempo"


@pytest.mark.asyncio
async def test_tags_normalized(client):
    w = await _create(client, "2026-03-11", tags="Easy, LongRun,easy")
    assert w["tags"] == ["easy", "longrun"]


# ─── Workouts CRUD ───────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_create_and_get_workout(client):
    w = await _create(client, "2026-03-10")
    assert w["status"] == "planned"
    assert w["id"]
    r = await client.get(f"/workouts/{w['id']}")
    assert r.status_code == 200
    assert r.json()["title"] == "Easy run"


@pytest.mark.asyncio
async def test_create_allows_several_activities_per_day(client):
    await _create(client, "2026-03-10")
    await _create(client, "2026-03-10", title="Padel", activity_type="padel")
    r = await client.get("/workouts")
    assert len(r.json()) == 2


@pytest.mark.asyncio
async def test_get_missing_workout(client):
    r = await client.get("/workouts/does-not-exist")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_edit_workout(client):
    w = await _create(client, "2026-03-10")
    r = await client.patch(f"/workouts/{w['id']}", json={"notes": "windy", "actual_distance_km": 5.4})
    assert r.status_code == 200
    data = r.json()
    assert data["notes"] == "windy"
    assert data["actual_distance_km"] == 5.4
    assert data["updated_at"] >= w["updated_at"]


@pytest.mark.asyncio
async def test_edit_workout_empty_body(client):
    w = await _create(client, "2026-03-10")
    r = await client.patch(f"/workouts/{w['id']}", json={})
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_edit_rejects_null_required_fields(client):
    w = await _create(client, "2026-03-10")
    for field in ("title", "intensity"):
        r = await client.patch(f"/workouts/{w['id']}", json={field: None})
        assert r.status_code == 422, field
    r = await client.get(f"/workouts/{w['id']}")
    assert r.json()["title"] == "Easy run"
    assert r.json()["intensity"] == "Easy"


@pytest.mark.asyncio
async def test_edit_null_details_and_tags_clear_them(client):
    w = await _create(client, "2026-03-10")
    r = await client.patch(f"/workouts/{w['id']}", json={"details": None, "tags": None})
    assert r.status_code == 200, r.text
    assert r.json()["details"] == ""
    assert r.json()["tags"] == []


@pytest.mark.asyncio
async def test_edit_missing_workout(client):
    r = await client.patch("/workouts/nope", json={"notes": "x"})
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_delete_workout(client):
    w = await _create(client, "2026-03-10")
    r = await client.delete(f"/workouts/{w['id']}")
    assert r.status_code == 200
    r = await client.get(f"/workouts/{w['id']}")
    assert r.status_code == 404
    r = await client.delete(f"/workouts/{w['id']}")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_workouts_in_range(client):
    await _create(client, "2026-03-09")
    await _create(client, "2026-03-10")
    await _create(client, "2026-03-12")
    r = await client.get("/workouts/range", params={"start": "2026-03-10", "end": "2026-03-12"})
    assert r.status_code == 200
    assert [w["date"] for w in r.json()] == ["2026-03-10", "2026-03-12"]
    r = await client.get("/workouts/range", params={"start": "2026-03-12", "end": "2026-03-10"})
    assert r.status_code == 400


# ─── Filters ─────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_filter_by_query(client):
    await _create(client, "2026-03-10", tags=["easy"])
    await _create(client, "2026-03-11", title="Tempo", intensity="Tempo", tags=["tempo"])
    await _create(client, "2026-03-12", title="Rest", intensity="Rest", tags=["rest"])

    r = await client.get("/workouts", params={"intensity": "Tempo"})
    assert [w["title"] for w in r.json()] == ["Tempo"]
    r = await client.get("/workouts", params={"tag": "EASY"})
    assert [w["date"] for w in r.json()] == ["2026-03-10"]
    r = await client.get("/workouts", params={"status": "all", "intensity": "all"})
    assert len(r.json()) == 2


@pytest.mark.asyncio
async def test_stored_filters(client):
    await _create(client, "2026-03-10")
    w = await _create(client, "2026-03-11", title="Tempo", intensity="Tempo")
    await client.post(f"/workouts/{w['id']}/status", json={"status": "completed"})

    r = await client.put("/filters", json={"status": "completed"})
    assert r.status_code == 200
    r = await client.get("/workouts")
    assert [x["id"] for x in r.json()] == [w["id"]]

    r = await client.get("/state")
    assert r.json()["filters"]["status"] == "completed"


@pytest.mark.asyncio
async def test_invalid_filter(client):
    r = await client.get("/workouts", params={"status": "finished"})
    assert r.status_code == 422


# ─── Move & Undo ─────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_move_workout(client):
    w = await _create(client, "2026-03-10")
    r = await client.post(f"/workouts/{w['id']}/move", json={"new_date": "2026-03-13"})
    assert r.status_code == 200
    data = r.json()
    assert data["date"] == "2026-03-13"
    assert data["status"] == "rescheduled"
    assert data["moved_from_date"] == "2026-03-10"

    r = await client.get("/undo")
    assert [a["kind"] for a in r.json()] == ["move"]


@pytest.mark.asyncio
async def test_move_onto_rest_day_removes_placeholder(client):
    w = await _create(client, "2026-03-10")
    rest = await _create(client, "2026-03-11", title="Rest", intensity="Rest")
    r = await client.post(f"/workouts/{w['id']}/move", json={"new_date": "2026-03-11"})
    assert r.status_code == 200

    r = await client.get("/workouts", params={"include_rest": True})
    ids = [x["id"] for x in r.json()]
    assert rest["id"] not in ids
    r = await client.get(f"/workouts/{rest['id']}")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_move_conflict(client):
    a = await _create(client, "2026-03-10", title="A")
    b = await _create(client, "2026-03-11", title="B")
    r = await client.post(f"/workouts/{a['id']}/move", json={"new_date": "2026-03-11"})
    assert r.status_code == 409
    body = r.json()
    assert "2026-03-11" in body["detail"]
    assert body["date"] == "2026-03-11"

    for original in (a, b):
        r = await client.get(f"/workouts/{original['id']}")
        assert r.json()["date"] == original["date"]
        assert r.json()["status"] == "planned"
    r = await client.get("/undo")
    assert r.json() == []


@pytest.mark.asyncio
async def test_state_error_clears_after_next_success(client):
    a = await _create(client, "2026-03-10", title="A")
    await _create(client, "2026-03-11", title="B")
    r = await client.post(f"/workouts/{a['id']}/move", json={"new_date": "2026-03-11"})
    assert r.status_code == 409
    assert "2026-03-11" in (await client.get("/state")).json()["error"]
    r = await client.post(f"/workouts/{a['id']}/move", json={"new_date": "2026-03-12"})
    assert r.status_code == 200
    assert (await client.get("/state")).json()["error"] is None


@pytest.mark.asyncio
async def test_move_invalid_date(client):
    w = await _create(client, "2026-03-10")
    r = await client.post(f"/workouts/{w['id']}/move", json={"new_date": "2026-13-01"})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_move_missing_workout(client):
    r = await client.post("/workouts/nope/move", json={"new_date": "2026-03-11"})
    assert r.status_code == 404
    r = await client.get("/undo")
    assert r.json() == []


@pytest.mark.asyncio
async def test_undo_move(client):
    w = await _create(client, "2026-03-10")
    await client.post(f"/workouts/{w['id']}/move", json={"new_date": "2026-03-13"})
    r = await client.post("/undo")
    assert r.status_code == 200
    data = r.json()
    assert data["undone"] is True
    assert data["action"]["kind"] == "move"
    assert data["remaining"] == 0

    r = await client.get(f"/workouts/{w['id']}")
    restored = r.json()
    assert restored["date"] == "2026-03-10"
    assert restored["status"] == "planned"
    assert restored["moved_from_date"] is None


@pytest.mark.asyncio
async def test_undo_empty_stack(client):
    r = await client.post("/undo")
    assert r.status_code == 200
    assert r.json() == {"undone": False, "action": None, "remaining": 0}


# ─── Status ──────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_mark_completed_then_planned(client):
    w = await _create(client, "2026-03-10")
    r = await client.post(f"/workouts/{w['id']}/status", json={"status": "completed"})
    assert r.status_code == 200
    assert r.json()["completed_at"] is not None

    r = await client.post(f"/workouts/{w['id']}/status", json={"status": "planned"})
    assert r.json()["status"] == "planned"
    assert r.json()["completed_at"] is None


@pytest.mark.asyncio
async def test_mark_invalid_status(client):
    w = await _create(client, "2026-03-10")
    r = await client.post(f"/workouts/{w['id']}/status", json={"status": "done"})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_undo_status_change(client):
    w = await _create(client, "2026-03-10")
    await client.post(f"/workouts/{w['id']}/status", json={"status": "skipped"})
    r = await client.post("/undo")
    assert r.json()["action"]["kind"] == "status_change"
    r = await client.get(f"/workouts/{w['id']}")
    assert r.json()["status"] == "planned"


# ─── History ─────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_history_records_mutations(client):
    w = await _create(client, "2026-03-10")
    await client.post(f"/workouts/{w['id']}/move", json={"new_date": "2026-03-12"})
    await client.post(f"/workouts/{w['id']}/status", json={"status": "completed"})
    await client.patch(f"/workouts/{w['id']}", json={"notes": "good"})

    r = await client.get("/history")
    assert r.status_code == 200
    actions = {h["action"] for h in r.json()}
    assert actions == {"moved", "status_changed", "edited"}

    r = await client.get(f"/workouts/{w['id']}/history")
    moved = [h for h in r.json() if h["action"] == "moved"][0]
    assert moved["from_date"] == "2026-03-10"
    assert moved["to_date"] == "2026-03-12"
    assert moved["to_status"] == "rescheduled"


# ─── Passcode ────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_passcode_required_for_edits(client):
    app_module.APP_PASSCODE = "1234"
    r = await client.post("/workouts", json=VALID_WORKOUT)
    assert r.status_code == 403
    r = await client.post("/workouts", json=VALID_WORKOUT, headers={"X-Passcode": "0000"})
    assert r.status_code == 403
    r = await client.post("/workouts", json=VALID_WORKOUT, headers={"X-Passcode": "1234"})
    assert r.status_code == 200
    # Reads stay open
    r = await client.get("/workouts")
    assert r.status_code == 200
    assert len(r.json()) == 1


# ─── Day view ────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_open_and_close_day(client):
    await _create(client, "2026-01-05")
    await client.put("/checkins", json={**VALID_CHECKIN, "date": "2026-01-05"})

    r = await client.get("/days/2026-01-05")
    assert r.status_code == 200
    data = r.json()
    assert data["week"] == 1
    assert len(data["workouts"]) == 1
    assert data["check_in"]["energy_1_10"] == 7
    assert (await client.get("/state")).json()["selected_date"] == "2026-01-05"

    r = await client.delete("/days/selected")
    assert r.status_code == 200
    assert (await client.get("/state")).json()["selected_date"] is None


@pytest.mark.asyncio
async def test_open_day_invalid_date(client):
    r = await client.get("/days/yesterday")
    assert r.status_code == 422


# ─── Check-ins ───────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_checkin_upsert_by_date(client):
    r = await client.put("/checkins", json=VALID_CHECKIN)
    assert r.status_code == 200
    first = r.json()
    r = await client.put("/checkins", json={**VALID_CHECKIN, "energy_1_10": 4})
    assert r.status_code == 200
    assert r.json()["id"] == first["id"]

    r = await client.get("/checkins")
    assert len(r.json()) == 1
    assert r.json()[0]["energy_1_10"] == 4


@pytest.mark.asyncio
async def test_checkin_validation(client):
    r = await client.put("/checkins", json={**VALID_CHECKIN, "energy_1_10": 11})
    assert r.status_code == 422
    r = await client.put("/checkins", json={**VALID_CHECKIN, "pain_0_10": -1})
    assert r.status_code == 422
    r = await client.put("/checkins", json={**VALID_CHECKIN, "sleep_hours": 25})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_checkin_get_and_delete(client):
    saved = (await client.put("/checkins", json=VALID_CHECKIN)).json()
    r = await client.get("/checkins/2026-03-10")
    assert r.status_code == 200
    assert r.json()["steps"] == 9500
    r = await client.get("/checkins/2026-03-11")
    assert r.status_code == 404

    r = await client.delete(f"/checkins/{saved['id']}")
    assert r.status_code == 200
    r = await client.get("/checkins/2026-03-10")
    assert r.status_code == 404
    r = await client.delete(f"/checkins/{saved['id']}")
    assert r.status_code == 404


# ─── Stats ───────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_stats_empty(client):
    r = await client.get("/stats")
    assert r.status_code == 200
    data = r.json()
    assert data["total_workouts"] == 0
    assert data["completion_rate"] == 0
    assert data["next_workout"] is None


@pytest.mark.asyncio
async def test_stats_streaks(client):
    statuses = ["completed", "completed", "skipped", "completed", "completed"]
    for i, status in enumerate(statuses):
        w = await _create(client, f"2026-03-0{i + 1}", week=10)
        await client.post(f"/workouts/{w['id']}/status", json={"status": status})
    await _create(client, "2026-03-08", title="Long run", week=10)

    r = await client.get("/stats", params={"today": "2026-03-06"})
    data = r.json()
    assert data["total_workouts"] == 6
    assert data["completed_workouts"] == 4
    assert data["skipped_workouts"] == 1
    assert data["current_streak"] == 2
    assert data["longest_streak"] == 2
    assert data["completion_rate"] == 80.0
    assert data["next_workout"]["date"] == "2026-03-08"


@pytest.mark.asyncio
async def test_weekly_stats(client):
    for i, status in enumerate(["completed", "completed", "skipped"]):
        w = await _create(client, f"2026-03-0{i + 2}", week=9)
        await client.post(f"/workouts/{w['id']}/status", json={"status": status})
    await _create(client, "2026-03-01", title="Rest", intensity="Rest", week=9)

    r = await client.get("/stats/weeks/9")
    assert r.status_code == 200
    data = r.json()
    assert data["planned_runs"] == 3
    assert data["completed_runs"] == 2
    assert data["skipped_runs"] == 1
    assert data["completion_rate"] == pytest.approx(66.67, abs=0.01)
    assert data["start_date"] == "2026-03-01"
    assert data["end_date"] == "2026-03-04"

    r = await client.get("/stats/weeks/3")
    assert r.status_code == 404
    r = await client.get("/stats/weeks")
    assert [s["week"] for s in r.json()] == [9]


@pytest.mark.asyncio
async def test_distance_and_intensity(client):
    a = await _create(client, "2026-03-02", planned_distance_km=5)
    b = await _create(client, "2026-03-03", title="Ride", activity_type="cycle", planned_distance_km=None)
    await client.patch(f"/workouts/{b['id']}", json={"actual_distance_km": 20})
    for w in (a, b):
        await client.post(f"/workouts/{w['id']}/status", json={"status": "completed"})

    r = await client.get("/stats/distance")
    data = r.json()
    assert data["total_km"] == 25
    assert data["by_activity"] == {"cycle": 20, "run": 5}

    r = await client.get("/stats/intensity")
    assert r.json()["Easy"] == 2
    assert r.json()["Rest"] == 0


@pytest.mark.asyncio
async def test_checkin_series(client):
    for day in ("2026-03-01", "2026-03-05", "2026-03-09"):
        await client.put("/checkins", json={**VALID_CHECKIN, "date": day})
    r = await client.get("/stats/checkins", params={"days": 7, "today": "2026-03-09"})
    assert [c["date"] for c in r.json()] == ["2026-03-05", "2026-03-09"]
    r = await client.get("/stats/checkins")
    assert len(r.json()) == 3


# ─── Export / Import ─────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_export_ical(client):
    await _create(client, "2026-03-10")
    await _create(client, "2026-03-11", title="Rest", intensity="Rest")
    r = await client.get("/export/ical")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/calendar")
    body = r.text
    assert body.count("BEGIN:VEVENT") == 1
    assert "DTSTART;VALUE=DATE:20260310" in body
    assert "DESCRIPTION:Easy run 35 min\\nKeep it conversational" in body


@pytest.mark.asyncio
async def test_export_import_round_trip(client):
    await client.post("/plan/initialize")
    visible = (await client.get("/workouts")).json()
    await client.post(f"/workouts/{visible[0]['id']}/status", json={"status": "completed"})
    await client.put("/checkins", json=VALID_CHECKIN)

    r = await client.get("/export/json")
    assert r.status_code == 200
    assert "attachment" in r.headers["content-disposition"]
    backup = r.json()
    assert backup["exportedAt"]
    assert len(backup["workouts"]) == 121
    assert len(backup["checkIns"]) == 1

    def tuples(rows):
        return sorted((w["date"], w["title"], w["intensity"], w["status"]) for w in rows)

    before = tuples(backup["workouts"])
    await client.delete("/plan")
    r = await client.post("/import/json", content=r.content)
    assert r.status_code == 200
    assert r.json()["imported"] == 121

    after = (await client.get("/workouts", params={"include_rest": True})).json()
    assert tuples(after) == before


@pytest.mark.asyncio
async def test_import_rejects_bad_json(client):
    await _create(client, "2026-03-10")
    r = await client.post("/import/json", content=b"{not json")
    assert r.status_code == 400
    r = await client.post("/import/json", json={"checkIns": []})
    assert r.status_code == 400
    assert "workouts" in r.json()["detail"]
    # nothing was deleted
    r = await client.get("/workouts")
    assert len(r.json()) == 1


@pytest.mark.asyncio
async def test_import_rejects_invalid_workout(client):
    await _create(client, "2026-03-10")
    bad = {"workouts": [{"date": "2026-03-10", "title": "ok", "intensity": "Easy"},
                        {"date": "2026-99-10", "title": "bad", "intensity": "Easy"}]}
    r = await client.post("/import/json", json=bad)
    assert r.status_code == 400
    assert "index 1" in r.json()["detail"]
    r = await client.get("/workouts")
    assert [w["title"] for w in r.json()] == ["Easy run"]
