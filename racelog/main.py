import logging
import math
import threading
from datetime import date
from typing import Any

from fastapi import Body, FastAPI, HTTPException, Query

from racelog.backend import LOOKUP_TABLES, TRAINING_TYPES, BackendClient, BackendError
from racelog.config import configure_logging, load_settings
from racelog.models import RACE, RECORD_KINDS, TRAINING, RawRecord, Snapshot
from racelog.preferences import (
    DEFAULT_TRAINING_TYPE_KEY,
    PERSON_NAME_KEY,
    JsonFilePreferences,
    person_name,
)
from racelog.stats import (
    aggregate,
    filter_races,
    find_day_stat,
    format_score,
    latest_attempts,
    list_categories,
    project_series,
    resolve_default_from_preferences,
    select_upcoming,
)

settings = load_settings()
configure_logging(settings)
logger = logging.getLogger(__name__)

app = FastAPI(title="racelog")


class RecordStore:
    """Holds the current snapshot. Refreshing swaps in a new one; nothing edits it in place."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot: Snapshot | None = None

    def refresh(self, client: BackendClient) -> Snapshot:
        """Fetch and swap in a new snapshot. On BackendError the old one stays."""
        snapshot = client.fetch_all()
        with self._lock:
            self._snapshot = snapshot
        logger.info(
            "Loaded %d records, %d training types, %d race series",
            len(snapshot.records),
            len(snapshot.training_categories),
            len(snapshot.race_categories),
        )
        return snapshot

    def current(self, client: BackendClient) -> Snapshot:
        with self._lock:
            snapshot = self._snapshot
        if snapshot is None:
            return self.refresh(client)
        return snapshot

    def clear(self) -> None:
        with self._lock:
            self._snapshot = None


backend = BackendClient(settings.backend_url, timeout=settings.timeout)
preferences = JsonFilePreferences(settings.preferences_file)
store = RecordStore()


def load_snapshot(force: bool = False) -> Snapshot:
    try:
        if force:
            return store.refresh(backend)
        return store.current(backend)
    except BackendError as err:
        logger.warning("Keeping previous snapshot: %s", err)
        raise HTTPException(status_code=502, detail=f"Backend unavailable: {err}") from err


def snapshot() -> Snapshot:
    return load_snapshot()


def active_category(snap: Snapshot, category: str | None) -> str:
    if category:
        return category
    return resolve_default_from_preferences(snap.training_categories, preferences)


def require_ok(ok: bool) -> dict[str, bool]:
    if not ok:
        raise HTTPException(status_code=502, detail="Backend rejected the change.")
    load_snapshot(force=True)
    return {"ok": True}


def normalize_record(payload: dict[str, Any], snap: Snapshot) -> RawRecord:
    kind = str(payload.get("kind", "")).strip().lower()
    if kind not in RECORD_KINDS:
        raise HTTPException(status_code=400, detail="kind must be 'training' or 'race'.")

    date_str = str(payload.get("date", "")).strip()
    if not date_str:
        raise HTTPException(status_code=400, detail="date is required (YYYY-MM-DD).")
    try:
        parsed_date = date.fromisoformat(date_str)
    except ValueError as err:
        raise HTTPException(status_code=400, detail="Invalid date format, use YYYY-MM-DD.") from err

    category_name = str(payload.get("category_name", "")).strip()
    category_id = payload.get("category_id")
    value = str(payload.get("value", "")).strip()

    if kind == TRAINING:
        if category_id is None:
            match = next((c for c in snap.training_categories if c.name == category_name), None)
            if match is None:
                raise HTTPException(status_code=400, detail="Unknown training type.")
            category_id = match.id
        try:
            seconds = float(value)
        except ValueError as err:
            raise HTTPException(status_code=400, detail="Training value must be numeric seconds.") from err
        if not math.isfinite(seconds):
            raise HTTPException(status_code=400, detail="Training value must be a finite number of seconds.")
        value = format_score(seconds)
    elif not category_name:
        raise HTTPException(status_code=400, detail="category_name is required for races.")

    return RawRecord(
        id=payload.get("id"),
        date=parsed_date.isoformat(),
        kind=kind,
        category_name=category_name,
        category_id=category_id,
        value=value,
        series_name=str(payload.get("series_name", "")).strip(),
        location=str(payload.get("location", "")).strip(),
        note=str(payload.get("note", "")).strip(),
        media_ref=str(payload.get("media_ref", "")).strip(),
        person_name=str(payload.get("person_name") or person_name(preferences)),
        person_id=payload.get("person_id"),
    )


@app.get("/health")
def health() -> dict[str, bool]:
    return {"ok": True}


@app.post("/refresh")
def refresh() -> dict[str, int]:
    snap = load_snapshot(force=True)
    return {
        "records": len(snap.records),
        "training_categories": len(snap.training_categories),
        "race_categories": len(snap.race_categories),
    }


@app.get("/dashboard")
def dashboard(
    category: str | None = Query(default=None),
    window: int | None = Query(default=None, ge=1),
) -> dict[str, Any]:
    snap = snapshot()
    day_stats = aggregate(snap.records)
    chosen = active_category(snap, category)
    upcoming = select_upcoming(snap.records, date.today(), settings.upcoming_limit)
    return {
        "upcoming": upcoming.to_dict(),
        "default_category": resolve_default_from_preferences(snap.training_categories, preferences),
        "category": chosen,
        "chart_categories": list_categories(day_stats),
        "chart": [p.to_dict() for p in project_series(day_stats, chosen, window or settings.chart_window)],
        "stats": [s.to_dict() for s in day_stats if s.category_name == chosen],
    }


@app.get("/stats")
def stats(category: str | None = Query(default=None)) -> list[dict[str, Any]]:
    day_stats = aggregate(snapshot().records)
    if category:
        day_stats = [s for s in day_stats if s.category_name == category]
    return [s.to_dict() for s in day_stats]


@app.get("/stats/{day}")
def stat_detail(day: str, category: str | None = Query(default=None)) -> dict[str, Any]:
    snap = snapshot()
    found = find_day_stat(aggregate(snap.records), day, active_category(snap, category))
    if found is None:
        raise HTTPException(status_code=404, detail="No training data for that day.")
    return found.to_dict()


@app.get("/chart")
def chart(
    category: str | None = Query(default=None),
    window: int | None = Query(default=None, ge=1),
) -> list[dict[str, Any]]:
    snap = snapshot()
    points = project_series(aggregate(snap.records), active_category(snap, category), window or settings.chart_window)
    return [p.to_dict() for p in points]


@app.get("/races")
def races(
    search: str = Query(default=""),
    series: str = Query(default=""),
    when: str = Query(default="all", pattern="^(all|future|past)$"),
) -> list[dict[str, Any]]:
    rows = filter_races(snapshot().records, date.today(), search=search, series=series, when=when)
    return [r.to_dict() for r in rows]


@app.get("/training/today")
def training_today(
    category: str | None = Query(default=None),
    limit: int = Query(default=5, ge=1),
) -> list[dict[str, Any]]:
    snap = snapshot()
    rows = latest_attempts(snap.records, date.today(), active_category(snap, category), limit)
    return [r.to_dict() for r in rows]


@app.post("/records")
def create_record(payload: dict[str, Any] = Body(...)) -> dict[str, bool]:
    record = normalize_record({**payload, "id": None}, snapshot())
    return require_ok(backend.submit_record(record))


@app.put("/records/{record_id}")
def update_record(record_id: str, payload: dict[str, Any] = Body(...)) -> dict[str, bool]:
    record = normalize_record({**payload, "id": record_id}, snapshot())
    return require_ok(backend.submit_record(record))


@app.delete("/records/{kind}/{record_id}")
def delete_record(kind: str, record_id: str) -> dict[str, bool]:
    if kind not in (TRAINING, RACE):
        raise HTTPException(status_code=404, detail="Unknown record kind.")
    return require_ok(backend.delete_record(record_id, kind))


@app.get("/categories")
def categories() -> dict[str, Any]:
    snap = snapshot()
    return {
        "training_types": [c.to_dict() for c in snap.training_categories],
        "race_series": [c.to_dict() for c in snap.race_categories],
        "default_training_type": resolve_default_from_preferences(snap.training_categories, preferences),
    }


def _lookup_table(table: str) -> str:
    if table not in LOOKUP_TABLES:
        raise HTTPException(status_code=404, detail="Unknown lookup table.")
    return table


def _lookup_name(payload: dict[str, Any]) -> str:
    name = str(payload.get("name", "")).strip()
    if not name:
        raise HTTPException(status_code=400, detail="name is required.")
    return name


@app.post("/categories/{table}")
def create_category(table: str, payload: dict[str, Any] = Body(...)) -> dict[str, bool]:
    table = _lookup_table(table)
    is_default = bool(payload.get("is_default")) and table == TRAINING_TYPES
    return require_ok(backend.manage_lookup(table, _lookup_name(payload), is_default=is_default))


@app.put("/categories/{table}/{lookup_id}")
def update_category(table: str, lookup_id: str, payload: dict[str, Any] = Body(...)) -> dict[str, bool]:
    table = _lookup_table(table)
    is_default = False
    if table == TRAINING_TYPES:
        if "is_default" in payload:
            is_default = bool(payload.get("is_default"))
        else:
            # a plain rename keeps the item's current flag
            current = next((c for c in snapshot().training_categories if str(c.id) == lookup_id), None)
            is_default = current is not None and current.is_default
    return require_ok(backend.manage_lookup(table, _lookup_name(payload), lookup_id, is_default=is_default))


@app.delete("/categories/{table}/{lookup_id}")
def delete_category(table: str, lookup_id: str) -> dict[str, bool]:
    table = _lookup_table(table)
    return require_ok(backend.manage_lookup(table, "", lookup_id, delete=True))


@app.get("/settings")
def get_settings() -> dict[str, Any]:
    return {
        "default_training_type": preferences.get(DEFAULT_TRAINING_TYPE_KEY) or "",
        "person_name": person_name(preferences),
    }


@app.put("/settings")
def put_settings(payload: dict[str, Any] = Body(...)) -> dict[str, Any]:
    if "default_training_type" in payload:
        preferences.set(DEFAULT_TRAINING_TYPE_KEY, str(payload.get("default_training_type") or "").strip())
    if "person_name" in payload:
        name = str(payload.get("person_name") or "").strip()
        if name:
            preferences.set(PERSON_NAME_KEY, name)
    return get_settings()
