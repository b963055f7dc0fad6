"""Shared fixtures: record builders and an in-memory backend double."""
import pytest
from fastapi.testclient import TestClient

from racelog import main
from racelog.backend import BackendError
from racelog.models import RACE, TRAINING, CategoryLookupItem, RawRecord, Snapshot
from racelog.preferences import MemoryPreferences


def training(rid, day, name, value):
    return RawRecord(id=rid, date=day, kind=TRAINING, category_name=name, value=str(value))


def race(rid, day, name, series="", rank=""):
    return RawRecord(id=rid, date=day, kind=RACE, category_name=name, value=rank, series_name=series)


class FakeBackend:
    """Records every write and serves a fixed snapshot."""

    def __init__(self, snapshot: Snapshot, ok: bool = True) -> None:
        self.snapshot = snapshot
        self.ok = ok
        self.fetch_ok = True
        self.fetches = 0
        self.submitted: list[RawRecord] = []
        self.deleted: list[tuple[str, str]] = []
        self.lookups: list[dict] = []

    def fetch_all(self) -> Snapshot:
        self.fetches += 1
        if not self.fetch_ok:
            raise BackendError("training-records unavailable")
        return self.snapshot

    def submit_record(self, record: RawRecord) -> bool:
        self.submitted.append(record)
        return self.ok

    def delete_record(self, record_id, kind) -> bool:
        self.deleted.append((record_id, kind))
        return self.ok

    def manage_lookup(self, table, name, lookup_id=None, delete=False, is_default=False) -> bool:
        self.lookups.append(
            {"table": table, "name": name, "id": lookup_id, "delete": delete, "is_default": is_default}
        )
        return self.ok


@pytest.fixture
def sample_snapshot():
    records = (
        training(1, "2024-05-01", "Sprint", "10.5"),
        training(2, "2024-05-01", "Sprint", "11.5"),
        training(3, "2024-05-02", "Sprint", "10.0"),
        training(4, "2024-05-02", "Pump", "30.0"),
        race(10, "2999-01-10", "Summer Cup", series="Cup"),
        race(11, "2999-03-01", "Autumn Open", series="Open"),
        race(12, "2000-01-01", "Old Cup", series="Cup", rank="2nd"),
    )
    return Snapshot(
        records=records,
        training_categories=(CategoryLookupItem(1, "Pump"), CategoryLookupItem(2, "Sprint")),
        race_categories=(CategoryLookupItem(1, "Cup"), CategoryLookupItem(2, "Open")),
    )


@pytest.fixture
def fake_backend(sample_snapshot):
    return FakeBackend(sample_snapshot)


@pytest.fixture
def prefs():
    return MemoryPreferences()


@pytest.fixture
def client(monkeypatch, fake_backend, prefs):
    monkeypatch.setattr(main, "backend", fake_backend)
    monkeypatch.setattr(main, "preferences", prefs)
    monkeypatch.setattr(main, "store", main.RecordStore())
    return TestClient(main.app)
