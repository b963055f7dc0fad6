from dataclasses import asdict, dataclass, field
from typing import Any

RecordId = str | int

TRAINING = "training"
RACE = "race"
CONFIG = "config"
RECORD_KINDS = {TRAINING, RACE}


@dataclass(frozen=True)
class RawRecord:
    """One measured event: a timed training attempt or a race entry."""

    date: str
    kind: str
    category_name: str
    value: str
    id: RecordId | None = None
    series_name: str = ""
    location: str = ""
    note: str = ""
    media_ref: str = ""
    person_name: str = ""
    person_id: RecordId | None = None
    category_id: RecordId | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CategoryLookupItem:
    id: RecordId
    name: str
    is_default: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DayStat:
    date: str
    category_name: str
    average: float
    best: float
    count: int
    records: tuple[tuple[RecordId | None, float], ...]
    stability_score: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "category_name": self.category_name,
            "average": self.average,
            "best": self.best,
            "count": self.count,
            "records": [{"id": rid, "value": value} for rid, value in self.records],
            "stability_score": self.stability_score,
        }


@dataclass(frozen=True)
class ChartPoint:
    date: str
    average: float
    best: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class UpcomingRaces:
    items: tuple[RawRecord, ...]
    has_more: bool

    def to_dict(self) -> dict[str, Any]:
        return {"items": [r.to_dict() for r in self.items], "has_more": self.has_more}


@dataclass(frozen=True)
class Snapshot:
    """Full backend state as of one fetch. Replaced wholesale, never patched."""

    records: tuple[RawRecord, ...] = field(default_factory=tuple)
    training_categories: tuple[CategoryLookupItem, ...] = field(default_factory=tuple)
    race_categories: tuple[CategoryLookupItem, ...] = field(default_factory=tuple)
