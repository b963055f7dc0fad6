"""HTTP client for the record backend.

The backend stores training attempts, race entries and the two lookup tables
(training types and race series). Every call here is a single request; there
are no retries. A failed read raises BackendError so a partial snapshot is
never built; writes report a bool. Callers decide how to surface a failure.
"""

import json
import logging
import re
from typing import Any

import requests

from racelog.models import (
    RACE,
    TRAINING,
    CategoryLookupItem,
    RawRecord,
    RecordId,
    Snapshot,
)
from racelog.stats import format_score

logger = logging.getLogger(__name__)

TRAINING_RECORDS = "training-records"
RACE_RECORDS = "race-records"
TRAINING_TYPES = "training-types"
RACE_SERIES = "races"
LOOKUP_TABLES = {TRAINING_TYPES, RACE_SERIES}
DEFAULT_PERSON_ID = 1
TRAINING_NOTE = "training log"

# Some backends prepend warnings to the JSON body.
_EMBEDDED_JSON = re.compile(r"^[^{\[]*([{\[].*[}\]])", re.DOTALL)


class BackendError(Exception):
    """A table could not be read from the backend."""


def _text(v: Any) -> str:
    if v is None:
        return ""
    return str(v)


def normalize_training_row(row: dict[str, Any]) -> RawRecord:
    return RawRecord(
        id=row.get("id"),
        date=_text(row.get("date")),
        kind=TRAINING,
        category_name=_text(row.get("type_name")),
        category_id=row.get("training_type_id"),
        person_name=_text(row.get("name")),
        person_id=row.get("people_id"),
        value=_text(row.get("score")),
        note=TRAINING_NOTE,
    )


def normalize_race_row(row: dict[str, Any]) -> RawRecord:
    return RawRecord(
        id=row.get("id"),
        date=_text(row.get("date")),
        kind=RACE,
        category_name=_text(row.get("race_name")),
        category_id=row.get("race_id"),
        person_name=_text(row.get("name")),
        person_id=row.get("people_id"),
        value=_text(row.get("rank_text")),
        location=_text(row.get("location")),
        series_name=_text(row.get("series_name")),
        note=_text(row.get("note")),
        media_ref=_text(row.get("url")),
    )


def normalize_training_type(row: dict[str, Any]) -> CategoryLookupItem:
    return CategoryLookupItem(
        id=row.get("id"),
        name=_text(row.get("type_name")),
        is_default=str(row.get("is_default")) == "1",
    )


def normalize_race_series(row: dict[str, Any]) -> CategoryLookupItem:
    return CategoryLookupItem(id=row.get("id"), name=_text(row.get("series_name")))


def parse_json_text(text: str) -> Any:
    """Parse a response body, tolerating junk before the JSON payload."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        match = _EMBEDDED_JSON.match(text)
        if not match:
            return None
        try:
            return json.loads(match.group(1))
        except json.JSONDecodeError:
            return None


def record_form(record: RawRecord) -> tuple[str, dict[str, str]]:
    """Backend table and form fields for a create-or-update of `record`."""
    people_id = _text(record.person_id or DEFAULT_PERSON_ID)
    if record.kind == TRAINING:
        return TRAINING_RECORDS, {
            "date": record.date,
            "people_id": people_id,
            "training_type_id": _text(record.category_id),
            "score": format_score(record.value or "0"),
        }
    return RACE_RECORDS, {
        "date": record.date,
        "people_id": people_id,
        "race_id": _text(record.category_id),
        "race_name": record.category_name,
        "location": record.location,
        "rank_text": record.value,
        "note": record.note,
        "url": record.media_ref,
    }


class BackendClient:
    def __init__(self, base_url: str, timeout: int = 30) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _url(self, *parts: Any) -> str:
        return "/".join([self.base_url, *(str(p) for p in parts)])

    def get_json(self, table: str) -> Any:
        url = self._url(table)
        try:
            resp = requests.get(url, timeout=self.timeout)
        except requests.RequestException as err:
            logger.error("Fetch failed for %s: %s", url, err)
            raise BackendError(f"Fetch failed for {table}: {err}") from err
        if not resp.ok:
            logger.warning("Backend error %s for %s: %s", resp.status_code, url, resp.text)
            raise BackendError(f"Backend returned {resp.status_code} for {table}")
        data = parse_json_text(resp.text)
        if data is None:
            logger.warning("Unparseable response from %s", url)
            raise BackendError(f"Unparseable response for {table}")
        return data

    def _rows(self, table: str) -> list[dict[str, Any]]:
        data = self.get_json(table)
        if not isinstance(data, list):
            raise BackendError(f"Expected a list from {table}, got {type(data).__name__}")
        return [row for row in data if isinstance(row, dict)]

    def fetch_all(self) -> Snapshot:
        """Load every table. Raises BackendError if any one of them fails."""
        training = [normalize_training_row(r) for r in self._rows(TRAINING_RECORDS)]
        races = [normalize_race_row(r) for r in self._rows(RACE_RECORDS)]
        return Snapshot(
            records=tuple(training + races),
            training_categories=tuple(normalize_training_type(r) for r in self._rows(TRAINING_TYPES)),
            race_categories=tuple(normalize_race_series(r) for r in self._rows(RACE_SERIES)),
        )

    def _post(self, url: str, form: dict[str, str]) -> bool:
        try:
            resp = requests.post(url, data=form, timeout=self.timeout)
        except requests.RequestException as err:
            logger.error("Request to %s failed: %s", url, err)
            return False
        if not resp.ok:
            logger.warning("Backend rejected %s (%s): %s", url, resp.status_code, resp.text)
        return resp.ok

    def submit_record(self, record: RawRecord) -> bool:
        table, form = record_form(record)
        if record.id is not None:
            form["_method"] = "PUT"
            return self._post(self._url(table, record.id), form)
        return self._post(self._url(table), form)

    def delete_record(self, record_id: RecordId, kind: str) -> bool:
        table = TRAINING_RECORDS if kind == TRAINING else RACE_RECORDS
        return self._post(self._url(table, record_id), {"_method": "DELETE"})

    def manage_lookup(
        self,
        table: str,
        name: str,
        lookup_id: RecordId | None = None,
        delete: bool = False,
        is_default: bool = False,
    ) -> bool:
        """Create, rename, delete or re-flag one lookup item."""
        if table not in LOOKUP_TABLES:
            raise ValueError(f"Unknown lookup table: {table}")
        if delete:
            if lookup_id is None:
                return False
            return self._post(self._url(table, lookup_id), {"_method": "DELETE"})

        name_field = "series_name" if table == RACE_SERIES else "type_name"
        form = {name_field: name}
        if table == TRAINING_TYPES:
            form["is_default"] = "1" if is_default else "0"
        if lookup_id is not None:
            form["_method"] = "PUT"
            return self._post(self._url(table, lookup_id), form)
        return self._post(self._url(table), form)
