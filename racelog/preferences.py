import json
import threading
from pathlib import Path
from typing import Any, Protocol

DEFAULT_TRAINING_TYPE_KEY = "default_training_type"
PERSON_NAME_KEY = "person_name"
DEFAULT_PERSON_NAME = "Athlete"
FILE_LOCK = threading.Lock()


class PreferenceStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


# Callers hold FILE_LOCK around these.
def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text())
    except json.JSONDecodeError:
        return default


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2))


class MemoryPreferences:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value


class JsonFilePreferences:
    """Key-value preferences kept in a single JSON object on disk."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def _load(self) -> dict[str, Any]:
        raw = _read_json(self.path, {})
        if isinstance(raw, dict):
            return raw
        return {}

    def get(self, key: str) -> str | None:
        with FILE_LOCK:
            value = self._load().get(key)
        if value is None:
            return None
        return str(value)

    def set(self, key: str, value: str) -> None:
        with FILE_LOCK:
            data = self._load()
            data[key] = value
            _write_json(self.path, data)


def person_name(preferences: PreferenceStore) -> str:
    return preferences.get(PERSON_NAME_KEY) or DEFAULT_PERSON_NAME
