"""Local key-value persistence for presets, reminder flags and seen milestones."""

import json
from datetime import date
from pathlib import Path
from typing import Any, Protocol

from loguru import logger

from .constants import JSON_INDENT, QUERY_DATE_FORMAT


class KeyValueStore(Protocol):
    """Minimal string-keyed store of JSON-compatible values."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...


class InMemoryKeyValueStore:
    """Dictionary-backed store, used for tests and one-shot CLI runs."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileKeyValueStore:
    """Store persisted as a single JSON object on disk.

    The file is read once at construction and rewritten on every change.
    A missing or unreadable file starts an empty store.
    """

    def __init__(self, filepath: Path | str) -> None:
        self.filepath = Path(filepath)
        self._data: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        if not self.filepath.exists():
            return {}
        try:
            with self.filepath.open() as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read {self.filepath}, starting empty: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"{self.filepath} does not hold a JSON object, starting empty")
            return {}
        return data

    def _save(self) -> None:
        self.filepath.parent.mkdir(parents=True, exist_ok=True)
        with self.filepath.open("w") as f:
            json.dump(self._data, f, indent=JSON_INDENT, default=str)
        logger.debug(f"Wrote {len(self._data)} keys to {self.filepath}")

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._save()

    def remove(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._save()


class DailyFlag:
    """A flag that is only set for the calendar day it was raised on.

    Used for "reminder dismissed today": the stored value is the day string,
    so the flag clears itself when the day changes.
    """

    def __init__(self, store: KeyValueStore, key: str) -> None:
        self.store = store
        self.key = key

    def is_set(self, today: date) -> bool:
        return self.store.get(self.key) == today.strftime(QUERY_DATE_FORMAT)

    def set(self, today: date) -> None:
        self.store.set(self.key, today.strftime(QUERY_DATE_FORMAT))

    def clear(self) -> None:
        self.store.remove(self.key)


class SeenSet:
    """Persistent set of ids, e.g. milestones already celebrated."""

    def __init__(self, store: KeyValueStore, key: str) -> None:
        self.store = store
        self.key = key
        stored = store.get(key, [])
        self._ids: set[str] = {str(item) for item in stored} if isinstance(stored, list) else set()

    def __contains__(self, item: object) -> bool:
        return str(item) in self._ids

    def add(self, item: Any) -> None:
        if str(item) in self._ids:
            return
        self._ids.add(str(item))
        self.store.set(self.key, sorted(self._ids))

    @property
    def ids(self) -> frozenset[str]:
        return frozenset(self._ids)
