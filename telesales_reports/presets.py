"""Saved filter presets: persistence, usage tracking, file import/export and share links."""

import base64
import binascii
import json
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Callable
from urllib.parse import parse_qs, urlencode, urlsplit

from loguru import logger

from .constants import (
    ALL_FILTER_VALUE,
    CUSTOM_CATEGORY_ID_PREFIX,
    CUSTOM_PRESET_ID_PREFIX,
    DEFAULT_PRESETS_STORAGE_KEY,
    JSON_INDENT,
    PRESET_EXPORT_VERSION,
    SHARE_LINK_PARAM,
    LogMessage,
    PresetFileKey,
    PresetKey,
    TimePeriod,
)
from .exceptions import CategoryError, PresetImportError
from .models import DateRange, ReportFilter, parse_timestamp
from .storage import KeyValueStore

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class FilterPreset:
    """A named combination of time period and lead status filter.

    Attributes:
        id: Unique id, generated at creation and never reused.
        name: Display name; duplicates are allowed.
        time_period: A TimePeriod value.
        lead_status: Lead/status filter value ("all" for no filter).
        created_at: Creation time.
        category: Optional category id.
        use_count: How many times the preset was applied.
        last_used_at: When the preset was last applied.
    """

    id: str
    name: str
    time_period: str
    lead_status: str
    created_at: datetime
    category: str | None = None
    use_count: int = 0
    last_used_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            PresetKey.ID: self.id,
            PresetKey.NAME: self.name,
            PresetKey.TIME_PERIOD: self.time_period,
            PresetKey.LEAD_STATUS: self.lead_status,
            PresetKey.CREATED_AT: self.created_at.isoformat(),
            PresetKey.USE_COUNT: self.use_count,
        }
        if self.category is not None:
            data[PresetKey.CATEGORY] = self.category
        if self.last_used_at is not None:
            data[PresetKey.LAST_USED_AT] = self.last_used_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FilterPreset":
        """Build a preset from its serialized form.

        ``createdAt`` and ``lastUsedAt`` may be ISO strings or epoch milliseconds.

        Raises:
            PresetImportError: If a required field is missing or malformed.
        """
        if not isinstance(data, dict):
            raise PresetImportError(f"Preset must be an object, got {type(data).__name__}")
        try:
            preset_id = str(data[PresetKey.ID])
            name = str(data[PresetKey.NAME])
            time_period = str(data[PresetKey.TIME_PERIOD])
            lead_status = str(data.get(PresetKey.LEAD_STATUS) or ALL_FILTER_VALUE)
        except KeyError as e:
            raise PresetImportError(f"Preset is missing field {e}") from None

        created_at = parse_timestamp(data.get(PresetKey.CREATED_AT))
        if created_at is None:
            raise PresetImportError(f"Preset {preset_id} has no valid {PresetKey.CREATED_AT}")

        try:
            use_count = int(data.get(PresetKey.USE_COUNT) or 0)
        except (TypeError, ValueError):
            raise PresetImportError(f"Preset {preset_id} has an invalid use count") from None

        category = data.get(PresetKey.CATEGORY)
        return cls(
            id=preset_id,
            name=name,
            time_period=time_period,
            lead_status=lead_status,
            created_at=created_at,
            category=str(category) if category else None,
            use_count=use_count,
            last_used_at=parse_timestamp(data.get(PresetKey.LAST_USED_AT)),
        )

    def to_filter(self, *, today: date) -> ReportFilter:
        """Resolve the preset into a ReportFilter for ``today``."""
        return ReportFilter(
            date_range=DateRange.for_period(self.time_period, today=today),
            status=self.lead_status,
        )


@dataclass(frozen=True)
class BuiltinPreset:
    """Preset shipped with the dashboard; not stored and not editable."""

    name: str
    description: str
    time_period: TimePeriod
    lead_status: str = ALL_FILTER_VALUE


BUILTIN_PRESETS: tuple[BuiltinPreset, ...] = (
    BuiltinPreset("Today's Focus", "All activity today", TimePeriod.TODAY),
    BuiltinPreset("Weekly Review", "This week's performance", TimePeriod.THIS_WEEK),
    BuiltinPreset("Monthly Overview", "Full month analysis", TimePeriod.THIS_MONTH),
    BuiltinPreset("Hot Leads", "Today's matched leads", TimePeriod.TODAY, "matched"),
    BuiltinPreset("Weekly Conversions", "This week's matched leads", TimePeriod.THIS_WEEK, "matched"),
    BuiltinPreset("Needs Follow-up", "Unmatched this week", TimePeriod.THIS_WEEK, "unmatched"),
    BuiltinPreset("6 Month Trend", "Long-term performance", TimePeriod.SIX_MONTHS),
)


@dataclass(frozen=True)
class PresetCategory:
    id: str
    name: str
    is_default: bool = False


DEFAULT_CATEGORIES: tuple[PresetCategory, ...] = (
    PresetCategory("daily", "Daily", is_default=True),
    PresetCategory("weekly", "Weekly", is_default=True),
    PresetCategory("monthly", "Monthly", is_default=True),
)


@dataclass(frozen=True)
class ImportSummary:
    imported: int
    skipped: int


@dataclass
class FilterPresetStore:
    """User presets and categories persisted in a KeyValueStore.

    The preset list is read once at construction and written back after
    every change. Categories live under ``<storage_key>-categories``.

    Attributes:
        store: Persistence backend.
        storage_key: Key the preset list is stored under.
        clock: Returns the current time.
    """

    store: KeyValueStore
    storage_key: str = DEFAULT_PRESETS_STORAGE_KEY
    clock: Clock = datetime.now
    presets: list[FilterPreset] = field(init=False)
    custom_categories: list[PresetCategory] = field(init=False)
    _pending_shared: list[FilterPreset] = field(init=False, default_factory=list)

    def __post_init__(self) -> None:
        self.presets = self._load_presets()
        self.custom_categories = self._load_categories()

    @property
    def categories_key(self) -> str:
        return f"{self.storage_key}-categories"

    def _load_presets(self) -> list[FilterPreset]:
        stored = self.store.get(self.storage_key, [])
        if not isinstance(stored, list):
            logger.warning(f"Ignoring malformed presets under '{self.storage_key}'")
            return []
        presets = []
        for item in stored:
            try:
                presets.append(FilterPreset.from_dict(item))
            except PresetImportError as e:
                logger.warning(f"Skipping stored preset: {e}")
        return presets

    def _load_categories(self) -> list[PresetCategory]:
        stored = self.store.get(self.categories_key, [])
        if not isinstance(stored, list):
            return []
        return [
            PresetCategory(id=str(item["id"]), name=str(item["name"]))
            for item in stored
            if isinstance(item, dict) and "id" in item and "name" in item
        ]

    def _persist(self) -> None:
        self.store.set(self.storage_key, [preset.to_dict() for preset in self.presets])

    def _persist_categories(self) -> None:
        self.store.set(
            self.categories_key,
            [{"id": category.id, "name": category.name} for category in self.custom_categories],
        )

    @staticmethod
    def _new_id(prefix: str = CUSTOM_PRESET_ID_PREFIX) -> str:
        return f"{prefix}{uuid.uuid4().hex}"

    def get_preset(self, preset_id: str) -> FilterPreset | None:
        return next((preset for preset in self.presets if preset.id == preset_id), None)

    def save_preset(
        self,
        *,
        name: str,
        time_period: str,
        lead_status: str = ALL_FILTER_VALUE,
        category: str | None = None,
    ) -> FilterPreset:
        """Append a new preset and persist the list.

        Returns:
            FilterPreset: The created preset.
        """
        preset = FilterPreset(
            id=self._new_id(),
            name=name,
            time_period=time_period,
            lead_status=lead_status,
            created_at=self.clock(),
            category=category,
        )
        self.presets.append(preset)
        self._persist()
        logger.info(f"Saved preset '{name}' ({preset.id})")
        return preset

    def update_preset(self, preset_id: str, **changes: Any) -> FilterPreset | None:
        """Change a preset's fields; ``id`` and ``created_at`` cannot change."""
        changes.pop("id", None)
        changes.pop("created_at", None)
        for index, preset in enumerate(self.presets):
            if preset.id == preset_id:
                updated = replace(preset, **changes)
                self.presets[index] = updated
                self._persist()
                return updated
        return None

    def delete_preset(self, preset_id: str) -> bool:
        remaining = [preset for preset in self.presets if preset.id != preset_id]
        if len(remaining) == len(self.presets):
            return False
        self.presets = remaining
        self._persist()
        return True

    def track_preset_usage(self, preset_id: str) -> FilterPreset | None:
        """Increment the use count and stamp the last use; unknown ids are ignored."""
        preset = self.get_preset(preset_id)
        if preset is None:
            return None
        return self.update_preset(
            preset_id, use_count=preset.use_count + 1, last_used_at=self.clock()
        )

    def duplicate_preset(self, preset_id: str, new_name: str) -> FilterPreset | None:
        """Copy a preset under a new id and name, with usage stats reset."""
        source = self.get_preset(preset_id)
        if source is None:
            return None
        copy = replace(
            source,
            id=self._new_id(),
            name=new_name,
            use_count=0,
            last_used_at=None,
        )
        self.presets.append(copy)
        self._persist()
        return copy

    def most_used_presets(self, limit: int = 5) -> list[FilterPreset]:
        """Presets ever used, most used first, most recently used breaking ties."""
        used = [preset for preset in self.presets if preset.use_count > 0]
        used.sort(
            key=lambda preset: (preset.use_count, preset.last_used_at or datetime.min),
            reverse=True,
        )
        return used[:limit]

    # Import / export

    def export_presets(self) -> str:
        """Serialize every preset into a versioned JSON document."""
        payload = {
            PresetFileKey.VERSION: PRESET_EXPORT_VERSION,
            PresetFileKey.EXPORTED_AT: self.clock().isoformat(),
            PresetFileKey.PRESETS: [preset.to_dict() for preset in self.presets],
        }
        return json.dumps(payload, indent=JSON_INDENT, default=str)

    @staticmethod
    def parse_presets(text: str) -> list[FilterPreset]:
        """Parse an exported presets document, rejecting it wholesale if malformed.

        Accepts either the versioned document or a bare list of presets.

        Raises:
            PresetImportError: If the document or any preset in it is invalid.
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise PresetImportError(f"Invalid presets file: {e}") from e

        if isinstance(data, dict):
            data = data.get(PresetFileKey.PRESETS)
        if not isinstance(data, list):
            raise PresetImportError("Presets file does not contain a preset list")
        return [FilterPreset.from_dict(item) for item in data]

    def add_presets(self, incoming: list[FilterPreset]) -> ImportSummary:
        """Add presets whose id is not already known; existing ids are skipped."""
        known = {preset.id for preset in self.presets}
        imported = 0
        for preset in incoming:
            if preset.id in known:
                continue
            self.presets.append(preset)
            known.add(preset.id)
            imported += 1

        summary = ImportSummary(imported=imported, skipped=len(incoming) - imported)
        if imported:
            self._persist()
        logger.info(LogMessage.IMPORTED_PRESETS.format(summary.imported, summary.skipped))
        return summary

    def import_presets(self, text: str) -> ImportSummary:
        return self.add_presets(self.parse_presets(text))

    # Share links

    @staticmethod
    def encode_presets(presets: list[FilterPreset]) -> str:
        raw = json.dumps([preset.to_dict() for preset in presets], separators=(",", ":"))
        return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")

    @staticmethod
    def decode_presets(payload: str | None) -> list[FilterPreset]:
        """Decode a share-link payload; an empty or absent payload gives no presets.

        Raises:
            PresetImportError: If the payload is present but malformed.
        """
        if not payload or not payload.strip():
            return []
        payload = payload.strip()
        padded = payload + "=" * (-len(payload) % 4)
        try:
            raw = base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
        except (binascii.Error, UnicodeError, ValueError) as e:
            raise PresetImportError(f"Invalid share link payload: {e}") from e
        return FilterPresetStore.parse_presets(raw)

    def generate_share_link(self, base_url: str, preset_ids: list[str] | None = None) -> str:
        """Build a URL carrying the selected presets (all when ``preset_ids`` is None)."""
        presets = (
            self.presets
            if preset_ids is None
            else [preset for preset in self.presets if preset.id in preset_ids]
        )
        separator = "&" if urlsplit(base_url).query else "?"
        query = urlencode({SHARE_LINK_PARAM: self.encode_presets(presets)})
        return f"{base_url}{separator}{query}"

    def load_shared_link(self, url: str) -> list[FilterPreset]:
        """Read the presets carried by a share link into the pending list."""
        values = parse_qs(urlsplit(url).query).get(SHARE_LINK_PARAM, [])
        self._pending_shared = self.decode_presets(values[0] if values else None)
        return list(self._pending_shared)

    def get_pending_shared_presets(self) -> list[FilterPreset]:
        return list(self._pending_shared)

    def accept_pending_shared_presets(self) -> ImportSummary:
        """Import the pending shared presets, then clear them."""
        pending, self._pending_shared = self._pending_shared, []
        return self.add_presets(pending)

    def dismiss_pending_shared_presets(self) -> None:
        self._pending_shared = []

    # Categories

    @property
    def categories(self) -> list[PresetCategory]:
        return list(DEFAULT_CATEGORIES) + self.custom_categories

    def add_category(self, name: str) -> PresetCategory:
        category = PresetCategory(id=self._new_id(CUSTOM_CATEGORY_ID_PREFIX), name=name)
        self.custom_categories.append(category)
        self._persist_categories()
        return category

    def delete_category(self, category_id: str) -> int:
        """Delete a user category; its presets move to "no category".

        Returns:
            int: Number of presets that were reassigned.

        Raises:
            CategoryError: If the category is a default one or does not exist.
        """
        if any(category.id == category_id for category in DEFAULT_CATEGORIES):
            raise CategoryError(f"Default category '{category_id}' cannot be deleted")
        if not any(category.id == category_id for category in self.custom_categories):
            raise CategoryError(f"Unknown category '{category_id}'")

        self.custom_categories = [
            category for category in self.custom_categories if category.id != category_id
        ]
        reassigned = 0
        for index, preset in enumerate(self.presets):
            if preset.category == category_id:
                self.presets[index] = replace(preset, category=None)
                reassigned += 1

        self._persist_categories()
        if reassigned:
            self._persist()
        return reassigned
