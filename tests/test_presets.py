"""Unit tests for the filter preset store and local storage"""

import json
from datetime import date, datetime

import pytest

from telesales_reports.exceptions import CategoryError, PresetImportError
from telesales_reports.presets import FilterPreset, FilterPresetStore
from telesales_reports.storage import DailyFlag, InMemoryKeyValueStore, JsonFileKeyValueStore, SeenSet


def _store(memory_store, clock) -> FilterPresetStore:
    return FilterPresetStore(store=memory_store, storage_key="presets", clock=clock)


def test_saved_presets_survive_a_reload(memory_store, clock):
    """Test presets are persisted and read back unchanged"""
    store = _store(memory_store, clock)
    first = store.save_preset(name="Weekly RAK", time_period="this_week", lead_status="matched")
    second = store.save_preset(name="Weekly RAK", time_period="today", category="daily")

    reloaded = _store(memory_store, clock)

    assert reloaded.presets == [first, second]
    assert first.id != second.id
    assert first.id.startswith("custom-")


def test_duplicate_preset_resets_usage(memory_store, clock):
    """Test a copy gets a new id and name, zero uses and no last use"""
    store = _store(memory_store, clock)
    original = store.save_preset(name="p1", time_period="this_month", lead_status="matched", category="monthly")
    store.track_preset_usage(original.id)
    used = store.get_preset(original.id)

    copy = store.duplicate_preset(original.id, "Copy")

    assert copy.id != used.id
    assert copy.name == "Copy"
    assert copy.use_count == 0
    assert copy.last_used_at is None
    assert (copy.time_period, copy.lead_status, copy.category, copy.created_at) == (
        used.time_period,
        used.lead_status,
        used.category,
        used.created_at,
    )
    assert store.duplicate_preset("missing", "Copy") is None


def test_track_usage_counts_and_ignores_unknown_ids(memory_store, clock):
    """Test usage tracking increments the count and stamps the time"""
    store = _store(memory_store, clock)
    preset = store.save_preset(name="Today", time_period="today")

    store.track_preset_usage(preset.id)
    tracked = store.track_preset_usage(preset.id)

    assert tracked.use_count == 2
    assert tracked.last_used_at is not None
    assert store.track_preset_usage("missing") is None
    assert store.most_used_presets() == [tracked]


def test_update_and_delete(memory_store, clock):
    """Test editing keeps id and creation time, deleting removes the preset"""
    store = _store(memory_store, clock)
    preset = store.save_preset(name="Old", time_period="today")

    updated = store.update_preset(preset.id, name="New", id="hijack")

    assert updated.id == preset.id
    assert updated.name == "New"
    assert store.delete_preset(preset.id)
    assert not store.delete_preset(preset.id)
    assert store.presets == []


def test_import_skips_existing_ids(memory_store, clock):
    """Test importing an export skips presets already present"""
    store = _store(memory_store, clock)
    store.save_preset(name="A", time_period="today")
    store.save_preset(name="B", time_period="this_week")
    exported = store.export_presets()

    assert json.loads(exported)["version"] == 1

    again = store.import_presets(exported)
    assert (again.imported, again.skipped) == (0, 2)

    fresh = FilterPresetStore(store=InMemoryKeyValueStore(), clock=clock)
    summary = fresh.import_presets(exported)
    assert (summary.imported, summary.skipped) == (2, 0)
    assert fresh.presets == store.presets


def test_malformed_import_is_rejected_wholesale(memory_store, clock):
    """Test one bad preset rejects the whole file"""
    store = _store(memory_store, clock)
    payload = json.dumps(
        {
            "version": 1,
            "presets": [
                {"id": "custom-1", "name": "ok", "timePeriod": "today", "createdAt": 1704067200000},
                {"id": "custom-2", "timePeriod": "today"},
            ],
        }
    )

    with pytest.raises(PresetImportError):
        store.import_presets(payload)
    with pytest.raises(PresetImportError):
        store.import_presets("not json")
    assert store.presets == []


def test_epoch_millisecond_created_at_is_accepted():
    """Test presets saved with millisecond timestamps load"""
    preset = FilterPreset.from_dict(
        {"id": "custom-1", "name": "Legacy", "timePeriod": "today", "leadStatus": "all", "createdAt": 1704067200000}
    )

    assert preset.use_count == 0
    assert preset.category is None
    assert isinstance(preset.created_at, datetime)


def test_share_link_round_trip(memory_store, clock):
    """Test presets encoded in a link decode losslessly and are consumed once"""
    sender = _store(memory_store, clock)
    sender.save_preset(name="Hot Leads", time_period="today", lead_status="matched", category="daily")
    sender.track_preset_usage(sender.presets[0].id)
    link = sender.generate_share_link("https://dash.example.com/dashboard")

    assert link.startswith("https://dash.example.com/dashboard?presets=")

    receiver = FilterPresetStore(store=InMemoryKeyValueStore(), clock=clock)
    pending = receiver.load_shared_link(link)

    assert pending == sender.presets
    assert receiver.get_pending_shared_presets() == pending

    summary = receiver.accept_pending_shared_presets()
    assert summary.imported == 1
    assert receiver.get_pending_shared_presets() == []
    assert receiver.accept_pending_shared_presets().imported == 0


def test_empty_share_payload_yields_nothing(memory_store, clock):
    """Test links without a payload are not an error"""
    store = _store(memory_store, clock)

    assert store.load_shared_link("https://dash.example.com/dashboard") == []
    assert store.load_shared_link("https://dash.example.com/dashboard?presets=") == []
    with pytest.raises(PresetImportError):
        store.load_shared_link("https://dash.example.com/dashboard?presets=%25%25%25")


def test_categories(memory_store, clock):
    """Test default categories are protected and deleting a user category unassigns presets"""
    store = _store(memory_store, clock)
    category = store.add_category("Campaigns")
    preset = store.save_preset(name="Q1", time_period="this_month", category=category.id)

    with pytest.raises(CategoryError):
        store.delete_category("daily")
    with pytest.raises(CategoryError):
        store.delete_category("category-missing")

    assert store.delete_category(category.id) == 1
    assert store.get_preset(preset.id).category is None
    assert [c.id for c in _store(memory_store, clock).categories] == ["daily", "weekly", "monthly"]


def test_preset_resolves_to_report_filter(memory_store, clock):
    """Test a preset becomes a date range plus status filter"""
    preset = _store(memory_store, clock).save_preset(
        name="Weekly", time_period="this_week", lead_status="matched"
    )

    report_filter = preset.to_filter(today=date(2024, 1, 10))

    assert report_filter.date_range.start == date(2024, 1, 8)
    assert report_filter.status == "matched"


def test_json_file_store_persists(tmp_path):
    """Test values written to the JSON store are read back by a new instance"""
    path = tmp_path / "state.json"
    JsonFileKeyValueStore(path).set("key", [1, 2])

    store = JsonFileKeyValueStore(path)
    assert store.get("key") == [1, 2]
    store.remove("key")
    assert JsonFileKeyValueStore(path).get("key") is None


def test_daily_flag_and_seen_set(memory_store):
    """Test a daily flag clears on the next day and seen ids persist"""
    flag = DailyFlag(memory_store, "dismissed")
    flag.set(date(2024, 1, 5))

    assert flag.is_set(date(2024, 1, 5))
    assert not flag.is_set(date(2024, 1, 6))

    SeenSet(memory_store, "seen").add("streak-7")
    assert "streak-7" in SeenSet(memory_store, "seen")
