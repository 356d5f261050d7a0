"""Telesales report aggregation and export package."""

from .aggregator import AggregationResult, aggregate
from .definitions import REPORTS, ReportDefinition, get_report
from .fetcher import EventFetcher, LatestRequestGate
from .milestones import StreakTracker, get_exact_milestone, get_next_milestone
from .models import DateRange, RawEventRow, ReportFilter, SummaryRow, TotalsRow
from .pipeline import ReportSession, export_report, run_report
from .presets import FilterPreset, FilterPresetStore
from .storage import InMemoryKeyValueStore, JsonFileKeyValueStore

__all__ = [
    "AggregationResult",
    "DateRange",
    "EventFetcher",
    "FilterPreset",
    "FilterPresetStore",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "LatestRequestGate",
    "RawEventRow",
    "REPORTS",
    "ReportDefinition",
    "ReportFilter",
    "ReportSession",
    "StreakTracker",
    "SummaryRow",
    "TotalsRow",
    "aggregate",
    "export_report",
    "get_exact_milestone",
    "get_next_milestone",
    "get_report",
    "run_report",
]
