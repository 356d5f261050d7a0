"""Pytest fixtures for testing"""

import sys
from datetime import datetime

import pytest
from loguru import logger

from telesales_reports.storage import InMemoryKeyValueStore


@pytest.fixture(autouse=True)
def reset_logger():
    """Restore the default sink after tests that reconfigure logging"""
    yield
    logger.remove()
    logger.add(sys.stderr)


@pytest.fixture
def bank_records() -> list[dict]:
    """Three submissions over two days and two banks"""
    return [
        {"submission_date": "2024-01-01", "bank_name": "RAK", "status": "approved", "agent_id": "a1"},
        {"submission_date": "2024-01-01", "bank_name": "RAK", "status": "rejected", "agent_id": "a2"},
        {"submission_date": "2024-01-02", "bank_name": "NBF", "status": "pending", "agent_id": "a1"},
    ]


@pytest.fixture
def call_records() -> list[dict]:
    """Call feedback for two agents, in local time"""
    return [
        {
            "agent_id": "a1",
            "feedback_status": "interested",
            "call_timestamp": "2024-01-05T09:15:00",
            "whatsapp_sent": True,
        },
        {
            "agent_id": "a1",
            "feedback_status": "not_answered",
            "call_timestamp": "2024-01-05T10:00:00",
            "whatsapp_sent": False,
        },
        {
            "agent_id": "a2",
            "feedback_status": "interested",
            "call_timestamp": None,
            "created_at": "2024-01-05T11:30:00",
            "whatsapp_sent": "true",
        },
        {
            "agent_id": "a2",
            "feedback_status": "voicemail",
            "call_timestamp": "2024-01-06T08:00:00",
            "whatsapp_sent": False,
        },
    ]


@pytest.fixture
def profiles() -> list[dict]:
    """Team members, one without calls"""
    return [
        {"id": "a1", "full_name": "Alice Khan", "username": "alice"},
        {"id": "a2", "full_name": None, "username": "bilal"},
        {"id": "a3", "full_name": "Chen Wei", "username": "chen"},
    ]


@pytest.fixture
def memory_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


class FakeClock:
    """Clock that advances one minute per call"""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current.replace(minute=(self.current.minute + 1) % 60)
        return value


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 1, 5, 9, 0))
