"""Pytest configuration and fixtures."""

from datetime import datetime, timezone

import pytest
from pathlib import Path
import tempfile
import shutil

from power_monitor.core.reading import Reading
from power_monitor.notifications.validator import ChannelValidator


PUBLIC_IP = "93.184.216.34"


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test artifacts."""
    dirpath = tempfile.mkdtemp()
    yield Path(dirpath)
    shutil.rmtree(dirpath, ignore_errors=True)


@pytest.fixture
def make_reading():
    """Factory for readings with sensible room fields."""

    def _make(money: float = 20.0, energy: float = 30.0, **kwargs) -> Reading:
        defaults = {
            "remaining_money": money,
            "remaining_energy": energy,
            "meter_room_id": "M220407",
            "room_display_name": "220407",
            "room_id": "8812",
            "building_id": "22",
            "campus_id": "2",
            "room_number": "407",
            "captured_at": datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc),
        }
        defaults.update(kwargs)
        return Reading(**defaults)

    return _make


@pytest.fixture
def public_validator():
    """Validator whose DNS answers every host with a public address."""
    return ChannelValidator(resolver=lambda host: [PUBLIC_IP])
