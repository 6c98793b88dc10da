"""
Shared test fixtures
Points config, logs and the database at a throwaway directory before daytrace is imported
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone

# get_logger() runs at import time and creates the log directory
os.environ["DAYTRACE_CONFIG_DIR"] = tempfile.mkdtemp(prefix="daytrace-tests-")

import pytest

from daytrace.models.evidence import GeoPoint, LocationSample, ScreenSession, UserPlace

# Tuesday
HOUR_START = datetime(2024, 5, 14, 10, 0, tzinfo=timezone.utc)

HOME = UserPlace(
    id="place-home",
    label="Home",
    category="home",
    centroid=GeoPoint(latitude=37.7749, longitude=-122.4194),
)
OFFICE = UserPlace(
    id="place-office",
    label="Office",
    category="work",
    centroid=GeoPoint(latitude=37.7900, longitude=-122.4000),
)


def at(minutes: float, base: datetime = HOUR_START) -> datetime:
    return base + timedelta(minutes=minutes)


def dwell_samples(place: UserPlace, start_min: float, end_min: float, every_min: float = 5):
    """Stationary samples on top of ``place`` every ``every_min`` minutes"""
    samples = []
    minute = start_min
    while minute <= end_min:
        samples.append(
            LocationSample(
                timestamp=at(minute),
                latitude=place.centroid.latitude,
                longitude=place.centroid.longitude,
            )
        )
        minute += every_min
    return samples


def session(app_id: str, name: str, start_min: float, end_min: float, base: datetime = HOUR_START):
    return ScreenSession(app_id=app_id, display_name=name, start=at(start_min, base), end=at(end_min, base))


@pytest.fixture
def places():
    return [HOME, OFFICE]
