import sys
from datetime import datetime
from pathlib import Path

import numpy as np
import pytest

# Ensure the project root is on sys.path so the flat modules import in tests.
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from database import DatabaseManager  # noqa: E402
from models import Meal, Restaurant  # noqa: E402

# 2024-01-01 was a Monday
MONDAY_NOON = datetime(2024, 1, 1, 12, 0)


class FixedRandom:
    """Stand-in generator whose random() always returns the same value"""

    def __init__(self, value: float):
        self.value = value

    def random(self):
        return self.value


@pytest.fixture
def db(tmp_path):
    return DatabaseManager(str(tmp_path / "whattoeat_test.db"))


@pytest.fixture
def user_id(db):
    return db.create_user("alex")


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def monday_clock():
    return lambda: MONDAY_NOON


@pytest.fixture
def make_meal(db, user_id):
    def _make(name, **kwargs):
        return db.add_meal(Meal(id=0, user_id=user_id, name=name, **kwargs))
    return _make


@pytest.fixture
def make_restaurant(db, user_id):
    def _make(name, **kwargs):
        return db.add_restaurant(Restaurant(id=0, user_id=user_id, name=name, **kwargs))
    return _make


@pytest.fixture
def fixed_random():
    return FixedRandom


@pytest.fixture
def clock_at():
    """Clock factory: a Monday in January 2024 at the given hour"""
    def _clock(hour):
        moment = MONDAY_NOON.replace(hour=hour)
        return lambda: moment
    return _clock
