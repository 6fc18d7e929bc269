"""
Tests for the suggestion engine.
"""
import sqlite3
from collections import Counter
from datetime import datetime
from unittest.mock import MagicMock

import numpy as np
import pytest

from models import SearchFilters, SelectionOptions
from opening_hours import schedule_with_closed_days
from suggestion_engine import SuggestionEngine


@pytest.fixture
def engine(db, rng, monday_clock):
    return SuggestionEngine(db, rng=rng, clock=monday_clock)


# Meals

def test_pick_random_meal_empty_catalog(engine, user_id):
    """Test an empty catalog gives None."""
    assert engine.pick_random_meal(user_id) is None


def test_pick_random_meal_skips_recent(engine, db, user_id, make_meal):
    """Test recently picked meals are avoided while others remain."""
    meals = [make_meal(f"Meal {i}") for i in range(3)]
    db.append_selection(user_id, 'meal', meals[0].id)
    db.append_selection(user_id, 'meal', meals[1].id)

    for _ in range(20):
        assert engine.pick_random_meal(user_id).id == meals[2].id


def test_pick_random_meal_all_recent_still_picks(engine, db, user_id, make_meal):
    """Test recency is relaxed before giving up."""
    meals = [make_meal(f"Meal {i}") for i in range(3)]
    for meal in meals:
        db.append_selection(user_id, 'meal', meal.id)

    picked = engine.pick_random_meal(user_id)
    assert picked is not None
    assert picked.id in {m.id for m in meals}


def test_pick_random_meal_zero_day_window(engine, db, user_id, make_meal):
    """Test a zero-day window excludes nothing."""
    only = make_meal("Omelette")
    db.append_selection(user_id, 'meal', only.id, selected_at=datetime(2024, 1, 1, 11))
    other = make_meal("Salad")

    picks = {engine.pick_random_meal(user_id, exclude_recent_days=0).id for _ in range(40)}
    assert picks == {only.id, other.id}


def test_pick_random_meal_filters_are_strict(engine, user_id, make_meal):
    """Test filters are never relaxed."""
    make_meal("Lasagna", cuisine_type='italian')
    assert engine.pick_random_meal(user_id, filters=SearchFilters(cuisine_type='thai')) is None


# Restaurants

def test_pick_random_restaurant_empty_catalog(engine, user_id):
    """Test an empty restaurant catalog gives None."""
    assert engine.pick_random_restaurant(user_id) is None


def test_restaurant_prefers_unvisited_and_open(engine, db, user_id, make_restaurant):
    """Test the first stage wants both not-recent and open today."""
    recent_open = make_restaurant("Recent")
    fresh_closed = make_restaurant("Closed Mondays", opening_hours=schedule_with_closed_days(['monday']))
    fresh_open = make_restaurant("Fresh")
    db.append_selection(user_id, 'restaurant', recent_open.id)

    for _ in range(20):
        assert engine.pick_random_restaurant(user_id).id == fresh_open.id


def test_restaurant_relaxes_opening_hours_before_recency(engine, db, user_id, make_restaurant):
    """Test a closed but unvisited restaurant beats an open recent one."""
    recent_open = make_restaurant("Recent")
    fresh_closed = make_restaurant("Closed Mondays", opening_hours=schedule_with_closed_days(['monday']))
    db.append_selection(user_id, 'restaurant', recent_open.id)

    for _ in range(20):
        assert engine.pick_random_restaurant(user_id).id == fresh_closed.id


def test_restaurant_relaxes_recency_keeping_open(engine, db, user_id, make_restaurant):
    """Test with everything recent, open restaurants still win."""
    recent_open = make_restaurant("Open")
    recent_closed = make_restaurant("Closed Mondays", opening_hours=schedule_with_closed_days(['monday']))
    db.append_selection(user_id, 'restaurant', recent_open.id)
    db.append_selection(user_id, 'restaurant', recent_closed.id)

    for _ in range(20):
        assert engine.pick_random_restaurant(user_id).id == recent_open.id


def test_restaurant_all_recent_and_closed_still_picks(engine, db, user_id, make_restaurant):
    """Test both constraints relax before giving up."""
    closed = schedule_with_closed_days(['monday'])
    restaurants = [make_restaurant(f"Place {i}", opening_hours=closed) for i in range(3)]
    for restaurant in restaurants:
        db.append_selection(user_id, 'restaurant', restaurant.id)

    picked = engine.pick_random_restaurant(user_id)
    assert picked is not None
    assert picked.id in {r.id for r in restaurants}


def test_restaurant_open_day_follows_clock(db, user_id, rng, make_restaurant):
    """Test the opening check uses the injected clock's weekday."""
    closed_monday = make_restaurant("Closed Mondays", opening_hours=schedule_with_closed_days(['monday']))
    closed_tuesday = make_restaurant("Closed Tuesdays", opening_hours=schedule_with_closed_days(['tuesday']))

    monday = SuggestionEngine(db, rng=rng, clock=lambda: datetime(2024, 1, 1, 12))
    tuesday = SuggestionEngine(db, rng=rng, clock=lambda: datetime(2024, 1, 2, 12))
    for _ in range(10):
        assert monday.pick_random_restaurant(user_id).id == closed_tuesday.id
        assert tuesday.pick_random_restaurant(user_id).id == closed_monday.id


# Preferred type

def test_pick_suggestion_follows_preferred_type(engine, db, user_id, make_meal, make_restaurant):
    """Test an explicit preferred type is always honored."""
    make_meal("Soup")
    make_restaurant("Bistro")
    db.update_user_preferences(user_id, {'preferred_suggestion_type': 'restaurant'})

    for _ in range(10):
        assert engine.pick_suggestion(user_id).type == 'restaurant'


def test_pick_suggestion_random_mixes_types(engine, user_id, make_meal, make_restaurant):
    """Test random preference yields both types."""
    make_meal("Soup")
    make_restaurant("Bistro")

    types = Counter(engine.pick_suggestion(user_id).type for _ in range(200))
    assert types['meal'] > 50
    assert types['restaurant'] > 50


def test_pick_suggestion_no_fallback_to_other_type(engine, db, user_id, make_restaurant):
    """Test an empty preferred catalog gives None even when the other has items."""
    make_restaurant("Bistro")
    db.update_user_preferences(user_id, {'preferred_suggestion_type': 'meal'})
    assert engine.pick_suggestion(user_id) is None


# Multiple

def test_pick_multiple_clamps_meal_count(engine, db, user_id, make_meal, make_restaurant):
    """Test at most three meals plus one restaurant."""
    for i in range(5):
        make_meal(f"Meal {i}")
    make_restaurant("Bistro")
    db.update_user_preferences(user_id, {'meal_suggestion_count': 10})

    suggestions = engine.pick_multiple_suggestions(user_id)
    assert [s.type for s in suggestions] == ['meal', 'meal', 'meal', 'restaurant']


def test_pick_multiple_defaults_to_one_meal(engine, user_id, make_meal, make_restaurant):
    """Test the default batch is one meal and one restaurant."""
    make_meal("Soup")
    make_restaurant("Bistro")
    assert [s.type for s in engine.pick_multiple_suggestions(user_id)] == ['meal', 'restaurant']


def test_pick_multiple_with_non_numeric_count(engine, db, user_id, make_meal, make_restaurant):
    """Test an unusable stored meal count reads as no preference."""
    make_meal("Soup")
    make_restaurant("Bistro")
    db.update_user_preferences(user_id, {'meal_suggestion_count': 'two'})

    assert [s.type for s in engine.pick_multiple_suggestions(user_id)] == ['meal', 'restaurant']


def test_pick_multiple_skips_empty_types(engine, user_id, make_restaurant):
    """Test failed picks are left out of the list."""
    make_restaurant("Bistro")
    assert [s.type for s in engine.pick_multiple_suggestions(user_id)] == ['restaurant']


# Time based

def test_breakfast_filters_easy_quick_meals(db, user_id, rng, clock_at, make_meal):
    """Test hour 7 only considers easy meals within 30 minutes."""
    make_meal("Beef Wellington", difficulty_level='hard', prep_time=20)
    engine = SuggestionEngine(db, rng=rng, clock=clock_at(7))

    assert engine.pick_time_based_suggestion(user_id) is None

    toast = make_meal("Toast", difficulty_level='easy', prep_time=5)
    suggestion = engine.pick_time_based_suggestion(user_id)
    assert suggestion.type == 'meal'
    assert suggestion.item_id == toast.id


def test_lunch_goes_out_on_low_roll(db, user_id, clock_at, fixed_random, make_meal, make_restaurant):
    """Test lunch picks a restaurant when the roll is under 0.7."""
    make_meal("Sandwich", prep_time=10)
    make_restaurant("Deli")
    engine = SuggestionEngine(db, rng=fixed_random(0.5), clock=clock_at(12))

    assert engine.pick_time_based_suggestion(user_id).type == 'restaurant'


def test_lunch_cooks_quick_meal_on_high_roll(db, user_id, clock_at, fixed_random, make_meal, make_restaurant):
    """Test lunch meals are capped at 45 minutes."""
    make_meal("Roast", prep_time=90)
    sandwich = make_meal("Sandwich", prep_time=10)
    make_restaurant("Deli")
    engine = SuggestionEngine(db, rng=fixed_random(0.9), clock=clock_at(13))

    suggestion = engine.pick_time_based_suggestion(user_id)
    assert suggestion.type == 'meal'
    assert suggestion.item_id == sandwich.id


@pytest.mark.parametrize("roll, expected", [(0.3, 'restaurant'), (0.5, 'meal')])
def test_dinner_split(db, user_id, clock_at, fixed_random, make_meal, make_restaurant, roll, expected):
    """Test dinner goes out 40% of the time."""
    make_meal("Roast", prep_time=90)
    make_restaurant("Steakhouse")
    engine = SuggestionEngine(db, rng=fixed_random(roll), clock=clock_at(19))

    assert engine.pick_time_based_suggestion(user_id).type == expected


def test_off_hours_use_preferred_type(db, user_id, rng, clock_at, make_meal, make_restaurant):
    """Test hours outside the meal windows defer to the user's preference."""
    make_meal("Snack")
    make_restaurant("Late Night Diner")
    db.update_user_preferences(user_id, {'preferred_suggestion_type': 'restaurant'})

    for hour in (3, 10, 15, 22):
        engine = SuggestionEngine(db, rng=rng, clock=clock_at(hour))
        assert engine.pick_time_based_suggestion(user_id).type == 'restaurant'


@pytest.mark.parametrize("hour, expected", [
    (5, 'meal'), (6, None), (9, None), (10, 'meal'),
    (11, 'restaurant'), (13, 'restaurant'), (14, 'meal'),
    (16, 'meal'), (17, 'restaurant'), (20, 'restaurant'), (21, 'meal'),
])
def test_time_bucket_edges(db, user_id, clock_at, fixed_random, make_meal, make_restaurant, hour, expected):
    """Test bucket hours are half-open: start included, end excluded."""
    make_meal("Braised short ribs", difficulty_level='hard', prep_time=180)
    make_restaurant("Corner Bistro")
    db.update_user_preferences(user_id, {'preferred_suggestion_type': 'meal'})
    engine = SuggestionEngine(db, rng=fixed_random(0.3), clock=clock_at(hour))

    suggestion = engine.pick_time_based_suggestion(user_id)
    assert (suggestion.type if suggestion else None) == expected


# Clock

def test_recency_window_follows_clock(db, user_id, rng, make_meal):
    """Test the recency window is measured from the injected clock."""
    stale = make_meal("Stale")
    fresh = make_meal("Fresh")
    db.append_selection(user_id, 'meal', stale.id, selected_at=datetime(2024, 1, 1, 12))
    db.append_selection(user_id, 'meal', fresh.id, selected_at=datetime(2024, 1, 9, 12))
    engine = SuggestionEngine(db, rng=rng, clock=lambda: datetime(2024, 1, 10, 12))

    for _ in range(10):
        assert engine.pick_random_meal(user_id).id == stale.id


def test_restaurant_recency_follows_clock(db, user_id, rng, make_restaurant):
    """Test restaurant recency uses the same clock as the weekday check."""
    visited = make_restaurant("Visited")
    other = make_restaurant("Other")
    db.append_selection(user_id, 'restaurant', visited.id, selected_at=datetime(2024, 1, 1, 11))

    engine = SuggestionEngine(db, rng=rng, clock=lambda: datetime(2024, 1, 1, 12))
    for _ in range(10):
        assert engine.pick_random_restaurant(user_id).id == other.id

    later = SuggestionEngine(db, rng=rng, clock=lambda: datetime(2024, 2, 1, 12))
    assert {later.pick_random_restaurant(user_id).id for _ in range(40)} == {visited.id, other.id}


def test_record_selection_uses_clock(engine, user_id, make_meal):
    """Test recorded picks are stamped with the engine's clock."""
    meal = make_meal("Soup")
    record = engine.record_selection(user_id, 'meal', meal.id)
    assert record.selected_at == datetime(2024, 1, 1, 12)


# Diverse

def test_diverse_suggestions_vary_cuisine(db, user_id, make_meal):
    """Test diverse picks mostly land on different cuisines."""
    for cuisine in ('italian', 'thai', 'mexican'):
        make_meal(f"{cuisine} dish", cuisine_type=cuisine)
    db.update_user_preferences(user_id, {'preferred_suggestion_type': 'meal'})
    engine = SuggestionEngine(db, rng=np.random.default_rng(2024))

    varied = 0
    for _ in range(50):
        suggestions = engine.pick_diverse_suggestions(user_id, 3)
        assert len(suggestions) == 3
        assert all(s is not None for s in suggestions)
        if len({s.cuisine_type for s in suggestions}) >= 2:
            varied += 1

    assert varied >= 45


def test_diverse_suggestions_hold_none_for_failed_slots(engine, user_id):
    """Test an empty catalog gives one None per slot."""
    assert engine.pick_diverse_suggestions(user_id, 3) == [None, None, None]


def test_diverse_suggestions_single_cuisine(engine, db, user_id, make_meal):
    """Test retries give up and keep a repeat when only one cuisine exists."""
    make_meal("Pizza", cuisine_type='italian')
    make_meal("Pasta", cuisine_type='italian')
    db.update_user_preferences(user_id, {'preferred_suggestion_type': 'meal'})

    suggestions = engine.pick_diverse_suggestions(user_id, 2)
    assert [s.cuisine_type for s in suggestions] == ['italian', 'italian']


# Quick, record and personalized

def test_quick_suggestions(engine, db, user_id, make_meal, make_restaurant):
    """Test the four quick suggestion slots."""
    toast = make_meal("Toast", difficulty_level='easy', prep_time=5)
    make_meal("Stew", difficulty_level='hard', prep_time=180)
    favorite = make_restaurant("Old Favorite", is_favorite=True)
    make_restaurant("Somewhere")

    quick = engine.pick_quick_suggestions(user_id)

    assert set(quick) == {'quick_meal', 'favorite_restaurant', 'random_suggestion', 'time_based_suggestion'}
    assert quick['quick_meal'].item_id == toast.id
    assert quick['favorite_restaurant'].item_id == favorite.id
    assert quick['random_suggestion'] is not None


def test_record_selection_excludes_next_pick(engine, user_id, make_meal):
    """Test a recorded meal is avoided afterwards."""
    first = make_meal("First")
    second = make_meal("Second")

    record = engine.record_selection(user_id, 'meal', first.id)
    assert record.item_id == first.id

    for _ in range(10):
        assert engine.pick_random_meal(user_id).id == second.id


def test_personalized_suggestions_use_preferences(engine, db, user_id, make_meal, make_restaurant):
    """Test personalized lists apply preference filters, newest first."""
    make_meal("Tacos", cuisine_type='mexican')
    older = make_meal("Pad thai", cuisine_type='thai')
    newer = make_meal("Green curry", cuisine_type='thai')
    make_restaurant("Thai House", cuisine_type='thai', rating=4.5)
    make_restaurant("Thai Express", cuisine_type='thai', rating=3.0)
    db.update_user_preferences(user_id, {'preferred_cuisine_type': 'thai', 'min_rating': 4.0})

    result = engine.get_personalized_suggestions(user_id, limit=5)

    assert [m.id for m in result['meals']] == [newer.id, older.id]
    assert [r.name for r in result['restaurants']] == ["Thai House"]


# Collaborator failures

def test_read_errors_propagate(rng):
    """Test storage errors are not swallowed."""
    db = MagicMock()
    db.get_recent_item_ids.return_value = set()
    db.query_items.side_effect = sqlite3.OperationalError("disk I/O error")
    engine = SuggestionEngine(db, rng=rng)

    with pytest.raises(sqlite3.OperationalError):
        engine.pick_random_meal(1)
    with pytest.raises(sqlite3.OperationalError):
        engine.pick_random_restaurant(1)


def test_write_errors_propagate(rng):
    """Test a failed history write surfaces to the caller."""
    db = MagicMock()
    db.append_selection.side_effect = sqlite3.OperationalError("database is locked")
    engine = SuggestionEngine(db, rng=rng)

    with pytest.raises(sqlite3.OperationalError):
        engine.record_selection(1, 'meal', 5)


def test_options_pass_through(rng):
    """Test selection options reach the catalog query."""
    db = MagicMock()
    db.get_recent_item_ids.return_value = set()
    db.query_items.return_value = []
    db.get_user_preferences.return_value.preferred_suggestion_type = 'meal'
    moment = datetime(2024, 1, 1, 12)
    engine = SuggestionEngine(db, rng=rng, clock=lambda: moment, candidate_limit=50)
    filters = SearchFilters(cuisine_type='thai')

    assert engine.pick_suggestion(7, SelectionOptions(exclude_recent_days=3, filters=filters)) is None
    db.get_recent_item_ids.assert_called_once_with(7, 'meal', 3, now=moment)
    db.query_items.assert_called_once_with(7, 'meal', filters, 50)
