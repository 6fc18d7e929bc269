"""
suggestion_engine.py
Picks what to eat next from the user's meals and restaurants
"""

import logging
from typing import Callable, Dict, List, Optional, Set
from datetime import datetime

import numpy as np

from models import (
    Meal, Restaurant, Suggestion, SearchFilters, SelectionOptions,
    ITEM_TYPE_MEAL, ITEM_TYPE_RESTAURANT, SUGGESTION_TYPE_RANDOM,
)
from opening_hours import is_open_on_day, weekday_name
from preference_analyzer import PreferenceAnalyzer
from weighted_sampler import WeightedSampler

logger = logging.getLogger(__name__)

DEFAULT_CANDIDATE_LIMIT = 1000
MAX_DIVERSITY_ATTEMPTS = 3

# Time-of-day buckets, hours are [start, end)
BREAKFAST_HOURS = (6, 10)
LUNCH_HOURS = (11, 14)
DINNER_HOURS = (17, 21)
LUNCH_RESTAURANT_CHANCE = 0.7
DINNER_RESTAURANT_CHANCE = 0.4
TIME_BASED_EXCLUDE_DAYS = 7


class SuggestionEngine:
    """Random suggestion engine over a user's catalog and selection history.

    Holds no state between calls: every operation re-reads the catalog and
    the selection history through the collaborator. Collaborator errors are
    not caught here; an empty catalog is reported as None or an empty list.
    The injected clock is the single notion of "now": it drives the recency
    window, recorded selection times, the weekday and the hour.
    """

    def __init__(self, db_manager, rng: Optional[np.random.Generator] = None,
                 clock: Optional[Callable[[], datetime]] = None,
                 candidate_limit: int = DEFAULT_CANDIDATE_LIMIT):
        self.db_manager = db_manager
        self.rng = rng if rng is not None else np.random.default_rng()
        self.sampler = WeightedSampler(self.rng)
        self.clock = clock or datetime.now
        self.candidate_limit = candidate_limit
        self.preference_analyzer = PreferenceAnalyzer(db_manager)

    def pick_random_meal(self, user_id: int, exclude_recent_days: int = 7,
                         weight_favorites: bool = True,
                         filters: Optional[SearchFilters] = None) -> Optional[Meal]:
        """Pick a meal, avoiding recent picks when possible"""
        recent_ids = self.db_manager.get_recent_item_ids(user_id, ITEM_TYPE_MEAL, exclude_recent_days,
                                                         now=self.clock())
        meals = self.db_manager.query_items(user_id, ITEM_TYPE_MEAL, filters or SearchFilters(),
                                            self.candidate_limit)

        if not meals:
            logger.info(f"No meals match the filters for user {user_id}")
            return None

        eligible = [m for m in meals if m.id not in recent_ids]
        if not eligible:
            logger.debug(f"All {len(meals)} meals picked recently, ignoring recency")
            eligible = meals

        return self.sampler.sample(eligible, weight_favorites)

    def pick_random_restaurant(self, user_id: int, exclude_recent_days: int = 7,
                               weight_favorites: bool = True,
                               filters: Optional[SearchFilters] = None) -> Optional[Restaurant]:
        """Pick a restaurant.

        Constraints are relaxed in order until a candidate remains: recency
        and opening day, then opening day only, then recency only, then the
        whole filtered catalog.
        """
        now = self.clock()
        recent_ids = self.db_manager.get_recent_item_ids(user_id, ITEM_TYPE_RESTAURANT, exclude_recent_days,
                                                         now=now)
        restaurants = self.db_manager.query_items(user_id, ITEM_TYPE_RESTAURANT, filters or SearchFilters(),
                                                  self.candidate_limit)

        if not restaurants:
            logger.info(f"No restaurants match the filters for user {user_id}")
            return None

        today = weekday_name(now)
        eligible = [r for r in restaurants if r.id not in recent_ids]
        open_eligible = [r for r in eligible if is_open_on_day(r.opening_hours, today)]

        if open_eligible:
            return self.sampler.sample(open_eligible, weight_favorites)

        if eligible:
            logger.debug(f"No eligible restaurant open on {today}, ignoring opening hours")
            return self.sampler.sample(eligible, weight_favorites)

        open_all = [r for r in restaurants if is_open_on_day(r.opening_hours, today)]
        if open_all:
            logger.debug("All restaurants picked recently, ignoring recency")
            return self.sampler.sample(open_all, weight_favorites)

        logger.debug(f"Nothing eligible or open on {today}, sampling the full catalog")
        return self.sampler.sample(restaurants, weight_favorites)

    def pick_of_type(self, user_id: int, item_type: str,
                     options: SelectionOptions) -> Optional[Suggestion]:
        """Pick a meal or a restaurant and wrap it as a Suggestion"""
        if item_type == ITEM_TYPE_MEAL:
            meal = self.pick_random_meal(user_id, options.exclude_recent_days,
                                         options.weight_favorites, options.filters)
            return Suggestion.for_meal(meal) if meal else None

        restaurant = self.pick_random_restaurant(user_id, options.exclude_recent_days,
                                                 options.weight_favorites, options.filters)
        return Suggestion.for_restaurant(restaurant) if restaurant else None

    def pick_suggestion(self, user_id: int,
                        options: Optional[SelectionOptions] = None) -> Optional[Suggestion]:
        """Pick a meal or a restaurant according to the user's preferred type"""
        options = options or SelectionOptions()
        preferred_type = self.db_manager.get_user_preferences(user_id).preferred_suggestion_type

        if preferred_type == SUGGESTION_TYPE_RANDOM:
            item_type = ITEM_TYPE_MEAL if self.rng.random() < 0.5 else ITEM_TYPE_RESTAURANT
        else:
            item_type = preferred_type

        return self.pick_of_type(user_id, item_type, options)

    def pick_multiple_suggestions(self, user_id: int,
                                  options: Optional[SelectionOptions] = None) -> List[Suggestion]:
        """Up to three meal suggestions plus one restaurant suggestion.

        Meal picks are independent, so the same meal can appear twice.
        """
        options = options or SelectionOptions()
        meal_count = self.db_manager.get_user_preferences(user_id).resolved_meal_suggestion_count()

        suggestions = []
        for _ in range(meal_count):
            suggestion = self.pick_of_type(user_id, ITEM_TYPE_MEAL, options)
            if suggestion:
                suggestions.append(suggestion)

        suggestion = self.pick_of_type(user_id, ITEM_TYPE_RESTAURANT, options)
        if suggestion:
            suggestions.append(suggestion)

        return suggestions

    def pick_time_based_suggestion(self, user_id: int) -> Optional[Suggestion]:
        """Suggestion shaped by the current hour: quick breakfasts, lunch out, dinner in"""
        hour = self.clock().hour

        def options(**filters) -> SelectionOptions:
            return SelectionOptions(exclude_recent_days=TIME_BASED_EXCLUDE_DAYS, weight_favorites=True,
                                    filters=SearchFilters(**filters))

        if BREAKFAST_HOURS[0] <= hour < BREAKFAST_HOURS[1]:
            return self.pick_of_type(user_id, ITEM_TYPE_MEAL,
                                      options(difficulty_level='easy', prep_time_max=30))

        if LUNCH_HOURS[0] <= hour < LUNCH_HOURS[1]:
            if self.rng.random() < LUNCH_RESTAURANT_CHANCE:
                return self.pick_of_type(user_id, ITEM_TYPE_RESTAURANT, options())
            return self.pick_of_type(user_id, ITEM_TYPE_MEAL, options(prep_time_max=45))

        if DINNER_HOURS[0] <= hour < DINNER_HOURS[1]:
            if self.rng.random() < DINNER_RESTAURANT_CHANCE:
                return self.pick_of_type(user_id, ITEM_TYPE_RESTAURANT, options())
            return self.pick_of_type(user_id, ITEM_TYPE_MEAL, options())

        return self.pick_suggestion(user_id)

    def pick_diverse_suggestions(self, user_id: int, count: int = 3) -> List[Optional[Suggestion]]:
        """Suggestions that try not to repeat a cuisine.

        A repeated cuisine triggers up to MAX_DIVERSITY_ATTEMPTS re-picks (not
        for the last slot). If none of them lands on an unused cuisine, the
        last successful re-pick is kept. Slots whose pick failed hold None.
        """
        options = SelectionOptions(exclude_recent_days=7, weight_favorites=True)
        used_cuisines: Set[str] = set()
        suggestions: List[Optional[Suggestion]] = []

        for slot in range(count):
            suggestion = self.pick_suggestion(user_id, options)
            is_last_slot = slot == count - 1

            if suggestion and suggestion.cuisine_type in used_cuisines and not is_last_slot:
                for _ in range(MAX_DIVERSITY_ATTEMPTS):
                    retry = self.pick_suggestion(user_id, options)
                    if retry is None:
                        continue
                    suggestion = retry
                    if not retry.cuisine_type or retry.cuisine_type not in used_cuisines:
                        break

            if suggestion and suggestion.cuisine_type:
                used_cuisines.add(suggestion.cuisine_type)
            suggestions.append(suggestion)

        return suggestions

    def pick_quick_suggestions(self, user_id: int) -> Dict[str, Optional[Suggestion]]:
        """A quick meal, a favorite restaurant, a random pick and a time-based pick"""
        quick_meal = self.pick_random_meal(
            user_id, 7, True, SearchFilters(prep_time_max=30, difficulty_level='easy')
        )
        favorite_restaurant = self.pick_random_restaurant(
            user_id, 7, True, SearchFilters(is_favorite=True)
        )

        return {
            'quick_meal': Suggestion.for_meal(quick_meal) if quick_meal else None,
            'favorite_restaurant': (Suggestion.for_restaurant(favorite_restaurant)
                                    if favorite_restaurant else None),
            'random_suggestion': self.pick_suggestion(user_id),
            'time_based_suggestion': self.pick_time_based_suggestion(user_id),
        }

    def record_selection(self, user_id: int, item_type: str, item_id: int):
        """Append the pick to the selection history; write errors propagate"""
        record = self.db_manager.append_selection(user_id, item_type, item_id, selected_at=self.clock())
        logger.info(f"Recorded {item_type} {item_id} for user {user_id}")
        return record

    def get_personalized_suggestions(self, user_id: int, limit: int = 5) -> Dict[str, List]:
        """Newest catalog entries matching the user's stated preferences"""
        meal_filters, restaurant_filters = self.preference_analyzer.analyze_user_preferences(user_id)

        meals = self.db_manager.query_items(user_id, ITEM_TYPE_MEAL, meal_filters, limit,
                                            sort_by='created_at', sort_order='desc')
        restaurants = self.db_manager.query_items(user_id, ITEM_TYPE_RESTAURANT, restaurant_filters, limit,
                                                  sort_by='created_at', sort_order='desc')

        return {'meals': meals, 'restaurants': restaurants}
