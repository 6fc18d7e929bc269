"""
preference_analyzer.py
User preference analysis from stored preferences and selection history
"""

import logging
from typing import Dict, List, Any, Optional, Tuple
from collections import Counter
from datetime import datetime

import pandas as pd

from models import UserPreferences, SearchFilters, ITEM_TYPES, ITEM_TYPE_MEAL, ITEM_TYPE_RESTAURANT
from database import DatabaseManager

logger = logging.getLogger(__name__)


class PreferenceAnalyzer:
    """Analyzes user preferences and selection patterns"""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    def build_filters(self, preferences: UserPreferences) -> Tuple[SearchFilters, SearchFilters]:
        """Derive implicit meal and restaurant filters from a user's preferences"""
        meal_filters = SearchFilters(
            cuisine_type=preferences.preferred_cuisine_type,
            difficulty_level=preferences.preferred_difficulty_level,
            prep_time_max=preferences.max_prep_time,
        )
        restaurant_filters = SearchFilters(
            cuisine_type=preferences.preferred_cuisine_type,
            price_range=preferences.preferred_price_range,
            rating_min=preferences.min_rating,
        )
        return meal_filters, restaurant_filters

    def analyze_user_preferences(self, user_id: int) -> Tuple[SearchFilters, SearchFilters]:
        """Load a user's preferences and turn them into catalog filters"""
        preferences = self.db_manager.get_user_preferences(user_id)
        meal_filters, restaurant_filters = self.build_filters(preferences)
        logger.debug(f"Derived filters for user {user_id}: meals={meal_filters.to_dict()} "
                     f"restaurants={restaurant_filters.to_dict()}")
        return meal_filters, restaurant_filters

    def get_selection_stats(self, user_id: int, days: int = 30,
                            now: Optional[datetime] = None) -> Dict[str, Any]:
        """Summarize recent selections: totals per type, daily trends and most-selected items"""
        selections = self.db_manager.get_recent_selections(user_id, days, now=now)

        stats = {
            'days': days,
            'total_selections': len(selections),
            'by_type': {item_type: 0 for item_type in ITEM_TYPES},
            'daily_trends': [],
            'most_selected_meals': self.db_manager.get_most_selected(user_id, ITEM_TYPE_MEAL, 5),
            'most_selected_restaurants': self.db_manager.get_most_selected(user_id, ITEM_TYPE_RESTAURANT, 5),
        }

        if not selections:
            logger.info(f"No selections in the last {days} days for user {user_id}")
            return stats

        df = pd.DataFrame([
            {'item_type': s.item_type, 'item_id': s.item_id, 'selected_at': s.selected_at}
            for s in selections
        ])
        df['date'] = pd.to_datetime(df['selected_at']).dt.strftime('%Y-%m-%d')

        for item_type, count in df['item_type'].value_counts().items():
            stats['by_type'][item_type] = int(count)

        trends = (
            df.groupby(['date', 'item_type'])
            .size()
            .reset_index(name='count')
            .sort_values(['date', 'item_type'], ascending=[False, True])
        )
        stats['daily_trends'] = [
            {'date': row['date'], 'item_type': row['item_type'], 'count': int(row['count'])}
            for row in trends.to_dict('records')
        ]

        return stats

    def get_preference_insights(self, user_id: int, days: int = 30,
                                now: Optional[datetime] = None) -> Dict[str, Any]:
        """Human-readable summary of what the user tends to pick"""
        stats = self.get_selection_stats(user_id, days, now=now)
        total = stats['total_selections']

        insights = {
            'total_selections': total,
            'favorite_type': None,
            'type_shares': {},
            'top_cuisines': [],
        }

        if total:
            shares = {t: round(c / total, 3) for t, c in stats['by_type'].items()}
            insights['type_shares'] = shares
            insights['favorite_type'] = max(shares.items(), key=lambda x: x[1])[0]

        insights['top_cuisines'] = self._top_cuisines(
            stats['most_selected_meals'], stats['most_selected_restaurants']
        )
        return insights

    def _top_cuisines(self, most_selected_meals: List[Dict], most_selected_restaurants: List[Dict]) -> List[Dict]:
        """Cuisines weighted by how often items of that cuisine were picked"""
        cuisine_counts = Counter()

        for item_type, ranked in ((ITEM_TYPE_MEAL, most_selected_meals),
                                  (ITEM_TYPE_RESTAURANT, most_selected_restaurants)):
            for entry in ranked:
                item = self.db_manager.get_item(item_type, entry['item_id'])
                if item and item.cuisine_type:
                    cuisine_counts[item.cuisine_type] += entry['selection_count']

        return [{'name': name, 'selections': count} for name, count in cuisine_counts.most_common(3)]
