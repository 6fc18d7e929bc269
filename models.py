"""
models.py
Core data models for the What To Eat suggestion system
"""

from dataclasses import dataclass, field, fields
from typing import Dict, Optional, Any
from datetime import datetime

ITEM_TYPE_MEAL = 'meal'
ITEM_TYPE_RESTAURANT = 'restaurant'
ITEM_TYPES = (ITEM_TYPE_MEAL, ITEM_TYPE_RESTAURANT)

SUGGESTION_TYPE_RANDOM = 'random'
SUGGESTION_TYPES = (ITEM_TYPE_MEAL, ITEM_TYPE_RESTAURANT, SUGGESTION_TYPE_RANDOM)

DIFFICULTY_LEVELS = ('easy', 'medium', 'hard')
PRICE_RANGES = ('$', '$$', '$$$', '$$$$')

MIN_MEAL_SUGGESTIONS = 1
MAX_MEAL_SUGGESTIONS = 3

# Numeric preference fields; stored values that don't convert read as no preference
INT_PREFERENCE_FIELDS = ('meal_suggestion_count', 'suggestion_count', 'max_prep_time')
FLOAT_PREFERENCE_FIELDS = ('min_rating',)


def _coerce_number(value: Any, kind) -> Optional[Any]:
    if isinstance(value, bool):
        return None
    try:
        number = kind(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return None if number != number else number  # NaN


@dataclass
class DayHours:
    """Opening hours for a single weekday"""
    open: str = '09:00'
    close: str = '22:00'
    is_closed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {'open': self.open, 'close': self.close, 'is_closed': self.is_closed}


@dataclass
class Meal:
    """A home-cooked meal in the user's catalog"""
    id: int
    user_id: int
    name: str
    description: Optional[str] = None
    cuisine_type: Optional[str] = None
    difficulty_level: Optional[str] = None  # easy, medium, hard
    prep_time: Optional[int] = None  # minutes
    is_favorite: bool = False
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'cuisine_type': self.cuisine_type,
            'difficulty_level': self.difficulty_level,
            'prep_time': self.prep_time,
            'is_favorite': self.is_favorite,
        }


@dataclass
class Restaurant:
    """A restaurant in the user's catalog"""
    id: int
    user_id: int
    name: str
    cuisine_type: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    price_range: Optional[str] = None  # $ to $$$$
    is_favorite: bool = False
    rating: Optional[float] = None  # 0-5
    opening_hours: Optional[Dict[str, DayHours]] = None  # keyed by weekday name
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'cuisine_type': self.cuisine_type,
            'address': self.address,
            'phone': self.phone,
            'price_range': self.price_range,
            'is_favorite': self.is_favorite,
            'rating': self.rating,
            'opening_hours': ({day: hours.to_dict() for day, hours in self.opening_hours.items()}
                              if self.opening_hours else None),
        }


@dataclass
class SelectionRecord:
    """One recorded pick, append-only"""
    id: int
    user_id: int
    item_type: str
    item_id: int
    selected_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'item_type': self.item_type,
            'item_id': self.item_id,
            'selected_at': self.selected_at.isoformat(),
        }


@dataclass
class UserPreferences:
    """Sparse per-user preferences; None means no preference"""
    meal_suggestion_count: Optional[int] = None
    suggestion_count: Optional[int] = None  # legacy key, read after meal_suggestion_count
    preferred_suggestion_type: str = SUGGESTION_TYPE_RANDOM
    preferred_cuisine_type: Optional[str] = None
    preferred_difficulty_level: Optional[str] = None
    preferred_price_range: Optional[str] = None
    max_prep_time: Optional[int] = None
    min_rating: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'UserPreferences':
        """Build preferences from a stored JSON object, ignoring unknown keys"""
        data = data or {}
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known and v is not None}
        for name in INT_PREFERENCE_FIELDS:
            if name in values:
                values[name] = _coerce_number(values[name], int)
        for name in FLOAT_PREFERENCE_FIELDS:
            if name in values:
                values[name] = _coerce_number(values[name], float)
        prefs = cls(**values)
        if prefs.preferred_suggestion_type not in SUGGESTION_TYPES:
            prefs.preferred_suggestion_type = SUGGESTION_TYPE_RANDOM
        return prefs

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)
                if getattr(self, f.name) is not None}

    def resolved_meal_suggestion_count(self) -> int:
        """Meal suggestions per batch: meal_suggestion_count, then suggestion_count, then 1; clamped to 1-3"""
        count = self.meal_suggestion_count or self.suggestion_count or MIN_MEAL_SUGGESTIONS
        return min(max(int(count), MIN_MEAL_SUGGESTIONS), MAX_MEAL_SUGGESTIONS)


@dataclass
class SearchFilters:
    """Catalog filters; fields that don't apply to an item type are ignored"""
    cuisine_type: Optional[str] = None
    difficulty_level: Optional[str] = None
    prep_time_max: Optional[int] = None
    price_range: Optional[str] = None
    is_favorite: Optional[bool] = None
    rating_min: Optional[float] = None
    search: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)
                if getattr(self, f.name) is not None}


@dataclass
class SelectionOptions:
    """Options shared by the random pick operations"""
    exclude_recent_days: int = 7
    weight_favorites: bool = True
    filters: SearchFilters = field(default_factory=SearchFilters)


@dataclass
class Suggestion:
    """A meal or a restaurant chosen for the user"""
    type: str
    meal: Optional[Meal] = None
    restaurant: Optional[Restaurant] = None

    @classmethod
    def for_meal(cls, meal: Meal) -> 'Suggestion':
        return cls(type=ITEM_TYPE_MEAL, meal=meal)

    @classmethod
    def for_restaurant(cls, restaurant: Restaurant) -> 'Suggestion':
        return cls(type=ITEM_TYPE_RESTAURANT, restaurant=restaurant)

    @property
    def item(self):
        return self.meal if self.type == ITEM_TYPE_MEAL else self.restaurant

    @property
    def item_id(self) -> int:
        return self.item.id

    @property
    def cuisine_type(self) -> Optional[str]:
        return self.item.cuisine_type

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type, self.type: self.item.to_dict()}

