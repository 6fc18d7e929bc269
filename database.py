"""
database.py
Database management for the What To Eat suggestion system
"""

import sqlite3
import json
import logging
import time
from typing import Dict, List, Optional, Any, Set, Tuple
from datetime import datetime, timedelta

from models import (
    Meal, Restaurant, SelectionRecord, UserPreferences, SearchFilters,
    ITEM_TYPES, ITEM_TYPE_MEAL, ITEM_TYPE_RESTAURANT,
)
from opening_hours import parse_opening_hours, serialize_opening_hours

logger = logging.getLogger(__name__)

SORTABLE_COLUMNS = {
    ITEM_TYPE_MEAL: {'created_at', 'name', 'prep_time', 'id'},
    ITEM_TYPE_RESTAURANT: {'created_at', 'name', 'rating', 'id'},
}


def _timestamp(moment: datetime) -> str:
    return moment.isoformat(sep=' ', timespec='seconds')


def _check_item_type(item_type: str):
    if item_type not in ITEM_TYPES:
        raise ValueError(f"Invalid item type '{item_type}', expected one of {ITEM_TYPES}")


class DatabaseManager:
    """Handles all database operations: catalog queries, selection history and preferences"""

    def __init__(self, db_path: str = "whattoeat.db"):
        self.db_path = db_path
        self.init_database()

    def get_connection(self, timeout: float = 30.0, retries: int = 3):
        """Get a database connection with timeout and retry logic"""
        for attempt in range(retries):
            try:
                conn = sqlite3.connect(self.db_path, timeout=timeout)
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA journal_mode=WAL")
                return conn
            except sqlite3.OperationalError as e:
                if "database is locked" in str(e) and attempt < retries - 1:
                    wait_time = (attempt + 1) * 0.5
                    logger.warning(f"Database locked, retrying in {wait_time}s (attempt {attempt + 1}/{retries})")
                    time.sleep(wait_time)
                    continue
                if "database is locked" in str(e):
                    raise sqlite3.OperationalError(
                        "Database is locked. Please close any other application holding the "
                        "database file open, then try again."
                    ) from e
                raise

        raise sqlite3.OperationalError("Failed to connect to database after all retries")

    def init_database(self):
        """Initialize database with required tables"""
        with self.get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    username TEXT UNIQUE NOT NULL,
                    preferences TEXT DEFAULT '{}',
                    created_at TIMESTAMP
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS meals (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    description TEXT,
                    cuisine_type TEXT,
                    difficulty_level TEXT CHECK(difficulty_level IN ('easy', 'medium', 'hard')),
                    prep_time INTEGER,
                    is_favorite BOOLEAN DEFAULT 0,
                    created_at TIMESTAMP,
                    FOREIGN KEY (user_id) REFERENCES users (id)
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS restaurants (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    cuisine_type TEXT,
                    address TEXT,
                    phone TEXT,
                    price_range TEXT CHECK(price_range IN ('$', '$$', '$$$', '$$$$')),
                    is_favorite BOOLEAN DEFAULT 0,
                    rating REAL CHECK(rating >= 0 AND rating <= 5),
                    opening_hours TEXT DEFAULT '{}',
                    created_at TIMESTAMP,
                    FOREIGN KEY (user_id) REFERENCES users (id)
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS selection_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    item_type TEXT NOT NULL CHECK(item_type IN ('meal', 'restaurant')),
                    item_id INTEGER NOT NULL,
                    selected_at TIMESTAMP NOT NULL,
                    FOREIGN KEY (user_id) REFERENCES users (id)
                )
            ''')

            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_selection_history_user
                ON selection_history (user_id, item_type, selected_at)
            ''')

            conn.commit()
            logger.info("Database initialized successfully")

    # Users and preferences

    def create_user(self, username: str, preferences: Optional[Dict[str, Any]] = None) -> int:
        """Create a user and return its id"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'INSERT INTO users (username, preferences, created_at) VALUES (?, ?, ?)',
                (username, json.dumps(preferences or {}), _timestamp(datetime.now()))
            )
            conn.commit()
            return cursor.lastrowid

    def get_user_id(self, username: str) -> Optional[int]:
        with self.get_connection() as conn:
            row = conn.execute('SELECT id FROM users WHERE username = ?', (username,)).fetchone()
        return row['id'] if row else None

    def get_user_preferences(self, user_id: int) -> UserPreferences:
        """Get a user's preferences; missing users get the defaults"""
        with self.get_connection() as conn:
            row = conn.execute('SELECT preferences FROM users WHERE id = ?', (user_id,)).fetchone()

        if not row or not row['preferences']:
            return UserPreferences()
        return UserPreferences.from_dict(json.loads(row['preferences']))

    def update_user_preferences(self, user_id: int, updates: Dict[str, Any]) -> UserPreferences:
        """Merge updates into the stored preferences"""
        with self.get_connection() as conn:
            row = conn.execute('SELECT preferences FROM users WHERE id = ?', (user_id,)).fetchone()
            if not row:
                raise ValueError(f"User {user_id} not found")

            stored = json.loads(row['preferences']) if row['preferences'] else {}
            stored.update(updates)
            conn.execute('UPDATE users SET preferences = ? WHERE id = ?', (json.dumps(stored), user_id))
            conn.commit()

        return UserPreferences.from_dict(stored)

    # Catalog

    def add_meal(self, meal: Meal) -> Meal:
        """Insert a meal and return it with its assigned id"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO meals
                (user_id, name, description, cuisine_type, difficulty_level, prep_time, is_favorite, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ''', (
                meal.user_id, meal.name, meal.description, meal.cuisine_type,
                meal.difficulty_level, meal.prep_time, meal.is_favorite, _timestamp(meal.created_at)
            ))
            conn.commit()
            meal.id = cursor.lastrowid
        return meal

    def add_restaurant(self, restaurant: Restaurant) -> Restaurant:
        """Insert a restaurant and return it with its assigned id"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO restaurants
                (user_id, name, cuisine_type, address, phone, price_range, is_favorite, rating,
                 opening_hours, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''', (
                restaurant.user_id, restaurant.name, restaurant.cuisine_type, restaurant.address,
                restaurant.phone, restaurant.price_range, restaurant.is_favorite, restaurant.rating,
                serialize_opening_hours(restaurant.opening_hours), _timestamp(restaurant.created_at)
            ))
            conn.commit()
            restaurant.id = cursor.lastrowid
        return restaurant

    def get_meal(self, meal_id: int) -> Optional[Meal]:
        with self.get_connection() as conn:
            row = conn.execute('SELECT * FROM meals WHERE id = ?', (meal_id,)).fetchone()
        return self._row_to_meal(row) if row else None

    def get_restaurant(self, restaurant_id: int) -> Optional[Restaurant]:
        with self.get_connection() as conn:
            row = conn.execute('SELECT * FROM restaurants WHERE id = ?', (restaurant_id,)).fetchone()
        return self._row_to_restaurant(row) if row else None

    def get_item(self, item_type: str, item_id: int):
        _check_item_type(item_type)
        if item_type == ITEM_TYPE_MEAL:
            return self.get_meal(item_id)
        return self.get_restaurant(item_id)

    def count_items(self, user_id: int, item_type: str) -> int:
        _check_item_type(item_type)
        table = 'meals' if item_type == ITEM_TYPE_MEAL else 'restaurants'
        with self.get_connection() as conn:
            row = conn.execute(f'SELECT COUNT(*) AS total FROM {table} WHERE user_id = ?', (user_id,)).fetchone()
        return row['total']

    def query_items(self, user_id: int, item_type: str, filters: Optional[SearchFilters] = None,
                    limit: int = 1000, sort_by: str = 'created_at', sort_order: str = 'desc') -> List:
        """Get a user's meals or restaurants matching the filters"""
        _check_item_type(item_type)
        filters = filters or SearchFilters()

        if sort_by not in SORTABLE_COLUMNS[item_type]:
            raise ValueError(f"Cannot sort {item_type}s by '{sort_by}'")
        if sort_order.lower() not in ('asc', 'desc'):
            raise ValueError(f"Invalid sort order '{sort_order}'")

        if item_type == ITEM_TYPE_MEAL:
            table, where, params = self._meal_filter_clause(user_id, filters)
        else:
            table, where, params = self._restaurant_filter_clause(user_id, filters)

        order = sort_order.upper()
        with self.get_connection() as conn:
            rows = conn.execute(
                f'SELECT * FROM {table} WHERE {where} ORDER BY {sort_by} {order}, id {order} LIMIT ?',
                (*params, limit)
            ).fetchall()

        if item_type == ITEM_TYPE_MEAL:
            return [self._row_to_meal(row) for row in rows]
        return [self._row_to_restaurant(row) for row in rows]

    def _meal_filter_clause(self, user_id: int, filters: SearchFilters) -> Tuple[str, str, list]:
        clauses = ['user_id = ?']
        params: list = [user_id]

        if filters.cuisine_type:
            clauses.append('cuisine_type = ?')
            params.append(filters.cuisine_type)
        if filters.difficulty_level:
            clauses.append('difficulty_level = ?')
            params.append(filters.difficulty_level)
        if filters.prep_time_max:
            clauses.append('prep_time <= ?')
            params.append(filters.prep_time_max)
        if filters.is_favorite is not None:
            clauses.append('is_favorite = ?')
            params.append(filters.is_favorite)
        if filters.search:
            clauses.append('(name LIKE ? OR description LIKE ?)')
            params.extend([f'%{filters.search}%'] * 2)

        return 'meals', ' AND '.join(clauses), params

    def _restaurant_filter_clause(self, user_id: int, filters: SearchFilters) -> Tuple[str, str, list]:
        clauses = ['user_id = ?']
        params: list = [user_id]

        if filters.cuisine_type:
            clauses.append('cuisine_type = ?')
            params.append(filters.cuisine_type)
        if filters.price_range:
            clauses.append('price_range = ?')
            params.append(filters.price_range)
        if filters.rating_min:
            clauses.append('rating >= ?')
            params.append(filters.rating_min)
        if filters.is_favorite is not None:
            clauses.append('is_favorite = ?')
            params.append(filters.is_favorite)
        if filters.search:
            clauses.append('(name LIKE ? OR address LIKE ?)')
            params.extend([f'%{filters.search}%'] * 2)

        return 'restaurants', ' AND '.join(clauses), params

    # Selection history

    def append_selection(self, user_id: int, item_type: str, item_id: int,
                         selected_at: Optional[datetime] = None) -> SelectionRecord:
        """Append a selection record; never updates existing rows"""
        _check_item_type(item_type)
        selected_at = selected_at or datetime.now()

        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO selection_history (user_id, item_type, item_id, selected_at)
                VALUES (?, ?, ?, ?)
            ''', (user_id, item_type, item_id, _timestamp(selected_at)))
            conn.commit()
            record_id = cursor.lastrowid

        return SelectionRecord(
            id=record_id, user_id=user_id, item_type=item_type, item_id=item_id,
            selected_at=datetime.fromisoformat(_timestamp(selected_at))
        )

    def get_recent_item_ids(self, user_id: int, item_type: str, days: int,
                            now: Optional[datetime] = None) -> Set[int]:
        """Distinct ids of items of one type selected within the last `days` days"""
        _check_item_type(item_type)
        cutoff = (now or datetime.now()) - timedelta(days=days)

        with self.get_connection() as conn:
            rows = conn.execute('''
                SELECT DISTINCT item_id FROM selection_history
                WHERE user_id = ? AND item_type = ? AND selected_at > ?
            ''', (user_id, item_type, _timestamp(cutoff))).fetchall()

        return {row['item_id'] for row in rows}

    def get_recent_selections(self, user_id: int, days: int = 7,
                              now: Optional[datetime] = None) -> List[SelectionRecord]:
        """All selections within the last `days` days, newest first"""
        cutoff = (now or datetime.now()) - timedelta(days=days)

        with self.get_connection() as conn:
            rows = conn.execute('''
                SELECT * FROM selection_history
                WHERE user_id = ? AND selected_at > ?
                ORDER BY selected_at DESC, id DESC
            ''', (user_id, _timestamp(cutoff))).fetchall()

        return [self._row_to_selection(row) for row in rows]

    def get_most_selected(self, user_id: int, item_type: str, limit: int = 5) -> List[Dict[str, Any]]:
        """Items ranked by how often they were selected"""
        _check_item_type(item_type)

        with self.get_connection() as conn:
            rows = conn.execute('''
                SELECT item_id, COUNT(*) AS selection_count, MAX(selected_at) AS last_selected
                FROM selection_history
                WHERE user_id = ? AND item_type = ?
                GROUP BY item_id
                ORDER BY selection_count DESC, last_selected DESC
                LIMIT ?
            ''', (user_id, item_type, limit)).fetchall()

        return [
            {
                'item_id': row['item_id'],
                'selection_count': row['selection_count'],
                'last_selected': row['last_selected'],
            }
            for row in rows
        ]

    def get_selection_history(self, user_id: int, page: int = 1,
                              limit: int = 50) -> Tuple[List[SelectionRecord], int]:
        """Paginated selection history, newest first, with the total count"""
        offset = (max(page, 1) - 1) * limit

        with self.get_connection() as conn:
            total = conn.execute(
                'SELECT COUNT(*) AS total FROM selection_history WHERE user_id = ?', (user_id,)
            ).fetchone()['total']
            rows = conn.execute('''
                SELECT * FROM selection_history
                WHERE user_id = ?
                ORDER BY selected_at DESC, id DESC
                LIMIT ? OFFSET ?
            ''', (user_id, limit, offset)).fetchall()

        return [self._row_to_selection(row) for row in rows], total

    def delete_user_history(self, user_id: int) -> int:
        """Delete all of a user's selection history, returning the number of rows removed"""
        with self.get_connection() as conn:
            cursor = conn.execute('DELETE FROM selection_history WHERE user_id = ?', (user_id,))
            conn.commit()
            deleted = cursor.rowcount

        logger.info(f"Deleted {deleted} selection history entries for user {user_id}")
        return deleted

    # Row conversion

    def _row_to_meal(self, row) -> Meal:
        return Meal(
            id=row['id'], user_id=row['user_id'], name=row['name'],
            description=row['description'], cuisine_type=row['cuisine_type'],
            difficulty_level=row['difficulty_level'], prep_time=row['prep_time'],
            is_favorite=bool(row['is_favorite']),
            created_at=datetime.fromisoformat(row['created_at']) if row['created_at'] else datetime.now()
        )

    def _row_to_restaurant(self, row) -> Restaurant:
        return Restaurant(
            id=row['id'], user_id=row['user_id'], name=row['name'],
            cuisine_type=row['cuisine_type'], address=row['address'], phone=row['phone'],
            price_range=row['price_range'], is_favorite=bool(row['is_favorite']),
            rating=row['rating'],
            opening_hours=parse_opening_hours(row['opening_hours']),
            created_at=datetime.fromisoformat(row['created_at']) if row['created_at'] else datetime.now()
        )

    def _row_to_selection(self, row) -> SelectionRecord:
        return SelectionRecord(
            id=row['id'], user_id=row['user_id'], item_type=row['item_type'],
            item_id=row['item_id'], selected_at=datetime.fromisoformat(row['selected_at'])
        )
