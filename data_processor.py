"""
data_processor.py
Data processing and CSV import of meal and restaurant catalogs
"""

import pandas as pd
import re
import logging
from typing import List, Optional, Any
from models import Meal, Restaurant, DIFFICULTY_LEVELS, PRICE_RANGES, ITEM_TYPE_MEAL, ITEM_TYPE_RESTAURANT
from opening_hours import schedule_with_closed_days, parse_opening_hours
from database import DatabaseManager

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = {
    ITEM_TYPE_MEAL: ['name'],
    ITEM_TYPE_RESTAURANT: ['name'],
}
OPTIONAL_COLUMNS = {
    ITEM_TYPE_MEAL: ['description', 'cuisine_type', 'difficulty_level', 'prep_time', 'is_favorite'],
    ITEM_TYPE_RESTAURANT: ['cuisine_type', 'address', 'phone', 'price_range', 'rating', 'is_favorite',
                           'closed_days', 'opening_hours'],
}


def _is_blank(value: Any) -> bool:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return True
    text = str(value).strip()
    return not text or text == '-' or text.lower() == 'nan'


class DataProcessor:
    """Handles data cleaning and standardization"""

    @staticmethod
    def clean_text(value) -> Optional[str]:
        """Strip and normalize whitespace; blanks become None"""
        if _is_blank(value):
            return None
        return ' '.join(str(value).split())

    @staticmethod
    def parse_bool(value) -> bool:
        """Interpret yes/no style spreadsheet values"""
        if _is_blank(value):
            return False
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        return text in {'1', 'true', 'yes', 'y', 'x', '⭐', '★'} or text.startswith('fav')

    @staticmethod
    def parse_rating(value) -> Optional[float]:
        """Convert star emoji rating or numeric value to a float in [0, 5]"""
        if _is_blank(value):
            return None

        if isinstance(value, (int, float)):
            rating = float(value)
        else:
            text = str(value).strip()
            star_count = text.count('⭐') + text.count('★')
            if star_count > 0:
                rating = float(star_count)
            else:
                try:
                    rating = float(text)
                except ValueError:
                    return None

        if not 0 <= rating <= 5:
            logger.warning(f"Ignoring out of range rating: {value}")
            return None
        return rating

    @staticmethod
    def parse_price_range(value) -> Optional[str]:
        """Normalize cost strings to one of $, $$, $$$, $$$$"""
        if _is_blank(value):
            return None

        text = str(value).strip()
        dollar_count = text.count('$')
        if dollar_count > 0:
            return PRICE_RANGES[min(dollar_count, 4) - 1]

        cost_map = {'cheap': 1, 'budget': 1, 'moderate': 2, 'expensive': 3, 'luxury': 4}
        lowered = text.lower()
        for key, level in cost_map.items():
            if key in lowered:
                return PRICE_RANGES[level - 1]

        return None

    @staticmethod
    def parse_difficulty(value) -> Optional[str]:
        if _is_blank(value):
            return None
        text = str(value).strip().lower()
        return text if text in DIFFICULTY_LEVELS else None

    @staticmethod
    def parse_prep_time(value) -> Optional[int]:
        """Minutes from values like 30, '30 min', '1h', '1h 15m'"""
        if _is_blank(value):
            return None
        if isinstance(value, (int, float)):
            return int(value)

        text = str(value).strip().lower()
        hours = re.search(r'(\d+)\s*h', text)
        minutes = re.search(r'(\d+)\s*m', text)
        if hours or minutes:
            return (int(hours.group(1)) * 60 if hours else 0) + (int(minutes.group(1)) if minutes else 0)

        digits = re.search(r'\d+', text)
        return int(digits.group()) if digits else None

    @staticmethod
    def parse_closed_days(value) -> List[str]:
        """Split 'monday;tuesday' style values"""
        if _is_blank(value):
            return []
        return [d.strip().lower() for d in re.split(r'[,;/]', str(value)) if d.strip()]


class CSVImporter:
    """Handles importing meal and restaurant catalogs from CSV files"""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager
        self.data_processor = DataProcessor()

    def import_meals(self, csv_path: str, user_id: int) -> List[Meal]:
        """Import meals from CSV file"""
        return self._import(csv_path, user_id, ITEM_TYPE_MEAL)

    def import_restaurants(self, csv_path: str, user_id: int) -> List[Restaurant]:
        """Import restaurants from CSV file"""
        return self._import(csv_path, user_id, ITEM_TYPE_RESTAURANT)

    def _import(self, csv_path: str, user_id: int, item_type: str) -> List:
        try:
            df = pd.read_csv(csv_path)
        except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            logger.error(f"Failed to read CSV {csv_path}: {e}")
            return []

        logger.info(f"Loaded {len(df)} rows from CSV")
        df.columns = df.columns.str.strip().str.lower()

        imported = []
        for index, row in df.iterrows():
            try:
                if item_type == ITEM_TYPE_MEAL:
                    item = self._row_to_meal(row, user_id)
                    if item:
                        imported.append(self.db_manager.add_meal(item))
                else:
                    item = self._row_to_restaurant(row, user_id)
                    if item:
                        imported.append(self.db_manager.add_restaurant(item))
            except ValueError as e:
                logger.warning(f"Failed to process row {index + 1}: {e}")
                continue

        logger.info(f"Successfully imported {len(imported)} {item_type}s")
        return imported

    def _row_to_meal(self, row: pd.Series, user_id: int) -> Optional[Meal]:
        """Convert CSV row to Meal object"""
        name = self.data_processor.clean_text(row.get('name'))
        if not name:
            return None

        return Meal(
            id=0,
            user_id=user_id,
            name=name,
            description=self.data_processor.clean_text(row.get('description')),
            cuisine_type=self.data_processor.clean_text(row.get('cuisine_type')),
            difficulty_level=self.data_processor.parse_difficulty(row.get('difficulty_level')),
            prep_time=self.data_processor.parse_prep_time(row.get('prep_time')),
            is_favorite=self.data_processor.parse_bool(row.get('is_favorite')),
        )

    def _row_to_restaurant(self, row: pd.Series, user_id: int) -> Optional[Restaurant]:
        """Convert CSV row to Restaurant object"""
        name = self.data_processor.clean_text(row.get('name'))
        if not name:
            return None

        # A full JSON schedule wins over a closed_days list
        opening_hours = None
        raw_hours = row.get('opening_hours')
        if not _is_blank(raw_hours):
            opening_hours = parse_opening_hours(str(raw_hours))
        if opening_hours is None:
            closed_days = self.data_processor.parse_closed_days(row.get('closed_days'))
            if closed_days:
                opening_hours = schedule_with_closed_days(closed_days)

        return Restaurant(
            id=0,
            user_id=user_id,
            name=name,
            cuisine_type=self.data_processor.clean_text(row.get('cuisine_type')),
            address=self.data_processor.clean_text(row.get('address')),
            phone=self.data_processor.clean_text(row.get('phone')),
            price_range=self.data_processor.parse_price_range(row.get('price_range')),
            is_favorite=self.data_processor.parse_bool(row.get('is_favorite')),
            rating=self.data_processor.parse_rating(row.get('rating')),
            opening_hours=opening_hours,
        )

    def validate_csv_format(self, csv_path: str, item_type: str) -> dict:
        """Validate CSV format and return analysis"""
        try:
            df = pd.read_csv(csv_path)
        except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            return {'valid': False, 'error': str(e)}

        df.columns = df.columns.str.strip().str.lower()

        missing_required = [col for col in REQUIRED_COLUMNS[item_type] if col not in df.columns]
        available_optional = [col for col in OPTIONAL_COLUMNS[item_type] if col in df.columns]

        return {
            'valid': len(missing_required) == 0,
            'total_rows': len(df),
            'columns': list(df.columns),
            'missing_required_columns': missing_required,
            'available_optional_columns': available_optional,
            'non_empty_names': int(df['name'].notna().sum()) if 'name' in df.columns else 0,
            'sample_data': df.head(3).to_dict('records') if len(df) > 0 else [],
        }
