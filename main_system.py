"""
main_system.py
Main system orchestrator for the What To Eat suggestion system
"""

import logging
from typing import Dict, Any, Optional
from pathlib import Path
from datetime import datetime

import numpy as np

from models import SelectionOptions, Suggestion, ITEM_TYPES, ITEM_TYPE_MEAL, ITEM_TYPE_RESTAURANT
from database import DatabaseManager
from data_processor import CSVImporter
from preference_analyzer import PreferenceAnalyzer
from suggestion_engine import SuggestionEngine
from config import config

logger = logging.getLogger(__name__)


def _format_suggestion(suggestion: Optional[Suggestion]) -> Optional[Dict[str, Any]]:
    return suggestion.to_dict() if suggestion else None


class MealPickerSystem:
    """Main system orchestrator"""

    def __init__(self, db_path: str = None, seed: Optional[int] = None, clock=None):
        """Initialize the suggestion system"""
        if db_path is None:
            db_path = config.default_db_path
        if seed is None:
            seed = config.random_seed
        self.clock = clock or datetime.now

        self.db_manager = DatabaseManager(db_path)
        self.suggestion_engine = SuggestionEngine(
            self.db_manager,
            rng=np.random.default_rng(seed),
            clock=self.clock,
            candidate_limit=config.candidate_limit,
        )
        self.csv_importer = CSVImporter(self.db_manager)
        self.preference_analyzer = PreferenceAnalyzer(self.db_manager)

        logger.info("What To Eat system initialized")
        if seed is not None:
            logger.info(f"Random generator seeded with {seed}")

    def _default_options(self, options: Optional[SelectionOptions]) -> SelectionOptions:
        return options or SelectionOptions(exclude_recent_days=config.exclude_recent_days)

    def import_meals(self, csv_path: str, user_id: int) -> Dict[str, Any]:
        return self.import_catalog(csv_path, user_id, ITEM_TYPE_MEAL)

    def import_restaurants(self, csv_path: str, user_id: int) -> Dict[str, Any]:
        return self.import_catalog(csv_path, user_id, ITEM_TYPE_RESTAURANT)

    def import_catalog(self, csv_path: str, user_id: int, item_type: str) -> Dict[str, Any]:
        """Import meals or restaurants from CSV"""
        if item_type not in ITEM_TYPES:
            return {"success": False, "error": f"Unknown item type: {item_type}"}
        if not Path(csv_path).exists():
            return {"success": False, "error": f"CSV file not found: {csv_path}"}

        validation = self.csv_importer.validate_csv_format(csv_path, item_type)
        if not validation['valid']:
            reason = validation.get('error') or f"missing columns {validation['missing_required_columns']}"
            return {"success": False, "error": f"Invalid CSV format: {reason}"}

        if item_type == ITEM_TYPE_MEAL:
            items = self.csv_importer.import_meals(csv_path, user_id)
        else:
            items = self.csv_importer.import_restaurants(csv_path, user_id)

        if not items:
            return {"success": False, "error": f"No {item_type}s could be imported from CSV"}

        return {"success": True, "imported_count": len(items), "item_type": item_type}

    def get_suggestion(self, user_id: int, item_type: Optional[str] = None,
                       options: Optional[SelectionOptions] = None) -> Dict[str, Any]:
        """One suggestion, of an explicit type or the user's preferred type"""
        try:
            suggestion = self._pick(user_id, item_type, self._default_options(options))
            if not suggestion:
                return {"success": False, "error": "No items found matching criteria"}
            return {"success": True, "suggestion": suggestion.to_dict()}

        except Exception as e:
            logger.error(f"Error getting suggestion: {e}")
            return {"success": False, "error": str(e)}

    def pick_and_record(self, user_id: int, item_type: Optional[str] = None,
                        options: Optional[SelectionOptions] = None) -> Dict[str, Any]:
        """Pick a suggestion and record it in the selection history"""
        try:
            suggestion = self._pick(user_id, item_type, self._default_options(options))
            if not suggestion:
                return {"success": False, "error": "No items found matching criteria"}

            self.suggestion_engine.record_selection(user_id, suggestion.type, suggestion.item_id)
            return {
                "success": True,
                "suggestion": suggestion.to_dict(),
                "message": "Selection recorded successfully",
            }

        except Exception as e:
            logger.error(f"Error picking and recording suggestion: {e}")
            return {"success": False, "error": str(e)}

    def _pick(self, user_id: int, item_type: Optional[str],
              options: SelectionOptions) -> Optional[Suggestion]:
        if item_type is None:
            return self.suggestion_engine.pick_suggestion(user_id, options)
        if item_type not in ITEM_TYPES:
            raise ValueError(f"Unknown item type: {item_type}")
        return self.suggestion_engine.pick_of_type(user_id, item_type, options)

    def get_multiple_suggestions(self, user_id: int,
                                 options: Optional[SelectionOptions] = None) -> Dict[str, Any]:
        try:
            suggestions = self.suggestion_engine.pick_multiple_suggestions(
                user_id, self._default_options(options)
            )
            return {
                "success": True,
                "suggestions": [s.to_dict() for s in suggestions],
                "count": len(suggestions),
            }
        except Exception as e:
            logger.error(f"Error getting multiple suggestions: {e}")
            return {"success": False, "error": str(e)}

    def get_time_based_suggestion(self, user_id: int) -> Dict[str, Any]:
        try:
            suggestion = self.suggestion_engine.pick_time_based_suggestion(user_id)
            if not suggestion:
                return {"success": False, "error": "No items found for current time"}
            return {"success": True, "suggestion": suggestion.to_dict()}
        except Exception as e:
            logger.error(f"Error getting time-based suggestion: {e}")
            return {"success": False, "error": str(e)}

    def get_diverse_suggestions(self, user_id: int, count: int = 3) -> Dict[str, Any]:
        try:
            suggestions = self.suggestion_engine.pick_diverse_suggestions(user_id, count)
            return {
                "success": True,
                "suggestions": [_format_suggestion(s) for s in suggestions],
                "count": len(suggestions),
            }
        except Exception as e:
            logger.error(f"Error getting diverse suggestions: {e}")
            return {"success": False, "error": str(e)}

    def get_quick_suggestions(self, user_id: int) -> Dict[str, Any]:
        try:
            quick = self.suggestion_engine.pick_quick_suggestions(user_id)
            return {"success": True, "suggestions": {k: _format_suggestion(v) for k, v in quick.items()}}
        except Exception as e:
            logger.error(f"Error getting quick suggestions: {e}")
            return {"success": False, "error": str(e)}

    def get_personalized_suggestions(self, user_id: int, limit: int = 5) -> Dict[str, Any]:
        try:
            result = self.suggestion_engine.get_personalized_suggestions(user_id, limit)
            return {
                "success": True,
                "meals": [m.to_dict() for m in result['meals']],
                "restaurants": [r.to_dict() for r in result['restaurants']],
            }
        except Exception as e:
            logger.error(f"Error getting personalized suggestions: {e}")
            return {"success": False, "error": str(e)}

    def record_selection(self, user_id: int, item_type: str, item_id: int) -> Dict[str, Any]:
        try:
            record = self.suggestion_engine.record_selection(user_id, item_type, item_id)
            return {"success": True, "record": record.to_dict()}
        except Exception as e:
            logger.error(f"Error recording selection: {e}")
            return {"success": False, "error": str(e)}

    def get_selection_history(self, user_id: int, page: int = 1, limit: int = 50) -> Dict[str, Any]:
        try:
            history, total = self.db_manager.get_selection_history(user_id, page, limit)
            return {
                "success": True,
                "history": [h.to_dict() for h in history],
                "pagination": {
                    "page": page,
                    "limit": limit,
                    "total": total,
                    "total_pages": -(-total // limit) if limit else 0,
                },
            }
        except Exception as e:
            logger.error(f"Error getting selection history: {e}")
            return {"success": False, "error": str(e)}

    def get_selection_stats(self, user_id: int, days: int = 30) -> Dict[str, Any]:
        try:
            stats = self.preference_analyzer.get_selection_stats(user_id, days, now=self.clock())
            insights = self.preference_analyzer.get_preference_insights(user_id, days, now=self.clock())
            return {"success": True, "stats": stats, "insights": insights}
        except Exception as e:
            logger.error(f"Error getting selection stats: {e}")
            return {"success": False, "error": str(e)}

    def clear_selection_history(self, user_id: int) -> Dict[str, Any]:
        try:
            deleted = self.db_manager.delete_user_history(user_id)
            return {
                "success": True,
                "message": f"Cleared {deleted} selection history entries",
                "deleted_count": deleted,
            }
        except Exception as e:
            logger.error(f"Error clearing selection history: {e}")
            return {"success": False, "error": str(e)}

    def update_preferences(self, user_id: int, updates: Dict[str, Any]) -> Dict[str, Any]:
        try:
            preferences = self.db_manager.update_user_preferences(user_id, updates)
            return {"success": True, "preferences": preferences.to_dict()}
        except Exception as e:
            logger.error(f"Error updating preferences: {e}")
            return {"success": False, "error": str(e)}

    def ensure_user(self, username: str) -> int:
        """Id of the named user, creating the user on first use"""
        user_id = self.db_manager.get_user_id(username)
        if user_id is None:
            user_id = self.db_manager.create_user(username)
            logger.info(f"Created user {username} ({user_id})")
        return user_id

    def get_system_stats(self, user_id: int) -> Dict[str, Any]:
        try:
            history, total = self.db_manager.get_selection_history(user_id, 1, 1)
            stats = {
                "meals": self.db_manager.count_items(user_id, ITEM_TYPE_MEAL),
                "restaurants": self.db_manager.count_items(user_id, ITEM_TYPE_RESTAURANT),
                "selections": total,
                "last_selection": history[0].to_dict() if history else None,
                "preferences": self.db_manager.get_user_preferences(user_id).to_dict(),
            }
            return {"success": True, "stats": stats}
        except Exception as e:
            logger.error(f"Error getting system stats: {e}")
            return {"success": False, "error": str(e)}
