#!/usr/bin/env python3
"""
whattoeat.py
Command line interface for the What To Eat suggestion system
"""

import argparse
import json
import os
import sys
import logging
from typing import Any, Dict, List, Optional

from main_system import MealPickerSystem
from models import ITEM_TYPES
from config import config


def setup_logging(verbose: bool = False):
    """Setup logging configuration"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(levelname)s: %(message)s'
    )


def check_csv_file(csv_path: str) -> bool:
    """Check if CSV file exists and is readable"""
    if not os.path.exists(csv_path):
        print(f"❌ Error: CSV file '{csv_path}' not found")
        return False

    if not csv_path.lower().endswith('.csv'):
        print(f"⚠️  Warning: File '{csv_path}' doesn't have .csv extension")

    return True


def print_suggestion(suggestion: Optional[Dict[str, Any]], index: Optional[int] = None):
    """Print a suggestion dict as produced by Suggestion.to_dict"""
    prefix = f"{index}. " if index is not None else ""
    if not suggestion:
        print(f"{prefix}🤷 Nothing to suggest")
        return

    item = suggestion[suggestion['type']]
    if suggestion['type'] == 'meal':
        print(f"{prefix}🍳 Cook: {item['name']} (#{item['id']})")
        details = [item.get('cuisine_type'), item.get('difficulty_level')]
        if item.get('prep_time'):
            details.append(f"{item['prep_time']} min")
    else:
        print(f"{prefix}🍽️  Eat out: {item['name']} (#{item['id']})")
        details = [item.get('cuisine_type'), item.get('price_range')]
        if item.get('rating'):
            details.append(f"⭐ {item['rating']}/5")
        if item.get('address'):
            details.append(item['address'])

    details = [d for d in details if d]
    if details:
        print(f"   {' | '.join(details)}")
    if item.get('is_favorite'):
        print("   ❤️  Favorite")


def fail(result: Dict[str, Any]):
    print(f"❌ Error: {result.get('error', 'Unknown error')}")
    sys.exit(1)


def import_catalog(system: MealPickerSystem, user_id: int, args, item_type: str):
    """Import meals or restaurants from a CSV file"""
    print("🥢 What To Eat")
    print("=" * 40)

    if not check_csv_file(args.csv_file):
        sys.exit(1)

    print(f"📂 Importing {item_type}s from: {args.csv_file}")
    print(f"👤 User: {args.user}")

    result = system.import_catalog(args.csv_file, user_id, item_type)
    if not result["success"]:
        print(f"❌ Import failed: {result.get('error', 'Unknown error')}")
        sys.exit(1)

    print(f"\n✅ Import successful!")
    print(f"   📊 Imported: {result['imported_count']} {item_type}s")
    print(f"\n🎉 Ready! Try: whattoeat --user {args.user} suggest")


def suggest(system: MealPickerSystem, user_id: int, args):
    """Pick one suggestion, optionally recording it"""
    if args.record:
        result = system.pick_and_record(user_id, args.type)
    else:
        result = system.get_suggestion(user_id, args.type)

    if not result["success"]:
        fail(result)

    print("🎲 Today's pick:")
    print_suggestion(result["suggestion"])
    if args.record:
        print("📝 Recorded in your history")


def multiple(system: MealPickerSystem, user_id: int, args):
    result = system.get_multiple_suggestions(user_id)
    if not result["success"]:
        fail(result)

    if not result["suggestions"]:
        print("😞 Nothing to suggest. Import some meals or restaurants first.")
        return

    print(f"🎯 {result['count']} suggestions:")
    for i, suggestion in enumerate(result["suggestions"], 1):
        print_suggestion(suggestion, i)


def time_based(system: MealPickerSystem, user_id: int, args):
    result = system.get_time_based_suggestion(user_id)
    if not result["success"]:
        fail(result)

    print("🕐 Suggestion for right now:")
    print_suggestion(result["suggestion"])


def diverse(system: MealPickerSystem, user_id: int, args):
    result = system.get_diverse_suggestions(user_id, args.count)
    if not result["success"]:
        fail(result)

    print(f"🌍 {result['count']} suggestions across cuisines:")
    for i, suggestion in enumerate(result["suggestions"], 1):
        print_suggestion(suggestion, i)


def quick(system: MealPickerSystem, user_id: int, args):
    result = system.get_quick_suggestions(user_id)
    if not result["success"]:
        fail(result)

    labels = {
        'quick_meal': "⚡ Quick meal",
        'favorite_restaurant': "❤️  Favorite restaurant",
        'random_suggestion': "🎲 Random pick",
        'time_based_suggestion': "🕐 Right now",
    }
    for key, label in labels.items():
        print(f"\n{label}:")
        print_suggestion(result["suggestions"].get(key))


def personalized(system: MealPickerSystem, user_id: int, args):
    result = system.get_personalized_suggestions(user_id, args.limit)
    if not result["success"]:
        fail(result)

    print("🧠 Matching your preferences")
    print("=" * 40)
    print(f"\n🍳 Meals ({len(result['meals'])}):")
    for meal in result["meals"]:
        print(f"   • {meal['name']} (#{meal['id']})")
    print(f"\n🍽️  Restaurants ({len(result['restaurants'])}):")
    for restaurant in result["restaurants"]:
        print(f"   • {restaurant['name']} (#{restaurant['id']})")


def record(system: MealPickerSystem, user_id: int, args):
    result = system.record_selection(user_id, args.item_type, args.item_id)
    if not result["success"]:
        fail(result)
    print(f"📝 Recorded {args.item_type} #{args.item_id}")


def history(system: MealPickerSystem, user_id: int, args):
    result = system.get_selection_history(user_id, args.page, args.limit)
    if not result["success"]:
        fail(result)

    pagination = result["pagination"]
    print(f"📜 Selection history (page {pagination['page']}/{max(pagination['total_pages'], 1)}, "
          f"{pagination['total']} total)")
    for entry in result["history"]:
        print(f"   {entry['selected_at']}  {entry['item_type']:<10} #{entry['item_id']}")


def stats(system: MealPickerSystem, user_id: int, args):
    result = system.get_selection_stats(user_id, args.days)
    if not result["success"]:
        fail(result)

    s = result["stats"]
    insights = result["insights"]
    print(f"📊 Selections in the last {s['days']} days: {s['total_selections']}")
    for item_type, count in s["by_type"].items():
        print(f"   {item_type}: {count}")

    if insights["favorite_type"]:
        print(f"\n🎭 You mostly pick: {insights['favorite_type']}")
    if insights["top_cuisines"]:
        print(f"🏷️  Top cuisines: {', '.join(c['name'] for c in insights['top_cuisines'])}")

    if s["daily_trends"]:
        print("\n📈 Daily trends:")
        for trend in s["daily_trends"]:
            print(f"   {trend['date']}  {trend['item_type']:<10} {trend['count']}")


def parse_preference_pairs(pairs: List[str]) -> Dict[str, Any]:
    """Turn KEY=VALUE arguments into a preferences dict; values are read as JSON when possible"""
    updates = {}
    for pair in pairs:
        if '=' not in pair:
            raise ValueError(f"Expected KEY=VALUE, got '{pair}'")
        key, value = pair.split('=', 1)
        try:
            updates[key.strip()] = json.loads(value)
        except json.JSONDecodeError:
            updates[key.strip()] = value
    return updates


def preferences(system: MealPickerSystem, user_id: int, args):
    try:
        updates = parse_preference_pairs(args.pairs)
    except ValueError as e:
        print(f"❌ Error: {e}")
        sys.exit(1)

    result = system.update_preferences(user_id, updates)
    if not result["success"]:
        fail(result)

    print("✅ Preferences updated:")
    for key, value in result["preferences"].items():
        print(f"   {key} = {value}")


def clear_history(system: MealPickerSystem, user_id: int, args):
    result = system.clear_selection_history(user_id)
    if not result["success"]:
        fail(result)
    print(f"🧹 {result['message']}")


def system_status(system: MealPickerSystem, user_id: int, args):
    """Show system status and statistics"""
    print("🔧 What To Eat Status")
    print("=" * 30)

    result = system.get_system_stats(user_id)
    if not result["success"]:
        fail(result)

    s = result["stats"]
    print(f"👤 User: {args.user}")
    print(f"🍳 Meals: {s['meals']}")
    print(f"🍽️  Restaurants: {s['restaurants']}")
    print(f"📝 Selections: {s['selections']}")
    if s["last_selection"]:
        last = s["last_selection"]
        print(f"🕐 Last pick: {last['item_type']} #{last['item_id']} at {last['selected_at']}")
    print(f"⚙️  Preferences: {s['preferences']}")
    print(f"\n💾 Database file: {args.database}")


COMMANDS = {
    'import-meals': lambda system, user_id, args: import_catalog(system, user_id, args, 'meal'),
    'import-restaurants': lambda system, user_id, args: import_catalog(system, user_id, args, 'restaurant'),
    'suggest': suggest,
    'multi': multiple,
    'time': time_based,
    'diverse': diverse,
    'quick': quick,
    'personalized': personalized,
    'record': record,
    'history': history,
    'stats': stats,
    'prefs': preferences,
    'clear-history': clear_history,
    'status': system_status,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="What To Eat - random meal and restaurant picker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
        Examples:
        # Import your catalog
        whattoeat --user alex import-meals meals.csv
        whattoeat --user alex import-restaurants restaurants.csv

        # Pick something and remember it
        whattoeat --user alex suggest --record

        # Three picks from different cuisines
        whattoeat --user alex diverse --count 3

        # Prefer restaurants, two meal ideas per batch
        whattoeat --user alex prefs preferred_suggestion_type=restaurant meal_suggestion_count=2
        """
    )

    parser.add_argument('--database', '-d', default=config.default_db_path,
                        help=f'Database file path (default: {config.default_db_path})')
    parser.add_argument('--user', '-u', default='default',
                        help='User name (default: default)')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose logging')
    parser.add_argument('--seed', type=int, default=None,
                        help='Seed the random generator for repeatable picks')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    import_meals_parser = subparsers.add_parser('import-meals', help='Import meals from CSV')
    import_meals_parser.add_argument('csv_file', help='Path to CSV file containing meals')

    import_restaurants_parser = subparsers.add_parser('import-restaurants', help='Import restaurants from CSV')
    import_restaurants_parser.add_argument('csv_file', help='Path to CSV file containing restaurants')

    suggest_parser = subparsers.add_parser('suggest', help='Pick one meal or restaurant')
    suggest_parser.add_argument('--type', choices=ITEM_TYPES, default=None,
                                help='Only pick this type (default: your preferred type)')
    suggest_parser.add_argument('--record', action='store_true',
                                help='Record the pick in your selection history')

    subparsers.add_parser('multi', help='Several meal ideas plus a restaurant')
    subparsers.add_parser('time', help='Suggestion for the current time of day')

    diverse_parser = subparsers.add_parser('diverse', help='Suggestions from different cuisines')
    diverse_parser.add_argument('--count', type=int, default=3,
                                help='Number of suggestions (default: 3)')

    subparsers.add_parser('quick', help='Quick meal, favorite restaurant, random and time-based picks')

    personalized_parser = subparsers.add_parser('personalized', help='Items matching your preferences')
    personalized_parser.add_argument('--limit', type=int, default=5,
                                     help='Maximum items per type (default: 5)')

    record_parser = subparsers.add_parser('record', help='Record that you picked an item')
    record_parser.add_argument('item_type', choices=ITEM_TYPES, help='meal or restaurant')
    record_parser.add_argument('item_id', type=int, help='Item id')

    history_parser = subparsers.add_parser('history', help='Show your selection history')
    history_parser.add_argument('--page', type=int, default=1, help='Page number (default: 1)')
    history_parser.add_argument('--limit', type=int, default=20, help='Entries per page (default: 20)')

    stats_parser = subparsers.add_parser('stats', help='Selection statistics')
    stats_parser.add_argument('--days', type=int, default=30,
                              help='Look back this many days (default: 30)')

    prefs_parser = subparsers.add_parser('prefs', help='Update your preferences')
    prefs_parser.add_argument('pairs', nargs='+', metavar='KEY=VALUE', help='Preference to set')

    subparsers.add_parser('clear-history', help='Delete your selection history')
    subparsers.add_parser('status', help='Show system status')

    return parser


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)

    system = MealPickerSystem(db_path=args.database, seed=args.seed)
    user_id = system.ensure_user(args.user)
    handler(system, user_id, args)


if __name__ == "__main__":
    main()
