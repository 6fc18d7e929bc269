"""
config.py
Configuration management for the What To Eat suggestion system
"""

import os
import logging
from typing import Optional, Dict
from pathlib import Path

logger = logging.getLogger(__name__)

ENV_PREFIX = 'WHATTOEAT_'


class Config:
    """Configuration management for the system"""

    def __init__(self, env_file: str = '.env'):
        self._env_file_values = self._load_env_file(env_file)
        self.default_db_path = self._get('DB_PATH') or "whattoeat.db"
        self.exclude_recent_days = self._get_int('EXCLUDE_RECENT_DAYS', 7)
        self.candidate_limit = self._get_int('CANDIDATE_LIMIT', 1000)
        self.random_seed = self._get_int('RANDOM_SEED', None)

    def _get(self, name: str) -> Optional[str]:
        """Environment variable first, then the .env file"""
        key = ENV_PREFIX + name
        value = os.getenv(key)
        if value:
            return value
        return self._env_file_values.get(key)

    def _get_int(self, name: str, default: Optional[int]) -> Optional[int]:
        value = self._get(name)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            logger.warning(f"Invalid integer for {ENV_PREFIX}{name}: {value!r}, using {default}")
            return default

    def _load_env_file(self, env_file: str) -> Dict[str, str]:
        """Load WHATTOEAT_* keys from a .env file"""
        path = Path(env_file)
        if not path.exists():
            return {}

        values = {}
        try:
            with open(path, 'r') as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith('#') or '=' not in line:
                        continue
                    key, value = line.split('=', 1)
                    key = key.strip()
                    if not key.startswith(ENV_PREFIX):
                        continue
                    value = value.strip()
                    # Remove quotes if present
                    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
                        value = value[1:-1]
                    if value:
                        values[key] = value
        except OSError as e:
            logger.warning(f"Error reading .env file: {e}")
            return {}

        if values:
            logger.info(f"Loaded {len(values)} setting(s) from {env_file}")
        return values


# Global configuration instance
config = Config()
