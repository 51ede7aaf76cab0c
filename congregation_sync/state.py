import json
import logging
import os
import fcntl
from pathlib import Path
from typing import Dict, Optional
from pydantic import ValidationError
from .models import CacheRecord, Preferences
from .config import settings

logger = logging.getLogger(__name__)

PREFERENCES_KEY = "preferences"

class StateManager:
    """
    Key-value store persisted as a single JSON document.
    Values are bytes; they are stored as UTF-8 text, so callers keep to JSON payloads.
    The whole document is rewritten on every set().
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self.values: Dict[str, str] = {}
        self.read_only = False
        self._load()

    def _load(self):
        if not self.path.exists():
            logger.info(f"No state file found at {self.path}, creating new.")
            return

        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("state document is not an object")
            self.values = {str(k): str(v) for k, v in data.items()}
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load state: {e}. Starting fresh.", exc_info=True)

    def get(self, key: str) -> Optional[bytes]:
        value = self.values.get(key)
        if value is None:
            return None
        return value.encode("utf-8")

    def set(self, key: str, value: bytes):
        self.values[key] = value.decode("utf-8")
        self.save()

    def delete(self, key: str):
        if self.values.pop(key, None) is not None:
            self.save()

    def save(self):
        if not settings.PERSIST_ENABLED or self.read_only:
            return

        tmp_path = self.path.with_suffix('.tmp')
        try:
            # Atomic write pattern with locking
            with open(tmp_path, 'w') as f:
                try:
                    fcntl.flock(f, fcntl.LOCK_EX | fcntl.LOCK_NB)
                except BlockingIOError:
                    logger.warning("Could not acquire lock for state save. Skipping save cycle.")
                    return

                try:
                    json.dump(self.values, f, indent=2)
                    f.flush()
                    os.fsync(f.fileno())
                finally:
                    fcntl.flock(f, fcntl.LOCK_UN)

            os.replace(tmp_path, self.path)

        except OSError as e:
            logger.error(f"Failed to save state to {self.path}: {e}")
            # Keep running from memory for the rest of this run
            self.read_only = True

    def load_cache(self, name: str) -> CacheRecord:
        raw = self.get(f"cache:{name}")
        if raw is None:
            return CacheRecord()
        try:
            return CacheRecord.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable cache record for {name}: {e}")
            return CacheRecord()

    def save_cache(self, name: str, record: CacheRecord):
        self.set(f"cache:{name}", record.model_dump_json().encode("utf-8"))

    def delete_cache(self, name: str):
        self.delete(f"cache:{name}")

    def load_preferences(self) -> Preferences:
        raw = self.get(PREFERENCES_KEY)
        if raw is None:
            return Preferences()
        try:
            return Preferences.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Resetting unreadable preferences: {e}")
            return Preferences()

    def save_preferences(self, prefs: Preferences):
        self.set(PREFERENCES_KEY, prefs.model_dump_json().encode("utf-8"))
