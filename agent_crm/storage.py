# Key-value document storage.
# Each key holds one JSON document (a whole collection). Writes always replace
# the full document; there is no partial update.

import os
import json
import logging
from datetime import datetime

logger = logging.getLogger(__name__)

CLIENTS_KEY = 'crm_clients'
OPPORTUNITIES_KEY = 'crm_opportunities'
TASKS_KEY = 'crm_tasks'
AGENTS_KEY = 'crm_ai_agents'
CHAT_HISTORY_KEY = 'crm_agent_chat_history'


class StorageError(Exception):
    """Raised when a stored document cannot be read or decoded."""


def _encode(value):
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dumps(value):
    return json.dumps(value, indent=2, ensure_ascii=False, default=_encode)


def parse_timestamp(value):
    """ISO string -> naive local datetime. Empty values pass through.

    Offset-aware values (JS-style "Z" included) are converted to local time so
    they compare cleanly with stamps taken by ``datetime.now()``.
    """
    if not value:
        return None
    if not isinstance(value, datetime):
        if value.endswith('Z'):
            value = value[:-1] + '+00:00'
        value = datetime.fromisoformat(value)
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value


class JsonFileStorage:
    """One ``<key>.json`` file per key inside ``data_dir``."""

    def __init__(self, data_dir):
        self.data_dir = data_dir

    def ensure_storage(self):
        os.makedirs(self.data_dir, exist_ok=True)

    def _path(self, key):
        return os.path.join(self.data_dir, f'{key}.json')

    def get(self, key):
        path = self._path(key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise StorageError(f"Cannot read {path}: {e}") from e

    def set(self, key, value):
        self.ensure_storage()
        with open(self._path(key), 'w', encoding='utf-8') as f:
            f.write(dumps(value))

    def remove(self, key):
        path = self._path(key)
        if os.path.exists(path):
            os.remove(path)


class MemoryStorage:
    """In-process storage; keeps serialized text so reads decode like files do."""

    def __init__(self):
        self.documents = {}

    def get(self, key):
        raw = self.documents.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise StorageError(f"Cannot decode {key}: {e}") from e

    def set(self, key, value):
        self.documents[key] = dumps(value)

    def remove(self, key):
        self.documents.pop(key, None)
