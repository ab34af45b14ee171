# Entity store: clients, opportunities and tasks.
# Each collection is held in memory and written back as one snapshot after
# every mutation.

import time
import logging
from datetime import datetime

from .models import norm_text
from .storage import (
    CLIENTS_KEY, OPPORTUNITIES_KEY, TASKS_KEY, StorageError, parse_timestamp,
)

logger = logging.getLogger(__name__)


def new_id(existing=()):
    """Millisecond timestamp as a string, bumped until it is unused."""
    ms = int(time.time() * 1000)
    while str(ms) in existing:
        ms += 1
    return str(ms)


class Collection:
    """A list of dict entities persisted under a single storage key."""

    def __init__(self, storage, key, timestamp_fields=('created_at',)):
        self.storage = storage
        self.key = key
        self.timestamp_fields = timestamp_fields
        self.items = []

    def _restore(self, item):
        item = dict(item)
        for field in self.timestamp_fields:
            if field in item:
                item[field] = parse_timestamp(item[field])
        return item

    def load(self):
        try:
            raw = self.storage.get(self.key)
            if raw is None:
                raw = []
            if not isinstance(raw, list):
                raise StorageError(f"{self.key} is not a list")
            rows = [item for item in raw if isinstance(item, dict) and item.get('id')]
            if len(rows) < len(raw):
                logger.warning("Skipping %d malformed rows in %s", len(raw) - len(rows), self.key)
            self.items = [self._restore(item) for item in rows]
        except (StorageError, ValueError, TypeError, AttributeError) as e:
            logger.error("Failed to load %s, starting empty: %s", self.key, e)
            self.items = []
        return self.items

    def save(self):
        self.storage.set(self.key, self.items)

    def all(self):
        return list(self.items)

    def get(self, entity_id):
        for item in self.items:
            if item['id'] == entity_id:
                return item
        return None

    def add(self, entity):
        item = self._restore(entity)
        item['id'] = new_id({i['id'] for i in self.items})
        item['created_at'] = datetime.now()
        self.items.append(item)
        self.save()
        return item

    def update(self, entity):
        for i, item in enumerate(self.items):
            if item['id'] == entity.get('id'):
                self.items[i] = self._restore(entity)
                self.save()
                return self.items[i]
        return None

    def delete(self, entity_id):
        before = len(self.items)
        self.items = [item for item in self.items if item['id'] != entity_id]
        self.save()
        return len(self.items) < before


class DataStore:
    def __init__(self, storage):
        self.storage = storage
        self.clients = Collection(storage, CLIENTS_KEY)
        self.opportunities = Collection(storage, OPPORTUNITIES_KEY)
        self.tasks = Collection(storage, TASKS_KEY)
        self.load()

    def load(self):
        self.clients.load()
        self.opportunities.load()
        self.tasks.load()

    def find_client_by_name(self, full_name):
        """First client whose full name matches exactly."""
        for c in self.clients.items:
            if c.get('full_name') == full_name:
                return c
        return None

    def find_duplicate_client(self, full_name):
        wanted = norm_text(full_name)
        if not wanted:
            return None
        for c in self.clients.items:
            if norm_text(c.get('full_name')) == wanted:
                return c
        return None

    def linked_client(self, opportunity):
        """Resolve an opportunity's client: by id first, then by exact name."""
        client_id = opportunity.get('client_id')
        if client_id:
            client = self.clients.get(client_id)
            if client:
                return client
        return self.find_client_by_name(opportunity.get('client_name'))

    def link_client(self, opportunity):
        """Fill in ``client_id`` and ``client_name`` from whichever one is known."""
        opp = dict(opportunity)
        client = self.clients.get(opp['client_id']) if opp.get('client_id') else None
        if client is None:
            client = self.find_client_by_name(opp.get('client_name'))
        if client is not None:
            opp['client_id'] = client['id']
            opp['client_name'] = client['full_name']
        return opp

    def update_client(self, client):
        """Update a client and carry a new name over to opportunities linked by id."""
        updated = self.clients.update(client)
        if updated is None:
            return None
        stale = [o for o in self.opportunities.items
                 if o.get('client_id') == updated['id'] and o.get('client_name') != updated['full_name']]
        for o in stale:
            self.opportunities.update({**o, 'client_name': updated['full_name']})
        return updated

    def opportunities_for_client(self, client):
        # rows without client_id predate id linkage and still join by name
        result = []
        for o in self.opportunities.items:
            if o.get('client_id'):
                if o['client_id'] == client['id']:
                    result.append(o)
            elif o.get('client_name') == client.get('full_name'):
                result.append(o)
        return result

    def tasks_for_client(self, client):
        name = client.get('full_name') or ''
        if not name:
            return []
        return [t for t in self.tasks.items
                if name in (t.get('name') or '') or name in (t.get('description') or '')]
