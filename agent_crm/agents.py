from datetime import datetime

from .storage import AGENTS_KEY
from .store import Collection


class AgentDirectory(Collection):
    """AI agent personas. Chat history is kept separately, keyed by agent id."""

    def __init__(self, storage):
        super().__init__(storage, AGENTS_KEY, timestamp_fields=('created_at', 'last_used'))
        self.load()

    def active(self):
        return [a for a in self.items if a.get('is_active')]

    def toggle_active(self, agent_id):
        agent = self.get(agent_id)
        if agent is None:
            return None
        return self.update({**agent, 'is_active': not agent.get('is_active')})

    def touch_last_used(self, agent_id):
        agent = self.get(agent_id)
        if agent is None:
            return None
        return self.update({**agent, 'last_used': datetime.now()})
