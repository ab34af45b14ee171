# Per-agent chat history.
# Stored as one document: a list of {agent_id, messages, last_updated}.

import time
import uuid
import logging
from datetime import datetime

from .models import SENDERS
from .storage import CHAT_HISTORY_KEY, StorageError, parse_timestamp

logger = logging.getLogger(__name__)

MAX_MESSAGES = 100
CONTEXT_FETCH = 20

ROLE_BY_SENDER = {'user': 'user', 'agent': 'model'}


def message_id():
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


class ChatHistoryManager:
    def __init__(self, storage):
        self.storage = storage

    def load_all(self):
        try:
            raw = self.storage.get(CHAT_HISTORY_KEY) or []
            histories = []
            for h in raw:
                histories.append({
                    'agent_id': h['agent_id'],
                    'last_updated': parse_timestamp(h.get('last_updated')),
                    'messages': [{**m, 'timestamp': parse_timestamp(m.get('timestamp'))}
                                 for m in h.get('messages', [])],
                })
            return histories
        except (StorageError, KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error("Failed to load chat histories: %s", e)
            return []

    def _save_all(self, histories):
        self.storage.set(CHAT_HISTORY_KEY, histories)

    def append_message(self, agent_id, content, sender):
        if sender not in SENDERS:
            raise ValueError(f"Unknown sender: {sender}")
        histories = self.load_all()
        message = {
            'id': message_id(),
            'agent_id': agent_id,
            'content': content,
            'sender': sender,
            'timestamp': datetime.now(),
        }
        history = next((h for h in histories if h['agent_id'] == agent_id), None)
        if history is None:
            history = {'agent_id': agent_id, 'messages': [], 'last_updated': None}
            histories.append(history)
        history['messages'].append(message)
        history['last_updated'] = datetime.now()
        if len(history['messages']) > MAX_MESSAGES:
            history['messages'] = history['messages'][-MAX_MESSAGES:]
        self._save_all(histories)
        return message

    def get_history(self, agent_id):
        for h in self.load_all():
            if h['agent_id'] == agent_id:
                return h['messages']
        return []

    def clear_history(self, agent_id):
        histories = [h for h in self.load_all() if h['agent_id'] != agent_id]
        self._save_all(histories)

    def clear_all(self):
        self.storage.remove(CHAT_HISTORY_KEY)

    def get_context_window(self, agent_id):
        """Up to 19 turns before the newest message, in the completion API's role format.

        The newest message is left out: callers send it separately as the
        current prompt.
        """
        recent = self.get_history(agent_id)[-CONTEXT_FETCH:-1]
        return [{'role': ROLE_BY_SENDER[m['sender']], 'parts': [{'text': m['content']}]}
                for m in recent]

    def get_stats(self, agent_id):
        messages = self.get_history(agent_id)
        return {
            'total_messages': len(messages),
            'user_messages': sum(1 for m in messages if m['sender'] == 'user'),
            'agent_messages': sum(1 for m in messages if m['sender'] == 'agent'),
            'first_message': messages[0]['timestamp'] if messages else None,
            'last_message': messages[-1]['timestamp'] if messages else None,
        }
