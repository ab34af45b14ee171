import pytest

from agent_crm.agents import AgentDirectory
from agent_crm.chat import ChatHistoryManager
from agent_crm.config import Config
from agent_crm.pipeline import Pipeline
from agent_crm.storage import MemoryStorage
from agent_crm.store import DataStore
from agent_crm.web import create_app


class FakeGateway:
    """Stands in for GeminiGateway; records every completion request."""

    def __init__(self, reply='Olá! Como posso ajudar?', error=None, configured=True, available=True):
        self.reply = reply
        self.error = error
        self.configured = configured
        self.available = available
        self.calls = []

    def is_configured(self):
        return self.configured

    def check_available(self):
        return self.configured and self.available

    def complete(self, message, context, personality, history=None, temperature=None, max_tokens=None):
        self.calls.append({
            'message': message,
            'context': context,
            'personality': personality,
            'history': history,
            'temperature': temperature,
            'max_tokens': max_tokens,
        })
        if self.error is not None:
            raise self.error
        return self.reply


class ConfigForTests(Config):
    TESTING = True
    GEMINI_API_KEY = ''


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage):
    return DataStore(storage)


@pytest.fixture
def pipeline(store):
    return Pipeline(store)


@pytest.fixture
def history(storage):
    return ChatHistoryManager(storage)


@pytest.fixture
def directory(storage):
    return AgentDirectory(storage)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def app(storage, gateway):
    return create_app(ConfigForTests, storage=storage, gateway=gateway)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def sample_agent(directory):
    return directory.add({
        'name': 'Vendedor',
        'description': 'Assistente de vendas da loja',
        'model': 'gemini-pro',
        'temperature': 0.5,
        'max_tokens': 512,
        'system_prompt': 'Seja cordial e objetivo',
        'is_active': True,
        'trigger_events': ['novo-lead'],
    })
