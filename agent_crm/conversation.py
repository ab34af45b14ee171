# Chat session for one agent: stores both sides of the conversation and
# asks the completion gateway for replies.

import logging

from .gateway import ErrorKind, GatewayError

logger = logging.getLogger(__name__)

APOLOGIES = {
    ErrorKind.CONFIGURATION: ('Desculpe, não consigo responder no momento. '
                              'A API key não está configurada corretamente.'),
    ErrorKind.QUOTA: 'Desculpe, atingimos o limite de uso da API. Tente novamente mais tarde.',
    ErrorKind.NETWORK: ('Desculpe, estou com problemas de conexão. '
                        'Verifique sua internet e tente novamente.'),
    ErrorKind.MALFORMED: 'Desculpe, ocorreu um erro inesperado. Tente novamente em alguns instantes.',
    ErrorKind.API: 'Desculpe, ocorreu um erro inesperado. Tente novamente em alguns instantes.',
}
NOT_CONFIGURED = ('Desculpe, a API do Gemini não está configurada. '
                  'Configure a variável GEMINI_API_KEY.')
NOT_CONNECTED = 'Desculpe, não consigo me conectar com a API do Gemini no momento.'


class ChatSession:
    def __init__(self, agent, history, gateway, directory=None):
        self.agent = agent
        self.history = history
        self.gateway = gateway
        self.directory = directory
        self.connected = False
        self.busy = False

    def open(self):
        """Stamp the agent as used, probe the gateway and return the transcript."""
        if self.directory is not None:
            self.agent = self.directory.touch_last_used(self.agent['id']) or self.agent
        self.connected = self.gateway.check_available()
        return self.history.get_history(self.agent['id'])

    def send(self, text):
        """Send one user message; returns the agent's reply message or None if ignored."""
        text = (text or '').strip()
        if not text or self.busy:
            return None
        agent_id = self.agent['id']
        self.busy = True
        try:
            self.history.append_message(agent_id, text, 'user')
            if not self.connected:
                reply = NOT_CONFIGURED if not self.gateway.is_configured() else NOT_CONNECTED
                return self.history.append_message(agent_id, reply, 'agent')
            context = self.history.get_context_window(agent_id)
            try:
                reply = self.gateway.complete(
                    text,
                    self.agent.get('description', ''),
                    self.agent.get('system_prompt', ''),
                    history=context,
                    temperature=self.agent.get('temperature'),
                    max_tokens=self.agent.get('max_tokens'),
                )
            except GatewayError as e:
                logger.warning("Agent %s reply failed (%s): %s", agent_id, e.kind.value, e)
                reply = APOLOGIES[e.kind]
            return self.history.append_message(agent_id, reply, 'agent')
        finally:
            self.busy = False

    def clear(self):
        self.history.clear_history(self.agent['id'])
