# Google Gemini generateContent client.
# Failures are raised as GatewayError with a kind; callers turn the kind
# into a message for the user.

import enum
import logging

import requests

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """
Você é um assistente de IA com a seguinte personalidade e contexto:

PERSONALIDADE: {personality}

CONTEXTO: {context}

INSTRUÇÕES:
- Responda sempre de acordo com sua personalidade definida
- Mantenha consistência com o contexto fornecido
- Seja útil, preciso e mantenha o tom apropriado
- Se não souber algo, admita de forma educada
- Mantenha as respostas concisas mas informativas

Agora responda à mensagem do usuário mantendo sua personalidade:
"""

ACKNOWLEDGEMENT = ('Entendido! Estou pronto para conversar mantendo minha personalidade '
                   'e contexto. Como posso ajudá-lo?')

SAFETY_CATEGORIES = [
    'HARM_CATEGORY_HARASSMENT',
    'HARM_CATEGORY_HATE_SPEECH',
    'HARM_CATEGORY_SEXUALLY_EXPLICIT',
    'HARM_CATEGORY_DANGEROUS_CONTENT',
]


class ErrorKind(enum.Enum):
    CONFIGURATION = 'configuration'
    QUOTA = 'quota'
    NETWORK = 'network'
    MALFORMED = 'malformed'
    API = 'api'


class GatewayError(Exception):
    def __init__(self, kind, message):
        super().__init__(message)
        self.kind = kind


def classify_http_error(status_code, message):
    text = (message or '').lower()
    if status_code == 429 or 'quota' in text or 'limit' in text:
        return ErrorKind.QUOTA
    if status_code in (400, 401, 403) and 'api key' in text:
        return ErrorKind.CONFIGURATION
    return ErrorKind.API


class GeminiGateway:
    def __init__(self, api_key, model='gemini-pro',
                 base_url='https://generativelanguage.googleapis.com/v1beta/models',
                 timeout=30):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

    @classmethod
    def from_config(cls, config):
        return cls(config.GEMINI_API_KEY, config.GEMINI_MODEL,
                   config.GEMINI_API_URL, config.GEMINI_TIMEOUT)

    def is_configured(self):
        return bool(self.api_key)

    def build_contents(self, message, context, personality, history=None):
        preamble = SYSTEM_PROMPT.format(personality=personality, context=context)
        return [
            {'role': 'user', 'parts': [{'text': preamble}]},
            {'role': 'model', 'parts': [{'text': ACKNOWLEDGEMENT}]},
            *(history or []),
            {'role': 'user', 'parts': [{'text': message}]},
        ]

    def complete(self, message, context, personality, history=None,
                 temperature=None, max_tokens=None):
        if not self.is_configured():
            raise GatewayError(ErrorKind.CONFIGURATION, 'Gemini API key is not configured')

        body = {
            'contents': self.build_contents(message, context, personality, history),
            'generationConfig': {
                'temperature': 0.7 if temperature is None else temperature,
                'topK': 40,
                'topP': 0.95,
                'maxOutputTokens': max_tokens or 1024,
            },
            'safetySettings': [{'category': c, 'threshold': 'BLOCK_MEDIUM_AND_ABOVE'}
                               for c in SAFETY_CATEGORIES],
        }
        url = f'{self.base_url}/{self.model}:generateContent'
        try:
            resp = requests.post(url, params={'key': self.api_key}, json=body, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.warning("Gemini request failed: %s", e)
            raise GatewayError(ErrorKind.NETWORK, str(e)) from e

        if not resp.ok:
            try:
                detail = resp.json().get('error', {}).get('message', '')
            except (ValueError, AttributeError):
                detail = ''
            kind = classify_http_error(resp.status_code, detail)
            logger.warning("Gemini returned %s (%s): %s", resp.status_code, kind.value, detail)
            raise GatewayError(kind, f'Gemini API error: {resp.status_code} - {detail or "unknown"}')

        try:
            data = resp.json()
            text = data['candidates'][0]['content']['parts'][0]['text']
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning("Unexpected Gemini response: %s", e)
            raise GatewayError(ErrorKind.MALFORMED, 'Invalid response from Gemini API') from e
        if not isinstance(text, str) or not text.strip():
            raise GatewayError(ErrorKind.MALFORMED, 'Empty response from Gemini API')
        return text.strip()

    def check_available(self):
        if not self.is_configured():
            return False
        try:
            text = self.complete('Teste de conexão', 'Sistema de teste', 'Assistente técnico')
        except GatewayError:
            return False
        return 'Desculpe' not in text
