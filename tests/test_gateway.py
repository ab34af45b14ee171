import pytest
import requests

from agent_crm import gateway as gw
from agent_crm.gateway import ErrorKind, GatewayError, GeminiGateway, classify_http_error


class FakeResponse:
    def __init__(self, status_code=200, body=None, text_body=False):
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self._body = body
        self._text_body = text_body

    def json(self):
        if self._text_body:
            raise ValueError('not json')
        return self._body


def ok_body(text):
    return {'candidates': [{'content': {'parts': [{'text': text}]}}]}


@pytest.fixture
def posts(monkeypatch):
    """Capture requests.post calls; set .response or .exc to control the outcome."""

    class Recorder:
        response = FakeResponse(body=ok_body('  Resposta  '))
        exc = None
        calls = []

        def __call__(self, url, **kwargs):
            self.calls.append((url, kwargs))
            if self.exc is not None:
                raise self.exc
            return self.response

    recorder = Recorder()
    recorder.calls = []
    monkeypatch.setattr(gw.requests, 'post', recorder)
    return recorder


def make_gateway(key='secret'):
    return GeminiGateway(key, model='gemini-pro', base_url='https://example.test/models/', timeout=5)


def test_complete_builds_request(posts):
    history = [{'role': 'user', 'parts': [{'text': 'antes'}]},
               {'role': 'model', 'parts': [{'text': 'ok'}]}]
    reply = make_gateway().complete('Qual o preço?', 'Loja de móveis', 'Vendedor simpático', history)
    assert reply == 'Resposta'

    url, kwargs = posts.calls[0]
    assert url == 'https://example.test/models/gemini-pro:generateContent'
    assert kwargs['params'] == {'key': 'secret'}
    assert kwargs['timeout'] == 5
    contents = kwargs['json']['contents']
    assert [c['role'] for c in contents] == ['user', 'model', 'user', 'model', 'user']
    assert 'PERSONALIDADE: Vendedor simpático' in contents[0]['parts'][0]['text']
    assert 'CONTEXTO: Loja de móveis' in contents[0]['parts'][0]['text']
    assert contents[1]['parts'][0]['text'] == gw.ACKNOWLEDGEMENT
    assert contents[-1]['parts'][0]['text'] == 'Qual o preço?'
    config = kwargs['json']['generationConfig']
    assert config == {'temperature': 0.7, 'topK': 40, 'topP': 0.95, 'maxOutputTokens': 1024}
    assert len(kwargs['json']['safetySettings']) == 4


def test_generation_overrides(posts):
    make_gateway().complete('oi', 'ctx', 'p', temperature=0.2, max_tokens=256)
    config = posts.calls[0][1]['json']['generationConfig']
    assert config['temperature'] == 0.2
    assert config['maxOutputTokens'] == 256


def test_missing_key_is_configuration_error(posts):
    with pytest.raises(GatewayError) as exc:
        make_gateway(key='').complete('oi', 'ctx', 'p')
    assert exc.value.kind is ErrorKind.CONFIGURATION
    assert posts.calls == []


def test_network_error(posts):
    posts.exc = requests.exceptions.ConnectionError('unreachable')
    with pytest.raises(GatewayError) as exc:
        make_gateway().complete('oi', 'ctx', 'p')
    assert exc.value.kind is ErrorKind.NETWORK


def test_timeout_is_network_error(posts):
    posts.exc = requests.exceptions.Timeout('slow')
    with pytest.raises(GatewayError) as exc:
        make_gateway().complete('oi', 'ctx', 'p')
    assert exc.value.kind is ErrorKind.NETWORK


@pytest.mark.parametrize('status,message,kind', [
    (429, 'Resource has been exhausted', ErrorKind.QUOTA),
    (403, 'Quota exceeded for project', ErrorKind.QUOTA),
    (400, 'API key not valid. Please pass a valid API key.', ErrorKind.CONFIGURATION),
    (500, 'Internal error', ErrorKind.API),
])
def test_http_errors_are_classified(posts, status, message, kind):
    posts.response = FakeResponse(status, {'error': {'message': message}})
    with pytest.raises(GatewayError) as exc:
        make_gateway().complete('oi', 'ctx', 'p')
    assert exc.value.kind is kind
    assert str(status) in str(exc.value)


def test_http_error_without_json_body(posts):
    posts.response = FakeResponse(502, text_body=True)
    with pytest.raises(GatewayError) as exc:
        make_gateway().complete('oi', 'ctx', 'p')
    assert exc.value.kind is ErrorKind.API


@pytest.mark.parametrize('body', [{}, {'candidates': []}, {'candidates': [{'content': {'parts': [{}]}}]},
                                  ok_body('   ')])
def test_malformed_responses(posts, body):
    posts.response = FakeResponse(200, body)
    with pytest.raises(GatewayError) as exc:
        make_gateway().complete('oi', 'ctx', 'p')
    assert exc.value.kind is ErrorKind.MALFORMED


def test_check_available(posts):
    assert make_gateway().check_available() is True
    posts.exc = requests.exceptions.ConnectionError('down')
    assert make_gateway().check_available() is False


def test_check_available_without_key_does_not_call(posts):
    assert make_gateway(key='').check_available() is False
    assert posts.calls == []


def test_classify_http_error():
    assert classify_http_error(429, '') is ErrorKind.QUOTA
    assert classify_http_error(400, 'rate limit reached') is ErrorKind.QUOTA
    assert classify_http_error(401, 'bad API key') is ErrorKind.CONFIGURATION
    assert classify_http_error(404, 'model not found') is ErrorKind.API


def test_check_available_rejects_apology_reply(posts):
    posts.response = FakeResponse(body=ok_body('Desculpe, não consegui responder.'))
    assert make_gateway().check_available() is False
