from unittest.mock import Mock

import pytest
import requests

from callnotes.errors import UpstreamError
from callnotes.services.ollama_wrap import OllamaFormatter
from callnotes.services.openai_wrap import OpenAITranscriber, OpenAITranslator, is_english_language


def _response(payload, status=200):
    resp = Mock(status_code=status)
    resp.json.return_value = payload
    if status >= 400:
        resp.raise_for_status.side_effect = requests.exceptions.HTTPError(f'{status} error')
    else:
        resp.raise_for_status.return_value = None
    return resp


def _no_http(*args, **kwargs):
    raise AssertionError('unexpected HTTP call')


@pytest.mark.parametrize('language, expected', [
    ('en', True), ('EN', True), ('eng', True), ('en-US', True), (' English ', True),
    ('so', False), ('enx', False), ('', False), (None, False),
])
def test_is_english_language(language, expected):
    assert is_english_language(language) is expected


def test_translator_passes_english_through(monkeypatch):
    monkeypatch.setattr(requests, 'post', _no_http)
    translator = OpenAITranslator(api_key='sk-test')
    assert translator.translate('  hello there ', 'en-GB') == 'hello there'


def test_translator_calls_chat_completions(monkeypatch):
    seen = {}

    def fake_post(url, headers=None, json=None, timeout=None):
        seen['url'] = url
        seen['body'] = json
        return _response({'choices': [{'message': {'content': ' Please call back. '}}]})

    monkeypatch.setattr(requests, 'post', fake_post)
    translator = OpenAITranslator(api_key='sk-test', base_url='https://api.example.com/')

    assert translator.translate('Fadlan soo wac', 'so') == 'Please call back.'
    assert seen['url'] == 'https://api.example.com/v1/chat/completions'
    assert seen['body']['temperature'] == 0.0
    assert 'Detected language: so' in seen['body']['messages'][1]['content']


def test_translator_accepts_content_parts(monkeypatch):
    payload = {'choices': [{'message': {'content': [{'type': 'text', 'text': 'Part one.'}, {'text': 'Part two.'}]}}]}
    monkeypatch.setattr(requests, 'post', lambda *a, **k: _response(payload))
    assert OpenAITranslator(api_key='sk-test').translate('x', 'so') == 'Part one. Part two.'


def test_translator_empty_reply_is_upstream_error(monkeypatch):
    monkeypatch.setattr(requests, 'post', lambda *a, **k: _response({'choices': [{'message': {'content': ''}}]}))
    with pytest.raises(UpstreamError) as err:
        OpenAITranslator(api_key='sk-test').translate('x', 'so')
    assert err.value.error_code == 'TRANSLATION_EMPTY'


def test_translator_without_key_returns_source(monkeypatch):
    monkeypatch.setattr(requests, 'post', _no_http)
    assert OpenAITranslator(api_key=None).translate(' Salaan ', 'so') == 'Salaan'


def test_transcriber_without_key_uses_placeholder(app, monkeypatch):
    monkeypatch.setattr(requests, 'post', _no_http)
    result = OpenAITranscriber(api_key=None).transcribe(b'audio', 'audio/mpeg')
    assert result.provider_id == 'mock-openai'
    assert result.detected_language == 'unknown'
    assert result.text


def test_transcriber_parses_json(app, monkeypatch):
    seen = {}

    def fake_post(url, headers=None, data=None, files=None, timeout=None):
        seen.update(url=url, data=data, files=files)
        return _response({'text': 'Salaan', 'language': 'so'})

    monkeypatch.setattr(requests, 'post', fake_post)
    result = OpenAITranscriber(api_key='sk-test', model='whisper-1').transcribe(b'audio', 'audio/mpeg')

    assert result.detected_language == 'so'
    assert result.text == 'Salaan'
    assert result.provider_id == 'whisper-1'
    assert result.latency_ms >= 0
    assert seen['data'] == {'model': 'whisper-1', 'response_format': 'json'}
    assert seen['files']['file'][2] == 'audio/mpeg'


def test_transcriber_http_failure_is_upstream_error(app, monkeypatch):
    def boom(*args, **kwargs):
        raise requests.exceptions.ConnectionError('refused')

    monkeypatch.setattr(requests, 'post', boom)
    with pytest.raises(UpstreamError) as err:
        OpenAITranscriber(api_key='sk-test').transcribe(b'audio', 'audio/mpeg')
    assert err.value.error_code == 'TRANSCRIPTION_HTTP_ERROR'


def test_transcriber_blank_text_is_upstream_error(app, monkeypatch):
    monkeypatch.setattr(requests, 'post', lambda *a, **k: _response({'text': '  '}))
    with pytest.raises(UpstreamError):
        OpenAITranscriber(api_key='sk-test').transcribe(b'audio', 'audio/mpeg')


def test_formatter_passthrough_when_unconfigured(monkeypatch):
    monkeypatch.setattr(requests, 'post', _no_http)
    assert OllamaFormatter(base_url=None).format('as spoken') == 'as spoken'


def test_formatter_rejects_empty_input():
    with pytest.raises(UpstreamError):
        OllamaFormatter(base_url='http://localhost:11434').format('  ')


def test_formatter_returns_trimmed_response(monkeypatch):
    seen = {}

    def fake_post(url, json=None, timeout=None):
        seen.update(url=url, body=json)
        return _response({'response': '  Cleaned text.  '})

    monkeypatch.setattr(requests, 'post', fake_post)
    formatter = OllamaFormatter(base_url='http://localhost:11434/', model='llama3.1:8b')

    assert formatter.format('cleaned text') == 'Cleaned text.'
    assert seen['url'] == 'http://localhost:11434/api/generate'
    assert seen['body']['stream'] is False


def test_formatter_http_error_is_upstream_error(monkeypatch):
    monkeypatch.setattr(requests, 'post', lambda *a, **k: _response({}, status=503))
    with pytest.raises(UpstreamError):
        OllamaFormatter(base_url='http://localhost:11434').format('text')
