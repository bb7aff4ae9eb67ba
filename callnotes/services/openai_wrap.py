"""Thin wrappers for the OpenAI transcription and chat-completions HTTP APIs.

We call the REST endpoints directly with `requests` rather than the SDK so the
request shape stays explicit and easy to fake in tests.
"""

import time
import mimetypes
from collections import namedtuple

import requests
from flask import current_app

from ..errors import UpstreamError

TranscriptionResult = namedtuple(
    'TranscriptionResult', ['detected_language', 'text', 'provider_id', 'latency_ms']
)

TRANSLATION_SYSTEM_PROMPT = """Translate spoken-call transcript text to English faithfully.
Rules:
- Preserve facts, uncertainty, dates, numbers, names, and actions exactly.
- Do not summarize, add details, remove details, or infer anything.
- Keep roughly the same amount of detail and meaning.
- If the input is already English, return the content unchanged.
- Output plain English text only."""


def is_english_language(detected_language) -> bool:
    if not detected_language or not detected_language.strip():
        return False
    normalized = detected_language.strip().lower()
    return (
        normalized in ('en', 'eng', 'english')
        or normalized.startswith('en-')
    )


def _elapsed_ms(start):
    return int((time.monotonic() - start) * 1000)


class OpenAITranscriber:
    def __init__(self, api_key=None, base_url='https://api.openai.com', model='gpt-4o-mini-transcribe', timeout=60):
        self.api_key = api_key
        self.base_url = (base_url or 'https://api.openai.com').rstrip('/')
        self.model = model
        self.timeout = timeout

    @classmethod
    def from_config(cls, config):
        return cls(
            api_key=config.get('OPENAI_API_KEY'),
            base_url=config.get('OPENAI_BASE_URL'),
            model=config.get('OPENAI_TRANSCRIPTION_MODEL'),
            timeout=config.get('OPENAI_TIMEOUT', 60),
        )

    def transcribe(self, audio_bytes: bytes, mime_type: str = None) -> TranscriptionResult:
        start = time.monotonic()
        if not self.api_key:
            # local development without credentials: return a labelled placeholder
            current_app.logger.warning('OPENAI_API_KEY missing; returning placeholder transcript')
            return TranscriptionResult(
                'unknown',
                'OpenAI API key missing, using transcript fallback for local development.',
                'mock-openai',
                _elapsed_ms(start),
            )

        content_type = (mime_type or 'audio/mpeg').split(';')[0].strip()
        ext = mimetypes.guess_extension(content_type) or '.bin'
        try:
            r = requests.post(
                f"{self.base_url}/v1/audio/transcriptions",
                headers={'Authorization': f'Bearer {self.api_key}'},
                # json works across transcription model variants; verbose_json does not
                data={'model': self.model, 'response_format': 'json'},
                files={'file': (f'audio{ext}', audio_bytes, content_type)},
                timeout=self.timeout,
            )
            r.raise_for_status()
            jr = r.json()
        except requests.exceptions.RequestException as e:
            raise UpstreamError('OpenAI transcription request failed', error_code='TRANSCRIPTION_HTTP_ERROR', cause=e)
        except ValueError as e:
            raise UpstreamError('OpenAI transcription returned invalid JSON', error_code='TRANSCRIPTION_BAD_RESPONSE', cause=e)

        text = (jr.get('text') or '').strip() if isinstance(jr, dict) else ''
        if not text:
            raise UpstreamError('OpenAI transcription returned empty text', error_code='TRANSCRIPTION_EMPTY')
        language = (jr.get('language') or 'unknown') if isinstance(jr, dict) else 'unknown'
        return TranscriptionResult(language, text, self.model, _elapsed_ms(start))


class OpenAITranslator:
    def __init__(self, api_key=None, base_url='https://api.openai.com', model='gpt-4o-mini', timeout=60):
        self.api_key = api_key
        self.base_url = (base_url or 'https://api.openai.com').rstrip('/')
        self.model = model or 'gpt-4o-mini'
        self.timeout = timeout

    @classmethod
    def from_config(cls, config):
        return cls(
            api_key=config.get('OPENAI_API_KEY'),
            base_url=config.get('OPENAI_BASE_URL'),
            model=config.get('OPENAI_TRANSLATION_MODEL'),
            timeout=config.get('OPENAI_TIMEOUT', 60),
        )

    def translate(self, text: str, detected_language: str = None) -> str:
        if not text or not text.strip():
            raise UpstreamError('Source text cannot be empty', error_code='TRANSLATION_EMPTY_INPUT')
        if is_english_language(detected_language):
            return text.strip()
        if not self.api_key:
            return text.strip()

        language = detected_language if detected_language and detected_language.strip() else 'unknown'
        body = {
            'model': self.model,
            'temperature': 0.0,
            'messages': [
                {'role': 'system', 'content': TRANSLATION_SYSTEM_PROMPT},
                {'role': 'user', 'content': f"Detected language: {language}\n\nTranscript:\n{text}"},
            ],
        }
        try:
            r = requests.post(
                f"{self.base_url}/v1/chat/completions",
                headers={'Authorization': f'Bearer {self.api_key}', 'Content-Type': 'application/json'},
                json=body,
                timeout=self.timeout,
            )
            r.raise_for_status()
            jr = r.json()
        except requests.exceptions.RequestException as e:
            raise UpstreamError('OpenAI translation request failed', error_code='TRANSLATION_HTTP_ERROR', cause=e)
        except ValueError as e:
            raise UpstreamError('OpenAI translation returned invalid JSON', error_code='TRANSLATION_BAD_RESPONSE', cause=e)

        translated = _extract_message_text(jr)
        if not translated.strip():
            raise UpstreamError('OpenAI translation returned empty text', error_code='TRANSLATION_EMPTY')
        return translated.strip()


def _extract_message_text(jr) -> str:
    # chat completions: choices[0].message.content is a string or a list of parts
    try:
        content = jr['choices'][0]['message']['content']
    except (KeyError, IndexError, TypeError):
        return ''
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get('text'):
                parts.append(part['text'])
        return ' '.join(parts)
    return ''
