import requests

from ..errors import UpstreamError

FORMATTER_PROMPT = """You are editing a translated call note.
Keep the original meaning and content exactly as provided.
Only do light structural cleanup:
- fix sentence order only when needed for clarity
- fix grammar, punctuation, and capitalization
- split or join sentences for readability
Do not add, remove, summarize, expand, or infer details.
Do not change names, dates, numbers, places, or actions.
Do not use report format, headings, bullet points, labels, or templates.
Return plain text only."""


class OllamaFormatter:
    """Light prose cleanup through a local Ollama model.

    With no base URL configured the formatter passes text through unchanged.
    """

    def __init__(self, base_url=None, model='llama3.1:8b', timeout=60):
        self.base_url = base_url.rstrip('/') if base_url else None
        self.model = model
        self.timeout = timeout

    @classmethod
    def from_config(cls, config):
        return cls(
            base_url=config.get('OLLAMA_BASE_URL'),
            model=config.get('OLLAMA_MODEL'),
            timeout=config.get('OLLAMA_TIMEOUT', 60),
        )

    def format(self, english_text: str) -> str:
        if not english_text or not english_text.strip():
            raise UpstreamError('Transcript cannot be empty', error_code='FORMATTER_EMPTY_INPUT')
        if not self.base_url:
            return english_text

        body = {
            'model': self.model,
            'stream': False,
            'prompt': f"{FORMATTER_PROMPT}\n\nTranscript:\n{english_text}",
            'options': {'temperature': 0.0},
        }
        try:
            r = requests.post(f"{self.base_url}/api/generate", json=body, timeout=self.timeout)
            r.raise_for_status()
            jr = r.json()
        except requests.exceptions.RequestException as e:
            raise UpstreamError('Formatter request failed', error_code='FORMATTER_HTTP_ERROR', cause=e)
        except ValueError as e:
            raise UpstreamError('Formatter returned invalid JSON', error_code='FORMATTER_BAD_RESPONSE', cause=e)

        response = (jr.get('response') or '') if isinstance(jr, dict) else ''
        if not response.strip():
            raise UpstreamError('Ollama returned empty response', error_code='FORMATTER_EMPTY')
        return response.strip()
