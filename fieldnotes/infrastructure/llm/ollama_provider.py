from typing import Optional

import requests

from fieldnotes.core.errors import DependencyUnavailable
from fieldnotes.core.interfaces.ports import ILLMProvider


class OllamaProvider(ILLMProvider):
    def __init__(self, model_name: str = "gemma3:12b", base_url: str = "http://localhost:11434", timeout: float = 120.0):
        self.model_name = model_name
        self.base_url = base_url
        self.api_url = f"{base_url}/api/generate"
        self.timeout = timeout

    def generate(self, prompt: str, system_prompt: Optional[str] = None, json_mode: bool = False) -> str:
        payload = {
            "model": self.model_name,
            "prompt": prompt,
            "stream": False
        }
        if system_prompt:
            payload["system"] = system_prompt
        if json_mode:
            payload["format"] = "json"

        try:
            response = requests.post(self.api_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
            return data.get("response", "")
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise DependencyUnavailable(f"Ollama connection failed: {e}", DependencyUnavailable.NETWORK) from e
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status in (401, 403):
                kind = DependencyUnavailable.AUTHENTICATION
            elif status == 429:
                kind = DependencyUnavailable.RATE_LIMIT
            else:
                kind = DependencyUnavailable.UNKNOWN
            raise DependencyUnavailable(f"Ollama request failed: {e}", kind) from e
        except ValueError as e:
            raise DependencyUnavailable(f"Ollama returned invalid JSON: {e}", DependencyUnavailable.INVALID_RESPONSE) from e
        except requests.exceptions.RequestException as e:
            raise DependencyUnavailable(f"Ollama request failed: {e}") from e
