import logging
import os
import time
from typing import Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from fieldnotes.core.errors import DependencyUnavailable
from fieldnotes.core.interfaces.ports import ILLMProvider

logger = logging.getLogger(__name__)


class GeminiProvider(ILLMProvider):
    def __init__(self, api_key: str = None, model_name: str = None, rate_limit_rpm: int = 25):
        """
        Args:
            rate_limit_rpm: Requests per minute limit (default: 25 for free tier)
        """
        self.model_name = model_name or os.getenv("GEMINI_MODEL", "gemini-2.0-flash-lite")
        self.api_key = api_key or os.getenv("GEMINI_API_KEY")
        self.rate_limit_rpm = rate_limit_rpm
        self.min_delay = 60.0 / rate_limit_rpm  # seconds between requests
        self.last_request_time = 0

        if not self.api_key or not self.api_key.strip():
            raise ValueError("Gemini API Key is required. Set GEMINI_API_KEY env var.")

        genai.configure(api_key=self.api_key)

    def generate(self, prompt: str, system_prompt: Optional[str] = None, json_mode: bool = False) -> str:
        # Rate limiting: ensure minimum delay between requests
        elapsed = time.time() - self.last_request_time
        if elapsed < self.min_delay:
            time.sleep(self.min_delay - elapsed)

        model = genai.GenerativeModel(self.model_name, system_instruction=system_prompt)
        config = {"response_mime_type": "application/json"} if json_mode else None

        try:
            response = model.generate_content(prompt, generation_config=config)
            return response.text
        except (google_exceptions.Unauthenticated, google_exceptions.PermissionDenied) as e:
            raise DependencyUnavailable(f"Gemini authentication failed: {e}", DependencyUnavailable.AUTHENTICATION) from e
        except google_exceptions.ResourceExhausted as e:
            raise DependencyUnavailable(f"Gemini rate limit exceeded: {e}", DependencyUnavailable.RATE_LIMIT) from e
        except (google_exceptions.ServiceUnavailable, google_exceptions.DeadlineExceeded) as e:
            raise DependencyUnavailable(f"Gemini unreachable: {e}", DependencyUnavailable.NETWORK) from e
        except google_exceptions.NotFound as e:
            logger.error("Gemini model '%s' not found", self.model_name)
            raise DependencyUnavailable(f"Gemini API failed: {e}") from e
        except ValueError as e:
            # response.text raises when the reply was blocked or empty
            raise DependencyUnavailable(f"Gemini returned no text: {e}", DependencyUnavailable.INVALID_RESPONSE) from e
        except Exception as e:
            raise DependencyUnavailable(f"Gemini API failed: {e}") from e
        finally:
            self.last_request_time = time.time()
