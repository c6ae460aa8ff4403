"""
AI Provider Helper - thin wrapper around an OpenAI-compatible chat completion API.
Defaults to the NEAR AI cloud endpoint; any compatible base URL works.

Env vars:
  NEAR_AI_API_KEY   - API key for the provider
  NEAR_AI_BASE_URL  - OpenAI-compatible base URL
  NEAR_AI_MODEL     - Model identifier
"""

import logging

from openai import OpenAI, APIStatusError, APITimeoutError, APIConnectionError, OpenAIError

from agent_errors import DependencyUnavailable

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 90
DEFAULT_TEMPERATURE = 0.2
DEFAULT_MAX_TOKENS = 2000


class AIProvider:
    def __init__(self, api_key, base_url, model, timeout=DEFAULT_TIMEOUT, client=None):
        self.api_key = api_key
        self.base_url = base_url
        self.model = model
        self.timeout = timeout
        self._client = client

    @property
    def configured(self):
        return bool(self._client or (self.api_key and self.model))

    def _get_client(self):
        if self._client is None:
            if not self.api_key:
                raise DependencyUnavailable("ai", "AI API not configured (missing NEAR_AI_API_KEY)")
            # Retries stay with the caller; a timed-out review is a plain failure
            self._client = OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def complete(self, system_prompt, user_prompt, temperature=DEFAULT_TEMPERATURE, max_tokens=DEFAULT_MAX_TOKENS):
        """
        Send one chat completion.
        Returns: response text. Raises DependencyUnavailable on any API failure.
        """
        client = self._get_client()
        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except APITimeoutError as e:
            raise DependencyUnavailable("ai", "AI API timeout") from e
        except APIStatusError as e:
            logger.error("ai api error | status=%s body=%.300s", e.status_code, getattr(e.response, "text", ""))
            raise DependencyUnavailable("ai", f"AI API error: {e.status_code}", status_code=e.status_code) from e
        except APIConnectionError as e:
            raise DependencyUnavailable("ai", f"AI API unreachable: {e}") from e
        except OpenAIError as e:
            raise DependencyUnavailable("ai", f"AI API error: {e}") from e

        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not content or not content.strip():
            raise DependencyUnavailable("ai", "AI returned empty response")
        return content.strip()
