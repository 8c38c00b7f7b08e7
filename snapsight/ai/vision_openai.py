"""Vision model that calls an OpenAI-compatible chat completions endpoint.

One user message carries the instruction text and the image as an image_url part;
max_tokens bounds the reply. The API key is sent as a bearer token and never logged.

Uses a persistent requests.Session with connection pooling so concurrent proxy
requests reuse connections to the provider.
"""

import logging
from typing import Any

import requests

from snapsight.ai.schema import ModelCard
from snapsight.ai.vision_base import BaseVisionModel
from snapsight.core.config import ProxySettings
from snapsight.core.errors import RemoteModelError, RemoteModelTimeoutError

_log = logging.getLogger(__name__)

CHECK_PROMPT = "Hello, this is a test of my API key. Please respond with 'Your API key is working correctly.'"
CHECK_MAX_TOKENS = 30


def _response_details(resp: requests.Response) -> Any:
    """Remote error body: parsed JSON when possible, otherwise raw text."""
    try:
        return resp.json()
    except ValueError:
        return resp.text


def _extract_content(data: Any) -> str:
    """Return choices[0].message.content; raise RemoteModelError when the shape is wrong."""
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        raise RemoteModelError("Unexpected response structure from vision API", details=data)
    if not isinstance(content, str):
        raise RemoteModelError("Unexpected response structure from vision API", details=data)
    return content


class OpenAIVisionModel(BaseVisionModel):
    """Vision model backed by /chat/completions with image_url content parts."""

    def __init__(
        self,
        settings: ProxySettings,
        api_key: str | None,
        session: requests.Session | None = None,
    ) -> None:
        self._settings = settings
        self._api_key = api_key
        if session is None:
            session = requests.Session()
            adapter = requests.adapters.HTTPAdapter(pool_connections=10, pool_maxsize=20)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        self._session = session

    def get_model_card(self) -> ModelCard:
        return ModelCard(name=self._settings.model, version="api")

    def build_payload(self, image_url: str) -> dict[str, Any]:
        return {
            "model": self._settings.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": self._settings.prompt},
                        {"type": "image_url", "image_url": {"url": image_url}},
                    ],
                }
            ],
            "max_tokens": self._settings.max_tokens,
        }

    def _post(self, json_payload: dict[str, Any]) -> Any:
        """POST to chat/completions and return parsed JSON; map failures to RemoteModelError."""
        if not self._api_key:
            raise RemoteModelError("Vision API key is not configured (set OPENAI_API_KEY)")
        url = f"{self._settings.api_base}/chat/completions"
        try:
            resp = self._session.post(
                url,
                json=json_payload,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self._api_key}",
                },
                timeout=self._settings.timeout_seconds,
            )
        except requests.Timeout as e:
            _log.warning("Vision API timed out after %ss", self._settings.timeout_seconds)
            raise RemoteModelTimeoutError(
                f"Vision API did not respond within {self._settings.timeout_seconds:g}s",
                status_code=504,
            ) from e
        except requests.RequestException as e:
            _log.warning("Vision API request failed: %s", type(e).__name__)
            raise RemoteModelError(f"Failed to reach vision API: {e}") from e

        _log.info("Vision API responded with status %d", resp.status_code)
        if not resp.ok:
            raise RemoteModelError(
                f"Vision API returned {resp.status_code}",
                status_code=resp.status_code,
                details=_response_details(resp),
            )
        try:
            return resp.json()
        except ValueError as e:
            raise RemoteModelError(
                "Vision API returned a non-JSON body",
                status_code=resp.status_code,
                details=resp.text,
            ) from e

    def describe(self, image_url: str) -> str:
        data = self._post(self.build_payload(image_url))
        return _extract_content(data)

    def check_credential(self) -> str:
        """Send a tiny text-only completion to verify the key; return the model's reply."""
        data = self._post(
            {
                "model": self._settings.model,
                "messages": [{"role": "user", "content": CHECK_PROMPT}],
                "max_tokens": CHECK_MAX_TOKENS,
            }
        )
        return _extract_content(data)
