"""Ollama classifier client.

Sends structured-output requests to ``/api/generate`` with the verdict
JSON schema as ``format`` and returns the raw model text.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..triage.exceptions import ClassifierError
from ..triage.models import ScoringRequest

logger = logging.getLogger(__name__)


class OllamaClassifierClient:
    """Async client for a local or remote Ollama server.

    Example:
        async with OllamaClassifierClient("llama3.2") as classifier:
            if await classifier.ping():
                raw = await classifier.generate(request)
    """

    def __init__(
        self,
        model: str,
        base_url: str = "http://localhost:11434",
        timeout: float = 120.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        logger.info(f"Initialized Ollama classifier: {model} at {self.base_url}")

    @classmethod
    def from_settings(cls, settings: Any, client: Optional[httpx.AsyncClient] = None) -> "OllamaClassifierClient":
        return cls(
            model=settings.model,
            base_url=settings.server_url,
            timeout=settings.request_timeout,
            client=client,
        )

    async def generate(self, request: ScoringRequest) -> str:
        """Return the model's raw answer.

        Raises:
            ClassifierError: On transport failure, HTTP error or empty answer
        """
        payload: Dict[str, Any] = {
            "model": self.model,
            "prompt": request.prompt,
            "format": request.schema,
            "stream": False,
            "options": dict(request.options),
        }
        try:
            response = await self._client.post(f"{self.base_url}/api/generate", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise ClassifierError(f"Ollama request timed out after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise ClassifierError(f"Ollama returned HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise ClassifierError(f"Ollama request failed: {e}") from e

        text = data.get("response") if isinstance(data, dict) else None
        if not text:
            raise ClassifierError("Ollama returned an empty response")
        return text

    async def list_models(self) -> List[str]:
        """Names of the models installed on the server.

        Raises:
            ClassifierError: If the server cannot be queried
        """
        try:
            response = await self._client.get(f"{self.base_url}/api/tags", timeout=10.0)
            response.raise_for_status()
            models = response.json().get("models", [])
        except (httpx.HTTPError, ValueError) as e:
            raise ClassifierError(f"Failed to list Ollama models: {e}") from e
        return [model["name"] for model in models if isinstance(model, dict) and "name" in model]

    async def ping(self) -> bool:
        """True when the server answers and has the configured model."""
        try:
            models = await self.list_models()
        except ClassifierError as e:
            logger.warning(f"Ollama server not reachable: {e}")
            return False
        if self.model not in models and f"{self.model}:latest" not in models:
            logger.warning(f"Ollama is running but model {self.model!r} is not installed")
            return False
        return True

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "OllamaClassifierClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


__all__ = ["OllamaClassifierClient"]
