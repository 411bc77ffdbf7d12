"""
Text-generation service clients.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from jira_planner.core.config import GenerationSettings
from jira_planner.core.exceptions import (
    GenerationServiceError,
    NetworkError,
    RateLimitError,
)
from jira_planner.core.logging import get_logger

logger = get_logger(__name__)


class GenerationService(ABC):
    """
    Abstract handle to a text-generation model.

    Implementations return the generated text, or raise a PlannerError
    subclass describing the failure.
    """

    @abstractmethod
    async def generate(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        """
        Generate a completion for ``prompt``.

        Raises:
            GenerationServiceError: no model configured or blank response
            NetworkError: transport failure
            RateLimitError: the provider throttled the request
        """
        ...

    async def close(self) -> None:
        """Release any held resources."""
        return None


class OpenAICompatibleGenerationService(GenerationService):
    """
    Generation service backed by an OpenAI-compatible chat completions API.
    """

    def __init__(self, settings: GenerationSettings) -> None:
        """
        Initialize the client.

        Args:
            settings: Generation settings (base URL, API key, model, limits)
        """
        self.settings = settings
        self.base_url = settings.base_url.rstrip("/")
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.settings.api_key:
                headers["Authorization"] = f"Bearer {self.settings.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.settings.timeout),
                headers=headers,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _build_payload(self, prompt: str, system_prompt: Optional[str]) -> dict[str, Any]:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return {
            "model": self.settings.model,
            "messages": messages,
            "max_tokens": self.settings.max_tokens,
            "temperature": self.settings.temperature,
        }

    async def generate(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        if not self.settings.model:
            raise GenerationServiceError("No language model is configured")

        client = await self._get_client()
        try:
            response = await client.post(
                "/chat/completions",
                json=self._build_payload(prompt, system_prompt),
            )
            response.raise_for_status()
            data = response.json()

        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            logger.error(
                "Generation request failed",
                status_code=status_code,
                response_text=e.response.text[:500],
            )
            if status_code == 429:
                retry_after = e.response.headers.get("retry-after")
                raise RateLimitError(
                    retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None
                ) from e
            raise GenerationServiceError(
                f"HTTP {status_code}",
                details={"status_code": status_code},
            ) from e

        except httpx.RequestError as e:
            logger.error("Generation request error", error=str(e))
            raise NetworkError(str(e) or type(e).__name__) from e

        except ValueError as e:
            raise GenerationServiceError("Response body is not valid JSON") from e

        text = self._extract_text(data)
        if not text.strip():
            raise GenerationServiceError("No response from language model")

        logger.debug(
            "Generation completed",
            model=self.settings.model,
            prompt_chars=len(prompt),
            response_chars=len(text),
        )
        return text

    @staticmethod
    def _extract_text(data: Any) -> str:
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            return ""
        return content if isinstance(content, str) else ""
