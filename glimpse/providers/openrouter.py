"""
OpenRouter vision provider for Glimpse.

Describes screenshots and answers questions about them through OpenRouter's
OpenAI-compatible chat completions API, sending images inline as base64
data URLs.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import mimetypes
import os
from collections.abc import Sequence
from pathlib import Path
from typing import Optional

import httpx
from dotenv import load_dotenv

from glimpse.core.errors import AuthenticationError, ProviderError
from glimpse.indexing.rate_limiter import RateLimiter
from glimpse.providers.base import VisionProvider
from glimpse.providers.http import HTTPProviderMixin

load_dotenv()

logger = logging.getLogger(__name__)

DESCRIPTION_PROMPT = (
    "Please provide a detailed, descriptive summary of what is shown in this screenshot. "
    "Point out all the details in the screenshot. Specifically mention the content, text "
    "and images on the screen. The description will be used to retrieve the screenshot "
    "when the user asks a question."
)


class OpenRouterVisionProvider(HTTPProviderMixin, VisionProvider):
    """Screenshot descriptions and answers from a vision model on OpenRouter."""

    DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
    DEFAULT_MODEL = "mistralai/pixtral-12b"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = DEFAULT_BASE_URL,
        model: str | None = None,
        answer_model: str | None = None,
        timeout: float = 60.0,
        app_name: str = "Glimpse",
        rate_limiter: Optional[RateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the provider.

        Args:
            api_key: OpenRouter key (default: OPENROUTER_API_KEY env var)
            base_url: API base URL
            model: Vision model id (default: OPENROUTER_VISION_MODEL env var
                or mistralai/pixtral-12b)
            answer_model: Model for question answering (default:
                OPENROUTER_ANSWER_MODEL env var, then ``model``)
            timeout: Per-request timeout in seconds
            app_name: Sent as X-Title
            rate_limiter: Optional limiter applied to every request
            transport: Custom httpx transport

        Raises:
            AuthenticationError: If no API key is available
        """
        if api_key is None:
            api_key = os.getenv("OPENROUTER_API_KEY")
            if not api_key:
                raise AuthenticationError(
                    "OPENROUTER_API_KEY not provided and not found in environment"
                )

        super().__init__(model or os.getenv("OPENROUTER_VISION_MODEL") or self.DEFAULT_MODEL)
        self.api_key = api_key
        self.answer_model = answer_model or os.getenv("OPENROUTER_ANSWER_MODEL")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.app_name = app_name
        self.rate_limiter = rate_limiter
        self._transport = transport
        self._client = None

    @property
    def provider_name(self) -> str:
        return "openrouter"

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "X-Title": self.app_name,
            "Content-Type": "application/json",
        }

    async def describe(self, image_path: str | Path, prompt: str | None = None) -> str:
        """Describe a screenshot.

        Args:
            image_path: Image file to send
            prompt: Instruction text (default: DESCRIPTION_PROMPT)

        Returns:
            The model's description

        Raises:
            ProviderError: If the image cannot be read, the request fails, or
                the model returns no content
        """
        logger.debug(f"Requesting description of {Path(image_path).name} from '{self.model}'")
        content = await self._complete(self.model, prompt or DESCRIPTION_PROMPT, [image_path])
        if not content:
            raise ProviderError(f"Vision model '{self.model}' returned an empty description")
        return content

    async def answer(self, prompt: str, image_paths: Sequence[str | Path]) -> str:
        """Answer a question about several screenshots in one request.

        Uses ``answer_model`` when set, otherwise the description model.

        Raises:
            ProviderError: If an image cannot be read, the request fails, or
                the model returns no content
        """
        model = self.answer_model or self.model
        logger.debug(f"Asking '{model}' about {len(image_paths)} screenshot(s)")
        content = await self._complete(model, prompt, image_paths)
        if not content:
            raise ProviderError(f"Vision model '{model}' returned an empty answer")
        return content

    async def _complete(self, model: str, prompt: str, image_paths: Sequence[str | Path]) -> str:
        parts: list[dict] = [{"type": "text", "text": prompt}]
        for image_path in image_paths:
            image_url = await asyncio.to_thread(self._encode_image, Path(image_path))
            parts.append({"type": "image_url", "image_url": {"url": image_url}})

        data = {
            "model": model,
            "messages": [{"role": "user", "content": parts}],
        }

        if self.rate_limiter is not None:
            async with self.rate_limiter:
                response = await self._post("/chat/completions", data)
        else:
            response = await self._post("/chat/completions", data)
        return self._first_choice_content(response)

    @staticmethod
    def _encode_image(path: Path) -> str:
        try:
            raw = path.read_bytes()
        except OSError as e:
            raise ProviderError(f"Cannot read image {path}: {e}") from e
        mime_type = mimetypes.guess_type(path.name)[0] or "image/png"
        encoded = base64.b64encode(raw).decode("ascii")
        return f"data:{mime_type};base64,{encoded}"

    @staticmethod
    def _first_choice_content(response: dict) -> str:
        choices = response.get("choices") or []
        if not choices:
            return ""
        message = choices[0].get("message") or {}
        content = message.get("content") or ""
        if isinstance(content, list):
            content = "".join(
                part.get("text", "") for part in content if isinstance(part, dict)
            )
        return content.strip()
