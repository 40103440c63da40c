"""AsyncOpenAI wrapper used for story, test-plan and test-script generation."""

import logging
import re
from typing import Any, Dict, List, Optional, Set

import openai
from openai import AsyncOpenAI

from autoheal.config.settings import Settings, get_settings
from autoheal.core.interfaces import TextGenerator
from autoheal.error_handling.exceptions import ConfigurationError, GenerationError

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant for test automation. "
    "Respond with valid JSON when requested."
)

SCRIPT_SYSTEM_PROMPT = """You are an expert Playwright test automation engineer. Generate complete, executable Playwright test scripts following best practices.

Requirements:
- Use async/await syntax
- Include proper imports
- Add descriptive test names
- Include proper assertions
- Handle waits and timeouts properly
- Use modern Playwright APIs

Return ONLY the JavaScript code for the test file, no markdown, no explanations, just the code."""

_THINK_BLOCK = re.compile(r"<think>[\s\S]*?</think>", re.IGNORECASE)
_CODE_FENCE = re.compile(r"```[A-Za-z]*[ \t]*\n?")


def strip_thinking(text: Optional[str]) -> str:
    """Remove ``<think>...</think>`` blocks emitted by reasoning models."""
    if not text:
        return ""
    return _THINK_BLOCK.sub("", text).strip()


def strip_code_fences(text: Optional[str]) -> str:
    """Remove markdown code fences, keeping the fenced body."""
    if not text:
        return ""
    return _CODE_FENCE.sub("", text).strip()


class GenerationClient(TextGenerator):
    """Chat-completions client for OpenRouter, OpenAI or a local server.

    OpenRouter answers HTTP 402 once the account's credit is spent; the
    client then walks the configured free models in order and keeps the
    first one that answers for the rest of the session.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.provider = self.settings.ai_provider
        self.logger = logging.getLogger("generation_client")
        self.free_models: List[str] = list(self.settings.ai_free_models)
        self.failed_models: Set[str] = set()

        if self.provider == "local":
            self.model = self.settings.local_llm_model
        else:
            self.model = self.settings.ai_model
        self.primary_model = self.model

        self._client = client

    @property
    def enabled(self) -> bool:
        return self.provider != "disabled"

    @property
    def client(self) -> AsyncOpenAI:
        """Lazily construct the underlying AsyncOpenAI client."""
        if self._client is None:
            self._client = self._build_client()
        return self._client

    def _build_client(self) -> AsyncOpenAI:
        settings = self.settings
        timeout = float(settings.ai_request_timeout_seconds)

        if self.provider == "disabled":
            raise GenerationError(
                "AI generation is disabled (AI_PROVIDER=disabled)",
                provider=self.provider,
            )

        if self.provider == "local":
            self.logger.info(
                f"Local LLM configured: {settings.local_llm_url} with model {self.model}"
            )
            return AsyncOpenAI(
                base_url=settings.ai_base_url or settings.local_llm_url,
                api_key="not-needed",
                max_retries=settings.ai_max_retries,
                timeout=timeout,
            )

        if self.provider == "openai":
            if not settings.openai_api_key:
                raise ConfigurationError(
                    "OpenAI API key not provided. Set OPENAI_API_KEY environment variable.",
                    setting="openai_api_key",
                )
            return AsyncOpenAI(
                api_key=settings.openai_api_key,
                base_url=settings.ai_base_url,
                max_retries=settings.ai_max_retries,
                timeout=timeout,
            )

        if not settings.openrouter_api_key:
            raise ConfigurationError(
                "OpenRouter API key not provided. Set OPENROUTER_API_KEY environment variable.",
                setting="openrouter_api_key",
            )
        self.logger.info(
            f"OpenRouter configured with model {self.model}; "
            f"{len(self.free_models)} free fallback models available"
        )
        return AsyncOpenAI(
            api_key=settings.openrouter_api_key,
            base_url=settings.ai_base_url or OPENROUTER_BASE_URL,
            max_retries=settings.ai_max_retries,
            timeout=timeout,
            default_headers={
                "HTTP-Referer": settings.ai_app_referer,
                "X-Title": settings.ai_app_title,
            },
        )

    def rotate_model(self) -> bool:
        """Switch to the next free model that has not returned 402 yet."""
        self.failed_models.add(self.model)
        for candidate in self.free_models:
            if candidate not in self.failed_models:
                previous = self.model
                self.model = candidate
                self.logger.warning(
                    f"Model rotated: {previous} -> {candidate} (402 credit limit)"
                )
                return True
        self.logger.error("All free models exhausted; every model returned 402")
        return False

    def reset_rotation(self) -> None:
        self.failed_models.clear()
        self.model = self.primary_model

    async def call(
        self,
        messages: List[Dict[str, str]],
        temperature: float,
        max_tokens: int,
    ) -> Dict[str, Any]:
        """Make a chat-completions call, rotating models on HTTP 402."""
        if not self.enabled:
            raise GenerationError(
                "AI generation is disabled (AI_PROVIDER=disabled)",
                provider=self.provider,
            )

        max_attempts = len(self.free_models) + 1
        for _ in range(max_attempts):
            self.logger.debug(
                f"Generation call: model={self.model}, "
                f"messages={len(messages)}, temperature={temperature}"
            )
            try:
                response = await self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=temperature,
                    max_tokens=max_tokens,
                )
            except openai.APIStatusError as e:
                if e.status_code == 402:
                    self.logger.warning(f"402 credit limit hit on model: {self.model}")
                    if self.rotate_model():
                        continue
                    raise GenerationError(
                        "All free models exhausted (402 on every model)",
                        model=self.model,
                        provider=self.provider,
                        cause=e,
                    ) from e
                self.logger.error(f"Generation API error: {e}")
                raise GenerationError(
                    f"Generation API error: {e}",
                    model=self.model,
                    provider=self.provider,
                    cause=e,
                ) from e
            except openai.APIError as e:
                self.logger.error(f"Generation API error: {e}")
                raise GenerationError(
                    f"Generation API error: {e}",
                    model=self.model,
                    provider=self.provider,
                    cause=e,
                ) from e

            choice = response.choices[0]
            usage = getattr(response, "usage", None)
            return {
                "content": choice.message.content or "",
                "usage": {
                    "prompt_tokens": getattr(usage, "prompt_tokens", 0),
                    "completion_tokens": getattr(usage, "completion_tokens", 0),
                    "total_tokens": getattr(usage, "total_tokens", 0),
                },
                "model": getattr(response, "model", self.model),
                "finish_reason": choice.finish_reason,
            }

        raise GenerationError(
            "All free models exhausted (402 on every model)",
            model=self.model,
            provider=self.provider,
        )

    async def generate(
        self,
        prompt: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        system_prompt: Optional[str] = None,
    ) -> str:
        messages = [
            {"role": "system", "content": system_prompt or DEFAULT_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]
        result = await self.call(
            messages,
            temperature=self.settings.ai_temperature if temperature is None else temperature,
            max_tokens=max_tokens or self.settings.ai_max_tokens,
        )
        return strip_thinking(result["content"])

    async def generate_test_script(self, prompt: str) -> str:
        self.logger.info("Generating test script")
        text = await self.generate(
            prompt,
            max_tokens=self.settings.ai_script_max_tokens,
            temperature=self.settings.ai_script_temperature,
            system_prompt=SCRIPT_SYSTEM_PROMPT,
        )
        return strip_code_fences(text)
