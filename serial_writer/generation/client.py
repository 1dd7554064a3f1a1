"""Generative-text clients for OpenAI-compatible endpoints and Gemini."""

import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from loguru import logger

from ..config import GeneratorConfig, StrategyProfile
from ..errors import GenerationError, GeneratorTimeoutError

SYSTEM_PROMPT = """You are a professional web-novel author writing a long-running romance fantasy serial. You write vivid, engaging prose with:
- Rich sensory details and atmospheric descriptions
- Natural, distinctive character dialogue
- Varied sentence structure and pacing
- Show-don't-tell storytelling
- Emotional depth and slow-burn relationship tension

Always answer in the exact section layout you are given."""


@dataclass
class GenerationResponse:
    text: str
    tokens_used: int
    elapsed_seconds: float = 0.0


def estimate_tokens(*texts: str) -> int:
    return sum(len(t) for t in texts if t) // 4


class TextGenerator(ABC):
    """Prompt in, text out. Implementations own timeouts and token accounting."""

    @abstractmethod
    def generate(self, prompt: str, profile: StrategyProfile) -> GenerationResponse:
        ...

    def _log(self, action: str, prompt: str, response: GenerationResponse) -> None:
        logger.debug(
            f"{type(self).__name__}.{action}: {response.tokens_used} tokens in "
            f"{response.elapsed_seconds:.2f}s, prompt {len(prompt)} chars, response {len(response.text or '')} chars"
        )


def _api_key(config: GeneratorConfig) -> str:
    key = os.environ.get(config.api_key_env)
    if not key:
        raise GenerationError(f"Environment variable {config.api_key_env} is not set")
    return key


class OpenAIGenerator(TextGenerator):
    """Chat completions via the openai SDK; works with any compatible base_url."""

    def __init__(self, config: GeneratorConfig):
        super().__init__()
        self.config = config

    def generate(self, prompt: str, profile: StrategyProfile) -> GenerationResponse:
        from openai import APITimeoutError, OpenAI, OpenAIError

        start = time.time()
        client = OpenAI(
            api_key=_api_key(self.config),
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
        )
        try:
            response = client.chat.completions.create(
                model=self.config.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=min(2.0, self.config.temperature * profile.creativity / 0.7),
                max_tokens=profile.target_tokens,
            )
        except APITimeoutError as e:
            raise GeneratorTimeoutError(
                f"{self.config.model} timed out after {self.config.timeout_seconds}s"
            ) from e
        except OpenAIError as e:
            raise GenerationError(f"{self.config.model} call failed: {e}") from e

        text = response.choices[0].message.content or ""
        usage = getattr(response, "usage", None)
        tokens = getattr(usage, "total_tokens", None) or estimate_tokens(prompt, text)
        result = GenerationResponse(text=text, tokens_used=tokens, elapsed_seconds=time.time() - start)
        self._log("chat_completion", prompt, result)
        return result


class GeminiGenerator(TextGenerator):
    """Gemini via the google-genai SDK."""

    def __init__(self, config: GeneratorConfig):
        super().__init__()
        self.config = config

    def generate(self, prompt: str, profile: StrategyProfile) -> GenerationResponse:
        import httpx
        from google import genai
        from google.genai import errors, types

        start = time.time()
        client = genai.Client(
            api_key=_api_key(self.config),
            http_options=types.HttpOptions(timeout=int(self.config.timeout_seconds * 1000)),
        )
        try:
            response = client.models.generate_content(
                model=self.config.model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    system_instruction=SYSTEM_PROMPT,
                    temperature=min(2.0, self.config.temperature * profile.creativity / 0.7),
                    max_output_tokens=profile.target_tokens,
                ),
            )
        except httpx.TimeoutException as e:
            raise GeneratorTimeoutError(
                f"{self.config.model} timed out after {self.config.timeout_seconds}s"
            ) from e
        except errors.APIError as e:
            raise GenerationError(f"{self.config.model} call failed: {e}") from e

        text = response.text or ""
        usage = getattr(response, "usage_metadata", None)
        tokens = getattr(usage, "total_token_count", None) or estimate_tokens(prompt, text)
        result = GenerationResponse(text=text, tokens_used=tokens, elapsed_seconds=time.time() - start)
        self._log("generate_content", prompt, result)
        return result


def build_generator(config: GeneratorConfig) -> TextGenerator:
    logger.debug(f"Using {config.provider} generator with model {config.model}")
    if config.provider == "gemini":
        return GeminiGenerator(config)
    return OpenAIGenerator(config)
