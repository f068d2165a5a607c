"""Natural language -> SQL translation via an LLM provider.

The translator only produces a candidate statement; ``sql_policy`` decides
whether it may run.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import anthropic
import openai

from errors import RateLimitedError, TranslationRefusedError, TranslationUnavailableError
from schema_catalog import BASE_SCHEMA, SchemaDescription
from train import build_system_prompt

logger = logging.getLogger(__name__)

DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-5-20250929",
    "openai": "gpt-4",
}


@dataclass(frozen=True)
class CandidateQuery:
    raw: str
    source_request: str


def strip_code_fences(text: str) -> str:
    """Remove surrounding markdown code fences, if the model added them anyway."""
    sql = text.strip()
    if sql.startswith("```"):
        sql = "\n".join(sql.split("\n")[1:])
    if sql.endswith("```"):
        sql = "\n".join(sql.split("\n")[:-1])
    return sql.strip()


class Translator(ABC):
    """Base class. Subclasses implement ``_complete`` for one provider."""

    provider = "none"

    def __init__(self, catalog: SchemaDescription = BASE_SCHEMA):
        self.catalog = catalog

    @property
    def configured(self) -> bool:
        return True

    async def translate(self, text: str, catalog: Optional[SchemaDescription] = None) -> CandidateQuery:
        system_prompt = build_system_prompt(catalog or self.catalog)
        completion = await self._complete(system_prompt, text)
        sql = strip_code_fences(completion or "")
        if not sql:
            raise TranslationRefusedError(detail=f"{self.provider} returned an empty completion")
        return CandidateQuery(raw=sql, source_request=text)

    @abstractmethod
    async def _complete(self, system_prompt: str, text: str) -> Optional[str]:
        ...

    async def aclose(self) -> None:
        pass


class UnconfiguredTranslator(Translator):
    """Stands in when no provider credentials are set, so the server still starts."""

    def __init__(self, reason: str, catalog: SchemaDescription = BASE_SCHEMA):
        super().__init__(catalog)
        self.reason = reason

    @property
    def configured(self) -> bool:
        return False

    async def _complete(self, system_prompt: str, text: str) -> Optional[str]:
        raise TranslationUnavailableError(detail=self.reason)


class AnthropicTranslator(Translator):
    provider = "anthropic"

    def __init__(
        self,
        api_key: str = "",
        model: str = DEFAULT_MODELS["anthropic"],
        timeout_s: float = 30,
        max_tokens: int = 500,
        catalog: SchemaDescription = BASE_SCHEMA,
        client: Optional[anthropic.AsyncAnthropic] = None,
    ):
        super().__init__(catalog)
        self.model = model
        self.max_tokens = max_tokens
        self.client = client or anthropic.AsyncAnthropic(
            api_key=api_key, timeout=timeout_s, max_retries=0
        )

    async def _complete(self, system_prompt: str, text: str) -> Optional[str]:
        try:
            msg = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=0.1,
                system=system_prompt,
                messages=[{"role": "user", "content": text}],
            )
        except anthropic.RateLimitError as e:
            raise RateLimitedError(detail=f"anthropic: {e}") from e
        except anthropic.APIStatusError as e:
            raise TranslationUnavailableError(detail=f"anthropic HTTP {e.status_code}: {e}") from e
        except anthropic.APIConnectionError as e:
            raise TranslationUnavailableError(detail=f"anthropic connection: {e}") from e

        if msg.stop_reason == "refusal":
            raise TranslationRefusedError(detail="anthropic stop_reason=refusal")
        return "".join(block.text for block in msg.content if block.type == "text")

    async def aclose(self) -> None:
        await self.client.close()


class OpenAITranslator(Translator):
    provider = "openai"

    def __init__(
        self,
        api_key: str = "",
        model: str = DEFAULT_MODELS["openai"],
        timeout_s: float = 30,
        max_tokens: int = 500,
        catalog: SchemaDescription = BASE_SCHEMA,
        client: Optional[openai.AsyncOpenAI] = None,
    ):
        super().__init__(catalog)
        self.model = model
        self.max_tokens = max_tokens
        self.client = client or openai.AsyncOpenAI(
            api_key=api_key, timeout=timeout_s, max_retries=0
        )

    async def _complete(self, system_prompt: str, text: str) -> Optional[str]:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": text},
                ],
                temperature=0.1,
                max_tokens=self.max_tokens,
            )
        except openai.RateLimitError as e:
            # An exhausted quota is also a 429 but will not clear by retrying
            if e.code == "insufficient_quota":
                raise TranslationUnavailableError(detail="openai quota exceeded") from e
            raise RateLimitedError(detail=f"openai: {e}") from e
        except openai.APIStatusError as e:
            raise TranslationUnavailableError(detail=f"openai HTTP {e.status_code}: {e}") from e
        except openai.APIConnectionError as e:
            raise TranslationUnavailableError(detail=f"openai connection: {e}") from e

        message = response.choices[0].message
        if getattr(message, "refusal", None):
            raise TranslationRefusedError(detail=f"openai refusal: {message.refusal}")
        return message.content

    async def aclose(self) -> None:
        await self.client.close()


def build_translator(
    provider: str,
    anthropic_api_key: str = "",
    openai_api_key: str = "",
    model: str = "",
    timeout_s: float = 30,
    max_tokens: int = 500,
    catalog: SchemaDescription = BASE_SCHEMA,
) -> Translator:
    """Pick the provider named in config, or an unconfigured stand-in."""
    provider = (provider or "anthropic").lower()
    model = model or DEFAULT_MODELS.get(provider, "")

    if provider == "anthropic":
        if not anthropic_api_key:
            logger.warning("ANTHROPIC_API_KEY not configured. Natural language queries will not work.")
            return UnconfiguredTranslator("ANTHROPIC_API_KEY not set", catalog)
        return AnthropicTranslator(anthropic_api_key, model, timeout_s, max_tokens, catalog)

    if provider == "openai":
        if not openai_api_key:
            logger.warning("OPENAI_API_KEY not configured. Natural language queries will not work.")
            return UnconfiguredTranslator("OPENAI_API_KEY not set", catalog)
        return OpenAITranslator(openai_api_key, model, timeout_s, max_tokens, catalog)

    logger.warning("Unknown LLM_PROVIDER %r. Natural language queries will not work.", provider)
    return UnconfiguredTranslator(f"unknown provider {provider!r}", catalog)
