"""Generation oracle: the LLM completion endpoint used to build and repair configs."""

import asyncio
from collections.abc import Sequence
from typing import Any, Protocol

import structlog
from openai import AsyncOpenAI, OpenAIError

from ..errors import OracleFailure
from ..settings import Settings

logger = structlog.get_logger()

Message = dict[str, str]

JSON_OBJECT_FORMAT: dict[str, Any] = {"type": "json_object"}


class GenerationOracle(Protocol):
    """Anything that turns a message list into completion text."""

    @property
    def supports_temperature(self) -> bool: ...

    async def complete(
        self,
        messages: Sequence[Message],
        *,
        temperature: float | None = None,
        response_format: dict[str, Any] | None = None,
    ) -> str: ...


class OpenAIOracle:
    """Oracle backed by the OpenAI chat completions API."""

    def __init__(
        self,
        model: str = "gpt-4o",
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 60.0,
        client: AsyncOpenAI | None = None,
    ):
        self.model = model
        self.timeout = timeout
        self._api_key = api_key
        self._base_url = base_url
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings, model: str | None = None) -> "OpenAIOracle":
        return cls(
            model=model or settings.llm_model,
            api_key=settings.openai_api_key,
            base_url=settings.openai_api_base_url,
            timeout=settings.llm_timeout_seconds,
        )

    @property
    def supports_temperature(self) -> bool:
        # Reasoning models reject an explicit temperature.
        return self.model.startswith("gpt-4")

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._api_key:
                raise OracleFailure("OPENAI_API_KEY is not set")
            # Retries belong to the repair loop.
            self._client = AsyncOpenAI(
                api_key=self._api_key,
                base_url=self._base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    async def complete(
        self,
        messages: Sequence[Message],
        *,
        temperature: float | None = None,
        response_format: dict[str, Any] | None = None,
    ) -> str:
        """Run one completion, bounded by the oracle timeout.

        Raises:
            OracleFailure: On network errors, timeouts, quota errors or an
                empty response.
        """
        request: dict[str, Any] = {
            "model": self.model,
            "messages": list(messages),
        }
        if temperature is not None and self.supports_temperature:
            request["temperature"] = temperature
        if response_format is not None:
            request["response_format"] = response_format

        client = self._get_client()
        try:
            response = await asyncio.wait_for(
                client.chat.completions.create(**request),
                timeout=self.timeout,
            )
        except TimeoutError as e:
            raise OracleFailure(f"Oracle call timed out after {self.timeout:.0f}s") from e
        except OpenAIError as e:
            raise OracleFailure(f"Oracle call failed: {e}") from e

        text = response.choices[0].message.content if response.choices else None
        if not text:
            raise OracleFailure("Oracle returned an empty response")

        logger.debug("oracle_completion", model=self.model, temperature=temperature, length=len(text))
        return text
