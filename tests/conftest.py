"""Shared test fixtures.

Provides a scripted generation oracle, an in-memory store and helpers for
building httpx clients backed by `httpx.MockTransport`. No network access.
"""

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from api_glue.engine.healing import SelfHealingExecutor
from api_glue.engine.repair import TemperatureRamp
from api_glue.errors import OracleFailure
from api_glue.store import MemoryStore


class ScriptedOracle:
    """Generation oracle replaying a fixed script of responses.

    Each script item is a dict (sent as JSON), a raw string, or an exception
    to raise. The last item is repeated once the script runs out.
    """

    def __init__(self, responses: list[Any], supports_temperature: bool = True):
        self.responses = list(responses)
        self.supports_temperature = supports_temperature
        self.calls: list[dict[str, Any]] = []

    @property
    def temperatures(self) -> list[float | None]:
        return [call["temperature"] for call in self.calls]

    async def complete(self, messages, *, temperature=None, response_format=None) -> str:
        self.calls.append(
            {
                "messages": list(messages),
                "temperature": temperature,
                "response_format": response_format,
            }
        )
        if not self.responses:
            raise OracleFailure("script is empty")
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        if isinstance(item, str):
            return item
        return json.dumps(item)


def make_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    """httpx client whose requests are answered by `handler`."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def json_response(data: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=data)


def unreachable(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected request to {request.url}")


@pytest.fixture
def store() -> MemoryStore:
    """Empty in-memory store."""
    return MemoryStore()


@pytest.fixture
def weather_schema() -> dict:
    """Target schema for the Fahrenheit to Celsius example."""
    return {
        "type": "object",
        "properties": {"tempC": {"type": "number"}},
        "required": ["tempC"],
    }


@pytest.fixture
def make_executor(store: MemoryStore):
    """Factory for a `SelfHealingExecutor` around a scripted oracle and mock HTTP handler."""

    def _make(
        oracle: ScriptedOracle,
        handler: Callable[[httpx.Request], httpx.Response] = unreachable,
        max_retries: int = 3,
        credentials: dict | None = None,
    ) -> SelfHealingExecutor:
        return SelfHealingExecutor(
            store,
            oracle,
            make_client(handler),
            max_retries=max_retries,
            ramp=TemperatureRamp(),
            credentials=credentials,
        )

    return _make
