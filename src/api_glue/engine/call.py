"""Call executor: renders an API config and issues the HTTP request(s).

Templates use `{name}` placeholders resolved from the payload and credentials.
Paginated configs additionally see `{page}` (1-based), `{offset}` and `{limit}`.
"""

import json
import re
from collections.abc import Mapping
from typing import Any

import httpx
import structlog

from ..errors import CallFailure, ValidationFailure
from ..models import ApiConfig, CallResult, PaginationType
from ..utils import utc_now
from .selectors import SelectorError, select
from .validator import validate

logger = structlog.get_logger()

_PLACEHOLDER = re.compile(r"\{(\w+)\}")
_PAGINATION_VARS = ("page", "offset", "limit")

DEFAULT_HEADERS = {
    "User-Agent": "api-glue/0.1",
    "Accept": "application/json, text/csv, text/plain, */*",
}


def render_template(template: str, bindings: Mapping[str, Any]) -> str:
    """Replace `{name}` placeholders that have a binding; leave the rest untouched."""

    def _sub(match: re.Match) -> str:
        key = match.group(1)
        if key not in bindings:
            return match.group(0)
        value = bindings[key]
        return value if isinstance(value, str) else json.dumps(value)

    return _PLACEHOLDER.sub(_sub, template)


def unresolved_placeholders(*rendered: str | None) -> list[str]:
    names: list[str] = []
    for text in rendered:
        if text:
            names.extend(_PLACEHOLDER.findall(text))
    return sorted(set(names))


def is_config_related_status(status_code: int) -> bool:
    """4xx responses other than timeouts and rate limits point at a bad request template."""
    return 400 <= status_code < 500 and status_code not in (408, 429)


async def send_request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    headers: Mapping[str, str] | None = None,
    params: Mapping[str, str] | None = None,
    content: str | None = None,
    timeout: float = 30.0,
    config_id: str | None = None,
) -> httpx.Response:
    """Send one request and map every failure onto `CallFailure`."""
    try:
        response = await client.request(
            method,
            url,
            headers={**DEFAULT_HEADERS, **(headers or {})},
            params=dict(params or {}),
            content=content,
            timeout=timeout,
            follow_redirects=True,
        )
    except httpx.TimeoutException as e:
        raise CallFailure(
            f"Request to {url} timed out after {timeout:.0f}s",
            CallFailure.TIMEOUT,
            url=url,
            config_id=config_id,
        ) from e
    except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
        raise CallFailure(
            f"Invalid URL '{url}': {e}",
            CallFailure.TEMPLATE,
            url=url,
            config_related=True,
            config_id=config_id,
        ) from e
    except httpx.HTTPError as e:
        raise CallFailure(
            f"Request to {url} failed: {e}",
            CallFailure.NETWORK,
            url=url,
            config_id=config_id,
        ) from e

    if not response.is_success:
        raise CallFailure(
            f"{method} {response.url} returned {response.status_code}: {response.text[:500]}",
            CallFailure.HTTP_STATUS,
            status_code=response.status_code,
            url=str(response.url),
            config_related=is_config_related_status(response.status_code),
            config_id=config_id,
        )
    return response


def parse_body(response: httpx.Response) -> Any:
    """Decode a response as JSON when it looks like JSON, else return the text."""
    text = response.text
    if not text.strip():
        return None
    content_type = response.headers.get("content-type", "")
    if "json" in content_type or text.lstrip()[:1] in ("{", "["):
        try:
            return response.json()
        except ValueError:
            return text
    return text


def build_url(host: str, path: str) -> str:
    host = host.rstrip("/")
    if not path:
        return host
    return f"{host}/{path.lstrip('/')}"


class CallExecutor:
    """Executes API configs against live endpoints."""

    def __init__(self, client: httpx.AsyncClient, timeout: float = 30.0):
        self.client = client
        self.timeout = timeout

    def _bindings(
        self,
        payload: Any,
        credentials: Mapping[str, Any] | None,
    ) -> dict[str, Any]:
        bindings: dict[str, Any] = {}
        if isinstance(payload, Mapping):
            bindings.update(payload)
        if credentials:
            bindings.update(credentials)
        return bindings

    def _pagination_params(self, config: ApiConfig) -> dict[str, str]:
        """Default pagination query params for configs whose templates don't place them."""
        templates = " ".join(
            [config.url_path, config.body or "", *config.query_params.values(), *config.headers.values()]
        )
        if any(f"{{{name}}}" in templates for name in _PAGINATION_VARS):
            return {}
        if config.pagination.type == PaginationType.OFFSET_BASED:
            return {"offset": "{offset}", "limit": "{limit}"}
        if config.pagination.type == PaginationType.PAGE_BASED:
            return {"page": "{page}", "limit": "{limit}"}
        return {}

    async def _request(
        self,
        config: ApiConfig,
        bindings: Mapping[str, Any],
        extra_params: Mapping[str, str] | None = None,
    ) -> tuple[httpx.Response, Any]:
        url = build_url(
            render_template(config.url_host, bindings),
            render_template(config.url_path, bindings),
        )
        headers = {k: render_template(v, bindings) for k, v in config.headers.items()}
        params = {
            k: render_template(v, bindings)
            for k, v in {**config.query_params, **(extra_params or {})}.items()
        }
        body = render_template(config.body, bindings) if config.body else None

        missing = unresolved_placeholders(url, body, *headers.values(), *params.values())
        if missing:
            raise CallFailure(
                f"Unresolved template variables: {', '.join(missing)}",
                CallFailure.TEMPLATE,
                url=url,
                config_related=True,
                config_id=config.id,
            )

        response = await send_request(
            self.client,
            config.method.value,
            url,
            headers=headers,
            params=params,
            content=body,
            timeout=self.timeout,
            config_id=config.id,
        )
        return response, parse_body(response)

    def _select(self, config: ApiConfig, body: Any) -> Any:
        try:
            found, value = select(body, config.data_path)
        except SelectorError as e:
            raise CallFailure(
                str(e), CallFailure.TEMPLATE, config_related=True, config_id=config.id
            ) from e
        return value if found else None

    def _page_items(self, config: ApiConfig, body: Any) -> list[Any]:
        if config.data_path:
            value = self._select(config, body)
            if value is None:
                return []
            return value if isinstance(value, list) else [value]
        if isinstance(body, list):
            return body
        return [] if body is None else [body]

    async def execute(
        self,
        config: ApiConfig,
        payload: Any = None,
        credentials: Mapping[str, Any] | None = None,
    ) -> CallResult:
        """Execute an API config.

        Raises:
            CallFailure: On network errors, timeouts, non-2xx statuses or
                unresolved templates.
            ValidationFailure: When the data violates the response schema.
        """
        if config.method is None:
            raise CallFailure(
                "API config has no method yet",
                CallFailure.TEMPLATE,
                config_related=True,
                config_id=config.id,
            )

        log = logger.bind(component="call_executor", config_id=config.id)
        bindings = self._bindings(payload, credentials)
        started_at = utc_now()

        if config.pagination.type == PaginationType.DISABLED:
            response, data = await self._request(config, bindings)
            if config.data_path:
                data = self._select(config, data)
            pages = 1
        else:
            size = config.pagination.page_size
            extra_params = self._pagination_params(config)
            data = []
            previous: list[Any] | None = None
            pages = 0
            response = None
            for index in range(config.pagination.max_pages):
                page_bindings = {
                    **bindings,
                    "page": index + 1,
                    "offset": index * size,
                    "limit": size,
                }
                response, body = await self._request(config, page_bindings, extra_params)
                items = self._page_items(config, body)
                if items == previous:
                    # Endpoint ignores the pagination parameters
                    break
                pages += 1
                data.extend(items)
                if len(items) < size:
                    break
                previous = items
            else:
                log.warning("pagination_max_pages_reached", max_pages=config.pagination.max_pages)

        checked = validate(data, config.response_schema)
        if not checked.valid:
            raise ValidationFailure(
                "Response data does not match the response schema",
                checked.violations,
                config_id=config.id,
            )

        completed_at = utc_now()
        log.info(
            "call_completed",
            status_code=response.status_code,
            url=str(response.request.url),
            pages=pages,
        )
        return CallResult(
            config_id=config.id,
            revision=config.revision,
            data=data,
            status_code=response.status_code,
            headers=dict(response.headers),
            resolved_url=str(response.request.url),
            pages=pages,
            started_at=started_at,
            completed_at=completed_at,
        )
