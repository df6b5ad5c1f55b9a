"""
Authenticated REST gateway shared by the GitHub and Atlassian clients.

Every call fetches a fresh-enough credential, attaches it as the
Authorization header, and classifies failures:

- non-2xx        -> RemoteRequestError (status, upstream message, path)
- unreachable    -> RemoteRequestError (status None)
- malformed JSON -> ResponseParseError
- 204 / empty    -> {}

Pagination is sequential and bounded; see ``send_paged``.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from specgen.errors import RemoteRequestError, ResponseParseError
from specgen.integrations.auth import CredentialProvider
from specgen.models import PagedResult, RemoteRequest

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=BaseModel)


@dataclass(frozen=True)
class Pagination:
    """How a paged endpoint is addressed.

    ``offset_based`` sends a zero-based item offset in ``page_param``
    (Jira's startAt) instead of a one-based page number.
    """
    page_param: str = "page"
    size_param: str = "per_page"
    offset_based: bool = False
    items_key: Optional[str] = None

    def params_for(self, page: int, page_size: int) -> Dict[str, int]:
        value = (page - 1) * page_size if self.offset_based else page
        return {self.page_param: value, self.size_param: page_size}


GITHUB_PAGINATION = Pagination()
JIRA_PAGINATION = Pagination(page_param="startAt", size_param="maxResults", offset_based=True)


def _extract_error_message(response: httpx.Response) -> str:
    """Upstream error message when the body is JSON, else the raw body."""
    text = response.text
    try:
        data = response.json()
    except ValueError:
        return text.strip()

    if not isinstance(data, dict):
        return text.strip()

    parts: List[str] = []
    if data.get("message"):
        parts.append(str(data["message"]))
    if data.get("errorMessages"):
        parts.extend(str(m) for m in data["errorMessages"])
    errors = data.get("errors")
    if errors:
        parts.append(json.dumps(errors))
    if data.get("error_description"):
        parts.append(str(data["error_description"]))
    elif data.get("error") and isinstance(data["error"], str):
        parts.append(data["error"])
    return " - ".join(parts) if parts else text.strip()


class RestGateway:
    """
    Generic authenticated JSON REST client.

    Usage:
        gateway = RestGateway(
            base_url="https://api.github.com",
            credentials=provider,
            default_headers={"Accept": "application/vnd.github+json"},
        )
        repo = await gateway.get("/repos/octocat/hello-world")
        issues = await gateway.send_paged(
            RemoteRequest("GET", "/repos/octocat/hello-world/issues"),
            page_size=100,
            max_pages=5,
        )
    """

    def __init__(
        self,
        base_url: str,
        credentials: CredentialProvider,
        default_headers: Optional[Dict[str, str]] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        name: str = "api",
    ):
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.default_headers = dict(default_headers or {})
        self.timeout = timeout
        self.name = name
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def build_url(self, path: str) -> str:
        clean_path = path if path.startswith("/") else f"/{path}"
        return f"{self.base_url}{clean_path}"

    async def _headers(self, has_body: bool) -> Dict[str, str]:
        credential = await self.credentials.get_credential()
        headers = {**self.default_headers, "Authorization": credential.authorization_header}
        if has_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def send(self, request: RemoteRequest) -> Any:
        """Execute one request and return the parsed JSON body."""
        method = request.method.upper()
        has_body = request.body is not None
        headers = await self._headers(has_body)
        params = {k: v for k, v in request.query.items() if v is not None}
        url = self.build_url(request.path)

        client = await self._get_client()
        try:
            response = await client.request(
                method,
                url,
                params=params or None,
                json=request.body if has_body else None,
                headers=headers,
            )
        except httpx.HTTPError as e:
            logger.error(f"{self.name} {method} {request.path} failed: {e}")
            raise RemoteRequestError(
                f"Failed to {method} {request.path}: {e}",
                method=method,
                path=request.path,
            ) from e

        return self._handle_response(response, method, request.path)

    def _handle_response(self, response: httpx.Response, method: str, path: str) -> Any:
        if not response.is_success:
            detail = _extract_error_message(response)
            message = f"Failed to {method} {path}: {response.status_code} {response.reason_phrase}"
            if detail:
                message += f" - {detail}"
            logger.warning(f"{self.name} error: {message}")
            raise RemoteRequestError(
                message,
                method=method,
                path=path,
                status=response.status_code,
                body=response.text,
            )

        if response.status_code == 204 or not response.content.strip():
            return {}

        try:
            return response.json()
        except ValueError as e:
            raise ResponseParseError(
                f"Malformed JSON from {method} {path}: {response.text[:200]}"
            ) from e

    async def send_paged(
        self,
        request: RemoteRequest,
        page_size: int = 100,
        max_pages: int = 10,
        pagination: Pagination = GITHUB_PAGINATION,
    ) -> PagedResult:
        """
        Fetch pages 1, 2, ... sequentially and accumulate their items.

        Stops at the first short page, empty page, or after ``max_pages``.
        Items keep page order; duplicates are not suppressed.
        """
        result: PagedResult = PagedResult()
        page = 1

        while page <= max_pages:
            page_request = request.with_query(**pagination.params_for(page, page_size))
            data = await self.send(page_request)
            result.pages_fetched += 1

            if pagination.items_key is not None:
                if not isinstance(data, dict):
                    raise ResponseParseError(
                        f"Expected an object with '{pagination.items_key}' from {request.path}"
                    )
                batch = data.get(pagination.items_key) or []
            else:
                batch = data
            if not isinstance(batch, list):
                raise ResponseParseError(f"Expected a list of items from {request.path}")

            if not batch:
                break

            result.items.extend(batch)

            if len(batch) < page_size:
                break

            page += 1

        logger.debug(f"{self.name} {request.path}: {len(result.items)} items in {result.pages_fetched} pages")
        return result

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.send(RemoteRequest("GET", path, query=params or {}))

    async def post(self, path: str, body: Any = None) -> Any:
        return await self.send(RemoteRequest("POST", path, body=body))

    async def put(self, path: str, body: Any = None) -> Any:
        return await self.send(RemoteRequest("PUT", path, body=body))

    async def patch(self, path: str, body: Any = None) -> Any:
        return await self.send(RemoteRequest("PATCH", path, body=body))

    async def delete(self, path: str) -> None:
        await self.send(RemoteRequest("DELETE", path))


def parse_record(model: Type[R], data: Any, source: str) -> R:
    """Validate a response payload into a typed record."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ResponseParseError(f"Unexpected response shape from {source}: {e}") from e


def parse_records(model: Type[R], data: Any, source: str) -> List[R]:
    if not isinstance(data, list):
        raise ResponseParseError(f"Expected a list from {source}")
    return [parse_record(model, item, source) for item in data]
