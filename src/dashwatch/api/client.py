"""HTTP client for the automation service REST API.

Every endpoint answers JSON. Failures are normalized to ``ApiError`` so the
retry layer can tell transient from permanent ones by ``status`` alone:

- transport failure         -> NETWORK_UNREACHABLE / NETWORK_TIMEOUT, status None
- non-JSON body             -> API_INVALID_RESPONSE, status of the response
- 404                       -> API_NOT_FOUND
- other non-2xx             -> API_REQUEST_FAILED / API_SERVER_ERROR

The message of an HTTP failure is the payload's ``error`` field when present,
otherwise the response's reason phrase.
"""

import logging
import math
from typing import Any

import httpx

from dashwatch.foundation.errors import ApiError, ErrorCode, api_error_for_status

logger = logging.getLogger(__name__)

_BODY_SNIPPET = 200


class ApiClient:
    """Thin async wrapper around ``httpx.AsyncClient``.

    Usage:
        async with ApiClient("http://localhost:3000") as client:
            tasks = await client.get_json("/api/tasks")
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def closed(self) -> bool:
        return self._client.is_closed

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_json(
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        not_found: str | None = None,
        failure: str = "Request failed",
    ) -> Any:
        """GET ``path`` and decode the JSON body.

        Args:
            path: Path relative to the base URL
            params: Query parameters; ``None`` values are dropped
            not_found: Message to use for a 404 instead of the payload's
            failure: Prefix for the reason-phrase fallback message
        """
        return await self._request("GET", path, params=params, not_found=not_found, failure=failure)

    async def post_json(
        self,
        path: str,
        body: dict[str, Any],
        *,
        failure: str = "Request failed",
    ) -> Any:
        return await self._request("POST", path, json=body, failure=failure)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        not_found: str | None = None,
        failure: str,
    ) -> Any:
        query = {k: v for k, v in (params or {}).items() if v is not None}
        url = f"{self.base_url}{path}"
        logger.debug("%s %s %s", method, path, query or "")

        try:
            response = await self._client.request(method, path, params=query or None, json=json)
        except httpx.TimeoutException as e:
            raise ApiError(
                ErrorCode.NETWORK_TIMEOUT,
                f"Network timeout: {method} {url} timed out",
                url=url,
                cause=e,
            ) from e
        except httpx.TransportError as e:
            raise ApiError(
                ErrorCode.NETWORK_UNREACHABLE,
                f"Network error: {str(e) or type(e).__name__}",
                url=url,
                cause=e,
            ) from e

        return _decode(response, url=url, not_found=not_found, failure=failure)


def _decode(
    response: httpx.Response,
    *,
    url: str,
    not_found: str | None,
    failure: str,
) -> Any:
    content_type = response.headers.get("content-type", "")
    if "application/json" not in content_type:
        snippet = response.text[:_BODY_SNIPPET]
        raise ApiError(
            ErrorCode.API_INVALID_RESPONSE,
            f"Expected JSON but received {content_type or 'no content type'}. Response: {snippet}",
            status=response.status_code,
            url=url,
        )

    if not response.is_success:
        if response.status_code == 404 and not_found is not None:
            raise api_error_for_status(404, not_found, url)
        raise api_error_for_status(
            response.status_code,
            _error_message(response) or f"{failure}: {response.reason_phrase}",
            url,
        )

    try:
        return response.json()
    except ValueError as e:
        raise ApiError(
            ErrorCode.API_INVALID_RESPONSE,
            f"Invalid JSON in response: {e}",
            status=response.status_code,
            url=url,
            cause=e,
        ) from e


def _error_message(response: httpx.Response) -> str | None:
    """The ``error`` field of a ``{"error"?: string}`` payload, if any."""
    try:
        payload = response.json()
    except ValueError:
        return None
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, str) and error:
            return error
    return None


def expect_list(payload: Any, what: str) -> list[Any]:
    """Check a listing endpoint answered with a JSON array."""
    if not isinstance(payload, list):
        raise ApiError(
            ErrorCode.API_INVALID_RESPONSE,
            f"Expected a list of {what}, got {type(payload).__name__}",
        )
    return payload


def wrap_legacy_listing(
    payload: Any,
    key: str,
    *,
    page: int | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    """Normalize a paged listing into ``{key: [...], "pagination": ... | None}``.

    Older servers answer paged requests with a bare list; pagination is then
    synthesized from the requested page and limit.
    """
    if isinstance(payload, list):
        pagination = None
        if page and limit:
            pagination = {
                "page": page,
                "limit": limit,
                "total": len(payload),
                "totalPages": math.ceil(len(payload) / limit),
            }
        return {key: payload, "pagination": pagination}
    if isinstance(payload, dict) and isinstance(payload.get(key), list):
        return {key: payload[key], "pagination": payload.get("pagination")}
    raise ApiError(
        ErrorCode.API_INVALID_RESPONSE,
        f"Unexpected {key} listing: {type(payload).__name__}",
    )
