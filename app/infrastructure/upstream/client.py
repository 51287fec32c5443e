"""
Shared outbound HTTP client for the social, NFT indexer, GraphQL and media upstreams.

Every call goes through one httpx.AsyncClient with a per-call timeout, JSON
decoding and a structured error classification.
"""

import asyncio
import re
import time
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

import httpx

from app.core.config import settings
from app.core.exceptions import (
    BadRequestError,
    UpstreamClientError,
    UpstreamError,
    UpstreamHTTPError,
    UpstreamNotFoundError,
    UpstreamProtocolError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)
from app.core.logging import get_logger, log_upstream_call, redact

logger = get_logger(__name__)

T = TypeVar("T")

_GRAPHQL_NOT_FOUND = re.compile(r"not\s*found|does not exist|no profile", re.IGNORECASE)
_GRAPHQL_CLIENT_CODES = {
    "GRAPHQL_PARSE_FAILED",
    "GRAPHQL_VALIDATION_FAILED",
    "BAD_USER_INPUT",
    "BAD_REQUEST",
}
_GRAPHQL_CLIENT_MESSAGES = re.compile(
    r"^(syntax error|cannot query field|unknown argument|unknown type|variable \"|field \")",
    re.IGNORECASE,
)


@dataclass
class UpstreamRequest:
    """A single logical outbound request."""

    provider: str
    endpoint: str
    url: str
    method: str = "GET"
    params: Optional[Dict[str, Any]] = None
    json: Optional[Any] = None
    headers: Dict[str, str] = field(default_factory=dict)
    timeout: Optional[float] = None
    graphql: bool = False
    secret: Optional[str] = None

    def with_url(self, url: str) -> "UpstreamRequest":
        return replace(self, url=url)

    @property
    def loggable_url(self) -> str:
        return redact(self.url, self.secret)


def classify_graphql_errors(errors: Any) -> Optional[str]:
    """
    Classify a GraphQL `errors` array.

    Returns:
        "not_found", "client", or None for errors that still leave a valid response
    """
    if not isinstance(errors, list) or not errors:
        return None

    for error in errors:
        if not isinstance(error, dict):
            continue
        message = str(error.get("message", ""))
        code = str((error.get("extensions") or {}).get("code", "")).upper()
        if code == "NOT_FOUND" or _GRAPHQL_NOT_FOUND.search(message):
            return "not_found"

    for error in errors:
        if not isinstance(error, dict):
            continue
        message = str(error.get("message", ""))
        code = str((error.get("extensions") or {}).get("code", "")).upper()
        if code in _GRAPHQL_CLIENT_CODES or _GRAPHQL_CLIENT_MESSAGES.match(message):
            return "client"

    return None


def _error_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text[:500]


class UpstreamClient:
    """Outbound HTTP with classified failures and ordered endpoint fallback."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        """Initialize upstream client."""
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                transport=self._transport,
                timeout=settings.UPSTREAM_TIMEOUT_SECONDS,
                follow_redirects=True,
                headers={"User-Agent": f"{settings.APP_NAME}/{settings.APP_VERSION}"},
            )
        return self._client

    async def use_transport(self, transport: Optional[httpx.AsyncBaseTransport]) -> None:
        """Swap the underlying transport; the next call opens a fresh client."""
        await self.close()
        self._transport = transport

    async def close(self) -> None:
        """Close the shared HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def call(self, request: UpstreamRequest) -> Any:
        """
        Issue one request and decode its JSON body.

        Args:
            request: The outbound request

        Returns:
            Decoded JSON payload

        Raises:
            UpstreamTimeoutError: The call did not complete within its timeout
            UpstreamUnavailableError: Transport failure
            UpstreamNotFoundError: HTTP 404 or a GraphQL not-found error
            UpstreamClientError: GraphQL rejected the query
            UpstreamHTTPError: Any other non-success status
            UpstreamProtocolError: The body is not JSON
        """
        client = self._get_client()
        timeout = request.timeout or settings.UPSTREAM_TIMEOUT_SECONDS
        started = time.perf_counter()

        try:
            response = await client.request(
                request.method,
                request.url,
                params=request.params,
                json=request.json,
                headers=request.headers,
                timeout=timeout,
            )
        except httpx.TimeoutException as exc:
            self._log(request, None, started, "timeout")
            raise UpstreamTimeoutError(
                request.provider, f"{request.endpoint} timed out after {timeout}s"
            ) from exc
        except httpx.TransportError as exc:
            self._log(request, None, started, "network")
            raise UpstreamUnavailableError(
                request.provider, f"{request.endpoint} unreachable: {type(exc).__name__}"
            ) from exc

        if response.status_code == 404:
            self._log(request, 404, started, "not_found")
            raise UpstreamNotFoundError(
                f"{request.endpoint} returned 404", request.provider, _error_body(response)
            )

        if not response.is_success:
            body = _error_body(response)
            if request.graphql and isinstance(body, dict):
                self._raise_for_graphql_errors(request, body, response.status_code, started)
            self._log(request, response.status_code, started, "http_status")
            raise UpstreamHTTPError(response.status_code, body, request.provider)

        try:
            payload = response.json()
        except ValueError as exc:
            self._log(request, response.status_code, started, "decode")
            raise UpstreamProtocolError(
                f"{request.endpoint} returned a non-JSON body", request.provider
            ) from exc

        if request.graphql and isinstance(payload, dict):
            self._raise_for_graphql_errors(request, payload, response.status_code, started)

        self._log(request, response.status_code, started, "success")
        return payload

    async def call_with_fallback(
        self, endpoints: Sequence[str], request: UpstreamRequest
    ) -> Any:
        """
        Issue the same logical request against equivalent endpoints in order.

        Returns the first successful decode. Not-found and rejected-query
        outcomes end the ladder immediately; any other failure moves on to the
        next endpoint, and the last failure is raised when all are exhausted.
        """
        if not endpoints:
            raise ValueError("call_with_fallback needs at least one endpoint")

        last_error: Optional[UpstreamError] = None
        for index, url in enumerate(endpoints):
            try:
                return await self.call(request.with_url(url))
            except (UpstreamNotFoundError, UpstreamClientError):
                raise
            except UpstreamError as exc:
                last_error = exc
                if index + 1 < len(endpoints):
                    logger.warning(
                        f"{request.provider} endpoint {index + 1}/{len(endpoints)} failed "
                        f"({exc.error_code}), trying next"
                    )

        raise last_error

    async def open_stream(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        provider: str = "media",
        secret: Optional[str] = None,
        is_forbidden: Optional[Callable[[str], bool]] = None,
        max_redirects: int = 5,
    ) -> httpx.Response:
        """
        Open a streamed GET. The caller owns the response and must `aclose()` it.

        Non-success statuses are returned, not raised, so the caller can walk
        its own fallback ladder. Redirects are followed here, hop by hop, and
        every `Location` is checked with `is_forbidden` before it is fetched.

        Raises:
            BadRequestError: A redirect points at a forbidden host
            UpstreamTimeoutError: The fetch timed out
            UpstreamUnavailableError: Transport failure
        """
        client = self._get_client()
        started = time.perf_counter()
        current = url
        redirects = 0

        while True:
            loggable = redact(current, secret)
            request = client.build_request(
                "GET", current, headers=headers, timeout=timeout or settings.IMAGE_TIMEOUT_SECONDS
            )
            try:
                response = await client.send(request, stream=True, follow_redirects=False)
            except httpx.TimeoutException as exc:
                log_upstream_call(provider, loggable, duration=time.perf_counter() - started, outcome="timeout")
                raise UpstreamTimeoutError(provider, f"Timed out fetching {loggable}") from exc
            except httpx.TransportError as exc:
                log_upstream_call(provider, loggable, duration=time.perf_counter() - started, outcome="network")
                raise UpstreamUnavailableError(provider, f"Could not reach {loggable}") from exc

            if not response.is_redirect or redirects >= max_redirects:
                break

            location = str(response.url.join(response.headers["location"]))
            await response.aclose()
            if is_forbidden is not None and is_forbidden(location):
                log_upstream_call(
                    provider,
                    loggable,
                    status_code=response.status_code,
                    duration=time.perf_counter() - started,
                    outcome="forbidden_redirect",
                )
                raise BadRequestError(
                    "Proxying to local addresses is not allowed", {"url": redact(location, secret)}
                )
            redirects += 1
            current = location

        log_upstream_call(
            provider,
            loggable,
            status_code=response.status_code,
            duration=time.perf_counter() - started,
            outcome="success" if response.is_success else "http_status",
        )
        return response

    def _raise_for_graphql_errors(
        self, request: UpstreamRequest, payload: Dict[str, Any], status_code: int, started: float
    ) -> None:
        """GraphQL services report not-found and invalid queries in `errors`, sometimes with a 4xx."""
        errors = payload.get("errors")
        kind = classify_graphql_errors(errors)
        if kind == "not_found":
            self._log(request, status_code, started, "not_found")
            raise UpstreamNotFoundError("GraphQL reported not found", request.provider, errors)
        if kind == "client":
            self._log(request, status_code, started, "client_error")
            raise UpstreamClientError("GraphQL rejected the query", request.provider, errors)

    def _log(self, request: UpstreamRequest, status_code: Optional[int], started: float, outcome: str) -> None:
        log_upstream_call(
            request.provider,
            request.endpoint,
            status_code=status_code,
            duration=round(time.perf_counter() - started, 4),
            outcome=outcome,
            url=request.loggable_url,
        )


async def run_with_deadline(awaitable: Awaitable[T], seconds: Optional[float] = None) -> T:
    """
    Bound a whole request's upstream work by one deadline.

    Outstanding calls are cancelled at their next suspension point.
    """
    deadline = seconds or settings.REQUEST_TIMEOUT_SECONDS
    try:
        return await asyncio.wait_for(awaitable, timeout=deadline)
    except asyncio.TimeoutError as exc:
        raise UpstreamTimeoutError(message=f"Request exceeded {deadline}s deadline") from exc


async def gather_all(*awaitables: Awaitable[Any]) -> List[Any]:
    """
    Run independent upstream calls concurrently and return their results in order.

    When one fails, the others are cancelled and awaited before the error is
    re-raised, so no sibling task outlives the request.
    """
    tasks = [asyncio.ensure_future(awaitable) for awaitable in awaitables]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


# Global upstream client instance
upstream_client = UpstreamClient()


async def get_upstream_client() -> UpstreamClient:
    """
    Get upstream client instance.

    Returns:
        UpstreamClient: Shared upstream client
    """
    return upstream_client
