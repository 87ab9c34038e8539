"""
Outbound HTTP client with automatic call-event tracking.

Every request made through `HTTPClient` appends exactly one `APICallEvent` to
the event sink it is given, on success and on failure. Events are passed per
call, never stored on the client, so one client is safely shared by all
concurrent requests.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from .events import EventSink
from .logging_setup import get_logger
from .models import APICallEvent, APICallPayload
from .timing import CallTimer

DEFAULT_TIMEOUT_MS = 10000

# Status markers recorded for requests that never got a response.
TIMEOUT_STATUS_CODE = 504
TRANSPORT_ERROR_STATUS_CODE = 0


@dataclass(frozen=True)
class HTTPRequestOptions:
    timeout_ms: Optional[int] = None
    include_headers: Optional[bool] = None
    include_request_body: Optional[bool] = None


class HTTPClient:
    def __init__(
        self,
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
        include_headers_by_default: bool = True,
        include_request_bodies_by_default: bool = True,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.default_timeout_ms = default_timeout_ms
        self.include_headers_by_default = include_headers_by_default
        self.include_request_bodies_by_default = include_request_bodies_by_default
        self.logger = logger or get_logger("HTTPClient")
        self._timer = CallTimer()
        self._client = httpx.AsyncClient(transport=transport)

    async def get(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        events: Optional[EventSink] = None,
        options: Optional[HTTPRequestOptions] = None,
    ) -> httpx.Response:
        return await self.request("GET", url, headers, events, None, options)

    async def post(
        self,
        url: str,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        events: Optional[EventSink] = None,
        options: Optional[HTTPRequestOptions] = None,
    ) -> httpx.Response:
        return await self.request("POST", url, headers, events, body, options)

    async def put(
        self,
        url: str,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        events: Optional[EventSink] = None,
        options: Optional[HTTPRequestOptions] = None,
    ) -> httpx.Response:
        return await self.request("PUT", url, headers, events, body, options)

    async def patch(
        self,
        url: str,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        events: Optional[EventSink] = None,
        options: Optional[HTTPRequestOptions] = None,
    ) -> httpx.Response:
        return await self.request("PATCH", url, headers, events, body, options)

    async def delete(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        events: Optional[EventSink] = None,
        options: Optional[HTTPRequestOptions] = None,
    ) -> httpx.Response:
        return await self.request("DELETE", url, headers, events, None, options)

    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        events: Optional[EventSink] = None,
        body: Any = None,
        options: Optional[HTTPRequestOptions] = None,
    ) -> httpx.Response:
        options = options or HTTPRequestOptions()
        timeout_ms = options.timeout_ms if options.timeout_ms is not None else self.default_timeout_ms
        include_headers = (
            self.include_headers_by_default if options.include_headers is None else options.include_headers
        )
        include_request_body = (
            self.include_request_bodies_by_default
            if options.include_request_body is None
            else options.include_request_body
        )

        request_headers = dict(headers or {})
        content: Optional[str] = None
        if body is not None and method not in ("GET", "DELETE"):
            content = json.dumps(body)
            if not any(name.lower() == "content-type" for name in request_headers):
                request_headers["Content-Type"] = "application/json"

        self.logger.debug("Making HTTP request %s %s (timeout=%dms)", method, url, timeout_ms)

        outcome = await self._timer.measure(
            lambda: self._client.request(
                method,
                url,
                headers=request_headers,
                content=content,
                timeout=timeout_ms / 1000.0,
            )
        )

        recorded_body = content if include_request_body and content is not None else None
        recorded_headers = request_headers if include_headers else {}

        if outcome.error is not None:
            error = outcome.error
            if isinstance(error, httpx.TimeoutException):
                status_code = TIMEOUT_STATUS_CODE
                response_body = "Request timeout"
            else:
                status_code = TRANSPORT_ERROR_STATUS_CODE
                response_body = str(error) or type(error).__name__

            self.logger.error(
                "HTTP request failed %s %s status=%d duration=%dms: %s",
                method,
                url,
                status_code,
                outcome.duration_ms,
                error,
            )
            self._record(
                events,
                APICallPayload(
                    url=url,
                    request_method=method,
                    request_headers=recorded_headers,
                    request_body=recorded_body,
                    response_headers={},
                    response_status_code=status_code,
                    response_body=response_body,
                    duration_in_millis=outcome.duration_ms,
                ),
            )
            raise error

        response: httpx.Response = outcome.result
        self.logger.debug(
            "HTTP request completed %s %s status=%d duration=%dms",
            method,
            url,
            response.status_code,
            outcome.duration_ms,
        )
        self._record(
            events,
            APICallPayload(
                url=url,
                request_method=method,
                request_headers=recorded_headers,
                request_body=recorded_body,
                response_headers=dict(response.headers) if include_headers else {},
                response_status_code=response.status_code,
                response_body=_read_body(response),
                duration_in_millis=outcome.duration_ms,
            ),
        )
        return response

    async def aclose(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _record(events: Optional[EventSink], payload: APICallPayload) -> None:
        if events is not None:
            events.append(APICallEvent(payload=payload))


def _read_body(response: httpx.Response) -> str:
    """Response body for the event log: re-serialized JSON when the server sent JSON, else text."""
    content_type = response.headers.get("content-type", "")
    try:
        if "application/json" in content_type:
            return json.dumps(response.json())
        return response.text
    except (ValueError, UnicodeDecodeError):
        return "[Failed to parse response body]"
