"""
HTTP client for the chat-messages API.

One ``httpx.AsyncClient`` is shared by every session; the endpoint and key are
per request because each viewer may point at a different app.
"""

from __future__ import annotations

import json
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from chat_relay.logging_utils import ContextualLogger, handle_llm_errors, log_operation

from .endpoint import applications_url, chat_messages_url, normalize_endpoint, stop_url
from .exceptions import (
    APIStatusError,
    ErrorCategory,
    QuotaExceededError,
    TransportError,
)
from .models import (
    DEFAULT_PRINCIPAL,
    ApiKeyValidation,
    ChatCompletion,
    ChatMessageRequest,
    HttpClientSettings,
    ResponseMode,
)

QUOTA_PATTERN = re.compile(r"status code 402")
PROBE_QUERY = "Hello, this is a test message from AI Sidebar Chatbot"

_STATUS_MESSAGES: dict[int, tuple[ErrorCategory, str]] = {
    401: (ErrorCategory.AUTH, "API key is invalid or expired"),
    403: (ErrorCategory.PERMISSION, "API key lacks permission"),
    404: (ErrorCategory.NOT_FOUND, "API endpoint does not exist, check the address"),
    405: (
        ErrorCategory.METHOD_NOT_ALLOWED,
        "HTTP method not allowed, check the API address",
    ),
    429: (ErrorCategory.RATE_LIMIT, "Rate limit exceeded, try again later"),
}

logger = ContextualLogger({"component": "chat_client"})


def error_detail(body: str) -> tuple[str, dict[str, Any]]:
    """Return the provider's message and the decoded body, if it was JSON."""
    try:
        data = json.loads(body) if body else {}
    except json.JSONDecodeError:
        data = {}
    if not isinstance(data, dict):
        data = {}
    message = str(data.get("message") or data.get("error") or body or "")
    return message, data


def classify_status(
    status_code: int, body: str, endpoint: str | None = None
) -> APIStatusError:
    """
    Map a non-2xx response to a categorised error.

    Quota exhaustion is reported by some providers as a 400 whose message
    embeds the upstream ``status code 402``; the pattern wins over the status.
    """
    detail, data = error_detail(body)
    kwargs: dict[str, Any] = {
        "endpoint": endpoint,
        "status_code": status_code,
        "response_data": data,
    }

    if status_code == 402 or QUOTA_PATTERN.search(detail) or QUOTA_PATTERN.search(body):
        return QuotaExceededError(
            "Model quota exhausted or request parameters over the limit", **kwargs
        )
    if status_code == 400:
        return APIStatusError(
            "Malformed request, check the API address and parameters. "
            f"Response: {detail or 'bad format'}",
            category=ErrorCategory.MALFORMED_REQUEST,
            **kwargs,
        )
    if status_code in _STATUS_MESSAGES:
        category, message = _STATUS_MESSAGES[status_code]
        return APIStatusError(message, category=category, **kwargs)
    if status_code >= 500:
        return APIStatusError(
            "Internal server error", category=ErrorCategory.SERVER_ERROR, **kwargs
        )
    return APIStatusError(
        detail or f"HTTP {status_code} error",
        category=ErrorCategory.UNKNOWN,
        **kwargs,
    )


async def raise_for_status(response: httpx.Response, endpoint: str | None = None) -> None:
    """Raise a categorised APIStatusError for a non-2xx response."""
    if response.is_success:
        return
    body = (await response.aread()).decode("utf-8", errors="replace")
    raise classify_status(response.status_code, body, endpoint)


class DifyChatClient:
    """HTTP client for chat-message requests with per-request credentials."""

    def __init__(
        self,
        settings: HttpClientSettings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or HttpClientSettings()
        self.client: httpx.AsyncClient = httpx.AsyncClient(
            timeout=httpx.Timeout(
                connect=self.settings.connect_timeout,
                read=self.settings.read_timeout,
                write=self.settings.write_timeout,
                pool=self.settings.pool_timeout,
            ),
            limits=httpx.Limits(
                max_connections=self.settings.max_connections,
                max_keepalive_connections=self.settings.max_keepalive,
                keepalive_expiry=self.settings.keepalive_expiry,
            ),
            transport=transport,
        )

    @staticmethod
    def _headers(api_key: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    @asynccontextmanager
    async def stream_chat(
        self,
        endpoint: str,
        api_key: str,
        message: str,
        user: str = DEFAULT_PRINCIPAL,
    ) -> AsyncIterator[httpx.Response]:
        """
        Open a streaming chat request and yield the unread response.

        The caller owns status handling and body consumption; transport
        failures raised while the response is open surface as TransportError.
        """
        request = ChatMessageRequest(
            query=message, response_mode=ResponseMode.STREAMING, user=user
        )
        try:
            async with self.client.stream(
                "POST",
                chat_messages_url(endpoint),
                json=request.to_payload(),
                headers=self._headers(api_key),
            ) as response:
                yield response
        except httpx.TimeoutException as e:
            raise TransportError(
                f"Network connection failed, request timed out: {e}",
                endpoint=normalize_endpoint(endpoint),
            ) from e
        except httpx.TransportError as e:
            raise TransportError(
                f"Network connection failed, check the API address: {e}",
                endpoint=normalize_endpoint(endpoint),
            ) from e

    @handle_llm_errors("blocking chat")
    @log_operation("blocking chat")
    async def chat_blocking(
        self,
        endpoint: str,
        api_key: str,
        message: str,
        user: str = DEFAULT_PRINCIPAL,
    ) -> ChatCompletion:
        """Send one message with ``response_mode: blocking``."""
        request = ChatMessageRequest(
            query=message, response_mode=ResponseMode.BLOCKING, user=user
        )
        response = await self.client.post(
            chat_messages_url(endpoint),
            json=request.to_payload(),
            headers=self._headers(api_key),
        )
        await raise_for_status(response, normalize_endpoint(endpoint))
        try:
            data = response.json()
        except json.JSONDecodeError:
            data = {}
        return ChatCompletion.from_response(data if isinstance(data, dict) else {})

    @handle_llm_errors("remote stop")
    async def stop_task(
        self,
        endpoint: str,
        api_key: str,
        task_id: str,
        user: str = DEFAULT_PRINCIPAL,
    ) -> None:
        """Ask the provider to stop generating for ``task_id``."""
        response = await self.client.post(
            stop_url(endpoint, task_id),
            json={"user": user},
            headers=self._headers(api_key),
        )
        await raise_for_status(response, normalize_endpoint(endpoint))
        logger.info("Remote task stopped", task_id=task_id)

    @log_operation("validate api key")
    async def validate_api_key(
        self,
        endpoint: str,
        api_key: str,
        user: str = DEFAULT_PRINCIPAL,
    ) -> ApiKeyValidation:
        """
        Probe the endpoint with the key.

        ``GET /applications`` is tried first; apps that do not expose it
        (404/405) are probed with a blocking chat message instead.
        """
        try:
            response = await self.client.get(
                applications_url(endpoint), headers=self._headers(api_key)
            )
            if response.status_code in (404, 405):
                logger.info(
                    "Applications endpoint unavailable, probing chat-messages",
                    status_code=response.status_code,
                )
                request = ChatMessageRequest(
                    query=PROBE_QUERY, response_mode=ResponseMode.BLOCKING, user=user
                )
                payload = request.to_payload()
                payload["conversation_id"] = ""
                response = await self.client.post(
                    chat_messages_url(endpoint),
                    json=payload,
                    headers=self._headers(api_key),
                )
            await raise_for_status(response, normalize_endpoint(endpoint))
        except QuotaExceededError as e:
            return ApiKeyValidation(
                valid=True,
                message="API key is valid, but the model quota is exhausted "
                        "or parameters are over the limit",
                status_code=e.status_code,
            )
        except APIStatusError as e:
            return ApiKeyValidation(valid=False, message=e.message, status_code=e.status_code)
        except httpx.TransportError as e:
            return ApiKeyValidation(
                valid=False,
                message=f"Network connection failed, check the API address: {e}",
            )
        return ApiKeyValidation(valid=True, message="API key is valid", status_code=200)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> DifyChatClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
