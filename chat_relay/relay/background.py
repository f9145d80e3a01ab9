"""
Background service: the context that owns the network.

Viewers talk to it only through ``handle_request`` (request dict in, ack dict
out) and hear back through the relay. It owns the session registry, the
shared HTTP client, the streaming driver and the cancellation coordinator.
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from chat_relay.llm.client import DifyChatClient
from chat_relay.llm.exceptions import DuplicateSessionError, LLMError, QuotaExceededError
from chat_relay.llm.models import DEFAULT_PRINCIPAL, HttpClientSettings
from chat_relay.logging_utils import ContextualLogger
from chat_relay.session.coordinator import CancellationCoordinator
from chat_relay.session.driver import TASK_ID_HEADER, StreamingSessionDriver
from chat_relay.session.registry import SessionRegistry

from .messages import (
    Ack,
    CancelStreamRequest,
    ChatRequest,
    StartStreamRequest,
    ValidateApiKeyRequest,
    parse_request,
    to_wire,
)
from .relay import CrossContextRelay

QUOTA_STATUS = 402

logger = ContextualLogger({"component": "background"})


class BackgroundService:
    """Request dispatcher and owner of all streaming sessions."""

    def __init__(
        self,
        client: DifyChatClient | None = None,
        relay: CrossContextRelay | None = None,
        registry: SessionRegistry | None = None,
        *,
        principal: str = DEFAULT_PRINCIPAL,
        task_id_header: str = TASK_ID_HEADER,
        report_parse_failures: bool = True,
        http_settings: HttpClientSettings | None = None,
    ) -> None:
        self.client = client or DifyChatClient(http_settings)
        self.relay = relay or CrossContextRelay()
        self.registry = registry or SessionRegistry()
        self.principal = principal
        self.driver = StreamingSessionDriver(
            self.client,
            self.registry,
            self.relay,
            principal,
            task_id_header=task_id_header,
            report_parse_failures=report_parse_failures,
        )
        self.coordinator = CancellationCoordinator(self.registry, self.client)

    async def handle_request(self, payload: Any) -> dict:
        """Dispatch one viewer request and return its ack as a dict."""
        try:
            request = parse_request(payload)
        except ValidationError as e:
            action = payload.get("action") if isinstance(payload, dict) else None
            logger.warning("Rejected malformed request", action=action)
            return to_wire(Ack(success=False, message=f"Invalid request: {e.error_count()} error(s)"))

        match request:
            case StartStreamRequest():
                ack = self.start_stream(request)
            case CancelStreamRequest():
                ack = self.cancel_stream(request)
            case ChatRequest():
                ack = await self.call_chat(request)
            case ValidateApiKeyRequest():
                ack = await self.validate_api_key(request)
        return to_wire(ack)

    def start_stream(self, request: StartStreamRequest) -> Ack:
        try:
            self.driver.start(
                request.endpoint, request.api_key, request.message, request.stream_id
            )
        except DuplicateSessionError as e:
            logger.error("Duplicate stream id", stream_id=request.stream_id)
            return Ack(success=False, message=str(e))
        return Ack(success=True)

    def cancel_stream(self, request: CancelStreamRequest) -> Ack:
        self.coordinator.cancel(request.stream_id)
        return Ack(success=True)

    async def call_chat(self, request: ChatRequest) -> Ack:
        try:
            completion = await self.client.chat_blocking(
                request.endpoint, request.api_key, request.message, self.principal
            )
        except QuotaExceededError as e:
            # Reported as 402 whatever status carried the quota message
            return Ack(success=False, status=QUOTA_STATUS, message=e.message)
        except LLMError as e:
            return Ack(success=False, status=e.status_code or 0, message=e.message or "Request failed")
        return Ack(success=True, status=200, answer=completion.answer)

    async def validate_api_key(self, request: ValidateApiKeyRequest) -> Ack:
        result = await self.client.validate_api_key(
            request.endpoint, request.api_key, self.principal
        )
        return Ack(
            success=True,
            status=result.status_code or 0,
            message=result.message,
            valid=result.valid,
        )

    async def join(self) -> None:
        """Wait for running streams, then for their events to reach viewers."""
        await self.driver.join()
        await self.relay.flush()

    async def aclose(self) -> None:
        cancelled = self.coordinator.cancel_all()
        if cancelled:
            logger.info("Cancelled live sessions on shutdown", count=cancelled)
        await self.driver.join()
        await self.coordinator.aclose()
        await self.relay.flush()
        await self.relay.aclose()
        await self.client.close()

    async def __aenter__(self) -> BackgroundService:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
