"""
Message contract between the background service and its viewers.

Requests flow viewer -> background and are answered with an ``Ack``.
Lifecycle events flow background -> viewers through the relay. Both sides
exchange plain JSON-mode dictionaries and validate them on receipt.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class RelayMessage(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


# --------------------------------------------------------------------------- #
# Requests                                                                    #
# --------------------------------------------------------------------------- #


class StartStreamRequest(RelayMessage):
    action: Literal["startStream"] = "startStream"
    endpoint: str
    api_key: str = Field(alias="apiKey")
    message: str
    stream_id: str = Field(alias="streamId")


class CancelStreamRequest(RelayMessage):
    action: Literal["cancelStream"] = "cancelStream"
    stream_id: str = Field(alias="streamId")


class ChatRequest(RelayMessage):
    action: Literal["callChat"] = "callChat"
    endpoint: str
    api_key: str = Field(alias="apiKey")
    message: str


class ValidateApiKeyRequest(RelayMessage):
    action: Literal["validateApiKey"] = "validateApiKey"
    endpoint: str
    api_key: str = Field(alias="apiKey")


RelayRequest = Annotated[
    StartStreamRequest | CancelStreamRequest | ChatRequest | ValidateApiKeyRequest,
    Field(discriminator="action"),
]


# --------------------------------------------------------------------------- #
# Viewer actions                                                              #
# --------------------------------------------------------------------------- #


class PageContent(RelayMessage):
    title: str = ""
    url: str = ""
    content: str = ""


class SelectedText(RelayMessage):
    type: Literal["summary", "chat", "translate"]
    text: str


class ProcessPageSummaryRequest(RelayMessage):
    """Ask a viewer to summarise a page captured elsewhere."""
    action: Literal["processPageSummary"] = "processPageSummary"
    data: PageContent


class ProcessSelectedTextRequest(RelayMessage):
    """Ask a viewer to run a text action on a selection."""
    action: Literal["processSelectedText"] = "processSelectedText"
    data: SelectedText


ViewerAction = Annotated[
    ProcessPageSummaryRequest | ProcessSelectedTextRequest,
    Field(discriminator="action"),
]


class Ack(RelayMessage):
    """Response to every request."""
    success: bool
    status: int = 0
    message: str = ""
    answer: str | None = None
    valid: bool | None = None


# --------------------------------------------------------------------------- #
# Lifecycle push events                                                       #
# --------------------------------------------------------------------------- #


class StreamChunkEvent(RelayMessage):
    action: Literal["streamChunk"] = "streamChunk"
    stream_id: str = Field(alias="streamId")
    text: str


class StreamDoneEvent(RelayMessage):
    action: Literal["streamDone"] = "streamDone"
    stream_id: str = Field(alias="streamId")


class StreamErrorEvent(RelayMessage):
    action: Literal["streamError"] = "streamError"
    stream_id: str = Field(alias="streamId")
    message: str


LifecycleEvent = Annotated[
    StreamChunkEvent | StreamDoneEvent | StreamErrorEvent,
    Field(discriminator="action"),
]

_request_adapter: TypeAdapter[RelayRequest] = TypeAdapter(RelayRequest)
_event_adapter: TypeAdapter[LifecycleEvent] = TypeAdapter(LifecycleEvent)
_action_adapter: TypeAdapter[ViewerAction] = TypeAdapter(ViewerAction)


def parse_request(payload: dict) -> RelayRequest:
    return _request_adapter.validate_python(payload)


def parse_lifecycle_event(payload: dict) -> LifecycleEvent:
    return _event_adapter.validate_python(payload)


def parse_viewer_action(payload: dict) -> ViewerAction:
    return _action_adapter.validate_python(payload)


def to_wire(message: RelayMessage) -> dict:
    """Serialize a message the way it crosses a context boundary."""
    return message.model_dump(mode="json", by_alias=True)
