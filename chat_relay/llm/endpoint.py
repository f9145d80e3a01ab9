"""Endpoint normalization shared by the streaming, blocking and stop calls."""

from __future__ import annotations

VERSION_SUFFIX = "/v1"


def normalize_endpoint(raw: str, version_suffix: str = VERSION_SUFFIX) -> str:
    """
    Return the canonical API root for a user-supplied base URL.

    Whitespace is trimmed and the version segment appended once. The path
    separator is only inserted when the input lacks a trailing one, so
    ``https://api.x.com``, ``https://api.x.com/`` and ``https://api.x.com/v1``
    all map to ``https://api.x.com/v1``. Malformed input is passed through
    best-effort; the HTTP layer reports the real failure.
    """
    endpoint = raw.strip()
    if endpoint.endswith(version_suffix):
        return endpoint
    if endpoint.endswith("/"):
        return endpoint + version_suffix.lstrip("/")
    return endpoint + version_suffix


def chat_messages_url(endpoint: str) -> str:
    return f"{normalize_endpoint(endpoint)}/chat-messages"


def stop_url(endpoint: str, task_id: str) -> str:
    return f"{chat_messages_url(endpoint)}/{task_id}/stop"


def applications_url(endpoint: str) -> str:
    return f"{normalize_endpoint(endpoint)}/applications"
