"""
Prompt templates for the page-summary and selected-text actions.

Each action produces two strings: the prompt sent to the provider and the
shorter user turn shown in the chat. Selected text is previewed in the user
turn, cut at ``PREVIEW_LIMIT`` characters.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

TextActionType = Literal["summary", "chat", "translate"]

PREVIEW_LIMIT = 800
ELLIPSIS = "…"
DEFAULT_TRANSLATE_LANGUAGE = "Chinese"

ACTION_LABELS: dict[str, str] = {
    "summary": "AI interpretation",
    "chat": "Chat",
    "translate": "Translate",
}
FALLBACK_LABEL = "Process text"

_TEXT_PROMPTS: dict[str, str] = {
    "summary": "Please summarize the following text:\n\n{text}",
    "chat": "Discuss the following text and offer key insights:\n\n{text}",
    "translate": "Please translate the following text into {language}:\n\n{text}",
}

_PAGE_PROMPT = (
    "Please summarize the following web page:\n"
    "Title: {title}\n"
    "URL: {url}\n"
    "Content: {content}\n\n"
    "Give a concise summary that highlights the main points and key information."
)


@dataclass(frozen=True)
class ActionTurn:
    """What a viewer sends and what it shows for one action."""
    prompt: str
    user_content: str


def preview(text: str, limit: int = PREVIEW_LIMIT) -> str:
    if len(text) > limit:
        return text[:limit] + ELLIPSIS
    return text


def page_summary_turn(title: str, url: str, content: str) -> ActionTurn:
    return ActionTurn(
        prompt=_PAGE_PROMPT.format(title=title, url=url, content=content),
        user_content=f"Summarize content\nURL: {url}",
    )


def selected_text_turn(
    kind: TextActionType,
    text: str,
    language: str = DEFAULT_TRANSLATE_LANGUAGE,
) -> ActionTurn:
    """
    Build the turn for a text selection.

    The provider always gets the full text; only the user turn is previewed.

    Raises:
        ValueError: If ``kind`` is not a known action type.
    """
    template = _TEXT_PROMPTS.get(kind)
    if template is None:
        raise ValueError(f"Unknown text action: {kind!r}")
    label = ACTION_LABELS.get(kind, FALLBACK_LABEL)
    return ActionTurn(
        prompt=template.format(text=text, language=language),
        user_content=f"{label}\n{preview(text)}",
    )
