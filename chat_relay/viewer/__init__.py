"""Viewer contexts: chat state and thinking/answer splitting."""

from .chat_view import ChatViewer, Message
from .splitter import ThoughtSplit, split_thought_and_answer

__all__ = ["ChatViewer", "Message", "ThoughtSplit", "split_thought_and_answer"]
