"""
Chat relay: streams chat-messages responses from a provider to viewer
contexts, with cooperative local and remote cancellation.
"""

__version__ = "0.1.0"
