"""
Application errors raised by the services and mapped to HTTP responses or stream events.

ServiceUnavailableError: a dependency (model API, search API) is misconfigured.
"""


class ServiceUnavailableError(Exception):
    """Raised when a required service (e.g. model API, search API) is unavailable or misconfigured."""


class ChatOwnershipError(Exception):
    """Raised when a chat id is already taken by a different user."""

    def __init__(self, chat_id: str) -> None:
        self.chat_id = chat_id
        super().__init__("Chat ID already exists for a different user.")


class SearchAbortedError(Exception):
    """Raised when the request was aborted before a web search completed."""
