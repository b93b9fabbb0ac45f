from __future__ import annotations


class ClientError(RuntimeError):
    """Base class for failures reported by a client operation."""


class ClientSyntaxError(ClientError):
    """The server rejected the request with 400 Bad Request."""

    def __init__(self, body: str):
        super().__init__(f"Syntax error: {body}")
        self.body = body


class CouldNotCompleteError(ClientError):
    """The server accepted a write but did not apply all of it."""

    def __init__(self, body: str):
        super().__init__(f"Could not complete: {body}")
        self.body = body


class UnexpectedResponseError(ClientError):
    def __init__(self, status: int, body: str):
        super().__init__(f"Unexpected response: status={status} body={body!r}")
        self.status = status
        self.body = body


class CommunicationError(ClientError):
    def __init__(self, message: str):
        super().__init__(f"Communication error: {message}")
        self.message = message


class DatagramTooLargeError(ClientError):
    """A single serialized line does not fit into one datagram."""

    def __init__(self, size: int, limit: int):
        super().__init__(f"Line of {size} bytes exceeds datagram limit of {limit} bytes")
        self.size = size
        self.limit = limit


class TransportError(RuntimeError):
    """Raised by transports when a request could not be carried out."""


class NoHostError(LookupError):
    """Raised when an operation runs on a client without any host."""
