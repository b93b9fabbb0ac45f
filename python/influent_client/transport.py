"""HTTP transport used by :class:`~influent_client.client.HttpClient`."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Protocol

import requests
from requests import RequestException

from .errors import TransportError

log = logging.getLogger(__name__)


class Method(Enum):
    GET = "GET"
    POST = "POST"


@dataclass(frozen=True)
class Auth:
    username: str
    password: str


@dataclass(frozen=True)
class Request:
    method: Method
    url: str
    query: dict[str, str] = field(default_factory=dict)
    auth: Optional[Auth] = None
    body: Optional[str] = None


@dataclass(frozen=True)
class Response:
    status: int
    body: str


class Transport(Protocol):
    def request(self, req: Request) -> Response:
        """Send ``req``; raise :class:`TransportError` if no response was obtained."""
        ...


class RequestsTransport:
    """Transport on top of :class:`requests.Session`.

    ``requests`` does not promise that a session is thread-safe, so each
    thread gets its own session from ``session_factory``. A ``session``
    passed explicitly is shared by all threads as given.
    Query parameters already present in ``req.url`` are kept; ``req.query``
    is appended to them. No retries are attempted.
    """

    def __init__(
        self,
        timeout_s: float = 5.0,
        session: Optional[requests.Session] = None,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ):
        self.timeout_s = timeout_s
        self._shared = session
        self._factory = session_factory
        self._local = threading.local()
        self._sessions: list[requests.Session] = []
        self._lock = threading.Lock()

    def _session(self) -> requests.Session:
        if self._shared is not None:
            return self._shared
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._factory()
            self._local.session = session
            with self._lock:
                self._sessions.append(session)
        return session

    def request(self, req: Request) -> Response:
        auth = (req.auth.username, req.auth.password) if req.auth else None
        data = req.body.encode("utf-8") if req.body is not None else None
        log.debug("%s %s params=%s", req.method.value, req.url, sorted(req.query))
        try:
            resp = self._session().request(
                req.method.value,
                req.url,
                params=req.query,
                data=data,
                auth=auth,
                timeout=self.timeout_s,
            )
            return Response(status=resp.status_code, body=resp.text)
        except RequestException as exc:
            raise TransportError(str(exc)) from exc

    def close(self) -> None:
        with self._lock:
            sessions, self._sessions = self._sessions, []
        if self._shared is not None:
            sessions.append(self._shared)
        for session in sessions:
            session.close()
        self._local = threading.local()
