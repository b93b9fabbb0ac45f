from __future__ import annotations

import logging
import socket
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Sequence

from .batcher import MAX_BATCH, MAX_DATAGRAM_SIZE, WriteBatcher
from .errors import (
    ClientSyntaxError,
    CommunicationError,
    CouldNotCompleteError,
    NoHostError,
    TransportError,
    UnexpectedResponseError,
)
from .measurement import Credentials, Measurement
from .serializer import LineSerializer, Serializer
from .transport import Auth, Method, Request, RequestsTransport, Response, Transport

log = logging.getLogger(__name__)


class Precision(Enum):
    NANOSECONDS = "n"
    MICROSECONDS = "u"
    MILLISECONDS = "ms"
    SECONDS = "s"
    MINUTES = "m"
    HOURS = "h"

    def __str__(self) -> str:
        return self.value


class DispatchMode(Enum):
    SEQUENTIAL = "sequential"
    CONCURRENT = "concurrent"


@dataclass(frozen=True)
class ClientConfig:
    max_batch: int = MAX_BATCH
    dispatch: DispatchMode = DispatchMode.SEQUENTIAL
    max_workers: Optional[int] = None
    timeout_s: float = 5.0
    max_datagram_size: int = MAX_DATAGRAM_SIZE


class _HostList:
    def __init__(self) -> None:
        self.hosts: list[str] = []

    def add_host(self, host: str) -> None:
        self.hosts.append(host)

    def get_host(self) -> str:
        if not self.hosts:
            raise NoHostError("Could not get host: no hosts configured")
        return self.hosts[0]


class HttpClient(_HostList):
    """Query and write client for the InfluxDB 1.x HTTP API.

    Every call is an independent request against the first configured host.
    Writes are split into chunks of ``config.max_batch`` measurements, one
    POST per chunk. A failed chunk stops the write; chunks sent before it
    are not rolled back, so a failed ``write_many`` may still have written
    part of its input.
    """

    def __init__(
        self,
        credentials: Credentials,
        serializer: Serializer,
        transport: Transport,
        config: Optional[ClientConfig] = None,
    ):
        super().__init__()
        self._credentials = credentials
        self._cfg = config or ClientConfig()
        self._batcher = WriteBatcher(serializer, self._cfg.max_batch)
        self._transport = transport

    @property
    def credentials(self) -> Credentials:
        return self._credentials

    def _auth(self) -> Optional[Auth]:
        if self._credentials.has_auth:
            return Auth(self._credentials.username, self._credentials.password)
        return None

    def _url(self, path: str) -> str:
        return self.get_host().rstrip("/") + path

    def _send(self, req: Request) -> Response:
        try:
            resp = self._transport.request(req)
        except TransportError as e:
            raise CommunicationError(str(e)) from e
        log.debug("%s %s -> %d", req.method.value, req.url, resp.status)
        return resp

    def query(self, statement: str, epoch: Optional[Precision] = None) -> str:
        query = {"db": self._credentials.database, "q": statement}
        if epoch is not None:
            query["epoch"] = epoch.value

        resp = self._send(Request(Method.GET, self._url("/query"), query, self._auth()))
        if resp.status == 200:
            return resp.body
        if resp.status == 400:
            raise ClientSyntaxError(resp.body)
        raise UnexpectedResponseError(resp.status, resp.body)

    def write_one(self, measurement: Measurement, precision: Optional[Precision] = None) -> None:
        self.write_many([measurement], precision)

    def write_many(self, measurements: Iterable[Measurement], precision: Optional[Precision] = None) -> None:
        url = self._url("/write")
        query = {"db": self._credentials.database}
        if precision is not None:
            query["precision"] = precision.value
        auth = self._auth()
        pending = (Request(Method.POST, url, query, auth, body) for body in self._batcher.bodies(measurements))

        if self._cfg.dispatch is DispatchMode.CONCURRENT:
            self._write_concurrent(list(pending))
            return
        for n, req in enumerate(pending):
            log.debug("writing chunk %d to %s", n, url)
            self._write_chunk(req)

    def _write_chunk(self, req: Request) -> None:
        resp = self._send(req)
        if resp.status == 204:
            return
        if resp.status == 200:
            raise CouldNotCompleteError(resp.body)
        if resp.status == 400:
            raise ClientSyntaxError(resp.body)
        raise UnexpectedResponseError(resp.status, resp.body)

    def _write_concurrent(self, pending: Sequence[Request]) -> None:
        if not pending:
            return
        workers = self._cfg.max_workers or len(pending)
        log.debug("writing %d chunks with %d workers", len(pending), workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="influent-write") as pool:
            futures = [pool.submit(self._write_chunk, req) for req in pending]
        # Report the earliest chunk in input order, not the first to finish.
        for n, fut in enumerate(futures):
            exc = fut.exception()
            if exc is not None:
                log.debug("chunk %d of %d failed: %s", n, len(futures), exc)
                raise exc

    def close(self) -> None:
        close = getattr(self._transport, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def split_udp_host(host: str) -> tuple[str, int]:
    """Split ``host:port`` (or ``[v6addr]:port``) into its name and port."""
    name, sep, port = host.rpartition(":")
    if not sep or not name or "/" in name or not port.isdigit():
        raise ValueError(f"UDP host must be host:port, got {host!r}")
    return name.strip("[]"), int(port)


class UdpClient(_HostList):
    """Writes line protocol over UDP. Queries are not supported.

    Hosts are ``host:port`` strings, checked when added. The address family
    of the socket follows the resolved host. Each chunk of
    ``config.max_batch`` measurements is packed into datagrams of at most
    ``config.max_datagram_size`` bytes.
    """

    def __init__(
        self,
        serializer: Serializer,
        config: Optional[ClientConfig] = None,
        sock: Optional[socket.socket] = None,
    ):
        super().__init__()
        self._cfg = config or ClientConfig()
        self._batcher = WriteBatcher(serializer, self._cfg.max_batch)
        self._sock = sock

    def add_host(self, host: str) -> None:
        split_udp_host(host)
        super().add_host(host)

    def _address(self) -> tuple[int, tuple]:
        name, port = split_udp_host(self.get_host())
        family, _, _, _, sockaddr = socket.getaddrinfo(name, port, type=socket.SOCK_DGRAM)[0]
        return family, sockaddr

    def _socket(self, family: int) -> socket.socket:
        if self._sock is None:
            self._sock = socket.socket(family, socket.SOCK_DGRAM)
        return self._sock

    def query(self, statement: str, epoch: Optional[Precision] = None) -> str:
        raise CouldNotCompleteError("querying is not supported over UDP")

    def write_one(self, measurement: Measurement, precision: Optional[Precision] = None) -> None:
        self.write_many([measurement], precision)

    def write_many(self, measurements: Iterable[Measurement], precision: Optional[Precision] = None) -> None:
        self.get_host()
        try:
            family, addr = self._address()
            sock = self._socket(family)
            for payloads in self._batcher.datagrams(measurements, self._cfg.max_datagram_size):
                for payload in payloads:
                    sock.sendto(payload, addr)
                    log.debug("sent %d bytes to %s port %d", len(payload), addr[0], addr[1])
        except OSError as e:
            raise CommunicationError(str(e)) from e

    def close(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def __enter__(self) -> "UdpClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def create_client(
    credentials: Credentials,
    hosts: Sequence[str],
    config: Optional[ClientConfig] = None,
) -> HttpClient:
    """Build an :class:`HttpClient` with a line serializer and a requests transport.

    >>> client = create_client(Credentials("gobwas", "xxx", "mydb"), ["http://localhost:8086"])
    """
    cfg = config or ClientConfig()
    client = HttpClient(credentials, LineSerializer(), RequestsTransport(timeout_s=cfg.timeout_s), cfg)
    for host in hosts:
        client.add_host(host)
    return client


def create_udp_client(hosts: Sequence[str], config: Optional[ClientConfig] = None) -> UdpClient:
    client = UdpClient(LineSerializer(), config)
    for host in hosts:
        client.add_host(host)
    return client
