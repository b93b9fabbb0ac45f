import threading

import pytest

from influent_client.client import (
    ClientConfig,
    DispatchMode,
    HttpClient,
    Precision,
    create_client,
)
from influent_client.errors import (
    ClientError,
    ClientSyntaxError,
    CommunicationError,
    CouldNotCompleteError,
    NoHostError,
    TransportError,
    UnexpectedResponseError,
)
from influent_client.measurement import Credentials, Measurement
from influent_client.serializer import LineSerializer
from influent_client.transport import Auth, Method, RequestsTransport, Response


class FakeTransport:
    """Returns queued responses in order and records every request."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []
        self._lock = threading.Lock()

    def request(self, req):
        with self._lock:
            self.requests.append(req)
            item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, int):
            return Response(item, "")
        return item


def _client(transport, credentials=None, **config):
    client = HttpClient(
        credentials or Credentials("gobwas", "xxx", "mydb"),
        LineSerializer(),
        transport,
        ClientConfig(**config),
    )
    client.add_host("http://localhost:8086")
    return client


def _measurements(n):
    return [Measurement("m").add_field("v", i) for i in range(n)]


def test_create_client():
    client = create_client(Credentials("gobwas", "xxx", "mydb"), ["http://localhost:8086", "http://other:8086"])
    assert isinstance(client, HttpClient)
    assert client.hosts == ["http://localhost:8086", "http://other:8086"]
    assert client.get_host() == "http://localhost:8086"
    assert isinstance(client._transport, RequestsTransport)


def test_no_host_is_a_programmer_error():
    client = HttpClient(Credentials("", "", "db"), LineSerializer(), FakeTransport())
    with pytest.raises(NoHostError):
        client.query("SELECT 1")
    assert not issubclass(NoHostError, ClientError)


def test_precision_codes():
    assert [p.value for p in Precision] == ["n", "u", "ms", "s", "m", "h"]
    assert str(Precision.MILLISECONDS) == "ms"


# query


def test_query_success_returns_body_verbatim():
    body = '{"results":[{"series":[]}]}'
    transport = FakeTransport(Response(200, body))
    client = _client(transport)

    assert client.query("SELECT * FROM cpu", Precision.MILLISECONDS) == body

    (req,) = transport.requests
    assert req.method is Method.GET
    assert req.url == "http://localhost:8086/query"
    assert req.query == {"db": "mydb", "q": "SELECT * FROM cpu", "epoch": "ms"}
    assert req.auth == Auth("gobwas", "xxx")
    assert req.body is None


def test_query_without_epoch():
    transport = FakeTransport(Response(200, "{}"))
    _client(transport).query("SHOW DATABASES")
    assert "epoch" not in transport.requests[0].query


def test_query_syntax_error():
    transport = FakeTransport(Response(400, '{"error":"bad query"}'))
    with pytest.raises(ClientSyntaxError) as exc_info:
        _client(transport).query("SELEC")
    assert exc_info.value.body == '{"error":"bad query"}'


def test_query_unexpected_status():
    transport = FakeTransport(Response(500, "boom"))
    with pytest.raises(UnexpectedResponseError) as exc_info:
        _client(transport).query("SELECT 1")
    assert exc_info.value.status == 500
    assert exc_info.value.body == "boom"
    assert "500" in str(exc_info.value)


def test_query_communication_error():
    transport = FakeTransport(TransportError("connection refused"))
    with pytest.raises(CommunicationError) as exc_info:
        _client(transport).query("SELECT 1")
    assert exc_info.value.message == "connection refused"


def test_empty_credentials_send_no_auth():
    transport = FakeTransport(Response(200, ""), 204)
    client = _client(transport, credentials=Credentials("gobwas", "", "mydb"))
    client.query("SELECT 1")
    client.write_one(Measurement("m").add_field("v", 1))
    assert [req.auth for req in transport.requests] == [None, None]


def test_host_trailing_slash():
    transport = FakeTransport(Response(200, ""))
    client = HttpClient(Credentials("", "", "db"), LineSerializer(), transport)
    client.add_host("http://localhost:8086/")
    client.query("SELECT 1")
    assert transport.requests[0].url == "http://localhost:8086/query"


# write


def test_write_one():
    transport = FakeTransport(204)
    m = Measurement("key").add_tag("tag", "value").add_field("f", 1.5).set_timestamp(10)
    _client(transport).write_one(m, Precision.SECONDS)

    (req,) = transport.requests
    assert req.method is Method.POST
    assert req.url == "http://localhost:8086/write"
    assert req.query == {"db": "mydb", "precision": "s"}
    assert req.body == "key,tag=value f=1.5 10"


def test_write_many_sends_one_request_per_chunk():
    transport = FakeTransport(204, 204, 204)
    _client(transport, max_batch=2).write_many(_measurements(5))

    assert len(transport.requests) == 3
    assert [req.body for req in transport.requests] == [
        "m v=0i\nm v=1i",
        "m v=2i\nm v=3i",
        "m v=4i",
    ]
    assert all("precision" not in req.query for req in transport.requests)


def test_write_many_default_batch_size():
    transport = FakeTransport(204, 204, 204)
    _client(transport).write_many(_measurements(12000))
    assert [req.body.count("\n") + 1 for req in transport.requests] == [5000, 5000, 2000]


def test_write_many_empty_input_sends_nothing():
    transport = FakeTransport()
    _client(transport).write_many([])
    assert transport.requests == []


def test_write_200_is_could_not_complete():
    transport = FakeTransport(Response(200, "partial"))
    with pytest.raises(CouldNotCompleteError) as exc_info:
        _client(transport).write_one(Measurement("m").add_field("v", 1))
    assert exc_info.value.body == "partial"


def test_write_unexpected_status():
    transport = FakeTransport(Response(503, "unavailable"))
    with pytest.raises(UnexpectedResponseError) as exc_info:
        _client(transport).write_one(Measurement("m").add_field("v", 1))
    assert exc_info.value.status == 503


def test_write_communication_error():
    transport = FakeTransport(TransportError("timed out"))
    with pytest.raises(CommunicationError):
        _client(transport).write_one(Measurement("m").add_field("v", 1))


def test_sequential_write_stops_at_first_failed_chunk():
    transport = FakeTransport(204, Response(400, "bad line"), 204)
    with pytest.raises(ClientSyntaxError) as exc_info:
        _client(transport, max_batch=2).write_many(_measurements(6))

    assert exc_info.value.body == "bad line"
    # the third chunk is never sent
    assert len(transport.requests) == 2


# concurrent dispatch


class GatedTransport:
    """Chunk 2 answers only after chunk 3 has already failed."""

    def __init__(self):
        self.later_failed = threading.Event()
        self.bodies = []
        self._lock = threading.Lock()

    def request(self, req):
        with self._lock:
            self.bodies.append(req.body)
        if req.body.startswith("m v=0i"):
            return Response(204, "")
        if req.body.startswith("m v=2i"):
            assert self.later_failed.wait(timeout=5)
            return Response(400, "chunk 2")
        self.later_failed.set()
        return Response(500, "chunk 3")


def test_concurrent_write_reports_earliest_failed_chunk():
    transport = GatedTransport()
    client = _client(transport, max_batch=2, dispatch=DispatchMode.CONCURRENT)

    with pytest.raises(ClientSyntaxError) as exc_info:
        client.write_many(_measurements(6))

    assert exc_info.value.body == "chunk 2"
    assert len(transport.bodies) == 3


def test_concurrent_write_success():
    transport = FakeTransport(204, 204, 204)
    client = _client(transport, max_batch=2, dispatch=DispatchMode.CONCURRENT, max_workers=2)
    client.write_many(_measurements(5))

    assert sorted(req.body for req in transport.requests) == [
        "m v=0i\nm v=1i",
        "m v=2i\nm v=3i",
        "m v=4i",
    ]


def test_concurrent_write_empty_input():
    transport = FakeTransport()
    _client(transport, dispatch=DispatchMode.CONCURRENT).write_many([])
    assert transport.requests == []


class ClosingTransport(FakeTransport):
    closed = False

    def close(self):
        self.closed = True


def test_close_closes_transport():
    transport = ClosingTransport(204)
    with _client(transport) as client:
        client.write_one(Measurement("m").add_field("v", 1))
    assert transport.closed


def test_close_without_transport_close():
    _client(FakeTransport()).close()
