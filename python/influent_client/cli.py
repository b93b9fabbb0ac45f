from __future__ import annotations

import argparse
import logging
import math
import time
from typing import Any, Optional

from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.table import Table
from rich.text import Text

from .client import ClientConfig, Precision, create_client, create_udp_client
from .config import DEFAULT_UDP_HOST, load_settings
from .errors import ClientError
from .measurement import Credentials, Measurement
from .serializer import LineSerializer


def parse_field_value(raw: str) -> Any:
    """Interpret a line protocol literal: ``10i``, ``t``, ``"text"`` or a float."""
    if len(raw) >= 2 and raw[0] == raw[-1] == '"':
        return raw[1:-1].replace('\\"', '"')
    if raw.endswith("i"):
        try:
            return int(raw[:-1])
        except ValueError:
            pass
    lowered = raw.lower()
    if lowered in ("t", "true"):
        return True
    if lowered in ("f", "false"):
        return False
    try:
        number = float(raw)
    except ValueError:
        return raw
    return number if math.isfinite(number) else raw


def _pair(raw: str) -> tuple[str, str]:
    name, sep, value = raw.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"expected name=value, got {raw!r}")
    return name, value


def _precision(raw: str) -> Precision:
    try:
        return Precision(raw)
    except ValueError:
        codes = ", ".join(p.value for p in Precision)
        raise argparse.ArgumentTypeError(f"unknown precision {raw!r} (expected one of {codes})")


def _query_table(statement: str, ok: bool, body: str) -> Table:
    t = Table(title="Query")
    t.add_column("Key", style="bold")
    t.add_column("Value")
    t.add_row("statement", Text(statement))
    t.add_row("ok", str(ok))
    t.add_row("ts_ms", str(int(time.time() * 1000)))
    t.add_row("body" if ok else "error", Text(body))
    return t


def _measurement(args: argparse.Namespace) -> Measurement:
    m = Measurement(args.key)
    for name, value in args.tags:
        m.add_tag(name, value)
    for name, value in args.fields:
        m.add_field(name, parse_field_value(value))
    if args.timestamp is not None:
        m.set_timestamp(args.timestamp)
    return m


def _add_measurement_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("key")
    p.add_argument("--tag", dest="tags", action="append", default=[], type=_pair, metavar="NAME=VALUE")
    p.add_argument("--field", dest="fields", action="append", required=True, type=_pair, metavar="NAME=VALUE")
    p.add_argument("--timestamp", type=int)


def _positive(kind):
    def parse(raw: str):
        try:
            value = kind(raw)
        except ValueError:
            raise argparse.ArgumentTypeError(f"expected a {kind.__name__}, got {raw!r}")
        if value <= 0:
            raise argparse.ArgumentTypeError(f"must be > 0, got {raw!r}")
        return value

    return parse


def main(argv: list[str] | None = None) -> int:
    try:
        settings = load_settings()
    except ValueError as e:
        Console(stderr=True).print(str(e), style="red", markup=False, highlight=False)
        return 1

    p = argparse.ArgumentParser(prog="influent")
    p.add_argument("--host", dest="hosts", action="append", help="May be repeated; the first host is used")
    p.add_argument("--database", default=settings.database)
    p.add_argument("--username", default=settings.username)
    p.add_argument("--password", default=settings.password)
    p.add_argument("--timeout", default=settings.timeout_s, type=_positive(float))
    p.add_argument("--max-batch", default=settings.max_batch, type=_positive(int))
    p.add_argument("--log-level", default=settings.log_level)

    sub = p.add_subparsers(dest="cmd", required=True)

    query = sub.add_parser("query", help="Run a query and print the raw response body")
    query.add_argument("statement")
    query.add_argument("--epoch", type=_precision)

    watch = sub.add_parser("watch", help="Re-run a query and display the latest response")
    watch.add_argument("statement")
    watch.add_argument("--epoch", type=_precision)
    watch.add_argument("--interval", default=1.0, type=float)

    write = sub.add_parser("write", help="Write one measurement")
    _add_measurement_args(write)
    write.add_argument("--precision", type=_precision)
    write.add_argument(
        "--udp",
        action="store_true",
        help=f"Send over UDP; --host must be host:port (default: {DEFAULT_UDP_HOST})",
    )

    line = sub.add_parser("line", help="Print the line protocol of a measurement without sending it")
    _add_measurement_args(line)

    args = p.parse_args(argv)
    console = Console()

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )

    measurement = None
    if args.cmd in ("line", "write"):
        try:
            measurement = _measurement(args)
        except (TypeError, ValueError) as e:
            p.error(str(e))

    if args.cmd == "line":
        console.print(LineSerializer().serialize(measurement), markup=False, highlight=False)
        return 0

    cfg = ClientConfig(max_batch=args.max_batch, timeout_s=args.timeout)
    try:
        if args.cmd == "write" and args.udp:
            client: Any = create_udp_client(args.hosts or [DEFAULT_UDP_HOST], cfg)
        else:
            credentials = Credentials(args.username, args.password, args.database)
            client = create_client(credentials, args.hosts or list(settings.hosts), cfg)
    except ValueError as e:
        p.error(str(e))

    try:
        return _run(args, client, console, measurement)
    finally:
        client.close()


def _run(args: argparse.Namespace, client: Any, console: Console, measurement: Optional[Measurement]) -> int:
    if args.cmd == "watch":
        interval = float(args.interval)
        with Live(_query_table(args.statement, True, ""), refresh_per_second=4, console=console) as live:
            try:
                while True:
                    live.update(_run_query(client, args.statement, args.epoch))
                    time.sleep(max(0.05, interval))
            except KeyboardInterrupt:
                return 0

    try:
        if args.cmd == "query":
            body = client.query(args.statement, args.epoch)
            console.print(body, markup=False, highlight=False)
        else:
            client.write_one(measurement, args.precision)
            console.print("[green]ok[/green]")
    except ClientError as e:
        console.print(str(e), style="red", markup=False, highlight=False)
        return 1
    return 0


def _run_query(client: Any, statement: str, epoch: Optional[Precision]) -> Table:
    try:
        return _query_table(statement, True, client.query(statement, epoch))
    except ClientError as e:
        return _query_table(statement, False, str(e))


if __name__ == "__main__":
    raise SystemExit(main())
