"""
HTTP front end.

    GET /metrics?collect[]=globalstatus    scrape (optionally a subset)
    GET <anything else>                    landing page

Every metrics request gets its own CollectorRegistry holding a fresh
Exporter for the filtered scrapers. That registry is merged with the
process-wide one (build info, process stats, HTTP counters) before
encoding, so nothing leaks between requests.
"""

from __future__ import annotations

import gzip
import logging
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Iterable, Optional, Sequence, Tuple
from urllib.parse import parse_qs, urlsplit

from prometheus_client import CollectorRegistry, Counter, Histogram
from prometheus_client.exposition import choose_encoder, gzip_accepted

from hana_exporter.collector.base import Scraper
from hana_exporter.collector.exporter import Exporter
from hana_exporter.collector.registry import filter_scrapers
from hana_exporter.config import ConnectionDescriptor

log = logging.getLogger(__name__)

DEFAULT_LISTEN_ADDRESS = ":9105"
DEFAULT_METRICS_PATH = "/metrics"
DEFAULT_TIMEOUT_OFFSET = 0.25

SCRAPE_TIMEOUT_HEADER = "X-Prometheus-Scrape-Timeout-Seconds"

LANDING_PAGE = """<html>
<head><title>HANA exporter</title></head>
<body>
<h1>HANA exporter</h1>
<p><a href='{path}'>Metrics</a></p>
</body>
</html>
"""


class Gatherers:
    """Several registries that encode as one. No deduplication."""

    def __init__(self, registries: Iterable):
        self._registries = list(registries)

    def collect(self):
        for registry in self._registries:
            yield from registry.collect()


def parse_listen_address(address: str) -> Tuple[str, int]:
    """Split "[host]:port"; an empty host listens on every interface."""
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"listen address must be [host]:port, got {address!r}")
    port_num = int(port)
    if port_num > 65535:
        raise ValueError(f"port out of range in {address!r}")
    return host.strip("[]"), port_num


def scrape_timeout(
    header: Optional[str],
    offset: float = DEFAULT_TIMEOUT_OFFSET,
    default: Optional[float] = None,
) -> Optional[float]:
    """Deadline for one scrape, in seconds, from Prometheus' timeout header."""
    if not header:
        return default
    try:
        timeout = float(header)
    except ValueError:
        log.warning("Failed to parse %s header %r", SCRAPE_TIMEOUT_HEADER, header)
        return default
    if timeout <= 0:
        return default
    if offset >= timeout:
        log.warning(
            "Timeout offset (%.2fs) should be lower than the scrape timeout (%.2fs), ignoring it",
            offset, timeout,
        )
        return timeout
    return timeout - offset


class ExporterHTTPServer(ThreadingHTTPServer):
    """Threading HTTP server carrying the read-only exporter state."""

    daemon_threads = True

    def __init__(
        self,
        server_address: Tuple[str, int],
        conn: ConnectionDescriptor,
        scrapers: Sequence[Scraper],
        global_registry,
        metrics_path: str = DEFAULT_METRICS_PATH,
        timeout_offset: float = DEFAULT_TIMEOUT_OFFSET,
        default_timeout: Optional[float] = None,
    ):
        self.conn = conn
        self.scrapers = tuple(scrapers)
        self.global_registry = global_registry
        self.metrics_path = metrics_path
        self.timeout_offset = timeout_offset
        self.default_timeout = default_timeout
        self.landing_page = LANDING_PAGE.format(path=metrics_path).encode()

        self.requests_total = Counter(
            "hana_exporter_http_requests_total",
            "HTTP requests served, by handler and status code.",
            ["handler", "code"],
            registry=global_registry,
        )
        self.request_duration = Histogram(
            "hana_exporter_http_request_duration_seconds",
            "Time spent serving HTTP requests.",
            ["handler"],
            registry=global_registry,
        )
        super().__init__(server_address, MetricsHandler)


class MetricsHandler(BaseHTTPRequestHandler):

    server: ExporterHTTPServer

    def do_GET(self):
        start = time.monotonic()
        url = urlsplit(self.path)
        if url.path == self.server.metrics_path:
            handler = "metrics"
            code = self._serve_metrics(parse_qs(url.query, keep_blank_values=True))
        else:
            handler = "landing"
            code = self._send(200, self.server.landing_page, "text/html; charset=utf-8")

        self.server.request_duration.labels(handler=handler).observe(time.monotonic() - start)
        self.server.requests_total.labels(handler=handler, code=str(code)).inc()

    def _serve_metrics(self, params) -> int:
        selectors = params.get("collect[]", [])
        log.debug("collect query: %s", selectors)
        scrapers = filter_scrapers(self.server.scrapers, selectors)

        timeout = scrape_timeout(
            self.headers.get(SCRAPE_TIMEOUT_HEADER),
            offset=self.server.timeout_offset,
            default=self.server.default_timeout,
        )

        registry = CollectorRegistry(auto_describe=False)
        registry.register(Exporter(self.server.conn, scrapers, timeout=timeout))

        encoder, content_type = choose_encoder(self.headers.get("Accept", ""))
        body = encoder(Gatherers([self.server.global_registry, registry]))
        return self._send(200, body, content_type)

    def _send(self, code: int, body: bytes, content_type: str) -> int:
        encoding = None
        if gzip_accepted(self.headers.get("Accept-Encoding", "")):
            body = gzip.compress(body)
            encoding = "gzip"

        self.send_response(code)
        self.send_header("Content-Type", content_type)
        if encoding:
            self.send_header("Content-Encoding", encoding)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)
        return code

    def log_message(self, format, *args):
        log.debug("%s - %s", self.address_string(), format % args)


def serve(
    listen_address: str,
    conn: ConnectionDescriptor,
    scrapers: Sequence[Scraper],
    global_registry,
    metrics_path: str = DEFAULT_METRICS_PATH,
    timeout_offset: float = DEFAULT_TIMEOUT_OFFSET,
    default_timeout: Optional[float] = None,
):
    host, port = parse_listen_address(listen_address)
    server = ExporterHTTPServer(
        (host, port),
        conn,
        scrapers,
        global_registry,
        metrics_path=metrics_path,
        timeout_offset=timeout_offset,
        default_timeout=default_timeout,
    )
    log.info("Listening on %s", listen_address)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()
    log.info("Server stopped")
