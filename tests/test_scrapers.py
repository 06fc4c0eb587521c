"""
Tests for the HANA scrapers against an in-memory DB-API connection.

No HANA server needed: FakeConnection hands back canned rows the way
hdbcli's cursor would.
"""

import pytest

from hana_exporter.collector.base import ScrapeError
from hana_exporter.collector.connections import ScrapeConnections
from hana_exporter.collector.global_status import ScrapeGlobalStatus
from hana_exporter.collector.host_resource import ScrapeHostResource
from hana_exporter.config import ConnectionDescriptor

CONN = ConnectionDescriptor(user="alice", password="secret", host="db1", port=30015)


class FakeCursor:
    def __init__(self, rows, fail_on_execute=None):
        self._rows = list(rows)
        self._fail = fail_on_execute
        self.executed = []
        self.closed = False

    def execute(self, sql):
        if self._fail is not None:
            raise self._fail
        self.executed.append(sql)

    def fetchmany(self, size):
        batch, self._rows = self._rows[:size], self._rows[size:]
        return batch

    def close(self):
        self.closed = True


class FakeConnection:
    def __init__(self, rows=(), fail_on_execute=None):
        self.cursor_obj = FakeCursor(rows, fail_on_execute)
        self.closed = False
        self.opened_with = None

    def cursor(self):
        return self.cursor_obj

    def close(self):
        self.closed = True


def _connect_to(connection):
    def connect(conn):
        connection.opened_with = conn
        return connection
    return connect


def _run(scraper):
    out = []
    scraper.scrape(CONN, out.append)
    return out


def test_global_status_rows():
    rows = [
        ("hana1", 30003, "indexserver", "YES", 12, 4096, 8192, 30, 2),
        ("hana1", 30001, "nameserver", "NO", None, None, None, None, None),
    ]
    connection = FakeConnection(rows)
    observations = _run(ScrapeGlobalStatus(connect=_connect_to(connection)))

    by_key = {(o.name, o.labels["service"]): o for o in observations}
    assert by_key[("hana_service_active", "indexserver")].value == 1.0
    assert by_key[("hana_service_active", "nameserver")].value == 0.0
    assert by_key[("hana_service_cpu_percent", "indexserver")].value == 12.0
    assert by_key[("hana_service_memory_used_bytes", "indexserver")].value == 4096.0
    assert by_key[("hana_service_pending_requests", "indexserver")].value == 2.0
    assert by_key[("hana_service_active", "indexserver")].labels == {
        "host": "hana1", "port": "30003", "service": "indexserver",
    }
    # NULL columns are skipped, not reported as zero
    assert ("hana_service_cpu_percent", "nameserver") not in by_key

    assert connection.opened_with is CONN
    assert "M_SERVICE_STATISTICS" in connection.cursor_obj.executed[0]
    assert connection.cursor_obj.closed
    assert connection.closed


def test_global_status_keeps_row_order():
    rows = [("hana1", 30000 + i, f"svc{i}", "YES", 1, 1, 1, 1, 1) for i in range(1200)]
    observations = _run(ScrapeGlobalStatus(connect=_connect_to(FakeConnection(rows))))

    active = [o.labels["service"] for o in observations if o.name == "hana_service_active"]
    assert active == [f"svc{i}" for i in range(1200)]


def test_host_resource_rows():
    rows = [("hana1", 1000, 3000, 5000, 2500, 100, 90000)]
    observations = _run(ScrapeHostResource(connect=_connect_to(FakeConnection(rows))))

    gauges = {o.name: o.value for o in observations if o.type == "gauge"}
    assert gauges == {"hana_host_memory_free_bytes": 1000.0, "hana_host_memory_used_bytes": 3000.0}

    cpu = {o.labels["mode"]: o.value for o in observations if o.name == "hana_host_cpu_seconds_total"}
    assert cpu == {"user": 5.0, "system": 2.5, "iowait": 0.1, "idle": 90.0}
    assert all(o.type == "counter" for o in observations if o.name == "hana_host_cpu_seconds_total")


def test_connections_rows():
    rows = [("hana1", 30003, "RUNNING", 4), ("hana1", 30003, None, 1)]
    observations = _run(ScrapeConnections(connect=_connect_to(FakeConnection(rows))))

    counts = {o.labels["status"]: o.value for o in observations}
    assert counts == {"RUNNING": 4.0, "unknown": 1.0}


def test_no_rows_emits_nothing():
    assert _run(ScrapeGlobalStatus(connect=_connect_to(FakeConnection([])))) == []


def test_malformed_row_becomes_scrape_error():
    rows = [("hana1", 30003, "indexserver", "YES", "lots", 1, 1, 1, 1)]
    connection = FakeConnection(rows)
    with pytest.raises(ScrapeError, match="malformed row"):
        _run(ScrapeGlobalStatus(connect=_connect_to(connection)))
    assert connection.closed


def test_connect_failure_becomes_scrape_error():
    def refuse(conn):
        raise ConnectionRefusedError("connection refused")

    with pytest.raises(ScrapeError, match="query failed"):
        _run(ScrapeHostResource(connect=refuse))


def test_query_failure_closes_connection():
    connection = FakeConnection(fail_on_execute=OSError("socket closed"))
    with pytest.raises(ScrapeError, match="globalstatus"):
        _run(ScrapeGlobalStatus(connect=_connect_to(connection)))
    assert connection.cursor_obj.closed
    assert connection.closed


def test_connect_passes_timeouts_in_milliseconds(monkeypatch):
    from hana_exporter import db

    captured = {}

    def fake_connect(**kwargs):
        captured.update(kwargs)
        return FakeConnection()

    monkeypatch.setattr(db.dbapi, "connect", fake_connect)
    conn = ConnectionDescriptor(
        user="alice", password="secret", host="db1", port=30015, timeout=7, query_timeout=12,
    )
    db.connect(conn)

    assert captured["address"] == "db1"
    assert captured["port"] == 30015
    assert captured["connectTimeout"] == 7000
    assert captured["communicationTimeout"] == 12000
    assert "encrypt" not in captured
