from __future__ import annotations

from typing import Any, Sequence

from hana_exporter.collector.base import Emit, Observation
from hana_exporter.collector.query import QueryScraper, number


class ScrapeConnections(QueryScraper):
    """Open connections per service and status. Off by default, M_CONNECTIONS can be large."""

    query = """
        SELECT HOST, PORT, CONNECTION_STATUS, COUNT(*)
          FROM SYS.M_CONNECTIONS
         WHERE CONNECTION_ID > 0
         GROUP BY HOST, PORT, CONNECTION_STATUS
    """

    def name(self) -> str:
        return "connections"

    def help(self) -> str:
        return "Collect connection counts per status from SYS.M_CONNECTIONS"

    def emit_row(self, row: Sequence[Any], emit: Emit) -> None:
        host, port, status, count = row
        emit(Observation(
            "hana_connections",
            number(count) or 0.0,
            {"host": host, "port": port, "status": status or "unknown"},
            help_text="Number of connections by status.",
        ))
