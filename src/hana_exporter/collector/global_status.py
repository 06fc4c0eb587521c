"""
Per-service status from M_SERVICE_STATISTICS: whether each service is
up, and what it is costing in CPU, memory and threads.
"""

from __future__ import annotations

from typing import Any, Sequence

from hana_exporter.collector.base import Emit, Observation
from hana_exporter.collector.query import QueryScraper, number

# (column index, metric name, help)
_NUMERIC_COLUMNS = [
    (4, "hana_service_cpu_percent", "CPU usage of the service process in percent."),
    (5, "hana_service_memory_used_bytes", "Memory used by the service."),
    (6, "hana_service_memory_allocation_limit_bytes", "Effective allocation limit of the service."),
    (7, "hana_service_active_threads", "Number of active threads in the service."),
    (8, "hana_service_pending_requests", "Number of pending requests in the service."),
]


class ScrapeGlobalStatus(QueryScraper):

    query = """
        SELECT HOST, PORT, SERVICE_NAME, ACTIVE_STATUS,
               PROCESS_CPU, TOTAL_MEMORY_USED_SIZE, EFFECTIVE_ALLOCATION_LIMIT,
               ACTIVE_THREAD_COUNT, PENDING_REQUEST_COUNT
          FROM SYS.M_SERVICE_STATISTICS
    """

    def name(self) -> str:
        return "globalstatus"

    def help(self) -> str:
        return "Collect service status and resource usage from SYS.M_SERVICE_STATISTICS"

    def emit_row(self, row: Sequence[Any], emit: Emit) -> None:
        host, port, service, status = row[0], row[1], row[2], row[3]
        labels = {"host": host, "port": port, "service": service}

        emit(Observation(
            "hana_service_active",
            1.0 if str(status).upper() == "YES" else 0.0,
            labels,
            help_text="Whether the service is active (1) or not (0).",
        ))

        for index, metric, help_text in _NUMERIC_COLUMNS:
            value = number(row[index])
            if value is None:
                continue
            emit(Observation(metric, value, labels, help_text=help_text))
